"""
Read-only resources addressed by URI templates.

    resources = ResourceRegistry("airtable")

    @resources.resource("record", "airtable://base/{baseId}/table/{tableIdOrName}/record/{recordId}")
    async def read_record(uri, params, credentials):
        ...

Each ``{var}`` matches exactly one non-empty path segment; matched values
are URL-decoded before they reach the handler.
"""

from __future__ import annotations

import inspect
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Union
from urllib.parse import quote, unquote

from utils.errors import ConfigurationError, NotFound, OperationError
from utils.schemas import CredentialBundle, EmbeddedResource, ResourceContents, Result

logger = logging.getLogger(__name__)

_VAR = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


class ResourceTemplate:
    """``scheme://path/{var}/…`` pattern with match / expand."""

    def __init__(self, pattern: str) -> None:
        if not pattern:
            raise ConfigurationError("Resource template must not be empty")
        self.pattern = pattern
        self.variables: List[str] = _VAR.findall(pattern)
        if len(set(self.variables)) != len(self.variables):
            raise ConfigurationError(f"Duplicate variable in resource template '{pattern}'")

        regex = ""
        last = 0
        for m in _VAR.finditer(pattern):
            regex += re.escape(pattern[last:m.start()])
            regex += f"(?P<{m.group(1)}>[^/?#]+)"
            last = m.end()
        regex += re.escape(pattern[last:])
        self._regex = re.compile(f"^{regex}$")

    def match(self, uri: str) -> Optional[Dict[str, str]]:
        m = self._regex.match(uri)
        if m is None:
            return None
        return {k: unquote(v) for k, v in m.groupdict().items()}

    def expand(self, **values: Any) -> str:
        missing = [v for v in self.variables if v not in values]
        if missing:
            raise ValueError(f"Missing template variables: {', '.join(missing)}")
        return _VAR.sub(lambda m: quote(str(values[m.group(1)]), safe=""), self.pattern)

    def __repr__(self) -> str:
        return f"ResourceTemplate({self.pattern!r})"


@dataclass(frozen=True)
class ResourceDescriptor:
    name: str
    template: ResourceTemplate
    handler: Callable
    title: Optional[str] = None
    description: Optional[str] = None
    mime_type: str = "application/json"

    def to_catalog_entry(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "uriTemplate": self.template.pattern,
            "title": self.title or self.name,
            "description": self.description or "",
            "mimeType": self.mime_type,
        }


class ResourceRegistry:
    """Per-connector resource table."""

    def __init__(self, connector: str = "connector") -> None:
        self.connector = connector
        self._resources: Dict[str, ResourceDescriptor] = {}

    def register(
        self,
        name: str,
        template: Union[str, ResourceTemplate],
        handler: Callable,
        *,
        title: Optional[str] = None,
        description: Optional[str] = None,
        mime_type: str = "application/json",
    ) -> ResourceDescriptor:
        if not name:
            raise ConfigurationError("Resource name must be a non-empty string")
        if name in self._resources:
            raise ConfigurationError(
                f"Resource '{name}' is already registered on {self.connector}"
            )
        if not callable(handler):
            raise ConfigurationError(f"Handler for resource '{name}' is not callable")
        if isinstance(template, str):
            template = ResourceTemplate(template)

        descriptor = ResourceDescriptor(
            name=name,
            template=template,
            handler=handler,
            title=title,
            description=description,
            mime_type=mime_type,
        )
        self._resources[name] = descriptor
        logger.debug("[%s] registered resource %s → %s", self.connector, name, template.pattern)
        return descriptor

    def resource(
        self,
        name: str,
        template: Union[str, ResourceTemplate],
        **meta: Any,
    ) -> Callable:
        """Decorator form of :meth:`register`."""

        def decorator(func: Callable) -> Callable:
            self.register(name, template, func, **meta)
            return func

        return decorator

    def list_templates(self) -> List[Dict[str, Any]]:
        return [d.to_catalog_entry() for d in self._resources.values()]

    def resolve(self, uri: str) -> Optional[tuple]:
        """First registered resource whose template matches *uri*."""
        for descriptor in self._resources.values():
            params = descriptor.template.match(uri)
            if params is not None:
                return descriptor, params
        return None

    async def read(
        self,
        uri: str,
        credentials: Optional[CredentialBundle] = None,
    ) -> Result[ResourceContents]:
        """Read *uri*.  Errors come back in the Result, never raised."""
        found = self.resolve(uri)
        if found is None:
            return Result.failure(NotFound(f"resource '{uri}'"))
        descriptor, params = found

        try:
            outcome = descriptor.handler(uri, params, credentials)
            if inspect.isawaitable(outcome):
                outcome = await outcome
        except OperationError as exc:
            logger.warning("[%s] resource %s failed: %s", self.connector, uri, exc)
            return Result.failure(exc)
        except Exception as exc:
            logger.exception("[%s] resource %s raised", self.connector, uri)
            return Result.failure(OperationError(f"Resource '{uri}' failed: {exc}"))

        if isinstance(outcome, Result):
            if outcome.error is not None:
                return Result.failure(outcome.error)
            outcome = outcome.value
        return Result.success(_to_contents(uri, outcome, descriptor.mime_type))


def _to_contents(uri: str, outcome: Any, mime_type: str) -> ResourceContents:
    if isinstance(outcome, ResourceContents):
        return outcome
    if isinstance(outcome, Mapping) and "contents" in outcome:
        return ResourceContents.model_validate(dict(outcome))
    if isinstance(outcome, str):
        return ResourceContents(
            contents=[EmbeddedResource(uri=uri, mime_type=mime_type, text=outcome)]
        )
    return ResourceContents.from_json(uri, outcome)
