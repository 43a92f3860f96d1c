"""
Tests for the operation registry — registration, validate-before-dispatch,
envelope normalisation.
"""

import types

import httpx
import pytest
from unittest.mock import AsyncMock, patch

from tools import operation
from tools import schema as s
from tools.registry import OperationRegistry
from utils import http
from utils.errors import ConfigurationError, NotFound, TransportError, ValidationError
from utils.schemas import ContentEnvelope, CredentialBundle, Result, TextContent

CREDS = CredentialBundle(access_token="tok-123")


async def _echo(args, credentials):
    return ContentEnvelope(content=[TextContent(text=args["text"])])


class TestRegistration:
    def test_register_and_get(self):
        registry = OperationRegistry("test")
        registry.register("echo", {"text": s.string()}, _echo)

        assert registry.has_operation("echo")
        assert "echo" in registry
        assert len(registry) == 1
        assert registry.get("echo").handler is _echo

    def test_duplicate_name_rejected_first_kept(self):
        registry = OperationRegistry("test")
        registry.register("echo", {"text": s.string()}, _echo)

        async def other(args, credentials):
            return "other"

        with pytest.raises(ConfigurationError):
            registry.register("echo", None, other)

        assert registry.get("echo").handler is _echo

    @pytest.mark.asyncio
    async def test_first_registration_still_callable_after_duplicate(self):
        registry = OperationRegistry("test")
        registry.register("echo", {"text": s.string()}, _echo)
        with pytest.raises(ConfigurationError):
            registry.register("echo", None, _echo)

        result = await registry.invoke("echo", {"text": "still here"}, CREDS)
        assert not result.is_error
        assert result.content[0].text == "still here"

    @pytest.mark.parametrize("name", ["", "   ", None])
    def test_empty_name_rejected(self, name):
        with pytest.raises(ConfigurationError):
            OperationRegistry().register(name, None, _echo)

    def test_bad_schema_rejected(self):
        with pytest.raises(ConfigurationError):
            OperationRegistry().register("x", ["not", "a", "schema"], _echo)

    def test_bad_field_kind_rejected(self):
        with pytest.raises(ConfigurationError):
            OperationRegistry().register("x", {"text": str}, _echo)

    def test_handler_must_be_callable(self):
        with pytest.raises(ConfigurationError):
            OperationRegistry().register("x", None, "not callable")

    def test_decorator_registers(self):
        registry = OperationRegistry("test")

        @registry.operation("ping", title="Ping", destructive=False)
        async def ping(args, credentials):
            """Check connectivity."""
            return "pong"

        descriptor = registry.get("ping")
        assert descriptor.title == "Ping"
        assert descriptor.description == "Check connectivity."
        assert descriptor.annotations["destructive"] is False

    def test_register_module_collects_tagged_functions(self):
        module = types.ModuleType("fake_connector_ops")

        @operation("list_items", {"limit": s.integer().with_default(10)})
        async def list_items(args, credentials):
            return {"items": []}

        @operation("delete_item", {"id": s.string()}, destructive=True)
        async def delete_item(args, credentials):
            return {"success": True}

        async def helper(args, credentials):
            return None

        module.list_items = list_items
        module.delete_item = delete_item
        module.helper = helper

        registry = OperationRegistry("fake")
        assert registry.register_module(module) == 2
        assert registry.has_operation("list_items")
        assert registry.get("delete_item").annotations["destructive"] is True
        assert not registry.has_operation("helper")

    def test_catalog_exports_json_schema(self):
        registry = OperationRegistry("test")
        registry.register(
            "search",
            {
                "query": s.string().describe("Search text"),
                "sort": s.enum("ascending", "descending").optional(),
                "pageSize": s.integer().with_default(100),
            },
            _echo,
            description="Search pages",
        )

        [entry] = registry.list_operations()
        assert entry["name"] == "search"
        assert entry["description"] == "Search pages"
        schema = entry["inputSchema"]
        assert schema["type"] == "object"
        assert schema["required"] == ["query"]
        assert schema["properties"]["query"] == {"type": "string", "description": "Search text"}
        assert schema["properties"]["sort"]["enum"] == ["ascending", "descending"]
        assert schema["properties"]["pageSize"]["default"] == 100


class TestInvokeValidation:
    @pytest.mark.asyncio
    async def test_missing_required_field(self):
        """Scenario A."""
        registry = OperationRegistry("test")
        registry.register("echo", {"text": s.string()}, _echo)

        result = await registry.invoke("echo", {}, CREDS)

        assert result.is_error
        assert isinstance(result.error, ValidationError)
        assert result.error.field == "text"
        assert result.error.reason == "required"
        assert "text: required" in result.content[0].text

    @pytest.mark.asyncio
    async def test_pass_through(self):
        """Scenario B."""
        registry = OperationRegistry("test")
        registry.register("echo", {"text": s.string()}, _echo)

        result = await registry.invoke("echo", {"text": "hi"}, CREDS)

        assert not result.is_error
        assert result.content == [TextContent(text="hi")]
        assert result.content[0].kind == "text"

    @pytest.mark.asyncio
    async def test_dict_envelope_with_kind_key(self):
        registry = OperationRegistry("test")

        async def handler(args, credentials):
            return {"content": [{"kind": "text", "text": args["text"]}]}

        registry.register("echo", {"text": s.string()}, handler)
        result = await registry.invoke("echo", {"text": "hi"}, CREDS)

        assert result.content == [TextContent(text="hi")]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "raw_args",
        [
            {},
            {"id": 42},
            {"id": None},
            {"id": "rec1", "force": "yes"},
            "not an object",
        ],
    )
    async def test_handler_network_path_never_entered_on_bad_input(self, raw_args):
        """P1: malformed input never reaches the dispatch helper."""
        registry = OperationRegistry("test")

        async def delete_record(args, credentials):
            return http.json_result_envelope(
                await http.request("DELETE", f"https://api.example.com/records/{args['id']}")
            )

        registry.register(
            "delete_record",
            {"id": s.string(), "force": s.boolean().optional()},
            delete_record,
        )

        with patch.object(http, "request", new_callable=AsyncMock) as spy:
            result = await registry.invoke("delete_record", raw_args, CREDS)

        assert result.is_error
        assert isinstance(result.error, ValidationError)
        spy.assert_not_called()

    @pytest.mark.asyncio
    async def test_defaults_applied_and_extras_ignored(self):
        registry = OperationRegistry("test")
        seen = {}

        async def handler(args, credentials):
            seen.update(args)
            return "ok"

        registry.register(
            "list_pages",
            {"pageSize": s.integer().with_default(100), "query": s.string().optional()},
            handler,
        )
        await registry.invoke("list_pages", {"unexpected": True}, CREDS)

        assert seen == {"pageSize": 100}

    @pytest.mark.asyncio
    async def test_explicit_value_beats_default(self):
        registry = OperationRegistry("test")
        seen = {}

        async def handler(args, credentials):
            seen.update(args)
            return "ok"

        registry.register("list_pages", {"pageSize": s.integer().with_default(100)}, handler)
        await registry.invoke("list_pages", {"pageSize": 5}, CREDS)

        assert seen == {"pageSize": 5}

    @pytest.mark.asyncio
    async def test_none_args_treated_as_empty(self):
        registry = OperationRegistry("test")
        registry.register("whoami", None, lambda args, credentials: {"user": "me"})

        result = await registry.invoke("whoami", None, CREDS)

        assert not result.is_error
        assert '"user": "me"' in result.content[0].text


class TestEnvelopeNormalisation:
    @pytest.mark.asyncio
    async def test_vendor_body_with_string_content_is_serialised(self):
        registry = OperationRegistry("test")

        async def get_file(args, credentials):
            return {"name": args["path"], "content": "SGVsbG8=", "encoding": "base64"}

        registry.register("get_file", {"path": s.string()}, get_file)
        result = await registry.invoke("get_file", {"path": "README.md"}, CREDS)

        assert not result.is_error
        assert '"content": "SGVsbG8="' in result.content[0].text
        assert '"name": "README.md"' in result.content[0].text

    @pytest.mark.asyncio
    async def test_vendor_body_with_block_list_content_is_serialised(self):
        registry = OperationRegistry("test")

        async def get_page(args, credentials):
            return {"content": [{"type": "paragraph", "text": "Hello"}], "id": "p1"}

        registry.register("get_page", None, get_page)
        result = await registry.invoke("get_page", {}, CREDS)

        assert not result.is_error
        assert '"type": "paragraph"' in result.content[0].text
        assert '"id": "p1"' in result.content[0].text

    @pytest.mark.asyncio
    async def test_envelope_shaped_dict_still_accepted(self):
        registry = OperationRegistry("test")
        registry.register(
            "op",
            None,
            lambda args, credentials: {"content": [{"type": "text", "text": "ok"}], "isError": True},
        )

        result = await registry.invoke("op", {}, CREDS)

        assert result.is_error
        assert result.content == [TextContent(text="ok")]


class TestInvokeErrors:
    @pytest.mark.asyncio
    async def test_unknown_operation(self):
        result = await OperationRegistry("test").invoke("nope", {}, CREDS)

        assert result.is_error
        assert isinstance(result.error, NotFound)
        assert "nope" in result.content[0].text

    @pytest.mark.asyncio
    async def test_transport_error_surfaces_vendor_text(self):
        """Scenario C."""

        def vendor(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text='{"error":"rate_limited"}')

        client = httpx.AsyncClient(transport=httpx.MockTransport(vendor))
        registry = OperationRegistry("test")

        async def list_items(args, credentials):
            result = await http.request(
                "GET",
                "https://api.example.com/items",
                headers=credentials.authorization_header(),
                client=client,
            )
            return http.json_result_envelope(result)

        registry.register("list_items", None, list_items)
        try:
            result = await registry.invoke("list_items", {}, CREDS)
        finally:
            await client.aclose()

        assert result.is_error
        assert isinstance(result.error, TransportError)
        assert result.error.status_code == 500
        assert result.error.raw_body == '{"error":"rate_limited"}'
        assert "rate_limited" in result.content[0].text
        assert result.to_wire()["isError"] is True

    @pytest.mark.asyncio
    async def test_raised_operation_error_becomes_envelope(self):
        registry = OperationRegistry("test")

        async def find_contact(args, credentials):
            raise NotFound(f"contact {args['email']}")

        registry.register("find_contact", {"email": s.string()}, find_contact)
        result = await registry.invoke("find_contact", {"email": "a@b.c"}, CREDS)

        assert result.is_error
        assert isinstance(result.error, NotFound)
        assert "a@b.c" in result.content[0].text

    @pytest.mark.asyncio
    async def test_result_failure_becomes_envelope(self):
        registry = OperationRegistry("test")
        registry.register(
            "boom",
            None,
            lambda args, credentials: Result.failure(TransportError(404, "missing")),
        )

        result = await registry.invoke("boom", {}, CREDS)

        assert result.is_error
        assert result.error.status_code == 404

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_reported_not_raised(self):
        registry = OperationRegistry("test")

        async def broken(args, credentials):
            raise KeyError("items")

        registry.register("broken", None, broken)
        result = await registry.invoke("broken", {}, CREDS)

        assert result.is_error
        assert "broken" in result.content[0].text
        assert "items" in result.content[0].text

    @pytest.mark.asyncio
    async def test_credentials_passed_through(self):
        registry = OperationRegistry("test")
        seen = []

        async def handler(args, credentials):
            seen.append(credentials)
            return "ok"

        registry.register("op", None, handler)
        await registry.invoke("op", {}, CREDS)

        assert seen == [CREDS]
