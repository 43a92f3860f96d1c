"""
Tests for URI-template resources.
"""

import pytest

from tools.resources import ResourceRegistry, ResourceTemplate
from utils.errors import ConfigurationError, NotFound, TransportError
from utils.schemas import CredentialBundle, Result

CREDS = CredentialBundle(access_token="tok")


class TestResourceTemplate:
    def test_match(self):
        template = ResourceTemplate("airtable://base/{baseId}/table/{tableIdOrName}")
        assert template.variables == ["baseId", "tableIdOrName"]
        assert template.match("airtable://base/app1/table/Tasks%20List") == {
            "baseId": "app1",
            "tableIdOrName": "Tasks List",
        }

    def test_variable_matches_one_segment(self):
        template = ResourceTemplate("airtable://base/{baseId}")
        assert template.match("airtable://base/app1/table/t") is None
        assert template.match("airtable://base/") is None

    def test_literal_parts_escaped(self):
        template = ResourceTemplate("docs://file.{ext}")
        assert template.match("docs://fileXtxt") is None
        assert template.match("docs://file.txt") == {"ext": "txt"}

    def test_expand(self):
        template = ResourceTemplate("gitlab://project/{projectId}/issue/{iid}")
        assert template.expand(projectId="group/repo", iid=4) == "gitlab://project/group%2Frepo/issue/4"
        with pytest.raises(ValueError):
            template.expand(projectId="x")

    def test_duplicate_variable_rejected(self):
        with pytest.raises(ConfigurationError):
            ResourceTemplate("x://{id}/{id}")


class TestResourceRegistry:
    @pytest.mark.asyncio
    async def test_read_json(self):
        resources = ResourceRegistry("airtable")
        seen = {}

        @resources.resource("base", "airtable://base/{baseId}", title="Airtable Base")
        async def read_base(uri, params, credentials):
            seen.update(params)
            seen["token"] = credentials.access_token
            return {"id": params["baseId"], "name": "CRM"}

        result = await resources.read("airtable://base/app1", CREDS)

        contents = result.unwrap().contents
        assert seen == {"baseId": "app1", "token": "tok"}
        assert contents[0].uri == "airtable://base/app1"
        assert contents[0].mime_type == "application/json"
        assert '"name": "CRM"' in contents[0].text

    @pytest.mark.asyncio
    async def test_text_resource(self):
        resources = ResourceRegistry("arxiv")
        resources.register(
            "abstract",
            "arxiv://paper/{id}/abstract",
            lambda uri, params, credentials: f"Abstract of {params['id']}",
            mime_type="text/plain",
        )

        result = await resources.read("arxiv://paper/2401.1/abstract")

        item = result.unwrap().contents[0]
        assert item.text == "Abstract of 2401.1"
        assert item.mime_type == "text/plain"

    @pytest.mark.asyncio
    async def test_unknown_uri(self):
        result = await ResourceRegistry().read("nope://x")
        assert isinstance(result.error, NotFound)

    @pytest.mark.asyncio
    async def test_handler_error_returned(self):
        resources = ResourceRegistry()
        resources.register(
            "rec",
            "x://rec/{id}",
            lambda uri, params, credentials: Result.failure(TransportError(404, "NOT_FOUND")),
        )
        result = await resources.read("x://rec/1")
        assert result.error.status_code == 404

    @pytest.mark.asyncio
    async def test_raised_error_returned(self):
        resources = ResourceRegistry()

        async def broken(uri, params, credentials):
            raise RuntimeError("boom")

        resources.register("rec", "x://rec/{id}", broken)
        result = await resources.read("x://rec/1")
        assert not result.ok
        assert "boom" in result.error.message

    def test_duplicate_name_rejected(self):
        resources = ResourceRegistry()
        resources.register("rec", "x://rec/{id}", lambda *a: {})
        with pytest.raises(ConfigurationError):
            resources.register("rec", "x://other/{id}", lambda *a: {})

    def test_list_templates(self):
        resources = ResourceRegistry()
        resources.register("rec", "x://rec/{id}", lambda *a: {}, description="A record")
        assert resources.list_templates() == [
            {
                "name": "rec",
                "uriTemplate": "x://rec/{id}",
                "title": "rec",
                "description": "A record",
                "mimeType": "application/json",
            }
        ]
