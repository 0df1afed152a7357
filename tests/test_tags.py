from __future__ import annotations

import pytest

from abrha.core.exceptions import ApiError, SubmissionError, ValidationError
from abrha.resources.tags import TagController, set_tags, validate_tag

from .conftest import FakeAbrhaClient

pytestmark = [pytest.mark.unit, pytest.mark.xdist_group("unit")]


class TestValidateTag:
    def test_valid(self):
        assert validate_tag("env:prod") == "env:prod"

    @pytest.mark.parametrize("name", ["", "has space", "tab\there", "x" * 256])
    def test_invalid(self, name: str):
        with pytest.raises(ValidationError):
            validate_tag(name)


class TestSetTags:
    @pytest.mark.asyncio
    async def test_untags_removed_then_tags_added(self, client: FakeAbrhaClient):
        client.tags.update({"a", "b"})

        await set_tags(client, "vol-1", "volume", {"a", "b"}, {"b", "c", "d"})

        assert [c[0] for c in client.calls] == [
            "untag_resources",
            "create_tag",
            "tag_resources",
            "create_tag",
            "tag_resources",
        ]
        assert client.tagged["c"] == {"vol-1"}
        assert client.tagged["d"] == {"vol-1"}

    @pytest.mark.asyncio
    async def test_unchanged_is_noop(self, client: FakeAbrhaClient):
        await set_tags(client, "vm-1", "vm", {"a"}, {"a"})
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_invalid_tag_rejected_before_any_call(self, client: FakeAbrhaClient):
        with pytest.raises(ValidationError):
            await set_tags(client, "vm-1", "vm", set(), {"bad tag"})
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_api_error_is_submission_error(self, client: FakeAbrhaClient):
        client.fail("create_tag", ApiError(422, "tag limit reached"))
        with pytest.raises(SubmissionError) as exc_info:
            await set_tags(client, "vm-1", "vm", set(), {"a"})
        assert exc_info.value.operation == "updating tags"


class TestTagController:
    @pytest.mark.asyncio
    async def test_lifecycle(self, client: FakeAbrhaClient):
        tags = TagController(client)

        assert await tags.create("env:prod") == {"name": "env:prod"}
        assert await tags.read("env:prod") == {"name": "env:prod"}

        await tags.delete("env:prod")
        assert await tags.read("env:prod") is None
        await tags.delete("env:prod")
