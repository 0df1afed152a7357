"""Tags and tag assignment."""

from __future__ import annotations

from collections.abc import Iterable

from loguru import logger

from abrha.api.client import AbrhaClient
from abrha.api.types import TaggedResource, TagResponse
from abrha.core.exceptions import ApiError, NotFoundError, SubmissionError, ValidationError

from .base import Controller, Timeouts

_MAX_TAG_LENGTH = 255


def validate_tag(name: str) -> str:
    if not name or len(name) > _MAX_TAG_LENGTH:
        raise ValidationError(f"tag name must be 1-{_MAX_TAG_LENGTH} characters: {name!r}")
    if any(c.isspace() for c in name):
        raise ValidationError(f"tag name must not contain whitespace: {name!r}")
    return name


async def set_tags(
    client: AbrhaClient,
    resource_id: str,
    resource_type: str,
    old: Iterable[str],
    new: Iterable[str],
) -> None:
    """Converge the tags on one resource from ``old`` to ``new``.

    Removed names are untagged first; added names are created (a no-op for
    existing tags) and then attached.
    """
    old_set, new_set = set(old), set(new)
    for name in new_set:
        validate_tag(name)

    log = logger.bind(component="tags", resource_id=resource_id)
    resource: list[TaggedResource] = [{"resource_id": resource_id, "resource_type": resource_type}]

    try:
        for name in sorted(old_set - new_set):
            log.debug("Untagging {name}", name=name)
            await client.untag_resources(name, resource)

        for name in sorted(new_set - old_set):
            log.debug("Tagging {name}", name=name)
            await client.create_tag(name)
            await client.tag_resources(name, resource)
    except ApiError as e:
        raise SubmissionError(resource_id, "updating tags", e) from e


class TagController(Controller):
    kind = "tag"
    default_timeouts = Timeouts(create=60.0, update=60.0, delete=60.0)

    async def create(self, name: str) -> TagResponse:
        validate_tag(name)
        return await self.submit(name, "creating tag", self.client.create_tag(name))

    async def read(self, name: str) -> TagResponse | None:
        try:
            return await self.client.get_tag(name)
        except NotFoundError:
            self._log.warning("Tag {name} not found", name=name)
            return None

    async def delete(self, name: str) -> None:
        try:
            await self.client.delete_tag(name)
        except NotFoundError:
            return
        except ApiError as e:
            raise SubmissionError(name, "deleting tag", e) from e


__all__ = ["TagController", "set_tags", "validate_tag"]
