"""Block storage volumes and their attachment to VMs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from abrha.api.types import ActionResponse, VolumeResponse
from abrha.core.exceptions import ApiError, NotFoundError, SubmissionError, ValidationError
from abrha.infra.retry import on_api_error, retrying

from .base import Controller, Timeouts
from .tags import set_tags, validate_tag

RESOURCE_TYPE = "volume"
PENDING_EVENT = "Vm already has a pending event"
PENDING_EVENT_RETRY_TIMEOUT = 300.0
PENDING_EVENT_RETRY_INTERVAL = 5.0


@dataclass(frozen=True, slots=True)
class VolumeSpec:
    """Declared volume configuration.

    ``size_gigabytes`` may be omitted only when restoring from a snapshot.
    """

    name: str
    region: str
    size_gigabytes: int | None = None
    description: str | None = None
    snapshot_id: str | None = None
    filesystem_type: str | None = None
    filesystem_label: str | None = None
    tags: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValidationError("volume name must not be empty")
        if not self.region and not self.snapshot_id:
            raise ValidationError("volume region must not be empty")
        if self.size_gigabytes is None and not self.snapshot_id:
            raise ValidationError("volume size_gigabytes is required unless snapshot_id is set")
        if self.size_gigabytes is not None and self.size_gigabytes <= 0:
            raise ValidationError(f"volume size must be positive: {self.size_gigabytes}")
        object.__setattr__(self, "tags", frozenset(self.tags))
        for tag in self.tags:
            validate_tag(tag)

    def to_request(self) -> dict[str, Any]:
        body: dict[str, Any] = {"name": self.name, "region": self.region, "tags": sorted(self.tags)}
        if self.size_gigabytes is not None:
            body["size_gigabytes"] = self.size_gigabytes
        if self.description:
            body["description"] = self.description
        if self.snapshot_id:
            body["snapshot_id"] = self.snapshot_id
        if self.filesystem_type:
            body["filesystem_type"] = self.filesystem_type
        if self.filesystem_label:
            body["filesystem_label"] = self.filesystem_label
        return body


class VolumeController(Controller):
    kind = "volume"
    default_timeouts = Timeouts(create=600.0, update=600.0, delete=600.0)

    async def create(self, spec: VolumeSpec) -> VolumeResponse:
        volume = await self.submit(spec.name, "creating volume", self.client.create_volume(spec.to_request()))
        self._log.info("Created volume {volume_id}", volume_id=volume["id"])
        return volume

    async def read(self, volume_id: str) -> VolumeResponse | None:
        try:
            return await self.client.get_volume(volume_id)
        except NotFoundError:
            self._log.warning("Volume {volume_id} not found", volume_id=volume_id)
            return None

    async def update(self, volume_id: str, prior: VolumeSpec, desired: VolumeSpec) -> VolumeResponse:
        old_size, new_size = prior.size_gigabytes or 0, desired.size_gigabytes or 0
        if new_size and new_size < old_size:
            raise ValidationError("volume size can only be expanded, not shrunk")

        if new_size and new_size != old_size:
            action = await self.submit(
                volume_id,
                "resizing volume",
                self.client.volume_action(
                    volume_id,
                    {"type": "resize", "size_gigabytes": new_size, "region": desired.region},
                ),
            )
            await self.wait_action(volume_id, action, timeout=self.timeouts.update)

        if prior.tags != desired.tags:
            await set_tags(self.client, volume_id, RESOURCE_TYPE, prior.tags, desired.tags)

        return await self.client.get_volume(volume_id)

    async def delete(self, volume_id: str) -> None:
        try:
            await self.client.delete_volume(volume_id)
        except NotFoundError:
            return
        except ApiError as e:
            raise SubmissionError(volume_id, "deleting volume", e) from e


# =============================================================================
# Attachment
# =============================================================================


class VolumeAttachmentController(Controller):
    """Attach and detach a volume, retrying while the VM has a pending event.

    Only one volume action may run against a VM at a time; the API rejects
    the rest with 422 "Vm already has a pending event". That rejection is
    retried on a fixed interval until ``retry_timeout``; anything else is
    fatal.
    """

    kind = "volume_attachment"

    def __init__(
        self,
        *args: Any,
        retry_timeout: float = PENDING_EVENT_RETRY_TIMEOUT,
        retry_interval: float = PENDING_EVENT_RETRY_INTERVAL,
        **kwargs: Any,
    ) -> None:
        super().__init__(*args, **kwargs)
        self.retry_timeout = retry_timeout
        self.retry_interval = retry_interval

    @staticmethod
    def attachment_id(vm_id: str, volume_id: str) -> str:
        return f"{vm_id}-{volume_id}"

    async def read(self, vm_id: str, volume_id: str) -> bool:
        """True when the volume exists and is attached to the VM."""
        try:
            volume = await self.client.get_volume(volume_id)
        except NotFoundError:
            return False
        return vm_id in (volume.get("vm_ids") or [])

    async def attach(self, vm_id: str, volume_id: str) -> ActionResponse | None:
        attachment = self.attachment_id(vm_id, volume_id)
        volume = await self.submit(attachment, "reading volume", self.client.get_volume(volume_id))
        if vm_id in (volume.get("vm_ids") or []):
            self._log.debug("Volume {volume_id} already attached to vm {vm_id}", volume_id=volume_id, vm_id=vm_id)
            return None
        return await self._with_pending_event_retry(attachment, "attach", vm_id, volume_id)

    async def detach(self, vm_id: str, volume_id: str) -> ActionResponse | None:
        attachment = self.attachment_id(vm_id, volume_id)
        if not await self.read(vm_id, volume_id):
            return None
        return await self._with_pending_event_retry(attachment, "detach", vm_id, volume_id)

    async def _with_pending_event_retry(
        self, attachment: str, kind: str, vm_id: str, volume_id: str
    ) -> ActionResponse | None:
        async def step() -> ActionResponse | None:
            self._log.debug("{kind} volume {volume_id} on vm {vm_id}", kind=kind, volume_id=volume_id, vm_id=vm_id)
            action = await self.client.volume_action(volume_id, {"type": kind, "vm_id": vm_id})
            return await self.wait_action(attachment, action, timeout=self.timeouts.create)

        controller = retrying(
            on_api_error(422, PENDING_EVENT),
            timeout=self.retry_timeout,
            interval=self.retry_interval,
        )
        try:
            return await controller(step)
        except ApiError as e:
            raise SubmissionError(attachment, f"{kind}ing volume", e) from e


__all__ = [
    "PENDING_EVENT",
    "VolumeAttachmentController",
    "VolumeController",
    "VolumeSpec",
]
