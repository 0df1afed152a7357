"""VM and volume snapshots."""

from __future__ import annotations

from collections.abc import Iterable

from abrha.api.types import ActionResponse, SnapshotResponse
from abrha.core.exceptions import ApiError, NotFoundError, SubmissionError, ValidationError

from .base import Controller, Timeouts
from .tags import validate_tag


class SnapshotController(Controller):
    kind = "snapshot"
    default_timeouts = Timeouts(create=3600.0, update=60.0, delete=60.0)

    async def create_vm_snapshot(self, vm_id: str, name: str) -> SnapshotResponse:
        """Snapshot a VM and return the snapshot the action produced.

        The action does not name its snapshot; it is the one whose
        ``created_at`` equals the action's ``started_at``.
        """
        if not name:
            raise ValidationError("snapshot name must not be empty")

        submitted = await self.submit(
            vm_id, "snapshotting vm", self.client.vm_action(vm_id, {"type": "snapshot", "name": name})
        )
        action = await self.wait_action(vm_id, submitted, timeout=self.timeouts.create) or submitted
        return await self._find_snapshot(vm_id, action)

    async def create_volume_snapshot(
        self, volume_id: str, name: str, tags: Iterable[str] = ()
    ) -> SnapshotResponse:
        if not name:
            raise ValidationError("snapshot name must not be empty")
        tag_list = sorted({validate_tag(t) for t in tags})
        snapshot = await self.submit(
            volume_id,
            "snapshotting volume",
            self.client.create_volume_snapshot(volume_id, {"name": name, "tags": tag_list}),
        )
        self._log.info("Created volume snapshot {snapshot_id}", snapshot_id=snapshot["id"])
        return snapshot

    async def read(self, snapshot_id: str) -> SnapshotResponse | None:
        try:
            return await self.client.get_snapshot(snapshot_id)
        except NotFoundError:
            self._log.warning("Snapshot {snapshot_id} not found", snapshot_id=snapshot_id)
            return None

    async def delete(self, snapshot_id: str) -> None:
        try:
            await self.client.delete_snapshot(snapshot_id)
        except NotFoundError:
            return
        except ApiError as e:
            raise SubmissionError(snapshot_id, "deleting snapshot", e) from e

    async def _find_snapshot(self, vm_id: str, action: ActionResponse) -> SnapshotResponse:
        started_at = action.get("started_at")
        snapshots = await self.submit(vm_id, "listing vm snapshots", self.client.list_vm_snapshots(vm_id))
        for snapshot in snapshots:
            if snapshot.get("created_at") == started_at:
                return snapshot
        raise NotFoundError(404, f"no snapshot of vm {vm_id} created at {started_at}")


__all__ = ["SnapshotController"]
