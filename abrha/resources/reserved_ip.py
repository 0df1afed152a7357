"""Reserved IPv4 / IPv6 addresses and their assignment to VMs."""

from __future__ import annotations

from typing import Any

from abrha.api.client import IPFamily
from abrha.api.types import ActionResponse, ReservedIPResponse
from abrha.core.exceptions import (
    AlreadyDivergedError,
    ApiError,
    NotFoundError,
    SubmissionError,
    UnexpectedStateError,
    ValidationError,
)

from .base import Controller, Timeouts

# Reserved IP actions report "new" before they start running.
ASSIGN_PENDING = frozenset({"new", "in-progress"})


def assigned_vm_id(reserved_ip: ReservedIPResponse) -> str | None:
    vm = reserved_ip.get("vm")
    return str(vm["id"]) if vm else None


class ReservedIPController(Controller):
    default_timeouts = Timeouts(create=3600.0, update=3600.0, delete=3600.0)

    def __init__(self, *args: Any, family: IPFamily = "ipv4", **kwargs: Any) -> None:
        if family not in ("ipv4", "ipv6"):
            raise ValidationError(f"unknown IP family: {family!r}")
        self.family: IPFamily = family
        self.kind = "reserved_ip" if family == "ipv4" else "reserved_ipv6"
        super().__init__(*args, **kwargs)

    async def create(self, region: str, vm_id: str | None = None) -> ReservedIPResponse:
        if not region:
            raise ValidationError("reserved IP region must not be empty")
        key = "region" if self.family == "ipv4" else "region_slug"
        reserved_ip = await self.submit(
            region, "creating reserved IP", self.client.create_reserved_ip(self.family, {key: region})
        )
        ip = reserved_ip["ip"]
        self._log.info("Created reserved IP {ip}", ip=ip)

        if vm_id:
            await self.assign(ip, vm_id)
            return await self.client.get_reserved_ip(self.family, ip)
        return reserved_ip

    async def read(self, ip: str) -> ReservedIPResponse | None:
        try:
            return await self.client.get_reserved_ip(self.family, ip)
        except NotFoundError:
            self._log.warning("Reserved IP {ip} not found", ip=ip)
            return None

    async def update(self, ip: str, prior_vm_id: str | None, vm_id: str | None) -> ReservedIPResponse:
        if prior_vm_id != vm_id:
            if vm_id:
                await self.assign(ip, vm_id)
            else:
                await self.unassign(ip)
        return await self.client.get_reserved_ip(self.family, ip)

    async def delete(self, ip: str, vm_id: str | None = None) -> None:
        if vm_id:
            try:
                await self.unassign(ip)
            except AlreadyDivergedError as e:
                self._log.debug("Couldn't unassign reserved IP {ip}, possibly out of sync: {e}", ip=ip, e=e)

        try:
            await self.client.delete_reserved_ip(self.family, ip)
        except NotFoundError:
            return
        except ApiError as e:
            raise SubmissionError(ip, "deleting reserved IP", e) from e

    # =========================================================================
    # Actions
    # =========================================================================

    async def assign(self, ip: str, vm_id: str) -> ActionResponse | None:
        self._log.info("Assigning reserved IP {ip} to vm {vm_id}", ip=ip, vm_id=vm_id)
        action = await self.submit(
            ip,
            f"assigning reserved IP to vm {vm_id}",
            self.client.reserved_ip_action(self.family, ip, {"type": "assign", "vm_id": vm_id}),
        )
        return await self.wait_action(ip, action, timeout=self.timeouts.update, pending=ASSIGN_PENDING)

    async def unassign(self, ip: str) -> ActionResponse | None:
        """Unassign the address.

        Raises:
            AlreadyDivergedError: The API rejected the unassign with 422; the
                address is not assigned to anything.
        """
        self._log.info("Unassigning reserved IP {ip}", ip=ip)
        try:
            action = await self.client.reserved_ip_action(self.family, ip, {"type": "unassign"})
        except ApiError as e:
            if e.status == 422:
                raise AlreadyDivergedError(e.status, e.message) from e
            raise SubmissionError(ip, "unassigning reserved IP", e) from e
        return await self.wait_action(ip, action, timeout=self.timeouts.update, pending=ASSIGN_PENDING)


class ReservedIPAssignmentController(ReservedIPController):
    """Assignment of an existing reserved IP to a VM as its own resource."""

    @staticmethod
    def assignment_id(ip: str, vm_id: str) -> str:
        return f"{vm_id}-{ip}"

    async def read_assignment(self, ip: str, vm_id: str) -> bool:
        reserved_ip = await self.read(ip)
        return reserved_ip is not None and assigned_vm_id(reserved_ip) == vm_id

    async def create_assignment(self, ip: str, vm_id: str) -> ReservedIPResponse:
        await self.assign(ip, vm_id)

        reserved_ip = await self.client.get_reserved_ip(self.family, ip)
        actual = assigned_vm_id(reserved_ip)
        if actual != vm_id:
            raise UnexpectedStateError(
                self.label(ip), "vm_id", vm_id, actual or "", frozenset()
            )
        return reserved_ip

    async def delete_assignment(self, ip: str, vm_id: str) -> None:
        if not await self.read_assignment(ip, vm_id):
            self._log.debug("Reserved IP {ip} no longer assigned to vm {vm_id}", ip=ip, vm_id=vm_id)
            return
        await self.unassign(ip)


__all__ = [
    "ASSIGN_PENDING",
    "ReservedIPAssignmentController",
    "ReservedIPController",
    "assigned_vm_id",
]
