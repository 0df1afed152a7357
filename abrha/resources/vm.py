"""Virtual machine controller.

Create, read, update and delete VMs. Updates run strictly in sequence:
resize (with power-on rollback), rename, backups, backup policy, private
networking, IPv6, tags and finally attached volumes.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Literal

from abrha.api.types import ActionResponse, VmResponse
from abrha.core.exceptions import (
    ApiError,
    NotFoundError,
    RollbackError,
    SubmissionError,
    ValidationError,
)
from abrha.wait import Convergence, Observation, wait_for_state

from .base import Controller, Timeouts
from .tags import set_tags, validate_tag

RESOURCE_TYPE = "vm"
FEATURE_ATTRIBUTES = frozenset({"backups", "ipv6", "private_networking", "monitoring"})
BACKUP_POLICY_ERROR = "backup_policy can only be set when backups are enabled"
IPV6_WARNING = (
    "Enabling IPv6 requires additional OS-level configuration: when enabling "
    "IPv6 on an existing vm, the guest must be configured to use it."
)

_ALREADY_POWERED_OFF = "vm is already powered off"
_WEEKDAYS = frozenset({"SUN", "MON", "TUE", "WED", "THU", "FRI", "SAT"})


# =============================================================================
# Request Types
# =============================================================================


@dataclass(frozen=True, slots=True)
class BackupPolicy:
    """Backup schedule.

    Args:
        plan: daily, weekly or monthly.
        weekday: Day of the week for weekly backups (SUN..SAT).
        monthday: Day of the month for monthly backups (1-28).
        hour: Start hour of the backup window (0-20).
    """

    plan: Literal["daily", "weekly", "monthly"] = "daily"
    weekday: str | None = None
    monthday: int | None = None
    hour: int | None = None

    def __post_init__(self) -> None:
        if self.plan not in ("daily", "weekly", "monthly"):
            raise ValidationError(f"invalid backup plan: {self.plan!r}")
        if self.weekday is not None and self.weekday not in _WEEKDAYS:
            raise ValidationError(f"invalid backup weekday: {self.weekday!r}")
        if self.monthday is not None and not 1 <= self.monthday <= 28:
            raise ValidationError(f"backup monthday must be between 1 and 28: {self.monthday}")
        if self.hour is not None and not 0 <= self.hour <= 20:
            raise ValidationError(f"backup hour must be between 0 and 20: {self.hour}")

    def to_request(self) -> dict[str, Any]:
        policy: dict[str, Any] = {
            "plan": self.plan,
            "weekday": self.weekday or "",
            "monthday": self.monthday or 0,
        }
        if self.hour is not None:
            policy["hour"] = self.hour
        return policy


@dataclass(frozen=True, slots=True)
class VmSpec:
    """Declared VM configuration."""

    name: str
    region: str
    size: str
    image: str
    ssh_keys: tuple[str, ...] = ()
    backups: bool = False
    backup_policy: BackupPolicy | None = None
    ipv6: bool = False
    private_networking: bool = False
    monitoring: bool = False
    user_data: str | None = None
    volume_ids: frozenset[str] = field(default_factory=frozenset)
    tags: frozenset[str] = field(default_factory=frozenset)
    vpc_uuid: str | None = None
    vm_agent: bool | None = None
    resize_disk: bool = True
    graceful_shutdown: bool = False

    def __post_init__(self) -> None:
        for name in ("name", "region", "size", "image"):
            if not getattr(self, name):
                raise ValidationError(f"vm {name} must not be empty")
        object.__setattr__(self, "volume_ids", frozenset(v for v in self.volume_ids if v))
        object.__setattr__(self, "tags", frozenset(self.tags))
        for tag in self.tags:
            validate_tag(tag)

    def check_backup_policy(self) -> None:
        if self.backup_policy is not None and not self.backups:
            raise ValidationError(BACKUP_POLICY_ERROR)

    def to_request(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "name": self.name,
            "region": self.region,
            "size": self.size,
            "image": int(self.image) if self.image.isdigit() else self.image,
            "ssh_keys": list(self.ssh_keys),
            "backups": self.backups,
            "ipv6": self.ipv6,
            "private_networking": self.private_networking,
            "monitoring": self.monitoring,
            "tags": sorted(self.tags),
        }
        if self.user_data:
            body["user_data"] = self.user_data
        if self.volume_ids:
            body["volumes"] = sorted(self.volume_ids)
        if self.vpc_uuid:
            body["vpc_uuid"] = self.vpc_uuid
        if self.vm_agent is not None:
            body["with_vm_agent"] = self.vm_agent
        if self.backup_policy is not None:
            body["backup_policy"] = self.backup_policy.to_request()
        return body


@dataclass(frozen=True, slots=True)
class UpdateResult:
    vm: VmResponse
    warnings: tuple[str, ...] = ()


def vm_attribute(vm: VmResponse, attribute: str) -> str:
    """Render one VM attribute the way convergence compares it."""
    if attribute in FEATURE_ATTRIBUTES:
        value: Any = attribute in (vm.get("features") or [])
    else:
        value = vm.get(attribute)
    match value:
        case bool():
            return "true" if value else "false"
        case None:
            return ""
        case _:
            return str(value)


# =============================================================================
# Controller
# =============================================================================


class VmController(Controller):
    kind = "vm"
    default_timeouts = Timeouts(create=3600.0, update=3600.0, delete=60.0)

    async def create(self, spec: VmSpec) -> VmResponse:
        spec.check_backup_policy()

        envelope = await self.submit(spec.name, "creating vm", self.client.create_vm(spec.to_request()))
        vm_id = str(envelope["vm"]["id"])
        self._log.info("Created vm {vm_id}", vm_id=vm_id)

        actions = (envelope.get("links") or {}).get("actions") or []
        if actions:
            action = await self.submit(vm_id, "reading create action", self.client.get_action(actions[0]["id"]))
            await self.wait_action(vm_id, action, timeout=self.timeouts.create)

        return await self.wait_for_attribute(vm_id, "active", {"new"}, "status", self.timeouts.create)

    async def read(self, vm_id: str) -> VmResponse | None:
        try:
            return await self.client.get_vm(vm_id)
        except NotFoundError:
            self._log.warning("Vm {vm_id} not found", vm_id=vm_id)
            return None

    async def update(self, vm_id: str, prior: VmSpec, desired: VmSpec) -> UpdateResult:
        desired.check_backup_policy()
        warnings: list[str] = []
        timeout = self.timeouts.update

        if prior.size != desired.size:
            await self.resize(vm_id, desired.size, resize_disk=desired.resize_disk)

        if prior.name != desired.name:
            await self.submit(vm_id, "renaming vm", self.client.vm_action(vm_id, {"type": "rename", "name": desired.name}))
            await self.wait_for_attribute(vm_id, desired.name, {"", prior.name}, "name", timeout)

        if prior.backups != desired.backups:
            if desired.backups:
                body: dict[str, Any] = {"type": "enable_backups"}
                if desired.backup_policy is not None:
                    body["backup_policy"] = desired.backup_policy.to_request()
                action = await self.submit(vm_id, "enabling backups", self.client.vm_action(vm_id, body))
            else:
                action = await self.submit(
                    vm_id, "disabling backups", self.client.vm_action(vm_id, {"type": "disable_backups"})
                )
            await self.wait_action(vm_id, action, timeout=timeout)
        elif prior.backup_policy != desired.backup_policy and desired.backup_policy is not None:
            action = await self.submit(
                vm_id,
                "changing backup policy",
                self.client.vm_action(
                    vm_id,
                    {"type": "change_backup_policy", "backup_policy": desired.backup_policy.to_request()},
                ),
            )
            await self.wait_action(vm_id, action, timeout=timeout)

        # Private networking and IPv6 cannot be disabled once on.
        if desired.private_networking and not prior.private_networking:
            await self.submit(
                vm_id,
                "enabling private networking",
                self.client.vm_action(vm_id, {"type": "enable_private_networking"}),
            )
            await self.wait_for_attribute(vm_id, "true", {"", "false"}, "private_networking", timeout)

        if desired.ipv6 and not prior.ipv6:
            await self.submit(vm_id, "enabling ipv6", self.client.vm_action(vm_id, {"type": "enable_ipv6"}))
            await self.wait_for_attribute(vm_id, "true", {"", "false"}, "ipv6", timeout)
            warnings.append(IPV6_WARNING)

        if prior.tags != desired.tags:
            await set_tags(self.client, vm_id, RESOURCE_TYPE, prior.tags, desired.tags)

        if prior.volume_ids != desired.volume_ids:
            await self.converge_volumes(vm_id, prior.volume_ids, desired.volume_ids)

        vm = await self.client.get_vm(vm_id)
        return UpdateResult(vm=vm, warnings=tuple(warnings))

    async def delete(
        self,
        vm_id: str,
        *,
        graceful_shutdown: bool = False,
        volume_ids: Iterable[str] = (),
    ) -> None:
        timeout = self.timeouts.delete

        if await self.read(vm_id) is None:
            return

        await self.wait_for_attribute(vm_id, "false", {"", "true"}, "locked", timeout)

        if graceful_shutdown:
            self._log.info("Shutting down vm {vm_id}", vm_id=vm_id)
            await self.submit(vm_id, "shutting down vm", self.client.vm_action(vm_id, {"type": "shutdown"}))
            await self.wait_for_attribute(vm_id, "off", {"active"}, "status", timeout)

        for volume_id in sorted(set(volume_ids)):
            await self.detach_volume(vm_id, volume_id)

        self._log.info("Deleting vm {vm_id}", vm_id=vm_id)
        try:
            await self.client.delete_vm(vm_id)
        except NotFoundError:
            return
        except ApiError as e:
            raise SubmissionError(vm_id, "deleting vm", e) from e

        await self._wait_destroyed(vm_id, timeout)

    # =========================================================================
    # Composite Steps
    # =========================================================================

    async def resize(self, vm_id: str, size: str, *, resize_disk: bool = True) -> None:
        """Power off, resize, power on.

        Any failure of the resize submission or its action, transport errors
        included, powers the VM back on before the original error is raised.
        If that also fails, RollbackError carries both.
        """
        timeout = self.timeouts.update

        try:
            await self.submit(vm_id, "powering off vm", self.client.vm_action(vm_id, {"type": "power_off"}))
        except SubmissionError as e:
            if not (isinstance(e.cause, ApiError) and _ALREADY_POWERED_OFF in e.cause.message.lower()):
                raise
            self._log.debug("Vm {vm_id} already powered off", vm_id=vm_id)

        await self.wait_for_attribute(vm_id, "off", {"active"}, "status", timeout)

        try:
            action = await self.submit(
                vm_id,
                "resizing vm",
                self.client.vm_action(vm_id, {"type": "resize", "size": size, "disk": resize_disk}),
            )
            await self.wait_action(vm_id, action, timeout=timeout)
        except Exception as original:
            self._log.warning("Resize of vm {vm_id} failed, powering it back on", vm_id=vm_id)
            try:
                await self.power_on(vm_id)
            except Exception as rollback:
                raise RollbackError(vm_id, original, rollback) from original
            raise

        await self.power_on(vm_id)

    async def power_on(self, vm_id: str) -> None:
        await self.submit(vm_id, "powering on vm", self.client.vm_action(vm_id, {"type": "power_on"}))
        await self.wait_for_attribute(vm_id, "active", {"off"}, "status", self.timeouts.update)

    async def converge_volumes(self, vm_id: str, old: Iterable[str], new: Iterable[str]) -> None:
        """Attach added volumes, then detach removed ones, one at a time."""
        old_set, new_set = set(old), set(new)
        for volume_id in sorted(new_set - old_set):
            await self.attach_volume(vm_id, volume_id)
        for volume_id in sorted(old_set - new_set):
            await self.detach_volume(vm_id, volume_id)

    async def attach_volume(self, vm_id: str, volume_id: str) -> ActionResponse | None:
        action = await self.submit(
            vm_id,
            f"attaching volume {volume_id}",
            self.client.volume_action(volume_id, {"type": "attach", "vm_id": vm_id}),
        )
        return await self.wait_action(vm_id, action)

    async def detach_volume(self, vm_id: str, volume_id: str) -> ActionResponse | None:
        action = await self.submit(
            vm_id,
            f"detaching volume {volume_id}",
            self.client.volume_action(volume_id, {"type": "detach", "vm_id": vm_id}),
        )
        return await self.wait_action(vm_id, action)

    # =========================================================================
    # Convergence
    # =========================================================================

    async def wait_for_attribute(
        self,
        vm_id: str,
        target: str,
        pending: set[str],
        attribute: str,
        timeout: float,
    ) -> VmResponse:
        """Wait for one VM attribute to reach ``target``.

        Locked VMs are skipped unless ``locked`` itself is awaited.
        """

        async def refresh() -> Observation[VmResponse]:
            vm = await self.client.get_vm(vm_id)
            locked = attribute != "locked" and bool(vm.get("locked"))
            return Observation(vm, vm_attribute(vm, attribute), locked=locked)

        return await wait_for_state(
            refresh,
            Convergence.of(
                target,
                pending,
                timings=self.timings,
                timeout=timeout,
                resource=self.label(vm_id),
                attribute=attribute,
            ),
        )

    async def _wait_destroyed(self, vm_id: str, timeout: float) -> None:
        async def refresh() -> Observation[VmResponse | None]:
            try:
                vm = await self.client.get_vm(vm_id)
            except NotFoundError:
                return Observation(None, "archived")
            return Observation(vm, vm_attribute(vm, "status"))

        await wait_for_state(
            refresh,
            Convergence.of(
                "archived",
                {"active", "off"},
                timings=self.timings,
                timeout=timeout,
                resource=self.label(vm_id),
            ),
        )


__all__ = [
    "BackupPolicy",
    "UpdateResult",
    "VmController",
    "VmSpec",
    "vm_attribute",
]
