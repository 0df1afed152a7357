"""VM autoscale pools.

A pool is converged only when the pool itself and every member VM are
active, so the refresh reads two levels: the pool status first and, once
that is active, each page of members.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from abrha.api.types import AutoscaleMemberResponse, AutoscalePoolResponse
from abrha.core.exceptions import ApiError, NotFoundError, SubmissionError, ValidationError
from abrha.wait import Convergence, Observation, PollTimings, wait_for_state

from .base import Controller, Timeouts
from .tags import validate_tag

CREATE_TIMINGS = PollTimings(delay=5.0, interval=15.0, min_timeout=15.0, not_found_checks=0)
DELETE_TIMINGS = PollTimings(delay=5.0, interval=5.0, min_timeout=5.0, not_found_checks=0)

POOL_ACTIVE = "active"
POOL_PROVISIONING = "provisioning"
POOL_ERROR = "error"
POOL_PRESENT = "ok"
POOL_NOT_FOUND = "not_found"


# =============================================================================
# Request Types
# =============================================================================


@dataclass(frozen=True, slots=True)
class AutoscaleConfig:
    """Scaling policy: dynamic (min/max + utilization targets) or static."""

    min_instances: int | None = None
    max_instances: int | None = None
    target_cpu_utilization: float | None = None
    target_memory_utilization: float | None = None
    cooldown_minutes: int | None = None
    target_number_instances: int | None = None

    def __post_init__(self) -> None:
        dynamic = self.min_instances is not None or self.max_instances is not None
        static = self.target_number_instances is not None
        if dynamic == static:
            raise ValidationError(
                "autoscale config needs either min_instances/max_instances "
                "or target_number_instances"
            )
        if dynamic:
            if self.min_instances is None or self.max_instances is None:
                raise ValidationError("min_instances and max_instances must be set together")
            if not 0 <= self.min_instances <= self.max_instances:
                raise ValidationError("min_instances must be between 0 and max_instances")
            if self.target_cpu_utilization is None and self.target_memory_utilization is None:
                raise ValidationError("dynamic autoscaling needs a CPU or memory utilization target")
        for name in ("target_cpu_utilization", "target_memory_utilization"):
            value = getattr(self, name)
            if value is not None and not 0 < value <= 1:
                raise ValidationError(f"{name} must be in (0, 1]: {value}")

    def to_request(self) -> dict[str, Any]:
        fields = (
            "min_instances",
            "max_instances",
            "target_cpu_utilization",
            "target_memory_utilization",
            "cooldown_minutes",
            "target_number_instances",
        )
        return {name: getattr(self, name) for name in fields if getattr(self, name) is not None}


@dataclass(frozen=True, slots=True)
class AutoscaleTemplate:
    """Template every member VM is created from."""

    size: str
    region: str
    image: str
    ssh_keys: tuple[str, ...]
    tags: frozenset[str] = field(default_factory=frozenset)
    vpc_uuid: str | None = None
    with_vm_agent: bool = False
    project_id: str | None = None
    ipv6: bool = False
    user_data: str | None = None

    def __post_init__(self) -> None:
        for name in ("size", "region", "image"):
            if not getattr(self, name):
                raise ValidationError(f"vm_template {name} must not be empty")
        if not self.ssh_keys:
            raise ValidationError("vm_template needs at least one ssh key")
        object.__setattr__(self, "ssh_keys", tuple(self.ssh_keys))
        object.__setattr__(self, "tags", frozenset(self.tags))
        for tag in self.tags:
            validate_tag(tag)

    def to_request(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "size": self.size,
            "region": self.region,
            "image": self.image,
            "ssh_keys": list(self.ssh_keys),
            "tags": sorted(self.tags),
            "with_vm_agent": self.with_vm_agent,
            "ipv6": self.ipv6,
        }
        if self.vpc_uuid:
            body["vpc_uuid"] = self.vpc_uuid
        if self.project_id:
            body["project_id"] = self.project_id
        if self.user_data:
            body["user_data"] = self.user_data
        return body


@dataclass(frozen=True, slots=True)
class AutoscalePoolSpec:
    name: str
    config: AutoscaleConfig
    vm_template: AutoscaleTemplate

    def __post_init__(self) -> None:
        if not self.name:
            raise ValidationError("autoscale pool name must not be empty")

    def to_request(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "config": self.config.to_request(),
            "vm_template": self.vm_template.to_request(),
        }


def members_state(members: list[AutoscaleMemberResponse]) -> str:
    """Status of the first member that is not active, else ``active``."""
    for member in members:
        if member.get("status") != POOL_ACTIVE:
            return member.get("status") or POOL_PROVISIONING
    return POOL_ACTIVE


# =============================================================================
# Controller
# =============================================================================


class AutoscalePoolController(Controller):
    kind = "autoscale_pool"
    default_timeouts = Timeouts(create=900.0, update=900.0, delete=60.0)
    default_timings = CREATE_TIMINGS

    def __init__(self, *args: Any, timings: PollTimings | None = None, **kwargs: Any) -> None:
        super().__init__(*args, timings=timings, **kwargs)
        self.delete_timings = timings or DELETE_TIMINGS

    async def create(self, spec: AutoscalePoolSpec) -> AutoscalePoolResponse:
        pool = await self.submit(
            spec.name, "creating autoscale pool", self.client.create_autoscale_pool(spec.to_request())
        )
        pool_id = pool["id"]
        self._log.info("Created autoscale pool {pool_id}", pool_id=pool_id)
        await self.wait_active(pool_id, self.timeouts.create)
        return await self.client.get_autoscale_pool(pool_id)

    async def read(self, pool_id: str) -> AutoscalePoolResponse | None:
        try:
            return await self.client.get_autoscale_pool(pool_id)
        except NotFoundError:
            self._log.warning("Autoscale pool {pool_id} not found", pool_id=pool_id)
            return None

    async def update(self, pool_id: str, spec: AutoscalePoolSpec) -> AutoscalePoolResponse:
        await self.submit(
            pool_id, "updating autoscale pool", self.client.update_autoscale_pool(pool_id, spec.to_request())
        )
        await self.wait_active(pool_id, self.timeouts.update)
        return await self.client.get_autoscale_pool(pool_id)

    async def delete(self, pool_id: str) -> None:
        """Delete the pool and all its member VMs, then wait until it is gone."""
        try:
            await self.client.delete_autoscale_pool_dangerous(pool_id)
        except NotFoundError:
            return
        except ApiError as e:
            raise SubmissionError(pool_id, "deleting autoscale pool", e) from e

        async def refresh() -> Observation[AutoscalePoolResponse | None]:
            try:
                pool = await self.client.get_autoscale_pool(pool_id)
            except NotFoundError:
                return Observation(None, POOL_NOT_FOUND)
            return Observation(pool, POOL_PRESENT)

        await wait_for_state(
            refresh,
            Convergence.of(
                POOL_NOT_FOUND,
                {POOL_PRESENT},
                timings=self.delete_timings,
                timeout=self.timeouts.delete,
                resource=self.label(pool_id),
                attribute="existence",
            ),
        )

    async def refresh(self, pool_id: str) -> Observation[Any]:
        """Pool status while not active; then the first non-active member status."""
        pool = await self.client.get_autoscale_pool(pool_id)
        if pool["status"] != POOL_ACTIVE:
            return Observation(pool, pool["status"])
        members = await self.client.list_autoscale_members(pool_id)
        return Observation(members, members_state(members))

    async def wait_active(self, pool_id: str, timeout: float) -> list[AutoscaleMemberResponse]:
        return await wait_for_state(
            lambda: self.refresh(pool_id),
            Convergence.of(
                POOL_ACTIVE,
                {POOL_PROVISIONING},
                timings=self.timings,
                timeout=timeout,
                resource=self.label(pool_id),
                failed={POOL_ERROR, "errored"},
            ),
        )


__all__ = [
    "AutoscaleConfig",
    "AutoscalePoolController",
    "AutoscalePoolSpec",
    "AutoscaleTemplate",
    "CREATE_TIMINGS",
    "DELETE_TIMINGS",
    "members_state",
]
