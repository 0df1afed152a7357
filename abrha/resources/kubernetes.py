"""Kubernetes node pools."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from abrha.api.types import NodePoolResponse
from abrha.core.exceptions import ApiError, NotFoundError, SubmissionError, ValidationError
from abrha.wait import Convergence, Observation, PollTimings, wait_for_state

from .base import Controller, Timeouts

NODE_POOL_TIMINGS = PollTimings(delay=10.0, interval=10.0, min_timeout=3.0, not_found_checks=0)

POOL_RUNNING = "running"
POOL_PROVISIONING = "provisioning"
POOL_DELETING = "deleting"
POOL_DELETED = "deleted"

type TaintEffect = Literal["NoSchedule", "PreferNoSchedule", "NoExecute"]


@dataclass(frozen=True, slots=True)
class Taint:
    key: str
    value: str
    effect: TaintEffect

    def __post_init__(self) -> None:
        if not self.key:
            raise ValidationError("taint key must not be empty")
        if self.effect not in ("NoSchedule", "PreferNoSchedule", "NoExecute"):
            raise ValidationError(f"invalid taint effect: {self.effect!r}")

    def to_request(self) -> dict[str, str]:
        return {"key": self.key, "value": self.value, "effect": self.effect}


@dataclass(frozen=True, slots=True)
class NodePoolSpec:
    """Declared node pool configuration.

    Either a fixed ``node_count`` or ``auto_scale`` with min/max nodes.
    """

    name: str
    size: str
    node_count: int | None = None
    auto_scale: bool = False
    min_nodes: int | None = None
    max_nodes: int | None = None
    tags: frozenset[str] = field(default_factory=frozenset)
    labels: Mapping[str, str] = field(default_factory=dict)
    taints: tuple[Taint, ...] = ()

    def __post_init__(self) -> None:
        if not self.name or not self.size:
            raise ValidationError("node pool name and size must not be empty")
        if self.node_count is not None and self.node_count < 0:
            raise ValidationError(f"node_count must be >= 0: {self.node_count}")
        if self.auto_scale:
            if self.min_nodes is None or self.max_nodes is None:
                raise ValidationError("auto_scale requires min_nodes and max_nodes")
            if self.min_nodes > self.max_nodes:
                raise ValidationError("min_nodes must not exceed max_nodes")
        elif self.node_count is None:
            raise ValidationError("node_count is required unless auto_scale is enabled")
        object.__setattr__(self, "tags", frozenset(self.tags))
        object.__setattr__(self, "taints", tuple(self.taints))

    def to_request(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "name": self.name,
            "size": self.size,
            "tags": sorted(self.tags),
            "labels": dict(self.labels),
            "auto_scale": self.auto_scale,
            "taints": [t.to_request() for t in self.taints],
        }
        if self.node_count is not None:
            body["count"] = self.node_count
        if self.auto_scale:
            body["min_nodes"] = self.min_nodes
            body["max_nodes"] = self.max_nodes
        return body


def pool_state(pool: NodePoolResponse) -> str:
    """``running`` once every node runs and the node count matches the pool."""
    nodes = pool.get("nodes") or []
    if len(nodes) == pool.get("count", 0) and all(
        n.get("status", {}).get("state") == POOL_RUNNING for n in nodes
    ):
        return POOL_RUNNING
    return POOL_PROVISIONING


class NodePoolController(Controller):
    kind = "node_pool"
    default_timeouts = Timeouts(create=1800.0, update=1800.0, delete=1800.0)
    default_timings = NODE_POOL_TIMINGS

    def label(self, resource_id: str) -> str:
        return f"node pool ({resource_id})"

    async def create(self, cluster_id: str, spec: NodePoolSpec) -> NodePoolResponse:
        pool = await self.submit(
            spec.name, "creating node pool", self.client.create_node_pool(cluster_id, spec.to_request())
        )
        self._log.info("Created node pool {pool_id}", pool_id=pool["id"])
        return await self.wait_running(cluster_id, pool["id"], self.timeouts.create)

    async def read(self, cluster_id: str, pool_id: str) -> NodePoolResponse | None:
        try:
            return await self.client.get_node_pool(cluster_id, pool_id)
        except NotFoundError:
            self._log.warning("Node pool {pool_id} not found", pool_id=pool_id)
            return None

    async def update(self, cluster_id: str, pool_id: str, spec: NodePoolSpec) -> NodePoolResponse:
        await self.submit(
            pool_id, "updating node pool", self.client.update_node_pool(cluster_id, pool_id, spec.to_request())
        )
        return await self.wait_running(cluster_id, pool_id, self.timeouts.update)

    async def delete(self, cluster_id: str, pool_id: str) -> None:
        try:
            await self.client.delete_node_pool(cluster_id, pool_id)
        except NotFoundError:
            return
        except ApiError as e:
            raise SubmissionError(pool_id, "deleting node pool", e) from e

        async def refresh() -> Observation[NodePoolResponse | None]:
            try:
                pool = await self.client.get_node_pool(cluster_id, pool_id)
            except NotFoundError:
                return Observation(None, POOL_DELETED)
            return Observation(pool, POOL_DELETING)

        await wait_for_state(
            refresh,
            Convergence.of(
                POOL_DELETED,
                {POOL_DELETING},
                timings=self.timings,
                timeout=self.timeouts.delete,
                resource=self.label(pool_id),
                attribute="existence",
            ),
        )

    async def wait_running(self, cluster_id: str, pool_id: str, timeout: float) -> NodePoolResponse:
        async def refresh() -> Observation[NodePoolResponse]:
            pool = await self.client.get_node_pool(cluster_id, pool_id)
            return Observation(pool, pool_state(pool))

        return await wait_for_state(
            refresh,
            Convergence.of(
                POOL_RUNNING,
                {POOL_PROVISIONING},
                timings=self.timings,
                timeout=timeout,
                resource=self.label(pool_id),
                attribute="nodes",
            ),
        )


__all__ = [
    "NODE_POOL_TIMINGS",
    "NodePoolController",
    "NodePoolSpec",
    "Taint",
    "pool_state",
]
