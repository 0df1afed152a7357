"""Abrha API response types.

TypedDicts for API responses - no conversion needed.
"""

from __future__ import annotations

from typing import NotRequired, TypedDict


class ActionResponse(TypedDict):
    """An asynchronous mutation tracked by the control plane."""

    id: int
    status: str  # in-progress | completed | errored
    type: str
    started_at: str | None
    completed_at: str | None
    resource_id: NotRequired[str | int | None]
    resource_type: NotRequired[str]
    region_slug: NotRequired[str | None]


class RegionRef(TypedDict):
    slug: str
    name: NotRequired[str]


class VmResponse(TypedDict):
    """Virtual machine."""

    id: str
    name: str
    status: str  # new | active | off | archived
    locked: bool
    memory: NotRequired[int]
    vcpus: NotRequired[int]
    disk: NotRequired[int]
    size_slug: str
    region: NotRequired[RegionRef]
    features: NotRequired[list[str]]
    tags: NotRequired[list[str]]
    volume_ids: NotRequired[list[str]]
    snapshot_ids: NotRequired[list[int]]
    backup_ids: NotRequired[list[int]]
    vpc_uuid: NotRequired[str]
    created_at: NotRequired[str]


class ActionLink(TypedDict):
    id: int
    rel: NotRequired[str]
    href: NotRequired[str]


class PageLinks(TypedDict, total=False):
    first: str
    prev: str
    next: str
    last: str


class Links(TypedDict, total=False):
    actions: list[ActionLink]
    pages: PageLinks


class VmEnvelope(TypedDict):
    """Create response: the VM plus links to the actions it started."""

    vm: VmResponse
    links: NotRequired[Links]


class VolumeResponse(TypedDict):
    """Block storage volume."""

    id: str
    name: str
    region: NotRequired[RegionRef]
    size_gigabytes: int
    description: NotRequired[str]
    vm_ids: NotRequired[list[str]]
    filesystem_type: NotRequired[str]
    filesystem_label: NotRequired[str]
    tags: NotRequired[list[str]]
    created_at: NotRequired[str]


class SnapshotResponse(TypedDict):
    """VM or volume snapshot."""

    id: str
    name: str
    created_at: str
    resource_id: NotRequired[str]
    resource_type: NotRequired[str]  # vm | volume
    regions: NotRequired[list[str]]
    min_disk_size: NotRequired[int]
    size_gigabytes: NotRequired[float]
    tags: NotRequired[list[str]]


class ReservedIPResponse(TypedDict):
    """Reserved IPv4 or IPv6 address."""

    ip: str
    region: NotRequired[RegionRef]
    vm: NotRequired[VmResponse | None]
    locked: NotRequired[bool]


class NodeStatus(TypedDict):
    state: str  # provisioning | running | draining | deleting


class NodeResponse(TypedDict):
    id: str
    name: str
    status: NodeStatus
    vm_id: NotRequired[str]


class TaintResponse(TypedDict):
    key: str
    value: str
    effect: str


class NodePoolResponse(TypedDict):
    """Kubernetes node pool."""

    id: str
    name: str
    size: str
    count: int
    tags: NotRequired[list[str]]
    labels: NotRequired[dict[str, str]]
    auto_scale: NotRequired[bool]
    min_nodes: NotRequired[int]
    max_nodes: NotRequired[int]
    taints: NotRequired[list[TaintResponse]]
    nodes: NotRequired[list[NodeResponse]]


class AutoscaleConfigResponse(TypedDict, total=False):
    min_instances: int
    max_instances: int
    target_cpu_utilization: float
    target_memory_utilization: float
    cooldown_minutes: int
    target_number_instances: int


class AutoscaleTemplateResponse(TypedDict, total=False):
    size: str
    region: str
    image: str
    tags: list[str]
    ssh_keys: list[str]
    vpc_uuid: str
    with_vm_agent: bool
    project_id: str
    ipv6: bool
    user_data: str


class AutoscalePoolResponse(TypedDict):
    """VM autoscale pool."""

    id: str
    name: str
    status: str  # provisioning | active | deleting | error
    config: AutoscaleConfigResponse
    vm_template: AutoscaleTemplateResponse
    active_resources_count: NotRequired[int]
    created_at: NotRequired[str]
    updated_at: NotRequired[str]


class AutoscaleMemberResponse(TypedDict):
    """One VM managed by an autoscale pool."""

    vm_id: str
    status: str  # provisioning | active | deleting | error
    health_status: NotRequired[str]
    unhealthy_reason: NotRequired[str]
    created_at: NotRequired[str]
    updated_at: NotRequired[str]


class TagResponse(TypedDict):
    name: str


class TaggedResource(TypedDict):
    resource_id: str
    resource_type: str  # vm | volume | volume_snapshot | image


__all__ = [
    "ActionLink",
    "ActionResponse",
    "AutoscaleConfigResponse",
    "AutoscaleMemberResponse",
    "AutoscalePoolResponse",
    "AutoscaleTemplateResponse",
    "Links",
    "NodePoolResponse",
    "NodeResponse",
    "NodeStatus",
    "PageLinks",
    "RegionRef",
    "ReservedIPResponse",
    "SnapshotResponse",
    "TagResponse",
    "TaggedResource",
    "TaintResponse",
    "VmEnvelope",
    "VmResponse",
    "VolumeResponse",
]
