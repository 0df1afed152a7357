"""Abrha API client and response types."""

from .client import AbrhaClient, IPFamily
from .types import (
    ActionResponse,
    AutoscaleMemberResponse,
    AutoscalePoolResponse,
    NodePoolResponse,
    ReservedIPResponse,
    SnapshotResponse,
    VmResponse,
    VolumeResponse,
)

__all__ = [
    "AbrhaClient",
    "ActionResponse",
    "AutoscaleMemberResponse",
    "AutoscalePoolResponse",
    "IPFamily",
    "NodePoolResponse",
    "ReservedIPResponse",
    "SnapshotResponse",
    "VmResponse",
    "VolumeResponse",
]
