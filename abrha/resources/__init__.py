"""Resource controllers.

Every controller takes the AbrhaClient explicitly, plus optional
PollTimings and Timeouts:

    from abrha.resources import VmController, VmSpec

    vms = VmController(client)
    vm = await vms.create(VmSpec(name="web-1", region="fra1", size="s-1", image="ubuntu-24-04"))
"""

from .autoscale import (
    AutoscaleConfig,
    AutoscalePoolController,
    AutoscalePoolSpec,
    AutoscaleTemplate,
)
from .base import Controller, Timeouts
from .kubernetes import NodePoolController, NodePoolSpec, Taint
from .reserved_ip import ReservedIPAssignmentController, ReservedIPController
from .snapshot import SnapshotController
from .tags import TagController, set_tags
from .vm import BackupPolicy, UpdateResult, VmController, VmSpec
from .volume import VolumeAttachmentController, VolumeController, VolumeSpec

__all__ = [
    "AutoscaleConfig",
    "AutoscalePoolController",
    "AutoscalePoolSpec",
    "AutoscaleTemplate",
    "BackupPolicy",
    "Controller",
    "NodePoolController",
    "NodePoolSpec",
    "ReservedIPAssignmentController",
    "ReservedIPController",
    "SnapshotController",
    "TagController",
    "Taint",
    "Timeouts",
    "UpdateResult",
    "VmController",
    "VmSpec",
    "VolumeAttachmentController",
    "VolumeController",
    "VolumeSpec",
    "set_tags",
]
