"""Working groups known to the runtime and their per-group bindings.

Chain calls are parameterised over this fixed set of groups.  Instead of a
dynamic attribute lookup by group name, each group is mapped explicitly to
the pallet that implements it and to the balance lock its stakes are held
under.
"""
from __future__ import annotations

from enum import Enum
from typing import Dict


class WorkingGroup(str, Enum):
    """Working group names as used by the query node (``WorkingGroup.name``)."""

    STORAGE = "storageWorkingGroup"
    CONTENT = "contentWorkingGroup"
    FORUM = "forumWorkingGroup"
    MEMBERSHIP = "membershipWorkingGroup"
    OPERATIONS_ALPHA = "operationsWorkingGroupAlpha"
    GATEWAY = "gatewayWorkingGroup"
    DISTRIBUTION = "distributionWorkingGroup"
    OPERATIONS_BETA = "operationsWorkingGroupBeta"
    OPERATIONS_GAMMA = "operationsWorkingGroupGamma"

    def __str__(self) -> str:
        return self.value

    @property
    def pallet(self) -> str:
        """Runtime pallet (``call_module``) for this group."""
        return PALLET_BY_GROUP[self]

    @property
    def lock_id(self) -> str:
        """Hex-encoded balance lock identifier for stakes in this group."""
        return LOCK_ID_BY_GROUP[self]


PALLET_BY_GROUP: Dict[WorkingGroup, str] = {
    WorkingGroup.STORAGE: "StorageWorkingGroup",
    WorkingGroup.CONTENT: "ContentWorkingGroup",
    WorkingGroup.FORUM: "ForumWorkingGroup",
    WorkingGroup.MEMBERSHIP: "MembershipWorkingGroup",
    WorkingGroup.OPERATIONS_ALPHA: "OperationsWorkingGroupAlpha",
    WorkingGroup.GATEWAY: "GatewayWorkingGroup",
    WorkingGroup.DISTRIBUTION: "DistributionWorkingGroup",
    WorkingGroup.OPERATIONS_BETA: "OperationsWorkingGroupBeta",
    WorkingGroup.OPERATIONS_GAMMA: "OperationsWorkingGroupGamma",
}

# [n; 8] identifiers from the runtime configuration
LOCK_ID_BY_GROUP: Dict[WorkingGroup, str] = {
    WorkingGroup.FORUM: "0x" + "01" * 8,
    WorkingGroup.CONTENT: "0x" + "02" * 8,
    WorkingGroup.STORAGE: "0x" + "03" * 8,
    WorkingGroup.MEMBERSHIP: "0x" + "04" * 8,
    WorkingGroup.GATEWAY: "0x" + "05" * 8,
    WorkingGroup.OPERATIONS_ALPHA: "0x" + "06" * 8,
    WorkingGroup.DISTRIBUTION: "0x" + "07" * 8,
    WorkingGroup.OPERATIONS_BETA: "0x" + "08" * 8,
    WorkingGroup.OPERATIONS_GAMMA: "0x" + "09" * 8,
}

WORKING_GROUPS = list(WorkingGroup)
