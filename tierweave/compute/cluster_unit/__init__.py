from tierweave.core.exceptions import (
    BadRequestError,
    InvalidPolicy,
    PreconditionFailedError,
)

from ._models import (
    DEFAULT_PEERS,
    UNIT_ORDER,
    BootstrapInputs,
    BuildContext,
    ClusterUnitSpec,
    Placement,
    ScalingInputs,
    SecurityPosture,
    UnitDeclaration,
    UnitKind,
    UnitOutputs,
    UnitState,
)
from .component import ClusterUnit

__all__ = [
    "DEFAULT_PEERS",
    "UNIT_ORDER",
    "BadRequestError",
    "BootstrapInputs",
    "BuildContext",
    "ClusterUnit",
    "ClusterUnitSpec",
    "InvalidPolicy",
    "Placement",
    "PreconditionFailedError",
    "ScalingInputs",
    "SecurityPosture",
    "UnitDeclaration",
    "UnitKind",
    "UnitOutputs",
    "UnitState",
]
