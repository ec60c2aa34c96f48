from tierweave.core.exceptions import (
    CyclicOrMissingDependency,
    InvalidPolicy,
    InvalidRuleRange,
    UnresolvedDependency,
)

from ._models import TopologyConfig, TopologyOutputs, TopologyPlan
from .composer import TopologyComposer

__all__ = [
    "CyclicOrMissingDependency",
    "InvalidPolicy",
    "InvalidRuleRange",
    "TopologyComposer",
    "TopologyConfig",
    "TopologyOutputs",
    "TopologyPlan",
    "UnresolvedDependency",
]
