from ._models import (
    ListenerProtocol,
    ListenerSpec,
    LoadBalancerDeclaration,
    LoadBalancerSpec,
    TargetGroupSpec,
)
from .builder import LoadBalancerBuilder

__all__ = [
    "ListenerProtocol",
    "ListenerSpec",
    "LoadBalancerBuilder",
    "LoadBalancerDeclaration",
    "LoadBalancerSpec",
    "TargetGroupSpec",
]
