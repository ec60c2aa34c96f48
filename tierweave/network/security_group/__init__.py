from tierweave.core.exceptions import InvalidRuleRange

from ._models import (
    ANYWHERE,
    MAX_PORT,
    CidrSource,
    Direction,
    PeerGroupSource,
    Permission,
    Protocol,
    SecurityGroupSpec,
    SelfSource,
    TrustRule,
    VpcCidrsSource,
)
from ._rules import (
    all_traffic_to,
    tcp,
    tcp_from_cidr,
    tcp_from_group,
    tcp_from_subnets,
    udp,
    udp_from_group,
)
from .builder import SecurityGroupBuilder, normalize_rules, render_permissions

__all__ = [
    "ANYWHERE",
    "MAX_PORT",
    "CidrSource",
    "Direction",
    "InvalidRuleRange",
    "PeerGroupSource",
    "Permission",
    "Protocol",
    "SecurityGroupBuilder",
    "SecurityGroupSpec",
    "SelfSource",
    "TrustRule",
    "VpcCidrsSource",
    "all_traffic_to",
    "normalize_rules",
    "render_permissions",
    "tcp",
    "tcp_from_cidr",
    "tcp_from_group",
    "tcp_from_subnets",
    "udp",
    "udp_from_group",
]
