from tierweave.core import DeferredValue

from ._models import (
    ANYWHERE,
    CidrSource,
    PeerGroupSource,
    Protocol,
    SelfSource,
    TrustRule,
    VpcCidrsSource,
)


def tcp(port: int, description: str = "") -> TrustRule:
    return TrustRule(
        protocol=Protocol.TCP,
        from_port=port,
        to_port=port,
        source=SelfSource(),
        description=description,
    )


def udp(port: int, description: str = "") -> TrustRule:
    return TrustRule(
        protocol=Protocol.UDP,
        from_port=port,
        to_port=port,
        source=SelfSource(),
        description=description,
    )


def tcp_from_group(
    port: int, group: DeferredValue, description: str = ""
) -> TrustRule:
    return TrustRule(
        protocol=Protocol.TCP,
        from_port=port,
        to_port=port,
        source=PeerGroupSource(group=group),
        description=description,
    )


def udp_from_group(
    port: int, group: DeferredValue, description: str = ""
) -> TrustRule:
    return TrustRule(
        protocol=Protocol.UDP,
        from_port=port,
        to_port=port,
        source=PeerGroupSource(group=group),
        description=description,
    )


def tcp_from_cidr(port: int, cidr: str, description: str = "") -> TrustRule:
    return TrustRule(
        protocol=Protocol.TCP,
        from_port=port,
        to_port=port,
        source=CidrSource(cidr=cidr),
        description=description,
    )


def tcp_from_subnets(
    port: int, cidrs: DeferredValue, description: str = ""
) -> TrustRule:
    return TrustRule(
        protocol=Protocol.TCP,
        from_port=port,
        to_port=port,
        source=VpcCidrsSource(cidrs=cidrs),
        description=description,
    )


def all_traffic_to(cidr: str = ANYWHERE) -> TrustRule:
    return TrustRule(
        protocol=Protocol.ALL,
        from_port=0,
        to_port=0,
        source=CidrSource(cidr=cidr),
    )
