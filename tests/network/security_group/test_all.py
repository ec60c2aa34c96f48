# type: ignore
import pytest
from pydantic import ValidationError

from tierweave.core import DeferredValue
from tierweave.core.exceptions import (
    BadRequestError,
    CyclicOrMissingDependency,
    UnresolvedDependency,
)
from tierweave.network.security_group import (
    ANYWHERE,
    CidrSource,
    InvalidRuleRange,
    Permission,
    Protocol,
    SecurityGroupBuilder,
    TrustRule,
    all_traffic_to,
    normalize_rules,
    tcp,
    tcp_from_cidr,
    tcp_from_group,
    tcp_from_subnets,
    udp,
)

from .._helper import get_graph


@pytest.mark.parametrize(
    "from_port,to_port",
    [(100, 50), (-1, 22), (22, 65536), (-5, -1)],
)
def test_invalid_rule_range(from_port: int, to_port: int):
    with pytest.raises(InvalidRuleRange):
        TrustRule(protocol="tcp", from_port=from_port, to_port=to_port)


def test_invalid_range_fails_before_any_group():
    graph = get_graph()
    with pytest.raises(InvalidRuleRange):
        SecurityGroupBuilder(graph).build(
            name="app-sg",
            vpc_id="vpc-1",
            ingress=[tcp(22), TrustRule(from_port=100, to_port=50)],
        )
    assert graph.nodes == []


def test_rule_parsing():
    rule = TrustRule.from_dict(
        {
            "protocol": "ALL",
            "from_port": 10,
            "to_port": 20,
            "source": {"kind": "cidr", "cidr": "10.0.0.7/16"},
        }
    )
    assert rule.protocol == Protocol.ALL
    assert (rule.from_port, rule.to_port) == (0, 0)
    assert rule.source == CidrSource(cidr="10.0.0.0/16")
    assert TrustRule(from_port=22, to_port=22).source.kind == "self"
    with pytest.raises(ValidationError):
        TrustRule.from_dict(
            {
                "from_port": 22,
                "to_port": 22,
                "source": {"kind": "cidr", "cidr": "not-a-cidr"},
            }
        )


def test_duplicates_are_idempotent():
    group = DeferredValue.of("sg-peer")
    rules = normalize_rules(
        [
            tcp(8301, "serf lan"),
            tcp_from_group(8300, group),
            tcp(8301, "again"),
            tcp_from_group(8300, group, "again"),
            udp(8301),
        ]
    )
    assert len(rules) == 3
    gossip = [r for r in rules if r.key() == tcp(8301).key()]
    assert [r.description for r in gossip] == ["serf lan"]


def test_rule_order_does_not_matter():
    group = DeferredValue.of("sg-peer")
    rules = [
        tcp(8500),
        tcp_from_cidr(22, "10.0.0.0/8"),
        udp(8600),
        tcp_from_group(4646, group),
        all_traffic_to(),
    ]
    assert normalize_rules(rules) == normalize_rules(reversed(rules))


@pytest.mark.asyncio
async def test_build_and_materialize():
    graph = get_graph()
    builder = SecurityGroupBuilder(graph)
    clients = builder.build(
        name="consul-clients-sg",
        vpc_id="vpc-1",
        ingress=[tcp(8301), udp(8301)],
    )
    servers = builder.build(
        name="consul-sg",
        vpc_id="vpc-1",
        ingress=[
            tcp(8300),
            tcp_from_group(8300, clients.id),
            tcp_from_group(8500, clients.id),
        ],
        egress=[all_traffic_to()],
    )
    assert graph.get("consul-sg").depends == [graph.get("consul-clients-sg")]

    await graph.amaterialize()
    client_id = await clients.id.resolve()
    assert graph.materialized.index("consul-clients-sg") < (
        graph.materialized.index("consul-sg")
    )

    ingress = await servers.ingress_permissions.resolve()
    assert ingress == [
        Permission(
            protocol="tcp", from_port=8300, to_port=8300, group_ids=[client_id]
        ),
        Permission(
            protocol="tcp", from_port=8300, to_port=8300, self_ref=True
        ),
        Permission(
            protocol="tcp", from_port=8500, to_port=8500, group_ids=[client_id]
        ),
    ]
    egress = await servers.egress_permissions.resolve()
    assert egress == [
        Permission(
            protocol="-1", from_port=0, to_port=0, cidr_blocks=[ANYWHERE]
        )
    ]
    item = graph.get("consul-sg").item
    assert item.properties["ingress"] == ingress
    assert item.properties["vpc_id"] == "vpc-1"


@pytest.mark.asyncio
async def test_self_rules_from_two_units_produce_one_permission():
    discovery_rules = [tcp(8301, "discovery gossip")]
    orchestrator_rules = [tcp(8301, "orchestrator gossip"), tcp(4648)]
    graph = get_graph()
    group = SecurityGroupBuilder(graph).build(
        name="shared-sg",
        vpc_id="vpc-1",
        ingress=[*discovery_rules, *orchestrator_rules],
    )
    await graph.amaterialize()
    permissions = await group.ingress_permissions.resolve()
    assert [(p.from_port, p.self_ref) for p in permissions] == [
        (4648, True),
        (8301, True),
    ]


def test_peer_group_must_be_declared_first():
    graph = get_graph()
    other = get_graph()
    foreign = SecurityGroupBuilder(other).build(name="peer-sg", vpc_id="vpc-1")
    with pytest.raises(CyclicOrMissingDependency):
        SecurityGroupBuilder(graph).build(
            name="app-sg",
            vpc_id="vpc-1",
            ingress=[tcp_from_group(80, foreign.id)],
        )


@pytest.mark.asyncio
async def test_vpc_cidrs_are_deferred():
    calls = []

    async def lookup():
        calls.append(1)
        return ["10.0.11.0/24", "10.0.10.0/24", "10.0.10.0/24"]

    cidrs = DeferredValue(lookup, name="cidrs")
    graph = get_graph()
    group = SecurityGroupBuilder(graph).build(
        name="vault-sg",
        vpc_id="vpc-1",
        ingress=[tcp_from_subnets(8200, cidrs), tcp(8200)],
    )
    assert not group.ingress_permissions.is_resolved
    assert calls == []

    await graph.amaterialize()
    permissions = await group.ingress_permissions.resolve()
    assert permissions[0].cidr_blocks == ["10.0.10.0/24", "10.0.11.0/24"]
    assert calls == [1]


@pytest.mark.asyncio
async def test_failed_cidr_lookup_defers_group_forever():
    async def lookup():
        raise BadRequestError("subnet lookup failed")

    graph = get_graph()
    group = SecurityGroupBuilder(graph).build(
        name="vault-sg",
        vpc_id="vpc-1",
        ingress=[tcp_from_subnets(8200, DeferredValue(lookup))],
    )
    with pytest.raises(UnresolvedDependency):
        await graph.amaterialize()
    assert graph.get("vault-sg").item is None
    assert group.id.is_failed


def test_to_ip_permission():
    permission = Permission(
        protocol="tcp",
        from_port=22,
        to_port=22,
        self_ref=True,
        group_ids=["sg-peer"],
        cidr_blocks=["10.0.0.0/8"],
        description="ssh",
    )
    assert permission.to_ip_permission("sg-own") == {
        "IpProtocol": "tcp",
        "FromPort": 22,
        "ToPort": 22,
        "UserIdGroupPairs": [
            {"GroupId": "sg-peer", "Description": "ssh"},
            {"GroupId": "sg-own", "Description": "ssh"},
        ],
        "IpRanges": [{"CidrIp": "10.0.0.0/8", "Description": "ssh"}],
    }
    with pytest.raises(BadRequestError):
        permission.to_ip_permission()
