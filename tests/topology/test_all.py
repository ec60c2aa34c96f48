# type: ignore
import pytest
from common.data import ACCOUNT_ID, REGION, local_parameters, network
from common.data import standard_units as units

from tierweave.cloud import Cloud, CloudConfig, ImageSelector
from tierweave.cloud.providers.local import Local
from tierweave.compute.cluster_unit import UnitDeclaration
from tierweave.core.exceptions import ConflictError
from tierweave.network.security_group import InvalidRuleRange
from tierweave.topology import (
    CyclicOrMissingDependency,
    TopologyComposer,
    TopologyConfig,
    UnresolvedDependency,
)

from ._data import config_yaml, invalid_rule_yaml
from ._sync_and_async_client import TopologySyncAndAsyncClient


def get_composer(units=units, **kwargs) -> TopologyComposer:
    return TopologyComposer(
        units=units,
        config=CloudConfig(
            provider="local",
            region=REGION,
            account_id=ACCOUNT_ID,
            parameters=local_parameters,
        ),
        network=network,
        **kwargs,
    )


def get_client(async_call: bool, **kwargs) -> TopologySyncAndAsyncClient:
    return TopologySyncAndAsyncClient(
        client=get_composer(**kwargs), async_call=async_call
    )


@pytest.mark.asyncio
@pytest.mark.parametrize("async_call", [False, True])
async def test_compose_full_topology(async_call: bool):
    client = get_client(async_call)
    outputs = await client.compose()

    assert outputs.ingress_dns_name
    assert outputs.ingress_dns_name.endswith(f".{REGION}.elb.amazonaws.com")
    assert outputs.entry_address.startswith("203.0.113.")
    flat = outputs.to_flat()
    pool_names = [key for key in flat if key.endswith(".poolName")]
    assert len(pool_names) == 5
    assert sorted(key for key in flat if key.endswith(".roleId")) == sorted(
        f"{unit['name']}.roleId" for unit in units
    )
    for key, value in flat.items():
        assert isinstance(value, str) and value, key
    assert flat["vault.roleId"].startswith(f"arn:aws:iam::{ACCOUNT_ID}:role/")
    assert flat["consul.poolName"].startswith("consul-asg-")


@pytest.mark.asyncio
@pytest.mark.parametrize("async_call", [False, True])
async def test_compose_without_load_balancer(async_call: bool):
    declarations = [
        {k: v for k, v in unit.items() if k != "load_balancer"}
        for unit in units
    ]
    client = get_client(async_call, units=declarations)
    plan = await client.plan()
    assert plan.outputs.ingress_dns_name == ""
    assert plan.outputs.to_flat()["ingressDnsName"] == ""
    assert plan.resources_of("target_group") == []
    assert plan.resources_of("load_balancer") == []
    assert plan.get("nomad-client.asg").properties["target_group_arns"] == []


@pytest.mark.asyncio
async def test_outputs_shape_is_deterministic():
    first = (await get_composer().acompose()).to_flat()
    second = (await get_composer(units=list(reversed(units))).acompose())
    assert list(first.keys()) == list(second.to_flat().keys())
    assert first == second.to_flat()


def test_order():
    composer = get_composer(units=list(reversed(units)))
    assert [unit.kind.value for unit in composer.order()] == [
        "access",
        "discovery",
        "secret_store",
        "orchestrator_server",
        "orchestrator_client",
    ]
    duplicate = get_composer(units=[*units, units[0]])
    with pytest.raises(ConflictError):
        duplicate.order()


@pytest.mark.asyncio
async def test_plan_records_dependency_order():
    plan = await get_composer().aplan()
    position = {name: index for index, name in enumerate(plan.order)}
    assert len(position) == len(plan.resources)
    declared = [item.name for item in plan.resources]

    for item in plan.resources:
        for dependency in item.depends:
            assert position[dependency] < position[item.name]
            assert declared.index(dependency) < declared.index(item.name)

    groups = {item.id: item for item in plan.resources_of("security_group")}
    for item in groups.values():
        for permission in item.properties["ingress"]:
            for peer_id in permission.group_ids:
                peer = groups[peer_id]
                assert declared.index(peer.name) < declared.index(item.name)
                assert position[peer.name] < position[item.name]

    for spec in plan.units:
        assert spec.min_size == spec.max_size == spec.desired_capacity
        pool = plan.get(f"{spec.name}.asg")
        assert pool.properties["min_size"] == spec.size
        assert pool.properties["max_size"] == spec.size
        assert pool.properties["desired_capacity"] == spec.size
    assert set(plan.bootstrap) == {unit["name"] for unit in units}
    assert "--num-servers 3" in plan.bootstrap["nomad-server"]
    assert plan.summary()["autoscaling_group"] == 5


@pytest.mark.asyncio
async def test_client_peers_join_shared_groups():
    plan = await get_composer().aplan()
    launch = plan.get("nomad-client.lc")
    shared = [
        plan.get(name).id
        for name in [
            "bastion.ssh-sg",
            "consul.clients-sg",
            "nomad-server.clients-sg",
        ]
    ]
    assert launch.properties["security_groups"] == [
        plan.get("nomad-client.sg").id,
        *shared,
        plan.get("nomad-client.lb-targets").id,
    ]
    for name in ["consul.asg", "vault.asg", "nomad-server.asg"]:
        assert plan.get(name).properties["vpc_zone_identifier"] == (
            network.private_subnet_ids
        )


@pytest.mark.asyncio
@pytest.mark.parametrize("async_call", [False, True])
async def test_unit_names_sharing_a_prefix(async_call: bool):
    declarations = [
        {"name": "consul", "kind": "discovery", "size": 3},
        {"name": "consul-clients", "kind": "orchestrator_client"},
        {
            "name": "web",
            "kind": "orchestrator_client",
            "load_balancer": {"listeners": [{"port": 80}]},
        },
        {"name": "web-lb", "kind": "orchestrator_client"},
    ]
    client = get_client(async_call, units=declarations)
    plan = await client.plan()

    names = [item.name for item in plan.resources]
    assert len(names) == len(set(names))
    assert plan.get("consul.clients-sg").id != plan.get("consul-clients.sg").id
    assert plan.get("web.lb-sg").id != plan.get("web-lb.sg").id
    assert set(plan.outputs.pool_names) == {
        "consul",
        "consul-clients",
        "web",
        "web-lb",
    }
    assert plan.outputs.ingress_dns_name


def test_forward_reference():
    declarations = [
        {**unit, "peers": ["nomad-server"]}
        if unit["name"] == "consul"
        else unit
        for unit in units
    ]
    with pytest.raises(CyclicOrMissingDependency):
        get_composer(units=declarations).declare()


@pytest.mark.parametrize("peers", [["missing"], ["consul"]])
def test_unknown_or_self_reference(peers):
    declarations = [
        {**unit, "peers": peers} if unit["name"] == "consul" else unit
        for unit in units
    ]
    with pytest.raises(CyclicOrMissingDependency):
        get_composer(units=declarations).declare()


def test_explicit_peers():
    declarations = [
        {**unit, "peers": ["bastion"]}
        if unit["name"] == "nomad-client"
        else unit
        for unit in units
    ]
    graph, built = get_composer(units=declarations).declare()
    client = built[-1]
    assert client.name == "nomad-client"
    assert client.posture.peer_groups == [
        built[0].outputs.shared_groups["ssh"]
    ]
    assert all(not node.id.is_resolved for node in graph.nodes)


@pytest.mark.asyncio
@pytest.mark.parametrize("async_call", [False, True])
async def test_failed_lookup_aborts_composition(async_call: bool):
    declarations = [
        {
            **unit,
            "image": ImageSelector(owners=["self"], name_regex="missing-.*"),
        }
        if unit["name"] == "vault"
        else unit
        for unit in units
    ]
    client = get_client(async_call, units=declarations)
    with pytest.raises(UnresolvedDependency):
        await client.compose()


@pytest.mark.asyncio
async def test_custom_cloud():
    cloud = Cloud(__provider__=Local(**local_parameters))
    composer = TopologyComposer(
        units=[UnitDeclaration(name="bastion", kind="access")],
        cloud=cloud,
    )
    outputs = await composer.acompose(network=network)
    assert set(outputs.to_flat()) == {
        "entryAddress",
        "ingressDnsName",
        "bastion.roleId",
        "bastion.poolName",
    }
    assert outputs.ingress_dns_name == ""


@pytest.mark.asyncio
@pytest.mark.parametrize("async_call", [False, True])
async def test_config_file(tmp_path, async_call: bool):
    path = tmp_path / "topology.yaml"
    path.write_text(config_yaml)
    config = TopologyConfig.parse(str(path))
    assert config.name == "platform"
    assert [unit.name for unit in config.units] == [
        "nomad-client",
        "bastion",
        "consul",
    ]
    assert config.units[1].extra_ingress[0].from_port == 2222

    client = TopologySyncAndAsyncClient(
        client=TopologyComposer.from_config(config), async_call=async_call
    )
    plan = await client.plan()
    assert set(plan.outputs.to_flat()) == {
        "entryAddress",
        "ingressDnsName",
        "bastion.roleId",
        "bastion.poolName",
        "consul.roleId",
        "consul.poolName",
        "nomad-client.roleId",
        "nomad-client.poolName",
    }
    assert plan.outputs.ingress_dns_name
    launch = plan.get("bastion.lc")
    assert launch.properties["key_name"] == "ops"
    assert launch.properties["image_id"] == "ami-ubuntu"
    bastion = plan.get("bastion.sg")
    assert [p.from_port for p in bastion.properties["ingress"]] == [22, 2222]


def test_invalid_config_file(tmp_path):
    path = tmp_path / "topology.yaml"
    path.write_text(invalid_rule_yaml)
    with pytest.raises(InvalidRuleRange):
        TopologyConfig.parse(str(path))
