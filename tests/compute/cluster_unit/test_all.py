# type: ignore
import logging

import pytest
from common.data import REGION, local_parameters, network

from tierweave.cloud import Cloud, CloudConfig, ImageSelector
from tierweave.cloud.providers.local import Local
from tierweave.compute.cluster_unit import (
    BadRequestError,
    BuildContext,
    ClusterUnit,
    ClusterUnitSpec,
    InvalidPolicy,
    PreconditionFailedError,
    UnitDeclaration,
    UnitKind,
    UnitState,
)
from tierweave.core import ResourceGraph
from tierweave.identity.role import EC2_PRINCIPAL, discovery_statement


class CountingLocal(Local):
    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.lookups = []

    async def afind_image(self, selector, **kwargs):
        self.lookups.append(selector.key())
        return await super().afind_image(selector=selector, **kwargs)


def get_context() -> BuildContext:
    cloud = Cloud(__provider__=CountingLocal(**local_parameters))
    return BuildContext(
        config=CloudConfig(region=REGION, tags={"stack": "test"}),
        network=network,
        graph=ResourceGraph(allocator=cloud),
        cloud=cloud,
    )


def get_unit(context: BuildContext, **declaration) -> ClusterUnit:
    return ClusterUnit(
        declaration=UnitDeclaration(**declaration), context=context
    )


def test_state_machine():
    context = get_context()
    unit = get_unit(context, name="bastion", kind="access")
    assert unit.state == UnitState.DECLARED

    with pytest.raises(PreconditionFailedError):
        unit.expose_outputs()
    with pytest.raises(PreconditionFailedError):
        unit.create_security_posture([])
    with pytest.raises(InvalidPolicy):
        unit.create_role(EC2_PRINCIPAL, [])
    assert unit.state == UnitState.DECLARED

    role = unit.create_role(EC2_PRINCIPAL, [discovery_statement()])
    assert unit.state == UnitState.ROLE_BUILT
    assert unit.role is role
    with pytest.raises(PreconditionFailedError):
        unit.create_role(EC2_PRINCIPAL, [discovery_statement()])

    groups = unit.create_security_posture([])
    assert unit.state == UnitState.SECURITY_POSTURE_BUILT
    assert [group.name for group in groups] == ["bastion.sg", "bastion.ssh-sg"]
    with pytest.raises(PreconditionFailedError):
        unit.create_security_posture([])

    unit.state = UnitState.SCALING_SPEC_BUILT
    with pytest.raises(PreconditionFailedError):
        unit.expose_outputs()
    assert unit.outputs is None


def test_build_runs_every_step():
    context = get_context()
    unit = get_unit(context, name="consul", kind="discovery", size=3)
    outputs = unit.build()
    assert unit.state == UnitState.OUTPUTS_EXPOSED
    assert outputs.name == "consul"
    assert outputs.kind == UnitKind.DISCOVERY
    assert set(outputs.shared_groups) == {"discovery"}
    assert set(outputs.security_group_ids) == {
        "consul.sg",
        "consul.clients-sg",
    }
    assert outputs.entry_address is None
    assert outputs.ingress_dns_name is None
    with pytest.raises(PreconditionFailedError):
        unit.build()


@pytest.mark.asyncio
@pytest.mark.parametrize("kind", [kind.value for kind in UnitKind])
@pytest.mark.parametrize("size", [1, 3])
async def test_fixed_pool(kind: str, size: int):
    context = get_context()
    unit = get_unit(context, name="unit", kind=kind, size=size)
    unit.build()
    spec = unit.spec
    assert spec.min_size == spec.max_size == spec.desired_capacity == size

    await context.graph.amaterialize()
    pool = context.graph.get("unit.asg").item
    assert pool.properties["min_size"] == size
    assert pool.properties["max_size"] == size
    assert pool.properties["desired_capacity"] == size
    assert await spec.pool_name.resolve() == pool.id

    with pytest.raises(BadRequestError):
        ClusterUnitSpec(**{**dict(spec), "max_size": size + 1})


@pytest.mark.asyncio
async def test_bootstrap_inputs_are_resolved():
    context = get_context()
    bastion = get_unit(context, name="bastion", kind="access")
    consul = get_unit(context, name="consul", kind="discovery", size=3)
    servers = get_unit(
        context, name="nomad-server", kind="orchestrator_server", size=3
    )
    bastion_outputs = bastion.build()
    consul_outputs = consul.build([bastion_outputs])
    servers.build([bastion_outputs, consul_outputs])

    await context.graph.amaterialize()
    inputs = await servers.spec.bootstrap_inputs.resolve()
    assert inputs.role_name == await servers.role.role_name.resolve()
    assert inputs.peer_group_ids == [
        await bastion_outputs.shared_groups["ssh"].resolve(),
        await consul_outputs.shared_groups["discovery"].resolve(),
    ]
    assert inputs.cluster_size == 3
    assert inputs.region == REGION

    script = await servers.spec.bootstrap.resolve()
    assert "--num-servers 3" in script
    assert inputs.role_name in script
    assert "{" not in script
    launch = context.graph.get("nomad-server.lc").item
    assert launch.properties["user_data"] == script
    assert launch.properties["image_id"] == "ami-nomad"
    assert launch.properties["root_block_device"]["volume_size"] == 50

    consul_inputs = await consul.spec.bootstrap_inputs.resolve()
    assert consul_inputs.cluster_size is None


@pytest.mark.asyncio
async def test_instances_join_peer_groups():
    context = get_context()
    bastion = get_unit(context, name="bastion", kind="access")
    client = get_unit(context, name="nomad-client", kind="orchestrator_client")
    bastion_outputs = bastion.build()
    client.build([bastion_outputs])

    await context.graph.amaterialize()
    launch = context.graph.get("nomad-client.lc").item
    assert launch.properties["security_groups"] == [
        await client.outputs.security_group_ids["nomad-client.sg"].resolve(),
        await bastion_outputs.shared_groups["ssh"].resolve(),
    ]
    assert launch.properties["associate_public_ip_address"] is False
    pool = context.graph.get("nomad-client.asg").item
    assert pool.properties["vpc_zone_identifier"] == (
        network.private_subnet_ids
    )
    assert pool.properties["target_group_arns"] == []
    tags = {tag["key"]: tag["value"] for tag in pool.properties["tags"]}
    assert tags == {"Name": "nomad-client", "stack": "test"}


@pytest.mark.asyncio
async def test_discovery_servers_admit_clients_only():
    context = get_context()
    consul = get_unit(
        context, name="consul", kind="discovery", extra_ingress=[]
    )
    consul.build()
    await context.graph.amaterialize()
    clients_id = await consul.outputs.shared_groups["discovery"].resolve()
    servers = consul.posture.groups[1]
    permissions = await servers.ingress_permissions.resolve()
    by_port = dict()
    for permission in permissions:
        by_port.setdefault(permission.from_port, []).append(permission)
    for port in (8500, 8600):
        assert all(
            not p.self_ref and p.group_ids == [clients_id]
            for p in by_port[port]
        )
    assert not any(p.cidr_blocks for p in permissions)
    pool = context.graph.get("consul.asg").item
    tags = {tag["key"]: tag["value"] for tag in pool.properties["tags"]}
    assert tags["consul-servers"] == "auto-join"


@pytest.mark.asyncio
async def test_access_host(caplog):
    context = get_context()
    with caplog.at_level(logging.WARNING, logger="tierweave"):
        bastion = get_unit(context, name="bastion", kind="access")
        outputs = bastion.build()
    assert "admits SSH from nowhere" in caplog.text

    await context.graph.amaterialize()
    address = await outputs.entry_address.resolve()
    assert address.startswith("203.0.113.")
    launch = context.graph.get("bastion.lc").item
    assert launch.properties["associate_public_ip_address"] is True
    assert launch.properties["image_id"] == "ami-ubuntu-new"


@pytest.mark.asyncio
async def test_secret_store_resources():
    context = get_context()
    vault = get_unit(context, name="vault", kind="secret_store", size=3)
    vault.build()
    assert [node.kind for node in context.graph.nodes[:3]] == [
        "s3_bucket",
        "dynamodb_table",
        "kms_key",
    ]
    await context.graph.amaterialize()
    bucket = context.graph.get("vault.storage").item
    key = context.graph.get("vault.unseal-key").item
    document = await vault.role.permission_document.resolve()
    resources = [r for s in document["Statement"] for r in s["Resource"]]
    assert bucket.attributes["arn"] in resources
    assert key.attributes["arn"] in resources

    script = await vault.spec.bootstrap.resolve()
    assert f'--s3-bucket "{bucket.id}"' in script
    assert f'--auto-unseal-kms-key-id "{key.id}"' in script

    group = vault.posture.groups[0]
    permissions = await group.ingress_permissions.resolve()
    api = [p for p in permissions if p.from_port == 8200 and p.cidr_blocks]
    assert api[0].cidr_blocks == ["10.0.10.0/24", "10.0.11.0/24"]


def test_load_balancer_only_for_clients():
    with pytest.raises(BadRequestError):
        UnitDeclaration(
            name="consul", kind="discovery", load_balancer={"listeners": []}
        )
    with pytest.raises(BadRequestError):
        UnitDeclaration(name="consul", kind="discovery", load_balancer={})

    context = get_context()
    unit = get_unit(context, name="consul", kind="discovery")
    unit.create_role(EC2_PRINCIPAL, [discovery_statement()])
    unit.create_security_posture([])
    with pytest.raises(BadRequestError):
        unit.attach_load_balancer([], network.public_subnet_ids)


@pytest.mark.asyncio
async def test_load_balancer_attachment():
    context = get_context()
    unit = get_unit(
        context,
        name="nomad-client",
        kind="orchestrator_client",
        load_balancer={"listeners": [{"port": 80}, {"port": 8080}]},
    )
    outputs = unit.build()
    assert outputs.target_group_count == 2
    assert unit.load_balancer.fleet_group.id in unit.spec.security_groups

    await context.graph.amaterialize()
    pool = context.graph.get("nomad-client.asg").item
    assert pool.properties["target_group_arns"] == [
        context.graph.get("nomad-client.tg-80").item.id,
        context.graph.get("nomad-client.tg-8080").item.id,
    ]
    assert (await outputs.ingress_dns_name.resolve()).endswith(
        ".elb.amazonaws.com"
    )


@pytest.mark.asyncio
async def test_image_lookup_is_memoized():
    context = get_context()
    selector = ImageSelector(owners=["self"], name_regex="nomad-.*")
    servers = get_unit(
        context, name="nomad-server", kind="orchestrator_server"
    )
    clients = get_unit(
        context,
        name="nomad-client",
        kind="orchestrator_client",
        image=selector,
    )
    servers.build()
    clients.build()
    assert servers.spec.image is clients.spec.image

    await context.graph.amaterialize()
    assert context.cloud.__provider__.lookups == [selector.key()]


def test_invalid_declarations():
    with pytest.raises(ValueError):
        UnitDeclaration(name="Bad Name", kind="access")
    with pytest.raises(ValueError):
        UnitDeclaration(name="consul", kind="discovery", size=0)
    with pytest.raises(ValueError):
        UnitDeclaration(name="consul", kind="unknown")
    with pytest.raises(ValueError):
        UnitDeclaration(name="bastion", kind="access", connect_from=["x"])
