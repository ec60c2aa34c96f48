from __future__ import annotations

import ipaddress
import re
from enum import Enum
from typing import Any

from pydantic import ConfigDict, Field, field_validator, model_validator

from tierweave.cloud import (
    Cloud,
    CloudConfig,
    ImageItem,
    ImageSelector,
    NetworkContext,
    SubnetItem,
)
from tierweave.core import (
    DataModel,
    DeferredValue,
    ResourceGraph,
    info,
)
from tierweave.core.exceptions import BadRequestError
from tierweave.identity.role import RolePolicy
from tierweave.network.load_balancer import (
    LoadBalancerDeclaration,
    LoadBalancerSpec,
)
from tierweave.network.security_group import SecurityGroupSpec, TrustRule


class UnitKind(str, Enum):
    ACCESS = "access"
    DISCOVERY = "discovery"
    SECRET_STORE = "secret_store"
    ORCHESTRATOR_SERVER = "orchestrator_server"
    ORCHESTRATOR_CLIENT = "orchestrator_client"


UNIT_ORDER: list[UnitKind] = [
    UnitKind.ACCESS,
    UnitKind.DISCOVERY,
    UnitKind.SECRET_STORE,
    UnitKind.ORCHESTRATOR_SERVER,
    UnitKind.ORCHESTRATOR_CLIENT,
]

DEFAULT_PEERS: dict[UnitKind, list[UnitKind]] = {
    UnitKind.ACCESS: [],
    UnitKind.DISCOVERY: [UnitKind.ACCESS],
    UnitKind.SECRET_STORE: [UnitKind.ACCESS, UnitKind.DISCOVERY],
    UnitKind.ORCHESTRATOR_SERVER: [UnitKind.ACCESS, UnitKind.DISCOVERY],
    UnitKind.ORCHESTRATOR_CLIENT: [
        UnitKind.ACCESS,
        UnitKind.DISCOVERY,
        UnitKind.ORCHESTRATOR_SERVER,
    ],
}

ORCHESTRATOR_KINDS = (
    UnitKind.ORCHESTRATOR_SERVER,
    UnitKind.ORCHESTRATOR_CLIENT,
)


class UnitState(str, Enum):
    DECLARED = "declared"
    ROLE_BUILT = "role_built"
    SECURITY_POSTURE_BUILT = "security_posture_built"
    SCALING_SPEC_BUILT = "scaling_spec_built"
    OUTPUTS_EXPOSED = "outputs_exposed"


class Placement(str, Enum):
    PRIVATE = "private"
    PUBLIC = "public"


class UnitDeclaration(DataModel):
    """One tier of the topology as configured."""

    name: str
    """Unit name, used as prefix of every resource of the unit."""

    kind: UnitKind
    """Tier variant."""

    size: int = Field(default=1, ge=1)
    """Fixed pool size."""

    instance_type: str = "t3.micro"
    """Machine type."""

    image: ImageSelector | None = None
    """Image selector overriding the tier default."""

    placement: Placement | None = None
    """Subnets to place the pool in. Access hosts default to public."""

    peers: list[str] | None = None
    """Names of earlier units whose shared groups this unit joins.
    Defaults to every earlier unit of the kinds the tier depends on."""

    connect_from: list[str] = list()
    """CIDR blocks allowed to reach the access host."""

    extra_ingress: list[TrustRule] = list()
    """Additional rules for the unit's primary group."""

    load_balancer: LoadBalancerDeclaration | None = None
    """Load balancer in front of the pool."""

    tags: dict[str, str] = dict()
    """Tags of the scaling group."""

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        if not re.fullmatch(r"[a-z][a-z0-9-]*", value):
            raise ValueError(
                f"Unit name '{value}' must be lowercase alphanumeric "
                "with dashes"
            )
        return value

    @field_validator("connect_from")
    @classmethod
    def _check_cidrs(cls, value: list[str]) -> list[str]:
        return [str(ipaddress.ip_network(v, strict=False)) for v in value]

    @model_validator(mode="after")
    def _check_load_balancer(self) -> UnitDeclaration:
        if (
            self.load_balancer is not None
            and self.kind != UnitKind.ORCHESTRATOR_CLIENT
        ):
            raise BadRequestError(
                f"Unit {self.name}: only {UnitKind.ORCHESTRATOR_CLIENT.value}"
                " units can have a load balancer"
            )
        return self

    def get_placement(self) -> Placement:
        if self.placement is not None:
            return self.placement
        if self.kind == UnitKind.ACCESS:
            return Placement.PUBLIC
        return Placement.PRIVATE


class SecurityPosture(DataModel):
    """Security groups of a unit."""

    groups: list[SecurityGroupSpec]
    """Groups declared by the unit, in declaration order."""

    attached: list[DeferredValue]
    """Own groups the unit's machines join."""

    peer_groups: list[DeferredValue] = list()
    """Groups of earlier units the unit's machines join."""

    shared: dict[str, DeferredValue] = dict()
    """Groups later units join, by label."""

    def instance_groups(self) -> list[DeferredValue]:
        return [*self.attached, *self.peer_groups]


class ScalingInputs(DataModel):
    """Tier specific inputs of a scaling specification."""

    template: str
    """Bootstrap script template."""

    image: ImageSelector
    """Default image selector of the tier."""

    values: dict[str, Any] = dict()
    """Extra template values, possibly deferred."""

    tags: dict[str, str] = dict()
    """Tier tags of the scaling group."""

    public_address: bool = False
    """Whether the pool gets a static public address."""


class BootstrapInputs(DataModel):
    """Resolved substitution values of a bootstrap script."""

    model_config = ConfigDict(frozen=True)

    role_name: str
    peer_group_ids: list[str]
    cluster_size: int | None = None
    region: str
    values: dict[str, Any] = dict()

    def render(self, template: str) -> str:
        return template.format(
            role_name=self.role_name,
            peer_group_ids=" ".join(self.peer_group_ids),
            cluster_size=(
                "" if self.cluster_size is None else self.cluster_size
            ),
            region=self.region,
            **self.values,
        )


class ClusterUnitSpec(DataModel):
    """Scaling specification of one unit: a fixed pool."""

    model_config = ConfigDict(frozen=True)

    name: str
    kind: UnitKind
    size: int
    min_size: int
    max_size: int
    desired_capacity: int
    instance_type: str
    image: DeferredValue
    role: RolePolicy
    security_groups: list[DeferredValue]
    subnets: list[str]
    bootstrap: DeferredValue
    bootstrap_inputs: DeferredValue | None = None
    launch_configuration: DeferredValue
    pool_name: DeferredValue
    load_balancer: LoadBalancerSpec | None = None
    target_group_arns: list[DeferredValue] = list()

    @model_validator(mode="after")
    def _check_fixed_pool(self) -> ClusterUnitSpec:
        if not (
            self.min_size
            == self.max_size
            == self.desired_capacity
            == self.size
        ):
            raise BadRequestError(
                f"Unit {self.name} must be a fixed pool of {self.size}, got "
                f"min={self.min_size} max={self.max_size} "
                f"desired={self.desired_capacity}"
            )
        return self


class UnitOutputs(DataModel):
    """Deferred outputs of a unit, read by later units."""

    model_config = ConfigDict(frozen=True)

    name: str
    kind: UnitKind
    role_id: DeferredValue
    role_name: DeferredValue
    pool_name: DeferredValue
    security_group_ids: dict[str, DeferredValue]
    shared_groups: dict[str, DeferredValue] = dict()
    entry_address: DeferredValue | None = None
    ingress_dns_name: DeferredValue | None = None
    target_group_count: int = 0


class BuildContext:
    """Everything units of one composition share.

    Image and subnet lookups are memoized so units asking for the same
    selector or subnets issue a single lookup.
    """

    config: CloudConfig
    network: NetworkContext
    graph: ResourceGraph
    cloud: Cloud

    def __init__(
        self,
        config: CloudConfig,
        network: NetworkContext,
        graph: ResourceGraph,
        cloud: Cloud,
    ):
        self.config = config
        self.network = network
        self.graph = graph
        self.cloud = cloud
        self._images: dict[str, DeferredValue[ImageItem]] = dict()
        self._subnets: dict[tuple, DeferredValue[list[SubnetItem]]] = dict()

    def find_image(self, selector: ImageSelector) -> DeferredValue[ImageItem]:
        key = selector.key()
        if key not in self._images:

            async def factory() -> ImageItem:
                info("Looking up image %s", key)
                response = await self.cloud.afind_image(selector=selector)
                return response.result

            self._images[key] = DeferredValue(factory, name=f"image {key}")
        return self._images[key]

    def get_subnets(
        self, subnet_ids: list[str]
    ) -> DeferredValue[list[SubnetItem]]:
        key = tuple(subnet_ids)
        if key not in self._subnets:

            async def factory() -> list[SubnetItem]:
                info("Looking up subnets %s", list(key))
                response = await self.cloud.aget_subnets(
                    subnet_ids=list(key)
                )
                return response.result

            self._subnets[key] = DeferredValue(
                factory, name=f"subnets {','.join(key)}"
            )
        return self._subnets[key]

    def subnet_cidrs(self, subnet_ids: list[str]) -> DeferredValue[list[str]]:
        return self.get_subnets(subnet_ids).map(
            lambda subnets: [subnet.cidr_block for subnet in subnets],
            name=f"cidrs {','.join(subnet_ids)}",
        )

    def subnet_ids(self, placement: Placement) -> list[str]:
        if placement == Placement.PUBLIC:
            subnet_ids = self.network.public_subnet_ids
        else:
            subnet_ids = self.network.private_subnet_ids
        if not subnet_ids:
            raise BadRequestError(
                f"Network {self.network.vpc_id} has no {placement.value} "
                "subnets"
            )
        return list(subnet_ids)
