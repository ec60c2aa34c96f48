from __future__ import annotations

from typing import Any, Iterable

from tierweave.cloud import ImageItem
from tierweave.core import (
    Component,
    DeferredValue,
    Response,
    collect_deferred,
    debug,
    gather_all,
    operation,
    resolve_deep,
    scoped_name,
)
from tierweave.core.exceptions import (
    BadRequestError,
    PreconditionFailedError,
)
from tierweave.identity.role import (
    EC2_PRINCIPAL,
    PolicyStatement,
    RoleBuilder,
    RolePolicy,
)
from tierweave.network.load_balancer import (
    ListenerSpec,
    LoadBalancerBuilder,
    LoadBalancerSpec,
)
from tierweave.network.security_group import (
    SecurityGroupBuilder,
    SecurityGroupSpec,
    TrustRule,
)

from ._models import (
    ORCHESTRATOR_KINDS,
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

ROOT_VOLUME = {
    "volume_type": "standard",
    "volume_size": 50,
    "delete_on_termination": True,
}


class ClusterUnit(Component):
    """One tier of the topology.

    The tier variant is the provider: ``access``, ``discovery``,
    ``secret_store``, ``orchestrator_server`` or ``orchestrator_client``.
    It supplies the role statements, security groups and scaling inputs
    of the tier; the unit declares them in a fixed sequence::

        DECLARED -> ROLE_BUILT -> SECURITY_POSTURE_BUILT
                 -> SCALING_SPEC_BUILT -> OUTPUTS_EXPOSED

    A load balancer may be attached while the unit is in
    ``SECURITY_POSTURE_BUILT``.
    """

    declaration: UnitDeclaration
    context: BuildContext
    state: UnitState
    role: RolePolicy | None
    posture: SecurityPosture | None
    load_balancer: LoadBalancerSpec | None
    spec: ClusterUnitSpec | None
    outputs: UnitOutputs | None
    entry_address: DeferredValue[str] | None

    def __init__(
        self,
        declaration: UnitDeclaration,
        context: BuildContext,
        **kwargs,
    ):
        """Initialize.

        Args:
            declaration:
                Unit declaration.
            context:
                Shared build context of the composition.
        """
        self.declaration = declaration
        self.context = context
        self.state = UnitState.DECLARED
        self.role = None
        self.posture = None
        self.load_balancer = None
        self.spec = None
        self.outputs = None
        self.entry_address = None
        kwargs.setdefault("__provider__", declaration.kind.value)
        super().__init__(**kwargs)

    @property
    def name(self) -> str:
        return self.declaration.name

    @property
    def kind(self) -> UnitKind:
        return self.declaration.kind

    @operation()
    def build_role(self, **kwargs: Any) -> Response[list[PolicyStatement]]:
        """Permission statements of the tier's fleet."""
        ...

    @operation()
    def build_security_posture(
        self,
        peer_groups: list[DeferredValue],
        **kwargs: Any,
    ) -> Response[SecurityPosture]:
        """Declare the tier's security groups."""
        ...

    @operation()
    def build_scaling_spec(self, **kwargs: Any) -> Response[ScalingInputs]:
        """Bootstrap template, image and tags of the tier."""
        ...

    def build(self, peers: Iterable[UnitOutputs] = ()) -> UnitOutputs:
        """Run every step of the unit.

        Args:
            peers:
                Outputs of earlier units this unit depends on.
        """
        statements = self.build_role().result
        role = self.create_role(EC2_PRINCIPAL, statements)
        peer_groups = [
            group for peer in peers for group in peer.shared_groups.values()
        ]
        self.create_security_posture(peer_groups)
        if self.declaration.load_balancer is not None:
            self.attach_load_balancer(
                listeners=self.declaration.load_balancer.listeners,
                public_subnets=self.context.network.public_subnet_ids,
            )
        scaling = self.build_scaling_spec().result
        script, inputs = self.render_bootstrap(
            scaling.template, scaling.values
        )
        self.create_scaling_spec(
            image=self.context.find_image(
                self.declaration.image or scaling.image
            ),
            role=role,
            groups=self.instance_groups(),
            subnets=self.context.subnet_ids(self.declaration.get_placement()),
            bootstrap=script,
            bootstrap_inputs=inputs,
            tags=scaling.tags,
            public_address=scaling.public_address,
        )
        return self.expose_outputs()

    def create_role(
        self,
        trusted_principal: str,
        statements: Iterable[PolicyStatement],
    ) -> RolePolicy:
        """Declare the role of the fleet.

        Raises:
            InvalidPolicy:
                ``statements`` is empty.
        """
        self._check_state(UnitState.DECLARED)
        self.role = RoleBuilder(self.context.graph).build(
            name=self.name,
            trusted_principal=trusted_principal,
            statements=statements,
        )
        self._advance(UnitState.ROLE_BUILT)
        return self.role

    def create_security_posture(
        self,
        peer_groups: list[DeferredValue],
    ) -> list[SecurityGroupSpec]:
        """Declare the unit's own groups.

        Args:
            peer_groups:
                Identifiers of groups declared by earlier units. The
                unit's machines join them and its rules may reference
                them.
        """
        self._check_state(UnitState.ROLE_BUILT)
        posture = self.build_security_posture(peer_groups=peer_groups).result
        self.posture = posture
        self._advance(UnitState.SECURITY_POSTURE_BUILT)
        return posture.groups

    def attach_load_balancer(
        self,
        listeners: Iterable[ListenerSpec],
        public_subnets: list[str],
    ) -> LoadBalancerSpec:
        """Put an internet-facing load balancer in front of the pool.

        The pool is reachable from the internet only through the load
        balancer's group.
        """
        self._check_state(UnitState.SECURITY_POSTURE_BUILT)
        if self.kind != UnitKind.ORCHESTRATOR_CLIENT:
            raise BadRequestError(
                f"Unit {self.name} of kind {self.kind.value} cannot have "
                "a load balancer"
            )
        if self.load_balancer is not None:
            raise PreconditionFailedError(
                f"Unit {self.name} already has a load balancer"
            )
        self.load_balancer = LoadBalancerBuilder(self.context.graph).build(
            name=self.name,
            vpc_id=self.context.network.vpc_id,
            listeners=listeners,
            public_subnets=public_subnets,
        )
        return self.load_balancer

    def create_scaling_spec(
        self,
        image: DeferredValue[ImageItem],
        role: RolePolicy,
        groups: list[DeferredValue],
        subnets: list[str],
        bootstrap: DeferredValue[str],
        bootstrap_inputs: DeferredValue[BootstrapInputs] | None = None,
        tags: dict[str, str] | None = None,
        public_address: bool = False,
    ) -> ClusterUnitSpec:
        """Declare the launch configuration and the fixed-size pool."""
        self._check_state(UnitState.SECURITY_POSTURE_BUILT)
        graph = self.context.graph
        config = self.context.config
        size = self.declaration.size
        launch_configuration = graph.declare(
            "launch_configuration",
            scoped_name(self.name, "lc"),
            {
                "image_id": image.map(
                    lambda item: item.id, name=f"{self.name}.image_id"
                ),
                "instance_type": self.declaration.instance_type,
                "iam_instance_profile": role.profile_id,
                "security_groups": list(groups),
                "key_name": config.key_pair,
                "user_data": bootstrap,
                "associate_public_ip_address": (
                    self.declaration.get_placement() == Placement.PUBLIC
                ),
                "root_block_device": dict(ROOT_VOLUME),
            },
        )
        target_group_arns = (
            self.load_balancer.target_group_arns()
            if self.load_balancer is not None
            else []
        )
        pool = graph.declare(
            "autoscaling_group",
            scoped_name(self.name, "asg"),
            {
                "launch_configuration": launch_configuration.id,
                "min_size": size,
                "max_size": size,
                "desired_capacity": size,
                "vpc_zone_identifier": list(subnets),
                "target_group_arns": target_group_arns,
                "tags": self._tags(tags or {}),
            },
        )
        if public_address:
            address = graph.declare(
                "public_address",
                scoped_name(self.name, "eip"),
                {"pool": pool.id},
            )
            self.entry_address = address.attribute("public_ip")
        self.spec = ClusterUnitSpec(
            name=self.name,
            kind=self.kind,
            size=size,
            min_size=size,
            max_size=size,
            desired_capacity=size,
            instance_type=self.declaration.instance_type,
            image=image,
            role=role,
            security_groups=list(groups),
            subnets=list(subnets),
            bootstrap=bootstrap,
            bootstrap_inputs=bootstrap_inputs,
            launch_configuration=launch_configuration.id,
            pool_name=pool.id,
            load_balancer=self.load_balancer,
            target_group_arns=target_group_arns,
        )
        self._advance(UnitState.SCALING_SPEC_BUILT)
        return self.spec

    def expose_outputs(self) -> UnitOutputs:
        self._check_state(UnitState.SCALING_SPEC_BUILT)
        if self.role is None or self.posture is None or self.spec is None:
            raise PreconditionFailedError(
                f"Unit {self.name} has not built every step yet"
            )
        self.outputs = UnitOutputs(
            name=self.name,
            kind=self.kind,
            role_id=self.role.role_id,
            role_name=self.role.role_name,
            pool_name=self.spec.pool_name,
            security_group_ids={
                group.name: group.id for group in self.posture.groups
            },
            shared_groups=dict(self.posture.shared),
            entry_address=self.entry_address,
            ingress_dns_name=(
                self.load_balancer.dns_name
                if self.load_balancer is not None
                else None
            ),
            target_group_count=(
                len(self.load_balancer.target_groups)
                if self.load_balancer is not None
                else 0
            ),
        )
        self._advance(UnitState.OUTPUTS_EXPOSED)
        return self.outputs

    def instance_groups(self) -> list[DeferredValue]:
        """Groups the unit's machines join."""
        if self.posture is None:
            raise PreconditionFailedError(
                f"Unit {self.name} has no security posture yet"
            )
        groups = self.posture.instance_groups()
        if self.load_balancer is not None:
            groups.append(self.load_balancer.fleet_group.id)
        return groups

    def security_group(
        self,
        suffix: str | None,
        ingress: Iterable[TrustRule] = (),
        egress: Iterable[TrustRule] = (),
        description: str = "",
    ) -> SecurityGroupSpec:
        """Declare a group named after the unit.

        Providers use this to declare the groups of their tier.
        """
        name = scoped_name(self.name, f"{suffix}-sg" if suffix else "sg")
        return SecurityGroupBuilder(self.context.graph).build(
            name=name,
            vpc_id=self.context.network.vpc_id,
            ingress=ingress,
            egress=egress,
            description=description or f"{self.kind.value} {self.name}",
        )

    def declare(
        self,
        kind: str,
        suffix: str,
        properties: dict[str, Any] | None = None,
    ):
        """Declare a tier resource named after the unit."""
        return self.context.graph.declare(
            kind, scoped_name(self.name, suffix), properties
        )

    def render_bootstrap(
        self,
        template: str,
        values: dict[str, Any] | None = None,
    ) -> tuple[DeferredValue[str], DeferredValue[BootstrapInputs]]:
        """Bootstrap script of the unit and its substitution values.

        Both resolve once the role name, every peer group identifier and
        every deferred template value are known.
        """
        if self.role is None or self.posture is None:
            raise PreconditionFailedError(
                f"Unit {self.name} needs a role and a security posture "
                "before its bootstrap script"
            )
        role_name = self.role.role_name
        peer_groups = list(self.posture.peer_groups)
        values = dict(values or {})
        cluster_size = (
            self.declaration.size if self.kind in ORCHESTRATOR_KINDS else None
        )
        region = self.context.config.region

        async def factory() -> BootstrapInputs:
            return BootstrapInputs(
                role_name=await role_name.resolve(),
                peer_group_ids=await gather_all(
                    *(group.resolve() for group in peer_groups)
                ),
                cluster_size=cluster_size,
                region=region,
                values=await resolve_deep(values),
            )

        inputs = DeferredValue(
            factory,
            name=f"{self.name}.bootstrap_inputs",
            depends=[role_name, *peer_groups, *collect_deferred(values)],
        )
        script = inputs.map(
            lambda resolved: resolved.render(template),
            name=f"{self.name}.bootstrap",
        )
        return script, inputs

    def _tags(self, tier_tags: dict[str, str]) -> list[dict[str, Any]]:
        tags = {
            **self.context.config.tags,
            **tier_tags,
            **self.declaration.tags,
            "Name": self.name,
        }
        return [
            {"key": key, "value": value, "propagate_at_launch": True}
            for key, value in sorted(tags.items())
        ]

    def _check_state(self, expected: UnitState) -> None:
        if self.state != expected:
            raise PreconditionFailedError(
                f"Unit {self.name} is {self.state.value}, "
                f"expected {expected.value}"
            )

    def _advance(self, state: UnitState) -> None:
        debug("Unit %s: %s -> %s", self.name, self.state.value, state.value)
        self.state = state
