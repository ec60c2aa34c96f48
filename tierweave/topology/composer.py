"""
Topology composer.

Units are constructed in a fixed order so that every unit only consumes
the outputs of units constructed before it. Construction is synchronous
and performs no lookups; the resulting request graph is then resolved
in one pass, and either every resource materializes or the composition
fails with the first error.
"""

from __future__ import annotations

__all__ = ["TopologyComposer"]

from typing import Iterable

from tierweave.cloud import Cloud, CloudConfig, NetworkContext
from tierweave.compute.cluster_unit import (
    DEFAULT_PEERS,
    UNIT_ORDER,
    BuildContext,
    ClusterUnit,
    UnitDeclaration,
    UnitKind,
    UnitOutputs,
)
from tierweave.core import (
    DeferredValue,
    ResourceGraph,
    debug,
    info,
    resolve_deep,
    run_sync,
)
from tierweave.core.exceptions import (
    BadRequestError,
    ConflictError,
    CyclicOrMissingDependency,
)

from ._models import TopologyConfig, TopologyOutputs, TopologyPlan


class TopologyComposer:
    name: str
    config: CloudConfig
    units: list[UnitDeclaration]
    network: NetworkContext | None
    cloud: Cloud

    def __init__(
        self,
        units: Iterable[UnitDeclaration | dict],
        config: CloudConfig | None = None,
        network: NetworkContext | None = None,
        cloud: Cloud | None = None,
        name: str = "topology",
    ):
        """Initialize.

        Args:
            units:
                Unit declarations, in any order.
            config:
                Cloud configuration. Defaults to the local provider.
            network:
                Default network for ``compose`` and ``plan``.
            cloud:
                Cloud component to use instead of the one described by
                ``config``.
        """
        self.name = name
        self.config = config or CloudConfig()
        self.units = [
            UnitDeclaration.from_dict(unit) if isinstance(unit, dict) else unit
            for unit in units
        ]
        self.network = network
        self.cloud = cloud or Cloud(
            __provider__={
                "type": self.config.provider,
                "parameters": {
                    "region": self.config.region,
                    "account_id": self.config.account_id,
                    **self.config.parameters,
                },
            }
        )

    @classmethod
    def from_config(
        cls,
        config: TopologyConfig,
        cloud: Cloud | None = None,
    ) -> TopologyComposer:
        return cls(
            units=config.units,
            config=config.cloud,
            network=config.network,
            cloud=cloud,
            name=config.name,
        )

    def order(self) -> list[UnitDeclaration]:
        """Units in construction order.

        Units are ordered by kind; units of the same kind keep their
        declaration order.
        """
        names: set[str] = set()
        for unit in self.units:
            if unit.name in names:
                raise ConflictError(f"Unit {unit.name} is declared twice")
            names.add(unit.name)
        return sorted(self.units, key=lambda unit: UNIT_ORDER.index(unit.kind))

    def declare(
        self,
        network: NetworkContext | None = None,
    ) -> tuple[ResourceGraph, list[ClusterUnit]]:
        """Construct every unit and return the request graph.

        Nothing is looked up or allocated yet.
        """
        network = network or self.network
        if network is None:
            raise BadRequestError("A network context is required")
        graph = ResourceGraph(allocator=self.cloud)
        context = BuildContext(
            config=self.config,
            network=network,
            graph=graph,
            cloud=self.cloud,
        )
        ordered = self.order()
        built: dict[str, UnitOutputs] = dict()
        units: list[ClusterUnit] = []
        for declaration in ordered:
            peers = self._peers(declaration, ordered, built)
            debug(
                "Building unit %s with peers %s",
                declaration.name,
                [peer.name for peer in peers],
            )
            unit = ClusterUnit(declaration=declaration, context=context)
            built[declaration.name] = unit.build(peers)
            units.append(unit)
        return graph, units

    def plan(self, network: NetworkContext | None = None) -> TopologyPlan:
        return run_sync(self.aplan, network=network)

    async def aplan(
        self, network: NetworkContext | None = None
    ) -> TopologyPlan:
        graph, units = self.declare(network)
        info(
            "Composing topology %s: %d units, %d resources",
            self.name,
            len(units),
            len(graph.nodes),
        )
        resources = await graph.amaterialize()
        outputs = await self._collect(units)
        specs = [unit.spec for unit in units if unit.spec is not None]
        bootstrap = await resolve_deep(
            {spec.name: spec.bootstrap for spec in specs}
        )
        return TopologyPlan(
            name=self.name,
            resources=resources,
            order=list(graph.materialized),
            units=specs,
            bootstrap=bootstrap,
            outputs=outputs,
        )

    def compose(
        self, network: NetworkContext | None = None
    ) -> TopologyOutputs:
        return run_sync(self.acompose, network=network)

    async def acompose(
        self, network: NetworkContext | None = None
    ) -> TopologyOutputs:
        plan = await self.aplan(network=network)
        return plan.outputs

    def _peers(
        self,
        declaration: UnitDeclaration,
        ordered: list[UnitDeclaration],
        built: dict[str, UnitOutputs],
    ) -> list[UnitOutputs]:
        if declaration.peers is None:
            kinds = DEFAULT_PEERS[declaration.kind]
            return [
                built[unit.name]
                for unit in ordered
                if unit.name in built and unit.kind in kinds
            ]
        declared = {unit.name for unit in ordered}
        peers = []
        for name in declaration.peers:
            if name == declaration.name:
                raise CyclicOrMissingDependency(
                    f"Unit {declaration.name} lists itself as a peer"
                )
            if name not in declared:
                raise CyclicOrMissingDependency(
                    f"Unit {declaration.name} refers to unknown unit {name}"
                )
            if name not in built:
                raise CyclicOrMissingDependency(
                    f"Unit {declaration.name} refers to {name}, which is "
                    "constructed after it"
                )
            peers.append(built[name])
        return peers

    async def _collect(self, units: list[ClusterUnit]) -> TopologyOutputs:
        outputs = [unit.outputs for unit in units if unit.outputs is not None]
        entry: DeferredValue | None = next(
            (
                output.entry_address
                for output in outputs
                if output.kind == UnitKind.ACCESS
                and output.entry_address is not None
            ),
            None,
        )
        ingress: DeferredValue | None = next(
            (
                output.ingress_dns_name
                for output in outputs
                if output.ingress_dns_name is not None
            ),
            None,
        )
        resolved = await resolve_deep(
            {
                "entry_address": entry or "",
                "ingress_dns_name": ingress or "",
                "role_ids": {o.name: o.role_id for o in outputs},
                "pool_names": {o.name: o.pool_name for o in outputs},
            }
        )
        return TopologyOutputs(**resolved)
