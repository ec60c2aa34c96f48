from __future__ import annotations

from typing import Any, Self

from tierweave.cloud import CloudConfig, NetworkContext
from tierweave.compute.cluster_unit import ClusterUnitSpec, UnitDeclaration
from tierweave.core import DataModel, ResourceItem, YamlLoader


class TopologyConfig(DataModel):
    """Topology configuration."""

    name: str = "topology"
    """Topology name."""

    cloud: CloudConfig = CloudConfig()
    """Cloud the topology is placed in."""

    network: NetworkContext | None = None
    """Default network of the topology."""

    units: list[UnitDeclaration] = list()
    """Unit declarations, in any order."""

    @classmethod
    def parse(cls, path: str) -> Self:
        """Load a YAML configuration file.

        Malformed rules and declarations fail here, before anything is
        built.
        """
        return cls.from_dict(YamlLoader.load(path))


class TopologyOutputs(DataModel):
    """Externally meaningful identifiers of a composed topology."""

    entry_address: str = ""
    """Public address of the access host, empty without one."""

    ingress_dns_name: str = ""
    """DNS name of the load balancer, empty without one."""

    role_ids: dict[str, str] = dict()
    """Role ARN per unit."""

    pool_names: dict[str, str] = dict()
    """Scaling group name per unit."""

    def to_flat(self) -> dict[str, str]:
        flat = {
            "entryAddress": self.entry_address,
            "ingressDnsName": self.ingress_dns_name,
        }
        for unit, role_id in self.role_ids.items():
            flat[f"{unit}.roleId"] = role_id
        for unit, pool_name in self.pool_names.items():
            flat[f"{unit}.poolName"] = pool_name
        return flat


class TopologyPlan(DataModel):
    """Materialized request graph of a topology."""

    name: str
    """Topology name."""

    resources: list[ResourceItem]
    """Resources in declaration order."""

    order: list[str]
    """Resource names in materialization order."""

    units: list[ClusterUnitSpec]
    """Unit specifications in construction order."""

    bootstrap: dict[str, str] = dict()
    """Rendered bootstrap script per unit."""

    outputs: TopologyOutputs
    """Outputs of the topology."""

    def resources_of(self, kind: str) -> list[ResourceItem]:
        return [item for item in self.resources if item.kind == kind]

    def get(self, name: str) -> ResourceItem | None:
        for item in self.resources:
            if item.name == name:
                return item
        return None

    def summary(self) -> dict[str, Any]:
        counts: dict[str, int] = dict()
        for item in self.resources:
            counts[item.kind] = counts.get(item.kind, 0) + 1
        return counts
