from typing import Any

from tierweave.cloud import ImageSelector
from tierweave.core import DeferredValue, Response
from tierweave.network.security_group import all_traffic_to

from .. import _bootstrap
from .._models import ScalingInputs, SecurityPosture
from ._base import BaseClusterUnitProvider


class OrchestratorClient(BaseClusterUnitProvider):
    """Workload orchestrator clients.

    The machine group admits nothing on its own; clients reach the rest
    of the topology through the shared groups of their peers, and the
    internet through the load balancer when one is attached.
    """

    def build_security_posture(
        self,
        peer_groups: list[DeferredValue],
        **kwargs: Any,
    ) -> Response[SecurityPosture]:
        unit = self.__component__
        machines = unit.security_group(
            None,
            ingress=self._extra_ingress(),
            egress=[all_traffic_to()],
            description=f"Orchestrator clients {unit.name}",
        )
        return self._posture(
            groups=[machines],
            attached=[machines],
            peer_groups=peer_groups,
        )

    def build_scaling_spec(self, **kwargs: Any) -> Response[ScalingInputs]:
        return Response(
            result=ScalingInputs(
                template=_bootstrap.ORCHESTRATOR_CLIENT,
                image=ImageSelector(owners=["self"], name_regex="nomad-.*"),
                values=self._cluster_values(),
            )
        )
