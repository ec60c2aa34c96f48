from typing import Any

from tierweave.cloud import ImageSelector
from tierweave.core import DeferredValue, Response
from tierweave.network.security_group import (
    all_traffic_to,
    tcp,
    tcp_from_group,
    udp,
    udp_from_group,
)

from .. import _bootstrap
from .._models import ScalingInputs, SecurityPosture
from ._base import BaseClusterUnitProvider

HTTP_PORT = 4646
RPC_PORT = 4647
SERF_PORT = 4648


class OrchestratorServer(BaseClusterUnitProvider):
    """Workload orchestrator servers.

    Clients join the shared ``orchestrator`` group; the servers accept
    HTTP, RPC and gossip traffic from that group only. Servers join both
    groups.
    """

    def build_security_posture(
        self,
        peer_groups: list[DeferredValue],
        **kwargs: Any,
    ) -> Response[SecurityPosture]:
        unit = self.__component__
        clients = unit.security_group(
            "clients",
            ingress=[tcp(SERF_PORT, "serf"), udp(SERF_PORT, "serf")],
            description=f"Orchestrator clients of {unit.name}",
        )
        servers = unit.security_group(
            None,
            ingress=[
                tcp_from_group(HTTP_PORT, clients.id, "http api"),
                tcp_from_group(RPC_PORT, clients.id, "rpc"),
                tcp_from_group(SERF_PORT, clients.id, "serf"),
                udp_from_group(SERF_PORT, clients.id, "serf"),
                *self._extra_ingress(),
            ],
            egress=[all_traffic_to()],
            description=f"Orchestrator servers {unit.name}",
        )
        return self._posture(
            groups=[clients, servers],
            attached=[servers, clients],
            peer_groups=peer_groups,
            shared={"orchestrator": clients},
        )

    def build_scaling_spec(self, **kwargs: Any) -> Response[ScalingInputs]:
        return Response(
            result=ScalingInputs(
                template=_bootstrap.ORCHESTRATOR_SERVER,
                image=ImageSelector(owners=["self"], name_regex="nomad-.*"),
                values=self._cluster_values(),
            )
        )
