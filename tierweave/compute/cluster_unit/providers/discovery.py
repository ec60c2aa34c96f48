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

RPC_PORT = 8300
SERF_LAN_PORT = 8301
SERF_WAN_PORT = 8302
HTTP_PORT = 8500
DNS_PORT = 8600


class Discovery(BaseClusterUnitProvider):
    """Service discovery servers.

    Server ports are open to the servers themselves and to members of the
    shared ``discovery`` client group, never to the whole network.
    """

    def build_security_posture(
        self,
        peer_groups: list[DeferredValue],
        **kwargs: Any,
    ) -> Response[SecurityPosture]:
        unit = self.__component__
        clients = unit.security_group(
            "clients",
            ingress=[
                tcp(SERF_LAN_PORT, "serf lan"),
                udp(SERF_LAN_PORT, "serf lan"),
            ],
            description=f"Discovery clients of {unit.name}",
        )
        servers = unit.security_group(
            None,
            ingress=[
                tcp(RPC_PORT, "server rpc"),
                tcp(SERF_LAN_PORT, "serf lan"),
                udp(SERF_LAN_PORT, "serf lan"),
                tcp(SERF_WAN_PORT, "serf wan"),
                udp(SERF_WAN_PORT, "serf wan"),
                tcp_from_group(RPC_PORT, clients.id, "server rpc"),
                tcp_from_group(SERF_LAN_PORT, clients.id, "serf lan"),
                udp_from_group(SERF_LAN_PORT, clients.id, "serf lan"),
                tcp_from_group(HTTP_PORT, clients.id, "http api"),
                tcp_from_group(DNS_PORT, clients.id, "dns"),
                udp_from_group(DNS_PORT, clients.id, "dns"),
                *self._extra_ingress(),
            ],
            egress=[all_traffic_to()],
            description=f"Discovery servers {unit.name}",
        )
        return self._posture(
            groups=[clients, servers],
            attached=[servers, clients],
            peer_groups=peer_groups,
            shared={"discovery": clients},
        )

    def build_scaling_spec(self, **kwargs: Any) -> Response[ScalingInputs]:
        return Response(
            result=ScalingInputs(
                template=_bootstrap.DISCOVERY,
                image=ImageSelector(owners=["self"], name_regex="consul-.*"),
                values=self._cluster_values(),
                tags={
                    _bootstrap.CLUSTER_TAG_KEY: _bootstrap.CLUSTER_TAG_VALUE
                },
            )
        )
