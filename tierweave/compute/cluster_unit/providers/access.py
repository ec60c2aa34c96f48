from typing import Any

from tierweave.cloud import ImageSelector
from tierweave.core import DeferredValue, Response, warn
from tierweave.network.security_group import (
    all_traffic_to,
    tcp_from_cidr,
    tcp_from_group,
)

from .. import _bootstrap
from .._models import ScalingInputs, SecurityPosture
from ._base import BaseClusterUnitProvider

SSH_PORT = 22


class Access(BaseClusterUnitProvider):
    """Bastion host.

    The bastion admits SSH only from the configured CIDR blocks. Later
    units join the shared ``ssh`` group, which admits SSH only from the
    bastion.
    """

    def build_security_posture(
        self,
        peer_groups: list[DeferredValue],
        **kwargs: Any,
    ) -> Response[SecurityPosture]:
        unit = self.__component__
        connect_from = unit.declaration.connect_from
        if not connect_from:
            warn("Access unit %s admits SSH from nowhere", unit.name)
        bastion = unit.security_group(
            None,
            ingress=[
                *(
                    tcp_from_cidr(SSH_PORT, cidr, "ssh")
                    for cidr in connect_from
                ),
                *self._extra_ingress(),
            ],
            egress=[all_traffic_to()],
            description=f"Bastion {unit.name}",
        )
        ssh = unit.security_group(
            "ssh",
            ingress=[tcp_from_group(SSH_PORT, bastion.id, "ssh from bastion")],
            description=f"SSH from bastion {unit.name}",
        )
        return self._posture(
            groups=[bastion, ssh],
            attached=[bastion],
            peer_groups=peer_groups,
            shared={"ssh": ssh},
        )

    def build_scaling_spec(self, **kwargs: Any) -> Response[ScalingInputs]:
        return Response(
            result=ScalingInputs(
                template=_bootstrap.ACCESS,
                image=ImageSelector(
                    owners=["099720109477"],
                    filters={
                        "name": [
                            "ubuntu/images/hvm-ssd/"
                            "ubuntu-xenial-16.04-amd64-server-*"
                        ],
                        "virtualization-type": ["hvm"],
                    },
                ),
                public_address=True,
            )
        )
