from typing import Any

from tierweave.core import DeferredValue, Provider, Response
from tierweave.identity.role import PolicyStatement, discovery_statement
from tierweave.network.security_group import SecurityGroupSpec, TrustRule

from .._bootstrap import CLUSTER_TAG_KEY, CLUSTER_TAG_VALUE
from .._models import ScalingInputs, SecurityPosture


class BaseClusterUnitProvider(Provider):
    def build_role(self, **kwargs: Any) -> Response[list[PolicyStatement]]:
        return Response(result=[discovery_statement(), *self.statements()])

    def build_security_posture(
        self,
        peer_groups: list[DeferredValue],
        **kwargs: Any,
    ) -> Response[SecurityPosture]:
        raise NotImplementedError(
            "Build security posture method must be implemented by provider."
        )

    def build_scaling_spec(self, **kwargs: Any) -> Response[ScalingInputs]:
        raise NotImplementedError(
            "Build scaling spec method must be implemented by provider."
        )

    def statements(self) -> list[PolicyStatement]:
        """Statements of the tier on top of fleet discovery."""
        return []

    def _posture(
        self,
        groups: list[SecurityGroupSpec],
        attached: list[SecurityGroupSpec],
        peer_groups: list[DeferredValue],
        shared: dict[str, SecurityGroupSpec] | None = None,
    ) -> Response[SecurityPosture]:
        return Response(
            result=SecurityPosture(
                groups=groups,
                attached=[group.id for group in attached],
                peer_groups=list(peer_groups),
                shared={
                    label: group.id
                    for label, group in (shared or {}).items()
                },
            )
        )

    def _extra_ingress(self) -> list[TrustRule]:
        return list(self.__component__.declaration.extra_ingress)

    def _cluster_values(self) -> dict[str, Any]:
        return {
            "cluster_tag_key": CLUSTER_TAG_KEY,
            "cluster_tag_value": CLUSTER_TAG_VALUE,
        }
