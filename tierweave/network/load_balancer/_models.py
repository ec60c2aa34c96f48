from __future__ import annotations

from enum import Enum

from pydantic import ConfigDict, Field, model_validator

from tierweave.core import DataModel, DeferredValue
from tierweave.core.exceptions import BadRequestError, InvalidRuleRange

from tierweave.network.security_group import MAX_PORT, SecurityGroupSpec


class ListenerProtocol(str, Enum):
    HTTP = "HTTP"
    HTTPS = "HTTPS"


class ListenerSpec(DataModel):
    """Port the load balancer listens on and forwards to the fleet."""

    model_config = ConfigDict(frozen=True)

    port: int = 80
    protocol: ListenerProtocol = ListenerProtocol.HTTP
    certificate: str | None = None
    """Certificate ARN. Required for HTTPS."""

    health_check_path: str = "/"

    @model_validator(mode="after")
    def _check(self) -> ListenerSpec:
        if self.port < 1 or self.port > MAX_PORT:
            raise InvalidRuleRange(f"Listener port {self.port} out of range")
        if self.protocol == ListenerProtocol.HTTPS and not self.certificate:
            raise BadRequestError(
                f"HTTPS listener on port {self.port} needs a certificate"
            )
        return self


class LoadBalancerDeclaration(DataModel):
    """Load balancer requested for a unit."""

    listeners: list[ListenerSpec] = Field(
        default_factory=lambda: [ListenerSpec(port=80)]
    )

    @model_validator(mode="after")
    def _check(self) -> LoadBalancerDeclaration:
        if not self.listeners:
            raise BadRequestError("A load balancer needs a listener")
        ports = [listener.port for listener in self.listeners]
        if len(ports) != len(set(ports)):
            raise BadRequestError(f"Duplicate listener ports in {ports}")
        return self


class TargetGroupSpec(DataModel):
    model_config = ConfigDict(frozen=True)

    name: str
    port: int
    protocol: ListenerProtocol
    arn: DeferredValue
    listener_arn: DeferredValue


class LoadBalancerSpec(DataModel):
    """Internet-facing load balancer in front of a fleet.

    The fleet joins ``fleet_group``, which admits the listener ports from
    the load balancer's own group only.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    listeners: list[ListenerSpec]
    target_vpc: str | DeferredValue
    public_subnets: list[str]
    security_group: SecurityGroupSpec
    fleet_group: SecurityGroupSpec
    target_groups: list[TargetGroupSpec]
    arn: DeferredValue
    dns_name: DeferredValue

    def target_group_arns(self) -> list[DeferredValue]:
        return [target_group.arn for target_group in self.target_groups]
