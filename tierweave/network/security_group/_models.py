from __future__ import annotations

import ipaddress
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import ConfigDict, Field, field_validator, model_validator

from tierweave.core import DataModel, DeferredValue
from tierweave.core.exceptions import BadRequestError, InvalidRuleRange

MAX_PORT = 65535
ANYWHERE = "0.0.0.0/0"


class Protocol(str, Enum):
    TCP = "tcp"
    UDP = "udp"
    ALL = "-1"

    @classmethod
    def _missing_(cls, value: object) -> Protocol | None:
        if isinstance(value, str) and value.lower() == "all":
            return cls.ALL
        if isinstance(value, str) and value.lower() in ("tcp", "udp"):
            return cls(value.lower())
        return None


class Direction(str, Enum):
    INGRESS = "ingress"
    EGRESS = "egress"


class SelfSource(DataModel):
    """Traffic from other members of the same group."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["self"] = "self"

    def key(self) -> tuple:
        return ("self",)

    def references(self) -> list[DeferredValue]:
        return []

    async def aresolve(self) -> dict[str, Any]:
        return {"self_ref": True}


class PeerGroupSource(DataModel):
    """Traffic from members of another, already declared group."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["peer_group"] = "peer_group"
    group: DeferredValue

    def key(self) -> tuple:
        return ("peer_group", id(self.group))

    def references(self) -> list[DeferredValue]:
        return [self.group]

    async def aresolve(self) -> dict[str, Any]:
        return {"group_ids": [await self.group.resolve()]}


class CidrSource(DataModel):
    """Traffic from a fixed CIDR block."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["cidr"] = "cidr"
    cidr: str

    @field_validator("cidr")
    @classmethod
    def _check_cidr(cls, value: str) -> str:
        return str(ipaddress.ip_network(value, strict=False))

    def key(self) -> tuple:
        return ("cidr", self.cidr)

    def references(self) -> list[DeferredValue]:
        return []

    async def aresolve(self) -> dict[str, Any]:
        return {"cidr_blocks": [self.cidr]}


class VpcCidrsSource(DataModel):
    """Traffic from the CIDR blocks of a set of subnets."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["vpc_cidrs"] = "vpc_cidrs"
    cidrs: DeferredValue

    def key(self) -> tuple:
        return ("vpc_cidrs", id(self.cidrs))

    def references(self) -> list[DeferredValue]:
        return [self.cidrs]

    async def aresolve(self) -> dict[str, Any]:
        return {"cidr_blocks": sorted(set(await self.cidrs.resolve()))}


TrustSource = Annotated[
    Union[SelfSource, PeerGroupSource, CidrSource, VpcCidrsSource],
    Field(discriminator="kind"),
]


class TrustRule(DataModel):
    """One firewall permission.

    ``Protocol.ALL`` ignores the given ports and always covers the full
    range, recorded as ``0``-``0``.
    """

    model_config = ConfigDict(frozen=True)

    protocol: Protocol = Protocol.TCP
    from_port: int
    to_port: int
    source: TrustSource = Field(default_factory=SelfSource)
    description: str = ""

    @model_validator(mode="before")
    @classmethod
    def _full_range_for_all(cls, data: Any) -> Any:
        if isinstance(data, dict) and "protocol" in data:
            try:
                protocol = Protocol(data["protocol"])
            except ValueError:
                return data
            if protocol == Protocol.ALL:
                return data | {"from_port": 0, "to_port": 0}
        return data

    @model_validator(mode="after")
    def _check_range(self) -> TrustRule:
        if self.from_port < 0 or self.to_port < 0:
            raise InvalidRuleRange(
                f"Negative port in range {self.from_port}-{self.to_port}"
            )
        if self.from_port > MAX_PORT or self.to_port > MAX_PORT:
            raise InvalidRuleRange(
                f"Port range {self.from_port}-{self.to_port} exceeds "
                f"{MAX_PORT}"
            )
        if self.from_port > self.to_port:
            raise InvalidRuleRange(
                f"from_port {self.from_port} is greater than "
                f"to_port {self.to_port}"
            )
        return self

    def key(self) -> tuple:
        return (
            self.protocol.value,
            self.from_port,
            self.to_port,
            self.source.key(),
        )

    def sort_key(self) -> tuple:
        return (
            self.protocol.value,
            self.from_port,
            self.to_port,
            self.source.kind,
            self.source.cidr if isinstance(self.source, CidrSource) else "",
        )

    def references(self) -> list[DeferredValue]:
        return self.source.references()

    async def aresolve(self) -> Permission:
        return Permission(
            protocol=self.protocol.value,
            from_port=self.from_port,
            to_port=self.to_port,
            description=self.description,
            **(await self.source.aresolve()),
        )


class Permission(DataModel):
    """Concrete permission with every source resolved."""

    model_config = ConfigDict(frozen=True)

    protocol: str
    from_port: int
    to_port: int
    self_ref: bool = False
    group_ids: list[str] = list()
    cidr_blocks: list[str] = list()
    description: str = ""

    def key(self) -> tuple:
        return (
            self.protocol,
            self.from_port,
            self.to_port,
            self.self_ref,
            tuple(sorted(self.group_ids)),
            tuple(sorted(self.cidr_blocks)),
        )

    def to_ip_permission(self, group_id: str | None = None) -> dict[str, Any]:
        """Render the EC2 ``IpPermissions`` entry.

        Args:
            group_id:
                Identifier of the owning group. Required for self rules.
        """
        permission: dict[str, Any] = {
            "IpProtocol": self.protocol,
            "FromPort": self.from_port,
            "ToPort": self.to_port,
        }
        pairs = [{"GroupId": id} for id in self.group_ids]
        if self.self_ref:
            if group_id is None:
                raise BadRequestError(
                    "A self rule needs the owning group id to render"
                )
            pairs.append({"GroupId": group_id})
        if pairs:
            permission["UserIdGroupPairs"] = [
                pair | {"Description": self.description}
                if self.description
                else pair
                for pair in pairs
            ]
        if self.cidr_blocks:
            permission["IpRanges"] = [
                {"CidrIp": cidr, "Description": self.description}
                if self.description
                else {"CidrIp": cidr}
                for cidr in self.cidr_blocks
            ]
        return permission


class SecurityGroupSpec(DataModel):
    """Named, directional rule set of one security group."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    vpc_id: str | DeferredValue
    ingress: list[TrustRule] = list()
    egress: list[TrustRule] = list()
    id: DeferredValue
    ingress_permissions: DeferredValue
    egress_permissions: DeferredValue

    def references(self) -> list[DeferredValue]:
        return [
            value
            for rule in [*self.ingress, *self.egress]
            for value in rule.references()
        ]
