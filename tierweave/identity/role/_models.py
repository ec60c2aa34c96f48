from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import ConfigDict, model_validator

from tierweave.core import DataModel, DeferredValue, resolve_deep
from tierweave.core.exceptions import InvalidPolicy

EC2_PRINCIPAL = "ec2.amazonaws.com"
POLICY_VERSION = "2012-10-17"


class Effect(str, Enum):
    ALLOW = "Allow"
    DENY = "Deny"


class PolicyStatement(DataModel):
    """One permission statement.

    Resources may be deferred, e.g. the ARN of a bucket declared in the
    same topology.
    """

    model_config = ConfigDict(frozen=True)

    effect: Effect = Effect.ALLOW
    actions: list[str]
    resources: list[str | DeferredValue] = ["*"]

    @model_validator(mode="after")
    def _check(self) -> PolicyStatement:
        if not self.actions:
            raise InvalidPolicy("A statement needs at least one action")
        if not self.resources:
            raise InvalidPolicy("A statement needs at least one resource")
        return self

    def references(self) -> list[DeferredValue]:
        return [r for r in self.resources if isinstance(r, DeferredValue)]

    async def aresolve(self) -> dict[str, Any]:
        return {
            "Effect": self.effect.value,
            "Action": sorted(self.actions),
            "Resource": await resolve_deep(self.resources),
        }


class RolePolicy(DataModel):
    """Identity a fleet assumes.

    ``role_id`` resolves to the role ARN, ``role_name`` to its physical
    name and ``profile_id`` to the instance profile name.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    trusted_principal: str
    statements: list[PolicyStatement]
    role_id: DeferredValue
    role_name: DeferredValue
    profile_id: DeferredValue
    permission_document: DeferredValue

    def trust_document(self) -> dict[str, Any]:
        return trust_document(self.trusted_principal)


def trust_document(principal: str) -> dict[str, Any]:
    return {
        "Version": POLICY_VERSION,
        "Statement": [
            {
                "Effect": Effect.ALLOW.value,
                "Principal": {"Service": principal},
                "Action": "sts:AssumeRole",
            }
        ],
    }


def discovery_statement() -> PolicyStatement:
    """Lets a machine find the other members of its fleet."""
    return PolicyStatement(
        actions=[
            "autoscaling:DescribeAutoScalingGroups",
            "ec2:DescribeInstances",
            "ec2:DescribeTags",
        ],
    )
