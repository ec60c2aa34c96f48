from __future__ import annotations

from typing import Any, Iterable

from tierweave.core import (
    DeferredValue,
    ResourceGraph,
    debug,
    gather_all,
    scoped_name,
)
from tierweave.core.exceptions import InvalidPolicy

from ._models import (
    POLICY_VERSION,
    PolicyStatement,
    RolePolicy,
    trust_document,
)


class RoleBuilder:
    graph: ResourceGraph

    def __init__(self, graph: ResourceGraph):
        self.graph = graph

    def build(
        self,
        name: str,
        trusted_principal: str,
        statements: Iterable[PolicyStatement],
    ) -> RolePolicy:
        """Declare a role, its inline policy and its instance profile.

        Raises:
            InvalidPolicy:
                No statement was given.
        """
        statements = list(statements)
        if not statements:
            raise InvalidPolicy(f"Role {name} has no permission statements")
        document = self._document(name, statements)
        role = self.graph.declare(
            "iam_role",
            scoped_name(name, "role"),
            {
                "name": f"{name}-role",
                "assume_role_policy": trust_document(trusted_principal),
            },
        )
        self.graph.declare(
            "iam_role_policy",
            scoped_name(name, "role-policy"),
            {
                "role": role.id,
                "policy": document,
            },
        )
        profile = self.graph.declare(
            "iam_instance_profile",
            scoped_name(name, "instance-profile"),
            {"role": role.id},
        )
        debug("Role %s with %d statements", name, len(statements))
        return RolePolicy(
            name=name,
            trusted_principal=trusted_principal,
            statements=statements,
            role_id=role.attribute("arn"),
            role_name=role.id,
            profile_id=profile.id,
            permission_document=document,
        )

    def _document(
        self, name: str, statements: list[PolicyStatement]
    ) -> DeferredValue[dict[str, Any]]:
        async def factory() -> dict[str, Any]:
            return {
                "Version": POLICY_VERSION,
                "Statement": await gather_all(
                    *(statement.aresolve() for statement in statements)
                ),
            }

        return DeferredValue(
            factory,
            name=f"{name}.policy",
            depends=[
                value
                for statement in statements
                for value in statement.references()
            ],
        )
