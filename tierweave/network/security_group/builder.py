from __future__ import annotations

from typing import Iterable

from tierweave.core import (
    DeferredValue,
    ResourceGraph,
    debug,
    gather_all,
)

from ._models import Permission, SecurityGroupSpec, TrustRule


def normalize_rules(rules: Iterable[TrustRule]) -> list[TrustRule]:
    """Drop duplicate rules and put the rest in canonical order.

    Two rules are duplicates when protocol, ports and source match; the
    first description wins.
    """
    unique: dict[tuple, TrustRule] = dict()
    for rule in rules:
        unique.setdefault(rule.key(), rule)
    return sorted(unique.values(), key=TrustRule.sort_key)


async def render_permissions(rules: list[TrustRule]) -> list[Permission]:
    permissions = await gather_all(*(rule.aresolve() for rule in rules))
    unique: dict[tuple, Permission] = dict()
    for permission in permissions:
        unique.setdefault(permission.key(), permission)
    return sorted(unique.values(), key=Permission.key)


class SecurityGroupBuilder:
    graph: ResourceGraph

    def __init__(self, graph: ResourceGraph):
        self.graph = graph

    def build(
        self,
        name: str,
        vpc_id: str | DeferredValue,
        ingress: Iterable[TrustRule] = (),
        egress: Iterable[TrustRule] = (),
        description: str = "",
    ) -> SecurityGroupSpec:
        """Declare a security group.

        Peer groups referenced by the rules must already be declared in
        the same graph. The group is only materialized after every peer
        group identifier and subnet lookup it references has resolved.
        """
        ingress_rules = normalize_rules(ingress)
        egress_rules = normalize_rules(egress)
        ingress_permissions = self._permissions(
            f"{name}.ingress", ingress_rules
        )
        egress_permissions = self._permissions(f"{name}.egress", egress_rules)
        node = self.graph.declare(
            "security_group",
            name,
            {
                "name": name,
                "description": description,
                "vpc_id": vpc_id,
                "ingress": ingress_permissions,
                "egress": egress_permissions,
            },
        )
        debug(
            "Security group %s: %d ingress, %d egress rules",
            name,
            len(ingress_rules),
            len(egress_rules),
        )
        return SecurityGroupSpec(
            name=name,
            description=description,
            vpc_id=vpc_id,
            ingress=ingress_rules,
            egress=egress_rules,
            id=node.id,
            ingress_permissions=ingress_permissions,
            egress_permissions=egress_permissions,
        )

    def _permissions(
        self, name: str, rules: list[TrustRule]
    ) -> DeferredValue[list[Permission]]:
        async def factory() -> list[Permission]:
            return await render_permissions(rules)

        return DeferredValue(
            factory,
            name=name,
            depends=[value for rule in rules for value in rule.references()],
        )
