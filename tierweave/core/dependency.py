"""
Resource request graph.

Every infrastructure object a topology needs is declared here once, in
construction order. A node's identifier is a ``DeferredValue`` that
resolves only after every deferred value inside the node's properties has
resolved, and is then allocated by the cloud provider. Declaring a node
whose properties point at a resource that is not already part of the
graph is rejected, so the graph is acyclic by construction.
"""

from __future__ import annotations

__all__ = [
    "ResourceGraph",
    "ResourceItem",
    "ResourceNode",
    "ResourceRequest",
    "scoped_name",
]

from typing import Any

from ._async_helper import gather_all
from ._log_helper import debug, info
from .data_model import DataModel
from .deferred import DeferredValue, collect_deferred, resolve_deep
from .exceptions import (
    ConflictError,
    CyclicOrMissingDependency,
    NotFoundError,
    PreconditionFailedError,
)


def scoped_name(owner: str, suffix: str) -> str:
    """Name of a resource that belongs to ``owner``.

    Owner names never contain a dot, so names of resources owned by
    different owners cannot collide.
    """
    return f"{owner}.{suffix}"


class ResourceRequest(DataModel):
    """Allocation request for one fully resolved resource."""

    kind: str
    """Resource kind, e.g. ``security_group``."""

    name: str
    """Logical name, unique within the graph."""

    properties: dict[str, Any] = dict()
    """Resolved properties."""


class ResourceItem(DataModel):
    """Materialized resource."""

    kind: str
    """Resource kind."""

    name: str
    """Logical name."""

    id: str
    """Allocated identifier."""

    attributes: dict[str, str] = dict()
    """Allocated attributes such as ``arn`` or ``dns_name``."""

    properties: dict[str, Any] = dict()
    """Resolved properties."""

    depends: list[str] = list()
    """Logical names of the resources this one references."""


class ResourceNode:
    graph: ResourceGraph
    index: int
    kind: str
    name: str
    properties: dict[str, Any]
    depends: list[ResourceNode]
    item: ResourceItem | None
    id: DeferredValue[str]

    def __init__(
        self,
        graph: ResourceGraph,
        index: int,
        kind: str,
        name: str,
        properties: dict[str, Any],
        depends: list[ResourceNode],
    ):
        self.graph = graph
        self.index = index
        self.kind = kind
        self.name = name
        self.properties = properties
        self.depends = depends
        self.item = None
        self._attributes: dict[str, DeferredValue[str]] = dict()
        self.id = DeferredValue(
            self._materialize, name=f"{kind}:{name}", origins=[self]
        )

    async def _materialize(self) -> str:
        item = await self.graph._materialize(self)
        return item.id

    def attribute(self, name: str) -> DeferredValue[str]:
        if name not in self._attributes:

            def read(_: str) -> str:
                if self.item is None:
                    raise PreconditionFailedError(
                        f"{self.kind} {self.name} is not materialized"
                    )
                if name not in self.item.attributes:
                    raise NotFoundError(
                        f"{self.kind} {self.name} has no attribute '{name}'"
                    )
                return self.item.attributes[name]

            self._attributes[name] = self.id.map(
                read, name=f"{self.kind}:{self.name}.{name}"
            )
        return self._attributes[name]

    def __repr__(self) -> str:
        return f"ResourceNode({self.kind}:{self.name})"


class ResourceGraph:
    allocator: Any
    nodes: list[ResourceNode]
    materialized: list[str]

    def __init__(self, allocator: Any):
        """Initialize.

        Args:
            allocator:
                Object exposing ``aallocate(request=...)`` returning a
                ``Response[ResourceItem]``, normally a ``Cloud`` component.
        """
        self.allocator = allocator
        self.nodes = []
        self.materialized = []
        self._by_name: dict[str, ResourceNode] = dict()

    def declare(
        self,
        kind: str,
        name: str,
        properties: dict[str, Any] | None = None,
    ) -> ResourceNode:
        if name in self._by_name:
            raise ConflictError(f"Resource {name} is already declared")
        properties = dict(properties or {})
        depends: list[ResourceNode] = []
        for value in collect_deferred(properties):
            for origin in value.origins:
                if self._by_name.get(origin.name) is not origin:
                    raise CyclicOrMissingDependency(
                        f"{kind} {name} references {origin.kind} "
                        f"{origin.name}, which is not declared before it"
                    )
                if origin not in depends:
                    depends.append(origin)
        depends.sort(key=lambda node: node.index)
        node = ResourceNode(
            graph=self,
            index=len(self.nodes),
            kind=kind,
            name=name,
            properties=properties,
            depends=depends,
        )
        self.nodes.append(node)
        self._by_name[name] = node
        debug(
            "Declared %s %s (depends on %s)",
            kind,
            name,
            [d.name for d in depends],
        )
        return node

    def get(self, name: str) -> ResourceNode:
        if name not in self._by_name:
            raise NotFoundError(f"Resource {name} is not declared")
        return self._by_name[name]

    def nodes_of(self, kind: str) -> list[ResourceNode]:
        return [node for node in self.nodes if node.kind == kind]

    async def _materialize(self, node: ResourceNode) -> ResourceItem:
        properties = await resolve_deep(node.properties)
        response = await self.allocator.aallocate(
            request=ResourceRequest(
                kind=node.kind,
                name=node.name,
                properties=properties,
            )
        )
        allocated: ResourceItem = response.result
        node.item = ResourceItem(
            kind=node.kind,
            name=node.name,
            id=allocated.id,
            attributes=allocated.attributes,
            properties=properties,
            depends=[d.name for d in node.depends],
        )
        self.materialized.append(node.name)
        return node.item

    async def amaterialize(self) -> list[ResourceItem]:
        await gather_all(*(node.id.resolve() for node in self.nodes))
        info("Materialized %d resources", len(self.nodes))
        return [node.item for node in self.nodes if node.item is not None]
