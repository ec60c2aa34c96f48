from typing import Any

from tierweave.core import (
    Component,
    ResourceItem,
    ResourceRequest,
    Response,
    operation,
)

from ._models import ImageItem, ImageSelector, SubnetItem


class Cloud(Component):
    """Lookups and identifier allocation against a cloud account."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)

    @operation()
    def find_image(
        self,
        selector: ImageSelector,
        **kwargs: Any,
    ) -> Response[ImageItem]:
        """Find the machine image matching the selector."""
        ...

    @operation()
    def get_subnets(
        self,
        subnet_ids: list[str],
        **kwargs: Any,
    ) -> Response[list[SubnetItem]]:
        """Get subnets by id."""
        ...

    @operation()
    def allocate(
        self,
        request: ResourceRequest,
        **kwargs: Any,
    ) -> Response[ResourceItem]:
        """Allocate identifiers for a resolved resource request."""
        ...

    @operation()
    async def afind_image(
        self,
        selector: ImageSelector,
        **kwargs: Any,
    ) -> Response[ImageItem]:
        """Find the machine image matching the selector."""
        ...

    @operation()
    async def aget_subnets(
        self,
        subnet_ids: list[str],
        **kwargs: Any,
    ) -> Response[list[SubnetItem]]:
        """Get subnets by id."""
        ...

    @operation()
    async def aallocate(
        self,
        request: ResourceRequest,
        **kwargs: Any,
    ) -> Response[ResourceItem]:
        """Allocate identifiers for a resolved resource request."""
        ...
