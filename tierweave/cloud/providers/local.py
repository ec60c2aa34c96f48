"""
In-memory cloud for planning and tests.
"""

__all__ = ["Local"]

from typing import Any

from tierweave.core import (
    Context,
    ResourceItem,
    ResourceRequest,
    Response,
    info,
)
from tierweave.core.exceptions import NotFoundError

from .._helper import select_image
from .._models import ImageItem, ImageSelector, SubnetItem
from ._base import BaseCloudProvider

DEFAULT_ACCOUNT_ID = "123456789012"


class Local(BaseCloudProvider):
    images: list[ImageItem]
    subnets: dict[str, SubnetItem]

    def __init__(
        self,
        region: str = "us-east-1",
        account_id: str | None = None,
        images: list[ImageItem | dict] | None = None,
        subnets: list[SubnetItem | dict] | None = None,
        **kwargs: Any,
    ):
        """Initialize.

        Args:
            region:
                Region name.
            account_id:
                Account id used in allocated ARNs.
            images:
                Images visible to lookups.
            subnets:
                Subnets visible to lookups.
        """
        self.region = region
        self.account_id = account_id or DEFAULT_ACCOUNT_ID
        self.images = [
            ImageItem.from_dict(i) if isinstance(i, dict) else i
            for i in images or []
        ]
        self.subnets = dict()
        for subnet in subnets or []:
            item = (
                SubnetItem.from_dict(subnet)
                if isinstance(subnet, dict)
                else subnet
            )
            self.subnets[item.id] = item
        super().__init__(**kwargs)

    def __setup__(self, context: Context | None = None) -> None:
        pass

    async def __asetup__(self, context: Context | None = None) -> None:
        pass

    def find_image(
        self,
        selector: ImageSelector,
        **kwargs: Any,
    ) -> Response[ImageItem]:
        image = select_image(self.images, selector)
        info("Selected image %s (%s)", image.id, image.name)
        return Response(result=image)

    def get_subnets(
        self,
        subnet_ids: list[str],
        **kwargs: Any,
    ) -> Response[list[SubnetItem]]:
        missing = [id for id in subnet_ids if id not in self.subnets]
        if missing:
            raise NotFoundError(f"Subnets not found: {', '.join(missing)}")
        return Response(result=[self.subnets[id] for id in subnet_ids])

    async def afind_image(
        self,
        selector: ImageSelector,
        **kwargs: Any,
    ) -> Response[ImageItem]:
        return self.find_image(selector=selector, **kwargs)

    async def aget_subnets(
        self,
        subnet_ids: list[str],
        **kwargs: Any,
    ) -> Response[list[SubnetItem]]:
        return self.get_subnets(subnet_ids=subnet_ids, **kwargs)

    async def aallocate(
        self,
        request: ResourceRequest,
        **kwargs: Any,
    ) -> Response[ResourceItem]:
        return self.allocate(request=request, **kwargs)

    def _get_account_id(self) -> str:
        return self.account_id or DEFAULT_ACCOUNT_ID
