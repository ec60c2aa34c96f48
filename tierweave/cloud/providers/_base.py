from typing import Any

from tierweave.core import (
    Provider,
    ResourceItem,
    ResourceRequest,
    Response,
    run_async,
)

from .._helper import allocate_resource
from .._models import ImageItem, ImageSelector, SubnetItem


class BaseCloudProvider(Provider):
    region: str
    account_id: str | None

    def find_image(
        self,
        selector: ImageSelector,
        **kwargs: Any,
    ) -> Response[ImageItem]:
        raise NotImplementedError(
            "Find image method must be implemented by provider."
        )

    def get_subnets(
        self,
        subnet_ids: list[str],
        **kwargs: Any,
    ) -> Response[list[SubnetItem]]:
        raise NotImplementedError(
            "Get subnets method must be implemented by provider."
        )

    def allocate(
        self,
        request: ResourceRequest,
        **kwargs: Any,
    ) -> Response[ResourceItem]:
        item = allocate_resource(
            request=request,
            account_id=self._get_account_id(),
            region=self.region,
        )
        return Response(result=item)

    async def afind_image(
        self,
        selector: ImageSelector,
        **kwargs: Any,
    ) -> Response[ImageItem]:
        return await run_async(self.find_image, selector=selector, **kwargs)

    async def aget_subnets(
        self,
        subnet_ids: list[str],
        **kwargs: Any,
    ) -> Response[list[SubnetItem]]:
        return await run_async(
            self.get_subnets, subnet_ids=subnet_ids, **kwargs
        )

    async def aallocate(
        self,
        request: ResourceRequest,
        **kwargs: Any,
    ) -> Response[ResourceItem]:
        return await run_async(self.allocate, request=request, **kwargs)

    def _get_account_id(self) -> str:
        raise NotImplementedError(
            "Account id lookup must be implemented by provider."
        )
