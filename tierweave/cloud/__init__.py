from tierweave.core.exceptions import BadRequestError, NotFoundError

from ._models import (
    CloudConfig,
    ImageItem,
    ImageSelector,
    NetworkContext,
    SubnetItem,
)
from .component import Cloud

__all__ = [
    "Cloud",
    "CloudConfig",
    "ImageItem",
    "ImageSelector",
    "NetworkContext",
    "SubnetItem",
    "BadRequestError",
    "NotFoundError",
]
