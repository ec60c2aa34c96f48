from ._async_helper import gather_all, run_async, run_sync
from ._component import Component
from ._context import Context
from ._decorators import operation
from ._loader import Loader
from ._log_helper import debug, info, warn
from ._operation import Operation
from ._provider import Provider
from ._response import Response
from ._yaml_loader import YamlLoader
from .data_model import DataModel
from .deferred import (
    DeferredValue,
    collect_deferred,
    interpolate,
    resolve_deep,
)
from .dependency import (
    ResourceGraph,
    ResourceItem,
    ResourceNode,
    ResourceRequest,
    scoped_name,
)

__all__ = [
    "Component",
    "Context",
    "DataModel",
    "DeferredValue",
    "Loader",
    "Operation",
    "Provider",
    "ResourceGraph",
    "ResourceItem",
    "ResourceNode",
    "ResourceRequest",
    "Response",
    "YamlLoader",
    "collect_deferred",
    "debug",
    "gather_all",
    "info",
    "interpolate",
    "operation",
    "resolve_deep",
    "run_async",
    "run_sync",
    "scoped_name",
    "warn",
]
