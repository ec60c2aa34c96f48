from __future__ import annotations

import importlib
import inspect
from typing import Any

from ._provider import Provider
from .constants import ROOT_PACKAGE_NAME
from .exceptions import LoadError


class Loader:
    @staticmethod
    def get_provider_path(
        component_module: str,
        provider_type: str,
    ) -> str:
        if ":" in provider_type or provider_type.startswith(
            f"{ROOT_PACKAGE_NAME}."
        ):
            return provider_type
        package = component_module.rsplit(".", 1)[0]
        return f"{package}.providers.{provider_type}"

    @staticmethod
    def load_provider_instance(
        path: str | None = None,
        parameters: dict[str, Any] = dict(),
    ) -> Provider:
        if path is None:
            return Provider(**parameters)
        provider = Loader.load_class(path, Provider)
        return provider(**parameters)

    @staticmethod
    def load_class(path: str, type: Any) -> Any:
        class_name = None
        if ":" in path:
            module_name, class_name = path.split(":", 1)
        else:
            module_name = path
        try:
            module = importlib.import_module(module_name)
        except ModuleNotFoundError as e:
            raise LoadError(f"Module {module_name} not found") from e
        if class_name is not None:
            cls = getattr(module, class_name, None)
            if cls is None:
                raise LoadError(f"{class_name} not found in {module_name}")
            return cls
        for _, cls in inspect.getmembers(module, inspect.isclass):
            if issubclass(cls, type) and cls.__module__ == module_name:
                return cls
        raise LoadError(f"{type.__name__} not found at {module_name}")
