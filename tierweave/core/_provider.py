from typing import Any

from ._async_helper import run_async, run_sync
from ._context import Context
from ._operation import Operation
from .exceptions import NotSupportedError


class Provider:
    __component__: Any

    def __init__(self, **kwargs):
        for key, value in kwargs.items():
            setattr(self, key, value)

    def __setup__(self, context: Context | None = None) -> None:
        pass

    async def __asetup__(self, context: Context | None = None) -> None:
        await run_async(func=self.__setup__, context=context)

    def __run__(
        self,
        operation: Operation | None = None,
        context: Context | None = None,
        **kwargs,
    ) -> Any:
        if operation and operation.name:
            func = getattr(self, operation.name, None)
            if func and callable(func):
                self.__setup__(context=context)
                return func(**(operation.args or {}))

            afunc = getattr(self, f"a{operation.name}", None)
            if callable(afunc):
                run_sync(self.__asetup__, context=context)
                return run_sync(afunc, **(operation.args or {}))
        raise NotSupportedError(
            str(operation) if operation is not None else None
        )

    async def __arun__(
        self,
        operation: Operation | None = None,
        context: Context | None = None,
        **kwargs,
    ) -> Any:
        if operation and operation.name:
            afunc = getattr(self, f"a{operation.name}", None)
            if afunc and callable(afunc):
                await self.__asetup__(context=context)
                return await afunc(**(operation.args or {}))

        return await run_async(
            func=self.__run__,
            operation=operation,
            context=context,
            **kwargs,
        )
