import inspect
from functools import wraps
from typing import Any, Callable, TypeVar, cast

from ._operation import Operation
from .exceptions import NotSupportedError

T = TypeVar("T", bound=Callable[..., Any])


def operation(**config: Any) -> Callable[[T], T]:
    """Forward a component method to the bound provider.

    The decorated body runs only when no provider is bound or the
    provider does not implement the operation.
    """

    def decorator(func: T) -> T:
        setattr(func, "__operation__", True)
        setattr(func, "__config__", config)
        is_async = inspect.iscoroutinefunction(func)
        name = func.__name__[1:] if is_async else func.__name__

        def _operation(args, kwargs) -> Operation:
            bound_args = inspect.signature(func).bind(*args, **kwargs)
            bound_args.apply_defaults()
            return Operation.normalize(
                name=name,
                args=dict(bound_args.arguments),
            )

        if not is_async:

            @wraps(func)
            def wrapper(*args, **kwargs) -> Any:
                self = args[0]
                context = kwargs.pop("__context__", None)
                if not hasattr(self, "__provider__"):
                    return func(*args, **kwargs)
                try:
                    return self.__run__(_operation(args, kwargs), context)
                except NotSupportedError:
                    return func(*args, **kwargs)

            return cast(T, wrapper)

        @wraps(func)
        async def awrapper(*args, **kwargs) -> Any:
            self = args[0]
            context = kwargs.pop("__context__", None)
            if not hasattr(self, "__provider__"):
                return await func(*args, **kwargs)
            try:
                return await self.__arun__(_operation(args, kwargs), context)
            except NotSupportedError:
                return await func(*args, **kwargs)

        return cast(T, awrapper)

    return decorator
