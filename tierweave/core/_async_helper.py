import asyncio
import threading
from typing import Any, Awaitable, Callable

_loop: asyncio.AbstractEventLoop | None = None
_loop_thread: threading.Thread | None = None
_loop_lock = threading.Lock()


def _ensure_loop() -> asyncio.AbstractEventLoop:
    global _loop, _loop_thread
    with _loop_lock:
        if _loop and not _loop.is_closed():
            return _loop

        _loop = asyncio.new_event_loop()

        def _run_loop():
            asyncio.set_event_loop(_loop)
            _loop.run_forever()

        _loop_thread = threading.Thread(target=_run_loop, daemon=True)
        _loop_thread.start()
        return _loop


def run_async(func: Callable[..., Any], *args, **kwargs):
    return asyncio.to_thread(func, *args, **kwargs)


def run_sync(afunc: Callable[..., Any], *args, **kwargs):
    loop = _ensure_loop()

    coro = afunc(*args, **kwargs)
    future = asyncio.run_coroutine_threadsafe(coro, loop)
    return future.result()


async def gather_all(*aws: Awaitable[Any]) -> list[Any]:
    """Await every awaitable and raise the first failure, if any.

    Unlike a bare ``asyncio.gather`` no sibling is left running with an
    unretrieved exception once one of them fails.
    """
    results = await asyncio.gather(*aws, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return list(results)
