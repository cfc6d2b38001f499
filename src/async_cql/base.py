"""
Base classes and helpers shared by the async surface.

The protocol engine blocks on socket I/O, so the async classes hand every
engine call to the event loop's default executor.
"""

import asyncio
import functools
from abc import ABC, abstractmethod
from typing import Any, Callable, TypeVar

from .exceptions import ConnectionError

T = TypeVar("T")


async def run_blocking(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """
    Run a blocking engine call without blocking the event loop.

    Args:
        func: Blocking callable.
        *args: Positional arguments for ``func``.
        **kwargs: Keyword arguments for ``func``.

    Returns:
        Whatever ``func`` returns; its exceptions propagate unchanged.
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))


class AsyncCloseable(ABC):
    """
    Base class for objects that can be closed asynchronously.

    Close is idempotent: concurrent callers wait on the same lock and only
    the first one runs ``_do_close``.
    """

    def __init__(self) -> None:
        self._closed = False
        self._close_lock = asyncio.Lock()

    @abstractmethod
    async def _do_close(self) -> None:
        """Release the underlying resources."""

    async def close(self) -> None:
        async with self._close_lock:
            if not self._closed:
                self._closed = True
                await self._do_close()

    @property
    def is_closed(self) -> bool:
        return self._closed

    def _check_not_closed(self) -> None:
        """
        Raises:
            ConnectionError: If the resource is closed.
        """
        if self._closed:
            raise ConnectionError(f"{self.__class__.__name__} is closed")


class AsyncContextManageable:
    """
    Mixin adding ``async with`` support.

    Classes using this mixin must implement an async close() method.
    """

    async def __aenter__(self: T) -> T:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()  # type: ignore
