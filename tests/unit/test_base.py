"""
Unit tests for base classes and helpers.
"""

import asyncio
import threading

import pytest

from async_cql.base import AsyncCloseable, AsyncContextManageable, run_blocking
from async_cql.exceptions import ConnectionError


class TestRunBlocking:
    """Test executor offloading."""

    @pytest.mark.asyncio
    async def test_runs_in_worker_thread(self):
        main_thread = threading.get_ident()

        def blocking(a, b=0):
            return threading.get_ident(), a + b

        thread_id, total = await run_blocking(blocking, 1, b=2)

        assert total == 3
        assert thread_id != main_thread

    @pytest.mark.asyncio
    async def test_exceptions_propagate(self):
        def failing():
            raise ConnectionError("down")

        with pytest.raises(ConnectionError):
            await run_blocking(failing)


class TestAsyncCloseable:
    """Test AsyncCloseable base class."""

    @pytest.mark.asyncio
    async def test_close_idempotent(self):
        """Test that close can be called multiple times safely."""

        class TestResource(AsyncCloseable):
            close_count = 0

            async def _do_close(self):
                self.close_count += 1

        resource = TestResource()
        assert not resource.is_closed

        await resource.close()
        await resource.close()

        assert resource.is_closed
        assert resource.close_count == 1

    @pytest.mark.asyncio
    async def test_concurrent_close(self):
        """Test that concurrent close calls are handled properly."""

        class TestResource(AsyncCloseable):
            close_count = 0

            async def _do_close(self):
                await asyncio.sleep(0.05)
                self.close_count += 1

        resource = TestResource()
        await asyncio.gather(resource.close(), resource.close(), resource.close())

        assert resource.close_count == 1

    @pytest.mark.asyncio
    async def test_check_not_closed(self):
        class TestResource(AsyncCloseable):
            async def _do_close(self):
                pass

        resource = TestResource()
        resource._check_not_closed()
        await resource.close()

        with pytest.raises(ConnectionError) as exc_info:
            resource._check_not_closed()
        assert "TestResource is closed" in str(exc_info.value)


class TestAsyncContextManageable:
    """Test async context manager mixin."""

    @pytest.mark.asyncio
    async def test_closes_on_exit(self):
        class TestResource(AsyncCloseable, AsyncContextManageable):
            async def _do_close(self):
                pass

        async with TestResource() as resource:
            assert not resource.is_closed
        assert resource.is_closed
