"""Concurrency control for chain execution.

A chain executes one transaction at a time. ``ExecutionLock`` provides that
serialization with a bounded wait, so a stuck call surfaces as an error
instead of hanging every caller behind it.
"""

import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class LockTimeoutError(Exception):
    """Raised when a lock cannot be acquired within the timeout period."""

    pass


class ExecutionLock:
    """Async context manager serializing transactions on one chain.

    Example:
        lock = ExecutionLock("amoy", timeout=30.0)
        async with lock:
            # exclusive access to the chain's state
            ...
    """

    def __init__(self, name: str, timeout: Optional[float] = 30.0):
        """Initialize the lock.

        Args:
            name: Chain name, for logging
            timeout: Maximum time to wait for the lock (None = wait forever)
        """
        self.name = name
        self.timeout = timeout
        self._lock = asyncio.Lock()

    def locked(self) -> bool:
        return self._lock.locked()

    async def acquire(self) -> None:
        try:
            if self.timeout:
                await asyncio.wait_for(self._lock.acquire(), timeout=self.timeout)
            else:
                await self._lock.acquire()
        except asyncio.TimeoutError:
            logger.warning(f"Execution lock timeout on {self.name} after {self.timeout}s")
            raise LockTimeoutError(
                f"Could not acquire execution lock for {self.name} within {self.timeout}s"
            )
        logger.debug(f"Execution lock acquired on {self.name}")

    def release(self) -> None:
        self._lock.release()
        logger.debug(f"Execution lock released on {self.name}")

    async def __aenter__(self) -> "ExecutionLock":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False
