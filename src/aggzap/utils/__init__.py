"""Utility modules for AggZap."""

from aggzap.utils.locks import ExecutionLock, LockTimeoutError

__all__ = ["ExecutionLock", "LockTimeoutError"]
