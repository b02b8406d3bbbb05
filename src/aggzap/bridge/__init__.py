"""Cross-network message transport."""

from aggzap.bridge.base import BridgeMessage, BridgeTransport, RelayResult
from aggzap.bridge.local import LocalBridge

__all__ = [
    "BridgeMessage",
    "BridgeTransport",
    "LocalBridge",
    "RelayResult",
]
