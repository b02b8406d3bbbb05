"""Abstract bridge transport interface."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from aggzap.chain import CallContext
from aggzap.ledger.models import BridgeDeposit, MessageStatus

logger = logging.getLogger(__name__)


@dataclass
class BridgeMessage:
    """An asset transfer plus call payload travelling between two networks."""

    message_id: str
    origin_network: int
    origin_address: str
    destination_network: int
    destination_address: str
    fallback_address: str
    token: str
    amount: int
    call_data: bytes = b""
    force_update_global_exit_root: bool = True
    status: MessageStatus = MessageStatus.PENDING
    error_message: Optional[str] = None

    @classmethod
    def from_record(cls, deposit: BridgeDeposit) -> "BridgeMessage":
        return cls(
            message_id=deposit.message_id,
            origin_network=deposit.origin_network,
            origin_address=deposit.origin_address,
            destination_network=deposit.destination_network,
            destination_address=deposit.destination_address,
            fallback_address=deposit.fallback_address,
            token=deposit.token,
            amount=deposit.amount,
            call_data=bytes.fromhex(deposit.call_data or ""),
            force_update_global_exit_root=deposit.force_update_global_exit_root,
            status=MessageStatus(deposit.status),
            error_message=deposit.error_message,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "message_id": self.message_id,
            "origin_network": self.origin_network,
            "origin_address": self.origin_address,
            "destination_network": self.destination_network,
            "destination_address": self.destination_address,
            "fallback_address": self.fallback_address,
            "token": self.token,
            "amount": str(self.amount),
            "call_data": "0x" + self.call_data.hex(),
            "status": self.status.value,
            "error_message": self.error_message,
        }


@dataclass
class RelayResult:
    """Outcome of delivering one bridge message."""

    message_id: str
    status: MessageStatus
    receipt: Optional[Any] = None  # whatever the destination callback returned
    error: Optional[str] = None

    @property
    def delivered(self) -> bool:
        return self.status == MessageStatus.DELIVERED


class BridgeTransport(ABC):
    """Abstract base class for cross-network message transports.

    Delivery is asynchronous: ``bridge_and_call`` only queues the message on
    the origin network. The destination side learns about it when the
    message is relayed, and the origin side never gets a synchronous answer.
    """

    @property
    @abstractmethod
    def address(self) -> str:
        """Bridge contract address (identical on every network)."""
        pass

    @abstractmethod
    async def bridge_and_call(
        self,
        ctx: CallContext,
        destination_network_id: int,
        destination_address: str,
        fallback_address: str,
        amount: int,
        token: str,
        force_update_global_exit_root: bool = True,
        permit_data: bytes = b"",
        call_data: bytes = b"",
    ) -> BridgeMessage:
        """
        Lock an asset on the origin network and queue a call for the destination.

        Args:
            ctx: Call context; ``ctx.sender`` is the calling contract, which
                must have approved exactly ``amount`` of ``token`` (or attached
                it as value for the native asset)
            destination_network_id: Network id of the destination
            destination_address: Contract whose ``on_message_received`` is invoked
            fallback_address: Receives the asset on the origin network if the
                destination call fails
            amount: Asset amount in base units
            token: Token address, or the native token
            force_update_global_exit_root: Passed through to the transport
            permit_data: Optional permit signature (unused when empty)
            call_data: Payload handed to the destination callback

        Returns:
            The queued message
        """
        pass

    @abstractmethod
    async def relay(self, message: Any) -> RelayResult:
        """Deliver a queued message to its destination network."""
        pass

    @abstractmethod
    async def pending_messages(self) -> list[BridgeMessage]:
        """Messages queued but not yet delivered or refunded."""
        pass
