"""Protocol contracts: tokens, yield pool, zap sender and receiver."""

from aggzap.contracts.base import Contract
from aggzap.contracts.token import Token, from_base_units, to_base_units
from aggzap.contracts.pool import YieldPool
from aggzap.contracts.receiver import DepositReceipt, ReceiverStats, ZapReceiver
from aggzap.contracts.sender import SenderStats, ZapSender, calculate_fee

__all__ = [
    "Contract",
    "Token",
    "to_base_units",
    "from_base_units",
    "YieldPool",
    "ZapReceiver",
    "DepositReceipt",
    "ReceiverStats",
    "ZapSender",
    "SenderStats",
    "calculate_fee",
]
