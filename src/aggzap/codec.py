"""Intent wire format and zap id derivation.

The intent travels inside the bridge message as the standard ABI encoding of
``(address recipient, address token, uint256 amount)``: three 32-byte
big-endian words, 96 bytes, no length prefix. Sender and receiver must agree
on it byte for byte, so both sides go through this module.
"""

from dataclasses import dataclass
from typing import Union

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError, EncodingError
from eth_utils import keccak, to_checksum_address

from aggzap.addresses import UINT256_MAX, normalize_address
from aggzap.errors import InvalidAmount, MalformedPayload

INTENT_TYPES = ("address", "address", "uint256")
INTENT_SIZE = 32 * len(INTENT_TYPES)

ZAP_ID_TYPES = ("uint32", "address", "uint256", "address", "address", "uint256", "uint32", "address")


@dataclass(frozen=True)
class Intent:
    """Cross-chain deposit instruction."""

    recipient: str
    token: str
    amount: int

    def __post_init__(self):
        object.__setattr__(self, "recipient", normalize_address(self.recipient))
        object.__setattr__(self, "token", normalize_address(self.token))
        if not isinstance(self.amount, int) or self.amount < 0 or self.amount > UINT256_MAX:
            raise InvalidAmount(self.amount, "intent amount must fit in uint256")

    def encode(self) -> bytes:
        return encode_intent(self)


def encode_intent(intent: Intent) -> bytes:
    """ABI-encode an intent into its 96-byte wire form."""
    try:
        return encode(list(INTENT_TYPES), [intent.recipient, intent.token, intent.amount])
    except EncodingError as e:
        raise MalformedPayload(f"Cannot encode intent: {e}") from e


def decode_intent(data: Union[bytes, str]) -> Intent:
    """Decode a wire payload back into an intent.

    Accepts raw bytes or a hex string. Anything that is not exactly one
    strictly-padded ``(address, address, uint256)`` tuple is rejected.

    Raises:
        MalformedPayload: On wrong length, bad hex or bad padding.
    """
    if isinstance(data, str):
        try:
            data = bytes.fromhex(data.removeprefix("0x"))
        except ValueError as e:
            raise MalformedPayload(f"Payload is not valid hex: {e}") from e
    if not isinstance(data, (bytes, bytearray)):
        raise MalformedPayload(f"Payload must be bytes, got {type(data).__name__}")
    if len(data) != INTENT_SIZE:
        raise MalformedPayload(f"Intent payload must be {INTENT_SIZE} bytes, got {len(data)}")

    try:
        recipient, token, amount = decode(list(INTENT_TYPES), bytes(data))
    except DecodingError as e:
        raise MalformedPayload(f"Cannot decode intent: {e}") from e

    return Intent(
        recipient=to_checksum_address(recipient),
        token=to_checksum_address(token),
        amount=amount,
    )


def compute_zap_id(
    origin_network: int,
    sender_contract: str,
    nonce: int,
    user: str,
    token: str,
    amount: int,
    destination_network: int,
    destination_receiver: str,
) -> str:
    """Deterministic id of one zap.

    The sender contract's nonce makes ids unique per call even when every
    other field repeats.
    """
    encoded = encode(
        list(ZAP_ID_TYPES),
        [
            origin_network,
            sender_contract,
            nonce,
            user,
            token,
            amount,
            destination_network,
            destination_receiver,
        ],
    )
    return "0x" + keccak(encoded).hex()
