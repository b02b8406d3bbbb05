"""Address helpers built on eth_utils."""

from typing import Union

from eth_utils import is_address, keccak, to_checksum_address

from aggzap.errors import InvalidAddress

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# The chain's native asset is tracked in the ledger under the zero address
NATIVE_TOKEN = ZERO_ADDRESS

UINT256_MAX = 2**256 - 1
UINT32_MAX = 2**32 - 1


def normalize_address(value: Union[str, bytes], allow_zero: bool = True) -> str:
    """Return the EIP-55 checksum form of an address.

    Raises:
        InvalidAddress: If the value is not an address, or is the zero
            address while ``allow_zero`` is False.
    """
    if isinstance(value, bytes):
        if len(value) != 20:
            raise InvalidAddress(f"Invalid address bytes: {value.hex()}")
        value = "0x" + value.hex()
    if not isinstance(value, str) or not is_address(value):
        raise InvalidAddress(f"Invalid address: {value!r}")

    address = to_checksum_address(value)
    if not allow_zero and address == ZERO_ADDRESS:
        raise InvalidAddress("Zero address not allowed")
    return address


def derive_address(*parts: object) -> str:
    """Derive a deterministic address from arbitrary seed parts.

    Used for contract deployments and simulated accounts: the address is the
    last 20 bytes of keccak256 over the joined parts.
    """
    seed = ":".join(str(part) for part in parts)
    return to_checksum_address(keccak(text=seed)[-20:])
