"""Error taxonomy for the zap protocol.

Every failure raised by a contract call is a ``ZapError``. The chain
transaction that wraps the call rolls back on any exception, so raising is
always enough to guarantee that nothing was partially applied.
"""


class ZapError(Exception):
    """Base class for all protocol errors."""

    pass


# Validation errors: caller-correctable, no state change


class ValidationError(ZapError):
    """The request itself is invalid."""

    pass


class UnsupportedToken(ValidationError):
    """Token is not in the contract's supported token registry."""

    def __init__(self, token: str):
        self.token = token
        super().__init__(f"Unsupported token: {token}")


class InvalidAmount(ValidationError):
    """Amount is zero, negative or otherwise unusable."""

    def __init__(self, amount, reason: str = "amount must be greater than zero"):
        self.amount = amount
        super().__init__(f"Invalid amount {amount}: {reason}")


class InvalidDestinationReceiver(ValidationError):
    """Destination receiver is missing or does not match the registered route."""

    pass


class FeeTooHigh(ValidationError):
    """Fee above the protocol cap."""

    def __init__(self, fee_bps: int, max_fee_bps: int):
        self.fee_bps = fee_bps
        self.max_fee_bps = max_fee_bps
        super().__init__(f"Fee {fee_bps} bps exceeds maximum of {max_fee_bps} bps")


class InvalidAddress(ValidationError):
    """Value is not a valid (or is a forbidden zero) address."""

    pass


class MalformedPayload(ValidationError):
    """Cross-chain payload could not be decoded as an intent."""

    pass


class InsufficientBalance(ValidationError):
    """LP amount exceeds the holder's balance."""

    def __init__(self, have: int, need: int):
        self.have = have
        self.need = need
        super().__init__(f"Insufficient balance: have {have}, need {need}")


# Authorization errors: fatal for the call


class AuthorizationError(ZapError):
    """Caller is not allowed to perform the operation."""

    pass


class UnauthorizedCaller(AuthorizationError):
    """Inbound message did not come from the bridge or from an authorized sender."""

    pass


class UnauthorizedDepositor(AuthorizationError):
    """Caller may not credit another user's pool account."""

    def __init__(self, caller: str, user: str):
        self.caller = caller
        self.user = user
        super().__init__(f"{caller} is not an authorized depositor for {user}")


class NotOwner(AuthorizationError):
    """Administrative operation attempted by someone other than the owner."""

    def __init__(self, caller: str, contract: str):
        self.caller = caller
        self.contract = contract
        super().__init__(f"{caller} is not the owner of {contract}")


# Transport errors: token movement or bridge delivery failed


class TransportError(ZapError):
    """Moving funds or messages failed."""

    pass


class TransferFailed(TransportError):
    """Token ledger rejected a transfer."""

    pass


class InsufficientFunds(TransferFailed):
    """Holder does not have enough tokens."""

    def __init__(self, token: str, holder: str, have: int, need: int):
        self.token = token
        self.holder = holder
        self.have = have
        self.need = need
        super().__init__(
            f"Insufficient funds: {holder} has {have} of {token}, needs {need}"
        )


class InsufficientAllowance(TransferFailed):
    """Spender allowance too small."""

    def __init__(self, token: str, owner: str, spender: str, have: int, need: int):
        self.token = token
        self.owner = owner
        self.spender = spender
        self.have = have
        self.need = need
        super().__init__(
            f"Insufficient allowance: {spender} may spend {have} of {owner}'s {token}, "
            f"needs {need}"
        )


class MessageAlreadyClaimed(TransportError):
    """Bridge message was already delivered or refunded."""

    def __init__(self, message_id: str):
        self.message_id = message_id
        super().__init__(f"Bridge message {message_id} already claimed")


class UnknownMessage(TransportError):
    """Bridge message does not exist."""

    def __init__(self, message_id: str):
        self.message_id = message_id
        super().__init__(f"Unknown bridge message {message_id}")


# Configuration-absence errors: never defaulted


class ConfigurationError(ZapError):
    """Required configuration is missing."""

    pass


class NoPoolConfigured(ConfigurationError):
    """Receiver has no pool registered for the token."""

    def __init__(self, token: str):
        self.token = token
        super().__init__(f"No pool configured for token {token}")


class MissingContract(ConfigurationError):
    """No contract of the expected kind is deployed at the address."""

    def __init__(self, address: str, kind: str = "contract"):
        self.address = address
        self.kind = kind
        super().__init__(f"No {kind} deployed at {address}")


class UnknownNetwork(ConfigurationError):
    """Network is not attached to the bridge or cannot be a destination."""

    def __init__(self, network_id: int):
        self.network_id = network_id
        super().__init__(f"Unknown or invalid network {network_id}")
