"""
Error taxonomy for per-transaction processing.

Every exception here is caught at the per-event handler boundary and only
terminates processing of that event.
"""


class CopyTradeError(Exception):
    """Base class for copy trader errors"""
    pass


class ConfigurationError(CopyTradeError):
    """Missing or invalid configuration (wallet keys, RPC endpoints)"""
    pass


class RpcError(CopyTradeError):
    """Solana RPC returned an error payload"""

    def __init__(self, method: str, error):
        self.method = method
        self.error = error
        super().__init__(f"RPC {method} failed: {error}")


class TransactionUnavailable(CopyTradeError):
    """Parsed transaction could not be fetched within the retry budget"""

    def __init__(self, signature: str, attempts: int):
        self.signature = signature
        self.attempts = attempts
        super().__init__(f"Transaction {signature} unavailable after {attempts} attempts")


class InsufficientBalance(CopyTradeError):
    """Controlled wallet cannot cover the sized trade"""

    def __init__(self, required: float, available: float, asset: str = "SOL"):
        self.required = required
        self.available = available
        self.asset = asset
        super().__init__(
            f"Insufficient {asset} balance: required {required:.6f}, available {available:.6f}"
        )


class VenueRejected(CopyTradeError):
    """Venue returned no quote or no transaction id"""

    def __init__(self, venue, reason: str):
        self.venue = venue
        self.reason = reason
        super().__init__(f"{getattr(venue, 'display_name', venue)} rejected swap: {reason}")


class ConfirmationTimeout(CopyTradeError):
    """Submitted swap did not confirm within the polling budget"""

    def __init__(self, signature: str, attempts: int, venue=None, direction=None, mint: str = ""):
        self.signature = signature
        self.attempts = attempts
        self.venue = venue
        self.direction = direction
        self.mint = mint
        super().__init__(f"Transaction {signature} not confirmed after {attempts} attempts")


class NotificationFailure(CopyTradeError):
    """Notification channel rejected a message (logged, never propagated)"""
    pass
