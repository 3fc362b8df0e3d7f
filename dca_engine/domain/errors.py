"""Errors raised by the DCA engine."""


class DCAError(Exception):
    """Base class for all engine errors."""


class ValidationError(DCAError):
    """Raised when a request carries invalid input (e.g. budget below minimum)."""


class NotFoundError(DCAError):
    """Raised when an entity (strategy, account) does not exist."""

    def __init__(self, entity: str, key: object):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} {key} not found")


class AuthorizationError(DCAError):
    """Raised when the caller does not own the strategy."""

    def __init__(self, strategy_id: int, caller: str):
        self.strategy_id = strategy_id
        self.caller = caller
        super().__init__(f"Caller {caller} is not authorized for strategy {strategy_id}")


class OracleError(DCAError):
    """Raised when a price cannot be fetched or parsed."""

    def __init__(self, asset: str, msg: str):
        self.asset = asset
        self.msg = msg
        super().__init__(f"Price oracle error for {asset}: {msg}")


class ExecutionError(DCAError):
    """Raised when a chain executor fails to complete a purchase."""


class SkippedError(DCAError):
    """Raised when an execution is deliberately not performed."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Execution skipped: {reason}")
