"""Exception hierarchy shared by adapters, engines and the API layer."""


class ContribLedgerError(Exception):
    """Base class for all contribledger errors."""


class InvalidAmount(ContribLedgerError):
    """Amount is not a valid non-negative integer (or decimal) string."""


class UndecodableAddress(ContribLedgerError):
    """Address does not decode to the expected prefix/length for its chain."""


class InvalidPayload(ContribLedgerError):
    """Malformed claim input (hash format, note length)."""


class UnsupportedChain(ContribLedgerError):
    pass


class Unauthorized(ContribLedgerError):
    """Missing or wrong shared secret on a trigger endpoint."""


class ExternalServiceError(ContribLedgerError):
    """Raised when an upstream provider misbehaves."""


class RpcError(ExternalServiceError):
    """Transient infrastructure failure, raised once every endpoint and retry is exhausted."""


class NotFoundError(ExternalServiceError):
    """Provider answered authoritatively that the object does not exist. Never retried."""


class JsonRpcError(ExternalServiceError):
    """Node returned a JSON-RPC error object."""

    def __init__(self, code: int | None, message: str) -> None:
        super().__init__(f"JSON-RPC error {code}: {message}")
        self.code = code
        self.rpc_message = message


class PersistenceError(ContribLedgerError):
    """Ledger or cursor store write failed."""
