"""Custom exceptions for model, repository and oracle layers."""


class ModelError(Exception):
    """Base class for model-related failures."""


class ModelValidationError(ModelError):
    """Raised when model data fails custom business validation."""


class OracleError(Exception):
    """Base class for oracle pipeline failures."""


class LedgerError(OracleError):
    """Base class for ledger read/write failures."""


class LedgerUnavailableError(LedgerError):
    """Raised for transient ledger failures (unreachable node, timeout, RPC error).

    Callers retry: the watcher keeps its cursor, the submitter backs off.
    """


class LedgerRejectedError(LedgerError):
    """Raised when the contract rejects a state-changing call.

    Never retried. Indicates duplicate processing or a race on the pre-check.
    """


class RegistryUnavailableError(OracleError):
    """Raised when the invoice registry lookup fails under the `retry` policy."""


class CursorRegressionError(OracleError):
    """Raised when a scan cursor is asked to move backwards."""


class InvalidStateTransitionError(OracleError):
    """Raised when a loan is moved along a transition the state machine forbids."""
