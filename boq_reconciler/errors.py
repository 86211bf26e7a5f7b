# boq_reconciler/errors.py


class ReconcilerError(Exception):
    """Base class for errors raised by the reconciler."""


class NotReadyError(ReconcilerError):
    """Inputs required for a computation are missing or empty."""


class InvalidConfigError(ReconcilerError):
    """Solver parameters are inconsistent (bounds, penalty)."""
