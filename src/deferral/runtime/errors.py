"""Exceptions raised by the deferral runtime."""


class DeferralError(Exception):
    """Base exception for deferral errors."""

    pass


class InvalidPriorityError(DeferralError, ValueError):
    """Raised when a priority token is neither "first" nor "last"."""

    pass


class InvalidScopeError(DeferralError, TypeError):
    """Raised when a target is not a usable scope."""

    pass


class InvalidActionError(DeferralError, TypeError):
    """Raised when a deferred action is not callable."""

    pass


class ScopeStateError(DeferralError, RuntimeError):
    """Raised when a scope is entered twice or exited out of order."""

    pass
