from __future__ import annotations


class DocgateError(Exception):
    """Base error for docgate."""


class ProviderConfigError(DocgateError):
    """Missing or invalid provider configuration."""


class ConflictError(DocgateError):
    """Duplicate unique key (role name+guard, taxonomy prefix, catalog rule)."""


class NotFoundError(DocgateError):
    """Referenced role, rule, category, type, status or document does not exist."""


class ScopeResolutionError(NotFoundError):
    """A document references a category or type that cannot be resolved."""


class InputValidationError(DocgateError):
    """Malformed identifier, unparsable date, bad upload or missing field."""


class AccessDeniedError(DocgateError):
    """The subject is not permitted to perform the requested action."""


class DependencyFailureError(DocgateError):
    """External dependency failure; the enclosing unit of work is rolled back."""


class ObjectStoreError(DependencyFailureError):
    """Object store upload/remove failure or timeout."""


class PolicyStoreError(DependencyFailureError):
    """Tuple store failure (load, persist or evaluation)."""
