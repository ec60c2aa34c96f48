__all__ = [
    "BaseError",
    "BadRequestError",
    "ConflictError",
    "CyclicOrMissingDependency",
    "InternalError",
    "InvalidPolicy",
    "InvalidRuleRange",
    "LoadError",
    "NotFoundError",
    "NotSupportedError",
    "PreconditionFailedError",
    "UnresolvedDependency",
]


class BaseError(Exception):
    status_code: int


class BadRequestError(BaseError):
    status_code = 400


class NotFoundError(BaseError):
    status_code = 404


class ConflictError(BaseError):
    status_code = 409


class PreconditionFailedError(BaseError):
    status_code = 412


class NotSupportedError(BaseError):
    status_code = 415


class InternalError(BaseError):
    status_code = 500


class LoadError(BaseError):
    status_code = 500


class InvalidRuleRange(BadRequestError):
    """A trust rule has a negative, out of range or inverted port range."""


class InvalidPolicy(BadRequestError):
    """A role was declared without any granted capability."""


class UnresolvedDependency(PreconditionFailedError):
    """A deferred value could not be resolved."""


class CyclicOrMissingDependency(ConflictError):
    """A declaration references something not yet built."""
