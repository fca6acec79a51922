class AppError(Exception):
    """Base app error."""


class ValidationError(AppError):
    pass


class NotFoundError(AppError):
    pass


class InsufficientStockError(ValidationError):
    pass


class InvalidTransitionError(ValidationError):
    """A document was asked to move to a status its current status does not allow."""


class FxUnavailableError(AppError):
    pass
