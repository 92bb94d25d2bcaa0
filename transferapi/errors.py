class TransferError(Exception):
    """Base class for failures raised by the transfer store."""


class ValidationError(TransferError):
    def __init__(self, field: str, message: str = None):
        self.field = field
        super().__init__(message or f'Invalid "{field}" timestamp format.')


class StoreError(TransferError):
    """Query execution or transaction control failed. str() is the cause's text."""

    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(str(cause))


class BootstrapError(TransferError):
    """Creating the transfers table failed."""

    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(str(cause))
