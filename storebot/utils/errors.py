class StoreError(Exception):
    """Base class for failures surfaced to users as a short message."""


class NotFoundError(StoreError):
    pass


class InvalidStateError(StoreError):
    pass


class InsufficientBalanceError(StoreError):
    pass


class ValidationError(StoreError):
    pass


class EncryptionError(StoreError):
    pass


def failure(exc: Exception) -> dict:
    return {"ok": False, "message": str(exc)}
