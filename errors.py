"""Error taxonomy for contact reconciliation."""


class ReconciliationError(Exception):
    """Base error carrying a stable code and the HTTP status it maps to."""

    def __init__(self, *, code: str, message: str, status_code: int = 500):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code


class InvalidRequest(ReconciliationError):
    """The caller supplied an observation or seed record that cannot be stored."""

    def __init__(self, message: str = "Either email or phoneNumber must be provided"):
        super().__init__(code="request.invalid", message=message, status_code=400)


class PersistenceFailure(ReconciliationError):
    """A read or write against the contact store failed."""

    def __init__(self, message: str = "Contact store operation failed"):
        super().__init__(code="store.failure", message=message, status_code=500)
