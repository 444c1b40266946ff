class ProfitablyError(Exception):
    """Base error for requests the API refuses to carry out."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message=None, details=None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self):
        out = {"error": self.message}
        if self.details:
            out["details"] = self.details
        return out


class InvalidInput(ProfitablyError):
    status_code = 400
    default_message = "Invalid input"


class NotFound(ProfitablyError):
    status_code = 404
    default_message = "Not found"


class InsufficientStock(ProfitablyError):
    """Requested quantity is more than the item has on hand."""

    status_code = 400
    default_message = "Not enough stock"

    def __init__(self, message=None, available=None, requested=None):
        details = None
        if available is not None:
            details = {"available": available, "requested": requested}
        super().__init__(message, details)
        self.available = available
        self.requested = requested


class Conflict(ProfitablyError):
    status_code = 409
    default_message = "Conflict"


class PersistenceFailure(ProfitablyError):
    status_code = 500
    default_message = "Internal server error"
