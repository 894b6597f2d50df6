# errors.py
"""
Error taxonomy shared by the domain, the services and the web layer.
Each error carries the HTTP status the JSON endpoints answer with.
"""


class DairyError(Exception):
    http_status = 400

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class ValidationError(DairyError):
    """Malformed input: negative amounts, blank fields, unknown enum values."""
    http_status = 400


class InsufficientStockError(ValidationError):
    def __init__(self, available, required, unit=""):
        suffix = f" {unit}" if unit else ""
        super().__init__(f"Insufficient stock. Available: {available}{suffix}, Required: {required}{suffix}")
        self.available = available
        self.required = required
        self.unit = unit


class InvalidStateError(DairyError):
    """The operation is not allowed in the aggregate's current lifecycle state."""
    http_status = 409


class NotFoundError(DairyError):
    http_status = 404


class ConsistencyError(DairyError):
    """A stored figure no longer agrees with the figures it was derived from."""
    http_status = 500
