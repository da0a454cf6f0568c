"""Error types raised by the store and the rent-schedule services.

Every error carries the same shape the screens expect from a failed call:
an ``error`` code, an optional human ``message`` and optional field-level
``details`` (``[{"field": ..., "message": ...}]``).
"""

from django.core.exceptions import NON_FIELD_ERRORS, ValidationError

FALLBACK_MESSAGE = "Something went wrong. Please try again."


class RentdeskError(Exception):
    def __init__(self, error, message=None, details=None):
        self.error = error
        self.message = message
        self.details = list(details or [])
        super().__init__(message or error)

    def as_dict(self):
        data = {"error": self.error}
        if self.message:
            data["message"] = self.message
        if self.details:
            data["details"] = [dict(d) for d in self.details]
        return data

    def toast_text(self):
        """Single line shown to the user: field messages first, then the message."""
        if self.details:
            return "; ".join(
                d["message"] if d["field"] in (None, NON_FIELD_ERRORS) else f"{d['field']}: {d['message']}"
                for d in self.details
            )
        return self.message or self.error or FALLBACK_MESSAGE


class ValidationFailed(RentdeskError):
    @classmethod
    def from_django(cls, exc: ValidationError, message="Validation failed"):
        details = []
        if hasattr(exc, "error_dict"):
            for field, errors in exc.message_dict.items():
                for text in errors:
                    details.append({"field": field, "message": text})
        else:
            for text in exc.messages:
                details.append({"field": None, "message": text})
        return cls("VALIDATION_ERROR", message, details)


class NotFound(RentdeskError):
    def __init__(self, entity, message=None):
        super().__init__(f"{entity.upper()}_NOT_FOUND", message or f"{entity.capitalize()} not found")


class InvalidTransition(RentdeskError):
    def __init__(self, entity, current, target):
        self.current = current
        self.target = target
        super().__init__(
            "INVALID_STATUS_TRANSITION",
            f"{entity.capitalize()} cannot move from {current} to {target}.",
        )


class ActivationError(RentdeskError):
    def __init__(self, message, details=None):
        super().__init__("ACTIVATION_FAILED", message, details)
