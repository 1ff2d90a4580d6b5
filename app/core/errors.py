from typing import Any

class ReliefError(Exception):
    """Base class for errors surfaced to API callers"""

    status_code = 500

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, **self.details}

class ValidationError(ReliefError):
    """Malformed or missing input"""
    status_code = 400

class NotFoundError(ReliefError):
    status_code = 404

class ConflictError(ReliefError):
    """Operation would break a referential or state invariant"""
    status_code = 409

class InsufficientStockError(ReliefError):
    status_code = 409

class InvalidTransitionError(ReliefError):
    status_code = 400

class ExternalUnavailable(ReliefError):
    """
    An external lookup (geocoding) returned nothing usable.
    Callers convert this into missing data; it never reaches the core.
    """
    status_code = 503

def parse_choice(enum_cls, value, field: str):
    """Coerce a free-form value into enum_cls, raising ValidationError"""
    if isinstance(value, enum_cls):
        return value

    if isinstance(value, str):
        try:
            return enum_cls(value.strip().lower())
        except ValueError:
            pass

    allowed = ", ".join(member.value for member in enum_cls)
    raise ValidationError(f"{field} must be one of: {allowed}", field=field, value=value)
