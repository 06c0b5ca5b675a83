"""Custom exceptions for the crew roster engine."""

# Lower-cased fragments that identify a row-level-security / permission
# failure in a PostgREST or PostgreSQL error message.
ACCESS_CONTROL_SIGNATURES = (
    "infinite recursion",
    "policy",
    "permission denied",
    "row-level security",
    "insufficient privilege",
)

# PostgreSQL error codes for the same family of failures.
ACCESS_CONTROL_CODES = frozenset({"42P17", "42501"})


class CrewRosterError(Exception):
    """Base exception for the crew roster engine."""

    pass


class ValidationError(CrewRosterError):
    """Raised when input validation fails."""

    pass


class ConfigurationError(CrewRosterError):
    """Raised when configuration is invalid."""

    pass


class NetworkError(CrewRosterError):
    """Raised when the roster store cannot be reached or answers with a server error."""

    pass


class DataParsingError(CrewRosterError):
    """Raised when a roster store response cannot be parsed."""

    pass


class AccessDeniedError(CrewRosterError):
    """Raised when the roster store rejects a query at its access-control layer."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.code = code


def looks_like_access_control(message: str | None, code: str | None = None) -> bool:
    """Return True if an error message or code carries an access-control signature."""
    if code and code in ACCESS_CONTROL_CODES:
        return True
    if not message:
        return False
    lowered = message.lower()
    return any(sig in lowered for sig in ACCESS_CONTROL_SIGNATURES)
