"""
olympia/exceptions.py
Typed domain exceptions for the live engine.

Each exception carries a ``kind`` used to classify the failure:
- validation: malformed input, nothing was touched
- precondition: well-formed request that the current state does not allow
- not_found: referenced row does not exist
- exhausted: a resource pool ran dry
- forbidden: caller is not allowed to act on this match
- persistence: the store refused a read or a write
"""


class OlympiaError(Exception):
    """Base exception for the Olympia engine"""
    kind: str = "precondition"

    def __init__(self, message: str, kind: str = None):
        self.message = message
        if kind:
            self.kind = kind
        super().__init__(self.message)


class ValidationError(OlympiaError):
    """Raised when operation input is malformed."""
    kind = "validation"


class PreconditionError(OlympiaError):
    """
    Raised when a request is valid but not allowed in the current state.

    Examples:
    - Buzzing while the buzzer is disabled
    - Scoring a player who did not win the buzz
    - Starting a timer while another is running
    """
    kind = "precondition"


class NotFoundError(OlympiaError):
    """
    Raised when a referenced resource doesn't exist.

    The message names only the kind of resource; the identifier is kept on
    the exception for server logs and never reaches clients.
    """
    kind = "not_found"

    def __init__(self, resource: str, identifier=None):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found.")


class PoolExhaustedError(OlympiaError):
    """Raised when a finish-round value tier has no unused item left."""
    kind = "exhausted"


class ForbiddenError(OlympiaError):
    """Raised when the caller may not act on the match."""
    kind = "forbidden"


class PersistenceError(OlympiaError):
    """Raised when the store rejects a read or write."""
    kind = "persistence"
