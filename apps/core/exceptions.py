class MessError(Exception):
    """Base class for domain errors raised by the mess apps"""


class InvalidTransition(MessError):
    """Raised when a status change is not allowed by the state machine"""


class ImmutableRecord(MessError):
    """Raised when code tries to rewrite an append-only or write-once value"""
