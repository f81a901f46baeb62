"""
Error taxonomy raised by the bracket engine.

Validation and conflict errors are raised before any write. ConsistencyError
means the stored match graph is corrupt and must not be swallowed.
"""


class BracketError(Exception):
    """Base class for every error raised by the engine."""


class ValidationError(BracketError):
    """Malformed input; retrying with corrected input is safe."""


class InsufficientParticipants(ValidationError):
    pass


class InvalidConfiguration(ValidationError):
    pass


class InvalidWinner(ValidationError):
    pass


class NoRegistrations(ValidationError):
    pass


class NotFound(BracketError):
    def __init__(self, kind: str, record_id: str):
        super().__init__(f"{kind} {record_id} not found")
        self.kind = kind
        self.record_id = record_id


class ConflictError(BracketError):
    """The request is well formed but clashes with the stored state."""


class AlreadyExists(ConflictError):
    pass


class AlreadyPlayed(ConflictError):
    pass


class NotPlayed(ConflictError):
    pass


class MatchNotReady(ConflictError):
    pass


class DownstreamPlayed(ConflictError):
    pass


class ConsistencyError(BracketError):
    """The match graph violates its invariants (cycle or dangling reference)."""
