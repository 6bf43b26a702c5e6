"""
Error taxonomy shared by the matchmaking components.

Every error raised by the engine derives from MatchEngineError so callers can
catch engine failures without swallowing programming errors.
"""


class MatchEngineError(Exception):
    """Base class for all engine errors."""


class TransientIO(MatchEngineError):
    """Storage or network was unavailable. Safe to retry."""


class NotFound(MatchEngineError):
    """A required match, proposal or profile does not exist."""


class InvalidReference(MatchEngineError):
    """An entity references another entity outside its match."""


class InvalidTransition(MatchEngineError):
    """A proposal status change is not allowed from its current status."""

    def __init__(self, proposal_id: str, current: str, requested: str):
        self.proposal_id = proposal_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Proposal {proposal_id} cannot move from '{current}' to '{requested}'"
        )


class PermissionDenied(MatchEngineError):
    """The caller is not a member of the match, or a block forbids the action."""
