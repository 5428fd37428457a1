"""
Error types raised by the quiz engine.

Every error carries the HTTP status the blueprint answers with, so routes can
turn any GameError into a JSON body without a mapping table.
"""


class GameError(Exception):
    status_code = 400

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        body = {"ok": False, "error": self.message, "type": type(self).__name__}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(GameError):
    """Malformed scoring or answer input. Nothing is recorded."""
    status_code = 400


class NotFoundError(GameError):
    status_code = 404


class DuplicateSubmissionError(GameError):
    """The player already answered this question in this session."""
    status_code = 409


class SessionStateError(GameError):
    """Operation not allowed in the session's current status."""
    status_code = 409


class PrematureCompletionError(SessionStateError):
    """Ranking requested before the session passed the completion barrier."""


class RuleLookupMiss(GameError):
    """No XP rule for a rank name / quiz type. Fatal at completion time."""
    status_code = 500


class AggregationFailure(GameError):
    """
    Store failure while applying a ledger entry to the leaderboards.

    The entry stays pending and is picked up by reconcile_unprocessed().
    """
    status_code = 500
