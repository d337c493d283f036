"""Error taxonomy for debate sessions."""


class DebateError(Exception):
    """Base class for all debate orchestration errors."""

    code = "DEBATE_ERROR"


class InvalidConfiguration(DebateError):
    """Rejected before any state transition: bad participants, rounds, style or input."""

    code = "INVALID_CONFIGURATION"


class InvalidState(DebateError):
    """Operation not valid for the session's current status."""

    code = "INVALID_STATE"


class NotFound(DebateError):
    """Unknown session, template or message id."""

    code = "NOT_FOUND"


class CompletionFailure(DebateError):
    """A participant completion failed after exhausting retries."""

    code = "COMPLETION_FAILURE"

    def __init__(self, participant: str, turn_number: int, attempts: int, reason: str) -> None:
        self.participant = participant
        self.turn_number = turn_number
        self.attempts = attempts
        super().__init__(
            f"{participant} failed on turn {turn_number} after {attempts} attempt(s): {reason}"
        )


class SynthesisFailure(DebateError):
    """The synthesis request failed or produced nothing usable."""

    code = "SYNTHESIS_FAILURE"


class ProtocolError(DebateError):
    """Malformed or unknown frame on the event stream."""

    code = "PROTOCOL_ERROR"
