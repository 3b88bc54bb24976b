"""Exception hierarchy for the repertoire scanner."""


class RepertoireError(Exception):
    """Base class for every error raised by this package."""


class IngestionError(RepertoireError):
    """Fetching the game batch failed. Aborts the whole scan."""


class GameNotFoundError(IngestionError):
    """The requested user (or game) is unknown to the game source."""


class MalformedNotationError(RepertoireError):
    """A PGN could not be replayed into positions."""

    def __init__(self, message: str, game_id: str | None = None):
        super().__init__(message)
        self.game_id = game_id


class EngineSessionError(RepertoireError):
    """Base class for engine process failures."""


class EngineStartError(EngineSessionError):
    """The engine process could not be spawned or did not finish the handshake."""


class EngineNotReadyError(EngineSessionError):
    """An evaluation was requested before the handshake completed."""


class EngineBusyError(EngineSessionError):
    """A second evaluation was submitted while one is still outstanding."""


class EngineEvaluationError(EngineSessionError):
    """A single evaluation failed; the session itself may still be usable."""


class EngineCrashedError(EngineSessionError):
    """The engine process exited mid-search. The session is unusable."""
