"""
Domain Errors

Exception hierarchy raised by the engine. Malformed model output and
unavailable models never surface as exceptions; they are converted into
synthesized agent responses by the decision loop. The errors below cover
caller mistakes (unknown sessions, illegal transitions) and bot generation
preconditions.
"""


class EngineError(Exception):
    """Base class for all engine errors."""


class SessionNotFoundError(EngineError):
    """Raised when a session id is not known to the storage collaborator."""

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class InvalidTransitionError(EngineError):
    """Raised when a session status change violates the lifecycle."""

    def __init__(self, session_id: str, current: str, target: str):
        super().__init__(
            f"Session {session_id} cannot move from '{current}' to '{target}'"
        )
        self.session_id = session_id
        self.current = current
        self.target = target


class BotNotFoundError(EngineError):
    """Raised when an automation bot id is unknown."""

    def __init__(self, bot_id: str):
        super().__init__(f"Bot not found: {bot_id}")
        self.bot_id = bot_id


class BotGenerationError(EngineError):
    """Raised when a bot cannot be generated from a session."""


class ConfigurationError(EngineError):
    """Raised when the engine configuration file is missing or invalid."""
