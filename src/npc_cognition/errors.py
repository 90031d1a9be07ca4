"""Exception hierarchy for the agent cognition core."""

from typing import Optional


MALFORMED_OUTPUT_HINT = (
    "The selected model may be too small to understand the context or to reliably "
    "produce valid JSON. Please switch to a larger or more capable LLM model."
)


class NpcCognitionError(Exception):
    """Base class for all errors raised by this package."""


class LanguageModelError(NpcCognitionError):
    """Model backend unreachable, timed out or returned an unusable body."""


class ModelOutputMalformedError(NpcCognitionError):
    """Model output looked structured but could not be parsed, even after cleanup."""

    def __init__(self, raw_text: str, cause: Optional[Exception] = None):
        super().__init__(MALFORMED_OUTPUT_HINT)
        self.raw_text = raw_text
        self.cause = cause


class CommandExecutionError(NpcCognitionError):
    """Raised by world-command executors when a command fails."""

    def __init__(self, reason: str, unknown_command: bool = False):
        super().__init__(reason)
        self.reason = reason
        self.unknown_command = unknown_command


class ActionError(NpcCognitionError):
    """A recognised action was given bad arguments or an unknown operation."""


class StorageError(NpcCognitionError):
    """Persistence failure at a repository boundary."""


def user_facing_message(exc: BaseException) -> str:
    """Return the most useful message along an exception's cause chain."""
    chain = []
    current: Optional[BaseException] = exc
    while current is not None and current not in chain:
        chain.append(current)
        current = current.__cause__ or current.__context__
    for item in chain:
        if isinstance(item, ModelOutputMalformedError):
            return str(item)
    return str(chain[-1]) or type(chain[-1]).__name__
