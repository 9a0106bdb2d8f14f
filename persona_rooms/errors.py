"""Error taxonomy.

Structural and precondition failures are raised:
  ValidationError          malformed character/action definition
  AlreadyInitializedError  a second framework start in one process
  NotFoundError            character was never registered (load)
  UnknownCharacterError    conversation references an unregistered character

Resolution misses (room, user, conversation) are returned as ErrorResult
values rather than raised. GenerationError is raised inside action handlers
and converted to an ErrorResult by the message pipeline.
"""

from __future__ import annotations


class FrameworkError(Exception):
    """Base class for every error raised by persona_rooms."""


class ValidationError(FrameworkError):
    """A character definition does not have the required shape.

    `issues` lists every violation as "<field.path>: <message>".
    """

    def __init__(self, issues: list[str]) -> None:
        self.issues = list(issues)
        super().__init__("Validation failed: " + "; ".join(self.issues))


class AlreadyInitializedError(FrameworkError):
    """The process-wide runtime layer has already been started once."""


class NotFoundError(FrameworkError):
    """A character has no runtime binding."""


class UnknownCharacterError(NotFoundError):
    """A conversation operation referenced a character never registered."""


class GenerationError(FrameworkError):
    """The generative backend returned nothing usable."""

    def __init__(self, message: str, status: int = 500) -> None:
        self.status = status
        super().__init__(message)
