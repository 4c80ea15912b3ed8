from __future__ import annotations

"""Domain errors raised by the arena services.

Routers translate ``NotFound`` and ``NotAuthorized`` into HTTP responses;
``UnknownModel`` and ``TransientExecutionFailure`` never leave the retry
scheduler and end up as an output's error message instead.
"""


class ArenaError(Exception):
    """Base class for all arena domain errors."""


class NotFound(ArenaError):
    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class NotAuthorized(ArenaError):
    def __init__(self, message: str = "Not authorized") -> None:
        super().__init__(message)


class UnknownModel(ArenaError):
    """The model id is not in the catalog; retrying cannot help."""

    def __init__(self, model_id: str) -> None:
        super().__init__(f"Unknown model: {model_id}")
        self.model_id = model_id


class TransientExecutionFailure(ArenaError):
    """A remote generation call failed and may succeed on a later attempt."""

    def __init__(self, message: str, *, model_id: str | None = None) -> None:
        super().__init__(message)
        self.model_id = model_id
