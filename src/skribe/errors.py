"""Exception hierarchy shared by the API layer and the orchestration loop."""

from __future__ import annotations


class SkribeError(Exception):
    """Base class for all Skribe errors."""


class RequestError(SkribeError):
    """A request rejected before any provider call is made.

    Carries the HTTP status the API layer should answer with.
    """

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class DocumentNotFound(SkribeError):
    """Document id unknown, or not part of the request's project."""


class ProviderError(SkribeError):
    """Transport or API failure from the LLM provider. Fatal to a run."""


class OrchestrationError(SkribeError):
    """Fatal error raised while driving the tool loop."""


class TurnBudgetExceeded(OrchestrationError):
    """The run needed more provider round-trips than allowed."""


class RunTimeout(OrchestrationError):
    """A provider turn or the whole run exceeded its wall-clock budget."""
