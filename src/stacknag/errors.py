"""Exceptions raised for misuse of the rule engine and suppression APIs."""

from __future__ import annotations


class NagConfigurationError(ValueError):
    """Raised when a pack, logger, condition, or suppression is misconfigured."""


class SuppressionPathError(NagConfigurationError, LookupError):
    """Raised when a suppression path does not resolve to any construct."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Suppression path '{path}' did not match any resource in the tree")


class UnknownMessageLevelError(ValueError):
    """Raised when an output sink receives a message level it cannot route."""


class TemplateError(ValueError):
    """Raised when a template file cannot be read or has an invalid shape."""
