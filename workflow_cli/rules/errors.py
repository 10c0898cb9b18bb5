from __future__ import annotations


class RulesError(Exception):
    """Base class for errors raised by the rules engine."""


class PathSyntaxError(RulesError, ValueError):
    """Raised when a variable path cannot be parsed."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Invalid variable path '{path}': {reason}")
        self.path = path
        self.reason = reason


class CoercionError(RulesError, ValueError):
    """Raised when raw text cannot be coerced to a condition data type."""


class InvalidContextError(RulesError, ValueError):
    """Raised when upstream node output is not a JSON-like object."""


class ConfigurationError(RulesError, ValueError):
    """Raised for structural problems in If/Switch node configuration."""


class EmptyConditionSetError(ConfigurationError):
    """Raised when an If node has no conditions."""


class EmptyRuleSetError(ConfigurationError):
    """Raised when a Switch node has no rules."""


class ConfigValidationError(ConfigurationError):
    """Raised when a stored node configuration fails validation."""

    def __init__(self, message: str, diagnostics: list | None = None) -> None:
        super().__init__(message)
        self.diagnostics = list(diagnostics or [])
