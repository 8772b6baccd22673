from __future__ import annotations


class MalformedContextError(ValueError):
    """Raised when a per-tick evaluation context fails validation."""


class ConfigurationError(ValueError):
    """Raised when rule or runtime configuration cannot be used."""
