"""Exceptions raised while loading or validating the lookup configuration."""


class ConfigLoadError(Exception):
    """Raised when the lookup configuration file cannot be read or parsed."""
    pass


class ConfigValidationError(Exception):
    """Raised when the lookup configuration is structurally invalid."""
    pass
