class CistepError(ValueError):
    """Base error for cistep exceptions."""


class ConfigError(CistepError):
    """Raised when a check contract or build manifest is invalid."""
