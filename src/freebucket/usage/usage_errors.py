"""Errors raised by usage sources."""


class UsageOracleError(Exception):
    """Raised when a usage source cannot produce a reading."""


class UsageSourceMisconfigured(UsageOracleError):
    """Raised when a usage source lacks required settings."""

    def __init__(self, missing: list[str]) -> None:
        super().__init__(f"Missing configuration: {', '.join(missing)}")
        self.missing = list(missing)
