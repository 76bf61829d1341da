# errors.py
"""Errors raised by the fairness engine and its block sources."""


class BBRNGError(Exception):
    """Base class for every error this service raises on purpose."""


class ConfigError(BBRNGError):
    """Invalid draw parameters; rejected before any network call."""


class ProviderError(BBRNGError):
    """A block explorer call failed (transport, HTTP status or body)."""

    def __init__(self, message: str, provider: str | None = None):
        super().__init__(message)
        self.provider = provider


class VerificationError(BBRNGError):
    """Malformed commitment or proof text."""


class SeedOverflowError(BBRNGError):
    """The rejection loop exceeded its iteration ceiling."""

    def __init__(self, index: int, iterations: int):
        super().__init__(f"draw {index}: no value accepted after {iterations} iterations")
        self.index = index
        self.iterations = iterations


class BlockSetIncomplete(BBRNGError):
    """Draws were requested over a block set that still has empty slots."""


class SessionBusyError(BBRNGError):
    """Another session is already waiting or drawing."""
