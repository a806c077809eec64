"""Exception types raised by MorsePlay.

Configuration problems are reported before playback starts, device problems
when the output stream is opened, and invariant violations whenever the
symbol pipeline sees data it should never produce.
"""


class MorsePlayerError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(MorsePlayerError, ValueError):
    """The player configuration cannot produce a valid session."""


class DeviceUnavailableError(MorsePlayerError, OSError):
    """The audio backend is missing or the output device cannot be opened."""


class InvariantError(MorsePlayerError):
    """Internal consistency check failed; not recoverable by the user."""


class MissingActionError(InvariantError, KeyError):
    """A symbol has no entry in the action timing table."""

    def __init__(self, symbol):
        super().__init__(symbol)
        self.symbol = symbol

    def __str__(self) -> str:
        return f"no timing entry for symbol {self.symbol!r}"
