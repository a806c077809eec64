"""Timing math for symbol sequences.

Converts a speed value into the length of one Morse unit and walks symbol
sequences to find the total duration plus per-character checkpoints.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from morse_actions import ActionCategory, ActionTimingTable, Symbol
from morse_errors import ConfigurationError, InvariantError


class TextType(Enum):
    LETTERS = 'letters'
    DIGITS = 'digits'
    MIXED = 'mixed'


# Length of one unit at the reference speed of 100 (seconds)
BASE_UNIT_SECONDS = {
    TextType.LETTERS: 0.05,
    TextType.DIGITS: 0.034,
    TextType.MIXED: 0.042,
}

REFERENCE_SPEED = 100.0


def unit_seconds(text_type: TextType, speed: float) -> float:
    """Convert a speed value to the duration of a single unit.

    Args:
        text_type: Selects the base unit duration.
        speed: Rate relative to the reference speed of 100 (must be > 0).

    Returns:
        Duration in seconds of one unit (the length of a dot).
    """
    if speed <= 0:
        raise ConfigurationError(f"speed must be positive, got {speed}")
    return BASE_UNIT_SECONDS[text_type] * REFERENCE_SPEED / speed


@dataclass
class TimingResult:
    """Total duration and checkpoints of a symbol sequence (seconds)."""
    total: float
    checkpoints: List[float] = field(default_factory=list)


def compute_timing(symbols: Sequence[Symbol], text_type: TextType, speed: float,
                   speed_profile: Optional[Sequence[float]] = None,
                   table: Optional[ActionTimingTable] = None) -> TimingResult:
    """Walk ``symbols`` and accumulate their durations.

    A checkpoint is recorded at 0 and after every character or word gap.
    Each speed marker switches to the next unconsumed value of
    ``speed_profile``.

    Raises:
        InvariantError: if the sequence holds more speed markers than the
            profile has values.
    """
    table = table if table is not None else ActionTimingTable()
    unit = unit_seconds(text_type, speed)
    profile = list(speed_profile) if speed_profile is not None else []
    consumed = 0
    duration = 0.0
    checkpoints = [0.0]

    for symbol in symbols:
        category, units = table.lookup(symbol)
        duration += unit * units

        if category is ActionCategory.SPEED_CHANGE:
            if consumed >= len(profile):
                raise InvariantError("speed marker without a matching speed profile value")
            unit = unit_seconds(text_type, profile[consumed])
            consumed += 1

        if symbol in (Symbol.CHARACTER_GAP, Symbol.WORD_GAP):
            checkpoints.append(duration)

    return TimingResult(duration, checkpoints)
