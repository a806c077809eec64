"""Text to symbol encoding.

Builds the symbol sequence for a text (tones, gaps and speed markers), the
matching speed profile for speed ramps, and the fixed preamble/postamble
blocks used in training and competition modes.
"""
from enum import Enum
import logging
import math
from typing import List, Sequence, Tuple

from morse_actions import Symbol, parse_symbols
from morse_errors import ConfigurationError
from morse_timing import REFERENCE_SPEED, TextType
from morse_utils import CODE_TO_CHAR, MORSE_MAP, norm_text

logger = logging.getLogger(__name__)


class SpeedModificationType(Enum):
    NONE = 'none'
    SPEEDUP = 'speedup'
    SLOWING = 'slowing'
    ZIGZAG = 'zigzag'


class TextAdditions(Enum):
    """Extra content wrapped around the text.

    TRAINING:     "VVV =" before the text, "AR" after it
    COMPETITIONS: "OOOOO <speed> VVV =" ("00000 ..." for digits) before
                  the text, "AR" after it
    """
    NONE = 'none'
    TRAINING = 'training'
    COMPETITIONS = 'competitions'


# Each character of the ramp window spans this many steps
STEPS_PER_WINDOW_CHAR = 5

TRAINING_PREAMBLE: Tuple[Symbol, ...] = tuple(parse_symbols(
    '.*.*.*-$' '.*.*.*-$' '.*.*.*-/'
    '-*.*.*.*-/'
))
COMPETITIONS_LETTERS_PREAMBLE: Tuple[Symbol, ...] = tuple(parse_symbols(
    '-*-*-$' * 4 + '-*-*-/'
))
COMPETITIONS_DIGITS_PREAMBLE: Tuple[Symbol, ...] = tuple(parse_symbols(
    '-*-*-*-*-$' * 4 + '-*-*-*-*-/'
))
POSTAMBLE: Tuple[Symbol, ...] = tuple(parse_symbols('/.*-*.*-*.'))

_TONE_FOR_MARK = {'.': Symbol.DOT, '-': Symbol.DASH}


def ramp_steps(modification: SpeedModificationType, window_len: int) -> int:
    """Return the cycle length of a speed ramp, validating the window.

    Raises:
        ConfigurationError: if the window would make a ramp denominator 0.
    """
    if window_len < 1:
        raise ConfigurationError(f"modification window must be at least 1, got {window_len}")
    steps = window_len * STEPS_PER_WINDOW_CHAR
    if modification is SpeedModificationType.ZIGZAG:
        denominator = steps // 2 - 1
    else:
        denominator = steps - 1
    if denominator <= 0:
        raise ConfigurationError(f"modification window {window_len} is too short for {modification.value}")
    return steps


def speed_at(modification: SpeedModificationType, step: int, steps: int,
             min_speed: float, max_speed: float) -> float:
    """Speed of the character at cyclic ``step`` of a ramp of ``steps`` steps."""
    difference = max_speed - min_speed
    if modification is SpeedModificationType.SPEEDUP:
        return min_speed + difference / (steps - 1) * step
    if modification is SpeedModificationType.SLOWING:
        return max_speed - difference / (steps - 1) * step
    if modification is SpeedModificationType.ZIGZAG:
        half = steps // 2
        if step < half:
            return min_speed + difference / (half - 1) * step
        return max_speed - difference / (half - 1) * (step - half)
    raise ConfigurationError(f"no speed ramp for modification {modification.value}")


def check_ramp(modification: SpeedModificationType, window_len: int,
               min_speed: float, max_speed: float) -> int:
    """Validate a whole ramp cycle and return its step count.

    With an odd step count the zigzag descent runs one step past
    ``min_speed``, so every step is checked for a usable speed.

    Raises:
        ConfigurationError: if the window is degenerate, min is above max or
            any step of the cycle has a speed of 0 or less.
    """
    steps = ramp_steps(modification, window_len)
    if min_speed > max_speed:
        raise ConfigurationError(f"min speed {min_speed} is above max speed {max_speed}")
    for step in range(steps):
        speed = speed_at(modification, step, steps, min_speed, max_speed)
        if speed <= 0:
            raise ConfigurationError(
                f"{modification.value} ramp from {min_speed} to {max_speed} reaches "
                f"speed {speed:g} at step {step}")
    return steps


def initial_speed(speed: float, modification: SpeedModificationType,
                  min_speed: float, max_speed: float) -> float:
    """Speed used before the first speed marker (the edge the ramp starts at)."""
    if modification in (SpeedModificationType.SPEEDUP, SpeedModificationType.ZIGZAG):
        return min_speed
    if modification is SpeedModificationType.SLOWING:
        return max_speed
    return speed


def encode_text(text: str,
                modification: SpeedModificationType = SpeedModificationType.NONE,
                min_speed: float = 100.0, max_speed: float = 110.0,
                window_len: int = 10) -> Tuple[List[float], List[Symbol]]:
    """Encode ``text`` into a speed profile and a symbol sequence.

    Characters are uppercased first. Characters missing from MORSE_MAP add
    no tones but still get character gaps and speed markers. A space turns
    the preceding gap into a word gap; when a ramp has just completed a
    cycle, that gap is also slowed down to ``min_speed``.

    Returns:
        ``(speed_profile, symbols)``; the profile holds one value per
        speed marker in ``symbols``.
    """
    text = norm_text(text)
    ramp = modification is not SpeedModificationType.NONE
    steps = 0
    if ramp:
        steps = check_ramp(modification, window_len, min_speed, max_speed)

    symbols: List[Symbol] = []
    profile: List[float] = []
    step = 0
    last = len(text) - 1

    for i, ch in enumerate(text):
        if ch != ' ' and ramp:
            profile.append(speed_at(modification, step, steps, min_speed, max_speed))
            symbols.append(Symbol.SPEED_MARKER)
            step = (step + 1) % steps

        code = MORSE_MAP.get(ch, '')
        for n, mark in enumerate(code):
            symbols.append(_TONE_FOR_MARK[mark])
            if n != len(code) - 1:
                symbols.append(Symbol.INTRA_GAP)

        if ch != ' ' and i != last:
            symbols.append(Symbol.CHARACTER_GAP)
        elif ch == ' ':
            if not symbols:
                # leading space, no gap to stretch
                continue
            if ramp and step == 0:
                profile.append(min_speed)
                symbols[-1] = Symbol.SPEED_MARKER
                symbols.append(Symbol.WORD_GAP)
            else:
                symbols[-1] = Symbol.WORD_GAP

    return profile, symbols


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def encode_start_part(additions: TextAdditions, text_type: TextType, speed: float) -> List[Symbol]:
    """Build the preamble for ``additions``.

    The competition preamble announces ``speed`` (rounded) as digits,
    encoded at the reference speed without any ramp.
    """
    if additions is TextAdditions.NONE:
        return []
    if additions is TextAdditions.TRAINING:
        return list(TRAINING_PREAMBLE)

    if text_type is TextType.DIGITS:
        start = list(COMPETITIONS_DIGITS_PREAMBLE)
    else:
        start = list(COMPETITIONS_LETTERS_PREAMBLE)
    _, speed_symbols = encode_text(str(_round_half_up(speed)), SpeedModificationType.NONE,
                                   REFERENCE_SPEED, REFERENCE_SPEED)
    start.extend(speed_symbols)
    start.append(Symbol.WORD_GAP)
    start.extend(TRAINING_PREAMBLE)
    return start


def encode_end_part(additions: TextAdditions) -> List[Symbol]:
    if additions is TextAdditions.NONE:
        return []
    return list(POSTAMBLE)


def encode(text: str, additions: TextAdditions, text_type: TextType, speed: float,
           modification: SpeedModificationType, min_speed: float, max_speed: float,
           window_len: int) -> Tuple[List[float], List[Symbol]]:
    """Encode a full transmission: preamble, text and postamble.

    Returns:
        ``(speed_profile, symbols)`` ready for the playback scheduler.
    """
    start_speed = initial_speed(speed, modification, min_speed, max_speed)
    profile, body = encode_text(text, modification, min_speed, max_speed, window_len)
    symbols = encode_start_part(additions, text_type, start_speed)
    symbols.extend(body)
    symbols.extend(encode_end_part(additions))
    logger.debug("Encoded %d characters into %d symbols (%d speed changes)",
                 len(text), len(symbols), len(profile))
    return profile, symbols


def decode_symbols(symbols: Sequence[Symbol]) -> str:
    """Recover text from a symbol sequence by reverse table lookup.

    Speed markers are ignored; tone patterns missing from the table are
    skipped.
    """
    out: List[str] = []
    marks: List[str] = []

    def flush():
        if marks:
            out.append(CODE_TO_CHAR.get(''.join(marks), ''))
            marks.clear()

    for symbol in symbols:
        if symbol is Symbol.DOT or symbol is Symbol.DASH:
            marks.append(symbol.value)
        elif symbol is Symbol.CHARACTER_GAP:
            flush()
        elif symbol is Symbol.WORD_GAP:
            flush()
            out.append(' ')
    flush()
    return ''.join(out)
