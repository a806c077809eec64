"""Utility functions and constants for MorsePlay.

This module holds shared constants (MORSE_MAP, audio defaults) and small
helpers used across the package: the raised-cosine fade ramps applied to
tone pulses and text normalization.
"""
from typing import Dict
import numpy as np

# Morse mapping for A-Z, 0-9 and the supported punctuation
MORSE_MAP: Dict[str, str] = {
    'A': '.-',    'B': '-...',  'C': '-.-.', 'D': '-..',  'E': '.',
    'F': '..-.',  'G': '--.',   'H': '....', 'I': '..',   'J': '.---',
    'K': '-.-',   'L': '.-..',  'M': '--',   'N': '-.',   'O': '---',
    'P': '.--.',  'Q': '--.-',  'R': '.-.',  'S': '...',  'T': '-',
    'U': '..-',   'V': '...-',  'W': '.--',  'X': '-..-', 'Y': '-.--',
    'Z': '--..',
    '0': '-----', '1': '.----', '2': '..---','3': '...--','4': '....-',
    '5': '.....', '6': '-....', '7': '--...', '8': '---..','9': '----.',
    '.': '.-.-.-', ',': '--..--', '/': '-..-.', '?': '..--..', '=': '-...-',
}

# Reverse lookup used when decoding symbol sequences back to text
CODE_TO_CHAR: Dict[str, str] = {code: ch for ch, code in MORSE_MAP.items()}

# Default audio constants
SAMPLE_RATE = 48000
DEFAULT_FREQUENCY_HZ = 750
DEFAULT_VOLUME = 0.5

# Edge fades applied to every tone pulse (seconds)
FADE_IN_SECONDS = 0.0004
FADE_OUT_SECONDS = 0.0002


def fade_in_ramp(samples: int) -> 'np.ndarray':
    """Generate a rising raised-cosine window of length ``samples``.

    The window is ``0.5 * (1 - cos(theta))`` sampled over ``theta`` in
    ``[0, pi]``, so it starts at 0 and ends at 1.

    Args:
        samples: Number of ramp samples (int, may be 0).

    Returns:
        A numpy float32 array containing the ramp from 0 to 1.
    """
    theta = np.linspace(0.0, np.pi, samples, dtype=np.float32)
    return (0.5 * (1 - np.cos(theta))).astype(np.float32)


def fade_out_ramp(samples: int) -> 'np.ndarray':
    """Generate the falling counterpart of :func:`fade_in_ramp`."""
    return fade_in_ramp(samples)[::-1].copy()


def norm_text(s: str) -> str:
    """Normalize text for encoding: uppercase, keep characters as they are.

    Args:
        s: Input string.

    Returns:
        Uppercased string; characters missing from MORSE_MAP are kept so
        that they still take part in gap and speed-marker handling.
    """
    return s.upper()
