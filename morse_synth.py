"""Morse synthesizer module.

Contains the WaveType recipes, the pure tone/silence generators and
PulseCache, which keeps the five pulse buffers needed to render a symbol
sequence at the current speed.
"""
from enum import Enum
from typing import Dict
import numpy as np

from morse_actions import ActionCategory, ActionTimingTable, Symbol
from morse_utils import FADE_IN_SECONDS, FADE_OUT_SECONDS, SAMPLE_RATE, fade_in_ramp, fade_out_ramp

# Number of harmonics summed for the non-sine waveforms
HARMONICS_COUNT = 20


class WaveType(Enum):
    SQUARE = 'square'
    SINE = 'sine'
    TRIANGLE = 'triangle'
    SAWTOOTH = 'sawtooth'


def sample_count(unit_seconds: float, units: int, sample_rate: int = SAMPLE_RATE) -> int:
    """Number of samples in a pulse of ``units`` units of ``unit_seconds``."""
    return max(0, int(sample_rate * unit_seconds * units))


def _harmonic(frequency: float, t: 'np.ndarray') -> 'np.ndarray':
    return np.sin(2 * np.pi * frequency * t)


def _waveform(wave_type: WaveType, frequency: float, t: 'np.ndarray') -> 'np.ndarray':
    """Unnormalized waveform of ``wave_type`` sampled at times ``t``."""
    if wave_type is WaveType.SINE:
        return _harmonic(frequency, t)

    wave = np.zeros_like(t)
    if wave_type is WaveType.SQUARE:
        for h in range(HARMONICS_COUNT):
            n = 2 * h + 1
            wave += _harmonic(frequency * n, t) / n
    elif wave_type is WaveType.TRIANGLE:
        for h in range(HARMONICS_COUNT):
            n = 2 * h + 1
            sign = 1.0 if h % 2 == 0 else -1.0
            wave += sign * _harmonic(frequency * n, t) / (n * n)
    elif wave_type is WaveType.SAWTOOTH:
        for h in range(1, HARMONICS_COUNT):
            wave += _harmonic(frequency * h, t) / h
    else:
        raise ValueError(f"unknown wave type {wave_type!r}")
    return wave


def apply_fades(samples: 'np.ndarray', sample_rate: int = SAMPLE_RATE) -> 'np.ndarray':
    """Apply the raised-cosine fade-in and fade-out to ``samples`` in place."""
    n = len(samples)
    fade_in = min(n, int(sample_rate * FADE_IN_SECONDS))
    fade_out = min(n, int(sample_rate * FADE_OUT_SECONDS))
    if fade_in:
        samples[:fade_in] *= fade_in_ramp(fade_in)
    if fade_out:
        samples[n - fade_out:] *= fade_out_ramp(fade_out)
    return samples


def generate_tone(wave_type: WaveType, frequency: float, unit_seconds: float, units: int,
                  sample_rate: int = SAMPLE_RATE) -> 'np.ndarray':
    """Synthesize a mono tone pulse.

    The waveform is normalized to a peak of 1.0 and then faded in and out to
    avoid clicks.

    Args:
        wave_type: Harmonic recipe to use.
        frequency: Fundamental frequency in Hz.
        unit_seconds: Duration of one unit in seconds.
        units: Pulse length in units.
        sample_rate: Output sample rate.

    Returns:
        A 1-D float32 numpy array.
    """
    n = sample_count(unit_seconds, units, sample_rate)
    t = np.arange(n, dtype=np.float64) / sample_rate
    wave = _waveform(wave_type, frequency, t)

    peak = np.max(np.abs(wave)) if n else 0.0
    if peak > 0:
        wave = wave / peak

    return apply_fades(wave.astype(np.float32), sample_rate)


def generate_silence(unit_seconds: float, units: int, sample_rate: int = SAMPLE_RATE) -> 'np.ndarray':
    """Return a silent mono buffer of ``units`` units."""
    return np.zeros(sample_count(unit_seconds, units, sample_rate), dtype=np.float32)


class PulseCache:
    """Pre-rendered pulses for every tone and silence symbol at one speed.

    Public methods:
      - rebuild(unit_seconds): regenerate all buffers for a new unit length
      - pulse(symbol): return the buffer for a tone or silence symbol
    """
    def __init__(self, table: ActionTimingTable, wave_type: WaveType, frequency: float,
                 unit_seconds: float, sample_rate: int = SAMPLE_RATE):
        self.table = table
        self.wave_type = wave_type
        self.frequency = frequency
        self.sample_rate = sample_rate
        self.unit_seconds = unit_seconds
        self._pulses: Dict[Symbol, 'np.ndarray'] = {}
        self.rebuild(unit_seconds)

    def rebuild(self, unit_seconds: float) -> None:
        self.unit_seconds = unit_seconds
        pulses = {}
        for symbol in (Symbol.DOT, Symbol.DASH):
            pulses[symbol] = generate_tone(self.wave_type, self.frequency, unit_seconds,
                                           self.table.units(symbol), self.sample_rate)
        for symbol in (Symbol.INTRA_GAP, Symbol.CHARACTER_GAP, Symbol.WORD_GAP):
            pulses[symbol] = generate_silence(unit_seconds, self.table.units(symbol), self.sample_rate)
        self._pulses = pulses

    def pulse(self, symbol: Symbol) -> 'np.ndarray':
        category = self.table.category(symbol)
        if category is ActionCategory.SPEED_CHANGE:
            raise ValueError("speed markers have no pulse")
        return self._pulses[symbol]
