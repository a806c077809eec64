"""Playback session and audio output management for MorsePlay.

This module holds the output sink used to stream samples to the sound card,
the lock-guarded handle shared between the player and its worker, and the
PlaybackScheduler thread that renders a session's symbols and feeds them to
the sink under backpressure.
"""
from collections import deque
from dataclasses import dataclass
from enum import Enum
import logging
import threading
import time
from typing import Callable, Optional, Protocol, Tuple

import numpy as np

try:
    import sounddevice as sd
except (ImportError, OSError):
    # OSError: the module is installed but the PortAudio library is missing
    sd = None

from morse_actions import ActionCategory, ActionTimingTable, Symbol
from morse_errors import DeviceUnavailableError, InvariantError
from morse_synth import PulseCache, WaveType
from morse_timing import TextType, unit_seconds
from morse_utils import DEFAULT_VOLUME, SAMPLE_RATE

logger = logging.getLogger(__name__)

# Streaming constants
SINK_BUFFER_SIZE = 3
POLL_INTERVAL_SECONDS = 0.005


class OutputSink(Protocol):
    """Capability the scheduler needs from an audio output."""

    def append(self, samples: 'np.ndarray', sample_rate: int) -> None: ...
    def pending_chunk_count(self) -> int: ...
    def play(self) -> None: ...
    def clear(self) -> None: ...
    def set_volume(self, volume: float) -> None: ...


class SoundDeviceSink:
    """Mono output sink backed by a sounddevice OutputStream.

    Appended chunks wait in a deque; the stream callback pulls samples from
    the head chunk and drops it once fully played.
    """
    def __init__(self, sample_rate: int = SAMPLE_RATE, device=None, volume: float = DEFAULT_VOLUME):
        if sd is None:
            raise DeviceUnavailableError("sounddevice/PortAudio is not available")
        self.sample_rate = sample_rate
        self._chunks: 'deque[np.ndarray]' = deque()
        self._position = 0
        self._volume = volume
        self._lock = threading.Lock()
        try:
            self._stream = sd.OutputStream(samplerate=sample_rate, channels=1, dtype='float32',
                                           device=device, callback=self._callback)
        except (sd.PortAudioError, ValueError) as e:
            raise DeviceUnavailableError(f"cannot open audio output: {e}") from e

    def _callback(self, outdata, frames, time_info, status):
        """Fill ``outdata`` from the pending chunks, padding with silence."""
        out = outdata[:, 0]
        filled = 0
        with self._lock:
            while filled < frames and self._chunks:
                chunk = self._chunks[0]
                take = min(frames - filled, len(chunk) - self._position)
                out[filled:filled + take] = chunk[self._position:self._position + take] * self._volume
                filled += take
                self._position += take
                if self._position >= len(chunk):
                    self._chunks.popleft()
                    self._position = 0
        out[filled:] = 0.0

    def append(self, samples: 'np.ndarray', sample_rate: int) -> None:
        if sample_rate != self.sample_rate:
            raise ValueError(f"sink runs at {self.sample_rate} Hz, got {sample_rate} Hz")
        with self._lock:
            self._chunks.append(np.asarray(samples, dtype=np.float32))

    def pending_chunk_count(self) -> int:
        with self._lock:
            return len(self._chunks)

    def play(self) -> None:
        if self._stream.active:
            return
        try:
            self._stream.start()
        except sd.PortAudioError as e:
            raise DeviceUnavailableError(f"cannot start audio output: {e}") from e

    def clear(self) -> None:
        with self._lock:
            self._chunks.clear()
            self._position = 0

    def set_volume(self, volume: float) -> None:
        with self._lock:
            self._volume = volume

    def close(self) -> None:
        self._stream.stop()
        self._stream.close()


class SharedSink:
    """Lock-guarded handle to a sink shared by the player and its worker.

    Both sides hold the same handle, so ``stop()`` on the player clears the
    very queue the worker is feeding.
    """
    def __init__(self, sink: OutputSink):
        self._sink = sink
        self._lock = threading.Lock()

    @property
    def sink(self) -> OutputSink:
        return self._sink

    def append(self, samples: 'np.ndarray', sample_rate: int) -> None:
        with self._lock:
            self._sink.append(samples, sample_rate)

    def pending_chunk_count(self) -> int:
        with self._lock:
            return self._sink.pending_chunk_count()

    def play(self) -> None:
        with self._lock:
            self._sink.play()

    def clear(self) -> None:
        with self._lock:
            self._sink.clear()

    def set_volume(self, volume: float) -> None:
        with self._lock:
            self._sink.set_volume(volume)


@dataclass(frozen=True)
class Session:
    """Immutable snapshot of everything one playback needs."""
    symbols: Tuple[Symbol, ...]
    speed_profile: Tuple[float, ...]
    text_type: TextType
    speed: float
    wave_type: WaveType
    frequency: float
    table: ActionTimingTable
    start_part_duration: float = 0.0


class PlaybackState(Enum):
    IDLE = 'idle'
    STREAMING = 'streaming'
    DRAINING = 'draining'
    DONE = 'done'
    CANCELLED = 'cancelled'


class PlaybackScheduler(threading.Thread):
    """Render a session and stream it to the sink.

    Audio is accumulated symbol by symbol and handed to the sink at every
    word gap and at the end of the sequence. Before each hand-off the
    scheduler waits while the sink holds more than ``max_pending`` chunks.
    Setting ``stop_flag`` ends the run at the next wait.

    ``on_finished`` is called exactly once when the run ends, whatever the
    outcome; an exception raised while streaming is kept in ``error``.
    """
    def __init__(self, session: Session, sink: SharedSink, stop_flag: threading.Event,
                 on_finished: Optional[Callable[[], None]] = None,
                 poll_interval: float = POLL_INTERVAL_SECONDS,
                 max_pending: int = SINK_BUFFER_SIZE):
        super().__init__(daemon=True, name='morse-playback')
        self.session = session
        self.sink = sink
        self.stop_flag = stop_flag
        self.on_finished = on_finished
        self.poll_interval = poll_interval
        self.max_pending = max_pending
        self.state = PlaybackState.IDLE
        self.error: Optional[BaseException] = None

    def run(self):
        """Stream the session, then drain the sink."""
        try:
            self.state = self._stream()
            if self.state is PlaybackState.CANCELLED:
                logger.info("Playback cancelled")
            else:
                logger.info("Playback finished")
        except Exception as e:
            logger.error("Playback failed: %s", e)
            self.error = e
        finally:
            if self.on_finished is not None:
                self.on_finished()

    def _stream(self) -> PlaybackState:
        session = self.session
        table = session.table
        pulses = PulseCache(table, session.wave_type, session.frequency,
                            unit_seconds(session.text_type, session.speed))
        profile_index = 0
        pending = []
        last = len(session.symbols) - 1

        self.state = PlaybackState.STREAMING
        logger.info("Streaming %d symbols", len(session.symbols))
        for i, symbol in enumerate(session.symbols):
            if table.category(symbol) is ActionCategory.SPEED_CHANGE:
                if profile_index >= len(session.speed_profile):
                    raise InvariantError("speed marker without a matching speed profile value")
                speed = session.speed_profile[profile_index]
                profile_index += 1
                pulses.rebuild(unit_seconds(session.text_type, speed))
                logger.debug("Speed changed to %.2f", speed)
            else:
                pending.append(pulses.pulse(symbol))

            if symbol is Symbol.WORD_GAP or i == last:
                if not self._flush(pending):
                    return PlaybackState.CANCELLED
                pending = []

        self.state = PlaybackState.DRAINING
        if not self._wait_until(lambda: self.sink.pending_chunk_count() == 0):
            return PlaybackState.CANCELLED
        return PlaybackState.DONE

    def _flush(self, pending) -> bool:
        """Hand accumulated pulses to the sink once it has room.

        Returns:
            False if the run was cancelled while waiting.
        """
        if not self._wait_until(lambda: self.sink.pending_chunk_count() <= self.max_pending):
            return False
        if pending:
            chunk = np.concatenate(pending)
            self.sink.append(chunk, SAMPLE_RATE)
            logger.debug("Queued chunk of %d samples", len(chunk))
        return True

    def _wait_until(self, condition: Callable[[], bool]) -> bool:
        """Poll ``condition``; return False as soon as the stop flag is set."""
        while True:
            if self.stop_flag.is_set():
                return False
            if condition():
                return True
            time.sleep(self.poll_interval)
