"""AudioPlayer facade for MorsePlay.

The AudioPlayer holds the configuration, owns the output sink and the stop
flag, answers duration queries and runs playback sessions. Rendering runs on
a PlaybackScheduler thread while the calling event loop waits for the end of
playback and fires the start/end callbacks.
"""
import asyncio
import logging
import threading
from typing import Callable, List, Optional

from morse_actions import ActionTimingTable
from morse_config import PlayerConfig
from morse_encoder import (SpeedModificationType, TextAdditions, encode, encode_start_part,
                           encode_text, initial_speed)
from morse_session import (OutputSink, PlaybackScheduler, PlaybackState, Session, SharedSink,
                           SoundDeviceSink)
from morse_synth import WaveType
from morse_timing import TextType, TimingResult, compute_timing

logger = logging.getLogger(__name__)

PlaybackCallback = Callable[[], None]


class AudioPlayer:
    """Play text as Morse code.

    Public methods:
      - get_text_duration / get_start_part_duration / get_char_timings
      - set_* mutators for every configuration option
      - connect_main_text_started_callback / connect_playing_ended_callback
      - play() (coroutine), play_blocking(), stop(), close()
    """
    def __init__(self, config: Optional[PlayerConfig] = None, sink: Optional[OutputSink] = None):
        """Store configuration and open the output sink.

        Args:
            config: Initial configuration; defaults to ``PlayerConfig()``.
            sink: Output sink; a SoundDeviceSink on the default device is
                opened when omitted.

        Raises:
            DeviceUnavailableError: if no sink is given and the default
                audio device cannot be opened.
        """
        self.config = config if config is not None else PlayerConfig()
        self._actions = ActionTimingTable()
        if self.config.delay is not None:
            self._actions.set_delay(self.config.delay)
        self._sink = SharedSink(sink if sink is not None else SoundDeviceSink())
        self._sink.set_volume(self.config.volume)
        self._stop_flag = threading.Event()
        self._started_callback: Optional[PlaybackCallback] = None
        self._ended_callback: Optional[PlaybackCallback] = None

    # ---- Queries: recomputed from the current configuration on every call ----
    def _text_timing(self) -> TimingResult:
        cfg = self.config
        cfg.validate()
        profile, symbols = encode_text(cfg.text, cfg.modification, cfg.min_speed,
                                       cfg.max_speed, cfg.modification_len)
        return compute_timing(symbols, cfg.text_type, cfg.speed, profile, self._actions)

    def get_text_duration(self) -> float:
        """Duration of the text alone in seconds (no preamble/postamble)."""
        return self._text_timing().total

    def get_start_part_duration(self) -> float:
        """Duration of the preamble in seconds."""
        cfg = self.config
        cfg.validate()
        speed = initial_speed(cfg.speed, cfg.modification, cfg.min_speed, cfg.max_speed)
        start = encode_start_part(cfg.text_additions, cfg.text_type, speed)
        return compute_timing(start, cfg.text_type, speed, None, self._actions).total

    def get_char_timings(self) -> List[float]:
        """Checkpoints (seconds from the start of the text) at every character
        and word boundary, starting with 0."""
        return self._text_timing().checkpoints

    # ---- Mutators ----
    def set_text(self, text: str) -> None:
        self.config.text = text

    def set_text_type(self, text_type: TextType) -> None:
        self.config.text_type = text_type

    def set_speed(self, speed: float) -> None:
        self.config.speed = speed

    def set_min_speed(self, min_speed: float) -> None:
        self.config.min_speed = min_speed

    def set_max_speed(self, max_speed: float) -> None:
        self.config.max_speed = max_speed

    def set_modification(self, modification: SpeedModificationType) -> None:
        self.config.modification = modification

    def set_modification_length(self, length: int) -> None:
        self.config.modification_len = length

    def set_text_additions(self, text_additions: TextAdditions) -> None:
        self.config.text_additions = text_additions

    def set_wave_type(self, wave_type: WaveType) -> None:
        self.config.wave_type = wave_type

    def set_frequency(self, frequency: float) -> None:
        self.config.frequency = frequency

    def set_volume(self, volume: float) -> None:
        """Store the volume and apply it to the sink immediately."""
        self.config.volume = volume
        self._sink.set_volume(volume)

    def set_delay(self, delay: int) -> None:
        """Set the character gap to ``delay`` units (word gap follows)."""
        self.config.delay = delay
        self._actions.set_delay(delay)

    def connect_main_text_started_callback(self, callback: Optional[PlaybackCallback]) -> None:
        """Register the callback fired when the preamble has been played.

        Replaces any previously registered callback; ``None`` removes it.
        """
        self._started_callback = callback

    def connect_playing_ended_callback(self, callback: Optional[PlaybackCallback]) -> None:
        """Register the callback fired once playback ends or is stopped."""
        self._ended_callback = callback

    # ---- Playback ----
    def make_session(self) -> Session:
        """Snapshot the configuration into a Session.

        Raises:
            ConfigurationError: if the configuration is invalid.
        """
        cfg = self.config
        cfg.validate()
        profile, symbols = encode(cfg.text, cfg.text_additions, cfg.text_type, cfg.speed,
                                  cfg.modification, cfg.min_speed, cfg.max_speed,
                                  cfg.modification_len)
        return Session(
            symbols=tuple(symbols),
            speed_profile=tuple(profile),
            text_type=cfg.text_type,
            speed=initial_speed(cfg.speed, cfg.modification, cfg.min_speed, cfg.max_speed),
            wave_type=cfg.wave_type,
            frequency=cfg.frequency,
            table=self._actions.copy(),
            start_part_duration=self.get_start_part_duration(),
        )

    async def play(self) -> PlaybackState:
        """Play the configured text and wait until playback is over.

        Returns:
            PlaybackState.DONE, or PlaybackState.CANCELLED after stop().

        Raises:
            ConfigurationError: before anything is played.
            Exception: whatever the playback thread raised.
        """
        session = self.make_session()
        started_callback = self._started_callback
        ended_callback = self._ended_callback
        loop = asyncio.get_running_loop()
        ended = asyncio.Event()

        def signal_ended():
            try:
                loop.call_soon_threadsafe(ended.set)
            except RuntimeError:
                # event loop already closed; nobody is waiting anymore
                logger.debug("Playback ended after its event loop closed")

        self._stop_flag.clear()
        self._sink.play()
        worker = PlaybackScheduler(session, self._sink, self._stop_flag, on_finished=signal_ended)
        logger.info("Starting playback of %d symbols", len(session.symbols))
        worker.start()

        try:
            await asyncio.gather(
                self._notify_started(ended, session.start_part_duration, started_callback),
                self._notify_ended(ended, ended_callback),
            )
        except asyncio.CancelledError:
            self.stop()
            raise
        await loop.run_in_executor(None, worker.join)

        if worker.error is not None:
            raise worker.error
        return worker.state

    def play_blocking(self) -> PlaybackState:
        """Run :meth:`play` on a fresh event loop."""
        return asyncio.run(self.play())

    @staticmethod
    async def _notify_started(ended: asyncio.Event, delay: float,
                              callback: Optional[PlaybackCallback]) -> None:
        """Fire ``callback`` if ``delay`` elapses before playback ends."""
        if callback is None:
            return
        waiter = asyncio.ensure_future(ended.wait())
        timer = asyncio.ensure_future(asyncio.sleep(delay))
        done, pending = await asyncio.wait({waiter, timer}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        if timer in done and not ended.is_set():
            callback()

    @staticmethod
    async def _notify_ended(ended: asyncio.Event, callback: Optional[PlaybackCallback]) -> None:
        await ended.wait()
        if callback is not None:
            callback()

    def stop(self) -> None:
        """Stop playback now, dropping audio queued but not yet played.

        Does not wait for the playback thread to notice.
        """
        self._stop_flag.set()
        self._sink.clear()

    def close(self) -> None:
        """Stop playback and release the output sink if it can be closed."""
        self.stop()
        close = getattr(self._sink.sink, 'close', None)
        if close is not None:
            close()

    def __enter__(self) -> 'AudioPlayer':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
