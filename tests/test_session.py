"""Behavior tests for the playback scheduler and shared sink."""

import threading
import time
from types import SimpleNamespace
from typing import List

import numpy as np
import pytest

from morse_actions import ActionTimingTable, parse_symbols
from morse_encoder import encode_text
from morse_errors import InvariantError
from morse_session import PlaybackScheduler, PlaybackState, Session, SharedSink
from morse_synth import WaveType, sample_count
from morse_timing import TextType
from morse_utils import SAMPLE_RATE


class ScheduledSink:
    """Sink double that drops one chunk every ``drain_every`` count queries."""

    def __init__(self, drain_every: int = 0) -> None:
        self.drain_every = drain_every
        self.chunks: List[np.ndarray] = []
        self.counts_at_append: List[int] = []
        self.max_pending = 0
        self.queries = 0
        self.cleared = False
        self.played = False
        self.volume = None

    def append(self, samples: np.ndarray, sample_rate: int) -> None:
        assert sample_rate == SAMPLE_RATE
        self.counts_at_append.append(len(self.chunks))
        self.chunks.append(samples)
        self.max_pending = max(self.max_pending, len(self.chunks))

    def pending_chunk_count(self) -> int:
        self.queries += 1
        if self.drain_every and self.chunks and self.queries % self.drain_every == 0:
            self.chunks.pop(0)
        return len(self.chunks)

    def play(self) -> None:
        self.played = True

    def clear(self) -> None:
        self.cleared = True
        self.chunks.clear()

    def set_volume(self, volume: float) -> None:
        self.volume = volume


def make_session(symbols, profile=(), speed: float = 1000.0) -> Session:
    return Session(
        symbols=tuple(symbols),
        speed_profile=tuple(profile),
        text_type=TextType.LETTERS,
        speed=speed,
        wave_type=WaveType.SINE,
        frequency=750,
        table=ActionTimingTable(),
    )


def wait_for(condition, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not condition():
        assert time.monotonic() < deadline, "condition not reached in time"
        time.sleep(0.001)


def test_streams_one_chunk_per_word_and_finishes() -> None:
    _, symbols = encode_text("E T I M S")
    sink = ScheduledSink(drain_every=1)
    finished = []
    scheduler = PlaybackScheduler(make_session(symbols), SharedSink(sink), threading.Event(),
                                  on_finished=lambda: finished.append(True), poll_interval=0)

    scheduler.run()

    assert scheduler.state is PlaybackState.DONE
    assert scheduler.error is None
    assert len(sink.counts_at_append) == 5
    assert sink.chunks == []
    assert finished == [True]


def test_backpressure_never_queues_beyond_cap() -> None:
    """A chunk is only appended while the sink holds at most three."""
    _, symbols = encode_text(" ".join("ETIANMSURWDKGOHV"))
    sink = ScheduledSink(drain_every=4)
    scheduler = PlaybackScheduler(make_session(symbols), SharedSink(sink), threading.Event(),
                                  poll_interval=0)

    scheduler.run()

    assert scheduler.state is PlaybackState.DONE
    assert len(sink.counts_at_append) == 16
    assert max(sink.counts_at_append) <= 3
    assert sink.max_pending == 4


def test_chunk_holds_the_rendered_word() -> None:
    session = make_session(parse_symbols('.$-/.'), speed=100)
    sink = ScheduledSink(drain_every=1)
    scheduler = PlaybackScheduler(session, SharedSink(sink), threading.Event(), poll_interval=0)
    appended = []
    original_append = sink.append
    sink.append = lambda samples, rate: (appended.append(samples), original_append(samples, rate))

    scheduler.run()

    assert [len(chunk) for chunk in appended] == [
        sample_count(0.05, 1) + sample_count(0.05, 3) + sample_count(0.05, 3)
        + sample_count(0.05, 7),
        sample_count(0.05, 1),
    ]
    assert appended[0].dtype == np.float32


def test_speed_markers_rerender_pulses_at_the_new_speed() -> None:
    session = make_session(parse_symbols('|.$|.'), profile=(100, 50), speed=100)
    sink = ScheduledSink(drain_every=1)
    appended = []
    original_append = sink.append
    sink.append = lambda samples, rate: (appended.append(samples), original_append(samples, rate))
    scheduler = PlaybackScheduler(session, SharedSink(sink), threading.Event(), poll_interval=0)

    scheduler.run()

    assert len(appended) == 1
    assert len(appended[0]) == (sample_count(0.05, 1) + sample_count(0.05, 3)
                                + sample_count(0.1, 1))


def test_cancel_while_waiting_for_room_stops_appending() -> None:
    _, symbols = encode_text("E E E E E E E E")
    sink = ScheduledSink(drain_every=0)
    stop_flag = threading.Event()
    finished = threading.Event()
    scheduler = PlaybackScheduler(make_session(symbols), SharedSink(sink), stop_flag,
                                  on_finished=finished.set, poll_interval=0.001)

    scheduler.start()
    wait_for(lambda: len(sink.chunks) == 4)
    stop_flag.set()
    scheduler.join(timeout=5)

    assert not scheduler.is_alive()
    assert finished.is_set()
    assert scheduler.state is PlaybackState.CANCELLED
    assert len(sink.counts_at_append) == 4


def test_cancel_while_draining_does_not_hang() -> None:
    _, symbols = encode_text("E")
    sink = ScheduledSink(drain_every=0)
    stop_flag = threading.Event()
    scheduler = PlaybackScheduler(make_session(symbols), SharedSink(sink), stop_flag,
                                  poll_interval=0.001)

    scheduler.start()
    wait_for(lambda: scheduler.state is PlaybackState.DRAINING)
    stop_flag.set()
    scheduler.join(timeout=5)

    assert not scheduler.is_alive()
    assert scheduler.state is PlaybackState.CANCELLED
    assert len(sink.counts_at_append) == 1


def test_stop_flag_set_before_start_appends_nothing() -> None:
    _, symbols = encode_text("E E")
    sink = ScheduledSink(drain_every=1)
    stop_flag = threading.Event()
    stop_flag.set()
    scheduler = PlaybackScheduler(make_session(symbols), SharedSink(sink), stop_flag,
                                  poll_interval=0)

    scheduler.run()

    assert scheduler.state is PlaybackState.CANCELLED
    assert sink.counts_at_append == []


def test_empty_session_finishes_immediately() -> None:
    sink = ScheduledSink()
    scheduler = PlaybackScheduler(make_session([]), SharedSink(sink), threading.Event(),
                                  poll_interval=0)

    scheduler.run()

    assert scheduler.state is PlaybackState.DONE
    assert sink.counts_at_append == []


def test_errors_are_kept_and_still_signal_the_end() -> None:
    session = make_session(parse_symbols('|.'))
    finished = []
    scheduler = PlaybackScheduler(session, SharedSink(ScheduledSink()), threading.Event(),
                                  on_finished=lambda: finished.append(True), poll_interval=0)

    scheduler.run()

    assert isinstance(scheduler.error, InvariantError)
    assert finished == [True]


def test_shared_sink_delegates_to_the_wrapped_sink() -> None:
    sink = ScheduledSink()
    shared = SharedSink(sink)

    shared.play()
    shared.set_volume(0.25)
    shared.append(np.zeros(4, dtype=np.float32), SAMPLE_RATE)

    assert shared.sink is sink
    assert sink.played
    assert sink.volume == 0.25
    assert shared.pending_chunk_count() == 1

    shared.clear()

    assert sink.cleared
    assert shared.pending_chunk_count() == 0


def test_sounddevice_sink_reports_missing_backend(monkeypatch: pytest.MonkeyPatch) -> None:
    import morse_session
    from morse_errors import DeviceUnavailableError

    monkeypatch.setattr(morse_session, "sd", None)

    with pytest.raises(DeviceUnavailableError, match="not available"):
        morse_session.SoundDeviceSink()


class FakeOutputStream:
    """Stand-in for sounddevice.OutputStream that keeps the callback."""

    def __init__(self, samplerate, channels, dtype, device, callback) -> None:
        self.samplerate = samplerate
        self.channels = channels
        self.callback = callback
        self.active = False
        self.calls: List[str] = []

    def start(self) -> None:
        self.active = True
        self.calls.append("start")

    def stop(self) -> None:
        self.active = False
        self.calls.append("stop")

    def close(self) -> None:
        self.calls.append("close")


@pytest.fixture
def fake_sd(monkeypatch: pytest.MonkeyPatch):
    import morse_session

    module = SimpleNamespace(OutputStream=FakeOutputStream,
                             PortAudioError=type('PortAudioError', (Exception,), {}))
    monkeypatch.setattr(morse_session, "sd", module)
    return module


def pull(sink, frames: int) -> np.ndarray:
    outdata = np.zeros((frames, 1), dtype=np.float32)
    sink._callback(outdata, frames, None, None)
    return outdata[:, 0]


def test_sounddevice_sink_plays_chunks_across_callbacks(fake_sd) -> None:
    from morse_session import SoundDeviceSink

    sink = SoundDeviceSink(volume=1.0)
    sink.append(np.arange(1, 7, dtype=np.float32), SAMPLE_RATE)
    sink.append(np.full(2, 10, dtype=np.float32), SAMPLE_RATE)

    assert sink.pending_chunk_count() == 2
    assert pull(sink, 4).tolist() == [1, 2, 3, 4]
    # first chunk is only partly played
    assert sink.pending_chunk_count() == 2

    assert pull(sink, 4).tolist() == [5, 6, 10, 10]
    assert sink.pending_chunk_count() == 0

    assert pull(sink, 3).tolist() == [0, 0, 0]


def test_sounddevice_sink_pads_the_tail_with_silence(fake_sd) -> None:
    from morse_session import SoundDeviceSink

    sink = SoundDeviceSink(volume=1.0)
    sink.append(np.ones(3, dtype=np.float32), SAMPLE_RATE)

    assert pull(sink, 5).tolist() == [1, 1, 1, 0, 0]
    assert sink.pending_chunk_count() == 0


def test_sounddevice_sink_applies_volume(fake_sd) -> None:
    from morse_session import SoundDeviceSink

    sink = SoundDeviceSink(volume=0.5)
    sink.append(np.ones(4, dtype=np.float32), SAMPLE_RATE)

    assert pull(sink, 2).tolist() == [0.5, 0.5]
    sink.set_volume(0.25)
    assert pull(sink, 2).tolist() == [0.25, 0.25]


def test_sounddevice_sink_clear_restarts_from_the_next_chunk(fake_sd) -> None:
    from morse_session import SoundDeviceSink

    sink = SoundDeviceSink(volume=1.0)
    sink.append(np.ones(4, dtype=np.float32), SAMPLE_RATE)
    pull(sink, 2)

    sink.clear()

    assert sink.pending_chunk_count() == 0
    sink.append(np.array([7, 8], dtype=np.float32), SAMPLE_RATE)
    assert pull(sink, 2).tolist() == [7, 8]


def test_sounddevice_sink_rejects_other_sample_rates(fake_sd) -> None:
    from morse_session import SoundDeviceSink

    sink = SoundDeviceSink()

    with pytest.raises(ValueError, match="Hz"):
        sink.append(np.ones(4, dtype=np.float32), SAMPLE_RATE // 2)
    assert sink.pending_chunk_count() == 0


def test_sounddevice_sink_starts_once_and_closes_the_stream(fake_sd) -> None:
    from morse_session import SoundDeviceSink

    sink = SoundDeviceSink()
    stream = sink._stream

    sink.play()
    sink.play()
    sink.close()

    assert stream.samplerate == SAMPLE_RATE
    assert stream.channels == 1
    assert stream.calls == ["start", "stop", "close"]
