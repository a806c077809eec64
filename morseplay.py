"""Command-line front-end for MorsePlay.

Plays text as Morse code on the default audio device, or with ``--info``
prints the timing of the text without opening the device. Options not given
on the command line come from the saved settings file.
"""
import argparse
import logging
import sys
from typing import List, Optional

from morse_config import PlayerConfig, load_settings, save_settings
from morse_encoder import SpeedModificationType, TextAdditions
from morse_errors import ConfigurationError, DeviceUnavailableError
from morse_player import AudioPlayer
from morse_session import PlaybackState
from morse_synth import WaveType
from morse_timing import TextType

logger = logging.getLogger('morseplay')

EXIT_CONFIG_ERROR = 2
EXIT_DEVICE_ERROR = 3


def _choices(enum_cls) -> List[str]:
    return [member.value for member in enum_cls]


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog='morseplay', description="Play text as Morse code.")
    p.add_argument('text', nargs='?', help="Text to play (defaults to the saved text)")
    p.add_argument('--text-type', choices=_choices(TextType), help="Selects the base unit length")
    p.add_argument('--speed', type=float, help="Speed, 100 is the reference")
    p.add_argument('--min-speed', type=float, help="Lowest speed of a ramp")
    p.add_argument('--max-speed', type=float, help="Highest speed of a ramp")
    p.add_argument('--modification', choices=_choices(SpeedModificationType), help="Speed ramp")
    p.add_argument('--modification-len', type=int, help="Characters per ramp window")
    p.add_argument('--additions', choices=_choices(TextAdditions), help="Preamble/postamble")
    p.add_argument('--wave', choices=_choices(WaveType), help="Waveform")
    p.add_argument('--frequency', type=float, help="Tone frequency (Hz)")
    p.add_argument('--volume', type=float, help="Output volume (0-1)")
    p.add_argument('--delay', type=int, help="Character gap in units")
    p.add_argument('--info', action='store_true', help="Print durations instead of playing")
    p.add_argument('--save-settings', action='store_true', help="Remember these options")
    p.add_argument('-v', '--verbose', action='store_true', help="Debug logging")
    return p


def config_from_args(args: argparse.Namespace, base: PlayerConfig) -> PlayerConfig:
    """Overlay the options given on the command line onto ``base``."""
    overrides = {
        'text': args.text,
        'text_type': args.text_type,
        'speed': args.speed,
        'min_speed': args.min_speed,
        'max_speed': args.max_speed,
        'modification': args.modification,
        'modification_len': args.modification_len,
        'text_additions': args.additions,
        'wave_type': args.wave,
        'frequency': args.frequency,
        'volume': args.volume,
        'delay': args.delay,
    }
    data = base.to_dict()
    data.update({k: v for k, v in overrides.items() if v is not None})
    return PlayerConfig.from_dict(data)


def print_info(config: PlayerConfig) -> None:
    # queries never touch the device
    player = AudioPlayer(config, sink=_NullSink())
    print(f"Preamble: {player.get_start_part_duration():.3f} s")
    print(f"Text:     {player.get_text_duration():.3f} s")
    timings = ', '.join(f"{t:.3f}" for t in player.get_char_timings())
    print(f"Checkpoints: {timings}")


class _NullSink:
    """Sink that discards audio; used for timing queries only."""

    def append(self, samples, sample_rate):
        pass

    def pending_chunk_count(self):
        return 0

    def play(self):
        pass

    def clear(self):
        pass

    def set_volume(self, volume):
        pass


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format='%(asctime)s %(name)s %(levelname)s: %(message)s')

    try:
        config = config_from_args(args, load_settings())
        config.validate()
        if args.save_settings:
            path = save_settings(config)
            logger.info("Settings saved to %s", path)
        if args.info:
            print_info(config)
            return 0

        player = AudioPlayer(config)
        player.connect_main_text_started_callback(lambda: logger.info("Main text started"))
        try:
            state = player.play_blocking()
        except KeyboardInterrupt:
            player.stop()
            state = PlaybackState.CANCELLED
        finally:
            player.close()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except DeviceUnavailableError as e:
        print(f"Audio device unavailable: {e}", file=sys.stderr)
        return EXIT_DEVICE_ERROR

    logger.info("Playback %s", state.value)
    return 0


if __name__ == '__main__':
    sys.exit(main())
