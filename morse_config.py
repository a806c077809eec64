"""Player configuration and settings persistence for MorsePlay.

PlayerConfig holds every option the player exposes. The settings file
lets the command-line tool remember the last used options between runs.
"""
from dataclasses import asdict, dataclass, fields
from enum import Enum
import json
import logging
import os
import sys
from typing import Any, Dict, Optional

from morse_encoder import SpeedModificationType, TextAdditions, check_ramp, ramp_steps
from morse_errors import ConfigurationError
from morse_synth import WaveType
from morse_timing import TextType
from morse_utils import DEFAULT_FREQUENCY_HZ, DEFAULT_VOLUME

logger = logging.getLogger(__name__)

_ENUM_FIELDS = {
    'text_type': TextType,
    'modification': SpeedModificationType,
    'text_additions': TextAdditions,
    'wave_type': WaveType,
}


@dataclass
class PlayerConfig:
    """Configuration of an AudioPlayer.

    Setters only store values; :meth:`validate` is called when a session or
    a duration query needs them.
    """
    text: str = ''
    text_type: TextType = TextType.LETTERS
    speed: float = 100.0
    min_speed: float = 100.0
    max_speed: float = 110.0
    modification: SpeedModificationType = SpeedModificationType.NONE
    modification_len: int = 10
    text_additions: TextAdditions = TextAdditions.TRAINING
    wave_type: WaveType = WaveType.SQUARE
    frequency: float = DEFAULT_FREQUENCY_HZ
    volume: float = DEFAULT_VOLUME
    delay: Optional[int] = None

    def validate(self) -> None:
        """Check that the configuration can produce a session.

        Raises:
            ConfigurationError: describing the first problem found.
        """
        if self.speed <= 0:
            raise ConfigurationError(f"speed must be positive, got {self.speed}")
        if self.modification is not SpeedModificationType.NONE:
            ramp_steps(self.modification, self.modification_len)
            if self.min_speed <= 0:
                raise ConfigurationError(f"min speed must be positive, got {self.min_speed}")
            check_ramp(self.modification, self.modification_len, self.min_speed, self.max_speed)
        if self.frequency <= 0:
            raise ConfigurationError(f"frequency must be positive, got {self.frequency}")
        if self.volume < 0:
            raise ConfigurationError(f"volume cannot be negative, got {self.volume}")
        if self.delay is not None and self.delay < 1:
            raise ConfigurationError(f"delay must be at least 1 unit, got {self.delay}")

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-friendly dict; enum members are stored by value
        (e.g. ``'zigzag'``), the same strings the command line accepts."""
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Enum):
                data[key] = value.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PlayerConfig':
        """Build a config from :meth:`to_dict` output, ignoring unknown keys.

        Raises:
            ConfigurationError: if an enum field holds an unknown value.
        """
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            if key not in known:
                continue
            if key in _ENUM_FIELDS:
                try:
                    value = _ENUM_FIELDS[key](value)
                except ValueError:
                    raise ConfigurationError(f"invalid {key}: {value!r}") from None
            kwargs[key] = value
        return cls(**kwargs)


def get_settings_path() -> str:
    """Get platform-appropriate settings file path.

    Returns:
        Path to the settings file based on the platform.
    """
    if sys.platform == 'win32':
        # Windows: Use AppData\Local
        base = os.environ.get('LOCALAPPDATA', os.path.expanduser('~'))
        config_dir = os.path.join(base, 'MorsePlay')
    elif sys.platform == 'darwin':
        # macOS: Use ~/Library/Application Support
        config_dir = os.path.join(os.path.expanduser('~'), 'Library', 'Application Support', 'MorsePlay')
    else:
        # Linux/Unix: Use XDG_CONFIG_HOME or ~/.config
        xdg_config = os.environ.get('XDG_CONFIG_HOME', os.path.join(os.path.expanduser('~'), '.config'))
        config_dir = os.path.join(xdg_config, 'morseplay')

    return os.path.join(config_dir, 'settings.json')


def load_settings(path: Optional[str] = None) -> PlayerConfig:
    """Load settings from disk.

    Returns:
        The stored PlayerConfig, or defaults if the file is missing or
        unreadable.
    """
    path = path or get_settings_path()
    if not os.path.exists(path):
        return PlayerConfig()

    try:
        with open(path, 'r') as f:
            return PlayerConfig.from_dict(json.load(f))
    except (json.JSONDecodeError, IOError, AttributeError, TypeError, ConfigurationError) as e:
        logger.warning("Ignoring unreadable settings file %s: %s", path, e)
        return PlayerConfig()


def save_settings(config: PlayerConfig, path: Optional[str] = None) -> str:
    """Save settings to disk and return the path written."""
    path = path or get_settings_path()
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, 'w') as f:
        json.dump(config.to_dict(), indent=2, fp=f)
    return path
