"""Symbol model and action timing table.

Every Morse transmission is represented as an ordered list of ``Symbol``
values. The ``ActionTimingTable`` tells the synthesizer and the timing
calculator what each symbol does (tone, silence or speed change) and how
many time units it lasts.
"""
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from morse_errors import MissingActionError


class ActionCategory(Enum):
    TONE = 0
    SILENCE = 1
    SPEED_CHANGE = 2


class Symbol(Enum):
    """Discrete token of a Morse symbol sequence.

    The values double as a compact one-character notation used by the
    preamble tables and in debug output.
    """
    DOT = '.'
    DASH = '-'
    INTRA_GAP = '*'
    CHARACTER_GAP = '$'
    WORD_GAP = '/'
    SPEED_MARKER = '|'


# Default (category, units) per symbol
DEFAULT_ACTIONS: Dict[Symbol, Tuple[ActionCategory, int]] = {
    Symbol.DOT: (ActionCategory.TONE, 1),
    Symbol.DASH: (ActionCategory.TONE, 3),
    Symbol.INTRA_GAP: (ActionCategory.SILENCE, 1),
    Symbol.CHARACTER_GAP: (ActionCategory.SILENCE, 3),
    Symbol.WORD_GAP: (ActionCategory.SILENCE, 7),
    Symbol.SPEED_MARKER: (ActionCategory.SPEED_CHANGE, 0),
}

# Word gap units are derived from the character gap ("delay") setting
WORD_GAP_RATIO = 2.33


def parse_symbols(notation: str) -> List[Symbol]:
    """Convert compact notation (e.g. ``'.*-$'``) into a list of symbols."""
    return [Symbol(ch) for ch in notation]


def format_symbols(symbols: Iterable[Symbol]) -> str:
    """Inverse of :func:`parse_symbols`; handy for logs and assertions."""
    return ''.join(s.value for s in symbols)


class ActionTimingTable:
    """Mapping Symbol -> (category, duration in units).

    Instances are mutable through :meth:`set_delay` only; sessions take a
    :meth:`copy` so later changes never reach an in-flight playback.
    """

    def __init__(self, actions: Optional[Dict[Symbol, Tuple[ActionCategory, int]]] = None):
        self._actions = dict(DEFAULT_ACTIONS if actions is None else actions)

    def lookup(self, symbol: Symbol) -> Tuple[ActionCategory, int]:
        """Return ``(category, units)`` for ``symbol``.

        Raises:
            MissingActionError: if the table has no entry for the symbol.
        """
        try:
            return self._actions[symbol]
        except KeyError:
            raise MissingActionError(symbol) from None

    def category(self, symbol: Symbol) -> ActionCategory:
        return self.lookup(symbol)[0]

    def units(self, symbol: Symbol) -> int:
        return self.lookup(symbol)[1]

    def set_delay(self, delay: int) -> None:
        """Override character and word gap lengths together.

        The character gap becomes ``delay`` units and the word gap
        ``round(delay * 2.33)`` units, so a delay of 3 gives back the
        standard 3/7 spacing.
        """
        self._actions[Symbol.CHARACTER_GAP] = (ActionCategory.SILENCE, int(delay))
        self._actions[Symbol.WORD_GAP] = (ActionCategory.SILENCE, round(delay * WORD_GAP_RATIO))

    def copy(self) -> 'ActionTimingTable':
        return ActionTimingTable(self._actions)

    def __contains__(self, symbol: Symbol) -> bool:
        return symbol in self._actions

    def __eq__(self, other) -> bool:
        if not isinstance(other, ActionTimingTable):
            return NotImplemented
        return self._actions == other._actions
