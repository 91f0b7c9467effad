"""
ZB Stream Naming
================
Stream names, endpoint identifiers and duplicate detection for subscriptions.

A single-stream subscription is addressed by its stream name. A combined
subscription is addressed by a 32-bit hash of its stream names joined with
"/", so the same list in the same order always maps to the same identifier
while a reordered list maps to a different one.
"""

from collections import Counter
from typing import Iterable, List, Sequence

from ....core.exceptions import DuplicateStreamError

TRADES_SUFFIX = "_trades"
STREAM_SEPARATOR = "/"


def string_hash(text: str) -> int:
    """
    Deterministic non-cryptographic 32-bit hash (djb2, xor variant).

    Walks the UTF-16 code units from the last to the first, matching the
    ``string-hash`` function used by JavaScript clients, so identifiers are
    interchangeable with theirs.
    """
    units = text.encode('utf-16-le')
    value = 5381
    for i in range(len(units) - 2, -1, -2):
        code_unit = units[i] | (units[i + 1] << 8)
        value = ((value * 33) ^ code_unit) & 0xFFFFFFFF
    return value


def trade_stream(symbol: str) -> str:
    """Stream name carrying trades for one symbol, e.g. ``btc_usdt_trades``."""
    return symbol.lower() + TRADES_SUFFIX


def combined_key(streams: Sequence[str]) -> str:
    return STREAM_SEPARATOR.join(streams)


def combined_endpoint_id(streams: Sequence[str]) -> str:
    """Registry key of a combined subscription over ``streams`` (order sensitive)."""
    return str(string_hash(combined_key(streams)))


def find_duplicates(items: Iterable[str]) -> List[str]:
    return [item for item, count in Counter(items).items() if count > 1]


def ensure_unique(items: Sequence[str], operation: str) -> None:
    """
    Raise DuplicateStreamError if ``items`` repeats any element.

    Raises:
        DuplicateStreamError: when at least one element appears twice
    """
    duplicates = find_duplicates(items)
    if duplicates:
        raise DuplicateStreamError(operation, duplicates)
