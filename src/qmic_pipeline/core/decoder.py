"""Decode camera event words into pixel addresses and timestamps.

Each compressed event word carries a tick counter that is much narrower than the
timestamps produced here. The decoders extend it to a wide time base: starting
from a base timestamp, a tick that is smaller than the previous one by more than
half of the counter range means the counter wrapped, and the high part of the
timestamp is incremented.

Decoding is stateless. The caller threads the time base through consecutive
calls::

    base = 0
    for words in blocks:
        events = decode_events(words, base)
        base = events.last_timestamp

which produces the same timestamps as decoding all the blocks at once. Calls for
the same stream must be issued in the order the words were fetched.
"""
from enum import IntEnum
from typing import Iterable, Iterator, Optional

from numpy import ndarray
import numpy as np

from qmic_pipeline.core.event_format import ARRIVAL_CODE_BITS
from qmic_pipeline.core.event_format import DEFAULT_LAYOUT
from qmic_pipeline.core.event_format import DEFAULT_RAW_LAYOUT
from qmic_pipeline.core.event_format import EventWordLayout
from qmic_pipeline.core.event_format import N_PIXELS
from qmic_pipeline.core.event_format import RawWordLayout
from qmic_pipeline.core.events import DecodedEvents
from qmic_pipeline.errors import EmptyInput
from qmic_pipeline.errors import InvalidLength
from qmic_pipeline.errors import OutOfRangeAddress


class TimestampWidth(IntEnum):
    """Width of the decoded timestamps.

    32-bit timestamps wrap after about 4 s, 64-bit ones after about 584 years.
    Base timestamps of one width must not be fed to a decode call of the other.
    """

    W32 = 32
    W64 = 64


def decode_events(
    words: ndarray,
    base_timestamp: int = 0,
    width: TimestampWidth = TimestampWidth.W64,
    layout: EventWordLayout = DEFAULT_LAYOUT,
    require_events: bool = False,
) -> DecodedEvents:
    """Decode compressed event words.

    Args:
        words: 1-D array of 32-bit words, in the order they were fetched.
        base_timestamp: Timestamp the decoding starts from, normally the
          `last_timestamp` of the previous call for the same stream, or 0.
        width: Width of the output timestamps.
        layout: Bit layout of the words.
        require_events: Raise :class:`EmptyInput` when `words` is empty instead of
          returning no events.

    Returns:
        One event per word, in input order. For ordered input the timestamps never
        decrease and are never below `base_timestamp`.

    Raises:
        OutOfRangeAddress: If a word decodes to an address outside of the grid. No
          events are returned in that case.
        EmptyInput: If `words` is empty and `require_events` is set.
        InvalidLength: If `words` is not 1-D or `width` is not supported.
    """
    width = _check_width(width)
    words = _as_words(words)
    if words.shape[0] == 0:
        if require_events:
            raise EmptyInput("No words to decode.")
        return DecodedEvents.empty_events(base_timestamp, _timestamp_dtype(width))

    addresses = layout.addresses(words)
    _check_addresses(addresses)

    base = _unsigned_base(base_timestamp, width)
    wide = _unwrap(layout.ticks(words), layout.tick_modulus, base)
    # Out of order ticks are held at the latest timestamp instead of going back.
    wide = np.maximum(np.maximum.accumulate(wide), base)

    return DecodedEvents(
        _to_width(wide, width), addresses.astype(np.uint16), int(base_timestamp)
    )


def decode_raw_events(
    words: ndarray,
    base_timestamp: int = 0,
    capacity: Optional[int] = None,
    layout: RawWordLayout = DEFAULT_RAW_LAYOUT,
) -> DecodedEvents:
    """Decode raw event words.

    Filler words are dropped, so fewer events than words are returned whenever
    fillers are present. Events keep the order of the words, which is not the
    order of arrival. The timestamps are built from the frame counter and the
    arrival code and are not absolute times of arrival:

     - two identical timestamps are a coincidence, the two pixels detected a
       photon at the same time;
     - if only the low 8 bits differ, the smaller value arrived first.

    Args:
        words: 1-D array of 32-bit raw words.
        base_timestamp: Timestamp the decoding starts from, normally the
          `last_timestamp` of the previous call for the same stream, or 0.
        capacity: Maximum number of events the caller can take. Defaults to the
          number of words.
        layout: Bit layout of the raw words.

    Returns:
        The decoded 64-bit events.

    Raises:
        InvalidLength: If `capacity` is negative, zero while there are words, or
          smaller than the number of events in `words`.
        OutOfRangeAddress: If an event decodes to an address outside of the grid.
    """
    words = _as_words(words)
    n_words = words.shape[0]
    if capacity is None:
        capacity = n_words
    if capacity < 0 or (capacity == 0 and n_words > 0):
        raise InvalidLength(f"Capacity {capacity} is not valid for {n_words} words.")

    is_event = layout.is_event(words)
    event_words = words[is_event]
    if event_words.shape[0] > capacity:
        raise InvalidLength(
            f"{event_words.shape[0]} events do not fit in a capacity of {capacity}."
        )
    if event_words.shape[0] == 0:
        return DecodedEvents.empty_events(base_timestamp)

    addresses = layout.addresses(event_words)
    _check_addresses(addresses, np.flatnonzero(is_event))

    base = int(base_timestamp)
    frames = _unwrap(
        layout.frames(event_words), layout.frame_modulus, base >> ARRIVAL_CODE_BITS
    )
    timestamps = (frames << ARRIVAL_CODE_BITS) | layout.arrival_codes(event_words)
    return DecodedEvents(timestamps, addresses.astype(np.uint16), base)


def decode_stream(
    blocks: Iterable[ndarray],
    base_timestamp: int = 0,
    width: TimestampWidth = TimestampWidth.W64,
    raw: bool = False,
) -> Iterator[DecodedEvents]:
    """Decode consecutive blocks of one stream, chaining the base timestamp.

    Args:
        blocks: Blocks of words in the order they were fetched.
        base_timestamp: Timestamp the first block starts from.
        width: Width of the output timestamps. Raw decoding is always 64-bit.
        raw: Decode the blocks as raw words.

    Yields:
        The events of each block.
    """
    base = base_timestamp
    for words in blocks:
        if raw:
            events = decode_raw_events(words, base)
        else:
            events = decode_events(words, base, width)
        base = events.last_timestamp
        yield events


def _unwrap(counter: ndarray, modulus: int, base: int) -> ndarray:
    """Extend a wrapping counter to 64 bits, starting from `base`.

    Each value is compared with the previous counter value as read, not with the
    low bits of the previous extended value. For ordered input the two are equal.
    A late word read just after a wrap is not recognized as belonging before it,
    so it is extended one whole modulus ahead of its true position.
    """
    low = base % modulus
    high = base - low
    previous = np.concatenate(([low], counter[:-1]))
    wraps = (previous - counter) > modulus // 2
    return np.int64(high) + np.cumsum(wraps, dtype=np.int64) * modulus + counter


def _check_addresses(addresses: ndarray, positions: Optional[ndarray] = None):
    out_of_range = np.flatnonzero(addresses >= N_PIXELS)
    if out_of_range.size:
        first = out_of_range[0]
        index = first if positions is None else positions[first]
        raise OutOfRangeAddress(int(index), int(addresses[first]), N_PIXELS)


def _check_width(width) -> TimestampWidth:
    try:
        return TimestampWidth(width)
    except ValueError:
        raise InvalidLength(f"Unsupported timestamp width: {width}") from None


def _as_words(words) -> ndarray:
    words = np.asarray(words, dtype=np.uint32)
    if words.ndim != 1:
        raise InvalidLength("Words should be a 1-D array.")
    return words


def _timestamp_dtype(width: TimestampWidth):
    return np.int32 if width == TimestampWidth.W32 else np.int64


def _unsigned_base(base_timestamp: int, width: TimestampWidth) -> int:
    if width == TimestampWidth.W32:
        return int(base_timestamp) & 0xFFFFFFFF
    return int(base_timestamp)


def _to_width(wide: ndarray, width: TimestampWidth) -> ndarray:
    if width == TimestampWidth.W32:
        return (wide & 0xFFFFFFFF).astype(np.uint32).view(np.int32)
    return wide
