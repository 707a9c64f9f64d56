"""Find coincidences and arrival order in raw decoded events."""
from itertools import combinations

from numpy import ndarray
import numpy as np

from qmic_pipeline.core.event_format import ARRIVAL_CODE_BITS
from qmic_pipeline.core.events import DecodedEvents


def find_coincidences(events: DecodedEvents) -> ndarray:
    """Find pairs of events detected at the same time on different pixels.

    Args:
        events: Events returned by
          :func:`qmic_pipeline.core.decoder.decode_raw_events`.

    Returns:
        Array of shape (k, 2) with the indices of each coincident pair, the
        smaller index first. Pairs are sorted by timestamp.
    """
    order = np.argsort(events.timestamps, kind="stable")
    sorted_timestamps = events.timestamps[order]
    group_starts = np.flatnonzero(
        np.concatenate(([True], sorted_timestamps[1:] != sorted_timestamps[:-1]))
    )
    group_ends = np.append(group_starts[1:], len(order))

    pairs = []
    for start, end in zip(group_starts, group_ends):
        if end - start < 2:
            continue
        for i, j in combinations(sorted(order[start:end]), 2):
            if events.addresses[i] != events.addresses[j]:
                pairs.append((i, j))
    return np.array(pairs, dtype=np.int64).reshape(-1, 2)


def arrival_order(events: DecodedEvents) -> ndarray:
    """Get the indices that sort raw events by frame, then by arrival code.

    Events with identical timestamps keep their relative order.
    """
    return np.argsort(events.timestamps, kind="stable")


def same_frame(timestamps_a, timestamps_b):
    """Check whether raw timestamps belong to the same frame.

    Only then comparing their arrival codes tells which one came first.
    """
    return np.right_shift(timestamps_a, ARRIVAL_CODE_BITS) == np.right_shift(
        timestamps_b, ARRIVAL_CODE_BITS
    )
