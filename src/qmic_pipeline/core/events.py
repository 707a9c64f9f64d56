"""Containers for decoded photon events and their on-disk format."""
from __future__ import annotations

from dataclasses import dataclass
import errno
import os

from numpy import ndarray
import numpy as np

TIMESTAMP_FILE_DTYPE = np.dtype("<i8")
"""Element type of a decoded timestamps file."""

ADDRESS_FILE_DTYPE = np.dtype("<u2")
"""Element type of a decoded addresses file."""

RAW_WORD_FILE_DTYPE = np.dtype("<u4")
"""Element type of a raw camera words file."""


@dataclass
class DecodedEvents:
    """Photon events decoded from a sequence of camera words."""

    timestamps: ndarray
    """Timestamp of each event, in 2 ns ticks (`int32` or `int64`)."""

    addresses: ndarray
    """Address of the pixel that detected each event (`uint16`)."""

    base_timestamp: int = 0
    """The base timestamp the events were decoded from."""

    def __post_init__(self):
        """Execute validation checks on the data."""
        _validate_inputs(self.timestamps, self.addresses)

    def __len__(self):
        """Return the number of events."""
        return self.timestamps.shape[0]

    @property
    def empty(self) -> bool:
        """Check if there are no events."""
        return len(self) == 0

    @property
    def last_timestamp(self) -> int:
        """Base timestamp to use when decoding the words that follow.

        This is the last decoded timestamp, or the base timestamp these events
        were decoded from if there are none.
        """
        if self.empty:
            return self.base_timestamp
        return int(self.timestamps[-1])

    def __eq__(self, o: object) -> bool:
        """Compare timestamps and addresses of two event collections."""
        if not isinstance(o, DecodedEvents):
            return False
        return np.array_equal(self.timestamps, o.timestamps) and np.array_equal(
            self.addresses, o.addresses
        )

    def __getitem__(self, key) -> DecodedEvents:
        """Select a subset of the events."""
        return DecodedEvents(
            np.atleast_1d(self.timestamps[key]),
            np.atleast_1d(self.addresses[key]),
            self.base_timestamp,
        )

    @classmethod
    def empty_events(cls, base_timestamp: int = 0, dtype=np.int64) -> DecodedEvents:
        """Create an empty collection of events."""
        return DecodedEvents(
            np.array([], dtype=dtype), np.array([], dtype=np.uint16), base_timestamp
        )

    @classmethod
    def load_from_files(cls, timestamps_path: str, addresses_path: str):
        """Load events from a pair of decoded files.

        Args:
            timestamps_path: Flat file of little-endian `int64` timestamps.
            addresses_path: Flat file of little-endian `uint16` pixel addresses,
              in the same order as the timestamps.
        """
        _check_file_exists(timestamps_path)
        _check_file_exists(addresses_path)
        timestamps = np.fromfile(timestamps_path, dtype=TIMESTAMP_FILE_DTYPE)
        addresses = np.fromfile(addresses_path, dtype=ADDRESS_FILE_DTYPE)
        return DecodedEvents(timestamps.astype(np.int64), addresses.astype(np.uint16))


def load_raw_words(filepath: str) -> ndarray:
    """Map a flat file of raw camera words.

    The file is mapped read-only instead of read, so slices of the result can be
    decoded one after the other without holding the whole file in memory.

    Args:
        filepath: File written by :class:`qmic_pipeline.outputs.RawWordsFileOutput`.

    Returns:
        The words as a `uint32` array backed by the file.
    """
    _check_file_exists(filepath)
    if os.path.getsize(filepath) < RAW_WORD_FILE_DTYPE.itemsize:
        return np.array([], dtype=np.uint32)
    return np.memmap(filepath, mode="r", dtype=RAW_WORD_FILE_DTYPE)


def _check_file_exists(filepath: str):
    if not os.path.exists(filepath):
        raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), filepath)


def _validate_inputs(timestamps: ndarray, addresses: ndarray):
    if timestamps.ndim != 1 or addresses.ndim != 1:
        raise ValueError("timestamps and addresses should be 1-D arrays")
    if timestamps.shape[0] != addresses.shape[0]:
        raise ValueError(
            f"Number of timestamps ({timestamps.shape[0]}) does not match the"
            f" number of addresses ({addresses.shape[0]})"
        )
