"""Bit layout of the 32-bit event words produced by the camera.

The camera emits one 32-bit word per detected photon. Two encodings exist:

 - the compressed encoding, described by :class:`EventWordLayout`, where every
   word is a photon event carrying a pixel address and a narrow tick counter;
 - the raw encoding, described by :class:`RawWordLayout`, where words can also be
   fillers, and each event carries a frame counter and an 8-bit arrival code
   instead of a tick counter.

Field widths are placeholders until calibrated against real device output, so
both layouts take them as constructor arguments.
"""
from dataclasses import dataclass

from numpy import ndarray
import numpy as np

N_PIXELS = 576
"""Number of pixels in the SPAD array."""

GRID_SHAPE = (24, 24)
"""Shape (rows, columns) of the SPAD array. Addresses are row-major."""

BLOCK_SIZE = 256
"""Granularity (in words) of every transfer from the camera."""

TICK_SECONDS = 2e-9
"""Duration of one timestamp tick."""

ARRIVAL_CODE_BITS = 8
"""Number of low timestamp bits that order events within a raw frame."""


def _mask(bits: int) -> int:
    return (1 << bits) - 1


@dataclass(frozen=True)
class EventWordLayout:
    """Field layout of a compressed event word.

    The pixel address sits in the low `address_bits` and the tick counter in the
    `tick_bits` above it.
    """

    address_bits: int = 10
    tick_bits: int = 22

    def __post_init__(self):
        """Check that the fields fit in one word."""
        if self.address_bits + self.tick_bits > 32:
            raise ValueError("Address and tick fields do not fit in 32 bits")
        if (1 << self.address_bits) < N_PIXELS:
            raise ValueError(f"{self.address_bits} bits cannot address every pixel")

    @property
    def tick_modulus(self) -> int:
        """Number of distinct tick values before the counter wraps."""
        return 1 << self.tick_bits

    def addresses(self, words: ndarray) -> ndarray:
        """Extract the pixel addresses from the words."""
        return (words & _mask(self.address_bits)).astype(np.int64)

    def ticks(self, words: ndarray) -> ndarray:
        """Extract the tick counter from the words."""
        return ((words >> self.address_bits) & _mask(self.tick_bits)).astype(np.int64)

    def encode(self, addresses: ndarray, ticks: ndarray) -> ndarray:
        """Build words from addresses and ticks.

        Ticks are reduced modulo :attr:`tick_modulus`.
        """
        addresses = np.asarray(addresses, dtype=np.uint64)
        ticks = np.asarray(ticks, dtype=np.uint64) & np.uint64(_mask(self.tick_bits))
        words = (ticks << np.uint64(self.address_bits)) | (
            addresses & np.uint64(_mask(self.address_bits))
        )
        return words.astype(np.uint32)


@dataclass(frozen=True)
class RawWordLayout:
    """Field layout of a raw event word.

    From the most significant bit: a valid flag (cleared on filler words), the
    frame counter, the arrival code and the pixel address.
    """

    address_bits: int = 10
    arrival_bits: int = ARRIVAL_CODE_BITS
    frame_bits: int = 13

    def __post_init__(self):
        """Check that the fields fit in one word."""
        if 1 + self.frame_bits + self.arrival_bits + self.address_bits > 32:
            raise ValueError("Raw word fields do not fit in 32 bits")

    @property
    def valid_bit(self) -> int:
        """Position of the valid flag."""
        return self.address_bits + self.arrival_bits + self.frame_bits

    @property
    def frame_modulus(self) -> int:
        """Number of distinct frame counter values before it wraps."""
        return 1 << self.frame_bits

    def is_event(self, words: ndarray) -> ndarray:
        """Return a boolean mask of the words that carry a photon event."""
        return ((words >> self.valid_bit) & 1).astype(bool)

    def addresses(self, words: ndarray) -> ndarray:
        """Extract the pixel addresses from the words."""
        return (words & _mask(self.address_bits)).astype(np.int64)

    def arrival_codes(self, words: ndarray) -> ndarray:
        """Extract the arrival codes from the words."""
        return ((words >> self.address_bits) & _mask(self.arrival_bits)).astype(
            np.int64
        )

    def frames(self, words: ndarray) -> ndarray:
        """Extract the frame counter from the words."""
        shift = self.address_bits + self.arrival_bits
        return ((words >> shift) & _mask(self.frame_bits)).astype(np.int64)

    def encode(self, addresses: ndarray, frames: ndarray, arrival_codes: ndarray):
        """Build valid event words."""
        addresses = np.asarray(addresses, dtype=np.uint64) & np.uint64(
            _mask(self.address_bits)
        )
        codes = np.asarray(arrival_codes, dtype=np.uint64) & np.uint64(
            _mask(self.arrival_bits)
        )
        frames = np.asarray(frames, dtype=np.uint64) & np.uint64(
            _mask(self.frame_bits)
        )
        words = (
            (np.uint64(1) << np.uint64(self.valid_bit))
            | (frames << np.uint64(self.address_bits + self.arrival_bits))
            | (codes << np.uint64(self.address_bits))
            | addresses
        )
        return words.astype(np.uint32)

    def filler(self, n_words: int) -> ndarray:
        """Build `n_words` filler words."""
        return np.zeros(n_words, dtype=np.uint32)


DEFAULT_LAYOUT = EventWordLayout()
DEFAULT_RAW_LAYOUT = RawWordLayout()


def pixel_coordinates(addresses: ndarray):
    """Convert pixel addresses to (row, column) coordinates on the grid."""
    return np.divmod(np.asarray(addresses), GRID_SHAPE[1])
