"""A bounded ring buffer of event words."""
from numpy import ndarray
import numpy as np


class WordFifo:
    """A first-in first-out buffer of 32-bit words with a fixed capacity.

    It models the on-camera memory: when it fills up, adding more words raises an
    overflow error instead of growing.
    """

    def __init__(self, *, capacity: int):
        """Create a new buffer that can hold `capacity` words."""
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._buffer = np.zeros(capacity, dtype=np.uint32)
        self._capacity = capacity
        self._read_idx = 0
        self._size = 0

    def __len__(self):
        """Return the number of words in the buffer."""
        return self._size

    def __repr__(self):
        """Return a string representation of the buffer."""
        return "<WordFifo {}/{} words>".format(self._size, self._capacity)

    @property
    def capacity(self) -> int:
        """Maximum number of words the buffer can hold."""
        return self._capacity

    def remaining(self) -> int:
        """Return the number of words that can still be added."""
        return self._capacity - self._size

    def add(self, words: ndarray):
        """Append words to the buffer.

        Args:
            words: A 1-D array of words.

        Raises:
            OverflowError: If the words do not fit. Nothing is added in that case.
        """
        n_words = words.shape[0]
        if n_words > self.remaining():
            raise OverflowError
        write_idx = (self._read_idx + self._size) % self._capacity
        writing_idxs = np.arange(write_idx, write_idx + n_words) % self._capacity
        self._buffer[writing_idxs] = words
        self._size += n_words

    def read(self, n: int) -> ndarray:
        """Consume n words from the buffer.

        Args:
            n: Number of words. At most `len(self)` words are returned.

        Returns:
            An array of words.
        """
        data = self._view(n)
        self._read_idx = (self._read_idx + len(data)) % self._capacity
        self._size -= len(data)
        return data

    def clear(self):
        """Drop all the buffered words."""
        self._read_idx = 0
        self._size = 0

    def _view(self, n):
        n = min(n, self._size)
        return self._buffer.take(
            np.arange(self._read_idx, self._read_idx + n), mode="wrap"
        )
