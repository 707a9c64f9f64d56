"""Outputs that persist camera words and decoded events.

Every file is a flat array without header, in little-endian byte order:

 - raw words: `uint32`, exactly as fetched from the camera;
 - decoded timestamps: `int64`, in 2 ns ticks;
 - decoded addresses: `uint16`, in the same order as the timestamps.

Use :func:`qmic_pipeline.core.events.load_raw_words` and
:meth:`qmic_pipeline.core.events.DecodedEvents.load_from_files` to read them.
"""
import abc
import logging
from typing import Any, IO, List, Optional

from numpy import ndarray
import numpy as np

from qmic_pipeline.core.events import ADDRESS_FILE_DTYPE
from qmic_pipeline.core.events import DecodedEvents
from qmic_pipeline.core.events import RAW_WORD_FILE_DTYPE
from qmic_pipeline.core.events import TIMESTAMP_FILE_DTYPE
from qmic_pipeline.errors import ResourceFault

logger = logging.getLogger(__name__)


class EventOutput(abc.ABC):
    """Represents an abstract output for camera data."""

    @abc.abstractmethod
    def connect(self) -> None:
        """Connect to output."""
        pass

    def disconnect(self) -> None:
        """Disconnect from output. The default implementation does nothing."""
        pass

    @property
    @abc.abstractmethod
    def n_written(self) -> int:
        """Number of elements written so far."""
        pass


class _BinaryFiles:
    """A group of binary files opened and closed together."""

    def __init__(self, file_names: List[str]):
        self.file_names = file_names
        self.files: List[Optional[IO[Any]]] = [None] * len(file_names)

    def open(self) -> None:
        try:
            for i, file_name in enumerate(self.file_names):
                logger.info(f"Opening output file {file_name}")
                self.files[i] = open(file_name, "wb")
        except OSError as e:
            self.close()
            raise ResourceFault(f"Cannot open output file: {e}") from e

    def close(self) -> None:
        for file in self.files:
            if file is not None:
                file.close()

    def write(self, index: int, data: ndarray) -> None:
        file = self.files[index]
        if file is None or file.closed:
            raise ResourceFault(f"Output file {self.file_names[index]} is not open.")
        data.tofile(file)


class RawWordsFileOutput(EventOutput):
    """Writes the camera words to a file."""

    def __init__(self, file_name: str = "data_out.dat"):
        """Initialize the output.

        Args:
            file_name: Path of the words file. Defaults to "data_out.dat".
        """
        self._files = _BinaryFiles([file_name])
        self._n_written = 0

    @property
    def n_written(self) -> int:
        """Number of words written so far."""
        return self._n_written

    def connect(self) -> None:
        """Open the output file."""
        self._files.open()

    def disconnect(self) -> None:
        """Close the output file."""
        self._files.close()

    def send(self, words: ndarray) -> ndarray:
        """Append words to the file and return them unchanged."""
        self._files.write(0, np.asarray(words).astype(RAW_WORD_FILE_DTYPE))
        self._n_written += len(words)
        return words


class DecodedEventsFileOutput(EventOutput):
    """Writes decoded events to a timestamps file and an addresses file."""

    def __init__(
        self,
        timestamps_file_name: str = "decoded_ts_out.dat",
        addresses_file_name: str = "decoded_addr_out.dat",
    ):
        """Initialize the output.

        Args:
            timestamps_file_name: Path of the timestamps file.
            addresses_file_name: Path of the addresses file.
        """
        self._files = _BinaryFiles([timestamps_file_name, addresses_file_name])
        self._n_written = 0

    @property
    def n_written(self) -> int:
        """Number of events written so far."""
        return self._n_written

    def connect(self) -> None:
        """Open both output files."""
        self._files.open()

    def disconnect(self) -> None:
        """Close both output files."""
        self._files.close()

    def send(self, events: DecodedEvents) -> DecodedEvents:
        """Append events to the files and return them unchanged.

        32-bit timestamps are widened, so the file always holds 64-bit values.
        """
        self._files.write(0, events.timestamps.astype(TIMESTAMP_FILE_DTYPE))
        self._files.write(1, events.addresses.astype(ADDRESS_FILE_DTYPE))
        self._n_written += len(events)
        return events
