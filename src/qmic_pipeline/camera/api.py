"""The interface every camera implementation exposes to the pipeline.

A camera is a source of event words stored in a bounded on-camera memory, plus
the configuration and telemetry operations around it. Words are transferred in
blocks of :data:`qmic_pipeline.core.event_format.BLOCK_SIZE`:
:meth:`Camera.words_available` always returns a multiple of the block size and
:meth:`Camera.fetch` only accepts one.

Settings can only be changed while the acquisition is stopped. Telemetry and
the frame length histogram can be read at any time.
"""
import abc
from dataclasses import dataclass
import logging
from typing import Optional, Sequence

from numpy import ndarray
import numpy as np

from qmic_pipeline.core.event_format import BLOCK_SIZE
from qmic_pipeline.core.event_format import N_PIXELS
from qmic_pipeline.core.frame_stats import FrameLengthSnapshot
from qmic_pipeline.errors import DeviceBusy
from qmic_pipeline.errors import FetchTimeout
from qmic_pipeline.errors import InvalidHandle
from qmic_pipeline.errors import InvalidLength
from qmic_pipeline.errors import OutOfRangeAddress
from qmic_pipeline.errors import ValueOutOfRange
from qmic_pipeline.timing import get_timer

logger = logging.getLogger(__name__)

DEFAULT_FETCH_TIMEOUT = 10.0
"""Time a fetch waits for the requested words (in seconds)."""

DEFAULT_POLL_PERIOD = 0.005
"""Time between two checks of the available words during a fetch (in seconds)."""

SYNC_OUT_DELAY_STEP = 4e-9
"""Delay added to the sync output per step (in seconds)."""


@dataclass(frozen=True)
class AnalogTelemetry:
    """Readings of the camera telemetry sensors."""

    carrier_temperature: float
    power_temperature: float
    vcc: float
    v_spad: float
    v_12v: float
    v_1v8: float
    i_spad: float
    i_12v: float
    i_1v8: float

    @property
    def supply_voltages(self) -> tuple:
        """Supply voltages (Vcc, Vspad, 12V, 1V8), in volts."""
        return (self.vcc, self.v_spad, self.v_12v, self.v_1v8)

    @property
    def supply_currents(self) -> tuple:
        """Supply currents (Ispad, 12V, 1V8), in amperes."""
        return (self.i_spad, self.i_12v, self.i_1v8)


@dataclass(frozen=True)
class AdvancedSettings:
    """Advanced and debug settings of the camera."""

    empty_frames_compression: bool = True
    enable_raw_mode: bool = False
    pos_read: int = 0
    pos_gate1: int = 0
    pos_gate: int = 0
    gate_len: int = 0
    readout_time: int = 0
    wait_gate_end: bool = False
    unwrap_frame_len_hist: bool = False

    def validate(self) -> None:
        """Check that every field fits in its hardware register.

        Raises:
            ValueOutOfRange: If a field does not fit.
        """
        for name in ("pos_read", "pos_gate1", "pos_gate", "gate_len"):
            _check_range(name, getattr(self, name), 0, 0xFF)
        _check_range("readout_time", self.readout_time, 0, 0xFFFF)


@dataclass(frozen=True)
class VersionInfo:
    """Software and firmware versions."""

    software: float
    firmware: float
    software_git: int
    firmware_git: int


class Camera(abc.ABC):
    """Represents a camera that produces photon event words."""

    def __init__(
        self,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
        poll_period: float = DEFAULT_POLL_PERIOD,
    ):
        """Initialize the camera.

        Args:
            fetch_timeout: Default time a fetch waits for the requested words
              (in seconds).
            poll_period: Time between two checks of the available words during a
              fetch (in seconds).
        """
        self.fetch_timeout = fetch_timeout
        self.poll_period = poll_period

    @property
    @abc.abstractmethod
    def connected(self) -> bool:
        """Whether the camera handle is open."""
        pass

    @property
    @abc.abstractmethod
    def acquiring(self) -> bool:
        """Whether the acquisition is running."""
        pass

    @abc.abstractmethod
    def connect(self) -> None:
        """Open the communication with the camera."""
        pass

    @abc.abstractmethod
    def disconnect(self) -> None:
        """Close the communication with the camera."""
        pass

    @abc.abstractmethod
    def start(self) -> None:
        """Start the acquisition. Events accumulate in the camera memory."""
        pass

    @abc.abstractmethod
    def stop(self) -> None:
        """Stop the acquisition. No more events are put in the camera memory."""
        pass

    @abc.abstractmethod
    def flush(self) -> None:
        """Discard all the data in the camera memory.

        Raises:
            DeviceBusy: If the acquisition is running.
        """
        pass

    @abc.abstractmethod
    def _words_available(self) -> int:
        """Return the number of words in the camera memory."""
        pass

    @abc.abstractmethod
    def _read_words(self, count: int) -> ndarray:
        """Transfer `count` words, which are known to be available."""
        pass

    @abc.abstractmethod
    def frame_length_histogram(self) -> FrameLengthSnapshot:
        """Read the histogram of the frame durations."""
        pass

    @abc.abstractmethod
    def analog_telemetry(self) -> AnalogTelemetry:
        """Read the telemetry sensors."""
        pass

    @abc.abstractmethod
    def standalone_pixel_count_rate(self) -> int:
        """Read the count rate of the pixel next to the array (counts/s)."""
        pass

    @abc.abstractmethod
    def version(self) -> VersionInfo:
        """Read the software and firmware versions."""
        pass

    @abc.abstractmethod
    def advanced_settings(self) -> AdvancedSettings:
        """Read the current advanced settings."""
        pass

    @abc.abstractmethod
    def _apply_default_settings(self) -> None:
        pass

    @abc.abstractmethod
    def _apply_active_pixels(self, mask: ndarray) -> None:
        pass

    @abc.abstractmethod
    def _apply_advanced_settings(self, settings: AdvancedSettings) -> None:
        pass

    @abc.abstractmethod
    def _apply_sync_out_delay(self, steps: int) -> None:
        pass

    def words_available(self) -> int:
        """Get how many words can be fetched.

        Returns:
            The number of words, always a multiple of the block size.
        """
        self._check_connected()
        available = self._words_available()
        return available - available % BLOCK_SIZE

    def fetch(self, count: int, timeout: Optional[float] = None) -> ndarray:
        """Transfer words from the camera memory.

        The call blocks until `count` words are available. Call it often enough
        to keep the camera memory from filling up.

        Args:
            count: Number of words, a positive multiple of the block size.
            timeout: Maximum time to wait (in seconds). Defaults to
              :attr:`fetch_timeout`.

        Returns:
            Exactly `count` words.

        Raises:
            InvalidLength: If `count` is not a positive multiple of the block size.
            FetchTimeout: If the words are not available in time.
            FifoFull: If the camera memory saturated and events were dropped.
        """
        if count <= 0 or count % BLOCK_SIZE:
            raise InvalidLength(
                f"Fetch count {count} is not a positive multiple of {BLOCK_SIZE}."
            )
        timeout = self.fetch_timeout if timeout is None else timeout
        timer = get_timer(self.poll_period)
        available = self.words_available()
        while available < count:
            if timer.expired(timeout):
                raise FetchTimeout(count, available, timeout)
            timer.wait()
            available = self.words_available()
        return self._read_words(count)

    def set_default_settings(self) -> None:
        """Load the suggested settings."""
        self._check_stopped()
        self._apply_default_settings()

    def set_active_pixels(self, mask: Sequence[bool]) -> None:
        """Select which pixels detect photons.

        Args:
            mask: One flag per pixel, true to enable it.
        """
        self._check_stopped()
        mask = np.asarray(mask, dtype=bool)
        if mask.shape != (N_PIXELS,):
            raise InvalidLength(f"The pixel mask should have {N_PIXELS} entries.")
        self._apply_active_pixels(mask)

    def set_bad_pixels(self, bad_pixels: Sequence[int]) -> None:
        """Turn off the listed pixels and enable every other one.

        Args:
            bad_pixels: Addresses of the pixels to turn off. An empty list keeps
              every pixel on.
        """
        mask = np.ones(N_PIXELS, dtype=bool)
        for index, address in enumerate(bad_pixels):
            if not 0 <= address < N_PIXELS:
                raise OutOfRangeAddress(index, address, N_PIXELS)
            mask[address] = False
        self.set_active_pixels(mask)
        logger.debug(f"Turned off {N_PIXELS - mask.sum()} pixels")

    def set_advanced_settings(self, settings: AdvancedSettings) -> None:
        """Apply advanced settings."""
        self._check_stopped()
        settings.validate()
        self._apply_advanced_settings(settings)

    def set_sync_out_delay(self, steps: int) -> None:
        """Set the delay of the sync output, in steps of 4 ns."""
        self._check_stopped()
        _check_range("sync_out_delay", steps, 0, 0xFF)
        self._apply_sync_out_delay(steps)

    def _check_connected(self) -> None:
        if not self.connected:
            raise InvalidHandle("The camera is not connected.")

    def _check_stopped(self) -> None:
        self._check_connected()
        if self.acquiring:
            raise DeviceBusy()


def _check_range(name: str, value: int, low: int, high: int) -> None:
    if not low <= value <= high:
        raise ValueOutOfRange(name, value, low, high)
