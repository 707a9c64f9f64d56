"""Errors raised by the camera, the decoders and the scripts.

Every camera or decoding failure is a :class:`QMICError` carrying the
:class:`Status` code reported by the device SDK for the same condition. The
four families mirror how a caller is expected to react:

 - :class:`ResourceFault`: allocation or open failures, fatal to the run.
 - :class:`DeviceFault`: handle or hardware problems, the camera has to be
   reconstructed.
 - :class:`TimingFault`: fetch timeouts and on-camera FIFO saturation, the caller
   may retry or reduce its expectations.
 - :class:`DecodeFault`: malformed input to a decoding, statistics or
   configuration function. It is never masked.
"""
from enum import IntEnum
from typing import Optional


class Status(IntEnum):
    """Status codes reported by the camera SDK."""

    OK = 0
    ERR_NULL_PTR = -1
    ERR_INVALID_PTR = -2
    ERR_LOW_MEMORY = -3
    ERR_INVALID_FPGA = -10
    ERR_INVALID_BITFILE = -11
    ERR_PIPE_ERROR = -12
    ERR_PIPE_TIMEOUT = -13
    ERR_WIRE = -14
    ERR_FIFO_FULL = -15
    ERR_GET_DATA_TIMEOUT = -50
    ERR_PIX_EN_LOOPBACK = -51
    ERR_PIX_EN_BUSY = -52
    ERR_OUT_OF_RANGE_L = -53
    ERR_OUT_OF_RANGE_H = -54
    ERR_EMPTY_HIST = -55
    ERR_INVALID_LEN = -56


_STATUS_DESCRIPTIONS = {
    Status.ERR_NULL_PTR: "A required handle or buffer was not provided.",
    Status.ERR_INVALID_PTR: "The camera handle is not valid or was already closed.",
    Status.ERR_LOW_MEMORY: "Not enough memory to allocate the requested buffers.",
    Status.ERR_INVALID_FPGA: "The camera FPGA could not be found or opened.",
    Status.ERR_INVALID_BITFILE: "The FPGA hardware image is missing or invalid.",
    Status.ERR_PIPE_ERROR: "The data pipe between camera and host failed.",
    Status.ERR_PIPE_TIMEOUT: "The data pipe between camera and host timed out.",
    Status.ERR_WIRE: "A configuration wire transfer to the camera failed.",
    Status.ERR_FIFO_FULL: (
        "The on-camera memory is full and new events are being dropped."
        " Download data more frequently."
    ),
    Status.ERR_GET_DATA_TIMEOUT: (
        "The requested number of words was not available before the timeout."
    ),
    Status.ERR_PIX_EN_LOOPBACK: "The pixel enable map read back from the chip differs.",
    Status.ERR_PIX_EN_BUSY: (
        "The camera is acquiring. Settings can only be changed while it is stopped."
    ),
    Status.ERR_OUT_OF_RANGE_L: "A value is below its allowed range.",
    Status.ERR_OUT_OF_RANGE_H: "A value is above its allowed range.",
    Status.ERR_EMPTY_HIST: "The frame length histogram contains no usable frames.",
    Status.ERR_INVALID_LEN: "A length or capacity argument is not valid.",
}


def describe_status(status: Status, function_name: Optional[str] = None) -> str:
    """Get a human readable description of a status code.

    This is meant for presentation only.

    Args:
        status: The status to describe.
        function_name: Optional name of the operation that produced the status.
          It is prepended to the message when given.

    Returns:
        The description, or an empty string if the status is `OK`.
    """
    status = Status(status)
    if status == Status.OK:
        return ""
    description = _STATUS_DESCRIPTIONS.get(status, "Unknown error.")
    prefix = f"{function_name}: " if function_name else ""
    return f"(ERROR) {prefix}{status.name} ({status.value}). {description}"


class QMICError(Exception):
    """Base class for all camera and decoding errors."""

    status = Status.ERR_NULL_PTR

    def __init__(self, message: Optional[str] = None):
        """Initialize the exception.

        Args:
            message: Optional detail. Defaults to the status description.
        """
        self.message = message or describe_status(self.status)
        super().__init__(self.message)


class ResourceFault(QMICError):
    """A host resource could not be allocated or opened."""

    status = Status.ERR_LOW_MEMORY


class DeviceFault(QMICError):
    """The camera or its handle is in an unusable state."""

    status = Status.ERR_INVALID_PTR


class InvalidHandle(DeviceFault):
    """The camera is not connected, or was already disconnected."""

    status = Status.ERR_INVALID_PTR


class DeviceBusy(DeviceFault):
    """A setting was changed while the acquisition was running."""

    status = Status.ERR_PIX_EN_BUSY


class TimingFault(QMICError):
    """Data was not delivered in time or was lost at the source."""

    status = Status.ERR_GET_DATA_TIMEOUT


class FetchTimeout(TimingFault):
    """The requested number of words did not become available in time."""

    status = Status.ERR_GET_DATA_TIMEOUT

    def __init__(self, requested: int, available: int, timeout: float):
        """Initialize the exception.

        Args:
            requested: Number of words requested.
            available: Number of words available when the timeout expired.
            timeout: The timeout that expired (in seconds).
        """
        self.requested = requested
        self.available = available
        self.timeout = timeout
        super().__init__(
            f"Requested {requested} words but only {available} were available"
            f" after {timeout} s."
        )


class FifoFull(TimingFault):
    """The on-camera memory saturated and events were dropped."""

    status = Status.ERR_FIFO_FULL

    def __init__(self, dropped_words: int):
        """Initialize the exception.

        Args:
            dropped_words: Number of words dropped since the last flush.
        """
        self.dropped_words = dropped_words
        super().__init__(
            f"On-camera memory is full, {dropped_words} words were dropped."
        )


class DecodeFault(QMICError):
    """Input to a decoding, statistics or configuration function is malformed."""

    status = Status.ERR_INVALID_LEN


class OutOfRangeAddress(DecodeFault):
    """A word decoded to a pixel address outside of the pixel grid."""

    status = Status.ERR_OUT_OF_RANGE_H

    def __init__(self, index: int, address: int, n_pixels: int):
        """Initialize the exception.

        Args:
            index: Position of the offending word in the input.
            address: The decoded address.
            n_pixels: Number of pixels in the grid.
        """
        self.index = index
        self.address = address
        self.n_pixels = n_pixels
        super().__init__(
            f"Word {index} decodes to pixel address {address},"
            f" outside of [0, {n_pixels})."
        )


class ValueOutOfRange(DecodeFault):
    """A setting or argument is outside of its allowed range."""

    status = Status.ERR_OUT_OF_RANGE_H

    def __init__(self, name: str, value, low, high):
        """Initialize the exception.

        Args:
            name: Name of the setting or argument.
            value: The rejected value.
            low: Smallest allowed value.
            high: Largest allowed value.
        """
        self.name = name
        self.value = value
        if value < low:
            self.status = Status.ERR_OUT_OF_RANGE_L
        super().__init__(f"{name}={value} is outside of [{low}, {high}].")


class InvalidLength(DecodeFault):
    """A length or capacity argument is not valid."""

    status = Status.ERR_INVALID_LEN


class EmptyInput(DecodeFault):
    """No words were given but events were required."""

    status = Status.ERR_INVALID_LEN


class EmptyHistogram(DecodeFault):
    """The frame length histogram has no frames."""

    status = Status.ERR_EMPTY_HIST


class ZeroFrameDuration(DecodeFault):
    """All frames in the histogram have zero duration."""

    status = Status.ERR_EMPTY_HIST


class UnexpectedSettingsVersion(Exception):
    """Loaded settings version is different than the expected version."""

    def __init__(self, current_version, expected_version):
        """Initialize the exception.

        Args:
            current_version: The loaded settings version.
            expected_version: The expected settings version.
        """
        self.current_version = current_version
        self.expected_version = expected_version
        self.message = (
            f"Loaded settings version {current_version} is "
            f"different than the expected version {expected_version}."
        )
        super().__init__(self.message)
