"""Statistics about the duration of the camera frames.

The camera counts how long each of its internal readout frames lasted in a
histogram of :data:`HISTOGRAM_BINS` buckets, bucket `i` holding the frames that
lasted `i` quanta. The last bucket also collects every longer frame.
"""
from dataclasses import dataclass
from typing import NamedTuple

from numpy import ndarray
import numpy as np

from qmic_pipeline.errors import EmptyHistogram
from qmic_pipeline.errors import InvalidLength
from qmic_pipeline.errors import ZeroFrameDuration

HISTOGRAM_BINS = 256

DEFAULT_QUANTUM = 1e-3
"""Default duration of one histogram bucket (in seconds)."""

_BAR_WIDTH = 40


class FrameLengthSnapshot(NamedTuple):
    """A histogram read from the camera."""

    histogram: ndarray
    """The frame length counters."""

    changed: bool
    """Whether the histogram was updated since it was last read."""


@dataclass(frozen=True)
class FrameStatistics:
    """Summary of a frame length histogram. Durations are in seconds."""

    total_frames: int
    mean_duration: float
    peak_duration: float
    min_duration: float
    max_duration: float
    frame_rate: float
    saturated_frames: int


def actual_frame_rate(histogram, quantum: float = DEFAULT_QUANTUM) -> float:
    """Get the actual frame rate of the camera.

    Args:
        histogram: Frame length histogram, as returned by the camera.
        quantum: Duration of one histogram bucket (in seconds).

    Returns:
        The frame rate, in frames per second.

    Raises:
        EmptyHistogram: If the histogram holds no frames.
        ZeroFrameDuration: If every frame is in bucket 0.
        InvalidLength: If the histogram does not have 256 buckets.
    """
    counts = _validate(histogram)
    total_duration = float(np.dot(np.arange(HISTOGRAM_BINS), counts)) * quantum
    if total_duration <= 0:
        raise ZeroFrameDuration("Every frame in the histogram has zero duration.")
    return float(counts.sum()) / total_duration


def frame_statistics(histogram, quantum: float = DEFAULT_QUANTUM) -> FrameStatistics:
    """Summarize a frame length histogram.

    Args:
        histogram: Frame length histogram, as returned by the camera.
        quantum: Duration of one histogram bucket (in seconds).

    Returns:
        The statistics of the histogram.
    """
    counts = _validate(histogram)
    frame_rate = actual_frame_rate(counts, quantum)
    filled = np.flatnonzero(counts)
    return FrameStatistics(
        total_frames=int(counts.sum()),
        mean_duration=1.0 / frame_rate,
        peak_duration=int(np.argmax(counts)) * quantum,
        min_duration=int(filled[0]) * quantum,
        max_duration=int(filled[-1]) * quantum,
        frame_rate=frame_rate,
        saturated_frames=int(counts[-1]),
    )


def format_report(histogram, quantum: float = DEFAULT_QUANTUM) -> str:
    """Describe a frame length histogram in a multi-line text.

    The histogram is not modified.

    Args:
        histogram: Frame length histogram, as returned by the camera.
        quantum: Duration of one histogram bucket (in seconds).

    Returns:
        The report, without a trailing newline.
    """
    counts = _validate(histogram)
    stats = frame_statistics(counts, quantum)
    largest = counts.max()

    lines = [
        "Frame length statistics",
        f"  frames         : {stats.total_frames}",
        f"  mean duration  : {_ms(stats.mean_duration)}",
        f"  peak duration  : {_ms(stats.peak_duration)}",
        f"  range          : {_ms(stats.min_duration)} - {_ms(stats.max_duration)}",
        f"  frame rate     : {stats.frame_rate:.2f} fps",
        "  distribution   :",
    ]
    for bucket in np.flatnonzero(counts):
        count = int(counts[bucket])
        share = 100.0 * count / stats.total_frames
        bar = "#" * max(1, round(_BAR_WIDTH * count / largest))
        limit = ">=" if bucket == HISTOGRAM_BINS - 1 else "  "
        lines.append(
            f"    {limit}{_ms(bucket * quantum):>11} {count:>10} {share:6.2f}% {bar}"
        )
    if stats.saturated_frames:
        lines.append(
            f"  {stats.saturated_frames} frames exceeded the histogram range,"
            " the mean duration is underestimated"
        )
    return "\n".join(lines)


def _ms(seconds: float) -> str:
    return f"{seconds * 1e3:.3f} ms"


def _validate(histogram) -> ndarray:
    counts = np.asarray(histogram)
    if counts.shape != (HISTOGRAM_BINS,):
        raise InvalidLength(
            f"The histogram should have {HISTOGRAM_BINS} buckets,"
            f" got shape {counts.shape}."
        )
    counts = counts.astype(np.int64)
    if not counts.any():
        raise EmptyHistogram("The histogram holds no frames.")
    return counts
