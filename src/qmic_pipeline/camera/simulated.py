"""A camera that generates synthetic photon events.

It behaves like the real camera from the host point of view: events accumulate
in a bounded memory while the acquisition runs, words are only handed out in
whole blocks, and events are dropped once the memory is full. Events arrive as
a Poisson process spread uniformly over the active pixels. The tick counter
starts from zero when the acquisition starts.
"""
import logging
import time
from typing import Optional

from numpy import ndarray
import numpy as np

from qmic_pipeline.camera.api import AdvancedSettings
from qmic_pipeline.camera.api import AnalogTelemetry
from qmic_pipeline.camera.api import Camera
from qmic_pipeline.camera.api import DEFAULT_FETCH_TIMEOUT
from qmic_pipeline.camera.api import DEFAULT_POLL_PERIOD
from qmic_pipeline.camera.api import VersionInfo
from qmic_pipeline.core.event_format import BLOCK_SIZE
from qmic_pipeline.core.event_format import DEFAULT_LAYOUT
from qmic_pipeline.core.event_format import DEFAULT_RAW_LAYOUT
from qmic_pipeline.core.event_format import EventWordLayout
from qmic_pipeline.core.event_format import N_PIXELS
from qmic_pipeline.core.event_format import RawWordLayout
from qmic_pipeline.core.event_format import TICK_SECONDS
from qmic_pipeline.core.frame_stats import DEFAULT_QUANTUM
from qmic_pipeline.core.frame_stats import FrameLengthSnapshot
from qmic_pipeline.core.frame_stats import HISTOGRAM_BINS
from qmic_pipeline.errors import FifoFull
from qmic_pipeline.util.buffer import WordFifo

logger = logging.getLogger(__name__)

DEFAULT_MEMORY_WORDS = 32 * 1024 * 1024
"""Size of the on-camera memory (in words)."""

_DEFAULT_TELEMETRY = AnalogTelemetry(
    carrier_temperature=25.0,
    power_temperature=35.0,
    vcc=3.3,
    v_spad=24.0,
    v_12v=12.0,
    v_1v8=1.8,
    i_spad=1e-4,
    i_12v=0.35,
    i_1v8=0.2,
)


class SimulatedCamera(Camera):
    """A camera producing random photon events at a constant rate."""

    def __init__(
        self,
        event_rate: float = 1e6,
        frame_period: float = 10e-3,
        frame_jitter: float = 0.0,
        histogram_quantum: float = DEFAULT_QUANTUM,
        memory_words: int = DEFAULT_MEMORY_WORDS,
        filler_ratio: float = 0.05,
        coincidence_ratio: float = 0.01,
        standalone_pixel_rate: float = 1000.0,
        layout: EventWordLayout = DEFAULT_LAYOUT,
        raw_layout: RawWordLayout = DEFAULT_RAW_LAYOUT,
        seed: Optional[int] = None,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
        poll_period: float = DEFAULT_POLL_PERIOD,
    ):
        """Create a simulated camera.

        Args:
            event_rate: Mean number of events per second over the whole array.
            frame_period: Duration of one camera frame (in seconds).
            frame_jitter: Standard deviation of the frame duration (in seconds).
            histogram_quantum: Duration of one frame length histogram bucket
              (in seconds).
            memory_words: Size of the on-camera memory, rounded down to whole
              blocks.
            filler_ratio: Fraction of filler words inserted in raw mode.
            coincidence_ratio: Fraction of raw events that get a coincident event
              on another pixel.
            standalone_pixel_rate: Mean count rate of the standalone pixel.
            layout: Layout of the compressed words.
            raw_layout: Layout of the raw words.
            seed: Seed of the random generator.
            fetch_timeout: Default time a fetch waits for words (in seconds).
            poll_period: Time between checks of the available words (in seconds).
        """
        super().__init__(fetch_timeout, poll_period)
        if memory_words < BLOCK_SIZE:
            raise ValueError(f"The memory must hold at least {BLOCK_SIZE} words")
        self.event_rate = event_rate
        self.frame_period = frame_period
        self.frame_jitter = frame_jitter
        self.histogram_quantum = histogram_quantum
        self.filler_ratio = filler_ratio
        self.coincidence_ratio = coincidence_ratio
        self.standalone_pixel_rate = standalone_pixel_rate
        self.layout = layout
        self.raw_layout = raw_layout

        self._rng = np.random.default_rng(seed)
        self._memory = WordFifo(capacity=memory_words - memory_words % BLOCK_SIZE)
        self._partial_block = np.array([], dtype=np.uint32)
        self._connected = False
        self._acquiring = False
        self._dropped_words = 0
        self._active_pixels = np.arange(N_PIXELS)
        self._advanced = AdvancedSettings()
        self._sync_out_delay = 0
        self._histogram = np.zeros(HISTOGRAM_BINS, dtype=np.uint32)
        self._histogram_changed = False
        self._start_time = 0.0
        self._generated_until = 0.0
        self._n_events = 0
        self._n_frames = 0

    @property
    def connected(self) -> bool:
        """Whether the camera handle is open."""
        return self._connected

    @property
    def acquiring(self) -> bool:
        """Whether the acquisition is running."""
        return self._acquiring

    @property
    def dropped_words(self) -> int:
        """Words lost because the memory was full, since the last flush."""
        return self._dropped_words

    def connect(self) -> None:
        """Open the simulated camera."""
        logger.info("Connecting to the simulated camera")
        self._connected = True

    def disconnect(self) -> None:
        """Close the simulated camera."""
        self._acquiring = False
        self._connected = False
        logger.info("Disconnected from the simulated camera")

    def start(self) -> None:
        """Start generating events."""
        self._check_connected()
        self._start_time = time.perf_counter()
        self._generated_until = 0.0
        self._n_events = 0
        self._n_frames = 0
        self._histogram[:] = 0
        self._acquiring = True

    def stop(self) -> None:
        """Stop generating events."""
        self._check_connected()
        if self._acquiring:
            self._generate()
        self._acquiring = False

    def flush(self) -> None:
        """Drop the buffered words and clear the memory full condition."""
        self._check_stopped()
        self._memory.clear()
        self._partial_block = np.array([], dtype=np.uint32)
        self._dropped_words = 0

    def frame_length_histogram(self) -> FrameLengthSnapshot:
        """Read the frame length histogram and whether it changed."""
        self._check_connected()
        self._generate()
        snapshot = FrameLengthSnapshot(
            self._histogram.copy(), self._histogram_changed
        )
        self._histogram_changed = False
        return snapshot

    def analog_telemetry(self) -> AnalogTelemetry:
        """Read the simulated telemetry sensors."""
        self._check_connected()
        return _DEFAULT_TELEMETRY

    def standalone_pixel_count_rate(self) -> int:
        """Read the count rate of the standalone pixel."""
        self._check_connected()
        return int(self._rng.poisson(self.standalone_pixel_rate))

    def version(self) -> VersionInfo:
        """Read the simulated versions."""
        self._check_connected()
        return VersionInfo(
            software=1.0, firmware=1.0, software_git=0, firmware_git=0
        )

    def advanced_settings(self) -> AdvancedSettings:
        """Read the current advanced settings."""
        self._check_connected()
        return self._advanced

    @property
    def sync_out_delay(self) -> int:
        """The sync output delay, in steps of 4 ns."""
        return self._sync_out_delay

    @property
    def active_pixels(self) -> ndarray:
        """Addresses of the enabled pixels."""
        return self._active_pixels.copy()

    def _apply_default_settings(self) -> None:
        self._advanced = AdvancedSettings()
        self._active_pixels = np.arange(N_PIXELS)
        self._sync_out_delay = 0

    def _apply_active_pixels(self, mask: ndarray) -> None:
        self._active_pixels = np.flatnonzero(mask)

    def _apply_advanced_settings(self, settings: AdvancedSettings) -> None:
        self._advanced = settings

    def _apply_sync_out_delay(self, steps: int) -> None:
        self._sync_out_delay = steps

    def _words_available(self) -> int:
        self._generate()
        if self._dropped_words:
            raise FifoFull(self._dropped_words)
        return len(self._memory)

    def _read_words(self, count: int) -> ndarray:
        return self._memory.read(count)

    def _generate(self) -> None:
        """Produce the events and frames of the time elapsed since last call."""
        if not self._acquiring:
            return
        now = time.perf_counter() - self._start_time
        self._update_histogram(now)

        n_events = int(now * self.event_rate) - self._n_events
        if n_events > 0 and len(self._active_pixels):
            # Events that cannot fit in the memory are never materialized.
            room = self._memory.remaining() + BLOCK_SIZE
            n_kept = min(n_events, room)
            times = np.sort(self._rng.uniform(self._generated_until, now, n_kept))
            self._push(self._encode(times))
            self._drop(n_events - n_kept)
        self._n_events += max(n_events, 0)
        self._generated_until = now

    def _encode(self, times: ndarray) -> ndarray:
        active = self._active_pixels
        picks = self._rng.integers(0, len(active), size=len(times))
        addresses = active[picks]
        if not self._advanced.enable_raw_mode:
            ticks = np.floor(times / TICK_SECONDS).astype(np.int64)
            return self.layout.encode(addresses, ticks)

        frames = np.floor(times / self.frame_period).astype(np.int64)
        phase = times / self.frame_period - frames
        codes = np.minimum(np.floor(phase * 256), 255).astype(np.int64)

        # A partner is another active pixel, so a lone active pixel has none.
        coincident = self._rng.random(len(times)) < self.coincidence_ratio
        coincident &= len(active) > 1
        offsets = self._rng.integers(1, max(len(active), 2), size=int(coincident.sum()))
        partners = active[(picks[coincident] + offsets) % len(active)]
        addresses = np.concatenate((addresses, partners))
        frames = np.concatenate((frames, frames[coincident]))
        codes = np.concatenate((codes, codes[coincident]))

        # Events of one frame are read out in no particular order.
        order = np.lexsort((self._rng.random(len(frames)), frames))
        words = self.raw_layout.encode(addresses[order], frames[order], codes[order])
        n_fillers = self._rng.binomial(len(words), self.filler_ratio)
        positions = self._rng.integers(0, len(words) + 1, size=n_fillers)
        return np.insert(words, positions, self.raw_layout.filler(n_fillers))

    def _push(self, words: ndarray) -> None:
        stream = np.concatenate((self._partial_block, words))
        n_full = len(stream) - len(stream) % BLOCK_SIZE
        for start in range(0, n_full, BLOCK_SIZE):
            try:
                self._memory.add(stream[start : start + BLOCK_SIZE])
            except OverflowError:
                self._drop(BLOCK_SIZE)
        self._partial_block = stream[n_full:]

    def _drop(self, n_words: int) -> None:
        if n_words <= 0:
            return
        if not self._dropped_words:
            logger.warning("Camera memory is full, events are being dropped")
        self._dropped_words += n_words

    def _update_histogram(self, now: float) -> None:
        n_frames = int(now / self.frame_period) - self._n_frames
        if n_frames <= 0:
            return
        durations = self._rng.normal(self.frame_period, self.frame_jitter, n_frames)
        buckets = np.clip(
            np.rint(durations / self.histogram_quantum), 0, HISTOGRAM_BINS - 1
        ).astype(np.int64)
        self._histogram += np.bincount(buckets, minlength=HISTOGRAM_BINS).astype(
            np.uint32
        )
        self._n_frames += n_frames
        self._histogram_changed = True
