"""Tests for the simulated camera and the behavior of the camera interface."""
from unittest import mock

import numpy as np
import pytest

from qmic_pipeline.camera import simulated
from qmic_pipeline.camera.api import AdvancedSettings
from qmic_pipeline.camera.simulated import SimulatedCamera
from qmic_pipeline.core.coincidence import find_coincidences
from qmic_pipeline.core.decoder import decode_events
from qmic_pipeline.core.decoder import decode_raw_events
from qmic_pipeline.core.event_format import BLOCK_SIZE
from qmic_pipeline.errors import DeviceBusy
from qmic_pipeline.errors import FetchTimeout
from qmic_pipeline.errors import FifoFull
from qmic_pipeline.errors import InvalidHandle
from qmic_pipeline.errors import InvalidLength
from qmic_pipeline.errors import OutOfRangeAddress
from qmic_pipeline.errors import Status
from qmic_pipeline.errors import ValueOutOfRange


@pytest.fixture
def clock(monkeypatch):
    """Replace the clock of the simulated camera with a mock.

    Set `clock.perf_counter.return_value` to move the time forward.
    """
    time_mock = mock.Mock()
    time_mock.perf_counter.return_value = 0.0
    monkeypatch.setattr(simulated, "time", time_mock)
    return time_mock


@pytest.fixture
def camera(clock):
    """Create a connected camera producing 2600 events per second."""
    camera = SimulatedCamera(
        event_rate=2600.0,
        frame_period=0.01,
        memory_words=1 << 16,
        seed=42,
        fetch_timeout=0.05,
        poll_period=0.005,
    )
    camera.connect()
    yield camera
    camera.disconnect()


class TestWordsAvailable:
    """Tests for words_available."""

    def test_rounded_down_to_whole_blocks(self, camera, clock):
        """Test that a partial block is never reported."""
        camera.start()
        clock.perf_counter.return_value = 0.5
        available = camera.words_available()
        assert available % BLOCK_SIZE == 0
        assert available == 1280

    def test_nothing_before_start(self, camera, clock):
        """Test that no words are produced while stopped."""
        clock.perf_counter.return_value = 0.5
        assert camera.words_available() == 0

    def test_requires_connection(self, clock):
        """Test that a closed camera cannot be polled."""
        camera = SimulatedCamera(memory_words=1024)
        with pytest.raises(InvalidHandle) as exc_info:
            camera.words_available()
        assert exc_info.value.status == Status.ERR_INVALID_PTR

    def test_fifo_full(self, clock):
        """Test that saturating the memory is reported until the next flush."""
        camera = SimulatedCamera(event_rate=2600.0, memory_words=512, seed=1)
        camera.connect()
        camera.start()
        clock.perf_counter.return_value = 0.5
        with pytest.raises(FifoFull) as exc_info:
            camera.words_available()
        assert exc_info.value.dropped_words > 0
        with pytest.raises(FifoFull):
            camera.words_available()

        camera.stop()
        camera.flush()
        assert camera.dropped_words == 0
        assert camera.words_available() == 0


class TestFetch:
    """Tests for fetch."""

    def test_returns_exactly_count_words(self, camera, clock):
        """Test that the requested words are consumed from the memory."""
        camera.start()
        clock.perf_counter.return_value = 0.5
        words = camera.fetch(2 * BLOCK_SIZE)
        assert words.dtype == np.uint32
        assert len(words) == 2 * BLOCK_SIZE
        assert camera.words_available() == 1280 - 2 * BLOCK_SIZE

    @pytest.mark.parametrize("count", [0, -256, 100, BLOCK_SIZE + 1])
    def test_count_must_be_whole_blocks(self, camera, count):
        """Test that the count must be a positive multiple of the block size."""
        with pytest.raises(InvalidLength):
            camera.fetch(count)

    def test_timeout(self, camera):
        """Test that waiting for words that never come times out."""
        camera.start()
        with pytest.raises(FetchTimeout) as exc_info:
            camera.fetch(BLOCK_SIZE, timeout=0.02)
        assert exc_info.value.requested == BLOCK_SIZE
        assert exc_info.value.available == 0

    def test_words_decode_in_time_order(self, clock):
        """Test that the compressed words carry increasing timestamps."""
        camera = SimulatedCamera(event_rate=26000.0, memory_words=1 << 16, seed=3)
        camera.connect()
        camera.start()
        clock.perf_counter.return_value = 0.5
        events = decode_events(camera.fetch(12800))
        assert len(events) == 12800
        assert np.all(np.diff(events.timestamps) >= 0)
        assert events.timestamps[-1] < 0.5 / 2e-9


class TestSettings:
    """Tests for the configuration of the camera."""

    def test_bad_pixels_never_fire(self, camera, clock):
        """Test that turned off pixels do not produce events."""
        camera.set_bad_pixels([0, 1, 2])
        camera.start()
        clock.perf_counter.return_value = 0.5
        events = decode_events(camera.fetch(1280))
        assert not np.isin(events.addresses, [0, 1, 2]).any()
        assert len(camera.active_pixels) == 573

    def test_bad_pixel_out_of_range(self, camera):
        """Test that bad pixels must be on the grid."""
        with pytest.raises(OutOfRangeAddress):
            camera.set_bad_pixels([5, 600])

    def test_settings_cannot_change_while_acquiring(self, camera):
        """Test that the camera must be stopped to change its settings."""
        camera.start()
        with pytest.raises(DeviceBusy):
            camera.set_bad_pixels([])
        with pytest.raises(DeviceBusy):
            camera.set_default_settings()
        with pytest.raises(DeviceBusy):
            camera.flush()

    def test_sync_out_delay_range(self, camera):
        """Test the range of the sync output delay."""
        camera.set_sync_out_delay(255)
        assert camera.sync_out_delay == 255
        with pytest.raises(ValueOutOfRange) as exc_info:
            camera.set_sync_out_delay(256)
        assert exc_info.value.status == Status.ERR_OUT_OF_RANGE_H
        with pytest.raises(ValueOutOfRange) as exc_info:
            camera.set_sync_out_delay(-1)
        assert exc_info.value.status == Status.ERR_OUT_OF_RANGE_L

    def test_advanced_settings_are_validated(self, camera):
        """Test that register values must fit."""
        with pytest.raises(ValueOutOfRange):
            camera.set_advanced_settings(AdvancedSettings(readout_time=0x10000))

    def test_default_settings(self, camera):
        """Test that defaults enable every pixel and the compressed format."""
        camera.set_bad_pixels([3])
        camera.set_default_settings()
        assert len(camera.active_pixels) == 576
        assert not camera.advanced_settings().enable_raw_mode


class TestRawMode:
    """Tests for the raw word format."""

    @pytest.fixture
    def raw_camera(self, clock):
        """Create a camera producing raw words with many coincidences."""
        camera = SimulatedCamera(
            event_rate=2600.0,
            frame_period=0.01,
            filler_ratio=0.2,
            coincidence_ratio=0.5,
            memory_words=1 << 16,
            seed=7,
        )
        camera.connect()
        camera.set_advanced_settings(AdvancedSettings(enable_raw_mode=True))
        return camera

    def test_fillers_and_coincidences(self, raw_camera, clock):
        """Test that raw words hold fillers and coincident events."""
        raw_camera.start()
        clock.perf_counter.return_value = 0.5
        words = raw_camera.fetch(raw_camera.words_available())
        events = decode_raw_events(words)
        assert len(events) < len(words)
        pairs = find_coincidences(events)
        assert len(pairs) > 0
        assert np.all(events.addresses[pairs[:, 0]] != events.addresses[pairs[:, 1]])


class TestHistogramAndTelemetry:
    """Tests for the frame length histogram and the telemetry."""

    def test_histogram_changed_flag(self, camera, clock):
        """Test that the changed flag is cleared when the histogram is read."""
        camera.start()
        clock.perf_counter.return_value = 0.5
        snapshot = camera.frame_length_histogram()
        assert snapshot.changed
        assert snapshot.histogram.sum() > 0
        assert snapshot.histogram[10] == snapshot.histogram.sum()
        assert not camera.frame_length_histogram().changed

    def test_start_resets_the_histogram(self, camera, clock):
        """Test that a new acquisition starts from an empty histogram."""
        camera.start()
        clock.perf_counter.return_value = 0.5
        camera.stop()
        camera.start()
        assert camera.frame_length_histogram().histogram.sum() == 0

    def test_telemetry(self, camera):
        """Test that telemetry can be read while stopped."""
        telemetry = camera.analog_telemetry()
        assert len(telemetry.supply_voltages) == 4
        assert len(telemetry.supply_currents) == 3
        assert isinstance(camera.standalone_pixel_count_rate(), int)
        assert camera.version().firmware > 0
