"""Tests for decoder.py module."""
import numpy as np
import pytest

from qmic_pipeline.core import decoder
from qmic_pipeline.core.decoder import TimestampWidth
from qmic_pipeline.core.event_format import DEFAULT_LAYOUT
from qmic_pipeline.core.event_format import DEFAULT_RAW_LAYOUT
from qmic_pipeline.errors import EmptyInput
from qmic_pipeline.errors import InvalidLength
from qmic_pipeline.errors import OutOfRangeAddress

M = DEFAULT_LAYOUT.tick_modulus


def compressed_words(addresses, ticks):
    """Build compressed event words."""
    return DEFAULT_LAYOUT.encode(np.array(addresses), np.array(ticks))


@pytest.fixture
def ordered_ticks():
    """Ticks of an ordered stream that wraps several times."""
    rng = np.random.default_rng(1)
    return np.cumsum(rng.integers(0, M // 4, size=4096))


@pytest.fixture
def ordered_words(ordered_ticks):
    """Words of an ordered stream that wraps several times."""
    rng = np.random.default_rng(2)
    addresses = rng.integers(0, 576, size=len(ordered_ticks))
    return compressed_words(addresses, ordered_ticks)


class TestDecodeEvents:
    """Tests for the decode_events function."""

    def test_counter_wrap_extends_the_timestamp(self):
        """Test that a tick smaller than the previous one moves to the next wrap."""
        words = compressed_words([1, 2, 3], [M - 1, 0, 1])
        events = decoder.decode_events(words)
        np.testing.assert_array_equal(events.timestamps, [M - 1, M, M + 1])
        np.testing.assert_array_equal(events.addresses, [1, 2, 3])
        assert events.timestamps.dtype == np.int64
        assert events.addresses.dtype == np.uint16

    def test_recovers_the_wide_timestamps(self, ordered_ticks, ordered_words):
        """Test that ordered input with gaps below half the range decodes exactly."""
        events = decoder.decode_events(ordered_words)
        np.testing.assert_array_equal(events.timestamps, ordered_ticks)

    def test_timestamps_never_decrease(self, ordered_words):
        """Test that decoded timestamps are monotonically non-decreasing."""
        events = decoder.decode_events(ordered_words, base_timestamp=3 * M + 17)
        assert np.all(np.diff(events.timestamps) >= 0)
        assert events.timestamps[0] >= 3 * M + 17

    def test_split_decoding_matches_single_decoding(self, ordered_words):
        """Test that chaining the base timestamp gives the same result."""
        whole = decoder.decode_events(ordered_words)

        base = 0
        chunks = []
        for start in range(0, len(ordered_words), 256):
            chunk = decoder.decode_events(ordered_words[start : start + 256], base)
            base = chunk.last_timestamp
            chunks.append(chunk)

        np.testing.assert_array_equal(
            np.concatenate([chunk.timestamps for chunk in chunks]), whole.timestamps
        )

    def test_base_timestamp_high_part_is_kept(self):
        """Test that ticks are placed relative to the base timestamp."""
        base = 5 * M + 100
        events = decoder.decode_events(compressed_words([0, 0], [200, 300]), base)
        np.testing.assert_array_equal(events.timestamps, [5 * M + 200, 5 * M + 300])

    def test_wrap_from_the_base_timestamp(self):
        """Test that the first word is compared with the base timestamp."""
        base = 5 * M + M - 10
        events = decoder.decode_events(compressed_words([0], [5]), base)
        np.testing.assert_array_equal(events.timestamps, [6 * M + 5])

    def test_never_below_base_timestamp(self):
        """Test that a tick slightly behind the base is held at the base."""
        base = 5 * M + 100
        events = decoder.decode_events(compressed_words([0, 0], [50, 150]), base)
        np.testing.assert_array_equal(events.timestamps, [base, 5 * M + 150])

    def test_out_of_order_tick_is_held(self):
        """Test that a late word does not make the timestamps go back."""
        events = decoder.decode_events(compressed_words([0, 1, 2], [100, 90, 110]))
        np.testing.assert_array_equal(events.timestamps, [100, 100, 110])

    def test_late_word_after_wrap_moves_ahead(self):
        """Test that a word from before a wrap read after it lands a modulus ahead.

        The previous tick as read is the reference for wrap detection, so the late
        tick looks like a forward jump within the new period.
        """
        events = decoder.decode_events(compressed_words([0, 1, 2], [M - 10, 5, M - 20]))
        np.testing.assert_array_equal(events.timestamps, [M - 10, M + 5, 2 * M - 20])

    def test_32_bit_timestamps_wrap(self):
        """Test that 32-bit timestamps are the low 32 bits of the wide ones."""
        words = compressed_words([1, 2], [M - 5, 5])
        events = decoder.decode_events(words, 2**32 - 10, TimestampWidth.W32)
        assert events.timestamps.dtype == np.int32
        np.testing.assert_array_equal(events.timestamps, [-5, 5])
        assert events.last_timestamp == 5

    def test_32_bit_base_can_be_negative(self):
        """Test that a negative 32-bit base is read as its unsigned value."""
        words = compressed_words([1, 2], [M - 5, 5])
        from_negative = decoder.decode_events(words, -10, TimestampWidth.W32)
        from_unsigned = decoder.decode_events(words, 2**32 - 10, TimestampWidth.W32)
        assert from_negative == from_unsigned

    def test_address_out_of_range(self):
        """Test that an address outside of the grid is reported with its index."""
        words = compressed_words([0, 1, 700, 2], [1, 2, 3, 4])
        with pytest.raises(OutOfRangeAddress) as exc_info:
            decoder.decode_events(words)
        assert exc_info.value.index == 2
        assert exc_info.value.address == 700

    def test_empty_input(self):
        """Test that empty input returns no events and keeps the base."""
        events = decoder.decode_events(np.array([], dtype=np.uint32), 1234)
        assert events.empty
        assert events.last_timestamp == 1234

    def test_empty_input_when_events_are_required(self):
        """Test that empty input raises when events are required."""
        with pytest.raises(EmptyInput):
            decoder.decode_events(np.array([], dtype=np.uint32), require_events=True)

    def test_unsupported_width(self):
        """Test that only 32 and 64-bit timestamps are supported."""
        with pytest.raises(InvalidLength):
            decoder.decode_events(compressed_words([0], [0]), width=16)

    def test_words_must_be_1d(self):
        """Test that a 2-D array of words is rejected."""
        with pytest.raises(InvalidLength):
            decoder.decode_events(np.zeros((2, 256), dtype=np.uint32))


class TestDecodeRawEvents:
    """Tests for the decode_raw_events function."""

    @pytest.fixture
    def raw_words(self):
        """Raw words with one filler and one coincident pair."""
        events = DEFAULT_RAW_LAYOUT.encode(
            np.array([3, 7, 9]), np.array([1, 1, 2]), np.array([10, 10, 0])
        )
        return np.insert(events, 1, DEFAULT_RAW_LAYOUT.filler(1))

    def test_fillers_are_dropped(self, raw_words):
        """Test that only event words produce events."""
        events = decoder.decode_raw_events(raw_words)
        assert len(events) == 3
        np.testing.assert_array_equal(events.addresses, [3, 7, 9])
        np.testing.assert_array_equal(
            events.timestamps, [(1 << 8) | 10, (1 << 8) | 10, 2 << 8]
        )

    def test_frame_counter_wrap(self):
        """Test that the frame counter is extended across its wrap."""
        modulus = DEFAULT_RAW_LAYOUT.frame_modulus
        words = DEFAULT_RAW_LAYOUT.encode(
            np.array([0, 1]), np.array([modulus - 1, 0]), np.array([5, 6])
        )
        events = decoder.decode_raw_events(words)
        np.testing.assert_array_equal(
            events.timestamps, [((modulus - 1) << 8) | 5, (modulus << 8) | 6]
        )

    def test_chained_base_timestamp(self):
        """Test that the frame continues from the base timestamp."""
        modulus = DEFAULT_RAW_LAYOUT.frame_modulus
        base = ((3 * modulus + 4) << 8) | 200
        words = DEFAULT_RAW_LAYOUT.encode(np.array([0]), np.array([5]), np.array([1]))
        events = decoder.decode_raw_events(words, base)
        np.testing.assert_array_equal(
            events.timestamps, [((3 * modulus + 5) << 8) | 1]
        )

    def test_capacity_too_small(self, raw_words):
        """Test that more events than the capacity is an error."""
        with pytest.raises(InvalidLength):
            decoder.decode_raw_events(raw_words, capacity=2)

    def test_capacity_equal_to_events(self, raw_words):
        """Test that the capacity only needs to hold the events."""
        assert len(decoder.decode_raw_events(raw_words, capacity=3)) == 3

    @pytest.mark.parametrize("capacity", [-1, 0])
    def test_invalid_capacity(self, raw_words, capacity):
        """Test that negative or zero capacities are rejected."""
        with pytest.raises(InvalidLength):
            decoder.decode_raw_events(raw_words, capacity=capacity)

    def test_only_fillers(self):
        """Test that words without events decode to no events."""
        events = decoder.decode_raw_events(DEFAULT_RAW_LAYOUT.filler(256), 42)
        assert events.empty
        assert events.last_timestamp == 42

    def test_address_out_of_range_reports_word_index(self):
        """Test that the index counts the filler words."""
        event = DEFAULT_RAW_LAYOUT.encode(np.array([700]), np.array([0]), np.array([0]))
        words = np.concatenate((DEFAULT_RAW_LAYOUT.filler(2), event))
        with pytest.raises(OutOfRangeAddress) as exc_info:
            decoder.decode_raw_events(words)
        assert exc_info.value.index == 2


class TestDecodeStream:
    """Tests for the decode_stream function."""

    def test_yields_one_result_per_block(self, ordered_words):
        """Test that blocks are decoded in order with a chained base."""
        blocks = [ordered_words[:1024], ordered_words[1024:]]
        results = list(decoder.decode_stream(blocks))
        assert len(results) == 2
        assert results[1].base_timestamp == results[0].last_timestamp
        expected = decoder.decode_events(ordered_words)
        assert results[0] == expected[:1024]
        assert results[1] == expected[1024:]

    def test_raw_stream(self):
        """Test that raw blocks are decoded with the raw decoder."""
        first = DEFAULT_RAW_LAYOUT.encode(
            np.array([1, 2]), np.array([0, 1]), np.array([3, 4])
        )
        second = DEFAULT_RAW_LAYOUT.encode(
            np.array([1, 2]), np.array([2, 3]), np.array([3, 4])
        )
        results = list(decoder.decode_stream([first, second], raw=True))
        assert results[1].base_timestamp == (1 << 8) | 4
        np.testing.assert_array_equal(
            results[1].timestamps, [(2 << 8) | 3, (3 << 8) | 4]
        )
