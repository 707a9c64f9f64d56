"""Tests for errors.py module."""
import pytest

from qmic_pipeline import errors
from qmic_pipeline.errors import Status


class TestDescribeStatus:
    """Tests for the describe_status function."""

    def test_ok_has_no_description(self):
        """Test that success is described by an empty string."""
        assert errors.describe_status(Status.OK) == ""

    def test_error_with_function_name(self):
        """Test that the name, code and function are part of the description."""
        description = errors.describe_status(Status.ERR_FIFO_FULL, "fetch")
        assert description.startswith("(ERROR) fetch: ERR_FIFO_FULL (-15).")
        assert "memory is full" in description

    def test_accepts_plain_integers(self):
        """Test that raw status values can be described."""
        assert "ERR_EMPTY_HIST" in errors.describe_status(-55)

    def test_unknown_status(self):
        """Test that values outside of the status codes are rejected."""
        with pytest.raises(ValueError):
            errors.describe_status(-99)

    @pytest.mark.parametrize("status", [s for s in Status if s != Status.OK])
    def test_every_error_is_described(self, status):
        """Test that no error falls back to a generic description."""
        assert "Unknown error" not in errors.describe_status(status)


class TestErrors:
    """Tests for the error classes."""

    def test_default_message(self):
        """Test that the status description is used without a message."""
        error = errors.EmptyHistogram()
        assert error.status == Status.ERR_EMPTY_HIST
        assert "ERR_EMPTY_HIST" in str(error)

    def test_families(self):
        """Test that errors can be handled by family."""
        assert issubclass(errors.FetchTimeout, errors.TimingFault)
        assert issubclass(errors.FifoFull, errors.TimingFault)
        assert issubclass(errors.DeviceBusy, errors.DeviceFault)
        assert issubclass(errors.InvalidLength, errors.DecodeFault)
        assert issubclass(errors.DecodeFault, errors.QMICError)

    def test_value_below_range(self):
        """Test that the status tells on which side the value is out of range."""
        below = errors.ValueOutOfRange("x", -1, 0, 10)
        above = errors.ValueOutOfRange("x", 11, 0, 10)
        assert below.status == Status.ERR_OUT_OF_RANGE_L
        assert above.status == Status.ERR_OUT_OF_RANGE_H

    def test_fifo_full_carries_dropped_words(self):
        """Test that the number of dropped words is available."""
        error = errors.FifoFull(512)
        assert error.dropped_words == 512
        assert error.status == Status.ERR_FIFO_FULL
