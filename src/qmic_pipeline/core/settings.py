"""Models for parsing and validating the contents of `settings_acquisition.yaml`."""
from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator

from qmic_pipeline.camera.api import AdvancedSettings
from qmic_pipeline.core.decoder import TimestampWidth
from qmic_pipeline.core.event_format import BLOCK_SIZE
from qmic_pipeline.core.event_format import N_PIXELS
from qmic_pipeline.core.frame_stats import DEFAULT_QUANTUM

SETTINGS_VERSION = "1.0.0"


class LogLevel(str, Enum):
    """Possible log levels."""

    _DEBUG = "DEBUG"
    _INFO = "INFO"
    _ERROR = "ERROR"
    _WARNING = "WARNING"
    _CRITICAL = "CRITICAL"


class _Model(BaseModel):
    model_config = ConfigDict(extra="forbid")


class SimulatedCameraModel(_Model):
    """Settings for the simulated camera."""

    event_rate: float = Field(gt=0)
    frame_period: float = Field(gt=0)
    frame_jitter: float = Field(ge=0)
    memory_words: int = Field(ge=BLOCK_SIZE)
    filler_ratio: float = Field(ge=0, le=1)
    coincidence_ratio: float = Field(ge=0, le=1)
    seed: Optional[int] = None


class CameraModel(_Model):
    """Settings for opening the camera."""

    device_id: str
    fetch_timeout: float = Field(gt=0)
    poll_period: float = Field(gt=0)
    simulated: SimulatedCameraModel


class AdvancedSettingsModel(_Model):
    """Advanced camera settings, see :class:`camera.api.AdvancedSettings`."""

    empty_frames_compression: bool
    enable_raw_mode: bool
    pos_read: int = Field(ge=0, le=0xFF)
    pos_gate1: int = Field(ge=0, le=0xFF)
    pos_gate: int = Field(ge=0, le=0xFF)
    gate_len: int = Field(ge=0, le=0xFF)
    readout_time: int = Field(ge=0, le=0xFFFF)
    wait_gate_end: bool
    unwrap_frame_len_hist: bool

    def to_advanced_settings(self) -> AdvancedSettings:
        """Convert to the type accepted by the camera."""
        return AdvancedSettings(**self.model_dump())


class BadPixelsModel(_Model):
    """Pixels to turn off on-chip."""

    enabled: bool
    pixels: List[int]

    @field_validator("pixels")
    @classmethod
    def _pixels_must_be_on_the_grid(cls, v):
        for address in v:
            if not 0 <= address < N_PIXELS:
                raise ValueError(f"Bad pixel {address} is outside of [0, {N_PIXELS})")
        return v


class AcquisitionModel(_Model):
    """Settings for the acquisition loop."""

    n_events: int = Field(gt=0)
    n_repetitions: int = Field(gt=0)
    decode_data: bool
    save_decoded_data: bool
    timestamp_width: TimestampWidth
    sync_out_delay: int = Field(ge=0, le=0xFF)

    @field_validator("n_events")
    @classmethod
    def _n_events_must_be_whole_blocks(cls, v):
        if v % BLOCK_SIZE:
            raise ValueError(f"n_events must be a multiple of {BLOCK_SIZE}")
        return v


class FrameStatisticsModel(_Model):
    """Settings for the frame length statistics."""

    quantum: float = Field(default=DEFAULT_QUANTUM, gt=0)


class OutputModel(_Model):
    """Where the acquired data is written."""

    directory: Path
    raw_file: str
    timestamps_file: str
    addresses_file: str


class Settings(_Model):
    """All settings of the acquisition pipeline."""

    version: str
    log_level: LogLevel
    camera: CameraModel
    advanced: AdvancedSettingsModel
    bad_pixels: BadPixelsModel
    acquisition: AcquisitionModel
    frame_statistics: FrameStatisticsModel
    output: OutputModel
