r"""Script that acquires photon events from the camera.

The default configuration is located in `QMIC_HOME/settings_acquisition.yaml`
(see :mod:`qmic_pipeline.scripts.post_install_config`). A different file can be
given with the `\--settings-path` argument and single values can be changed with
`\--overrides key.subkey=value`.

The script opens the camera, applies the configured settings, then repeatedly
waits for a fixed number of events, downloads them, saves the raw words and
optionally decodes and saves the decoded events. Press Ctrl+C to abort: the
acquisition is stopped and every file closed whatever the exit path.
"""
import argparse
from dataclasses import dataclass
from dataclasses import field
import logging
import os
from pathlib import Path
import sys
from typing import cast, Optional

from numpy import ndarray
import numpy as np

from qmic_pipeline.camera.api import Camera
from qmic_pipeline.camera.simulated import SimulatedCamera
from qmic_pipeline.core.decoder import decode_events
from qmic_pipeline.core.decoder import decode_raw_events
from qmic_pipeline.core.decoder import TimestampWidth
from qmic_pipeline.core.event_format import pixel_coordinates
from qmic_pipeline.core.events import DecodedEvents
from qmic_pipeline.core.frame_stats import DEFAULT_QUANTUM
from qmic_pipeline.core.frame_stats import format_report
from qmic_pipeline.core.intensity import add_events_to_image
from qmic_pipeline.core.intensity import new_image
from qmic_pipeline.core.settings import CameraModel
from qmic_pipeline.core.settings import Settings
from qmic_pipeline.core.settings import SETTINGS_VERSION
from qmic_pipeline.errors import describe_status
from qmic_pipeline.errors import EmptyHistogram
from qmic_pipeline.errors import QMICError
from qmic_pipeline.errors import ZeroFrameDuration
from qmic_pipeline.outputs import DecodedEventsFileOutput
from qmic_pipeline.outputs import RawWordsFileOutput
from qmic_pipeline.timing import get_timer
from qmic_pipeline.util.runtime import acquisition
from qmic_pipeline.util.runtime import configure_logger
from qmic_pipeline.util.runtime import open_connection
from qmic_pipeline.util.settings_loader import check_config_override_str
from qmic_pipeline.util.settings_loader import get_script_settings

logger = logging.getLogger(__name__)

PROGRESS_LOG_PERIOD = 1.0
"""Time between two progress messages while waiting for events (in seconds)."""


@dataclass
class AcquisitionResult:
    """What an acquisition produced."""

    completed_repetitions: int = 0
    n_words: int = 0
    n_events: int = 0
    last_timestamp: int = 0
    aborted: bool = False
    pixel_counts: ndarray = field(default_factory=new_image)
    """Decoded events per pixel address."""


def create_camera(
    camera_settings: CameraModel, histogram_quantum: float = DEFAULT_QUANTUM
) -> Camera:
    """Create the camera described by the settings."""
    simulated = camera_settings.simulated
    logger.info(
        f"Using a simulated camera for device '{camera_settings.device_id or 'first'}'"
    )
    return SimulatedCamera(
        event_rate=simulated.event_rate,
        frame_period=simulated.frame_period,
        frame_jitter=simulated.frame_jitter,
        histogram_quantum=histogram_quantum,
        memory_words=simulated.memory_words,
        filler_ratio=simulated.filler_ratio,
        coincidence_ratio=simulated.coincidence_ratio,
        seed=simulated.seed,
        fetch_timeout=camera_settings.fetch_timeout,
        poll_period=camera_settings.poll_period,
    )


def configure_camera(camera: Camera, settings: Settings) -> None:
    """Load the default settings, then apply the configured ones."""
    camera.set_default_settings()
    if settings.bad_pixels.enabled:
        camera.set_bad_pixels(settings.bad_pixels.pixels)
    else:
        camera.set_bad_pixels([])
    camera.set_advanced_settings(settings.advanced.to_advanced_settings())
    camera.set_sync_out_delay(settings.acquisition.sync_out_delay)


def wait_for_words(camera: Camera, n_words: int) -> int:
    """Poll the camera until at least `n_words` words are available.

    Progress is logged periodically. There is no timeout: interrupt with Ctrl+C.

    Returns:
        The number of available words.
    """
    timer = get_timer(camera.poll_period)
    next_log = 0.0
    available = camera.words_available()
    while available < n_words:
        if timer.elapsed() >= next_log:
            logger.info(f"Waiting for events: {100 * available / n_words:5.1f}%")
            next_log += PROGRESS_LOG_PERIOD
        timer.wait()
        available = camera.words_available()
    return available


def acquire(
    camera: Camera,
    settings: Settings,
    raw_output: RawWordsFileOutput,
    decoded_output: Optional[DecodedEventsFileOutput] = None,
) -> AcquisitionResult:
    """Run the configured repetitions on a connected, configured camera.

    Args:
        camera: The camera to acquire from.
        settings: The acquisition settings.
        raw_output: Output for the downloaded words.
        decoded_output: Output for the decoded events, if they should be saved.

    Returns:
        A summary of what was acquired. If the acquisition was interrupted with
        Ctrl+C the summary covers the completed repetitions.
    """
    acquisition_settings = settings.acquisition
    raw_mode = settings.advanced.enable_raw_mode
    width = acquisition_settings.timestamp_width
    if raw_mode and width != TimestampWidth.W64:
        logger.warning("Raw data is always decoded to 64-bit timestamps")

    result = AcquisitionResult()
    n_events = acquisition_settings.n_events
    try:
        with acquisition(camera):
            for repetition in range(acquisition_settings.n_repetitions):
                logger.info(f"{repetition:3d}. Waiting for {n_events} events")
                wait_for_words(camera, n_events)
                words = camera.fetch(n_events)
                raw_output.send(words)
                result.n_words += len(words)

                if acquisition_settings.decode_data:
                    events = _decode(words, result.last_timestamp, raw_mode, width)
                    result.last_timestamp = events.last_timestamp
                    result.n_events += len(events)
                    add_events_to_image(result.pixel_counts, events.addresses)
                    if decoded_output is not None:
                        decoded_output.send(events)
                result.completed_repetitions += 1
                logger.info(f"{repetition:3d}. Done")
    except KeyboardInterrupt:
        logger.info("CTRL+C received. Stopping acquisition...")
        result.aborted = True
    _log_frame_statistics(camera, settings.frame_statistics.quantum)
    return result


def run_acquisition(settings: Settings, camera: Camera) -> AcquisitionResult:
    """Open the camera and the outputs, acquire, then release everything."""
    output_settings = settings.output
    os.makedirs(output_settings.directory, exist_ok=True)
    raw_output = RawWordsFileOutput(
        os.path.join(output_settings.directory, output_settings.raw_file)
    )
    decoded_output = None
    if settings.acquisition.decode_data and settings.acquisition.save_decoded_data:
        decoded_output = DecodedEventsFileOutput(
            os.path.join(output_settings.directory, output_settings.timestamps_file),
            os.path.join(output_settings.directory, output_settings.addresses_file),
        )

    with open_connection(raw_output), open_connection(decoded_output):
        with open_connection(camera):
            telemetry = camera.analog_telemetry()
            logger.info(f"Sensor temperature: {telemetry.carrier_temperature:.1f} °C")
            configure_camera(camera, settings)
            return acquire(camera, settings, raw_output, decoded_output)


def _decode(
    words, base_timestamp: int, raw_mode: bool, width: TimestampWidth
) -> DecodedEvents:
    if raw_mode:
        return decode_raw_events(words, base_timestamp)
    return decode_events(words, base_timestamp, width)


def _log_frame_statistics(camera: Camera, quantum: float) -> None:
    snapshot = camera.frame_length_histogram()
    try:
        logger.info("\n" + format_report(snapshot.histogram, quantum))
    except (EmptyHistogram, ZeroFrameDuration) as e:
        logger.warning(f"No frame length statistics: {e.message}")


def busiest_pixel(pixel_counts: ndarray) -> tuple:
    """Get the (row, column) and count of the pixel with the most events."""
    address = int(np.argmax(pixel_counts))
    row, column = pixel_coordinates(address)
    return int(row), int(column), int(pixel_counts[address])


def _parse_args():
    parser = argparse.ArgumentParser(description="Run the acquisition.")
    parser.add_argument(
        "--settings-path",
        type=Path,
        help="Path to the settings_acquisition.yaml file.",
    )
    parser.add_argument(
        "--overrides",
        "-o",
        nargs="*",
        type=check_config_override_str,
        help=(
            "Specify settings overrides as key-value pairs, separated by spaces."
            " For example: -o log_level=DEBUG acquisition.n_repetitions=2"
        ),
    )
    return parser.parse_args()


def run():
    """Load the configuration and start the acquisition."""
    args = _parse_args()
    settings = cast(
        Settings,
        get_script_settings(
            args.settings_path,
            "settings_acquisition.yaml",
            Settings,
            args.overrides,
            SETTINGS_VERSION,
        ),
    )
    configure_logger("qmic-acquire", settings.log_level)

    try:
        result = run_acquisition(
            settings,
            create_camera(settings.camera, settings.frame_statistics.quantum),
        )
    except QMICError as e:
        logger.error(describe_status(e.status, "run_acquisition"))
        logger.error(e.message)
        sys.exit(1)

    logger.info(
        f"Acquired {result.n_words} words in {result.completed_repetitions}"
        f" repetitions, decoded {result.n_events} events"
    )
    if result.n_events:
        row, column, count = busiest_pixel(result.pixel_counts)
        logger.info(f"Busiest pixel: row {row}, column {column} with {count} events")


if __name__ == "__main__":
    run()
