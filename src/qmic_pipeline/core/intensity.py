"""Build intensity images from the photon events of an exposure."""
import logging

from numpy import ndarray
import numpy as np

from qmic_pipeline.core.decoder import decode_events
from qmic_pipeline.core.event_format import N_PIXELS
from qmic_pipeline.core.event_format import TICK_SECONDS
from qmic_pipeline.errors import DeviceFault
from qmic_pipeline.errors import InvalidLength
from qmic_pipeline.timing import get_timer

logger = logging.getLogger(__name__)

DEFAULT_GRACE_TIME = 1.0
"""Time allowed to drain the camera memory after the exposure (in seconds)."""


def new_image() -> ndarray:
    """Create an empty intensity image."""
    return np.zeros(N_PIXELS, dtype=np.uint32)


def add_events_to_image(image: ndarray, addresses: ndarray) -> ndarray:
    """Add one count per event to the pixel that detected it.

    Args:
        image: Intensity image, updated in place.
        addresses: Pixel address of each event.

    Returns:
        The updated image.
    """
    _check_image(image)
    image += np.bincount(
        np.asarray(addresses, dtype=np.int64), minlength=N_PIXELS
    ).astype(image.dtype)
    return image


def accumulate_intensity(
    camera,
    image: ndarray,
    exposure_time: float,
    grace_time: float = DEFAULT_GRACE_TIME,
) -> ndarray:
    """Acquire an exposure and add its intensity image to `image`.

    The acquisition is started and words are fetched and decoded until either
    the decoded timestamps pass the end of the exposure or `exposure_time`
    elapses on the host clock. The acquisition is then stopped and the words
    still in the camera memory are drained. Only the events with a timestamp
    within `exposure_time` of the start are counted. The acquisition is stopped
    on every exit path.

    In a dark scene consecutive events can be further apart than half the tick
    counter range. Their decoded timestamps then lag behind the camera clock
    and never reach the end of the exposure, so the host clock ends it instead.

    Args:
        camera: A connected, stopped :class:`qmic_pipeline.camera.api.Camera`
          using the compressed word format.
        image: Intensity image of 576 `uint32` counts, updated in place. It is
          never reset.
        exposure_time: Duration of the exposure (in seconds).
        grace_time: How long to keep draining the camera memory after the
          exposure (in seconds).

    Returns:
        The updated image.

    Raises:
        InvalidLength: If the image has the wrong shape or the exposure time is
          not positive.
        DeviceFault: If the camera sends raw words.
    """
    _check_image(image)
    if exposure_time <= 0:
        raise InvalidLength(f"Exposure time must be positive, got {exposure_time}.")
    if camera.advanced_settings().enable_raw_mode:
        raise DeviceFault("Intensity images need the compressed word format.")
    end_tick = int(round(exposure_time / TICK_SECONDS))

    counts = new_image()
    base = 0
    camera.flush()
    camera.start()
    try:
        timer = get_timer(camera.poll_period)
        while base < end_tick and not timer.expired(exposure_time):
            available = camera.words_available()
            if not available:
                timer.wait()
                continue
            base = _add_words(counts, camera.fetch(available), base, end_tick)
        camera.stop()

        while base < end_tick and not timer.expired(exposure_time + grace_time):
            available = camera.words_available()
            if not available:
                break
            base = _add_words(counts, camera.fetch(available), base, end_tick)
    finally:
        camera.stop()

    image += counts
    logger.debug(f"Accumulated {int(counts.sum())} events in {exposure_time} s")
    return image


def _add_words(counts: ndarray, words: ndarray, base: int, end_tick: int) -> int:
    events = decode_events(words, base)
    add_events_to_image(counts, events.addresses[events.timestamps < end_tick])
    return events.last_timestamp


def _check_image(image: ndarray) -> None:
    if not isinstance(image, ndarray) or image.shape != (N_PIXELS,):
        raise InvalidLength(f"The image should be an array of {N_PIXELS} counts.")
