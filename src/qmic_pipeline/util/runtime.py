"""Functions commonly used by scripts."""
import contextlib
import logging
import os
from pathlib import Path
from typing import Iterator, Optional, Union

from qmic_pipeline.camera.api import Camera
from qmic_pipeline.core.settings import LogLevel
from qmic_pipeline.outputs import EventOutput

logger = logging.getLogger(__name__)

QMIC_HOME = os.path.join(os.path.expanduser("~"), ".qmic")


def configure_logger(script_name: str, log_level: LogLevel):
    """Set up the logger."""
    logging.basicConfig(
        format=f"%(levelname)s [{script_name}]: %(message)s", level=log_level.value
    )


def get_abs_path(
    abs_or_relative_path: Union[str, Path], relative_to: Optional[str] = None
) -> str:
    """Return the absolute path for a resource.

    If an absolute path is passed as the first parameter then
    this is returned unchanged and the second parameter is ignored.
    If a relative path is passed as the first parameter then
    the second parameter is considered a sibling resource and
    the function returns an absolute path where the first parameter
    is relative to the path of the second parameter.

    Args:
        abs_or_relative_path: An absolute or relative path.
        relative_to: A file or directory absolute path.
          Defaults to current working directory.

    Returns:
        The absolute path of the first parameter.
    """
    if os.path.isabs(abs_or_relative_path):
        return str(abs_or_relative_path)

    parent_dir = relative_to or os.getcwd()
    if os.path.isfile(parent_dir):
        parent_dir = os.path.dirname(parent_dir)

    full_path = os.path.join(parent_dir, abs_or_relative_path)
    if Path(full_path).exists():
        return full_path
    else:
        return os.path.join(QMIC_HOME, abs_or_relative_path)


def get_configs_dir() -> str:
    """Get the path for the directory containing the configuration files."""
    return QMIC_HOME


@contextlib.contextmanager
def open_connection(io: Union[Optional[Camera], Optional[EventOutput]]):
    """Open a managed connection to the given camera or output.

    The connection is released after it is consumed, whatever the exit path.

    Args:
        io: An optional camera or output to connect to. If None
            yield without doing anything.
    """
    if io is None:
        yield
    else:
        try:
            io.connect()
            yield
        finally:
            io.disconnect()


@contextlib.contextmanager
def acquisition(camera: Camera, flush: bool = True) -> Iterator[Camera]:
    """Run an acquisition for the duration of the context.

    The camera memory is flushed and the acquisition started on entry. The
    acquisition is stopped on exit, including when the block raises or is
    interrupted with Ctrl+C.

    Args:
        camera: A connected camera.
        flush: Discard the words left in the camera memory before starting.
    """
    if flush:
        camera.flush()
    camera.start()
    try:
        yield camera
    finally:
        logger.debug("Stopping acquisition")
        camera.stop()
