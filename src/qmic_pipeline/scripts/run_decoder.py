r"""Script that decodes a file of camera words saved by `qmic_acquire`.

The words are read in chunks, so files larger than the memory can be decoded.
Decoded timestamps and addresses are written next to each other in the output
directory, with the same names `qmic_acquire` uses. Raw mode files are decoded
with `\--raw`, in which case the number of coincident pairs is also reported.
"""
import argparse
import logging
import os
from pathlib import Path
import sys
from typing import Iterator

from numpy import ndarray

from qmic_pipeline.core.coincidence import find_coincidences
from qmic_pipeline.core.decoder import decode_stream
from qmic_pipeline.core.decoder import TimestampWidth
from qmic_pipeline.core.event_format import BLOCK_SIZE
from qmic_pipeline.core.events import load_raw_words
from qmic_pipeline.core.settings import LogLevel
from qmic_pipeline.errors import describe_status
from qmic_pipeline.errors import QMICError
from qmic_pipeline.outputs import DecodedEventsFileOutput
from qmic_pipeline.util.runtime import configure_logger
from qmic_pipeline.util.runtime import open_connection

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_BLOCKS = 4096
"""Number of blocks decoded at once."""


def iter_chunks(words: ndarray, chunk_size: int) -> Iterator[ndarray]:
    """Split words into consecutive chunks of at most `chunk_size` words."""
    for start in range(0, len(words), chunk_size):
        yield words[start : start + chunk_size]


def decode_file(
    words_file: Path,
    output: DecodedEventsFileOutput,
    width: TimestampWidth = TimestampWidth.W64,
    raw: bool = False,
    chunk_size: int = DEFAULT_CHUNK_BLOCKS * BLOCK_SIZE,
) -> int:
    """Decode a words file and send the events to a connected output.

    Args:
        words_file: The file written by `qmic_acquire`.
        output: Where to write the decoded events.
        width: Width of the timestamps. Raw words always decode to 64 bits.
        raw: Decode the file as raw words.
        chunk_size: Number of words decoded at once.

    Returns:
        The number of decoded events.
    """
    words = load_raw_words(words_file)
    logger.info(f"Decoding {len(words)} words from {words_file}")
    n_events = 0
    n_coincidences = 0
    for events in decode_stream(iter_chunks(words, chunk_size), 0, width, raw):
        output.send(events)
        n_events += len(events)
        if raw:
            # Pairs split across two chunks are not counted.
            n_coincidences += len(find_coincidences(events))
    if raw:
        logger.info(f"Found {n_coincidences} coincident pairs")
    return n_events


def _parse_args():
    parser = argparse.ArgumentParser(description="Decode a camera words file.")
    parser.add_argument("words_file", type=Path, help="Path to the words file.")
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("."),
        help="Directory of the decoded files. Defaults to the current directory.",
    )
    parser.add_argument(
        "--width",
        type=int,
        choices=[w.value for w in TimestampWidth],
        default=TimestampWidth.W64.value,
        help="Width of the decoded timestamps.",
    )
    parser.add_argument(
        "--raw",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="The file holds raw mode words.",
    )
    parser.add_argument(
        "--chunk-blocks",
        type=int,
        default=DEFAULT_CHUNK_BLOCKS,
        help=f"Blocks of {BLOCK_SIZE} words decoded at once.",
    )
    parser.add_argument(
        "--log-level",
        type=LogLevel,
        default=LogLevel._INFO,
        help="Log level.",
    )
    return parser.parse_args()


def run():
    """Decode the file given on the command line."""
    args = _parse_args()
    configure_logger("qmic-decode", args.log_level)

    os.makedirs(args.output_dir, exist_ok=True)
    output = DecodedEventsFileOutput(
        os.path.join(args.output_dir, "decoded_ts_out.dat"),
        os.path.join(args.output_dir, "decoded_addr_out.dat"),
    )
    try:
        with open_connection(output):
            n_events = decode_file(
                args.words_file,
                output,
                TimestampWidth(args.width),
                args.raw,
                max(args.chunk_blocks, 1) * BLOCK_SIZE,
            )
    except QMICError as e:
        logger.error(describe_status(e.status, "decode_file"))
        logger.error(e.message)
        sys.exit(1)
    logger.info(f"Decoded {n_events} events")


if __name__ == "__main__":
    run()
