"""SVM-Light / LETOR line format loader.

Each non-blank line holds one data point::

    <label> qid:<qid> <index>:<value> <index>:<value> ... # <description>

Lines starting with ``#`` are comments. Feature indices start at 1.
"""

import io
import logging
import math
from pathlib import Path
from typing import BinaryIO, Dict, Hashable, Iterable, Iterator, List, Optional, TextIO, Union

from ..models.core import DataPoint, DataSet
from ..utils.error_handling import FormatError


logger = logging.getLogger(__name__)

Source = Union[str, Path, TextIO, BinaryIO]


def _parse_qid(token: str, line_number: Optional[int], line: str) -> Hashable:
    prefix, sep, value = token.partition(":")
    if prefix != "qid" or not sep or not value:
        raise FormatError(f"expected 'qid:<id>', got {token!r}", line_number, line)
    try:
        return int(value)
    except ValueError:
        return value


def parse_line(line: str, line_number: Optional[int] = None) -> DataPoint:
    """Parse one data point line.

    Args:
        line: Text of the line, with or without the trailing newline
        line_number: 1-based line number used in error messages

    Returns:
        The parsed DataPoint

    Raises:
        FormatError: If the line does not follow the format
    """
    body, _, description = line.partition("#")
    tokens = body.split()
    if not tokens:
        raise FormatError("empty data point line", line_number, line)

    try:
        label = int(tokens[0])
    except ValueError:
        raise FormatError(f"label must be an integer, got {tokens[0]!r}", line_number, line) from None
    if label < 0:
        raise FormatError(f"label must be non-negative, got {label}", line_number, line)

    if len(tokens) < 2:
        raise FormatError("missing qid", line_number, line)
    query_id = _parse_qid(tokens[1], line_number, line)

    features: Dict[int, float] = {}
    for token in tokens[2:]:
        index_text, sep, value_text = token.partition(":")
        if not sep:
            raise FormatError(f"malformed feature pair {token!r}", line_number, line)
        try:
            index = int(index_text)
            value = float(value_text)
        except ValueError:
            raise FormatError(f"malformed feature pair {token!r}", line_number, line) from None
        if index < 1:
            raise FormatError(f"feature index must be positive, got {index}", line_number, line)
        if not math.isfinite(value):
            raise FormatError(f"feature {index} has non-finite value {value_text!r}", line_number, line)
        if index in features:
            raise FormatError(f"duplicate feature index {index}", line_number, line)
        features[index] = value

    return DataPoint(
        label=label,
        query_id=query_id,
        features=features,
        description=description.strip() or None,
    )


def parse_lines(lines: Iterable[str]) -> List[DataPoint]:
    """Parse data point lines, skipping blank and comment lines."""
    datapoints = []
    for line_number, line in enumerate(lines, start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        datapoints.append(parse_line(line, line_number))
    return datapoints


def loads(text: str) -> DataSet:
    """Build a DataSet from the text of a data file."""
    return DataSet.from_datapoints(parse_lines(text.splitlines()))


def _decode_lines(handle: BinaryIO, encoding: str = "utf-8") -> Iterator[str]:
    for line_number, raw in enumerate(handle, start=1):
        try:
            yield raw.decode(encoding)
        except UnicodeDecodeError as e:
            raise FormatError(
                f"invalid {encoding} byte at column {e.start + 1}",
                line_number,
                raw.decode(encoding, errors="replace"),
            ) from None


def load(source: Source) -> DataSet:
    """Load a DataSet from a path or an open stream.

    Files and binary streams are decoded as UTF-8 line by line.

    Args:
        source: File path, readable text stream or readable binary stream

    Returns:
        DataSet grouped by query id in first-appearance order

    Raises:
        OSError: If the path cannot be read
        FormatError: If a line is malformed or not valid UTF-8
    """
    if hasattr(source, "read"):
        lines = _decode_lines(source) if isinstance(source, io.BufferedIOBase) else source
        datapoints = parse_lines(lines)
        name = getattr(source, "name", "<stream>")
    else:
        path = Path(source)
        with path.open("rb") as handle:
            datapoints = parse_lines(_decode_lines(handle))
        name = str(path)

    dataset = DataSet.from_datapoints(datapoints)
    logger.info("Loaded %d queries (%d documents) from %s",
                len(dataset), dataset.num_documents, name)
    return dataset
