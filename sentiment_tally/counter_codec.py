"""
CSV encoding of the counter document.

Layout (UTF-8, "\\n" line endings):

    Sentiment,Count
    Negative,2
    Positive,5

Rows are sorted by label's canonical order, one row per label. Decoding also
accepts an empty payload and a missing header, and sums duplicate rows left
behind by older writers.
"""

from __future__ import annotations

import csv
import io
import logging

from sentiment_tally.errors import EncodingError
from sentiment_tally.sentiment_types import CounterDocument, CountRecord, Label

logger = logging.getLogger(__name__)

HEADER = ("Sentiment", "Count")


def decode(data: bytes) -> CounterDocument:
    """
    Parse counter document bytes.

    Raises:
        EncodingError: invalid UTF-8, bad row shape, bad count, unknown label
    """
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise EncodingError(f"Counter document is not valid UTF-8: {e}") from e

    # Tolerate a BOM written by spreadsheet tools.
    text = text.lstrip("\ufeff")

    records: list[CountRecord] = []
    try:
        rows = list(csv.reader(io.StringIO(text)))
    except csv.Error as e:
        raise EncodingError(f"Malformed counter CSV: {e}") from e

    for line_no, row in enumerate(rows, start=1):
        cells = [c.strip() for c in row]
        if not cells or all(not c for c in cells):
            continue
        if line_no == 1 and tuple(c.lower() for c in cells) == tuple(h.lower() for h in HEADER):
            continue
        records.append(_parse_row(cells, line_no))

    doc = CounterDocument.from_records(records)
    if len(records) != len(doc.counts):
        logger.warning(
            "Collapsed duplicate counter rows: rows=%s labels=%s", len(records), len(doc.counts)
        )
    return doc


def encode(doc: CounterDocument) -> bytes:
    """Serialize deterministically. Never fails for a well-formed document."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(HEADER)
    for rec in doc.records():
        writer.writerow((rec.label.value, rec.count))
    return buf.getvalue().encode("utf-8")


def _parse_row(cells: list[str], line_no: int) -> CountRecord:
    if len(cells) != 2:
        raise EncodingError(f"Line {line_no}: expected 2 columns, got {len(cells)}")

    label_token, count_token = cells
    try:
        label = Label.parse(label_token)
    except ValueError as e:
        raise EncodingError(f"Line {line_no}: {e}") from e

    try:
        count = int(count_token)
    except ValueError as e:
        raise EncodingError(f"Line {line_no}: unparsable count {count_token!r}") from e
    if count < 0:
        raise EncodingError(f"Line {line_no}: negative count {count}")

    return CountRecord(label=label, count=count)
