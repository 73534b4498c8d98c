"""Reference text import from CSV."""

import csv
import io
import logging

from llm_vetting.models.reference import ReferenceText

logger = logging.getLogger("llm_vetting.output.csv_reader")

TEXT_COLUMN_MARKERS = ("response", "text", "answer")


def find_text_column(headers: list[str]) -> int:
    """Index of the first header naming a response, text or answer column.

    Raises:
        ValueError: If no header matches.
    """
    for index, header in enumerate(headers):
        lowered = header.lower()
        if any(marker in lowered for marker in TEXT_COLUMN_MARKERS):
            return index
    raise ValueError('CSV must contain a column with "response", "text", or "answer" in the header')


def parse_reference_csv(content: str) -> list[ReferenceText]:
    """Parse human-written reference texts from CSV content.

    The first row is the header. Columns other than the text column become
    metadata when non-empty; rows with a blank text are skipped.

    Args:
        content: CSV file content.

    Returns:
        Reference texts in file order.

    Raises:
        ValueError: If there is no data row or no text column.
    """
    rows = [row for row in csv.reader(io.StringIO(content.strip())) if row]
    if len(rows) < 2:
        raise ValueError("CSV must have at least a header and one data row")

    headers = [h.strip() for h in rows[0]]
    text_index = find_text_column(headers)

    references = []
    for values in rows[1:]:
        if len(values) <= text_index or not values[text_index].strip():
            continue

        metadata = {
            header: values[index].strip()
            for index, header in enumerate(headers)
            if index != text_index and index < len(values) and values[index].strip()
        }
        references.append(
            ReferenceText(text=values[text_index].strip(), metadata=metadata or None)
        )

    logger.debug(f"Parsed {len(references)} reference texts")
    return references
