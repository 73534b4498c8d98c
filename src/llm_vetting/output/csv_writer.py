"""Run export to CSV and JSON."""

import csv
import io
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import aiofiles

from llm_vetting.models.run import ResponseRecord, Run

logger = logging.getLogger("llm_vetting.output.csv")

EXPORT_PREFIX = "llm-vetting-run"

CSV_COLUMNS = [
    "run_id",
    "run_created_at",
    "system_prompt",
    "question",
    "service",
    "model_id",
    "model_label",
    "loop_index",
    "status",
    "started_at",
    "completed_at",
    "latency_ms",
    "char_count",
    "input_tokens",
    "output_tokens",
    "total_tokens",
    "finish_reason",
    "truncated",
    "retry_count",
    "text",
]


def _timestamp(value: Optional[datetime]) -> str:
    return value.isoformat() if value else ""


def _number(value: Optional[int]) -> str:
    return str(value) if value is not None else ""


def _response_to_row(run: Run, response: ResponseRecord) -> list[str]:
    """Convert one response to a CSV row in column order."""
    return [
        run.id,
        _timestamp(run.config.created_at),
        run.config.system_prompt or "",
        run.config.question,
        response.service.value,
        response.model_id,
        response.model_label,
        str(response.loop_index),
        response.status.value,
        _timestamp(response.started_at),
        _timestamp(response.completed_at),
        _number(response.latency_ms),
        _number(response.char_count),
        _number(response.input_tokens),
        _number(response.output_tokens),
        _number(response.total_tokens),
        response.finish_reason or "",
        "true" if response.truncated else "false",
        str(response.retry_count),
        response.text,
    ]


def export_run_to_csv(run: Run) -> str:
    """Serialize a run as CSV: a header plus one record per response.

    Fields containing a comma, quote or newline are quoted, with inner
    quotes doubled. Records are separated by ``\\n`` with no trailing newline.

    Args:
        run: Run to export.

    Returns:
        CSV content as a string.
    """
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for response in run.responses:
        writer.writerow(_response_to_row(run, response))
    return output.getvalue().rstrip("\n")


def export_run_to_json(run: Run) -> str:
    """Serialize a run, including derived stats, as indented JSON."""
    return run.model_dump_json(indent=2)


def export_filename(run: Run, suffix: str) -> str:
    """File name for an export of ``run`` with the given extension."""
    return f"{EXPORT_PREFIX}-{run.id}.{suffix}"


async def write_run_exports(run: Run, output_dir: Path) -> list[Path]:
    """Write CSV and JSON exports of a run.

    Args:
        run: Run to export.
        output_dir: Directory to write into; created if missing.

    Returns:
        Paths of the written files, CSV first.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    written = []
    for suffix, content in (("csv", export_run_to_csv(run)), ("json", export_run_to_json(run))):
        path = output_dir / export_filename(run, suffix)
        async with aiofiles.open(path, "w", encoding="utf-8", newline="") as f:
            await f.write(content)
        written.append(path)

    logger.info(f"Wrote {len(run.responses)} responses to {output_dir}")
    return written
