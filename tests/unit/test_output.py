"""Tests for run export and reference import."""

import csv
import io
import json
from pathlib import Path

import pytest

from llm_vetting.models.enums import ProviderName, ResponseStatus
from llm_vetting.models.run import ResponseRecord, Run, RunConfig
from llm_vetting.output import (
    CSV_COLUMNS,
    export_run_to_csv,
    export_run_to_json,
    parse_reference_csv,
    write_run_exports,
)


@pytest.fixture
def sample_run() -> Run:
    """A run with one plain, one awkward and one failed response."""
    run = Run(config=RunConfig(question="Why is the sky blue?", system_prompt="Be concise."))
    run.responses = [
        ResponseRecord(
            run_id=run.id,
            service=ProviderName.OPENAI,
            model_id="gpt-4o-mini",
            model_label="GPT-4o Mini",
            loop_index=0,
            status=ResponseStatus.DONE,
            text="Rayleigh scattering.",
            latency_ms=420,
            total_tokens=30,
            finish_reason="stop",
        ),
        ResponseRecord(
            run_id=run.id,
            service=ProviderName.ANTHROPIC,
            model_id="claude-3-haiku-20240307",
            model_label="Claude 3 Haiku",
            loop_index=1,
            status=ResponseStatus.DONE,
            text='Light "scatters", mostly\nat short wavelengths.',
            truncated=True,
        ),
        ResponseRecord(
            run_id=run.id,
            service=ProviderName.DEEPSEEK,
            model_id="deepseek-chat",
            model_label="DeepSeek Chat",
            loop_index=0,
            status=ResponseStatus.ERROR,
            error_message="No API key configured for this provider",
            retry_count=2,
        ),
    ]
    return run


class TestExportCSV:
    """Tests for CSV export."""

    def test_header_plus_one_record_per_response(self, sample_run: Run):
        """Test record count and column order."""
        content = export_run_to_csv(sample_run)
        rows = list(csv.reader(io.StringIO(content)))

        assert len(rows) == len(sample_run.responses) + 1
        assert rows[0] == CSV_COLUMNS
        assert len(CSV_COLUMNS) == 20
        assert all(len(row) == 20 for row in rows)
        assert not content.endswith("\n")

    def test_quoting(self, sample_run: Run):
        """Test that commas, quotes and newlines are quoted with doubled quotes."""
        content = export_run_to_csv(sample_run)
        assert '"Light ""scatters"", mostly\nat short wavelengths."' in content

    def test_field_values(self, sample_run: Run):
        """Test formatting of optional and boolean fields."""
        rows = list(csv.DictReader(io.StringIO(export_run_to_csv(sample_run))))

        first, second, third = rows
        assert first["run_id"] == sample_run.id
        assert first["system_prompt"] == "Be concise."
        assert first["latency_ms"] == "420"
        assert first["input_tokens"] == ""
        assert first["truncated"] == "false"
        assert second["truncated"] == "true"
        assert third["status"] == "error"
        assert third["retry_count"] == "2"
        assert third["started_at"] == ""

    def test_empty_run(self):
        """Test that a run with no responses exports only the header."""
        run = Run(config=RunConfig(question="q"))
        assert export_run_to_csv(run) == ",".join(CSV_COLUMNS)


class TestExportJSON:
    """Tests for JSON export."""

    def test_includes_stats(self, sample_run: Run):
        """Test that derived stats are serialized."""
        data = json.loads(export_run_to_json(sample_run))
        assert data["id"] == sample_run.id
        assert data["stats"]["total"] == 3
        assert data["stats"]["errors"] == 1
        assert len(data["responses"]) == 3

    @pytest.mark.asyncio
    async def test_write_exports(self, sample_run: Run, tmp_path: Path):
        """Test that both files are written with run-scoped names."""
        paths = await write_run_exports(sample_run, tmp_path / "out")

        assert [p.name for p in paths] == [
            f"llm-vetting-run-{sample_run.id}.csv",
            f"llm-vetting-run-{sample_run.id}.json",
        ]
        assert paths[0].read_text(encoding="utf-8") == export_run_to_csv(sample_run)
        assert json.loads(paths[1].read_text(encoding="utf-8"))["id"] == sample_run.id


class TestParseReferenceCSV:
    """Tests for reference import."""

    def test_finds_text_column_and_metadata(self):
        """Test column detection and metadata capture."""
        content = 'expert,Expert Response,score\nAda,"Use a hash map, then sort.",5\nBob,,3\n'
        refs = parse_reference_csv(content)

        assert len(refs) == 1
        assert refs[0].text == "Use a hash map, then sort."
        assert refs[0].metadata == {"expert": "Ada", "score": "5"}

    def test_first_matching_header_wins(self):
        """Test that the leftmost matching column is used."""
        refs = parse_reference_csv("answer,text\nfirst,second\n")
        assert refs[0].text == "first"

    def test_multiline_field(self):
        """Test that quoted newlines stay inside the text."""
        refs = parse_reference_csv('text\n"line one\nline two"\n')
        assert refs[0].text == "line one\nline two"
        assert refs[0].metadata is None

    def test_missing_text_column(self):
        """Test that a CSV without a text column is rejected."""
        with pytest.raises(ValueError, match="response"):
            parse_reference_csv("name,score\nAda,5\n")

    def test_header_only(self):
        """Test that a CSV without data rows is rejected."""
        with pytest.raises(ValueError, match="header"):
            parse_reference_csv("text\n")

    def test_ids_are_unique(self):
        """Test that each reference gets its own id."""
        refs = parse_reference_csv("text\na\nb\n")
        assert refs[0].id != refs[1].id
