"""Tests for the run engine and run history."""

import asyncio

import pytest

from llm_vetting.config.models import VettingConfig
from llm_vetting.engine import RunEngine, RunHistory
from llm_vetting.engine.scheduler import MISSING_KEY_MESSAGE
from llm_vetting.errors import CANCELED_MESSAGE
from llm_vetting.models.enums import ProviderName, ResponseStatus
from llm_vetting.models.run import Run, RunConfig


def make_run_config(model_ids: list[str], loop_count: int = 3, concurrency: int = 2) -> RunConfig:
    return RunConfig.create(
        question="Name a prime number.",
        model_ids=model_ids,
        loop_count=loop_count,
        concurrency=concurrency,
        loop_cap=10,
    )


async def settle(engine: RunEngine) -> Run:
    return await asyncio.wait_for(engine.wait(), timeout=5)


async def spin(times: int = 20) -> None:
    for _ in range(times):
        await asyncio.sleep(0)


class TestRunEngine:
    """Tests for job scheduling."""

    @pytest.mark.asyncio
    async def test_records_created_up_front(self, vetting_config, fake_adapters):
        """Test that every job has a queued record before any dispatch."""
        engine = RunEngine(vetting_config, adapters=fake_adapters)
        run = await engine.start_run(make_run_config(["gpt-4o-mini", "claude-3-haiku-20240307"]))

        assert run.stats.total == 6
        assert all(r.status == ResponseStatus.QUEUED for r in run.responses)
        assert [(r.model_id, r.loop_index) for r in run.responses][:3] == [
            ("gpt-4o-mini", 0),
            ("gpt-4o-mini", 1),
            ("gpt-4o-mini", 2),
        ]

        await settle(engine)
        await engine.aclose()

    @pytest.mark.asyncio
    async def test_unknown_and_duplicate_models_skipped(self, vetting_config, fake_adapters):
        """Test that unknown ids are dropped and duplicates collapse."""
        engine = RunEngine(vetting_config, adapters=fake_adapters)
        run = await engine.start_run(make_run_config(["gpt-4o-mini", "no-such-model", "gpt-4o-mini"]))

        assert run.stats.total == 3
        await settle(engine)
        await engine.aclose()

    @pytest.mark.asyncio
    async def test_run_completes_with_similarity(self, vetting_config, fake_adapters):
        """Test that identical replies end up in one cluster."""
        engine = RunEngine(vetting_config, adapters=fake_adapters)
        await engine.start_run(make_run_config(["gpt-4o-mini"], loop_count=3))
        run = await settle(engine)

        stats = run.stats
        assert stats.completed == 3
        assert stats.completed + stats.errors + stats.canceled <= stats.total
        assert stats.avg_latency_ms == 12
        assert run.is_complete
        assert run.similarity is not None
        assert len(run.similarity.clusters) == 1
        assert set(run.similarity.clusters[0].ids) == {r.id for r in run.responses}

        record = run.responses[0]
        assert record.text == fake_adapters[ProviderName.OPENAI].reply
        assert record.total_tokens == 14
        assert record.char_count == len(record.text)
        assert record.started_at is not None and record.completed_at is not None

        assert engine.get_status().is_running is False
        await engine.aclose()

    @pytest.mark.asyncio
    async def test_concurrency_never_exceeded(self, vetting_config, fake_adapter_cls):
        """Test that at most `concurrency` jobs are in progress at once."""
        gate = asyncio.Event()
        adapters = {p: fake_adapter_cls(p, gate=gate) for p in ProviderName}
        observed = []

        engine = RunEngine(
            vetting_config,
            adapters=adapters,
            on_update=lambda run: observed.append(engine.in_flight),
        )

        await engine.start_run(make_run_config(["gpt-4o-mini", "gpt-4o"], loop_count=4, concurrency=3))
        await spin()
        assert engine.in_flight == 3

        gate.set()
        run = await settle(engine)

        assert run.stats.completed == 8
        assert max(observed) == 3
        await engine.aclose()

    @pytest.mark.asyncio
    async def test_missing_key_fails_without_request(self, vetting_config, fake_adapters):
        """Test that a provider without credentials errors immediately."""
        engine = RunEngine(vetting_config, adapters=fake_adapters)
        await engine.start_run(make_run_config(["deepseek-chat"], loop_count=2))
        run = await settle(engine)

        assert run.stats.errors == 2
        assert all(r.error_message == MISSING_KEY_MESSAGE for r in run.responses)
        assert fake_adapters[ProviderName.DEEPSEEK].calls == []
        await engine.aclose()

    @pytest.mark.asyncio
    async def test_retry_errors_requeues_only_failures(self, vetting_config, fake_adapter_cls):
        """Test that retry touches error jobs only and bumps their count."""
        adapters = {p: fake_adapter_cls(p) for p in ProviderName}
        adapters[ProviderName.OPENAI].fail_calls = {1}

        engine = RunEngine(vetting_config, adapters=adapters)
        await engine.start_run(make_run_config(["gpt-4o-mini"], loop_count=3))
        run = await settle(engine)

        failed = [r for r in run.responses if r.status == ResponseStatus.ERROR]
        assert len(failed) == 1
        assert failed[0].error_message == "OpenAI API error: 500 upstream exploded"
        failed_id = failed[0].id
        done_before = {r.id: r.completed_at for r in run.responses if r.status == ResponseStatus.DONE}

        assert engine.retry_errors() == 1
        assert run.similarity is None
        run = await settle(engine)

        retried = run.get_response(failed_id)
        assert retried.status == ResponseStatus.DONE
        assert retried.retry_count == 1
        assert retried.error_message is None
        for response_id, completed_at in done_before.items():
            record = run.get_response(response_id)
            assert record.retry_count == 0
            assert record.completed_at == completed_at
        assert run.similarity is not None
        assert engine.retry_errors() == 0
        await engine.aclose()

    @pytest.mark.asyncio
    async def test_cancel_run_stops_everything(self, vetting_config, fake_adapter_cls):
        """Test that cancel marks jobs canceled and silences their streams."""
        gate = asyncio.Event()
        adapters = {p: fake_adapter_cls(p, gate=gate) for p in ProviderName}
        updates = []

        engine = RunEngine(vetting_config, adapters=adapters, on_update=updates.append)
        await engine.start_run(make_run_config(["gpt-4o-mini"], loop_count=4, concurrency=2))
        await spin()
        assert engine.in_flight == 2

        engine.cancel_run()
        status = engine.get_status()
        assert status.is_running is False

        run = await settle(engine)
        assert run.stats.canceled == 4
        assert all(r.error_message == CANCELED_MESSAGE for r in run.responses)

        seen = len(updates)
        gate.set()
        await spin()
        assert len(updates) == seen
        assert all(r.text == "" for r in run.responses)

        engine.cancel_run()
        assert engine.retry_errors() == 0
        await engine.aclose()

    @pytest.mark.asyncio
    async def test_cancel_before_dispatched_task_starts(self, vetting_config, fake_adapters):
        """Test that a job canceled right after dispatch never reaches its adapter."""
        engine = RunEngine(vetting_config, adapters=fake_adapters)
        await engine.start_run(make_run_config(["gpt-4o-mini"], loop_count=3, concurrency=2))
        await asyncio.sleep(0)

        engine.cancel_run()
        run = await settle(engine)
        await spin()

        assert [r.status for r in run.responses] == [ResponseStatus.CANCELED] * 3
        assert run.stats.completed == 0
        assert fake_adapters[ProviderName.OPENAI].calls == []
        await engine.aclose()

    @pytest.mark.asyncio
    async def test_new_run_archives_previous(self, vetting_config, fake_adapters):
        """Test that replacing a run moves a snapshot into history."""
        engine = RunEngine(vetting_config, adapters=fake_adapters)
        first = await engine.start_run(make_run_config(["gpt-4o-mini"], loop_count=1))
        await settle(engine)

        second = await engine.start_run(make_run_config(["gpt-4o"], loop_count=1))
        await settle(engine)

        assert engine.current_run is second
        assert len(engine.history) == 1
        archived = engine.history.latest
        assert archived.id == first.id
        assert archived is not first
        await engine.aclose()

    @pytest.mark.asyncio
    async def test_empty_run_completes(self, vetting_config, fake_adapters):
        """Test that a run with no valid models finishes immediately."""
        engine = RunEngine(vetting_config, adapters=fake_adapters)
        await engine.start_run(make_run_config(["no-such-model"]))
        run = await settle(engine)

        assert run.stats.total == 0
        assert run.similarity is not None
        await engine.aclose()

    @pytest.mark.asyncio
    async def test_observer_errors_do_not_break_run(self, vetting_config, fake_adapters):
        """Test that a failing observer is logged and ignored."""

        def explode(run):
            raise RuntimeError("observer bug")

        engine = RunEngine(vetting_config, adapters=fake_adapters, on_update=explode)
        await engine.start_run(make_run_config(["gpt-4o-mini"], loop_count=2))
        run = await settle(engine)

        assert run.stats.completed == 2
        await engine.aclose()

    @pytest.mark.asyncio
    async def test_aclose_closes_adapters(self, vetting_config, fake_adapters):
        """Test that closing the engine closes every adapter."""
        engine = RunEngine(vetting_config, adapters=fake_adapters)
        await engine.aclose()
        assert all(adapter.closed for adapter in fake_adapters.values())


class TestRunHistory:
    """Tests for the bounded run history."""

    def _run(self, question: str) -> Run:
        return Run(config=RunConfig(question=question))

    def test_newest_first(self):
        """Test that the latest run comes first."""
        history = RunHistory(limit=3)
        runs = [self._run(f"q{i}") for i in range(3)]
        for run in runs:
            history.add(run)

        assert [r.id for r in history] == [r.id for r in reversed(runs)]
        assert history.latest is runs[-1]

    def test_evicts_oldest(self):
        """Test that the limit drops the oldest run."""
        history = RunHistory(limit=2)
        runs = [self._run(f"q{i}") for i in range(3)]
        for run in runs:
            history.add(run)

        assert len(history) == 2
        assert history.get(runs[0].id) is None
        assert history.get(runs[2].id) is runs[2]

    def test_clear(self):
        """Test clearing the history."""
        history = RunHistory()
        history.add(self._run("q"))
        history.clear()
        assert len(history) == 0
        assert history.latest is None

    def test_limit_from_config(self):
        """Test that the engine honours the configured limit."""
        config = VettingConfig.model_validate({"run": {"history_limit": 7}})
        engine = RunEngine(config, adapters={})
        assert engine.history.limit == 7

    def test_invalid_limit(self):
        """Test that a zero limit is rejected."""
        with pytest.raises(ValueError):
            RunHistory(limit=0)
