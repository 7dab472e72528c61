from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

import pytest
from sqlalchemy.exc import SQLAlchemyError

from bloodwork.core.exceptions import AIResponseError, AnalysisNotFoundError
from bloodwork.services.analysis.analysis_orchestrator import AnalysisOrchestrator
from bloodwork.services.pipeline.analysis_pipeline import AnalysisPipeline

VITAMIN_D_ID = UUID(int=1)
PHASES = ["core", "supplements", "diet", "lifestyle", "workout"]


@pytest.fixture
def analysis():
    return SimpleNamespace(id=uuid4(), user_id=uuid4(), document_id=uuid4())


@pytest.fixture
def recorder():
    recorder = MagicMock()
    recorder.record = AsyncMock()
    return recorder


@pytest.fixture
def phase_streams(json_stream, core_payload, plan_payloads):
    def _make(**overrides):
        payloads = {"core": core_payload, **plan_payloads}
        return [overrides.get(phase, json_stream(payloads[phase])) for phase in PHASES]
    return _make


def _build_pipeline(session, llm_client, analysis, recorder):
    pipeline = AnalysisPipeline(session, AnalysisOrchestrator(llm_client), recorder=recorder)
    pipeline.analyses = MagicMock()
    pipeline.analyses.get_for_user = AsyncMock(return_value=analysis)
    pipeline.analyses.set_status = AsyncMock(return_value=True)
    pipeline.analyses.set_phase_status = AsyncMock(return_value=True)
    pipeline.analyses.save_core_results = AsyncMock(return_value=True)
    pipeline.analyses.add_recommendations = AsyncMock(return_value=[])
    pipeline.readings = MagicMock()
    pipeline.readings.list_for_document = AsyncMock(return_value=[
        SimpleNamespace(
            name="25-Hydroxyvitamin D", value=32.0, unit="ng/mL",
            biomarker_id=VITAMIN_D_ID, reference_range="30-100",
        ),
    ])
    pipeline.profiles = MagicMock()
    pipeline.profiles.get_by_user_id = AsyncMock(return_value=None)
    pipeline.catalog = MagicMock()
    pipeline.catalog.get_optimal_ranges = AsyncMock(return_value=[
        SimpleNamespace(biomarker_id=VITAMIN_D_ID, optimal_min=50.0, optimal_max=80.0, unit="ng/mL"),
    ])
    return pipeline


@pytest.mark.asyncio
async def test_successful_run_persists_each_phase(mock_session, make_llm_client, phase_streams, analysis, recorder):
    pipeline = _build_pipeline(mock_session, make_llm_client(*phase_streams()), analysis, recorder)

    result = await pipeline.run(analysis.id, analysis.user_id)

    assert result["status"] == "completed"
    assert result["phaseStatuses"] == {phase: "completed" for phase in PHASES}

    pipeline.readings.list_for_document.assert_awaited_once_with(analysis.document_id)
    pipeline.catalog.get_optimal_ranges.assert_awaited_once_with([VITAMIN_D_ID], age=None, gender=None)
    recorder.reset.assert_called_once_with(analysis.id)

    core_args = pipeline.analyses.save_core_results.call_args.args
    assert core_args[1]["overall_health_assessment"]["health_score"] == 72
    assert core_args[2] == "gpt-5-mini"
    categories = [c.args[1] for c in pipeline.analyses.add_recommendations.await_args_list]
    assert categories == ["supplements", "diet", "lifestyle", "workout"]

    phase_updates = [c.args[1:] for c in pipeline.analyses.set_phase_status.await_args_list]
    assert phase_updates[:2] == [("core", "processing"), ("core", "completed")]
    assert len(phase_updates) == 10

    last_status = pipeline.analyses.set_status.await_args_list[-1]
    assert last_status.args == (analysis.id, "completed")
    last_record = recorder.record.await_args_list[-1]
    assert last_record.args[1] == "complete"


@pytest.mark.asyncio
async def test_failed_recommendation_phase_still_completes(
    mock_session, make_llm_client, phase_streams, stream_events, analysis, recorder
):
    llm = make_llm_client(*phase_streams(lifestyle=stream_events("{broken")))
    pipeline = _build_pipeline(mock_session, llm, analysis, recorder)

    result = await pipeline.run(analysis.id, analysis.user_id)

    assert result["status"] == "completed"
    assert result["phaseStatuses"]["lifestyle"] == "failed"
    categories = [c.args[1] for c in pipeline.analyses.add_recommendations.await_args_list]
    assert "lifestyle" not in categories
    assert (analysis.id, "lifestyle", "failed") in [
        c.args for c in pipeline.analyses.set_phase_status.await_args_list
    ]


@pytest.mark.asyncio
async def test_core_failure_fails_analysis(mock_session, make_llm_client, analysis, recorder):
    llm = make_llm_client(AIResponseError("Model response failed: overloaded"))
    pipeline = _build_pipeline(mock_session, llm, analysis, recorder)

    with pytest.raises(AIResponseError):
        await pipeline.run(analysis.id, analysis.user_id)

    assert (analysis.id, "core", "failed") in [
        c.args for c in pipeline.analyses.set_phase_status.await_args_list
    ]
    last_status = pipeline.analyses.set_status.await_args_list[-1]
    assert last_status.args == (analysis.id, "failed")
    assert "overloaded" in last_status.kwargs["error_message"]
    assert recorder.record.await_args_list[-1].args[1] == "error"
    mock_session.rollback.assert_awaited_once()
    pipeline.analyses.add_recommendations.assert_not_awaited()


@pytest.mark.asyncio
async def test_unknown_analysis_is_not_found(mock_session, make_llm_client, analysis, recorder):
    pipeline = _build_pipeline(mock_session, make_llm_client(), analysis, recorder)
    pipeline.analyses.get_for_user = AsyncMock(return_value=None)

    with pytest.raises(AnalysisNotFoundError):
        await pipeline.run(analysis.id, uuid4())

    recorder.record.assert_not_awaited()


@pytest.mark.asyncio
async def test_phase_narrator_writes_under_phase_name(mock_session, make_llm_client, analysis, recorder):
    pipeline = _build_pipeline(mock_session, make_llm_client(), analysis, recorder)

    narrator = pipeline._narrator(analysis.id, "diet")
    await narrator.flush("Weighing fish intake", 0, 3)

    args = recorder.record.await_args.args
    assert args[:2] == (analysis.id, "diet")
    assert args[2] == "Diet recommendations: AI is reasoning..."
    assert args[3]["thoughtProcess"] == "Weighing fish intake"


@pytest.mark.asyncio
async def test_failed_recommendation_save_only_fails_that_phase(
    mock_session, make_llm_client, phase_streams, analysis, recorder
):
    pipeline = _build_pipeline(mock_session, make_llm_client(*phase_streams()), analysis, recorder)

    async def add_recommendations(analysis_id, category, items):
        if category == "diet":
            raise SQLAlchemyError("connection reset")
        return []

    pipeline.analyses.add_recommendations = AsyncMock(side_effect=add_recommendations)

    result = await pipeline.run(analysis.id, analysis.user_id)

    assert result["status"] == "completed"
    assert result["phaseStatuses"]["diet"] == "failed"
    assert result["phaseStatuses"]["lifestyle"] == "completed"
    assert (analysis.id, "diet", "failed") in [
        c.args for c in pipeline.analyses.set_phase_status.await_args_list
    ]
    assert pipeline.analyses.set_status.await_args_list[-1].args == (analysis.id, "completed")


@pytest.mark.asyncio
async def test_unrecordable_phase_failure_does_not_fail_analysis(
    mock_session, make_llm_client, phase_streams, stream_events, analysis, recorder
):
    llm = make_llm_client(*phase_streams(workout=stream_events("{broken")))
    pipeline = _build_pipeline(mock_session, llm, analysis, recorder)

    async def set_phase_status(analysis_id, phase, status):
        if status == "failed":
            raise SQLAlchemyError("connection reset")
        return True

    pipeline.analyses.set_phase_status = AsyncMock(side_effect=set_phase_status)

    result = await pipeline.run(analysis.id, analysis.user_id)

    assert result["status"] == "completed"
    assert result["phaseStatuses"]["workout"] == "failed"
