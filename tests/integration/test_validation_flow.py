"""
Integration test of a full validation run over indexed documents.

Exercises indexing, retrieval, prompt resolution, structured generation with
citations and the final summary through the orchestrator.
"""

import pytest

from assessment_validator.schemas import JobStatus, ResultStatus, Strategy, Verdict

pytestmark = pytest.mark.integration


@pytest.mark.asyncio
async def test_retrieval_run_with_citations_and_mixed_verdicts(
    test_container, orchestrator, make_requirements, assessment_text, scripted_llm, verdict_json
):
    tool = orchestrator.register_document(name="Assessment Tool", text=assessment_text)
    guide = orchestrator.register_document(name="Learner Guide", text="The learner guide explains how to write a safety report. " * 4)
    requirements = orchestrator.load_requirements(make_requirements(4))
    scripted_llm.reply_for("R01", verdict_json("Met", "Covered in section 1", citations=["E1"], confidence=0.92))
    scripted_llm.reply_for("R02", verdict_json("Partially Met", "Only partly", citations=["E2"], confidence=80))
    scripted_llm.reply_for("R03", '```json\n{"status": "not met", "reasoning": "Absent"}\n```')
    scripted_llm.reply_for("R04", ["{}", verdict_json("Met", "After correction")])

    job = orchestrator.create_job(
        document_ids=[tool.id, guide.id],
        requirement_ids=[r.id for r in requirements],
        unit_code="BSBWHS211",
        strategy=Strategy.RETRIEVAL_AUGMENTED,
    )
    for document in (tool, guide):
        assert (await orchestrator.start_indexing(document.id)).status == "accepted"

    assert (await orchestrator.start_validation(job.id)).status == "accepted"
    snapshot = await orchestrator.wait_for_job(job.id)
    results, summary = orchestrator.get_results(job.id)
    by_id = {row.requirement_id: row for row in results}

    assert snapshot.status == JobStatus.FINALIZED
    assert (snapshot.succeeded, snapshot.failed) == (4, 0)
    assert by_id["req-01"].verdict == Verdict.MET
    assert by_id["req-01"].citations[0].document_id in {tool.id, guide.id}
    assert by_id["req-02"].confidence == pytest.approx(0.8)
    assert by_id["req-03"].verdict == Verdict.NOT_MET
    assert by_id["req-04"].attempt_count == 2
    assert all(row.status == ResultStatus.SUCCEEDED for row in results)
    assert summary.overall_status == "partial"
    assert summary.total == 4

    prompts = scripted_llm.prompts()
    assert any("=== EVIDENCE ===" in prompt and "[E1]" in prompt for prompt in prompts)
