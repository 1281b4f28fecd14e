import asyncio
import pytest

from conftest import data_uri, wait_until_settled
from resume_coach import config
from resume_coach.main import sessions, sweep_sessions
from resume_coach.models import Session
from resume_coach.services.controllers import ResumeAnalyzerController
from resume_coach.services.pipelines import ResumeRevisionPipeline
from resume_coach.services.state_machine import Event


@pytest.mark.anyio
async def test_analyze_status_result_flow(client, stub, pdf_bytes):
    files = {"resume": ("resume.pdf", pdf_bytes, "application/pdf")}
    data = {"job_description": "Backend engineer, Go, Kubernetes"}

    r = await client.post("/api/resume-analyzer", files=files, data=data)
    assert r.status_code == 200, r.text
    body = r.json()
    session_id = body["session_id"]
    assert session_id
    assert body["form"] == "resume_analyzer"
    assert body["state"] in {"submitting", "succeeded"}

    payload = await wait_until_settled(client, session_id)
    assert payload["state"] == "succeeded"
    assert payload["view"] == "results"
    assert payload["advance_state"] == "ready_to_advance"
    assert payload["result"]["matchScore"]
    assert "keywords" in payload["result"]
    assert "missingFromResume" in payload["result"]["keywords"]

    # the PDF text, not the data URI, reaches the model
    assert "5 years Python" in stub.calls_for("analyze_resume")[0]


@pytest.mark.anyio
async def test_modify_and_download(client, stub):
    data = {"job_description": "Backend engineer, Go, Kubernetes", "resume_text": "5 years Python, some Go"}
    r = await client.post("/api/resume-analyzer", data=data)
    assert r.status_code == 200
    session_id = r.json()["session_id"]
    await wait_until_settled(client, session_id)

    m = await client.post(f"/api/resume-analyzer/{session_id}/modify")
    assert m.status_code == 200, m.text
    payload = await wait_until_settled(client, session_id)
    assert payload["advance_state"] == "advanced"
    assert payload["view"] == "revision"
    assert payload["revision"]["newAnalysis"]["matchScore"] == "91% Match"
    # stage A's result is still there
    assert payload["result"]["matchScore"] == "72% Match"

    d = await client.get(f"/api/resume-analyzer/{session_id}/modified-resume")
    assert d.status_code == 200
    assert d.headers["content-type"].startswith("text/plain")
    assert "attachment" in d.headers["content-disposition"]
    assert "Kubernetes" in d.text

    prompt = stub.calls_for("modify_resume")[0]
    assert "- Mention Kubernetes" in prompt


@pytest.mark.anyio
async def test_missing_fields_are_field_errors(client, stub):
    r = await client.post("/api/resume-analyzer", data={"resume_text": "something"})
    assert r.status_code == 400
    detail = r.json()["detail"]
    assert detail["state"] == "idle"
    assert "job_description" in detail["field_errors"]
    assert stub.calls == []


@pytest.mark.anyio
async def test_png_upload_is_rejected_without_model_calls(client, stub):
    files = {"resume": ("photo.png", b"\x89PNG\r\n\x1a\n0000", "image/png")}
    r = await client.post("/api/find-jobs", files=files)
    assert r.status_code == 400
    detail = r.json()["detail"]
    assert detail["field_errors"]["resume"] == "Invalid file type. Please upload a .pdf file only."
    assert detail["state"] == "idle"
    assert stub.calls == []


@pytest.mark.anyio
async def test_modify_before_analysis_is_conflict(client, stub):
    stub.responses["analyze_resume"] = RuntimeError("model unavailable")
    data = {"job_description": "Backend engineer, Go", "resume_text": "Python"}
    r = await client.post("/api/resume-analyzer", data=data)
    session_id = r.json()["session_id"]
    payload = await wait_until_settled(client, session_id)
    assert payload["state"] == "failed"
    assert payload["error"] == "model unavailable"
    assert payload["view"] == "input"

    m = await client.post(f"/api/resume-analyzer/{session_id}/modify")
    assert m.status_code == 409
    assert stub.calls_for("modify_resume") == []


@pytest.mark.anyio
async def test_duplicate_submission_while_in_flight(client, stub):
    stub.gate = asyncio.Event()
    data = {"job_description": "Backend engineer, Go", "resume_text": "Python"}
    r = await client.post("/api/resume-analyzer", data=data)
    session_id = r.json()["session_id"]

    again = await client.post("/api/resume-analyzer", data={**data, "session_id": session_id})
    assert again.status_code == 409

    stub.gate.set()
    payload = await wait_until_settled(client, session_id)
    assert payload["state"] == "succeeded"
    assert len(stub.calls_for("analyze_resume")) == 1


@pytest.mark.anyio
async def test_summarize_url(client, stub):
    data = {"mode": "url", "url": "https://example.com/article", "length": "short"}
    r = await client.post("/api/summarize", data=data)
    assert r.status_code == 200, r.text
    payload = await wait_until_settled(client, r.json()["session_id"])
    assert payload["state"] == "succeeded"
    assert payload["result"]["sourceUrl"] == "https://example.com/article"
    assert payload["result"]["length"] == "short"

    c = await client.get(f"/api/sessions/{payload['session_id']}/copy/summary")
    assert c.status_code == 200
    assert c.text == payload["result"]["summary"]


@pytest.mark.anyio
async def test_summarize_rejects_malformed_url(client, stub):
    r = await client.post("/api/summarize", data={"mode": "url", "url": "example.com/no-scheme"})
    assert r.status_code == 400
    assert "url" in r.json()["detail"]["field_errors"]
    assert stub.calls == []


@pytest.mark.anyio
async def test_demo_resume_and_download(client):
    data = {"job_description": "Junior data analyst, SQL, Excel", "experience_level": "fresher"}
    r = await client.post("/api/demo-resume", data=data)
    assert r.status_code == 200
    session_id = r.json()["session_id"]
    payload = await wait_until_settled(client, session_id)
    assert payload["result"]["demoResume"].startswith("John Doe")

    d = await client.get(f"/api/demo-resume/{session_id}/download")
    assert d.status_code == 200
    assert d.text.startswith("John Doe")


@pytest.mark.anyio
async def test_demo_resume_rejects_unknown_level(client, stub):
    r = await client.post("/api/demo-resume", data={"job_description": "x", "experience_level": "guru"})
    assert r.status_code == 400
    assert "experience_level" in r.json()["detail"]["field_errors"]
    assert stub.calls == []


@pytest.mark.anyio
async def test_find_jobs_non_array_falls_back_to_empty(client, stub, pdf_bytes):
    stub.responses["find_jobs_by_resume"] = {"jobs": "none found"}
    r = await client.post("/api/find-jobs", data={"resume_data_uri": data_uri(pdf_bytes)})
    assert r.status_code == 200, r.text
    payload = await wait_until_settled(client, r.json()["session_id"])
    assert payload["state"] == "succeeded"
    assert payload["result"] == {"jobs": []}


@pytest.mark.anyio
async def test_found_job_hands_off_to_analyzer(client, stub, pdf_bytes):
    files = {"resume": ("resume.pdf", pdf_bytes, "application/pdf")}
    r = await client.post("/api/find-jobs", files=files)
    jobs_id = r.json()["session_id"]
    payload = await wait_until_settled(client, jobs_id)
    assert len(payload["result"]["jobs"]) == 2

    h = await client.post(f"/api/find-jobs/{jobs_id}/jobs/0/analyze")
    assert h.status_code == 200, h.text
    analyzer = await wait_until_settled(client, h.json()["session_id"])
    assert analyzer["form"] == "resume_analyzer"
    assert analyzer["state"] == "succeeded"
    assert "Build Go services on Kubernetes." in stub.calls_for("analyze_resume")[0]

    missing = await client.post(f"/api/find-jobs/{jobs_id}/jobs/7/analyze")
    assert missing.status_code == 404


@pytest.mark.anyio
async def test_unknown_session(client):
    r = await client.get("/api/sessions/does-not-exist")
    assert r.status_code == 404


@pytest.mark.anyio
@pytest.mark.parametrize("url", ["http://127.0.0.1/", "http://169.254.169.254/latest/meta-data/"])
async def test_summarize_refuses_local_addresses(client, stub, url):
    r = await client.post("/api/summarize", data={"mode": "url", "url": url})
    assert r.status_code == 400
    assert "private or local" in r.json()["detail"]["field_errors"]["url"]
    assert stub.calls == []


@pytest.mark.anyio
async def test_idle_sessions_expire(client, monkeypatch):
    monkeypatch.setattr(config, "SESSION_TTL_SECONDS", 60)
    data = {"job_description": "Backend engineer, Go", "resume_text": "Python"}
    old = (await client.post("/api/resume-analyzer", data=data)).json()["session_id"]
    await wait_until_settled(client, old)
    sessions[old].touched_at -= 120

    fresh = (await client.post("/api/resume-analyzer", data=data)).json()["session_id"]

    assert old not in sessions
    assert fresh in sessions
    assert (await client.get(f"/api/sessions/{old}")).status_code == 404


def test_sweep_keeps_busy_and_recent_sessions(monkeypatch, flows):
    monkeypatch.setattr(config, "SESSION_TTL_SECONDS", 60)
    busy = Session("busy", ResumeAnalyzerController(ResumeRevisionPipeline(flows)))
    busy.controller.submission.send(Event.SUBMIT)
    recent = Session("recent", ResumeAnalyzerController(ResumeRevisionPipeline(flows)))
    stale = Session("stale", ResumeAnalyzerController(ResumeRevisionPipeline(flows)))
    busy.touched_at = stale.touched_at = recent.touched_at - 600
    try:
        sessions.update({s.session_id: s for s in (busy, recent, stale)})
        assert sweep_sessions(now=recent.touched_at + 1) == 1
        assert set(sessions) == {"busy", "recent"}
    finally:
        sessions.clear()
