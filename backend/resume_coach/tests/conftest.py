import asyncio
import base64
import json
import re

import fitz
import pytest
from httpx import ASGITransport, AsyncClient

from resume_coach.ai import Backend, ModelClient
from resume_coach.main import app, get_fetcher, get_flows, sessions
from resume_coach.services.flows import FlowSet
from resume_coach.services.webpage import PageFetcher


ANALYSIS = {
    "matchScore": "72% Match",
    "suggestions": "- Mention Kubernetes\n- Quantify impact",
    "keywords": {
        "jobDescriptionKeywords": ["Go", "Kubernetes"],
        "presentInResume": ["Go"],
        "missingFromResume": ["Kubernetes"],
    },
}

MODIFICATION = {
    "modifiedResumeText": "Jane Doe\n5 years Python, Go and Kubernetes",
    "newAnalysis": {
        "matchScore": "91% Match",
        "suggestions": "- Add a certification",
        "keywords": {
            "jobDescriptionKeywords": ["Go", "Kubernetes"],
            "presentInResume": ["Go", "Kubernetes"],
            "missingFromResume": [],
        },
    },
}

JOBS = {
    "jobs": [
        {
            "companyName": "Innovatech",
            "jobTitle": "Backend Engineer",
            "jobDescription": "Build Go services on Kubernetes.",
            "matchPercentage": "88% Match",
            "applyLink": "https://innovatech.example/careers/backend-123",
        },
        {
            "companyName": "QuantumLeap AI",
            "jobTitle": "Platform Engineer",
            "jobDescription": "Own the deployment platform.",
            "matchPercentage": "Strong Fit",
            "applyLink": "#",
        },
    ]
}

WORDS_PER_LENGTH = {"short": 8, "medium": 25, "long": 60}


def section(prompt, header):
    """Text of a ``Header:`` block in a rendered prompt, up to the next blank line."""
    m = re.search(rf"{re.escape(header)}:\n(.*?)(?:\n\n|$)", prompt, re.S)
    return m.group(1).strip() if m else ""


def echo_mismatches(prompt):
    """Keywords are the comma-separated terms of the job description after its title."""
    jd = section(prompt, "Job Description")
    resume = section(prompt, "Resume").lower()
    keywords = [k.strip() for k in jd.split(",")[1:] if k.strip()]
    present = [k for k in keywords if k.lower() in resume]
    missing = [k for k in keywords if k.lower() not in resume]
    return {
        "matchScore": f"{round(100 * len(present) / max(len(keywords), 1))}% Match",
        "suggestions": "\n".join(f"- Add {k}" for k in missing) or "- Looks good",
        "keywords": {
            "jobDescriptionKeywords": keywords,
            "presentInResume": present,
            "missingFromResume": missing,
        },
    }


def scaled_summary(prompt):
    length = re.search(r"Length: (\w+)", prompt).group(1)
    return {"summary": " ".join(["word"] * WORDS_PER_LENGTH[length])}


def echo_source(prompt):
    url = re.search(r"URL: (\S+)", prompt).group(1)
    return {"summary": "A page about testing. " * 10, "sourceUrl": url}


def default_responses():
    return {
        "summarize_text": scaled_summary,
        "summarize_webpage": echo_source,
        "summarize_with_length": scaled_summary,
        "analyze_resume": ANALYSIS,
        "generate_demo_resume": {"demoResume": "John Doe\njohn.doe@email.com\n\nSUMMARY\nEntry-level engineer"},
        "modify_resume": MODIFICATION,
        "find_jobs_by_resume": JOBS,
    }


class StubBackend(Backend):
    """Scripted model: replies per flow name and records every prompt."""

    name = "stub"

    def __init__(self, responses=None):
        self.responses = default_responses()
        self.responses.update(responses or {})
        self.calls = []
        self.gate = None

    def calls_for(self, flow_name):
        return [prompt for name, prompt in self.calls if name == flow_name]

    async def complete(self, flow_name, prompt, schema):
        self.calls.append((flow_name, prompt))
        if self.gate is not None:
            await self.gate.wait()
        reply = self.responses[flow_name]
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            reply = reply(prompt)
        return reply if isinstance(reply, str) else json.dumps(reply)


def make_pdf(text="Jane Doe\n5 years Python, some Go"):
    doc = fitz.open()
    page = doc.new_page()
    page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


def data_uri(data, mime="application/pdf"):
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def html_page(body):
    return f"<html><head><title>t</title><script>var x = 1;</script></head><body><nav>Home</nav><main>{body}</main></body></html>"


async def public_resolver(host, port):
    return ["93.184.216.34"]


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def stub():
    return StubBackend()


@pytest.fixture
def flows(stub):
    return FlowSet(ModelClient(stub))


@pytest.fixture
def pdf_bytes():
    return make_pdf()


@pytest.fixture
def page_fetcher():
    import httpx

    def handler(request):
        return httpx.Response(
            200,
            headers={"content-type": "text/html; charset=utf-8"},
            text=html_page("<h1>Testing article</h1><p>Stub models make pipelines testable.</p>"),
        )

    return PageFetcher(
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)), resolver=public_resolver
    )


@pytest.fixture
async def client(flows, page_fetcher):
    app.dependency_overrides[get_flows] = lambda: flows
    app.dependency_overrides[get_fetcher] = lambda: page_fetcher
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
    sessions.clear()


async def wait_until_settled(client, session_id, tries=50):
    """Poll the session snapshot until no stage is in flight."""
    for _ in range(tries):
        r = await client.get(f"/api/sessions/{session_id}")
        assert r.status_code == 200, r.text
        body = r.json()
        if not body["busy"]:
            return body
        await asyncio.sleep(0.02)
    pytest.fail(f"Session {session_id} never settled: {body}")
