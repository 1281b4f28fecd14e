import time
import uuid
import asyncio
from functools import lru_cache
from typing import Callable, Coroutine, Optional

from fastapi import Depends, FastAPI, UploadFile, File, Form, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware

from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from resume_coach import config
from resume_coach.core import SessionResponse
from resume_coach.log import get_logger
from resume_coach.models import Session
from resume_coach.services.controllers import (
    DemoResumeController,
    FormController,
    JobSearchController,
    ResumeAnalyzerController,
    SummarizerController,
)
from resume_coach.services.flows import FlowSet
from resume_coach.services.parse import Upload, ValidationFailure
from resume_coach.services.pipelines import (
    DemoResumePipeline,
    JobSearchPipeline,
    ResumeRevisionPipeline,
    WebpageSummarizationPipeline,
)
from resume_coach.services.state_machine import InvalidTransition
from resume_coach.services.webpage import PageFetcher

log = get_logger(__name__)

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[config.RATE_LIMIT] if config.IS_PROD else [],
)

rate_limit = limiter.limit(config.RATE_LIMIT) if config.IS_PROD else (lambda fn: fn)

app = FastAPI(title="Resume Coach", version="0.1.0")
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

sessions: dict[str, Session] = {}


@lru_cache(maxsize=1)
def get_flows() -> FlowSet:
    return FlowSet()


def get_fetcher() -> PageFetcher:
    return PageFetcher()


@app.exception_handler(RateLimitExceeded)
def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={"status": False, "message": f"Rate limit exceeded: {config.RATE_LIMIT} per IP."},
    )


def _log_task_failure(task: asyncio.Task) -> None:
    if not task.cancelled() and task.exception() is not None:
        log.error("Background stage crashed: %r", task.exception())


def sweep_sessions(now: Optional[float] = None) -> int:
    """Drop idle sessions older than SESSION_TTL_SECONDS; returns how many went."""
    ttl = config.SESSION_TTL_SECONDS
    if ttl <= 0:
        return 0
    now = time.time() if now is None else now
    stale = [sid for sid, s in sessions.items() if s.expired(now, ttl)]
    for sid in stale:
        del sessions[sid]
    if stale:
        log.info("Dropped %d expired session(s)", len(stale))
    return len(stale)


def _get_session(session_id: str, form: Optional[str] = None) -> Session:
    session = sessions.get(session_id)
    if not session or (form and session.form != form):
        raise HTTPException(status_code=404, detail="Session not found")
    session.touch()
    return session


def _open_session(session_id: Optional[str], form: str, build: Callable[[], FormController]) -> Session:
    if session_id:
        return _get_session(session_id, form)
    sweep_sessions()
    session = Session(session_id=str(uuid.uuid4()), controller=build())
    sessions[session.session_id] = session
    return session


def _start(session: Session, begin: Callable[[], Coroutine]) -> SessionResponse:
    try:
        pending = begin()
    except ValidationFailure:
        raise HTTPException(status_code=400, detail=session.snapshot())
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))

    session.task = asyncio.create_task(pending)
    session.task.add_done_callback(_log_task_failure)
    return SessionResponse(**session.snapshot())


async def _read_upload(file: Optional[UploadFile]) -> Optional[Upload]:
    if file is None or not file.filename:
        return None
    contents = await file.read()
    await file.close()
    return Upload(filename=file.filename, content_type=file.content_type, data=contents)


def _text_download(text: str, filename: str) -> Response:
    return Response(
        content=text,
        media_type="text/plain; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/", tags=["default"])
def root():
    return {"status": "ok", "service": "Resume Coach", "docs": "/docs"}


@app.get("/health", tags=["default"])
def health():
    return {"ok": True, "env": config.ENV, "rate_limit_enabled": config.IS_PROD, "model": config.LLM_MODEL}


# --- Resume analyzer ---


@app.post("/api/resume-analyzer", response_model=SessionResponse, tags=["resume-analyzer"])
@rate_limit
async def submit_resume_analysis(
    request: Request,
    job_description: Optional[str] = Form(None),
    resume_text: Optional[str] = Form(None),
    resume_data_uri: Optional[str] = Form(None),
    resume: Optional[UploadFile] = File(None),
    session_id: Optional[str] = Form(None),
    flows: FlowSet = Depends(get_flows),
):
    session = _open_session(
        session_id,
        ResumeAnalyzerController.form,
        lambda: ResumeAnalyzerController(ResumeRevisionPipeline(flows)),
    )
    upload = await _read_upload(resume)
    controller: ResumeAnalyzerController = session.controller
    return _start(
        session,
        lambda: controller.submit(
            job_description=job_description,
            resume_text=resume_text,
            resume_upload=upload,
            resume_data_uri=resume_data_uri,
        ),
    )


@app.post("/api/resume-analyzer/{session_id}/modify", response_model=SessionResponse, tags=["resume-analyzer"])
@rate_limit
async def modify_resume(request: Request, session_id: str):
    session = _get_session(session_id, ResumeAnalyzerController.form)
    controller: ResumeAnalyzerController = session.controller
    return _start(session, controller.advance)


@app.get("/api/resume-analyzer/{session_id}/modified-resume", tags=["resume-analyzer"])
def download_modified_resume(session_id: str):
    session = _get_session(session_id, ResumeAnalyzerController.form)
    controller: ResumeAnalyzerController = session.controller
    if controller.modification is None:
        raise HTTPException(status_code=404, detail="Modified resume not found")
    return _text_download(controller.modification.modified_resume_text, "modified_resume.txt")


# --- Summarizer ---


@app.post("/api/summarize", response_model=SessionResponse, tags=["summarizer"])
@rate_limit
async def summarize(
    request: Request,
    mode: Optional[str] = Form("text"),
    text: Optional[str] = Form(None),
    url: Optional[str] = Form(None),
    length: Optional[str] = Form("medium"),
    session_id: Optional[str] = Form(None),
    flows: FlowSet = Depends(get_flows),
    fetcher: PageFetcher = Depends(get_fetcher),
):
    session = _open_session(
        session_id,
        SummarizerController.form,
        lambda: SummarizerController(WebpageSummarizationPipeline(flows, fetcher)),
    )
    controller: SummarizerController = session.controller
    return _start(session, lambda: controller.submit(mode=mode, text=text, url=url, length=length))


# --- Demo resume ---


@app.post("/api/demo-resume", response_model=SessionResponse, tags=["demo-resume"])
@rate_limit
async def generate_demo_resume(
    request: Request,
    job_description: Optional[str] = Form(None),
    experience_level: Optional[str] = Form("fresher"),
    session_id: Optional[str] = Form(None),
    flows: FlowSet = Depends(get_flows),
):
    session = _open_session(
        session_id,
        DemoResumeController.form,
        lambda: DemoResumeController(DemoResumePipeline(flows)),
    )
    controller: DemoResumeController = session.controller
    return _start(
        session,
        lambda: controller.submit(job_description=job_description, experience_level=experience_level),
    )


@app.get("/api/demo-resume/{session_id}/download", tags=["demo-resume"])
def download_demo_resume(session_id: str):
    session = _get_session(session_id, DemoResumeController.form)
    text = session.controller.copy_text("demo_resume")
    if not text:
        raise HTTPException(status_code=404, detail="Demo resume not found")
    return _text_download(text, "demo_resume.txt")


# --- Find jobs ---


@app.post("/api/find-jobs", response_model=SessionResponse, tags=["find-jobs"])
@rate_limit
async def find_jobs(
    request: Request,
    resume: Optional[UploadFile] = File(None),
    resume_data_uri: Optional[str] = Form(None),
    session_id: Optional[str] = Form(None),
    flows: FlowSet = Depends(get_flows),
):
    session = _open_session(
        session_id,
        JobSearchController.form,
        lambda: JobSearchController(JobSearchPipeline(flows)),
    )
    upload = await _read_upload(resume)
    controller: JobSearchController = session.controller
    return _start(session, lambda: controller.submit(resume_upload=upload, resume_data_uri=resume_data_uri))


@app.post("/api/find-jobs/{session_id}/jobs/{index}/analyze", response_model=SessionResponse, tags=["find-jobs"])
@rate_limit
async def analyze_for_listing(
    request: Request,
    session_id: str,
    index: int,
    flows: FlowSet = Depends(get_flows),
):
    jobs_session = _get_session(session_id, JobSearchController.form)
    jobs: JobSearchController = jobs_session.controller
    try:
        listing = jobs.listing(index)
    except IndexError:
        raise HTTPException(status_code=404, detail="Job listing not found")
    if jobs.document is None:
        raise HTTPException(status_code=400, detail="Resume data is missing. Please upload your resume again.")

    session = _open_session(
        None,
        ResumeAnalyzerController.form,
        lambda: ResumeAnalyzerController(ResumeRevisionPipeline(flows)),
    )
    controller: ResumeAnalyzerController = session.controller
    return _start(
        session,
        lambda: controller.submit(job_description=listing.job_description, resume_document=jobs.document),
    )


# --- Sessions ---


@app.get("/api/sessions/{session_id}", response_model=SessionResponse, tags=["default"])
def session_status(session_id: str):
    return SessionResponse(**_get_session(session_id).snapshot())


@app.get("/api/sessions/{session_id}/copy/{field}", tags=["default"])
def copy_field(session_id: str, field: str):
    text = _get_session(session_id).controller.copy_text(field)
    if not text:
        raise HTTPException(status_code=404, detail=f"Nothing to copy for '{field}'")
    return Response(content=text, media_type="text/plain; charset=utf-8")
