"""
Per-form request controllers.

A controller owns the stage machines of one form session, the result or
error stored for each stage, and field-level validation errors. ``submit``
and ``advance`` validate synchronously, move the machine into its in-flight
state and return the coroutine that completes the stage, so callers can
either await it directly or hand it to a background task.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Awaitable, Callable, Coroutine, Dict, Optional, TypeVar

from pydantic import BaseModel

from resume_coach.log import get_logger
from resume_coach.services.events import NoticeLog
from resume_coach.services.parse import (
    Upload,
    ValidationFailure,
    check_pdf,
    decode_data_uri,
    require_choice,
    require_text,
    validate_url,
)
from resume_coach.services.pipelines import (
    DemoResumePipeline,
    JobSearchPipeline,
    Pipeline,
    ResumeRevisionPipeline,
    WebpageSummarizationPipeline,
)
from resume_coach.services.schemas import (
    AnalysisRequest,
    AnalysisResult,
    DemoResumeRequest,
    DemoResumeResult,
    DocumentRef,
    ExperienceLevel,
    JobListing,
    JobSearchResult,
    ModificationResult,
    SummaryLength,
    SummaryOutcome,
)
from resume_coach.services.state_machine import (
    ADVANCE_TRANSITIONS,
    SUBMIT_TRANSITIONS,
    AdvanceState,
    Event,
    InvalidTransition,
    StageMachine,
    StageState,
)

log = get_logger(__name__)

R = TypeVar("R")

PDF_MIME = "application/pdf"


class InputMode(str, Enum):
    TEXT = "text"
    URL = "url"


def load_document(
    upload: Optional[Upload] = None,
    data_uri: Optional[str] = None,
    field: str = "resume",
) -> Optional[DocumentRef]:
    """Build a checked PDF reference from an upload or a data URI, if either was given."""
    if upload is not None:
        check_pdf(upload.content_type, upload.data, field)
        return DocumentRef(mime_type=PDF_MIME, data=upload.data, filename=upload.filename)
    if data_uri:
        mime, data = decode_data_uri(data_uri, field)
        check_pdf(mime, data, field)
        return DocumentRef(mime_type=mime, data=data)
    return None


def _describe(error: BaseException) -> str:
    return str(error) or error.__class__.__name__


def _dump(value: Optional[BaseModel]) -> Optional[Dict[str, Any]]:
    if value is None:
        return None
    return value.model_dump(by_alias=True, mode="json")


class StageSlot:
    def __init__(self) -> None:
        self.result: Optional[Any] = None
        self.error: Optional[str] = None

    def clear(self) -> None:
        self.result = None
        self.error = None


class FormController:
    form = "form"

    def __init__(self, pipeline: Pipeline):
        self.pipeline = pipeline
        self.notices = NoticeLog()
        pipeline.notifier.subscribe(self.notices)

        self.submission: StageMachine[StageState] = StageMachine(
            f"{self.form}.submit", StageState.IDLE, SUBMIT_TRANSITIONS
        )
        self.submission.on_transition(self._on_submission)
        self.stage = StageSlot()
        self.field_errors: Dict[str, str] = {}

    @property
    def state(self) -> StageState:
        return self.submission.state

    @property
    def busy(self) -> bool:
        return self.submission.state is StageState.SUBMITTING

    @property
    def view(self) -> str:
        return "results" if self.submission.state is StageState.SUCCEEDED else "input"

    def _on_submission(self, old: StageState, event: Event, new: StageState) -> None:
        pass

    def _clear_downstream(self) -> None:
        self.stage.clear()

    def _validated(self, build: Callable[[], R]) -> R:
        if self.busy:
            raise InvalidTransition(self.submission.name, self.submission.state, Event.SUBMIT)
        try:
            return build()
        except ValidationFailure as e:
            log.info("%s: input rejected: %s", self.form, e)
            self.field_errors = e.errors
            self._clear_downstream()
            self.submission.send(Event.VALIDATION_FAILED)
            raise

    def _start(self, call: Callable[..., Awaitable[R]], *args: Any) -> Coroutine[Any, Any, Optional[R]]:
        self._clear_downstream()
        self.field_errors = {}
        self.submission.send(Event.SUBMIT)
        return self._complete(call, *args)

    async def _complete(self, call: Callable[..., Awaitable[R]], *args: Any) -> Optional[R]:
        try:
            result = await call(*args)
        except Exception as e:
            self.stage.error = _describe(e)
            self.submission.send(Event.REJECT)
            return None
        self.stage.result = result
        self.submission.send(Event.RESOLVE)
        return result

    def copyable(self) -> Dict[str, Optional[str]]:
        return {}

    def copy_text(self, field: str) -> Optional[str]:
        return self.copyable().get(field)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "form": self.form,
            "view": self.view,
            "state": self.submission.state.value,
            "busy": self.busy,
            "result": _dump(self.stage.result),
            "error": self.stage.error,
            "field_errors": dict(self.field_errors),
            "notices": [n.to_dict() for n in self.notices.items()],
        }


class ResumeAnalyzerController(FormController):
    """Analyze (stage A), then on request modify + re-analyze (stage B)."""

    form = "resume_analyzer"
    pipeline: ResumeRevisionPipeline

    def __init__(self, pipeline: ResumeRevisionPipeline):
        self.advancement: StageMachine[AdvanceState] = StageMachine(
            f"{self.form}.advance", AdvanceState.LOCKED, ADVANCE_TRANSITIONS
        )
        self.revision = StageSlot()
        self.request: Optional[AnalysisRequest] = None
        super().__init__(pipeline)

    @property
    def busy(self) -> bool:
        return super().busy or self.advancement.state is AdvanceState.ADVANCING

    @property
    def view(self) -> str:
        if self.advancement.state is AdvanceState.ADVANCED:
            return "revision"
        return super().view

    @property
    def analysis(self) -> Optional[AnalysisResult]:
        return self.stage.result

    @property
    def modification(self) -> Optional[ModificationResult]:
        return self.revision.result

    def _on_submission(self, old: StageState, event: Event, new: StageState) -> None:
        if event in (Event.SUBMIT, Event.VALIDATION_FAILED):
            self.advancement.send(Event.RESET)
        elif new is StageState.SUCCEEDED:
            self.advancement.send(Event.UNLOCK)

    def _clear_downstream(self) -> None:
        super()._clear_downstream()
        self.revision.clear()

    def _build_request(
        self,
        job_description: Optional[str],
        resume_text: Optional[str],
        resume_upload: Optional[Upload],
        resume_data_uri: Optional[str],
        resume_document: Optional[DocumentRef],
    ) -> AnalysisRequest:
        errors: Dict[str, str] = {}
        if not (job_description or "").strip():
            errors["job_description"] = "Please enter the job description."

        document = resume_document
        if document is None:
            try:
                document = load_document(resume_upload, resume_data_uri)
            except ValidationFailure as e:
                errors.update(e.errors)

        has_text = bool((resume_text or "").strip())
        if document is not None and has_text:
            errors["resume"] = "Provide either resume text or a PDF file, not both."
        elif document is None and not has_text and "resume" not in errors:
            errors["resume"] = "Please enter your resume text."

        if errors:
            raise ValidationFailure(errors)
        return AnalysisRequest(
            job_description=job_description,
            resume_text=None if document is not None else resume_text,
            resume_document=document,
        )

    def submit(
        self,
        job_description: Optional[str] = None,
        resume_text: Optional[str] = None,
        resume_upload: Optional[Upload] = None,
        resume_data_uri: Optional[str] = None,
        resume_document: Optional[DocumentRef] = None,
    ) -> Coroutine[Any, Any, Optional[AnalysisResult]]:
        try:
            request = self._validated(
                lambda: self._build_request(
                    job_description, resume_text, resume_upload, resume_data_uri, resume_document
                )
            )
        except ValidationFailure:
            self.request = None
            raise
        self.request = request
        return self._start(self.pipeline.analyze, request)

    def advance(self) -> Coroutine[Any, Any, Optional[ModificationResult]]:
        if not self.advancement.can(Event.ADVANCE):
            raise InvalidTransition(self.advancement.name, self.advancement.state, Event.ADVANCE)
        self.revision.clear()
        self.advancement.send(Event.ADVANCE)
        return self._complete_advance(self.request, self.stage.result)

    async def _complete_advance(
        self, request: AnalysisRequest, analysis: Optional[AnalysisResult]
    ) -> Optional[ModificationResult]:
        try:
            result = await self.pipeline.modify(request, analysis)
        except Exception as e:
            # stage A's result stays as it was
            self.revision.error = _describe(e)
            self.advancement.send(Event.REJECT)
            return None
        self.revision.result = result
        self.advancement.send(Event.RESOLVE)
        return result

    def copyable(self) -> Dict[str, Optional[str]]:
        analysis = self.analysis
        modification = self.modification
        return {
            "suggestions": analysis.suggestions if analysis else None,
            "modified_resume": modification.modified_resume_text if modification else None,
            "revised_suggestions": modification.new_analysis.suggestions if modification else None,
        }

    def snapshot(self) -> Dict[str, Any]:
        data = super().snapshot()
        data.update(
            advance_state=self.advancement.state.value,
            revision=_dump(self.revision.result),
            revision_error=self.revision.error,
        )
        return data


class SummarizerController(FormController):
    form = "summarizer"
    pipeline: WebpageSummarizationPipeline

    def submit(
        self,
        mode: Optional[str] = "text",
        text: Optional[str] = None,
        url: Optional[str] = None,
        length: Optional[str] = None,
    ) -> Coroutine[Any, Any, Optional[SummaryOutcome]]:
        def build():
            input_mode = require_choice(mode or "text", InputMode, "mode")
            summary_length = require_choice(length or SummaryLength.MEDIUM.value, SummaryLength, "length")
            if input_mode is InputMode.URL:
                return input_mode, validate_url(url, "url"), summary_length
            return input_mode, require_text(text, "text", "Please enter some text to summarize."), summary_length

        input_mode, value, summary_length = self._validated(build)
        if input_mode is InputMode.URL:
            return self._start(self.pipeline.summarize_url, value, summary_length)
        return self._start(self.pipeline.summarize_text, value, summary_length)

    def copyable(self) -> Dict[str, Optional[str]]:
        outcome: Optional[SummaryOutcome] = self.stage.result
        return {"summary": outcome.summary if outcome else None}


class DemoResumeController(FormController):
    form = "demo_resume"
    pipeline: DemoResumePipeline

    def submit(
        self,
        job_description: Optional[str] = None,
        experience_level: Optional[str] = ExperienceLevel.FRESHER.value,
    ) -> Coroutine[Any, Any, Optional[DemoResumeResult]]:
        def build() -> DemoResumeRequest:
            jd = require_text(job_description, "job_description", "Please enter the job description.")
            level = require_choice(experience_level, ExperienceLevel, "experience_level")
            return DemoResumeRequest(job_description=jd, experience_level=level)

        request = self._validated(build)
        return self._start(self.pipeline.generate, request)

    def copyable(self) -> Dict[str, Optional[str]]:
        result: Optional[DemoResumeResult] = self.stage.result
        return {"demo_resume": result.demo_resume if result else None}


class JobSearchController(FormController):
    form = "find_jobs"
    pipeline: JobSearchPipeline

    def __init__(self, pipeline: JobSearchPipeline):
        super().__init__(pipeline)
        self.document: Optional[DocumentRef] = None

    def submit(
        self,
        resume_upload: Optional[Upload] = None,
        resume_data_uri: Optional[str] = None,
    ) -> Coroutine[Any, Any, Optional[JobSearchResult]]:
        def build() -> DocumentRef:
            document = load_document(resume_upload, resume_data_uri)
            if document is None:
                raise ValidationFailure({"resume": "Please upload your resume file (.pdf)."})
            return document

        try:
            document = self._validated(build)
        except ValidationFailure:
            self.document = None
            raise
        self.document = document
        return self._start(self.pipeline.find_jobs, document)

    def listing(self, index: int) -> JobListing:
        result: Optional[JobSearchResult] = self.stage.result
        if result is None or not 0 <= index < len(result.jobs):
            raise IndexError(f"No job listing at index {index}")
        return result.jobs[index]
