"""
Multi-stage orchestration over flows.

Stages run strictly in sequence; a later stage is only dispatched once the
earlier stage's result is available and validated. A failed stage raises and
halts its pipeline; nothing is rolled back.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, TypeVar

from resume_coach.services.events import LoggingObserver, Notifier
from resume_coach.services.flows import FlowSet
from resume_coach.services.schemas import (
    AnalysisRequest,
    AnalysisResult,
    DemoResumeRequest,
    DemoResumeResult,
    DocumentRef,
    JobSearchRequest,
    JobSearchResult,
    ModificationRequest,
    ModificationResult,
    ResizeRequest,
    SummarizeTextRequest,
    SummaryLength,
    SummaryOutcome,
    WebpageRequest,
    WebpageSummary,
)
from resume_coach.services.webpage import PageFetcher

R = TypeVar("R")


class PipelineError(RuntimeError):
    """A stage was requested without the result it depends on."""


class Pipeline:
    name = "pipeline"

    def __init__(self, flows: FlowSet, notifier: Optional[Notifier] = None):
        self.flows = flows
        self.notifier = notifier or Notifier([LoggingObserver()])

    async def _stage(self, stage: str, call: Callable[..., Awaitable[R]], *args: Any) -> R:
        self.notifier.started(self.name, stage)
        try:
            result = await call(*args)
        except Exception as e:
            self.notifier.failed(self.name, stage, e)
            raise
        self.notifier.succeeded(self.name, stage)
        return result


class ResumeRevisionPipeline(Pipeline):
    """analyze -> (caller decides) -> modify, which re-analyzes the revision."""

    name = "resume_revision"

    async def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        return await self._stage("analyze", self.flows.analyze_resume, request)

    async def modify(
        self, request: AnalysisRequest, analysis: Optional[AnalysisResult]
    ) -> ModificationResult:
        if analysis is None:
            raise PipelineError("The resume must be analyzed before it can be modified")

        modification = ModificationRequest(
            job_description=request.job_description,
            original_resume_text=request.resume_text,
            original_resume_document=request.resume_document,
            prior_suggestions=analysis.suggestions,
        )
        return await self._stage("modify", self.flows.modify_resume, modification)


class WebpageSummarizationPipeline(Pipeline):
    """
    URL input: fetch + summarize the page, then resize that summary to the
    requested length. Text input: a single summarize call.
    """

    name = "webpage_summarization"

    def __init__(
        self,
        flows: FlowSet,
        fetcher: Optional[PageFetcher] = None,
        notifier: Optional[Notifier] = None,
    ):
        super().__init__(flows, notifier)
        self.fetcher = fetcher or PageFetcher()

    async def _fetch_and_summarize(self, url: str) -> WebpageSummary:
        page = await self.fetcher.fetch(url)
        return await self.flows.summarize_webpage(WebpageRequest(url=url, page_text=page.text))

    async def summarize_url(self, url: str, length: SummaryLength) -> SummaryOutcome:
        page_summary = await self._stage("fetch_and_summarize", self._fetch_and_summarize, url)
        resized = await self._stage(
            "resize",
            self.flows.summarize_with_length,
            ResizeRequest(content=page_summary.summary, length=length),
        )
        return SummaryOutcome(summary=resized.summary, length=length, source_url=page_summary.source_url)

    async def summarize_text(self, text: str, length: SummaryLength) -> SummaryOutcome:
        summary = await self._stage(
            "summarize", self.flows.summarize_text, SummarizeTextRequest(text=text, length=length)
        )
        return SummaryOutcome(summary=summary.summary, length=length)


class JobSearchPipeline(Pipeline):
    name = "job_search"

    async def find_jobs(self, document: DocumentRef) -> JobSearchResult:
        return await self._stage(
            "find_jobs", self.flows.find_jobs_by_resume, JobSearchRequest(resume_document=document)
        )


class DemoResumePipeline(Pipeline):
    name = "demo_resume"

    async def generate(self, request: DemoResumeRequest) -> DemoResumeResult:
        return await self._stage("generate", self.flows.generate_demo_resume, request)
