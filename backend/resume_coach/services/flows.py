"""The seven single-call flows.

A ``Flow`` binds an input model, an output model and the name of its prompt
template. Flows are stateless; each call is exactly one model invocation.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, Optional, Type, TypeVar

from resume_coach.ai import ModelClient, ShapeViolationError
from resume_coach.log import get_logger
from resume_coach.services.schemas import (
    AnalysisRequest,
    AnalysisResult,
    DemoResumeRequest,
    DemoResumeResult,
    JobSearchRequest,
    JobSearchResult,
    ModificationRequest,
    ModificationResult,
    ResizeRequest,
    Schema,
    SummarizeTextRequest,
    Summary,
    WebpageRequest,
    WebpageSummary,
)

log = get_logger(__name__)

I = TypeVar("I", bound=Schema)
O = TypeVar("O", bound=Schema)


@dataclass(frozen=True)
class Flow(Generic[I, O]):
    name: str
    input_model: Type[I]
    output_model: Type[O]
    # used instead of raising when the model output violates the schema
    fallback: Optional[Callable[[], O]] = None


SUMMARIZE_TEXT = Flow("summarize_text", SummarizeTextRequest, Summary)
SUMMARIZE_WEBPAGE = Flow("summarize_webpage", WebpageRequest, WebpageSummary)
SUMMARIZE_WITH_LENGTH = Flow("summarize_with_length", ResizeRequest, Summary)
ANALYZE_RESUME = Flow("analyze_resume", AnalysisRequest, AnalysisResult)
GENERATE_DEMO_RESUME = Flow("generate_demo_resume", DemoResumeRequest, DemoResumeResult)
MODIFY_RESUME = Flow("modify_resume", ModificationRequest, ModificationResult)
FIND_JOBS_BY_RESUME = Flow(
    "find_jobs_by_resume",
    JobSearchRequest,
    JobSearchResult,
    fallback=lambda: JobSearchResult(jobs=[]),
)

ALL_FLOWS = (
    SUMMARIZE_TEXT,
    SUMMARIZE_WEBPAGE,
    SUMMARIZE_WITH_LENGTH,
    ANALYZE_RESUME,
    GENERATE_DEMO_RESUME,
    MODIFY_RESUME,
    FIND_JOBS_BY_RESUME,
)


class FlowSet:
    """All flows bound to one model client."""

    def __init__(self, client: Optional[ModelClient] = None):
        self.client = client or ModelClient()

    async def run(self, flow: Flow[I, O], payload: I) -> O:
        if not isinstance(payload, flow.input_model):
            raise TypeError(
                f"{flow.name} expects {flow.input_model.__name__}, got {type(payload).__name__}"
            )
        try:
            return await self.client.invoke(flow.name, payload, flow.output_model)
        except ShapeViolationError as e:
            if flow.fallback is None:
                raise
            log.warning("%s: returning fallback after shape violation (%s)", flow.name, e)
            return flow.fallback()

    async def summarize_text(self, payload: SummarizeTextRequest) -> Summary:
        return await self.run(SUMMARIZE_TEXT, payload)

    async def summarize_webpage(self, payload: WebpageRequest) -> WebpageSummary:
        return await self.run(SUMMARIZE_WEBPAGE, payload)

    async def summarize_with_length(self, payload: ResizeRequest) -> Summary:
        return await self.run(SUMMARIZE_WITH_LENGTH, payload)

    async def analyze_resume(self, payload: AnalysisRequest) -> AnalysisResult:
        return await self.run(ANALYZE_RESUME, payload)

    async def generate_demo_resume(self, payload: DemoResumeRequest) -> DemoResumeResult:
        return await self.run(GENERATE_DEMO_RESUME, payload)

    async def modify_resume(self, payload: ModificationRequest) -> ModificationResult:
        return await self.run(MODIFY_RESUME, payload)

    async def find_jobs_by_resume(self, payload: JobSearchRequest) -> JobSearchResult:
        return await self.run(FIND_JOBS_BY_RESUME, payload)
