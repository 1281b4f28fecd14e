"""
Typed inputs and outputs of every flow, plus the contract used to check
model output at the flow boundary.

Wire names are camelCase (``matchScore``, ``jobDescriptionKeywords``);
Python attributes are snake_case. Both spellings are accepted on input.
"""
from __future__ import annotations

import base64
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from resume_coach.log import get_logger
from resume_coach.services.parse import extract_text_from_pdf

log = get_logger(__name__)

MAX_JOB_LISTINGS = 5


class SummaryLength(str, Enum):
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


class ExperienceLevel(str, Enum):
    FRESHER = "fresher"
    INTERMEDIATE = "intermediate"
    SENIOR = "senior"


class Schema(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def prompt_context(self) -> Dict[str, Any]:
        """Values interpolated into the prompt template for this payload."""
        context: Dict[str, Any] = {}
        for name in type(self).model_fields:
            value = getattr(self, name)
            if isinstance(value, DocumentRef):
                value = value.text()
            elif isinstance(value, Enum):
                value = value.value
            elif value is None:
                value = ""
            context[name] = value
        return context

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# --- Inputs ---


class DocumentRef(BaseModel):
    """An uploaded document: MIME type plus raw bytes."""

    mime_type: str
    data: bytes = Field(repr=False)
    filename: Optional[str] = None

    def to_data_uri(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"

    def text(self) -> str:
        return extract_text_from_pdf(self.data)


def _one_resume(text: Optional[str], document: Optional[DocumentRef]) -> None:
    if (text is None) == (document is None):
        raise ValueError("Provide exactly one of resume text or resume document")


class AnalysisRequest(Schema):
    job_description: str
    resume_text: Optional[str] = None
    resume_document: Optional[DocumentRef] = None

    @model_validator(mode="after")
    def _exactly_one_resume(self) -> "AnalysisRequest":
        _one_resume(self.resume_text, self.resume_document)
        return self

    @property
    def resume(self) -> str:
        if self.resume_document is not None:
            return self.resume_document.text()
        return self.resume_text or ""

    def prompt_context(self) -> Dict[str, Any]:
        return {"job_description": self.job_description, "resume": self.resume}


class ModificationRequest(Schema):
    job_description: str
    original_resume_text: Optional[str] = None
    original_resume_document: Optional[DocumentRef] = None
    prior_suggestions: str

    @model_validator(mode="after")
    def _exactly_one_resume(self) -> "ModificationRequest":
        _one_resume(self.original_resume_text, self.original_resume_document)
        return self

    def prompt_context(self) -> Dict[str, Any]:
        if self.original_resume_document is not None:
            original = self.original_resume_document.text()
        else:
            original = self.original_resume_text or ""
        return {
            "job_description": self.job_description,
            "original_resume": original,
            "prior_suggestions": self.prior_suggestions,
        }


class DemoResumeRequest(Schema):
    job_description: str
    experience_level: ExperienceLevel


class JobSearchRequest(Schema):
    resume_document: DocumentRef

    def prompt_context(self) -> Dict[str, Any]:
        return {"resume": self.resume_document.text()}


class SummarizeTextRequest(Schema):
    text: str
    length: SummaryLength = SummaryLength.MEDIUM


class WebpageRequest(Schema):
    url: str
    page_text: str


class ResizeRequest(Schema):
    content: str
    length: SummaryLength


# --- Outputs ---


class KeywordAnalysis(Schema):
    job_description_keywords: List[str]
    present_in_resume: List[str]
    missing_from_resume: List[str]


class AnalysisResult(Schema):
    match_score: str
    suggestions: str
    keywords: KeywordAnalysis


class ModificationResult(Schema):
    modified_resume_text: str
    new_analysis: AnalysisResult


class JobListing(Schema):
    company_name: str
    job_title: str
    job_description: str
    match_percentage: str
    apply_link: str

    @field_validator("apply_link")
    @classmethod
    def _link_or_placeholder(cls, v: str) -> str:
        v = v.strip()
        if v == "#":
            return v
        parsed = urlparse(v)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            # unusable links fall back to the placeholder
            log.info("Replacing unusable applyLink %r with '#'", v)
            return "#"
        return v


class JobSearchResult(Schema):
    jobs: List[JobListing] = Field(default_factory=list)

    @field_validator("jobs")
    @classmethod
    def _at_most_five(cls, v: List[JobListing]) -> List[JobListing]:
        if len(v) > MAX_JOB_LISTINGS:
            log.info("Truncating %d job listings to %d", len(v), MAX_JOB_LISTINGS)
            return v[:MAX_JOB_LISTINGS]
        return v


class DemoResumeResult(Schema):
    demo_resume: str


class Summary(Schema):
    summary: str


class WebpageSummary(Schema):
    summary: str
    source_url: str

    @field_validator("source_url")
    @classmethod
    def _absolute(cls, v: str) -> str:
        parsed = urlparse(v.strip())
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError("sourceUrl must be an absolute http(s) URL")
        return v.strip()


class SummaryOutcome(Schema):
    summary: str
    length: SummaryLength
    source_url: Optional[str] = None


# --- Contract ---

T = TypeVar("T", bound=BaseModel)


@dataclass(frozen=True)
class Parsed(Generic[T]):
    value: Optional[T] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _loads(text: str) -> Any:
    text = text.strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    # models sometimes wrap the object in prose or ```json fences
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        return json.loads(text[start : end + 1])
    raise json.JSONDecodeError("No JSON object found", text, 0)


class Contract(Generic[T]):
    """Serialization contract for one output model."""

    def __init__(self, model: Type[T]):
        self.model = model

    def json_schema(self) -> Dict[str, Any]:
        return self.model.model_json_schema(by_alias=True)

    def parse(self, raw: Union[str, bytes, Dict[str, Any], None]) -> Parsed[T]:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        if isinstance(raw, str):
            try:
                raw = _loads(raw)
            except json.JSONDecodeError as e:
                return Parsed(error=f"Model output is not valid JSON: {e.msg}")
        if not isinstance(raw, dict):
            return Parsed(error=f"Expected a JSON object, got {type(raw).__name__}")
        try:
            return Parsed(value=self.model.model_validate(raw))
        except ValidationError as e:
            return Parsed(error=f"{self.model.__name__} does not match its schema: {e}")
