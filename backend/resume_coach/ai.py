"""
Model invocation client.

``ModelClient.invoke`` renders a flow's prompt template with a typed payload,
sends it to the hosted model in a single attempt and returns the output
validated against the flow's output model. Nothing here retries or caches.
"""
from __future__ import annotations

import json
from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Any, Dict, Mapping, Optional, Type, TypeVar

import openai
from openai import AsyncOpenAI
from pydantic import BaseModel

from resume_coach import config
from resume_coach.log import get_logger
from resume_coach.services.prompts import JSON_INSTRUCTIONS, PROMPTS
from resume_coach.services.schemas import Contract, Schema

log = get_logger(__name__)

T = TypeVar("T", bound=BaseModel)


class InvocationError(RuntimeError):
    """The model call failed: transport error, timeout, refusal or empty reply."""


class ShapeViolationError(InvocationError):
    """The model replied, but not with output matching the declared schema."""


class Backend(ABC):
    name: str = "backend"

    @abstractmethod
    async def complete(self, flow_name: str, prompt: str, schema: Dict[str, Any]) -> str:
        """Send one prompt and return the raw text of the model's reply."""


@lru_cache(maxsize=1)
def _openai_client() -> AsyncOpenAI:
    if not config.LLM_API_KEY:
        raise InvocationError("LLM_API_KEY is not configured")
    return AsyncOpenAI(
        api_key=config.LLM_API_KEY,
        base_url=config.LLM_BASE_URL,
        timeout=config.LLM_TIMEOUT_SECONDS,
        max_retries=0,
    )


class OpenAIBackend(Backend):
    """Chat completions in JSON mode against any OpenAI-compatible endpoint."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: str = config.LLM_MODEL,
        temperature: float = config.LLM_TEMPERATURE,
        max_tokens: int = config.LLM_MAX_TOKENS,
    ):
        self._client = client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.name = f"openai/{model}"

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = _openai_client()
        return self._client

    async def complete(self, flow_name: str, prompt: str, schema: Dict[str, Any]) -> str:
        system = JSON_INSTRUCTIONS.format(schema=json.dumps(schema))
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt},
                ],
                response_format={"type": "json_object"},
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except openai.APIError as e:
            log.error("%s: model call failed: %s", flow_name, e)
            raise InvocationError(str(e)) from e

        if not response.choices:
            raise InvocationError("The model returned no choices")
        message = response.choices[0].message
        refusal = getattr(message, "refusal", None)
        if refusal:
            raise InvocationError(refusal)
        if not message.content:
            raise InvocationError("The model returned an empty response")
        return message.content


class ModelClient:
    def __init__(
        self,
        backend: Optional[Backend] = None,
        templates: Optional[Mapping[str, str]] = None,
    ):
        self.backend = backend or OpenAIBackend()
        self.templates = dict(PROMPTS if templates is None else templates)

    def render(self, flow_name: str, payload: Schema) -> str:
        try:
            template = self.templates[flow_name]
        except KeyError:
            raise KeyError(f"No prompt template registered for flow '{flow_name}'") from None
        return template.format(**payload.prompt_context())

    async def invoke(self, flow_name: str, payload: Schema, output: Type[T]) -> T:
        prompt = self.render(flow_name, payload)
        contract = Contract(output)

        log.info("Invoking %s via %s", flow_name, self.backend.name)
        raw = await self.backend.complete(flow_name, prompt, contract.json_schema())

        parsed = contract.parse(raw)
        if not parsed.ok:
            log.warning("%s: shape violation: %s", flow_name, parsed.error)
            raise ShapeViolationError(parsed.error)
        return parsed.value
