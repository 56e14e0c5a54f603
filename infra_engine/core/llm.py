"""Anthropic client utilities for structured generation."""

import asyncio
import json
import re
from typing import Any, TypeVar

from anthropic import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncAnthropic,
    InternalServerError,
    RateLimitError,
)
from pydantic import BaseModel, ValidationError

from infra_engine.core.config import Settings, get_settings
from infra_engine.core.exceptions import GenerationSchemaViolation, UpstreamUnavailableError
from infra_engine.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T", bound=BaseModel)

TRANSIENT_ERRORS = (APIConnectionError, APITimeoutError, InternalServerError, RateLimitError)


def build_anthropic_client(settings: Settings | None = None) -> AsyncAnthropic | None:
    """
    Construct the Anthropic client once for a generator's lifetime.

    Args:
        settings: Settings override (defaults to cached settings)

    Returns:
        AsyncAnthropic instance, or None when no API key is configured
    """
    settings = settings or get_settings()
    if not settings.ANTHROPIC_API_KEY:
        return None
    return AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY)


def pydantic_tool(name: str, description: str, model: type[BaseModel]) -> dict[str, Any]:
    """Describe a Pydantic model as an Anthropic tool so output is forced into its schema."""
    return {
        "name": name,
        "description": description,
        "input_schema": model.model_json_schema(),
    }


def strip_llm_fences(raw_output: str) -> str:
    """Strip markdown code fences from LLM output.

    Handles: ```json ... ```, ``` ... ```, leading/trailing whitespace.
    """
    cleaned = raw_output.strip()

    fence_match = re.search(r"```(?:json)?\s*\n?(.*?)```", cleaned, re.DOTALL)
    if fence_match:
        return fence_match.group(1).strip()

    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def parse_llm_json_dict(raw_output: str) -> dict:
    """
    Parse LLM text output as a JSON object.

    Raises:
        GenerationSchemaViolation: If the text is not a JSON object
    """
    try:
        parsed = json.loads(strip_llm_fences(raw_output))
    except json.JSONDecodeError as e:
        raise GenerationSchemaViolation(f"Output is not valid JSON: {e}") from e

    if isinstance(parsed, str):
        # Double-encoded JSON string
        try:
            parsed = json.loads(parsed)
        except json.JSONDecodeError as e:
            raise GenerationSchemaViolation(f"Output is not valid JSON: {e}") from e

    if not isinstance(parsed, dict):
        raise GenerationSchemaViolation(f"Expected JSON object, got {type(parsed).__name__}")
    return parsed


def validate_output(data: Any, model: type[T]) -> T:
    """
    Validate generated data against a Pydantic model.

    Raises:
        GenerationSchemaViolation: With the pydantic error list attached
    """
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise GenerationSchemaViolation(
            f"{model.__name__} validation failed with {e.error_count()} error(s)",
            errors=e.errors(include_url=False),
        ) from e


async def call_tool_json(
    client: AsyncAnthropic,
    *,
    model: str,
    system: str,
    user_prompt: str,
    tool: dict[str, Any],
    max_tokens: int,
    temperature: float,
    max_retries: int,
    initial_delay: float,
) -> dict[str, Any]:
    """Call Claude with a forced tool and return the tool input.

    Retries transient API errors with exponential backoff.

    Raises:
        UpstreamUnavailableError: Backend unreachable or erroring after retries
        GenerationSchemaViolation: Response carried neither tool input nor JSON text
    """
    for attempt in range(max_retries + 1):
        try:
            response = await client.messages.create(
                model=model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system,
                messages=[{"role": "user", "content": user_prompt}],
                tools=[tool],
                tool_choice={"type": "tool", "name": tool["name"]},
            )
        except TRANSIENT_ERRORS as e:
            if attempt < max_retries:
                delay = initial_delay * (2**attempt)
                logger.warning(
                    f"LLM attempt {attempt + 1}/{max_retries + 1} failed "
                    f"({type(e).__name__}), retrying in {delay}s"
                )
                await asyncio.sleep(delay)
                continue
            raise UpstreamUnavailableError(str(e), backend="anthropic") from e
        except APIStatusError as e:
            raise UpstreamUnavailableError(
                str(e), backend="anthropic", status_code=e.status_code
            ) from e

        for block in response.content:
            if getattr(block, "type", None) == "tool_use":
                return block.input

        # No tool_use block; accept a JSON text answer
        logger.warning("No tool_use block in response, falling back to text")
        for block in response.content:
            text = getattr(block, "text", None)
            if isinstance(text, str):
                return parse_llm_json_dict(text)
        raise GenerationSchemaViolation("Response contained no tool input or text")

    raise UpstreamUnavailableError("Retries exhausted", backend="anthropic")
