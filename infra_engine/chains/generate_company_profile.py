"""Company profile generation.

Structured extraction through a forced Claude tool call, validated against
CompanyProfileOut. Any failure on that path (no client, transport error,
malformed or out-of-schema output) is converted into a GenerationFailure and
the keyword rules in sector_classifier take over, so callers always receive a
valid CompanyProfile.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Literal

from anthropic import AsyncAnthropic

from infra_engine.core.config import Settings, get_settings
from infra_engine.core.exceptions import (
    GenerationSchemaViolation,
    InvalidInputError,
    UpstreamUnavailableError,
)
from infra_engine.core.identifiers import IdentifierService
from infra_engine.core.llm import (
    build_anthropic_client,
    call_tool_json,
    pydantic_tool,
    validate_output,
)
from infra_engine.core.logging import current_request_id, get_logger, log_with_context
from infra_engine.core.schemas_profile import CompanyProfile, CompanyProfileOut, utc_now
from infra_engine.core.sector_classifier import classify_description

logger = get_logger(__name__)

PROFILE_SYSTEM = """You are a business analyst specializing in company infrastructure.
Generate structured company profiles with appropriate regulatory requirements
based on the business sector.

## Rules
- Infer a professional company name if none is stated.
- Sector is a short label such as Banking, Healthcare, Social Media, Retail, Defense, Logistics or Technology.
- List 3 to 6 core functions the company provides.
- List the regulatory frameworks that apply (e.g. GDPR, PCI-DSS, HIPAA).

Submit the profile with the submit_company_profile tool."""

PROFILE_USER = """## Company Description
{description}

## Task
Extract the company profile from this description."""

PROFILE_TOOL = pydantic_tool(
    name="submit_company_profile",
    description="Submit the structured company profile.",
    model=CompanyProfileOut,
)


@dataclass(frozen=True)
class GeneratedProfile:
    """Generative extraction succeeded and passed schema validation."""

    payload: CompanyProfileOut
    duration_ms: int = 0


@dataclass(frozen=True)
class GenerationFailure:
    """Generative extraction failed; the fallback rules must be used."""

    kind: Literal["not_configured", "upstream_unavailable", "schema_violation"]
    reason: str
    errors: list[dict] = field(default_factory=list)


GenerationResult = GeneratedProfile | GenerationFailure


class ProfileGenerator:
    """Builds CompanyProfile records from free-text descriptions.

    The Anthropic client is created once and injected; pass ``client=None``
    (or run without ANTHROPIC_API_KEY) to use the rule-based path only.
    """

    def __init__(
        self,
        client: AsyncAnthropic | None,
        identifiers: IdentifierService | None = None,
        settings: Settings | None = None,
    ):
        self.client = client
        self.identifiers = identifiers or IdentifierService()
        self.settings = settings or get_settings()

    async def generate_company_profile(
        self, description: str, name: str | None = None
    ) -> CompanyProfile:
        """
        Generate a company profile, falling back to keyword rules on any failure.

        Args:
            description: Free-text description of the organization
            name: Optional name override

        Returns:
            CompanyProfile (generated or fallback)

        Raises:
            InvalidInputError: If description is empty or missing
        """
        if not description or not description.strip():
            raise InvalidInputError("Company description is required")

        request_id = current_request_id()
        log_with_context(
            logger,
            logging.INFO,
            "Company profile request",
            request_id=request_id,
            description=description[:100],
            model=self.settings.PROFILE_MODEL,
        )

        result = await self.extract(description)

        if isinstance(result, GeneratedProfile):
            profile = self._profile_from_generated(result.payload, description, name)
            log_with_context(
                logger,
                logging.INFO,
                "Company profile generated",
                request_id=request_id,
                duration_ms=result.duration_ms,
                sector=profile.sector,
                core_functions=len(profile.core_functions),
                regulatory=len(profile.regulatory_requirements),
            )
            return profile

        if isinstance(result, GenerationFailure):
            profile = self._fallback_profile(description, name)
            log_with_context(
                logger,
                logging.WARNING,
                "Company profile fallback used",
                request_id=request_id,
                failure=result.kind,
                reason=result.reason[:200],
                sector=profile.sector,
            )
            return profile

        raise TypeError(f"Unhandled generation result: {type(result).__name__}")

    async def extract(self, description: str) -> GenerationResult:
        """Run structured extraction and tag the outcome."""
        if self.client is None:
            return GenerationFailure(kind="not_configured", reason="No generation client configured")

        start = time.time()
        try:
            data = await call_tool_json(
                self.client,
                model=self.settings.PROFILE_MODEL,
                system=PROFILE_SYSTEM,
                user_prompt=PROFILE_USER.format(description=description),
                tool=PROFILE_TOOL,
                max_tokens=self.settings.PROFILE_MAX_TOKENS,
                temperature=self.settings.PROFILE_TEMPERATURE,
                max_retries=self.settings.LLM_MAX_RETRIES,
                initial_delay=self.settings.LLM_RETRY_INITIAL_DELAY,
            )
            payload = validate_output(data, CompanyProfileOut)
        except GenerationSchemaViolation as e:
            return GenerationFailure(kind="schema_violation", reason=str(e), errors=e.errors)
        except UpstreamUnavailableError as e:
            return GenerationFailure(kind="upstream_unavailable", reason=str(e))
        except Exception as e:
            logger.error(f"Unexpected profile extraction error: {e}", exc_info=True)
            return GenerationFailure(kind="upstream_unavailable", reason=str(e))

        return GeneratedProfile(payload=payload, duration_ms=int((time.time() - start) * 1000))

    def _profile_from_generated(
        self, payload: CompanyProfileOut, description: str, name: str | None
    ) -> CompanyProfile:
        now = utc_now()
        return CompanyProfile(
            id=self.identifiers.issue(),
            name=name or payload.name,
            description=description,
            sector=payload.sector,
            core_functions=list(payload.core_functions),
            regulatory_requirements=list(dict.fromkeys(payload.regulatory_requirements)),
            infrastructure=[],
            created_at=now,
            updated_at=now,
            source="generated",
        )

    def _fallback_profile(self, description: str, name: str | None) -> CompanyProfile:
        profile_id = self.identifiers.issue()
        classification = classify_description(description)
        now = utc_now()
        return CompanyProfile(
            id=profile_id,
            name=name or f"Company-{profile_id[:8]}",
            description=description,
            sector=classification.sector,
            core_functions=classification.core_functions,
            regulatory_requirements=classification.regulatory_requirements,
            infrastructure=[],
            created_at=now,
            updated_at=now,
            source="fallback",
        )


async def generate_company_profile(
    description: str,
    name: str | None = None,
    generator: ProfileGenerator | None = None,
) -> CompanyProfile:
    """Convenience entry point building a generator from settings when none is given."""
    if generator is None:
        settings = get_settings()
        generator = ProfileGenerator(client=build_anthropic_client(settings), settings=settings)
    return await generator.generate_company_profile(description, name)
