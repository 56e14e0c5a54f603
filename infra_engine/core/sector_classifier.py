"""Rule-based company classification.

Deterministic keyword rules used whenever generative profile extraction is
unavailable. All matching is substring matching on the lowercased text.
"""

from dataclasses import dataclass

DEFAULT_SECTOR = "Technology"

# First matching family wins
SECTOR_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("bank", "payment"), "Banking"),
    (("health", "hospital"), "Healthcare"),
    (("social", "media"), "Social Media"),
    (("retail", "shop"), "Retail"),
    (("defense", "military"), "Defense"),
    (("logistics", "shipping"), "Logistics"),
)

BASE_CORE_FUNCTION = "Customer Management"

CORE_FUNCTION_RULES: tuple[tuple[str, str], ...] = (
    ("payment", "Payment Processing"),
    ("onboarding", "Customer Onboarding"),
    ("api", "API Services"),
    ("data", "Data Management"),
    ("security", "Security Services"),
)

# Every matching group contributes
REGULATORY_RULES: tuple[tuple[tuple[str, ...], tuple[str, ...]], ...] = (
    (("bank", "payment", "financial"), ("PCI-DSS", "SOX", "Basel III")),
    (("health", "medical", "patient"), ("HIPAA", "FDA", "GDPR")),
    (("data", "customer", "personal"), ("GDPR", "CCPA")),
    (("defense", "government", "classified"), ("FISMA", "NIST", "FedRAMP")),
)

DEFAULT_REGULATORY_REQUIREMENTS: tuple[str, ...] = ("GDPR", "ISO 27001")


@dataclass(frozen=True)
class SectorClassification:
    sector: str
    core_functions: list[str]
    regulatory_requirements: list[str]


def _contains_any(text: str, keywords: tuple[str, ...]) -> bool:
    return any(keyword in text for keyword in keywords)


def infer_sector(description: str) -> str:
    text = description.lower()
    for keywords, sector in SECTOR_RULES:
        if _contains_any(text, keywords):
            return sector
    return DEFAULT_SECTOR


def infer_core_functions(description: str) -> list[str]:
    text = description.lower()
    functions = [BASE_CORE_FUNCTION]
    for keyword, function in CORE_FUNCTION_RULES:
        if keyword in text:
            functions.append(function)
    return functions


def infer_regulatory_requirements(description: str) -> list[str]:
    """Union of every triggered rule group, first occurrence order kept."""
    text = description.lower()
    requirements: list[str] = []
    for keywords, frameworks in REGULATORY_RULES:
        if not _contains_any(text, keywords):
            continue
        for framework in frameworks:
            if framework not in requirements:
                requirements.append(framework)

    if not requirements:
        requirements = list(DEFAULT_REGULATORY_REQUIREMENTS)
    return requirements


def classify_description(description: str) -> SectorClassification:
    """Classify a free-text company description with the keyword rules."""
    return SectorClassification(
        sector=infer_sector(description),
        core_functions=infer_core_functions(description),
        regulatory_requirements=infer_regulatory_requirements(description),
    )
