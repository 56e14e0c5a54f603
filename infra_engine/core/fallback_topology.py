"""Deterministic default topologies.

Used whenever the generative or topology-service path fails. Unlike the
primary path, addresses and positions here are fixed constants.
"""

from typing import Any

from infra_engine.core.config import get_settings
from infra_engine.core.entity_materializer import alnum_slug, name_slug
from infra_engine.core.identifiers import IdentifierService
from infra_engine.core.schemas_infrastructure import (
    EntityType,
    FidelityLevel,
    InfrastructureEntity,
    ParsedTopology,
    Port,
    Position,
    RawConnection,
    RawParsedEntity,
)


class FallbackTopologyProvider:
    """Default internal components for an organization: web portal, database, API."""

    def __init__(self, identifiers: IdentifierService, domain: str | None = None):
        self.identifiers = identifiers
        self.domain = domain or get_settings().LOCAL_DOMAIN

    def internal_entities(self, parent: InfrastructureEntity) -> list[InfrastructureEntity]:
        """Return exactly three children for ``parent``; only ids differ between calls."""
        slug = name_slug(parent.name)
        return [
            InfrastructureEntity(
                id=self.identifiers.issue(),
                type=EntityType.WEB_APP,
                name=f"{parent.name} Web Portal",
                hostname=f"web.{slug}.{self.domain}",
                ip="10.0.1.10",
                fidelity=FidelityLevel.VIRTUAL,
                ports=[
                    Port(number=80, protocol="tcp", service="http", status="open"),
                    Port(number=443, protocol="tcp", service="https", status="open"),
                ],
                metadata={"description": "Main web application"},
                position=Position(x=200, y=150),
            ),
            InfrastructureEntity(
                id=self.identifiers.issue(),
                type=EntityType.DATABASE,
                name=f"{parent.name} Database",
                hostname=f"db.{slug}.{self.domain}",
                ip="10.0.1.20",
                fidelity=FidelityLevel.VIRTUAL,
                ports=[Port(number=5432, protocol="tcp", service="postgresql", status="open")],
                metadata={"description": "Primary database"},
                position=Position(x=400, y=250),
            ),
            InfrastructureEntity(
                id=self.identifiers.issue(),
                type=EntityType.API_SERVICE,
                name=f"{parent.name} API",
                hostname=f"api.{slug}.{self.domain}",
                ip="10.0.1.30",
                fidelity=FidelityLevel.VIRTUAL,
                ports=[Port(number=8080, protocol="tcp", service="http-api", status="open")],
                metadata={
                    "description": "REST API service",
                    "endpoints": ["/users", "/auth", "/data"],
                    "core_functions": ["Authentication", "Data access"],
                },
                position=Position(x=300, y=350),
            ),
        ]


def fallback_profile_topology(company_name: str, sector: str, domain: str = "local") -> ParsedTopology:
    """Default topology for a whole company: website, database, DNS (+ payments for Banking)."""
    slug = alnum_slug(company_name)
    web = f"web.{slug}.{domain}"
    db = f"db.{slug}.{domain}"
    dns = f"dns.{slug}.{domain}"

    entities = [
        RawParsedEntity(
            name=f"{company_name} Website",
            type=EntityType.WEB_APP.value,
            hostname=web,
            metadata={"description": "Main website"},
        ),
        RawParsedEntity(
            name=f"{company_name} Database",
            type=EntityType.DATABASE.value,
            hostname=db,
            metadata={"description": "Primary database storing customer data"},
        ),
        RawParsedEntity(
            name=f"{company_name} DNS Server",
            type=EntityType.DNS_SERVER.value,
            hostname=dns,
            metadata={"description": "Corporate DNS server"},
        ),
    ]

    if sector == "Banking":
        entities.append(
            RawParsedEntity(
                name="Payment Gateway",
                type=EntityType.WEB_APP.value,
                hostname=f"payments.{slug}.{domain}",
                metadata={"description": "Payment processing service"},
            )
        )

    return ParsedTopology(
        entities=entities,
        connections=[
            RawConnection(source=web, target=db),
            RawConnection(source=web, target=dns),
        ],
    )


def fallback_openapi(service_name: str) -> dict[str, Any]:
    """Minimal OpenAPI 3.0 document with status and health endpoints."""
    return {
        "openapi": "3.0.0",
        "info": {
            "title": service_name,
            "version": "1.0.0",
            "description": f"API for {service_name}",
        },
        "paths": {
            "/api/status": {
                "get": {
                    "summary": "Get service status",
                    "responses": {
                        "200": {
                            "description": "OK",
                            "content": {
                                "application/json": {
                                    "schema": {
                                        "type": "object",
                                        "properties": {
                                            "status": {"type": "string"},
                                            "version": {"type": "string"},
                                        },
                                    }
                                }
                            },
                        }
                    },
                }
            },
            "/api/health": {
                "get": {
                    "summary": "Health check endpoint",
                    "responses": {"200": {"description": "Service is healthy"}},
                }
            },
        },
    }
