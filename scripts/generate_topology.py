"""
Generate a company profile and expand its organization entity.

Run with: uv run python scripts/generate_topology.py "<company description>" [name]
"""

import asyncio
import sys

from infra_engine.engine import InfraEngine


async def run(description: str, name: str | None = None):
    """Generate profile, build infrastructure, expand the organization."""
    async with InfraEngine.from_settings() as engine:
        profile = await engine.generate_company_profile(description, name)

        print(f"Profile: {profile.name} ({profile.source})")
        print(f"  Sector: {profile.sector}")
        print(f"  Core functions: {', '.join(profile.core_functions)}")
        print(f"  Regulatory: {', '.join(profile.regulatory_requirements)}")

        build = await engine.build_infrastructure(profile)
        print(f"\nInfrastructure: {len(build.profile.infrastructure)} components"
              f"{' (fallback)' if build.used_fallback else ''}")
        for entity in build.entities:
            print(f"  - {entity.name} [{entity.type.value}] {entity.hostname} {entity.ip}")

        organization = engine.create_organization(build.profile)
        result = await engine.expand_organization(organization)
        print(f"\nExpansion of {organization.name}: {result.outcome.value}")
        for child in result.children:
            targets = ", ".join(child.connections) or "none"
            print(f"  - {child.name} [{child.type.value}] {child.hostname} -> {targets}")


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print('Usage: uv run python scripts/generate_topology.py "<company description>" [name]')
        sys.exit(1)

    asyncio.run(run(sys.argv[1], sys.argv[2] if len(sys.argv) > 2 else None))
