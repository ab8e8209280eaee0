"""Pluggable text generators for research briefs and SoW drafts.

Anything with an ``async generate(**fields) -> str`` coroutine satisfies
TextGenerator, so an inference service can replace the mocks without
touching callers. The mocks wait a fixed latency and return canned text.
"""

from __future__ import annotations

import asyncio
from datetime import date
from typing import Protocol, runtime_checkable

import structlog

logger = structlog.get_logger(__name__)


@runtime_checkable
class TextGenerator(Protocol):
    async def generate(self, **fields: object) -> str: ...


class MockResearchGenerator:
    """Pre-call research brief for a company and (optionally) a leader."""

    def __init__(self, latency: float = 1.5) -> None:
        self._latency = latency

    async def generate(self, **fields: object) -> str:
        company = str(fields.get("company") or "")
        leader = str(fields.get("leader") or "")
        await asyncio.sleep(self._latency)

        sections = [
            f"Company: {company}",
            "Industry: Technology / SaaS",
            "Size: 50-200 employees",
            "Recent News: Announced Series B funding round",
            "Key Challenges: Scaling infrastructure, improving customer onboarding",
        ]
        if leader:
            sections += [
                "",
                f"Leader: {leader}",
                "Role: Chief Technology Officer",
                "Background: 10+ years in enterprise software",
                "LinkedIn: Active on platform, posts about cloud architecture",
            ]
        sections += [
            "",
            "Talking Points:",
            "- Discuss scalability solutions for rapid growth",
            "- Highlight experience with similar-sized companies",
            "- Focus on ROI and time-to-value",
        ]
        logger.info("generators.research_generated", company=company)
        return "\n".join(sections)


class MockSowGenerator:
    """Fixed-structure statement of work when no template is chosen."""

    def __init__(self, latency: float = 2.0) -> None:
        self._latency = latency

    async def generate(self, **fields: object) -> str:
        company = str(fields.get("company") or "")
        meeting_date = fields.get("meeting_date")
        when = meeting_date.isoformat() if isinstance(meeting_date, date) else str(meeting_date or "")
        await asyncio.sleep(self._latency)

        logger.info("generators.sow_generated", company=company)
        return f"""STATEMENT OF WORK
{company}

PROJECT OVERVIEW
Based on our meeting on {when}, this Statement of Work outlines the proposed engagement.

SCOPE OF WORK
1. Discovery & Planning Phase (2 weeks)
   - Requirements gathering
   - Technical architecture design
   - Project timeline development

2. Implementation Phase (8 weeks)
   - Core platform development
   - Integration with existing systems
   - Quality assurance testing

3. Deployment & Training (2 weeks)
   - Production deployment
   - Team training sessions
   - Documentation delivery

DELIVERABLES
- Technical architecture document
- Fully functional platform
- User documentation
- Training materials
- 30 days post-launch support

TIMELINE
Total Duration: 12 weeks
Start Date: TBD
Estimated Completion: TBD

NEXT STEPS
1. Review and approve this SoW
2. Schedule kickoff meeting
3. Finalize contract and payment terms
4. Begin discovery phase

INVESTMENT
See attached quote for detailed pricing breakdown."""
