"""Deterministic stand-ins used when a server cannot be reached.

Every payload built here carries ``source="fallback"`` and identifiers that
contain ``fallback`` so callers can tell them apart from served data. The
same inputs always produce the same payload.
"""

from __future__ import annotations

import re

from ..server.models import (
    CrossProjectInsight,
    DeliveryPattern,
    InstitutionalKnowledge,
    Stakeholder,
    Sprint,
    Story,
    TeamPattern,
)
from .models import LocalContext, RemoteIntelligence

_SLUG = re.compile(r"[^a-z0-9]+")


def slug(value: str) -> str:
    return _SLUG.sub("-", value.strip().lower()).strip("-") or "general"


def local_context(note: str | None = None) -> LocalContext:
    return LocalContext(
        source="fallback",
        sprint_details=Sprint(
            id="fallback-sprint",
            name="Development Sprint (Offline)",
            goal="Keep working while the context server is unavailable",
        ),
        story_context=Story(
            id="fallback-story",
            title="Local Development Context",
            status="in_progress",
            acceptance_criteria=["Maintain functionality when offline"],
        ),
        team_patterns=[
            TeamPattern(
                id="offline-pattern",
                name="Offline Development",
                description="Graceful degradation when services are unavailable",
            )
        ],
        business_requirements=[],
        note=note,
    )


def knowledge(domain: str) -> list[InstitutionalKnowledge]:
    topic = slug(domain)
    return [
        InstitutionalKnowledge(
            id=f"fallback-{topic}-knowledge-1",
            topic=topic,
            summary=f"Key practices for successful {topic} delivery",
            best_practices=[
                f"Use {topic} recommended patterns",
                "Follow enterprise standards",
                "Do not skip testing",
            ],
        )
    ]


def remote_intelligence(technology: str, note: str | None = None) -> RemoteIntelligence:
    tech = slug(technology)
    return RemoteIntelligence(
        source="fallback",
        technology=tech,
        delivery_patterns=[
            DeliveryPattern(
                id=f"fallback-{tech}-pattern-1",
                name=f"{tech} Enterprise Pattern",
                technology=tech,
                success_rate=0.85,
                description=f"Proven delivery approach for {tech} projects",
            )
        ],
        institutional_knowledge=knowledge(tech),
        cross_project_insights=[
            CrossProjectInsight(
                project="fallback",
                insight=f"Teams using {tech} deliver faster with shared patterns",
                relevance=0.8,
            )
        ],
        stakeholder_mapping=[Stakeholder(role="Technical Lead", concerns=["architecture", "delivery"])],
        note=note,
    )
