"""Results returned by the hybrid client."""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import Field

from ..server.models import (
    IntelligenceReport,
    Requirement,
    Sprint,
    Story,
    TeamPattern,
    WireModel,
)


class LocalContext(WireModel):
    source: Literal["local", "fallback"] = "local"
    sprint_details: Sprint
    story_context: Story
    team_patterns: List[TeamPattern] = Field(default_factory=list)
    business_requirements: List[Requirement] = Field(default_factory=list)
    note: Optional[str] = None


class RemoteIntelligence(IntelligenceReport):
    source: Literal["remote", "fallback"] = "remote"
    note: Optional[str] = None


class HybridContext(WireModel):
    local: LocalContext
    remote: RemoteIntelligence
    combined_insights: List[str]


class ConnectivityReport(WireModel):
    local: bool
    local_latency_ms: Optional[float] = None
    remote: bool = False
    remote_latency_ms: Optional[float] = None
    remote_configured: bool = False
