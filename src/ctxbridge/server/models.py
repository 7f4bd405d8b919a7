"""Wire models for business context, sprint state and delivery intelligence.

Python attributes are snake_case; JSON uses camelCase. Use
:meth:`WireModel.to_wire` to serialize for a response body.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class RequirementType(str, Enum):
    FUNCTIONAL = "functional"
    NON_FUNCTIONAL = "non_functional"
    BUSINESS = "business"
    TECHNICAL = "technical"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RequirementStatus(str, Enum):
    DRAFT = "draft"
    APPROVED = "approved"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DEPRECATED = "deprecated"


class ChangeType(str, Enum):
    FEATURE = "feature"
    BUG_FIX = "bug_fix"
    REFACTOR = "refactor"
    DOCUMENTATION = "documentation"
    TEST = "test"


class CodeLocation(WireModel):
    file_path: str
    start_line: int
    end_line: int
    symbol_name: Optional[str] = None

    def cache_key(self) -> str:
        return f"{self.file_path}:{self.start_line}-{self.end_line}:{self.symbol_name or 'unknown'}"


class Requirement(WireModel):
    id: str
    title: str
    description: str = ""
    type: RequirementType = RequirementType.FUNCTIONAL
    priority: Priority = Priority.MEDIUM
    status: RequirementStatus = RequirementStatus.DRAFT
    stakeholders: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    acceptance_criteria: List[str] = Field(default_factory=list)
    created_date: Optional[datetime] = None
    last_modified: Optional[datetime] = None


class ImplementationStatus(WireModel):
    completion_percentage: int = 0
    last_verified: Optional[datetime] = None
    verified_by: Optional[str] = None
    notes: Optional[str] = None


class Change(WireModel):
    id: str
    type: ChangeType
    description: str
    author: str
    timestamp: datetime
    related_requirements: List[str] = Field(default_factory=list)


class BusinessContext(WireModel):
    requirements: List[Requirement] = Field(default_factory=list)
    implementation_status: ImplementationStatus = Field(default_factory=ImplementationStatus)
    related_changes: List[Change] = Field(default_factory=list)
    last_updated: datetime


class Sprint(WireModel):
    id: str
    name: str
    goal: str = ""
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    progress: float = 0.0


class Story(WireModel):
    id: str
    title: str
    status: str = "todo"
    points: int = 0
    requirement_id: Optional[str] = None
    acceptance_criteria: List[str] = Field(default_factory=list)


class TeamPattern(WireModel):
    id: str
    name: str
    description: str = ""


class SprintContext(WireModel):
    sprint: Sprint
    stories: List[Story] = Field(default_factory=list)
    team_patterns: List[TeamPattern] = Field(default_factory=list)


class DeliveryPattern(WireModel):
    id: str
    name: str
    technology: str
    success_rate: float
    description: str = ""


class InstitutionalKnowledge(WireModel):
    id: str
    topic: str
    summary: str
    best_practices: List[str] = Field(default_factory=list)


class CrossProjectInsight(WireModel):
    project: str
    insight: str
    relevance: float = 0.5


class Stakeholder(WireModel):
    role: str
    concerns: List[str] = Field(default_factory=list)


class IntelligenceReport(WireModel):
    technology: str
    delivery_patterns: List[DeliveryPattern] = Field(default_factory=list)
    institutional_knowledge: List[InstitutionalKnowledge] = Field(default_factory=list)
    cross_project_insights: List[CrossProjectInsight] = Field(default_factory=list)
    stakeholder_mapping: List[Stakeholder] = Field(default_factory=list)
