"""Synthetic enterprise data used when no real context source is attached.

Generation is seeded from the mock options, so two providers built with the
same options produce the same requirements, changes and sprint. Only the
timestamps move with the clock.
"""

from __future__ import annotations

import random
import re
import zlib
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from ..core.config_schema import MockOptions
from .models import (
    BusinessContext,
    Change,
    ChangeType,
    CodeLocation,
    CrossProjectInsight,
    DeliveryPattern,
    ImplementationStatus,
    InstitutionalKnowledge,
    IntelligenceReport,
    Priority,
    Requirement,
    RequirementStatus,
    RequirementType,
    Sprint,
    SprintContext,
    Stakeholder,
    Story,
    TeamPattern,
)

# (requirements, code mappings, changes)
DATA_SIZES: Dict[str, Tuple[int, int, int]] = {
    "small": (10, 15, 20),
    "medium": (25, 40, 60),
    "large": (50, 100, 150),
}

REQUIREMENT_TEMPLATES = [
    ("User Authentication System",
     "Implement secure user authentication with multi-factor support",
     RequirementType.FUNCTIONAL, ["security", "authentication", "user-management"]),
    ("Payment Processing Integration",
     "Integrate with external payment gateway for transaction processing",
     RequirementType.FUNCTIONAL, ["payment", "integration", "financial"]),
    ("Performance Optimization",
     "System must respond to user requests within 200ms",
     RequirementType.NON_FUNCTIONAL, ["performance", "optimization", "response-time"]),
    ("Data Encryption Compliance",
     "All sensitive data must be encrypted at rest and in transit",
     RequirementType.TECHNICAL, ["security", "encryption", "compliance"]),
    ("Customer Dashboard",
     "Provide customers with a comprehensive dashboard for account management",
     RequirementType.BUSINESS, ["dashboard", "customer", "ui"]),
]

SAMPLE_FILES = [
    "src/auth/AuthService.ts",
    "src/payment/PaymentProcessor.ts",
    "src/user/UserController.ts",
    "src/dashboard/DashboardComponent.ts",
    "src/security/EncryptionUtil.ts",
    "src/api/ApiController.ts",
    "src/models/User.ts",
    "src/services/NotificationService.ts",
]

STAKEHOLDERS = [
    "Product Manager",
    "Lead Developer",
    "Security Team",
    "QA Engineer",
    "Business Analyst",
    "UX Designer",
    "DevOps Engineer",
]

ENTERPRISE_STAKEHOLDERS = ["Compliance Officer", "Enterprise Architect"]

AUTHORS = ["John Smith", "Sarah Johnson", "Mike Chen", "Emily Davis", "Alex Rodriguez", "Lisa Wang"]

CHANGE_DESCRIPTIONS = [
    "Updated authentication logic to support OAuth 2.0",
    "Fixed payment processing timeout issue",
    "Refactored user validation methods",
    "Added encryption for sensitive data fields",
    "Improved dashboard loading performance",
    "Updated API endpoints for better error handling",
    "Added unit tests for core functionality",
    "Updated documentation for new features",
]

TEAM_PATTERNS = [
    ("pattern-code-review", "Two-reviewer code review", "Every change merges after two approvals"),
    ("pattern-feature-flags", "Feature flags", "Incomplete work ships dark behind a flag"),
    ("pattern-contract-tests", "Contract tests", "Service boundaries are pinned by consumer contract tests"),
]

STORY_STATUSES = ["todo", "in_progress", "review", "done"]


def _slug(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-") or "general"


class MockDataProvider:
    """Deterministic generator of requirements, changes, sprint and intelligence data."""

    def __init__(self, options: MockOptions | None = None, *, now: datetime | None = None) -> None:
        self.options = options or MockOptions()
        self._now = now or datetime.now(timezone.utc)
        seed = zlib.crc32(f"{self.options.data_size}:{self.options.enterprise_patterns}".encode())
        self._rng = random.Random(seed)

        requirement_count, mapping_count, change_count = DATA_SIZES[self.options.data_size]
        self._requirements: Dict[str, Requirement] = {}
        for index in range(1, requirement_count + 1):
            requirement = self._make_requirement(index)
            self._requirements[requirement.id] = requirement

        self._mappings: Dict[str, List[Tuple[CodeLocation, str]]] = {}
        for _ in range(mapping_count):
            path = self._rng.choice(SAMPLE_FILES)
            start = self._rng.randint(1, 100)
            location = CodeLocation(file_path=path, start_line=start, end_line=start + self._rng.randint(1, 20))
            self._mappings.setdefault(path, []).append((location, self._rng.choice(list(self._requirements))))

        self._changes: Dict[str, List[Change]] = {}
        for index in range(1, change_count + 1):
            requirement_id = self._rng.choice(list(self._requirements))
            change = Change(
                id=f"CHG-{index:03d}",
                type=self._rng.choice(list(ChangeType)),
                description=self._rng.choice(CHANGE_DESCRIPTIONS),
                author=self._rng.choice(AUTHORS),
                timestamp=self._days_ago(self._rng.randint(0, 30)),
                related_requirements=[requirement_id],
            )
            self._changes.setdefault(requirement_id, []).append(change)

    def _days_ago(self, days: int) -> datetime:
        return self._now - timedelta(days=days)

    def _make_requirement(self, index: int) -> Requirement:
        title, description, kind, tags = REQUIREMENT_TEMPLATES[index % len(REQUIREMENT_TEMPLATES)]
        stakeholders = sorted(set(self._rng.sample(STAKEHOLDERS, self._rng.randint(1, 3))))
        criteria = [f"{title} is covered by automated tests"]
        if self.options.enterprise_patterns:
            tags = [*tags, "audit"]
            stakeholders.append(ENTERPRISE_STAKEHOLDERS[index % len(ENTERPRISE_STAKEHOLDERS)])
            criteria.append("Change is traceable to an approved requirement")
        return Requirement(
            id=f"REQ-{index:03d}",
            title=f"{title} ({index})" if index > len(REQUIREMENT_TEMPLATES) else title,
            description=description,
            type=kind,
            priority=self._rng.choice(list(Priority)),
            status=self._rng.choice(list(RequirementStatus)),
            stakeholders=stakeholders,
            tags=list(tags),
            acceptance_criteria=criteria,
            created_date=self._days_ago(self._rng.randint(30, 90)),
            last_modified=self._days_ago(self._rng.randint(0, 30)),
        )

    def requirements(self) -> List[Requirement]:
        return list(self._requirements.values())

    def get_requirement(self, requirement_id: str) -> Optional[Requirement]:
        return self._requirements.get(requirement_id)

    def _requirement_ids_for(self, location: CodeLocation) -> List[str]:
        found = [
            requirement_id
            for mapped, requirement_id in self._mappings.get(location.file_path, [])
            if not (location.end_line < mapped.start_line or location.start_line > mapped.end_line)
        ]
        if found:
            return list(dict.fromkeys(found))
        # Files outside the sample set map onto a stable requirement.
        ids = list(self._requirements)
        return [ids[zlib.crc32(location.file_path.encode()) % len(ids)]]

    def context_for(self, location: CodeLocation) -> BusinessContext:
        requirement_ids = self._requirement_ids_for(location)
        requirements = [self._requirements[rid] for rid in requirement_ids]
        changes = [change for rid in requirement_ids for change in self._changes.get(rid, [])]
        digest = zlib.crc32(location.cache_key().encode())
        return BusinessContext(
            requirements=requirements,
            implementation_status=ImplementationStatus(
                completion_percentage=digest % 101,
                last_verified=self._days_ago(digest % 7),
                verified_by=AUTHORS[digest % len(AUTHORS)],
                notes="Implementation on track" if digest % 2 else None,
            ),
            related_changes=changes,
            last_updated=self._now,
        )

    def sprint_context(self) -> SprintContext:
        requirements = self.requirements()[:5]
        stories = [
            Story(
                id=f"STORY-{index:03d}",
                title=f"Deliver {requirement.title}",
                status=STORY_STATUSES[index % len(STORY_STATUSES)],
                points=(index % 5) + 1,
                requirement_id=requirement.id,
                acceptance_criteria=requirement.acceptance_criteria,
            )
            for index, requirement in enumerate(requirements, start=1)
        ]
        done = sum(1 for story in stories if story.status == "done")
        start = self._now - timedelta(days=self._now.weekday())
        return SprintContext(
            sprint=Sprint(
                id=f"sprint-{self._now.isocalendar()[1]:02d}",
                name=f"Sprint {self._now.isocalendar()[1]}",
                goal="Ship the highest priority requirements",
                start_date=start.date().isoformat(),
                end_date=(start + timedelta(days=13)).date().isoformat(),
                progress=round(done / len(stories), 2) if stories else 0.0,
            ),
            stories=stories,
            team_patterns=[TeamPattern(id=i, name=n, description=d) for i, n, d in TEAM_PATTERNS],
        )

    def intelligence(self, technology: str) -> IntelligenceReport:
        tech = _slug(technology)
        patterns = [
            DeliveryPattern(
                id=f"{tech}-pattern-{n}",
                name=name,
                technology=tech,
                success_rate=rate,
                description=f"{name} applied to {tech} services",
            )
            for n, (name, rate) in enumerate(
                [("Incremental rollout", 0.85), ("Trunk-based development", 0.78)], start=1
            )
        ]
        return IntelligenceReport(
            technology=tech,
            delivery_patterns=patterns,
            institutional_knowledge=self.knowledge(tech),
            cross_project_insights=[
                CrossProjectInsight(
                    project="payments-platform",
                    insight=f"Teams using {tech} cut review time by pairing on risky changes",
                    relevance=0.7,
                )
            ],
            stakeholder_mapping=[
                Stakeholder(role="Product Manager", concerns=["scope", "delivery date"]),
                Stakeholder(role="Security Team", concerns=["data protection"]),
            ],
        )

    def knowledge(self, domain: str) -> List[InstitutionalKnowledge]:
        topic = _slug(domain)
        practices = ["Keep changes small and reviewable", "Document decisions next to the code"]
        if self.options.enterprise_patterns:
            practices.append("Record an audit trail for every production change")
        return [
            InstitutionalKnowledge(
                id=f"{topic}-knowledge-1",
                topic=topic,
                summary=f"Lessons collected from previous {topic} projects",
                best_practices=practices,
            )
        ]
