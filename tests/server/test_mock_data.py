from __future__ import annotations

from datetime import datetime, timezone

from ctxbridge.core.config_schema import MockOptions
from ctxbridge.server.mock_data import MockDataProvider
from ctxbridge.server.models import CodeLocation

NOW = datetime(2024, 6, 3, tzinfo=timezone.utc)


def test_data_size_controls_requirement_count() -> None:
    small = MockDataProvider(MockOptions(data_size="small"), now=NOW)
    large = MockDataProvider(MockOptions(data_size="large"), now=NOW)

    assert len(small.requirements()) == 10
    assert len(large.requirements()) == 50


def test_same_options_generate_same_data() -> None:
    location = CodeLocation(file_path="lib/unknown/file.rb", start_line=3, end_line=9)

    first = MockDataProvider(MockOptions(), now=NOW).context_for(location)
    second = MockDataProvider(MockOptions(), now=NOW).context_for(location)

    assert first == second
    assert first.requirements


def test_enterprise_patterns_add_audit_details() -> None:
    plain = MockDataProvider(MockOptions(enterprise_patterns=False), now=NOW).get_requirement("REQ-001")
    enterprise = MockDataProvider(MockOptions(enterprise_patterns=True), now=NOW).get_requirement("REQ-001")

    assert plain is not None and enterprise is not None
    assert "audit" not in plain.tags
    assert "audit" in enterprise.tags
    assert len(enterprise.acceptance_criteria) > len(plain.acceptance_criteria)


def test_intelligence_and_sprint_shapes() -> None:
    provider = MockDataProvider(MockOptions(data_size="small"), now=NOW)

    report = provider.intelligence("Type Script")
    sprint = provider.sprint_context()

    assert report.technology == "type-script"
    assert report.delivery_patterns[0].success_rate == 0.85
    assert sprint.sprint.start_date == "2024-06-03"
    assert len(sprint.stories) == 5
    assert all(story.requirement_id for story in sprint.stories)
