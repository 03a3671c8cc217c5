"""
codegen-orchestrator — unit tests for requirement ingestion

File: tests/unit/spec_ingestion/test_requirements.py

Purpose
- Validate that free text, entry lists and grouped mappings normalize into
  deterministic Requirement records.

What this test file should cover
- Category inference and explicit type prefixes.
- Name extraction from sentences.
- Structured entries and grouped mappings.
- Location-bearing validation errors and duplicate detection.
"""

from __future__ import annotations

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from codegen_orchestrator.domain.errors import ValidationError
from codegen_orchestrator.domain.models import Requirement, RequirementCategory
from codegen_orchestrator.spec_ingestion.requirements import (
    TYPE_ALIASES,
    categorize,
    parse_requirements,
)


def test_sentence_with_component_keyword_becomes_component_requirement() -> None:
    (requirement,) = parse_requirements("Create a LoginForm component")

    assert requirement.requirement_id == "component-login-form"
    assert requirement.category is RequirementCategory.COMPONENT
    assert requirement.type == "component"
    assert requirement.name == "LoginForm"
    assert requirement.description == "Create a LoginForm component"


def test_free_text_skips_headings_fences_and_blank_lines() -> None:
    text = """
# Requirements

- Create a Button component
- api: UserProfile endpoint

```
component: Ignored
```
1. Add a users table to the database
"""

    requirements = parse_requirements(text)

    assert [item.category for item in requirements] == [
        RequirementCategory.COMPONENT,
        RequirementCategory.API,
        RequirementCategory.DATABASE,
    ]
    assert requirements[0].requirement_id == "component-button"
    assert requirements[1].requirement_id == "api-user-profile"
    assert requirements[1].type == "api"
    assert requirements[2].type == "table"


def test_text_without_known_keyword_is_general() -> None:
    (requirement,) = parse_requirements("Improve overall startup time")

    assert requirement.category is RequirementCategory.GENERAL
    assert requirement.type == "general"
    assert requirement.requirement_id == "general-improve-overall-startup-time"


def test_structured_entries_keep_parameters_and_unknown_keys() -> None:
    requirements = parse_requirements(
        [
            {
                "type": "component",
                "name": "Card",
                "description": "Content card",
                "parameters": {"props": ["title"]},
                "variant": "outlined",
            },
            {"category": "api", "name": "users"},
        ]
    )

    card, users = requirements
    assert card.parameters["props"] == ("title",)
    assert card.parameters["variant"] == "outlined"
    assert card.description == "Content card"
    assert users.type == "api"
    assert users.requirement_id == "api-users"


def test_grouped_mapping_uses_group_category() -> None:
    requirements = parse_requirements(
        {
            "components": ["Button", {"name": "Modal", "props": ["open"]}],
            "styles": "Theme tokens for DarkMode",
        }
    )

    assert [item.requirement_id for item in requirements] == [
        "component-button",
        "component-modal",
        "styling-dark-mode",
    ]
    assert requirements[1].parameters["props"] == ("open",)


def test_requirements_key_accepts_list_or_text() -> None:
    from_list = parse_requirements({"requirements": [{"type": "docs", "name": "Readme"}]})
    from_text = parse_requirements({"requirements": "Create a Header component"})

    assert from_list[0].category is RequirementCategory.DOCUMENTATION
    assert from_text[0].requirement_id == "component-header"


def test_requirement_instances_pass_through() -> None:
    existing = Requirement(
        requirement_id="utility-format-date",
        type="utility",
        category=RequirementCategory.UTILITY,
        name="formatDate",
    )

    assert parse_requirements(existing) == (existing,)
    assert parse_requirements([existing])[0].name == "formatDate"


def test_parsing_is_deterministic() -> None:
    text = "Create a Button component\nAdd a SessionStore helper"
    assert parse_requirements(text) == parse_requirements(text)


@pytest.mark.parametrize(
    ("raw", "location"),
    [
        ([{"type": "component"}], "requirements[0].name"),
        ([{"name": "Thing"}], "requirements[0]"),
        ([{"type": "component", "name": "A", "parameters": []}], "requirements[0].parameters"),
        ([{"category": "spaceship", "name": "A"}], "requirements[0].category"),
        ([42], "requirements[0]"),
        (["  "], "requirements[0]"),
        ({"gizmos": ["A"]}, "gizmos"),
        ({"requirements": [], "extra": 1}, "requirements"),
    ],
)
def test_malformed_entries_name_their_location(raw: object, location: str) -> None:
    with pytest.raises(ValidationError) as exc_info:
        parse_requirements(raw)
    assert exc_info.value.location == location


def test_unsupported_input_type_is_rejected() -> None:
    with pytest.raises(ValidationError, match="unsupported"):
        parse_requirements(3.5)


def test_duplicate_ids_are_rejected_with_first_location() -> None:
    with pytest.raises(ValidationError, match="first defined at requirements\\[0\\]") as exc_info:
        parse_requirements(["Create a Button component", "component: Button"])
    assert exc_info.value.location == "requirements[1]"


def test_categorize_prefers_explicit_category() -> None:
    assert categorize("endpoint") is RequirementCategory.API
    assert categorize("whatever") is RequirementCategory.GENERAL
    assert categorize(None) is RequirementCategory.GENERAL
    assert categorize("component", "tests") is RequirementCategory.TESTING
    with pytest.raises(ValueError, match="unknown category"):
        categorize("component", "nonsense")


_NAMES = st.from_regex(r"[A-Z][a-z]{2,8}[A-Z][a-z]{2,8}", fullmatch=True).filter(
    lambda name: name.lower() not in TYPE_ALIASES
)


@settings(max_examples=50, deadline=None)
@given(_NAMES)
def test_camel_case_names_are_extracted_from_sentences(name: str) -> None:
    (requirement,) = parse_requirements(f"Create a {name} component")

    assert requirement.name == name
    assert requirement.requirement_id.startswith("component-")
