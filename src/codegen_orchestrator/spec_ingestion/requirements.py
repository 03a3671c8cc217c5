"""
codegen-orchestrator — requirement ingestion

File: src/codegen_orchestrator/spec_ingestion/requirements.py

Purpose
- Normalizes free text, lists of requirement-like entries, and structured
  mappings into a tuple of immutable ``Requirement`` records.

Functional requirements
- Raw input shapes are inspected here and nowhere else.
- Malformed entries fail with ``ValidationError`` naming the entry; nothing
  is silently dropped.
- Requirement ids are deterministic: ``<category>-<slug(name)>``.

Non-functional requirements
- Free text is treated as data: fenced code blocks and headings are ignored.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final

from codegen_orchestrator.domain.errors import ValidationError
from codegen_orchestrator.domain.ids import requirement_id_for, slugify
from codegen_orchestrator.domain.models import Requirement, RequirementCategory

# Declared ``type`` values (and structured-input keys) mapped to a category.
TYPE_ALIASES: Final[dict[str, RequirementCategory]] = {
    "component": RequirementCategory.COMPONENT,
    "components": RequirementCategory.COMPONENT,
    "ui": RequirementCategory.COMPONENT,
    "page": RequirementCategory.COMPONENT,
    "pages": RequirementCategory.COMPONENT,
    "view": RequirementCategory.COMPONENT,
    "widget": RequirementCategory.COMPONENT,
    "api": RequirementCategory.API,
    "apis": RequirementCategory.API,
    "endpoint": RequirementCategory.API,
    "endpoints": RequirementCategory.API,
    "route": RequirementCategory.API,
    "routes": RequirementCategory.API,
    "service": RequirementCategory.API,
    "database": RequirementCategory.DATABASE,
    "databases": RequirementCategory.DATABASE,
    "db": RequirementCategory.DATABASE,
    "schema": RequirementCategory.DATABASE,
    "schemas": RequirementCategory.DATABASE,
    "model": RequirementCategory.DATABASE,
    "models": RequirementCategory.DATABASE,
    "table": RequirementCategory.DATABASE,
    "migration": RequirementCategory.DATABASE,
    "styling": RequirementCategory.STYLING,
    "style": RequirementCategory.STYLING,
    "styles": RequirementCategory.STYLING,
    "theme": RequirementCategory.STYLING,
    "css": RequirementCategory.STYLING,
    "testing": RequirementCategory.TESTING,
    "test": RequirementCategory.TESTING,
    "tests": RequirementCategory.TESTING,
    "documentation": RequirementCategory.DOCUMENTATION,
    "doc": RequirementCategory.DOCUMENTATION,
    "docs": RequirementCategory.DOCUMENTATION,
    "readme": RequirementCategory.DOCUMENTATION,
    "infrastructure": RequirementCategory.INFRASTRUCTURE,
    "infra": RequirementCategory.INFRASTRUCTURE,
    "deploy": RequirementCategory.INFRASTRUCTURE,
    "deployment": RequirementCategory.INFRASTRUCTURE,
    "docker": RequirementCategory.INFRASTRUCTURE,
    "ci": RequirementCategory.INFRASTRUCTURE,
    "utility": RequirementCategory.UTILITY,
    "utilities": RequirementCategory.UTILITY,
    "util": RequirementCategory.UTILITY,
    "utils": RequirementCategory.UTILITY,
    "helper": RequirementCategory.UTILITY,
    "helpers": RequirementCategory.UTILITY,
    "general": RequirementCategory.GENERAL,
}

_ENTRY_FIELDS: Final[frozenset[str]] = frozenset(
    {"type", "category", "name", "description", "parameters"}
)

_FENCE_RE: Final[re.Pattern[str]] = re.compile(r"^\s*(```|~~~)")
_HEADING_RE: Final[re.Pattern[str]] = re.compile(r"^\s*#{1,6}\s")
_LIST_MARKER_RE: Final[re.Pattern[str]] = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+")
_TYPE_PREFIX_RE: Final[re.Pattern[str]] = re.compile(r"^([A-Za-z][A-Za-z _-]*?)\s*:\s*(.+)$")
_WORD_RE: Final[re.Pattern[str]] = re.compile(r"[A-Za-z][A-Za-z0-9_]*")
_IDENTIFIER_RE: Final[re.Pattern[str]] = re.compile(r"\b[A-Z][A-Za-z0-9_]*\b")
_MAX_DERIVED_NAME_WORDS: Final[int] = 6


@dataclass(frozen=True, slots=True)
class _Draft:
    location: str
    type: str
    category: RequirementCategory
    name: str
    description: str
    parameters: Mapping[str, Any]


def categorize(type_: str | None, category: str | None = None) -> RequirementCategory:
    """Resolve a requirement category.

    An explicit ``category`` wins and must be a known category. Otherwise the
    ``type`` alias table decides, falling back to ``general``.
    """

    if category is not None and str(category).strip():
        normalized = str(category).strip().lower()
        try:
            return RequirementCategory(normalized)
        except ValueError:
            alias = TYPE_ALIASES.get(normalized)
            if alias is None:
                raise ValueError(f"unknown category {category!r}") from None
            return alias
    if type_ is None:
        return RequirementCategory.GENERAL
    return TYPE_ALIASES.get(str(type_).strip().lower(), RequirementCategory.GENERAL)


def parse_requirements(raw: object) -> tuple[Requirement, ...]:
    """Parse free text, a list of entries, or a mapping into requirements.

    Order follows the input. Duplicate requirement ids are rejected.
    """

    if isinstance(raw, Requirement):
        return (raw,)
    if isinstance(raw, str):
        drafts = _drafts_from_text(raw)
    elif isinstance(raw, Mapping):
        drafts = _drafts_from_mapping(raw)
    elif isinstance(raw, Sequence) and not isinstance(raw, (bytes, bytearray)):
        drafts = _drafts_from_list(raw, "requirements")
    else:
        raise ValidationError(
            f"unsupported requirement input of type {type(raw).__name__}",
            location="requirements",
        )
    return _finalize(drafts)


# ---------------------------------------------------------------------------
# Input shapes
# ---------------------------------------------------------------------------


def _drafts_from_text(text: str, *, location: str | None = None) -> list[_Draft]:
    drafts: list[_Draft] = []
    in_fence = False
    for line_number, line in enumerate(text.splitlines(), start=1):
        if _FENCE_RE.match(line):
            in_fence = not in_fence
            continue
        if in_fence or not line.strip() or _HEADING_RE.match(line):
            continue
        where = location or f"line {line_number}"
        drafts.append(_draft_from_line(_LIST_MARKER_RE.sub("", line, count=1), where))
    return drafts


def _drafts_from_list(entries: Sequence[object], location: str) -> list[_Draft]:
    drafts: list[_Draft] = []
    for index, entry in enumerate(entries):
        where = f"{location}[{index}]"
        if isinstance(entry, Requirement):
            drafts.append(
                _Draft(
                    where,
                    entry.type,
                    entry.category,
                    entry.name,
                    entry.description,
                    entry.parameters,
                )
            )
        elif isinstance(entry, str):
            if not entry.strip():
                raise ValidationError("requirement text is empty", location=where)
            drafts.append(_draft_from_line(_LIST_MARKER_RE.sub("", entry, count=1), where))
        elif isinstance(entry, Mapping):
            drafts.append(_draft_from_entry(entry, where))
        else:
            raise ValidationError(
                f"expected a string or mapping, got {type(entry).__name__}",
                location=where,
            )
    return drafts


def _drafts_from_mapping(raw: Mapping[Any, Any]) -> list[_Draft]:
    if "requirements" in raw:
        extra = sorted(str(key) for key in raw if key != "requirements")
        if extra:
            raise ValidationError(
                f"unexpected keys next to 'requirements': {', '.join(extra)}",
                location="requirements",
            )
        entries = raw["requirements"]
        if isinstance(entries, str):
            return _drafts_from_text(entries)
        if not isinstance(entries, Sequence):
            raise ValidationError("'requirements' must be a list", location="requirements")
        return _drafts_from_list(entries, "requirements")

    drafts: list[_Draft] = []
    for key, entries in raw.items():
        where = str(key)
        category = TYPE_ALIASES.get(where.strip().lower())
        if category is None:
            raise ValidationError(f"unknown requirement group {where!r}", location=where)
        if isinstance(entries, (str, Mapping)):
            entries = [entries]
        if not isinstance(entries, Sequence):
            raise ValidationError("group value must be a list", location=where)
        for index, entry in enumerate(entries):
            item_where = f"{where}[{index}]"
            if isinstance(entry, str):
                if not entry.strip():
                    raise ValidationError("requirement text is empty", location=item_where)
                name = _name_from_text(entry, keyword=None)
                drafts.append(
                    _Draft(item_where, category.value, category, name, entry.strip(), {})
                )
            elif isinstance(entry, Mapping):
                merged = {"category": category.value, **dict(entry)}
                merged.setdefault("type", category.value)
                drafts.append(_draft_from_entry(merged, item_where))
            else:
                raise ValidationError(
                    f"expected a string or mapping, got {type(entry).__name__}",
                    location=item_where,
                )
    return drafts


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------


def _draft_from_entry(entry: Mapping[Any, Any], location: str) -> _Draft:
    raw_type = entry.get("type")
    raw_category = entry.get("category")
    raw_name = entry.get("name")

    if raw_type is None and raw_category is None:
        raise ValidationError("entry needs a 'type' or 'category'", location=location)
    for field_name, value in (("type", raw_type), ("category", raw_category)):
        if value is not None and (not isinstance(value, str) or not value.strip()):
            raise ValidationError(
                f"'{field_name}' must be a non-empty string", location=f"{location}.{field_name}"
            )
    if not isinstance(raw_name, str) or not raw_name.strip():
        raise ValidationError("entry needs a non-empty 'name'", location=f"{location}.name")

    try:
        category = categorize(raw_type, raw_category)
    except ValueError as exc:
        raise ValidationError(str(exc), location=f"{location}.category") from exc

    description = entry.get("description", "")
    if not isinstance(description, str):
        raise ValidationError("'description' must be a string", location=f"{location}.description")

    parameters = entry.get("parameters", {})
    if not isinstance(parameters, Mapping):
        raise ValidationError("'parameters' must be a mapping", location=f"{location}.parameters")
    merged_parameters = dict(parameters)
    for key, value in entry.items():
        if str(key) not in _ENTRY_FIELDS:
            merged_parameters.setdefault(str(key), value)

    type_ = (raw_type if raw_type is not None else category.value).strip().lower()
    return _Draft(location, type_, category, raw_name.strip(), description.strip(), merged_parameters)


def _draft_from_line(line: str, location: str) -> _Draft:
    text = line.strip()
    if not text:
        raise ValidationError("requirement text is empty", location=location)

    prefix_match = _TYPE_PREFIX_RE.match(text)
    if prefix_match is not None:
        declared = prefix_match.group(1).strip().lower()
        category = TYPE_ALIASES.get(declared)
        if category is not None:
            body = prefix_match.group(2).strip()
            return _Draft(
                location, declared, category, _name_from_text(body, keyword=None), body, {}
            )

    keyword, category = _infer_category(text)
    type_ = keyword if keyword is not None else RequirementCategory.GENERAL.value
    return _Draft(location, type_, category, _name_from_text(text, keyword=keyword), text, {})


def _infer_category(text: str) -> tuple[str | None, RequirementCategory]:
    for word in _WORD_RE.findall(text):
        lowered = word.lower()
        category = TYPE_ALIASES.get(lowered)
        if category is not None and category is not RequirementCategory.GENERAL:
            return lowered, category
    return None, RequirementCategory.GENERAL


def _name_from_text(text: str, *, keyword: str | None) -> str:
    """First capitalized identifier after ``keyword``, else anywhere, else a slug.

    A capitalized first word only counts when it is CamelCase, so sentence
    case ("Create a LoginForm component") does not become the name.
    """

    stripped = text.strip()
    candidates: list[re.Match[str]] = []
    if keyword is not None:
        match = re.search(rf"\b{re.escape(keyword)}\b", stripped, flags=re.IGNORECASE)
        if match is not None:
            candidates.extend(_IDENTIFIER_RE.finditer(stripped, match.end()))
    candidates.extend(_IDENTIFIER_RE.finditer(stripped))
    for identifier in candidates:
        word = identifier.group(0)
        if word.lower() in TYPE_ALIASES:
            continue
        if identifier.start() == 0 and word[1:].islower() and len(stripped) > len(word):
            continue
        return word
    words = _WORD_RE.findall(stripped)[:_MAX_DERIVED_NAME_WORDS]
    try:
        return slugify(" ".join(words) or text)
    except ValueError:
        return "requirement"


def _finalize(drafts: Sequence[_Draft]) -> tuple[Requirement, ...]:
    seen: dict[str, str] = {}
    requirements: list[Requirement] = []
    for draft in drafts:
        try:
            requirement_id = requirement_id_for(draft.category.value, draft.name)
        except ValueError as exc:
            raise ValidationError(str(exc), location=f"{draft.location}.name") from exc
        if requirement_id in seen:
            raise ValidationError(
                f"duplicate requirement id {requirement_id!r} (first defined at {seen[requirement_id]})",
                location=draft.location,
            )
        seen[requirement_id] = draft.location
        requirements.append(
            Requirement(
                requirement_id=requirement_id,
                type=draft.type,
                category=draft.category,
                name=draft.name,
                description=draft.description,
                parameters=draft.parameters,
            )
        )
    return tuple(requirements)


__all__ = ["TYPE_ALIASES", "categorize", "parse_requirements"]
