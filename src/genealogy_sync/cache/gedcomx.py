"""Conversion of raw GEDCOM X person documents into ScrapedPersonData.

FamilySearch returns GEDCOM X (``application/x-gedcomx-v1+json``). Cache files
written by older tooling hold that document as-is; the read path converts it
here so the rest of the system only sees the canonical snapshot shape.
"""
from __future__ import annotations

from typing import Any

from ..models.person import VitalEvent
from ..models.provider import ScrapedPersonData

GEDCOMX = "http://gedcomx.org/"
BIRTH = GEDCOMX + "Birth"
DEATH = GEDCOMX + "Death"
OCCUPATION = GEDCOMX + "Occupation"
MALE = GEDCOMX + "Male"
FEMALE = GEDCOMX + "Female"

FAMILYSEARCH_PERSON_URL = "https://www.familysearch.org/tree/person/details/{id}"


def is_raw_gedcomx(payload: Any) -> bool:
    """A payload is raw GEDCOM X when it has a ``persons`` list and no ``scrapedData``."""
    return (
        isinstance(payload, dict)
        and isinstance(payload.get("persons"), list)
        and "scrapedData" not in payload
    )


def _dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _dicts(value: Any) -> list[dict[str, Any]]:
    """The dict members of a node list; anything else in the document is skipped."""
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, dict)]


def _text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def primary_person(payload: dict[str, Any]) -> dict[str, Any] | None:
    persons = payload.get("persons") or []
    if not persons or not isinstance(persons[0], dict):
        return None
    return persons[0]


def _full_text(name: dict[str, Any]) -> str | None:
    for form in _dicts(name.get("nameForms")):
        text = _text(form.get("fullText"))
        if text:
            return text
    return None


def _names(person: dict[str, Any]) -> tuple[str | None, list[str]]:
    display_name = _text(_dict(person.get("display")).get("name"))
    primary: str | None = None
    alternates: list[str] = []
    for name in _dicts(person.get("names")):
        text = _full_text(name)
        if not text:
            continue
        if name.get("preferred") and primary is None:
            primary = text
        else:
            alternates.append(text)
    name = display_name or primary or (alternates.pop(0) if alternates else None)
    # The display name can duplicate a non-preferred form
    alternates = [a for a in dict.fromkeys(alternates) if a != name]
    return name, alternates


def _gender(person: dict[str, Any]) -> str | None:
    gender_type = _dict(person.get("gender")).get("type")
    if gender_type == MALE:
        return "male"
    if gender_type == FEMALE:
        return "female"
    display_gender = _text(_dict(person.get("display")).get("gender"))
    return display_gender.lower() if display_gender else None


def _event(person: dict[str, Any], fact_type: str, display_prefix: str) -> VitalEvent | None:
    for fact in _dicts(person.get("facts")):
        if fact.get("type") != fact_type:
            continue
        date = _text(_dict(fact.get("date")).get("original"))
        place = _text(_dict(fact.get("place")).get("original"))
        if date or place:
            return VitalEvent(date=date, place=place)
    display = _dict(person.get("display"))
    date = _text(display.get(f"{display_prefix}Date"))
    place = _text(display.get(f"{display_prefix}Place"))
    if date or place:
        return VitalEvent(date=date, place=place)
    return None


def _occupations(person: dict[str, Any]) -> list[str]:
    values = []
    for fact in _dicts(person.get("facts")):
        if fact.get("type") == OCCUPATION:
            value = _text(fact.get("value"))
            if value:
                values.append(value)
    return list(dict.fromkeys(values))


def _parents(payload: dict[str, Any], person: dict[str, Any]) -> tuple[str | None, str | None]:
    families = _dicts(_dict(person.get("display")).get("familiesAsChild"))
    if families:
        family = families[0]
        father = _text(_dict(family.get("parent1")).get("resourceId"))
        mother = _text(_dict(family.get("parent2")).get("resourceId"))
        if father or mother:
            return father, mother

    person_id = person.get("id")
    for rel in _dicts(payload.get("childAndParentsRelationships")):
        if _dict(rel.get("child")).get("resourceId") != person_id:
            continue
        father = _text(_dict(rel.get("parent1") or rel.get("father")).get("resourceId"))
        mother = _text(_dict(rel.get("parent2") or rel.get("mother")).get("resourceId"))
        if father or mother:
            return father, mother
    return None, None


def _children_count(person: dict[str, Any]) -> int | None:
    families = _dict(person.get("display")).get("familiesAsParent")
    if not isinstance(families, list):
        return None
    return sum(len(_dicts(f.get("children"))) for f in _dicts(families))


def gedcomx_to_scraped(payload: dict[str, Any], external_id: str) -> ScrapedPersonData:
    """Convert a GEDCOM X document to the snapshot shape.

    The conversion has no side effects and returns an empty snapshot (only
    ``external_id`` and ``source_url`` set) when the document holds no person.
    """
    source_url = FAMILYSEARCH_PERSON_URL.format(id=external_id)
    person = primary_person(payload)
    if person is None:
        return ScrapedPersonData(external_id=external_id, source_url=source_url)

    name, alternates = _names(person)
    father, mother = _parents(payload, person)
    return ScrapedPersonData(
        external_id=external_id,
        name=name,
        gender=_gender(person),
        birth=_event(person, BIRTH, "birth"),
        death=_event(person, DEATH, "death"),
        alternate_names=alternates,
        occupations=_occupations(person),
        father_external_id=father,
        mother_external_id=mother,
        children_count=_children_count(person),
        source_url=source_url,
    )
