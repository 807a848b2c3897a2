"""Builders shared by the test modules."""
from __future__ import annotations

from datetime import UTC, datetime

from genealogy_sync.models import Provider, ProviderCacheEntry, ScrapedPersonData


def make_entry(
    provider: Provider,
    external_id: str,
    person_id: str | None = None,
    scraped_at: datetime | None = None,
    **data,
) -> ProviderCacheEntry:
    return ProviderCacheEntry(
        person_id=person_id,
        provider=provider,
        external_id=external_id,
        scraped_data=ScrapedPersonData(external_id=external_id, **data),
        scraped_at=scraped_at or datetime.now(UTC),
    )


def gedcomx_person(
    person_id: str,
    name: str,
    gender: str = "Male",
    birth_date: str | None = None,
    birth_place: str | None = None,
    parents: tuple[str | None, str | None] = (None, None),
    children: int | None = None,
    alternate_names: tuple[str, ...] = (),
    occupations: tuple[str, ...] = (),
) -> dict:
    """Minimal GEDCOM X document with one person."""
    facts: list[dict] = []
    if birth_date or birth_place:
        facts.append(
            {
                "type": "http://gedcomx.org/Birth",
                "date": {"original": birth_date},
                "place": {"original": birth_place},
            }
        )
    for occupation in occupations:
        facts.append({"type": "http://gedcomx.org/Occupation", "value": occupation})

    names = [{"preferred": True, "nameForms": [{"fullText": name}]}]
    names += [{"preferred": False, "nameForms": [{"fullText": alt}]} for alt in alternate_names]

    display: dict = {"name": name, "gender": gender}
    father, mother = parents
    if father or mother:
        family = {}
        if father:
            family["parent1"] = {"resourceId": father}
        if mother:
            family["parent2"] = {"resourceId": mother}
        display["familiesAsChild"] = [family]
    if children is not None:
        display["familiesAsParent"] = [{"children": [{"resourceId": f"C{i}"} for i in range(children)]}]

    return {
        "persons": [
            {
                "id": person_id,
                "gender": {"type": f"http://gedcomx.org/{gender}"},
                "names": names,
                "facts": facts,
                "display": display,
            }
        ]
    }
