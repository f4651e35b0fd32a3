"""Load provider and credit seed data from JSONL.

One JSON object per line, tagged with ``kind``::

    {"kind": "rate", "provider_id": "t1", "id": "r50", "title": "Video", ...}
    {"kind": "window", "provider_id": "t1", "date": "2026-03-02", "start_time": "09:00", ...}
    {"kind": "course", "provider_id": "t1", "id": "emdr", "rate_id": "r50", ...}
    {"kind": "course_booking", "provider_id": "t1", "counterparty_id": "c1", "course_id": "emdr", ...}
    {"kind": "token", "provider_id": "t1", "counterparty_id": "c1", "rate_id": "r50", "id": "pbt1"}

Rates are applied before windows regardless of line order, so windows can
be validated against the catalog.
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from collections.abc import Iterable
from pathlib import Path

from sessionbook.ledger import CreditLedger
from sessionbook.models.availability import AvailabilityWindow
from sessionbook.models.booking import Booking
from sessionbook.models.credits import ClientCourseBooking, CoursePackage, ProBonoToken
from sessionbook.models.rates import SessionRate
from sessionbook.provider import AvailabilityStore, ProviderProfile, RateCatalog
from sessionbook.repository import ProviderDirectory

log = logging.getLogger("sessionbook.loader")

KINDS = ("rate", "window", "course", "course_booking", "token")


def read_jsonl(path: str | Path) -> list[dict]:
    """Parse every non-empty line of a JSONL file."""
    path = Path(path)
    records: list[dict] = []
    for lineno, line in enumerate(path.read_text(encoding="utf-8").splitlines(), 1):
        line = line.strip()
        if not line:
            continue
        try:
            records.append(json.loads(line))
        except json.JSONDecodeError as exc:
            raise ValueError(f"{path}:{lineno}: invalid JSON ({exc.msg})") from exc
    return records


def load_records(
    records: Iterable[dict],
    directory: ProviderDirectory | None = None,
    ledger: CreditLedger | None = None,
) -> tuple[ProviderDirectory, CreditLedger]:
    """Apply seed records to a directory and ledger (new ones if not given)."""
    directory = directory if directory is not None else ProviderDirectory()
    ledger = ledger if ledger is not None else CreditLedger()

    grouped: dict[str, dict[str, list[dict]]] = defaultdict(lambda: defaultdict(list))
    for record in records:
        record = dict(record)
        kind = record.pop("kind", "")
        if kind not in KINDS:
            raise ValueError(f"Unknown seed record kind: {kind!r}")
        provider_id = record.get("provider_id", "")
        if not provider_id:
            raise ValueError(f"Seed {kind} record has no provider_id")
        grouped[provider_id][kind].append(record)

    for provider_id, by_kind in grouped.items():
        existing = directory.get_or_create(provider_id)
        rates = list(existing.catalog) + [
            SessionRate(**_without(r, "provider_id")) for r in by_kind["rate"]
        ]
        catalog = RateCatalog(rates)
        availability = AvailabilityStore(catalog, existing.availability)
        for raw in by_kind["window"]:
            availability.add(AvailabilityWindow(**_without(raw, "provider_id")))

        courses = {c.id: c for c in existing.courses}
        for raw in by_kind["course"]:
            course = CoursePackage(**raw)
            if course.rate_id not in catalog:
                raise ValueError(f"Course {course.id} uses unpublished rate {course.rate_id}")
            courses[course.id] = course

        directory.add(ProviderProfile(
            provider_id, catalog, availability, courses=list(courses.values()),
        ))

        for raw in by_kind["course_booking"]:
            ledger.add_course_booking(_course_booking(raw, courses))
        for raw in by_kind["token"]:
            ledger.add_token(ProBonoToken(**raw))

        log.info(
            "Loaded provider %s: %d rates, %d windows, %d courses, %d course bookings, %d tokens",
            provider_id, len(catalog), len(availability), len(courses),
            len(by_kind["course_booking"]), len(by_kind["token"]),
        )

    return directory, ledger


def load_seed_jsonl(
    path: str | Path,
    directory: ProviderDirectory | None = None,
    ledger: CreditLedger | None = None,
) -> tuple[ProviderDirectory, CreditLedger]:
    return load_records(read_jsonl(path), directory, ledger)


def save_bookings_jsonl(bookings: Iterable[Booking], path: str | Path) -> int:
    """Export booking records, one per line. Returns the count written."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = [json.dumps(b.model_dump(mode="json")) for b in bookings]
    path.write_text("".join(line + "\n" for line in lines), encoding="utf-8")
    return len(lines)


def _without(record: dict, *keys: str) -> dict:
    return {k: v for k, v in record.items() if k not in keys}


def _course_booking(raw: dict, courses: dict[str, CoursePackage]) -> ClientCourseBooking:
    """Build a course booking, filling course-level fields from its package."""
    data = dict(raw)
    course = courses.get(data.get("course_id", ""))
    if course is not None:
        data.setdefault("rate_id", course.rate_id)
        data.setdefault("total_sessions", course.total_sessions)
        data.setdefault("course_title", course.title)
    return ClientCourseBooking(**data)
