"""Tests for JSONL seed loading and booking export."""

import json
from datetime import date
from pathlib import Path

import pytest

from conftest import TOMORROW
from sessionbook.errors import UnknownRate
from sessionbook.loader import load_records, load_seed_jsonl, read_jsonl, save_bookings_jsonl
from sessionbook.repository import ProviderDirectory

SAMPLE = Path(__file__).resolve().parent.parent / "data" / "sample_provider.jsonl"

RATE = {"kind": "rate", "provider_id": "t9", "id": "r50", "title": "Video",
        "duration_minutes": 50, "price": "60"}
WINDOW = {"kind": "window", "provider_id": "t9", "date": "2026-03-03",
          "start_time": "09:00", "end_time": "12:00", "enabled_rate_ids": ["r50"]}


class TestLoadSample:
    def test_loads_provider(self):
        directory, _ = load_seed_jsonl(SAMPLE)
        profile = directory.get("t1")
        assert [r.id for r in profile.catalog] == ["r50", "r90", "sup60"]
        assert len(profile.availability) == 3
        assert [c.id for c in profile.courses] == ["emdr8"]
        capped = profile.availability.window_containing(date(2026, 3, 3), 840)
        assert capped.max_occupancy_minutes == 60

    def test_course_booking_inherits_package_fields(self):
        _, ledger = load_seed_jsonl(SAMPLE)
        course = ledger.get_course_booking("ccb1")
        assert course.rate_id == "r90"
        assert course.total_sessions == 8
        assert course.course_title == "EMDR Course"
        assert course.remaining == 6

    def test_credit_listing(self):
        _, ledger = load_seed_jsonl(SAMPLE)
        sources = ledger.list_credit_sources("c1", "t1")
        assert sources.total_remaining == 7


class TestLoadRecords:
    def test_windows_before_rates_in_file_order(self):
        directory, _ = load_records([WINDOW, RATE])
        assert len(directory.get("t9").availability) == 1

    def test_merges_into_existing_provider(self):
        directory = ProviderDirectory()
        load_records([RATE], directory)
        load_records([WINDOW], directory)
        profile = directory.get("t9")
        assert "r50" in profile.catalog
        assert len(profile.availability) == 1

    def test_window_with_unpublished_rate(self):
        with pytest.raises(UnknownRate):
            load_records([WINDOW])

    def test_course_with_unpublished_rate(self):
        course = {"kind": "course", "provider_id": "t9", "id": "c", "rate_id": "r90",
                  "total_sessions": 4, "total_price": "200"}
        with pytest.raises(ValueError, match="unpublished rate"):
            load_records([RATE, course])

    def test_unknown_kind(self):
        with pytest.raises(ValueError, match="kind"):
            load_records([{"kind": "invoice", "provider_id": "t9"}])

    def test_missing_provider(self):
        with pytest.raises(ValueError, match="provider_id"):
            load_records([{**RATE, "provider_id": ""}])

    def test_inverted_window_rejected(self):
        bad = {**WINDOW, "start_time": "12:00", "end_time": "09:00"}
        with pytest.raises(ValueError):
            load_records([RATE, bad])


class TestJsonl:
    def test_bad_line_reports_line_number(self, tmp_path):
        path = tmp_path / "seed.jsonl"
        path.write_text(json.dumps(RATE) + "\n{not json\n", encoding="utf-8")
        with pytest.raises(ValueError, match=":2:"):
            read_jsonl(path)

    def test_blank_lines_skipped(self, tmp_path):
        path = tmp_path / "seed.jsonl"
        path.write_text("\n" + json.dumps(RATE) + "\n\n", encoding="utf-8")
        assert read_jsonl(path) == [RATE]

    def test_export_bookings(self, core, tmp_path):
        core.commit_booking("t1", "c1", "r50", TOMORROW, 600)
        core.commit_booking("t1", "c2", "r50", TOMORROW, 660)
        path = tmp_path / "out" / "bookings.jsonl"
        assert save_bookings_jsonl(core.bookings.all(), path) == 2
        rows = read_jsonl(path)
        assert [r["start_minutes"] for r in rows] == [600, 660]
        assert rows[0]["payment_source"] == {"kind": "cash", "source_id": None}
