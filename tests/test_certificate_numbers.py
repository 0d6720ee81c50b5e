import re

import pytest

from eventcert.app import db
from eventcert.models import CertificateCounter
from eventcert.shared import certificate_numbers
from eventcert.shared.certificate_errors import AllocationConflict
from eventcert.shared.certificate_numbers import (
    NumberAllocator,
    fallback_certificate_number,
    format_certificate_number,
    monotonic_ms,
    normalize_prefix,
)


@pytest.mark.parametrize(
    "prefix,sequence,expected",
    [
        ("CERT", 1, "CERT-001"),
        ("PSU-2025", 42, "PSU-2025-042"),
        (" EVT- ", 7, "EVT-007"),
        ("CERT", 1000, "CERT-1000"),
    ],
)
def test_format_certificate_number(prefix, sequence, expected):
    assert format_certificate_number(prefix, sequence) == expected


def test_normalize_prefix():
    assert normalize_prefix(None) == ""
    assert normalize_prefix("  ") == ""
    assert normalize_prefix("ABC--") == "ABC"


def test_fallback_number_combines_ids_and_clock():
    number = fallback_certificate_number(
        "0123456789abcdef", "fedcba9876543210", clock=lambda: 1700000000000
    )
    assert number == "CERT-01234567-fedcba98-1700000000000"


def test_monotonic_clock_never_repeats(monkeypatch):
    monkeypatch.setattr(certificate_numbers.time, "time_ns", lambda: 5_000_000_000)
    first = monotonic_ms()
    second = monotonic_ms()
    assert second > first


def test_sequences_increase_per_event(app, make_event):
    event_a = make_event()
    event_b = make_event(title="Other")
    allocator = NumberAllocator(db.session)

    issued = [allocator.next_number(event_a.id, "CERT") for _ in range(3)]
    other = allocator.next_number(event_b.id, "CERT")

    assert issued == ["CERT-001", "CERT-002", "CERT-003"]
    assert other == "CERT-001"


def test_allocation_without_prefix_still_records_sequence(app, make_event):
    event = make_event()
    allocator = NumberAllocator(db.session, clock=lambda: 123)
    allocated = allocator.allocate(event.id, "", user_id=77)
    assert allocated.sequence == 1
    assert re.fullmatch(rf"CERT-{event.id}-77-123", allocated.number)


def test_rollback_releases_the_sequence(app, make_event):
    event = make_event()
    allocator = NumberAllocator(db.session)
    assert allocator.next_number(event.id, "CERT") == "CERT-001"
    db.session.rollback()
    assert allocator.next_number(event.id, "CERT") == "CERT-001"
    db.session.commit()
    assert db.session.get(CertificateCounter, event.id).last_sequence == 1


def test_stale_read_raises_allocation_conflict(app, make_event, monkeypatch):
    event = make_event()
    allocator = NumberAllocator(db.session)
    allocator.next_number(event.id, "CERT")
    db.session.commit()

    # another writer advanced the counter after this one read it
    monkeypatch.setattr(allocator, "_read_sequence", lambda event_id: 0)
    with pytest.raises(AllocationConflict):
        allocator.next_number(event.id, "CERT")
