"""Certificate number allocation.

Numbers look like ``{prefix}-{sequence:03d}`` (``CERT-001``, ``CERT-1000``).
Sequences start at 1 per event and live in ``certificate_counters``; the
counter advance is a compare-and-set ``UPDATE`` that joins the caller's
transaction, so a rolled back generation never consumes a number.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError

from .certificate_errors import AllocationConflict

logger = logging.getLogger("eventcert.numbers")

SEQUENCE_WIDTH = 3
FALLBACK_PREFIX = "CERT"

_clock_lock = threading.Lock()
_last_clock_ms = 0


def monotonic_ms() -> int:
    """Wall-clock milliseconds that never repeat or go backwards in-process."""
    global _last_clock_ms
    with _clock_lock:
        now = time.time_ns() // 1_000_000
        if now <= _last_clock_ms:
            now = _last_clock_ms + 1
        _last_clock_ms = now
        return now


def normalize_prefix(prefix: Optional[str]) -> str:
    return (prefix or "").strip().rstrip("-").strip()


def format_certificate_number(prefix: str, sequence: int) -> str:
    return f"{normalize_prefix(prefix)}-{sequence:0{SEQUENCE_WIDTH}d}"


def fallback_certificate_number(
    event_id, user_id, clock: Callable[[], int] = monotonic_ms
) -> str:
    return f"{FALLBACK_PREFIX}-{str(event_id)[:8]}-{str(user_id)[:8]}-{clock()}"


@dataclass(frozen=True)
class AllocatedNumber:
    number: str
    sequence: int


class NumberAllocator:
    """Hands out per-event certificate numbers inside a SQLAlchemy session.

    The allocation is not committed here. The caller commits it together with
    the certificate row, or rolls both back.
    """

    def __init__(self, session, clock: Callable[[], int] = monotonic_ms):
        self.session = session
        self.clock = clock

    def _counter_table(self):
        from ..models import CertificateCounter

        return CertificateCounter.__table__

    def _read_sequence(self, event_id) -> Optional[int]:
        table = self._counter_table()
        return self.session.execute(
            select(table.c.last_sequence).where(table.c.event_id == event_id)
        ).scalar_one_or_none()

    def _create_counter(self, event_id) -> int:
        table = self._counter_table()
        try:
            self.session.execute(insert(table).values(event_id=event_id, last_sequence=0))
        except IntegrityError as exc:
            logger.info("[CERT-NUM] event=%s counter created concurrently", event_id)
            raise AllocationConflict(
                f"certificate counter for event {event_id} was created concurrently"
            ) from exc
        return 0

    def _advance(self, event_id) -> int:
        seen = self._read_sequence(event_id)
        if seen is None:
            seen = self._create_counter(event_id)
        table = self._counter_table()
        result = self.session.execute(
            update(table)
            .where(table.c.event_id == event_id)
            .where(table.c.last_sequence == seen)
            .values(last_sequence=seen + 1)
        )
        if result.rowcount != 1:
            logger.info(
                "[CERT-NUM] event=%s lost sequence race at %s", event_id, seen + 1
            )
            raise AllocationConflict(
                f"certificate sequence {seen + 1} for event {event_id} was taken"
            )
        return seen + 1

    def allocate(self, event_id, prefix: Optional[str], user_id=None) -> AllocatedNumber:
        sequence = self._advance(event_id)
        if normalize_prefix(prefix):
            number = format_certificate_number(prefix, sequence)
        else:
            number = fallback_certificate_number(event_id, user_id, self.clock)
        logger.info(
            "[CERT-NUM] event=%s sequence=%s number=%s", event_id, sequence, number
        )
        return AllocatedNumber(number=number, sequence=sequence)

    def next_number(self, event_id, prefix: Optional[str], user_id=None) -> str:
        return self.allocate(event_id, prefix, user_id).number
