from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from hotelbot.services.dedup import MessageDeduplicator


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_same_message_id_is_admitted_once() -> None:
    dedup = MessageDeduplicator(capacity=10)

    assert dedup.check_and_add("wamid.1", tenant_id="hotel-a") is True
    assert dedup.check_and_add("wamid.1", tenant_id="hotel-a") is False
    assert dedup.seen("wamid.1", tenant_id="hotel-a") is True


def test_ids_are_scoped_per_tenant() -> None:
    dedup = MessageDeduplicator(capacity=10)

    assert dedup.check_and_add("wamid.1", tenant_id="hotel-a") is True
    assert dedup.check_and_add("wamid.1", tenant_id="hotel-b") is True


def test_oldest_ids_are_evicted_first() -> None:
    dedup = MessageDeduplicator(capacity=2)

    dedup.check_and_add("m1")
    dedup.check_and_add("m2")
    dedup.check_and_add("m3")

    assert len(dedup) == 2
    assert dedup.seen("m1") is False
    assert dedup.seen("m2") is True
    assert dedup.check_and_add("m1") is True


def test_ids_expire_after_max_age() -> None:
    clock = _Clock()
    dedup = MessageDeduplicator(capacity=100, max_age_seconds=60, clock=clock)

    dedup.check_and_add("m1")
    clock.now += 30
    assert dedup.check_and_add("m1") is False

    clock.now += 31
    assert dedup.check_and_add("m1") is True


def test_empty_id_is_never_deduplicated() -> None:
    dedup = MessageDeduplicator(capacity=10)

    assert dedup.check_and_add("") is True
    assert dedup.check_and_add("") is True
    assert len(dedup) == 0


def test_concurrent_duplicates_admit_exactly_one() -> None:
    dedup = MessageDeduplicator(capacity=1000)

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: dedup.check_and_add("wamid.same", tenant_id="t"), range(64)))

    assert results.count(True) == 1


def test_capacity_must_be_positive() -> None:
    with pytest.raises(ValueError):
        MessageDeduplicator(capacity=0)
