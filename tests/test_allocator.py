import threading
from unittest import mock

import pytest
from django.db import DatabaseError, connections

from automation.exceptions import AllocationContention
from inventory.allocator import KeyAllocator
from inventory.models import OTTKey


@pytest.mark.django_db
def test_reserve_takes_oldest_available_key(make_key):
    first = make_key()
    make_key()

    key = KeyAllocator().reserve('a@example.com')

    assert key.pk == first.pk
    assert key.status == OTTKey.ASSIGNED
    assert key.assigned_email == 'a@example.com'
    assert key.assigned_date is not None


@pytest.mark.django_db
def test_reserve_never_hands_out_the_same_key_twice(make_key):
    make_key()
    make_key()
    allocator = KeyAllocator()

    k1 = allocator.reserve('a@example.com')
    k2 = allocator.reserve('b@example.com')

    assert k1.pk != k2.pk
    assert allocator.reserve('c@example.com') is None
    assert OTTKey.objects.filter(status=OTTKey.ASSIGNED).count() == 2


@pytest.mark.django_db
def test_reserve_returns_none_when_pool_empty(make_key):
    make_key(status=OTTKey.USED, assigned_email='old@example.com')
    assert KeyAllocator().reserve('a@example.com') is None


@pytest.mark.django_db
def test_reserve_filters_by_platform(make_key):
    make_key(product='Netflix')
    ottplay = make_key(product='OTTplay')
    allocator = KeyAllocator()

    assert allocator.available_count('ottplay') == 1
    assert allocator.reserve('a@example.com', platform='OTTPLAY').pk == ottplay.pk
    assert allocator.reserve('b@example.com', platform='ottplay') is None


@pytest.mark.django_db
def test_reserve_raises_when_every_attempt_loses(make_key):
    key = make_key()
    allocator = KeyAllocator(max_attempts=3)

    # Someone else always takes the candidate between our read and our update
    with mock.patch.object(allocator, '_claim', return_value=False) as claim:
        with pytest.raises(AllocationContention) as exc:
            allocator.reserve('a@example.com')

    assert claim.call_count == 3
    assert exc.value.attempts == 3
    assert exc.value.retryable
    key.refresh_from_db()
    assert key.status == OTTKey.AVAILABLE


@pytest.mark.django_db
def test_reserve_retries_after_losing_a_race(make_key):
    taken = make_key()
    spare = make_key()
    allocator = KeyAllocator()
    real_claim = allocator._claim

    def racing_claim(key_id, email):
        if key_id == taken.pk:
            OTTKey.objects.filter(pk=taken.pk).update(status=OTTKey.ASSIGNED, assigned_email='rival@example.com')
            return False
        return real_claim(key_id, email)

    with mock.patch.object(allocator, '_claim', side_effect=racing_claim):
        key = allocator.reserve('a@example.com')

    assert key.pk == spare.pk


@pytest.mark.django_db
def test_reserve_specific_only_takes_available_key(make_key):
    free = make_key()
    used = make_key(status=OTTKey.ASSIGNED, assigned_email='x@example.com')
    allocator = KeyAllocator()

    assert allocator.reserve_specific(used.pk, 'a@example.com') is None
    assert allocator.reserve_specific(free.pk, 'a@example.com').assigned_email == 'a@example.com'
    assert allocator.reserve_specific(free.pk, 'b@example.com') is None


@pytest.mark.django_db
def test_release_only_undoes_own_assignment(make_key):
    allocator = KeyAllocator()
    make_key()
    key = allocator.reserve('a@example.com')

    assert allocator.release(key, 'b@example.com') is False
    assert allocator.release(key, 'a@example.com') is True

    key.refresh_from_db()
    assert key.status == OTTKey.AVAILABLE
    assert key.assigned_email is None
    assert key.assigned_date is None


@pytest.mark.django_db(transaction=True)
def test_concurrent_reserve_assigns_one_key_once(make_key):
    key = make_key()
    workers = 8
    barrier = threading.Barrier(workers)
    won, lost = [], []

    def worker(n):
        email = f'racer{n}@example.com'
        try:
            barrier.wait()
            reserved = KeyAllocator().reserve(email)
            (won if reserved is not None else lost).append(email)
        except (AllocationContention, DatabaseError):
            lost.append(email)
        finally:
            connections.close_all()

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(won) + len(lost) == workers
    assert len(won) <= 1
    key.refresh_from_db()
    if won:
        assert key.status == OTTKey.ASSIGNED
        assert key.assigned_email == won[0]
    else:
        assert key.status == OTTKey.AVAILABLE
    assert OTTKey.objects.filter(status=OTTKey.ASSIGNED).count() == len(won)
