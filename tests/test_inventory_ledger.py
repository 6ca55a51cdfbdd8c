import threading

import pytest

from merchies.domain.errors import ReservationStateError
from merchies.domain.outcomes import InsufficientStock, ReservationHandle
from merchies.services.inventory_ledger import InventoryLedger


@pytest.fixture
def product(make_product):
    return make_product(inventory={"M": 3, "L": 1})


@pytest.fixture
def ledger(db):
    return InventoryLedger(db)


def test_reserve_decrements(db, ledger, product):
    handle = ledger.reserve(product.id, "M", 2)
    db.commit()

    assert isinstance(handle, ReservationHandle)
    assert ledger.available(product.id, "M") == 1


def test_reserve_insufficient_is_an_outcome(db, ledger, product):
    result = ledger.reserve(product.id, "L", 2)

    assert result == InsufficientStock(product_id=product.id, size="L", requested=2, available=1)
    assert ledger.available(product.id, "L") == 1


def test_reserve_unknown_size_reports_zero(ledger, product):
    result = ledger.reserve(product.id, "XXL", 1)
    assert isinstance(result, InsufficientStock)
    assert result.available == 0


def test_reserve_rejects_non_positive_quantity(ledger, product):
    with pytest.raises(ValueError):
        ledger.reserve(product.id, "M", 0)


def test_commit_keeps_counters(db, ledger, product):
    handle = ledger.reserve(product.id, "M", 1)
    ledger.commit(handle)
    ledger.commit(handle)  # repeat is harmless
    db.commit()

    assert ledger.available(product.id, "M") == 2


def test_release_restores_exactly_once(db, ledger, product):
    handle = ledger.reserve(product.id, "M", 2)

    assert ledger.release(handle) is True
    assert ledger.release(handle) is False
    db.commit()

    assert ledger.available(product.id, "M") == 3


def test_release_after_commit_restores(db, ledger, product):
    handle = ledger.reserve(product.id, "M", 1)
    ledger.commit(handle)

    assert ledger.release(handle)
    assert ledger.available(product.id, "M") == 3


def test_commit_after_release_fails(ledger, product):
    handle = ledger.reserve(product.id, "M", 1)
    ledger.release(handle)

    with pytest.raises(ReservationStateError):
        ledger.commit(handle)


def test_restock_and_initialize_validation(db, ledger, product):
    assert ledger.restock(product.id, "L", 4) == 5
    with pytest.raises(ValueError):
        ledger.restock(product.id, "L", 0)
    with pytest.raises(ValueError):
        ledger.initialize("another", {"M": -1})


def test_last_unit_race_has_one_winner(db, session_factory, product):
    """Eight buyers, one unit of L left: exactly one reservation succeeds."""
    db.close()
    workers = 8
    barrier = threading.Barrier(workers)
    results = []
    results_lock = threading.Lock()

    def buy():
        session = session_factory()
        try:
            barrier.wait()
            result = InventoryLedger(session).reserve(product.id, "L", 1)
            session.commit()
            with results_lock:
                results.append(result)
        finally:
            session.close()

    threads = [threading.Thread(target=buy) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    winners = [r for r in results if isinstance(r, ReservationHandle)]
    assert len(results) == workers
    assert len(winners) == 1

    check = session_factory()
    try:
        assert InventoryLedger(check).available(product.id, "L") == 0
    finally:
        check.close()
