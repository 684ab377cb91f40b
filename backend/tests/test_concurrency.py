"""
Concurrency tests for stock movements.

Runs against a file-backed SQLite database so each worker thread gets its
own connection, the same way concurrent requests do.

Verifies:
- Two concurrent decrements of 6 against stock 10: exactly one succeeds
- Two concurrent sales of 6 against stock 10: exactly one is recorded
- A guard miss inside a sale commit surfaces as ConflictOnCommitError
"""

import os
import tempfile
import threading
from decimal import Decimal

import pytest
from sqlalchemy import update

from waterstation import create_app
from waterstation.config import TestingConfig
from waterstation.extensions import db
from waterstation.errors import ConflictOnCommitError, InsufficientStockError
from waterstation.models import Customer, Item, Sale, StockHistoryEntry
from waterstation.services import sales_service, stock_service
from waterstation.services.stock_service import DECREASE, apply_movement, get_item
from waterstation.services.concurrency import transaction


@pytest.fixture
def file_app():
    tmpdir = tempfile.TemporaryDirectory()
    db_path = os.path.join(tmpdir.name, "concurrency.db")

    class FileDbConfig(TestingConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{db_path}"

    app = create_app(FileDbConfig)
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.session.remove()
        db.engine.dispose()
    tmpdir.cleanup()


@pytest.fixture
def seeded(file_app):
    with file_app.app_context():
        item = Item(name="5 Gallon Refill", price=Decimal("25.00"), current_stock=10)
        customer = Customer(name="Walk-in", phone="09170000000", address="Counter")
        db.session.add_all([item, customer])
        db.session.commit()
        ids = {"item_id": item.id, "customer_id": customer.id}
        db.session.remove()
    return ids


def _run_concurrently(app, targets):
    """Start all targets behind a barrier; return [(ok, result_or_exc)]."""
    barrier = threading.Barrier(len(targets))
    results = []
    lock = threading.Lock()

    def worker(fn):
        with app.app_context():
            try:
                barrier.wait()
                value = fn()
                with lock:
                    results.append((True, value))
            except Exception as exc:
                with lock:
                    results.append((False, exc))
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker, args=(fn,)) for fn in targets]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


class TestConcurrentStock:

    def test_concurrent_decrements_never_oversell(self, file_app, seeded):
        item_id = seeded["item_id"]

        results = _run_concurrently(file_app, [
            lambda: stock_service.adjust_stock(item_id, 6, "decrease").new_stock,
            lambda: stock_service.adjust_stock(item_id, 6, "decrease").new_stock,
        ])

        successes = [value for ok, value in results if ok]
        failures = [value for ok, value in results if not ok]
        assert successes == [4]
        assert len(failures) == 1
        assert isinstance(failures[0], InsufficientStockError)
        assert failures[0].available == 4

        with file_app.app_context():
            assert db.session.get(Item, item_id).current_stock == 4
            assert db.session.query(StockHistoryEntry).filter_by(item_id=item_id).count() == 1

    def test_concurrent_sales_record_only_one(self, file_app, seeded):
        item_id, customer_id = seeded["item_id"], seeded["customer_id"]

        def sell(invoice):
            return lambda: sales_service.create_sale({
                "invoiceId": invoice,
                "customerId": customer_id,
                "items": [{"itemId": item_id, "quantity": 6, "price": 25}],
            }).invoice_id

        results = _run_concurrently(file_app, [sell("INV-A"), sell("INV-B")])

        assert sum(1 for ok, _ in results if ok) == 1
        failure = next(value for ok, value in results if not ok)
        assert isinstance(failure, (InsufficientStockError, ConflictOnCommitError))

        with file_app.app_context():
            assert db.session.get(Item, item_id).current_stock == 4
            assert db.session.query(Sale).count() == 1


class TestGuardMiss:

    def test_stale_read_inside_sale_commit_is_conflict(self, file_app, seeded):
        item_id = seeded["item_id"]

        with file_app.app_context():
            session = db.session
            with pytest.raises(ConflictOnCommitError) as exc:
                with transaction(session):
                    item = get_item(item_id, session=session)
                    # Another writer drew stock after our read
                    session.execute(
                        update(Item)
                        .where(Item.id == item_id)
                        .values(current_stock=2)
                        .execution_options(synchronize_session=False)
                    )
                    apply_movement(
                        item,
                        quantity=6,
                        direction=DECREASE,
                        reason="Sale: INV-X",
                        acting_user_id=None,
                        conflict_on_guard_miss=True,
                        session=session,
                    )

            assert exc.value.status_code == 409
            assert exc.value.details["retryable"] is True
            assert exc.value.details["available"] == 2

            session.expire_all()
            assert session.get(Item, item_id).current_stock == 10
            assert session.query(StockHistoryEntry).count() == 0
            db.session.remove()
