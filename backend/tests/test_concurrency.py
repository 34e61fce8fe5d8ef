"""
Concurrency tests against a file-backed SQLite database.

Verifies:
- Several cashiers racing for the last unit: exactly one sale, stock ends at 0
- Document numbers stay unique under concurrent allocation
"""

import threading

import pytest

from trustpos import create_app
from trustpos.errors import InsufficientStock
from trustpos.extensions import db
from trustpos.models import Order, Product, StockMovement, User
from trustpos.services import auth_service, order_service, products_service
from trustpos.services.concurrency import run_with_retry
from trustpos.services.document_service import next_document_number
from trustpos.validation import parse_checkout_request


@pytest.fixture(scope='module')
def file_app(tmp_path_factory):
    db_path = tmp_path_factory.mktemp("concurrency") / "pos.db"
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f'sqlite:///{db_path}',
        'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'timeout': 30}},
        'BCRYPT_ROUNDS': 4,
        'CHECKOUT_RETRY_ATTEMPTS': 10,
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()


@pytest.fixture
def clean_file_db(file_app):
    with file_app.app_context():
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        yield file_app


def run_threads(app, count, target):
    barrier = threading.Barrier(count)
    results = []
    lock = threading.Lock()

    def worker(index):
        with app.app_context():
            barrier.wait()
            try:
                outcome = target(index)
            except Exception as exc:  # collected for assertions
                outcome = exc
            finally:
                db.session.remove()
            with lock:
                results.append(outcome)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=120)
    return results


def test_last_unit_sold_once(clean_file_db):
    agents = [
        auth_service.create_user(f"cashier{i}", f"cashier{i}@trustpos.test", "Password123!", role="SALES_AGENT").id
        for i in range(4)
    ]
    product_id = products_service.create_product({
        "sku": "LAST-ONE", "name": "Last one", "price_cents": 1000, "stock_quantity": 1,
    }).id

    def sell(index):
        agent = db.session.get(User, agents[index])
        request = parse_checkout_request({"items": [{"product_id": product_id, "quantity": 1}]})
        return order_service.create_order(request, agent).order_number

    results = run_threads(clean_file_db, len(agents), sell)

    successes = [r for r in results if isinstance(r, str)]
    failures = [r for r in results if not isinstance(r, str)]
    assert len(successes) == 1
    assert len(failures) == len(agents) - 1
    assert all(isinstance(f, InsufficientStock) for f in failures), failures

    db.session.expire_all()
    assert db.session.get(Product, product_id).stock_quantity == 0
    assert db.session.query(Order).count() == 1
    assert db.session.query(StockMovement).filter_by(type="OUT").count() == 1


def test_concurrent_document_numbers_are_unique(clean_file_db):
    per_thread = 25

    def allocate(index):
        numbers = []
        for _ in range(per_thread):
            def _op():
                number = next_document_number(document_type="ORDER", prefix="ORD")
                db.session.commit()
                return number
            numbers.append(run_with_retry(_op, attempts=20, backoff_base=0.01))
        return numbers

    results = run_threads(clean_file_db, 6, allocate)

    assert not [r for r in results if isinstance(r, Exception)]
    numbers = [n for batch in results for n in batch]
    assert len(numbers) == 6 * per_thread
    assert len(set(numbers)) == len(numbers)


def test_ten_thousand_numbers_never_collide(db_session):
    numbers = {next_document_number(document_type="ORDER", prefix="ORD") for _ in range(10_000)}
    db_session.commit()

    assert len(numbers) == 10_000
    assert "ORD-" in next(iter(numbers))
