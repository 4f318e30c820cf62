"""
Pytest fixtures for cash ledger backend tests.

Provides test database setup, master data fixtures (company, branch, point
of sale, users, taxes, products), a funded company cash account and an
open cash session.
"""

import threading
from types import SimpleNamespace

import pytest

from cashledger import create_app
from cashledger.errors import LedgerError
from cashledger.extensions import db
from cashledger.models import Branch, Company, PointOfSale, Product, ProductVariant, Tax, User
from cashledger.services import cash_session_service, movement_service
from cashledger.validation import OpenSessionInput


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def company(db_session):
    company = Company(name="Acme Retail", tax_id="76.111.111-1", is_active=True)
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def branch(db_session, company):
    branch = Branch(company_id=company.id, name="Downtown")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def pos(db_session, branch):
    """Point of sale 'pos-1' in the Downtown branch."""
    pos = PointOfSale(branch_id=branch.id, name="pos-1", device_id="DEV-0001", is_active=True)
    db_session.add(pos)
    db_session.commit()
    return pos


@pytest.fixture(scope='function')
def other_pos(db_session, branch):
    pos = PointOfSale(branch_id=branch.id, name="pos-2", is_active=True)
    db_session.add(pos)
    db_session.commit()
    return pos


@pytest.fixture(scope='function')
def orphan_pos(db_session):
    """Point of sale without branch, so without company."""
    pos = PointOfSale(branch_id=None, name="pos-orphan", is_active=True)
    db_session.add(pos)
    db_session.commit()
    return pos


@pytest.fixture(scope='function')
def cashier(db_session):
    user = User(user_name="cashier1", display_name="Cashier One")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def other_cashier(db_session):
    user = User(user_name="cashier2", display_name="Cashier Two")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def iva(db_session, company):
    tax = Tax(company_id=company.id, code="IVA", name="IVA 19%", rate=19)
    db_session.add(tax)
    db_session.commit()
    return tax


@pytest.fixture(scope='function')
def product(db_session, iva):
    product = Product(name="Coffee beans", tax_ids=[iva.id])
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def variant(db_session, product):
    """Unit variant priced at 1000, taxed through its product (IVA 19%)."""
    variant = ProductVariant(
        product_id=product.id,
        sku="COF-250",
        attribute_values={"weight": "250g", "roast": "Dark"},
        base_price=1000,
        unit_symbol="un",
        unit_conversion_factor=1,
    )
    db_session.add(variant)
    db_session.commit()
    return variant


@pytest.fixture(scope='function')
def box_variant(db_session, product):
    """Box of 12 units, no taxes of its own (falls back to the product's)."""
    variant = ProductVariant(
        product_id=product.id,
        sku="COF-250-BOX",
        attribute_values={"pack": "Box x12"},
        base_price=11000,
        unit_symbol="box",
        unit_conversion_factor=12,
    )
    db_session.add(variant)
    db_session.commit()
    return variant


@pytest.fixture(scope='function')
def funded_cash(app, company):
    """Company cash account holding 200000 before any drawer movement."""
    return movement_service.record_company_receipt(company_id=company.id, amount=200000, notes="Initial funding")


@pytest.fixture(scope='function')
def open_session(app, pos, cashier):
    session, _ = cash_session_service.open_session(
        OpenSessionInput(user_name=cashier.user_name, point_of_sale_id=pos.id)
    )
    return session


@pytest.fixture(scope='function')
def file_app(tmp_path):
    """
    Application on a file-backed SQLite database, for tests where several
    threads each hold their own connection.

    Yields the app and the ids of its seeded company, point of sale and cashier.
    """
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'ledger.sqlite3'}",
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'timeout': 30}},
    })

    with app.app_context():
        db.create_all()
        company = Company(name="Acme Retail", tax_id="76.111.111-1", is_active=True)
        db.session.add(company)
        db.session.flush()
        branch = Branch(company_id=company.id, name="Downtown")
        db.session.add(branch)
        db.session.flush()
        pos = PointOfSale(branch_id=branch.id, name="pos-1", is_active=True)
        cashier = User(user_name="cashier1", display_name="Cashier One")
        db.session.add_all([pos, cashier])
        db.session.commit()
        seeded = SimpleNamespace(company_id=company.id, pos_id=pos.id, user_name=cashier.user_name)
        db.session.remove()

    yield app, seeded

    with app.app_context():
        db.session.remove()
        db.engine.dispose()


@pytest.fixture(scope='function')
def run_concurrently():
    """
    Start one thread per callable, release them together and collect
    "ok" or the error kind of each, in call order.
    """
    def run(app, calls):
        barrier = threading.Barrier(len(calls))
        outcomes = [None] * len(calls)

        def worker(index, call):
            with app.app_context():
                barrier.wait()
                try:
                    call()
                    outcomes[index] = "ok"
                except LedgerError as exc:
                    outcomes[index] = exc.kind
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker, args=(i, call)) for i, call in enumerate(calls)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return outcomes

    return run
