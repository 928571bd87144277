import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_storefront.db")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from src.core import invalidation
from src.core.database import Base, get_db
from src.models.database import Category, Product
from src.services.notification_service import LoggingEmailSender
from main import app

# File-backed SQLite so separate sessions see each other's commits
TEST_DATABASE_URL = "sqlite:///./test_storefront.db"

@pytest.fixture
def test_engine():
    engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()

@pytest.fixture
def session_factory(test_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

@pytest.fixture
def test_db(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()

@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    del app.dependency_overrides[get_db]

@pytest.fixture
def revalidated_paths():
    paths = []
    invalidation.subscribe(paths.append)
    yield paths
    invalidation.unsubscribe(paths.append)

@pytest.fixture
def email_sender():
    return LoggingEmailSender()

@pytest.fixture
def category(test_db):
    category = Category(name="Camisas", slug="camisas")
    test_db.add(category)
    test_db.commit()
    test_db.refresh(category)
    return category

@pytest.fixture
def sample_products(test_db, category):
    """p1: managed tee with 10 units, p2: unmanaged gift card, p3: managed cap with 2 units"""
    products = [
        Product(
            id="p1",
            name="Tee",
            price=35.00,
            sku="CAM-TEE001",
            category_id=category.id,
            inventory_quantity=10,
            low_stock_threshold=5,
            inventory_status="in_stock",
            inventory_managed=True,
        ),
        Product(
            id="p2",
            name="Gift Card",
            price=50.00,
            sku="CAM-GIFT01",
            category_id=category.id,
            inventory_quantity=0,
            low_stock_threshold=5,
            inventory_status="out_of_stock",
            inventory_managed=False,
        ),
        Product(
            id="p3",
            name="Cap",
            price=20.00,
            sku="CAM-CAP001",
            category_id=category.id,
            inventory_quantity=2,
            low_stock_threshold=5,
            inventory_status="low_stock",
            inventory_managed=True,
        ),
    ]
    test_db.add_all(products)
    test_db.commit()
    for product in products:
        test_db.refresh(product)
    return products

def customer_info(**overrides):
    info = {
        "name": "Maria Perez",
        "email": "maria@example.com",
        "cedula": "V-12345678",
        "phone": "+58 414 0000000",
        "delivery_method": "pickup",
        "payment_method": "zelle",
    }
    info.update(overrides)
    return info

@pytest.fixture
def customer():
    return customer_info
