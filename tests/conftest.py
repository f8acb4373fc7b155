"""Pytest fixtures for testing"""

import httpx
import pytest
from decimal import Decimal
from typing import Generator, List
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from bnpl_ledger.api.dependencies import get_notification_client
from bnpl_ledger.api.main import create_app
from bnpl_ledger.domain.models import FinancingPolicy, InterestType, StaffRole
from bnpl_ledger.infrastructure.clients.notifier import NotificationClient
from bnpl_ledger.infrastructure.database.models import (
    Base,
    Business,
    Customer,
    Product,
    Shop,
    ShopProduct,
    StaffMembership,
)
from bnpl_ledger.infrastructure.database.repositories import PolicyRepository
from bnpl_ledger.infrastructure.database.session import get_db
from bnpl_ledger.services.identity import ShopContext, resolve_shop_context


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

ADMIN = "admin-1"
COLLECTOR = "collector-1"


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def sent_notifications() -> List[httpx.Request]:
    """Requests captured by the fake notification webhook"""
    return []


@pytest.fixture
def notification_client(sent_notifications: List[httpx.Request]) -> NotificationClient:
    def handler(request: httpx.Request) -> httpx.Response:
        sent_notifications.append(request)
        return httpx.Response(202)

    return NotificationClient(webhook_url="http://notifier.test/notifications", transport=httpx.MockTransport(handler))


@pytest.fixture
def client(db: Session, notification_client: NotificationClient) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_client] = lambda: notification_client
    return TestClient(app)


@pytest.fixture
def shop(db: Session) -> Shop:
    """Business with one shop, an admin and a field collector"""
    business = Business(name="Accra Home Goods", slug="accra-home-goods")
    db.add(business)
    db.flush()

    shop = Shop(business_id=business.id, name="Osu Branch", slug="osu-branch")
    db.add(shop)
    db.flush()

    db.add_all(
        [
            StaffMembership(
                actor_id=ADMIN,
                business_id=business.id,
                shop_id=shop.id,
                name="Ama Admin",
                role=StaffRole.SHOP_ADMIN.value,
            ),
            StaffMembership(
                actor_id=COLLECTOR,
                business_id=business.id,
                shop_id=shop.id,
                name="Kofi Collector",
                role=StaffRole.COLLECTOR.value,
            ),
        ]
    )
    db.commit()
    return shop


@pytest.fixture
def flat_policy(db: Session, shop: Shop) -> FinancingPolicy:
    """FLAT 10%, 60-day max tenor, on the shop itself"""
    policy = FinancingPolicy(
        interest_type=InterestType.FLAT,
        interest_rate=Decimal("10"),
        grace_days=3,
        max_tenor_days=60,
    )
    PolicyRepository(db).upsert(policy, shop_id=shop.id)
    db.commit()
    return policy


@pytest.fixture
def customer(db: Session, shop: Shop) -> Customer:
    customer = Customer(
        shop_id=shop.id,
        first_name="Efua",
        last_name="Mensah",
        phone="+233200000001",
        address="12 Oxford Street",
        city="Accra",
        region="Greater Accra",
    )
    db.add(customer)
    db.commit()
    return customer


@pytest.fixture
def product(db: Session, shop: Shop) -> Product:
    """Tiered prices 900/950/1000 with 5 units of shop stock and 50 global"""
    product = Product(
        business_id=shop.business_id,
        name="Standing Fan",
        sku="FAN-16",
        cash_price_cents=90000,
        layaway_price_cents=95000,
        credit_price_cents=100000,
        stock_quantity=50,
    )
    db.add(product)
    db.flush()
    db.add(ShopProduct(shop_id=shop.id, product_id=product.id, stock_quantity=5))
    db.commit()
    return product


@pytest.fixture
def admin_ctx(db: Session, shop: Shop) -> ShopContext:
    return resolve_shop_context(db, shop.id, ADMIN)


@pytest.fixture
def collector_ctx(db: Session, shop: Shop) -> ShopContext:
    return resolve_shop_context(db, shop.id, COLLECTOR)
