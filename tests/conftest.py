"""
Test configuration for pytest
"""

import os

# Test environment variables, set before any settings are cached
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["ENVIRONMENT"] = "test"
for name in (
    "STRIPE_SECRET_KEY", "STRIPE_WEBHOOK_SECRET",
    "PAYPAL_CLIENT_ID", "PAYPAL_CLIENT_SECRET", "PAYPAL_WEBHOOK_ID",
):
    os.environ.pop(name, None)

from datetime import datetime, timedelta
from decimal import Decimal
from typing import AsyncIterator
import uuid

import httpx
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from restaurant_os.core.auth import create_access_token
from restaurant_os.core.database import get_session, get_session_factory
from restaurant_os.core.dependencies import CurrentUser
from restaurant_os.core.events import event_bus
from restaurant_os.main import app
from restaurant_os.models import (
    Customer, CustomizationGroup, CustomizationOption, MenuItem, Order, OrderItem,
    OrderStatus, OrderStatusHistory, OrderType, PaymentMethod, PromoCode, DiscountType, Restaurant
)
from restaurant_os.services.order_creation import generate_order_number


@pytest.fixture
async def engine(tmp_path):
    """File backed SQLite so every session gets its own connection"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
async def clean_event_bus():
    """Let background publishes finish and drop test subscribers"""
    yield
    await event_bus.drain()
    event_bus.clear_subscribers()


@pytest.fixture
async def restaurant(session) -> Restaurant:
    restaurant = Restaurant(
        name="Test Bistro",
        slug=f"test-bistro-{uuid.uuid4().hex[:6]}",
        tax_rate=Decimal("0.10"),
        service_fee_rate=Decimal("0.08"),
        delivery_fee=Decimal("5.00"),
    )
    session.add(restaurant)
    await session.commit()
    return restaurant


@pytest.fixture
async def customer(session, restaurant) -> Customer:
    customer = Customer(
        restaurant_id=restaurant.id,
        email="jamie@example.com",
        name="Jamie Rivera",
        phone="+1 555 0100",
    )
    session.add(customer)
    await session.commit()
    return customer


@pytest.fixture
async def burger(session, restaurant) -> MenuItem:
    """Trackable item with 10 units on hand"""
    item = MenuItem(
        restaurant_id=restaurant.id,
        name="Burger",
        price=Decimal("12.50"),
        track_inventory=True,
        stock_quantity=10,
        min_stock_level=2,
    )
    session.add(item)
    await session.commit()
    return item


@pytest.fixture
async def burger_extras(session, burger) -> CustomizationGroup:
    """Optional extras for the burger, up to two; lobster is sold out"""
    group = CustomizationGroup(menu_item_id=burger.id, name="Extras", max_selections=2)
    group.options = [
        CustomizationOption(name="Extra cheese", price_modifier=Decimal("1.50"), sort_order=1),
        CustomizationOption(name="Bacon", price_modifier=Decimal("2.00"), sort_order=2),
        CustomizationOption(name="Lobster", price_modifier=Decimal("99.00"), is_available=False, sort_order=3),
    ]
    session.add(group)
    await session.commit()
    return group


@pytest.fixture
async def fries(session, restaurant) -> MenuItem:
    """Untracked item"""
    item = MenuItem(restaurant_id=restaurant.id, name="Fries", price=Decimal("4.00"))
    session.add(item)
    await session.commit()
    return item


@pytest.fixture
async def promo(session, restaurant) -> PromoCode:
    promo = PromoCode(
        restaurant_id=restaurant.id,
        code="WELCOME10",
        discount_type=DiscountType.PERCENTAGE,
        discount_value=Decimal("10"),
        usage_limit=1,
        valid_from=datetime.utcnow() - timedelta(days=1),
        valid_until=datetime.utcnow() + timedelta(days=30),
    )
    session.add(promo)
    await session.commit()
    return promo


@pytest.fixture
def customer_actor(customer) -> CurrentUser:
    return CurrentUser(id=str(customer.id), role="CUSTOMER")


@pytest.fixture
def staff_actor(restaurant) -> CurrentUser:
    return CurrentUser(id=str(uuid.uuid4()), role="ADMIN", restaurant_id=restaurant.id)


@pytest.fixture
def make_order(session, restaurant, customer, burger):
    """Insert a PENDING order directly, bypassing checkout"""

    async def _make(
        payment_method: PaymentMethod = PaymentMethod.STRIPE,
        quantity: int = 2,
        created_at: datetime = None,
        **fields
    ) -> Order:
        price = burger.price
        order = Order(
            order_number=generate_order_number(),
            restaurant_id=restaurant.id,
            customer_id=customer.id,
            order_type=OrderType.PICKUP,
            pickup_time=datetime.utcnow() + timedelta(minutes=30),
            subtotal=price * quantity,
            payment_method=payment_method,
            created_at=created_at or datetime.utcnow(),
            **fields
        )
        order.calculate_total()
        order.items = [
            OrderItem(
                menu_item_id=burger.id,
                name=burger.name,
                price=price,
                quantity=quantity,
                line_total=price * quantity,
            )
        ]
        order.history = [OrderStatusHistory(status=OrderStatus.PENDING, note="Order placed", created_by=str(customer.id))]
        session.add(order)
        await session.commit()
        return order

    return _make


def _auth_headers(user_id: str, role: str, restaurant_id=None) -> dict:
    token = create_access_token(user_id, role, restaurant_id=restaurant_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers():
    """Bearer header factory: auth_headers(user_id, role, restaurant_id=None)"""
    return _auth_headers


@pytest.fixture
def customer_headers(customer) -> dict:
    return _auth_headers(str(customer.id), "CUSTOMER")


@pytest.fixture
def staff_headers(restaurant) -> dict:
    return _auth_headers(str(uuid.uuid4()), "KITCHEN", restaurant_id=restaurant.id)


@pytest.fixture
async def client(session_factory) -> AsyncIterator[httpx.AsyncClient]:
    """API client bound to the test database"""

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def reload(session):
    """Fresh copy of a row, ignoring whatever the identity map holds"""

    async def _reload(model, ident):
        return await session.get(model, ident, populate_existing=True)

    return _reload
