import os
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator
from uuid import uuid4

import pytest

# Add the backend directory to the Python path
# This is necessary for pytest to find the 'main' module and other packages
backend_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if backend_dir not in sys.path:
    sys.path.insert(0, backend_dir)

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from core.database import Base, get_db
from main import app
from models.category import Category
from schemas.promotion import Cart, CartItem, PromotionCreate
from services.categories import CategoryService
from services.products import ProductService
from services.promotions import PromotionEngine, PromotionService

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
async def db_engine():
    engine = create_async_engine(
        TEST_DB_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def category_service(db_session) -> CategoryService:
    return CategoryService(db_session)


@pytest.fixture
def product_service(db_session, category_service) -> ProductService:
    return ProductService(db_session, category_service)


@pytest.fixture
def promotion_service(db_session) -> PromotionService:
    return PromotionService(db_session)


@pytest.fixture
def promotion_engine(db_session) -> PromotionEngine:
    return PromotionEngine(db_session, reference_order_value=1000000, shipping_fee=30000)


@pytest.fixture
async def async_client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


def make_category(name, parent=None, sort_order=0, created_at=None, is_active=True) -> Category:
    """Unsaved category with every attribute populated, for pure tree tests."""
    return Category(
        id=uuid4(),
        name=name,
        slug=name.lower(),
        parent_id=parent.id if parent is not None else None,
        level=(parent.level + 1) if parent is not None else 0,
        sort_order=sort_order,
        is_active=is_active,
        is_featured=False,
        product_count=0,
        created_at=created_at or NOW,
    )


def promotion_payload(**overrides) -> PromotionCreate:
    data = {
        "name": "Spring sale",
        "promotion_type": "ORDER_DISCOUNT",
        "discount_type": "PERCENTAGE",
        "discount_value": 10,
        "start_date": NOW - timedelta(days=1),
        "end_date": NOW + timedelta(days=30),
    }
    data.update(overrides)
    return PromotionCreate(**data)


def cart_of(*lines, shipping_fee=None) -> Cart:
    """cart_of((unit_price, quantity), ...) or with explicit (product_id, category_id, price, qty)."""
    items = []
    for line in lines:
        if len(line) == 2:
            price, quantity = line
            items.append(CartItem(product_id=uuid4(), unit_price=Decimal(str(price)), quantity=quantity))
        else:
            product_id, category_id, price, quantity = line
            items.append(CartItem(
                product_id=product_id,
                category_id=category_id,
                unit_price=Decimal(str(price)),
                quantity=quantity,
            ))
    return Cart(items=items, shipping_fee=shipping_fee)
