"""
Shared fixtures for the ledger tests.

Every test gets its own in-memory SQLite database. The application's
session factory is pointed at it, so services under test, API requests
and the out-of-band failure audits all see the same data.
"""
import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app import database
from app import models  # noqa: F401
from app.core.actor import ActorContext
from app.core.security import create_access_token, get_password_hash
from app.database import Base
from app.models.customer import Customer
from app.models.inventory import FinishedGoodsEntry, Location
from app.models.product import Product, RawMaterial
from app.models.user import User, UserRole


TODAY = date(2026, 3, 2)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
async def engine():
    """A fresh in-memory database with every table created."""
    test_engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine, monkeypatch):
    """Session factory bound to the test engine, installed as the app's own."""
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    monkeypatch.setattr(database, "async_session_factory", factory)
    return factory


@pytest.fixture
async def db(session_factory) -> AsyncSession:
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Users and actors
# ---------------------------------------------------------------------------

async def create_user(db: AsyncSession, username: str, role: UserRole, is_active: bool = True) -> User:
    user = User(
        username=username,
        full_name=username.replace("_", " ").title(),
        password_hash=get_password_hash("secret123"),
        role=role.value,
        is_active=is_active,
    )
    db.add(user)
    await db.flush()
    return user


def actor_for(user: User) -> ActorContext:
    return ActorContext(user_id=user.id, role=UserRole(user.role), username=user.username)


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
async def users(db):
    """Owner, production manager and two distributors; `distributor` is the first one."""
    owner = await create_user(db, "owner", UserRole.OWNER)
    manager = await create_user(db, "manager", UserRole.PRODUCTION_MANAGER)
    distributor = await create_user(db, "distributor", UserRole.DISTRIBUTOR)
    other_distributor = await create_user(db, "other_distributor", UserRole.DISTRIBUTOR)
    await db.commit()
    return SimpleNamespace(
        owner=owner,
        manager=manager,
        distributor=distributor,
        other_distributor=other_distributor,
    )


@pytest.fixture
def owner(users) -> ActorContext:
    return actor_for(users.owner)


@pytest.fixture
def manager(users) -> ActorContext:
    return actor_for(users.manager)


@pytest.fixture
def distributor(users) -> ActorContext:
    return actor_for(users.distributor)


@pytest.fixture
def other_distributor(users) -> ActorContext:
    return actor_for(users.other_distributor)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

@pytest.fixture
async def product(db) -> Product:
    product = Product(name="Denim Jacket", sku="DJ-001", unit_price=Decimal("1200.00"))
    db.add(product)
    await db.commit()
    return product


@pytest.fixture
async def fabric(db) -> RawMaterial:
    """200 meters of denim on hand."""
    material = RawMaterial(
        name="Denim Fabric",
        unit="meter",
        stock_quantity=Decimal("200"),
        min_stock_level=Decimal("20"),
    )
    db.add(material)
    await db.commit()
    return material


@pytest.fixture
async def buttons(db) -> RawMaterial:
    material = RawMaterial(
        name="Metal Buttons",
        unit="piece",
        stock_quantity=Decimal("500"),
        min_stock_level=Decimal("100"),
    )
    db.add(material)
    await db.commit()
    return material


@pytest.fixture
async def customer(db, users) -> Customer:
    customer = Customer(name="Lakshmi Traders", phone="9876500000", created_by=users.distributor.id)
    db.add(customer)
    await db.commit()
    return customer


async def stock_wholesale(db: AsyncSession, product_id: int, quantity: int) -> FinishedGoodsEntry:
    """Put `quantity` units on the unscoped wholesale entry and commit."""
    entry = FinishedGoodsEntry(
        product_id=product_id,
        location=Location.WHOLESALE.value,
        shopkeeper_id=None,
        quantity=quantity,
    )
    db.add(entry)
    await db.commit()
    return entry


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

@pytest.fixture
async def client(session_factory):
    from app.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
