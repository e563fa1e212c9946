from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from app.main import app
from models.menu_management import Category, Product
from models.table_management import Table
from schemas.user import CurrentUser, UserRole
from services.cart import cart_sessions
from services.notifications import view_cache
from utils.auth import create_access_token
from utils.database import Base, get_db

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


@pytest.fixture(autouse=True)
def schema():
    Base.metadata.create_all(bind=engine)
    view_cache.clear()
    cart_sessions.clear()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def seed(db):
    mains = Category(name="Mains", type="food", sort_order=1)
    burger = Product(name="Burger", price=10.0, category=mains)
    fries = Product(name="Fries", price=5.0, category=mains)
    soda = Product(name="Soda", price=2.5, category=mains)
    tables = {n: Table(number=str(n), capacity=4) for n in range(1, 6)}
    db.add_all([mains, burger, fries, soda, *tables.values()])
    db.commit()
    return SimpleNamespace(burger=burger, fries=fries, soda=soda, tables=tables, table5=tables[5])


@pytest.fixture
def admin():
    return CurrentUser(id="admin-1", role=UserRole.ADMIN)


@pytest.fixture
def waiter():
    return CurrentUser(id="waiter-1", role=UserRole.WAITER)


@pytest.fixture
def other_waiter():
    return CurrentUser(id="waiter-2", role=UserRole.WAITER)


@pytest.fixture
def kitchen():
    return CurrentUser(id="kitchen-1", role=UserRole.KITCHEN)


def auth_headers(user: CurrentUser) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}


@pytest.fixture
def client():
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
