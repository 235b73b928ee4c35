from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from storefront import models  # noqa: F401  registers tables
from storefront.core.security import get_password_hash
from storefront.db.session import create_db_and_tables, get_session, make_engine
from storefront.main import app
from storefront.models import Product, User
from storefront.services.cache import CatalogCache, catalog_cache
from storefront.services.locks import KeyedLock


@pytest.fixture
def engine(tmp_path):
    # File-backed so that several threads can hold their own connections
    engine = make_engine(f"sqlite:///{tmp_path / 'storefront-test.db'}")
    create_db_and_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def cache():
    return CatalogCache(max_entries=64, enabled=True)


@pytest.fixture
def locks():
    return KeyedLock()


@pytest.fixture
def make_product(session):
    def _make(
        name="Widget",
        price="10.00",
        stock=5,
        category="Gadgets",
        rating="0.00",
        is_active=True,
    ) -> Product:
        product = Product(
            name=name,
            description=f"{name} description",
            price=Decimal(price),
            stock=stock,
            category=category,
            rating=Decimal(rating),
            is_active=is_active,
        )
        session.add(product)
        session.commit()
        session.refresh(product)
        return product

    return _make


@pytest.fixture
def make_user(session):
    counter = {"n": 0}

    def _make(is_superuser=False, password="password123") -> User:
        counter["n"] += 1
        user = User(
            email=f"user{counter['n']}@example.com",
            name=f"User {counter['n']}",
            password_hash=get_password_hash(password),
            is_superuser=is_superuser,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make


@pytest.fixture
def client(engine):
    def override_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    catalog_cache.enabled = True
    catalog_cache.clear()
    yield TestClient(app)
    app.dependency_overrides.clear()
    catalog_cache.clear()


@pytest.fixture
def auth_headers(client, make_user):
    def _headers(user: User, password="password123") -> dict:
        resp = client.post(
            "/api/v1/auth/token",
            data={"username": user.email, "password": password},
        )
        assert resp.status_code == 200, resp.text
        return {"Authorization": f"Bearer {resp.json()['access_token']}"}

    return _headers
