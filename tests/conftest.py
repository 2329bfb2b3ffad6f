from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from database import Base, get_db
from main import app
from models.CatalogItem import CatalogItem
from models.ConstructionSite import ConstructionSite
from schemas.ActorSchemas import Actor
from services.site_inventory_services import SiteInventoryService

ACTOR = Actor(id="42", name="Maria Almoxarife")


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def site(db):
    site = ConstructionSite(name="Residencial Jardim das Flores", address="Rua A, 100")
    db.add(site)
    db.commit()
    db.refresh(site)
    return site


@pytest.fixture()
def make_balance(db, site):
    """Attach a fresh catalog material to `site` with an opening quantity."""
    counter = {"n": 0}

    def _make(quantity=0, min_threshold=0, category="Material Básico", name=None, is_tool=None):
        counter["n"] += 1
        catalog_item = CatalogItem(
            code=f"INS-{counter['n']:05d}",
            name=name or f"Material {counter['n']}",
            unit="un",
            category=category,
            unit_value=Decimal("10"),
            min_threshold=Decimal("0"),
        )
        db.add(catalog_item)
        db.commit()
        return SiteInventoryService(db).attach_item(
            site.id,
            catalog_item.id,
            ACTOR,
            quantity=quantity,
            min_threshold=min_threshold,
            is_tool=is_tool,
        )

    return _make
