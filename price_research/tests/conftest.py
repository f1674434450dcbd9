import os
import tempfile
from datetime import date, timedelta
from decimal import Decimal

# keep test logs out of the working tree; must run before price_research imports
os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "price_research_test_logs"))

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from price_research.config import Settings
from price_research.db.base import Base
from price_research.db.session import build_engine
import price_research.models  # noqa: F401  (registers tables)
from price_research.services.container import build_services

TODAY = date(2026, 10, 18)


@pytest.fixture
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def settings():
    return Settings(database_url="sqlite://")


@pytest.fixture
def services(db, settings):
    return build_services(db, settings=settings)


@pytest.fixture
def seed_reference(db, services):
    """Register a catalog entry; returns its external reference id."""
    counter = {"n": 0}

    def _seed(price, published=None, ref=None, description="Caneta esferográfica azul"):
        counter["n"] += 1
        ref = ref or f"REF-{counter['n']:04d}"
        services.catalog.register_entry(
            external_ref_id=ref,
            description=description,
            estimated_unit_price=Decimal(str(price)),
            unit="UN",
            publication_date=published or (TODAY - timedelta(days=30)),
        )
        db.commit()
        return ref

    return _seed


@pytest.fixture
def project(services):
    return services.projects.create_project(
        tenant_id="tenant-1",
        user_id="user-1",
        name="Aquisição de material de expediente",
        process_number="23000.000123/2026-11",
    )


@pytest.fixture
def item(services, project):
    return services.items.create_item(
        project_id=project.id,
        name="Caneta esferográfica",
        quantity=100,
        unit="UN",
        operator_id="user-1",
        display_order=1,
    )


@pytest.fixture
def add_prices(services, seed_reference):
    """Attach one source per price to an item; returns the created sources."""

    def _add(item_id, prices, published=None):
        sources = []
        for price in prices:
            ref = seed_reference(price, published=published)
            sources.append(services.ledger.add_source(item_id=item_id, external_ref_id=ref, operator_id="user-1"))
        return sources

    return _add
