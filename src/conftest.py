"""Shared pytest fixtures and factories for ControlHS tests."""

import pytest

from django.conf import settings

# Static files are not collected for tests
settings.STORAGES["staticfiles"] = {
    "BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage",
}

# Run Celery tasks synchronously in tests
settings.CELERY_TASK_ALWAYS_EAGER = True
settings.CELERY_TASK_EAGER_PROPAGATES = True

# Use in-memory cache for tests (avoids Redis connection errors)
settings.CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
    }
}

settings.TRANSFER_REASON_MIN_LENGTH = 10
settings.TRANSFER_ALLOW_SELF_APPROVAL = False

from controlhs.celery import app as celery_app  # noqa: E402

celery_app.conf.task_always_eager = True
celery_app.conf.task_eager_propagates = True


@pytest.fixture(autouse=True)
def _clear_cache():
    """Clear the in-memory cache before each test.

    Prevents rate-limit counters (django_ratelimit) from bleeding
    across tests.
    """
    from django.core.cache import cache

    cache.clear()


from assets.factories import (  # noqa: E402
    AssetFactory,
    SectorFactory,
    TransferRequestFactory,
    UserFactory,
)


@pytest.fixture
def password():
    return "testpass123!"


# --- Sectors ---


@pytest.fixture
def sector(db):
    return SectorFactory(name="Operations", description="Operations floor")


@pytest.fixture
def other_sector(db):
    return SectorFactory(name="Logistics", description="Warehouse")


# --- Users ---


@pytest.fixture
def user(db, password, sector):
    """Plain user and custodian of ``asset``."""
    return UserFactory(
        username="testuser",
        email="test@example.com",
        password=password,
        display_name="Test User",
        role="user",
        sector=sector,
    )


@pytest.fixture
def second_user(db, password, other_sector):
    return UserFactory(
        username="seconduser",
        email="second@example.com",
        password=password,
        display_name="Second User",
        role="user",
        sector=other_sector,
    )


@pytest.fixture
def manager_user(db, password, sector):
    return UserFactory(
        username="manager",
        email="manager@example.com",
        password=password,
        display_name="Sector Manager",
        role="manager",
        sector=sector,
    )


@pytest.fixture
def outside_manager(db, password):
    """Manager of a sector no test transfer touches."""
    return UserFactory(
        username="outsidemanager",
        email="outside@example.com",
        password=password,
        role="manager",
        sector=SectorFactory(name="Finance"),
    )


@pytest.fixture
def admin_user(db, password):
    return UserFactory(
        username="admin",
        email="admin@example.com",
        password=password,
        role="administrator",
        is_staff=True,
        is_superuser=True,
    )


@pytest.fixture
def client_logged_in(client, user, password):
    client.login(username=user.username, password=password)
    return client


@pytest.fixture
def manager_client(client, manager_user, password):
    client.login(username=manager_user.username, password=password)
    return client


@pytest.fixture
def admin_client(client, admin_user, password):
    client.login(username=admin_user.username, password=password)
    return client


# --- Assets and transfers ---


@pytest.fixture
def asset(sector, user):
    return AssetFactory(
        name="Projector",
        serial_number="PRJ-001",
        sector=sector,
        custodian=user,
        status="active",
    )


@pytest.fixture
def retired_asset(sector, user):
    return AssetFactory(
        name="Old Printer",
        serial_number="PRN-009",
        sector=sector,
        custodian=user,
        status="retired",
    )


@pytest.fixture
def pending_transfer(asset, other_sector, user):
    return TransferRequestFactory(
        asset=asset,
        destination_sector=other_sector,
        reason="Needs relocation to the warehouse",
        requester=user,
    )


@pytest.fixture
def gateway(db):
    from assets.services.gateway import DatabaseGateway

    return DatabaseGateway()
