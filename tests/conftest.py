"""Test configuration."""
import os
import time
from collections.abc import AsyncIterator, Callable, Iterator
from pathlib import Path
from typing import Any
from uuid import uuid4

from alembic import command
from alembic.config import Config
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

# --- Default environment, set before the app reads its settings
os.environ.setdefault("DATABASE_URL", "sqlite:///./domera_test.db")
os.environ.setdefault("APP_ENV", "dev")
os.environ.setdefault("DEV_API_KEY", "test-legacy-key")
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("SCHEDULER_ENABLED", "0")

from app.main import app  # noqa: E402
from app.core.runtime_state import reset_runtime_state  # noqa: E402
from app.db import get_db  # noqa: E402
from app.models import Base, User  # noqa: E402
from app.models.api_key import ApiKey, ApiScope  # noqa: E402
from app.utils.apikey import hash_key  # noqa: E402

DB_PATH = Path("./domera_test.db")
RECEIVER_ADDRESS = "0x" + "2b" * 20
BUYER_ADDRESS = "0x" + "9f" * 20
TX_HASH = "0x" + "ab" * 32


def _run_migrations() -> None:
    cfg = Config(str(Path(__file__).resolve().parents[1] / "alembic.ini"))
    cfg.set_main_option("sqlalchemy.url", os.environ["DATABASE_URL"])
    command.upgrade(cfg, "head")


# --- (1) Fresh database file for the session
if DB_PATH.exists():
    DB_PATH.unlink()

engine = create_engine(
    os.environ["DATABASE_URL"],
    connect_args={"check_same_thread": False},
    future=True,
)
TestingSessionLocal = sessionmaker(
    bind=engine, autoflush=False, autocommit=False, future=True, expire_on_commit=False
)

# --- (2) Schema comes from Alembic only
_run_migrations()


@pytest.fixture(autouse=True)
def clean_tables() -> Iterator[None]:
    yield
    reset_runtime_state()
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture
def db_session() -> Iterator[Session]:
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def override_db_dependency() -> Iterator[None]:
    def _get_db() -> Iterator[Session]:
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    yield
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
async def client() -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as async_client:
        yield async_client


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def make_user(db_session: Session) -> Callable[..., User]:
    def _factory(name: str = "buyer", *, is_active: bool = True) -> User:
        suffix = uuid4().hex[:8]
        user = User(username=f"{name}-{suffix}", email=f"{name}-{suffix}@example.com", is_active=is_active)
        db_session.add(user)
        db_session.commit()
        return user

    return _factory


@pytest.fixture
def make_api_key(db_session: Session) -> Callable[..., ApiKey]:
    def _factory(
        name: str | None = None,
        key: str | None = None,
        scope: ApiScope = ApiScope.buyer,
        *,
        user: User | None = None,
        is_active: bool = True,
    ) -> ApiKey:
        api_key = ApiKey(
            name=name or f"{scope.value}-{uuid4().hex}",
            prefix="test_" + scope.value,
            key_hash=hash_key(key or uuid4().hex),
            scope=scope,
            is_active=is_active,
            user_id=user.id if user is not None else None,
        )
        db_session.add(api_key)
        db_session.commit()
        return api_key

    return _factory


def _headers_for(make_api_key: Callable[..., ApiKey], scope: ApiScope, user: User | None = None) -> dict[str, str]:
    token = f"{scope.value}-{uuid4().hex}"
    make_api_key(key=token, scope=scope, user=user)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def buyer(make_user: Callable[..., User]) -> User:
    return make_user("buyer")


@pytest.fixture
def other_buyer(make_user: Callable[..., User]) -> User:
    return make_user("other")


@pytest.fixture
def buyer_headers(make_api_key: Callable[..., ApiKey], buyer: User) -> dict[str, str]:
    return _headers_for(make_api_key, ApiScope.buyer, buyer)


@pytest.fixture
def other_buyer_headers(make_api_key: Callable[..., ApiKey], other_buyer: User) -> dict[str, str]:
    return _headers_for(make_api_key, ApiScope.buyer, other_buyer)


@pytest.fixture
def operator_headers(make_api_key: Callable[..., ApiKey]) -> dict[str, str]:
    return _headers_for(make_api_key, ApiScope.operator)


@pytest.fixture
def admin_headers(make_api_key: Callable[..., ApiKey]) -> dict[str, str]:
    return _headers_for(make_api_key, ApiScope.admin)


@pytest.fixture
def reservation_payload() -> Callable[..., dict[str, Any]]:
    """Factory for a valid reservation request as sent after ``createEscrow`` confirmed."""

    def _factory(
        contract_escrow_id: str | None = None,
        *,
        amount: str = "0.001",
        property_id: str = "unit-12b",
        timeout_timestamp: int | None = None,
    ) -> dict[str, Any]:
        return {
            "property_id": property_id,
            "property_data": {
                "id": property_id,
                "title": "Unit 12B, Torre Rambla",
                "price": "185000",
                "location": "Montevideo",
                "project_id": "torre-rambla",
            },
            "form_data": {
                "personal_info": {
                    "first_name": "Ana",
                    "last_name": "Pereira",
                    "email": "ana.pereira@example.com",
                    "phone": "+598 99 123 456",
                    "address": "Av. Brasil 2400",
                },
                "payment_method": "escrow",
            },
            "escrow_data": {
                "contract_escrow_id": contract_escrow_id or str(uuid4().int % 10**12),
                "transaction_hash": TX_HASH,
                "amount": amount,
                "receiver_address": RECEIVER_ADDRESS,
                "buyer_address": BUYER_ADDRESS,
                "timeout_timestamp": timeout_timestamp or int(time.time()) + 7 * 24 * 3600,
                "meta_evidence": "ipfs://bafybeigdyrzt5sfp7udm7hu76uh7y26nf3efuylqabf3oclgtqy55fbzdi",
            },
        }

    return _factory


@pytest.fixture
def create_reservation(
    db_session: Session, reservation_payload: Callable[..., dict[str, Any]]
) -> Callable[..., dict[str, Any]]:
    """Run the reservation use case for ``user`` and return its result data."""

    from app.services.escrow_coordinator import EscrowCoordinator

    def _factory(user: User, contract_escrow_id: str | None = None, **kwargs: Any) -> dict[str, Any]:
        payload = reservation_payload(contract_escrow_id, **kwargs)
        result = EscrowCoordinator(db_session).create_escrow_reservation(
            user.id,
            payload["property_id"],
            payload["property_data"],
            payload["form_data"],
            payload["escrow_data"],
        )
        assert result.success, result.error
        return result.data

    return _factory
