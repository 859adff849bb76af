import pytest
from typing import AsyncGenerator, Dict, List, Optional
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from orca.main import app
from orca.core.permissions import CurrentUser
from orca.core.security import get_password_hash
from orca.domain.clinics.models import Clinic, User, UserRole
from orca.domain.clinics.service import AuthenticationService
from orca.infrastructure.database import Base, get_db
from orca.infrastructure.payments import GatewayResult, PaymentGateway, get_payment_gateway
import orca.domain.models  # noqa: F401

TEST_DATABASE_URL = "sqlite+aiosqlite://"
TEST_PASSWORD = "testpassword123"


class FakeGateway(PaymentGateway):
    """Gateway double that records calls and declines on demand"""

    name = "fake"

    def __init__(self):
        self.decline_with: Optional[str] = None
        self.refund_error: Optional[str] = None
        self.raise_error: Optional[Exception] = None
        self.charges: List[Dict] = []
        self.refunds: List[Dict] = []

    async def charge(self, amount, payment_method_token, description=None, metadata=None) -> GatewayResult:
        if self.raise_error:
            raise self.raise_error
        self.charges.append({"amount": amount, "token": payment_method_token})
        if self.decline_with:
            return GatewayResult(success=False, error=self.decline_with)
        return GatewayResult(success=True, transaction_id=f"txn_{len(self.charges)}",
                             card_last4="4242", card_brand="visa")

    async def refund(self, transaction_id, amount, reason=None) -> GatewayResult:
        self.refunds.append({"transaction_id": transaction_id, "amount": amount})
        if self.refund_error:
            return GatewayResult(success=False, error=self.refund_error)
        return GatewayResult(success=True, transaction_id=f"re_{len(self.refunds)}")


@pytest.fixture(scope="function")
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """Fresh in-memory schema for each test"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture(scope="function")
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture(scope="function")
async def client(session_factory, gateway: FakeGateway) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated client with the database and gateway overridden"""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def create_user(db: AsyncSession, clinic: Clinic, email: str, role: UserRole,
                      permissions: Optional[List[str]] = None) -> User:
    user = User(
        clinic_id=clinic.id,
        email=email,
        hashed_password=get_password_hash(TEST_PASSWORD),
        first_name="Test",
        last_name=role.value.replace("_", " ").title(),
        role=role,
        permissions=permissions or [],
        is_active=True,
    )
    db.add(user)
    await db.commit()
    return user


def auth_headers(db: AsyncSession, user: User) -> Dict[str, str]:
    token = AuthenticationService(db).issue_tokens(user)["access_token"]
    return {"Authorization": f"Bearer {token}"}


def as_current_user(user: User) -> CurrentUser:
    return CurrentUser(
        id=user.id,
        clinic_id=user.clinic_id,
        role=user.role.value,
        permissions=user.get_permissions(),
        email=user.email,
    )


@pytest.fixture(scope="function")
async def clinic(db_session: AsyncSession) -> Clinic:
    clinic = Clinic(name="Bright Smiles Orthodontics", slug="bright-smiles", timezone="UTC", is_active=True)
    db_session.add(clinic)
    await db_session.commit()
    return clinic


@pytest.fixture(scope="function")
async def other_clinic(db_session: AsyncSession) -> Clinic:
    clinic = Clinic(name="Harbor Ortho", slug="harbor-ortho", timezone="UTC", is_active=True)
    db_session.add(clinic)
    await db_session.commit()
    return clinic


@pytest.fixture(scope="function")
async def admin_user(db_session: AsyncSession, clinic: Clinic) -> User:
    return await create_user(db_session, clinic, "admin@brightsmiles.test", UserRole.CLINIC_ADMIN)


@pytest.fixture(scope="function")
async def doctor_user(db_session: AsyncSession, clinic: Clinic) -> User:
    return await create_user(db_session, clinic, "doctor@brightsmiles.test", UserRole.DOCTOR)


@pytest.fixture(scope="function")
async def front_desk_user(db_session: AsyncSession, clinic: Clinic) -> User:
    return await create_user(db_session, clinic, "desk@brightsmiles.test", UserRole.FRONT_DESK)


@pytest.fixture(scope="function")
def admin_headers(db_session: AsyncSession, admin_user: User) -> Dict[str, str]:
    return auth_headers(db_session, admin_user)


@pytest.fixture(scope="function")
def doctor_headers(db_session: AsyncSession, doctor_user: User) -> Dict[str, str]:
    return auth_headers(db_session, doctor_user)


@pytest.fixture(scope="function")
def front_desk_headers(db_session: AsyncSession, front_desk_user: User) -> Dict[str, str]:
    return auth_headers(db_session, front_desk_user)


@pytest.fixture(scope="function")
def admin(admin_user: User) -> CurrentUser:
    """Admin principal for calling services directly"""
    return as_current_user(admin_user)


@pytest.fixture(scope="function")
def sample_patient_data() -> dict:
    return {
        "first_name": "Maya",
        "last_name": "Chen",
        "date_of_birth": "2011-04-18",
        "email": "maya.chen@example.com",
        "phone": "+1 (555) 010-2233",
        "notes": "Referred by Dr. Alvarez",
    }


@pytest.fixture(scope="function")
async def patient(client: AsyncClient, admin_headers: dict, sample_patient_data: dict) -> dict:
    response = await client.post("/api/v1/patients", json=sample_patient_data, headers=admin_headers)
    assert response.status_code == 201
    return response.json()["data"]


@pytest.fixture(scope="function")
async def account(client: AsyncClient, admin_headers: dict, patient: dict) -> dict:
    response = await client.post(
        "/api/v1/billing/accounts", json={"patient_id": patient["id"]}, headers=admin_headers
    )
    assert response.status_code == 201
    return response.json()["data"]


async def create_invoice(client: AsyncClient, headers: dict, account_id: str, amount: float,
                         due_date: Optional[str] = None) -> dict:
    payload = {
        "account_id": account_id,
        "line_items": [{"description": "Adjustment visit", "procedure_code": "D8670", "unit_price": amount}],
    }
    if due_date:
        payload["due_date"] = due_date
    response = await client.post("/api/v1/billing/invoices", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "auth: mark test as authentication related"
    )
    config.addinivalue_line(
        "markers", "patients: mark test as patient management related"
    )
    config.addinivalue_line(
        "markers", "billing: mark test as billing, payments or payment plan related"
    )
    config.addinivalue_line(
        "markers", "resources: mark test as room and chair related"
    )
    config.addinivalue_line(
        "markers", "staff: mark test as staff training related"
    )
    config.addinivalue_line(
        "markers", "treatment: mark test as treatment plan or progress note related"
    )
    config.addinivalue_line(
        "markers", "audit: mark test as audit logging related"
    )
