import os
import tempfile
from datetime import date
from decimal import Decimal

# Settings are read once; point them at throwaway locations before importing the app.
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUDIT_LOG_DIR", tempfile.mkdtemp(prefix="motelhub-audit-"))
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("APP_URL", "http://testserver")
os.environ.setdefault("MOMO_PARTNER_CODE", "MOMOTEST")
os.environ.setdefault("MOMO_ACCESS_KEY", "momo-access")
os.environ.setdefault("MOMO_SECRET_KEY", "momo-secret")
os.environ.setdefault("VNPAY_TMN_CODE", "VNPTEST")
os.environ.setdefault("VNPAY_HASH_SECRET", "vnpay-secret")
os.environ.setdefault("ZALOPAY_APP_ID", "2553")
os.environ.setdefault("ZALOPAY_KEY1", "zalo-key1")
os.environ.setdefault("ZALOPAY_KEY2", "zalo-key2")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from motelhub import models  # noqa: F401  (registers the tables)
from motelhub.core.constants import ContractStatus, InvoiceStatus, ServiceType, UserRole
from motelhub.core.errors import UnauthorizedError
from motelhub.core.users import get_current_user
from motelhub.db.engine import get_session
from motelhub.main import app
from motelhub.models import (
    Contract,
    ContractTenant,
    Invoice,
    InvoiceItem,
    Motel,
    Room,
    Service,
    User,
)
from motelhub.utils.formatting import generate_invoice_number


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


# --- Users ---


def _user(session, email, role, name="Người dùng"):
    user = User(email=email, full_name=name, role=role)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def landlord(session):
    return _user(session, "chutro@example.com", UserRole.LANDLORD, "Nguyễn Văn Chủ")


@pytest.fixture
def other_landlord(session):
    return _user(session, "chutro2@example.com", UserRole.LANDLORD, "Trần Thị Khác")


@pytest.fixture
def tenant(session):
    return _user(session, "khach@example.com", UserRole.TENANT, "Lê Văn Thuê")


@pytest.fixture
def other_tenant(session):
    return _user(session, "khach2@example.com", UserRole.TENANT, "Phạm Thị Lạ")


@pytest.fixture
def staff(session):
    return _user(session, "nhanvien@example.com", UserRole.STAFF, "Nhân Viên")


@pytest.fixture
def admin(session):
    return _user(session, "admin@example.com", UserRole.ADMIN, "Quản Trị")


# --- Property and lease ---


@pytest.fixture
def motel(session, landlord):
    motel = Motel(owner_id=landlord.id, name="Nhà trọ Hoa Mai", address="12 Lê Lợi, Quận 1")
    session.add(motel)
    session.commit()
    session.refresh(motel)
    return motel


@pytest.fixture
def services(session, motel):
    catalog = [
        Service(motel_id=motel.id, name="Tiền điện", price=Decimal("3500"), unit="kWh", type=ServiceType.USAGE),
        Service(motel_id=motel.id, name="Tiền nước", price=Decimal("15000"), unit="m³", type=ServiceType.USAGE),
        Service(motel_id=motel.id, name="Internet", price=Decimal("100000"), unit="tháng", type=ServiceType.FIXED),
        Service(motel_id=motel.id, name="Phí rác", price=Decimal("20000"), unit="người/tháng", type=ServiceType.PEOPLE),
    ]
    session.add_all(catalog)
    session.commit()
    for service in catalog:
        session.refresh(service)
    return {service.name: service for service in catalog}


@pytest.fixture
def room(session, motel):
    room = Room(motel_id=motel.id, name="P101")
    session.add(room)
    session.commit()
    session.refresh(room)
    return room


@pytest.fixture
def contract(session, room, tenant):
    contract = Contract(
        room_id=room.id,
        tenant_id=tenant.id,
        rent_price=Decimal("3000000"),
        deposit_amount=Decimal("3000000"),
        status=ContractStatus.ACTIVE,
        start_date=date(2025, 1, 1),
    )
    session.add(contract)
    session.commit()
    session.refresh(contract)
    return contract


def add_co_tenants(session, contract, count):
    for i in range(count):
        session.add(ContractTenant(contract_id=contract.id, full_name=f"Bạn cùng phòng {i + 1}"))
    session.commit()
    session.refresh(contract)


def make_invoice(session, contract, total, paid=Decimal("0"), status=InvoiceStatus.UNPAID,
                 billing_month=date(2025, 3, 1), due_date=date(2025, 4, 5)):
    invoice = Invoice(
        invoice_number=generate_invoice_number(),
        contract_id=contract.id,
        billing_month=billing_month,
        due_date=due_date,
        amount_total=Decimal(total),
        amount_paid=Decimal(paid),
        status=status,
    )
    invoice.items = [
        InvoiceItem(
            position=0,
            service_name="Tiền phòng",
            quantity=Decimal("1"),
            unit_price=Decimal(total),
            total_price=Decimal(total),
        )
    ]
    session.add(invoice)
    session.commit()
    session.refresh(invoice)
    return invoice


@pytest.fixture
def invoice(session, contract):
    return make_invoice(session, contract, "5000000")


# --- HTTP ---


class CurrentUser:
    def __init__(self):
        self.user = None

    def __call__(self):
        if self.user is None:
            raise UnauthorizedError("Vui lòng đăng nhập")
        return self.user


@pytest.fixture
def current_user():
    return CurrentUser()


@pytest.fixture
def client(session, current_user):
    app.dependency_overrides[get_session] = lambda: session
    app.dependency_overrides[get_current_user] = current_user
    yield TestClient(app)
    app.dependency_overrides.clear()
