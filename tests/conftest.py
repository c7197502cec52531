"""
Pytest configuration and shared fixtures for the workflow API tests.
"""

from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app import models, models_appointment, models_payment, models_project  # noqa: F401
from app.database import Base
from app.domain.appointments.repository import AppointmentRepository
from app.domain.appointments.service import AppointmentService
from app.domain.calendar.service import CalendarService
from app.domain.projects.repository import ProjectRepository
from app.domain.reservations.service import ReservationManager
from app.models import User
from app.models_appointment import AppointmentType
from app.services.route_fee_service import FeeSettings, LatLng, compute_fee_breakdown
from app.shared.access import Actor, Role
from app.shared.errors import AppError
from app.shared.state_machine import AppointmentStatus, ProjectStatus

# Monday far enough ahead that the real calendar never rejects it as past
BOOKING_DAY = date(2030, 1, 7)
TODAY = date(2030, 1, 1)
SATURDAY = date(2030, 1, 5)


class FakeClock:
    """Callable clock that tests can move forward"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += timedelta(seconds=seconds)


class FakeFeeService:
    """Stands in for the routing provider; records every quote request."""

    def __init__(self, distance_km: float = 15.0, fail: bool = False):
        self.origin = LatLng(14.6995, 121.0537)
        self.distance_km = distance_km
        self.fail = fail
        self.calls = []

    def compute_distance_and_fee(self, origin: LatLng, destination: LatLng) -> dict:
        self.calls.append(destination)
        if self.fail:
            raise AppError("Failed to compute route. Please try again later.")
        return {
            "distanceKm": self.distance_km,
            "etaMinutes": 30,
            "fee": compute_fee_breakdown(self.distance_km, False, FeeSettings()),
        }


# ============================================================================
# DATABASE
# ============================================================================


@pytest.fixture
def engine():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = Session()
    yield db
    db.close()


# ============================================================================
# USERS & ACTORS
# ============================================================================


def make_user(db, email: str, roles: list[str], **fields) -> User:
    user = User(email=email, full_name=email.split("@")[0].title(), roles=roles, **fields)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def actor_for(user: User) -> Actor:
    return Actor.of(user.id, user.roles)


@pytest.fixture
def customer(db_session):
    return make_user(db_session, "maria@example.com", [Role.CUSTOMER])


@pytest.fixture
def other_customer(db_session):
    return make_user(db_session, "jose@example.com", [Role.CUSTOMER])


@pytest.fixture
def agent(db_session):
    return make_user(db_session, "agent@example.com", [Role.APPOINTMENT_AGENT])


@pytest.fixture
def sales_staff(db_session):
    return make_user(db_session, "sales@example.com", [Role.SALES_STAFF])


@pytest.fixture
def other_sales_staff(db_session):
    return make_user(db_session, "sales2@example.com", [Role.SALES_STAFF])


@pytest.fixture
def engineer(db_session):
    return make_user(db_session, "engineer@example.com", [Role.ENGINEER])


@pytest.fixture
def cashier(db_session):
    return make_user(db_session, "cashier@example.com", [Role.CASHIER])


@pytest.fixture
def fabricator(db_session):
    return make_user(db_session, "welder@example.com", [Role.FABRICATION_STAFF])


@pytest.fixture
def admin(db_session):
    return make_user(db_session, "admin@example.com", [Role.ADMIN])


# ============================================================================
# CLOCKS & COLLABORATORS
# ============================================================================


@pytest.fixture
def clock():
    return FakeClock(datetime(2030, 1, 6, 9, 0, 0))


@pytest.fixture
def fee_service():
    return FakeFeeService()


@pytest.fixture
def reservations(db_session, clock):
    return ReservationManager(db_session, clock=clock)


@pytest.fixture
def calendar(db_session):
    return CalendarService(db_session, today=lambda: TODAY)


@pytest.fixture
def appointment_service(db_session, reservations, calendar, fee_service):
    return AppointmentService(
        db_session,
        reservations=reservations,
        calendar=calendar,
        fee_service=fee_service,
    )


# ============================================================================
# ROW BUILDERS
# ============================================================================


def make_appointment(db, customer: User, **fields):
    values = {
        "customer_id": customer.id,
        "booked_by_id": customer.id,
        "type": AppointmentType.OFFICE,
        "date": BOOKING_DAY,
        "slot_code": "10:00",
        "status": AppointmentStatus.REQUESTED,
        "customer_address": "12 Mabini St, Quezon City",
    }
    values.update(fields)
    appointment = AppointmentRepository.create(db, **values)
    db.commit()
    db.refresh(appointment)
    return appointment


def make_project(db, customer: User, status: str = ProjectStatus.SUBMITTED, **fields):
    appointment = make_appointment(
        db, customer, status=AppointmentStatus.COMPLETED, sales_staff_id=fields.get("sales_staff_id")
    )
    values = {
        "appointment_id": appointment.id,
        "customer_id": customer.id,
        "title": "Steel gate and railings",
        "service_type": "Gate fabrication",
        "status": status,
        "engineer_ids": [],
        "fabrication_assistant_ids": [],
        "media_keys": [],
    }
    values.update(fields)
    project = ProjectRepository.create(db, **values)
    db.commit()
    db.refresh(project)
    return project
