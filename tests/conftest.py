import hashlib
import hmac
import os

os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("secret_key", "test-secret-key")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "rzp_test_secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

import app.models  # noqa: F401
from app.database import get_session
from app.main import app as fastapi_app
from app.models.book import Book
from app.models.user import User
from app.services.delivery_service import DeliveryService
from app.services.payment_gateway import RazorpayGateway
from app.services.purchase_service import PurchaseService
from app.utils.token import create_access_token

KEY_ID = os.environ["RAZORPAY_KEY_ID"]
KEY_SECRET = os.environ["RAZORPAY_KEY_SECRET"]


def sign(order_id: str, payment_id: str, secret: str = KEY_SECRET) -> str:
    return hmac.new(
        secret.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256
    ).hexdigest()


class FakeGateway(RazorpayGateway):
    """Real signature checks, canned order creation."""

    def __init__(self):
        super().__init__(KEY_ID, KEY_SECRET, timeout=1)
        self.orders = []
        self.error = None

    def create_order(self, amount_minor, currency, receipt, notes=None):
        if self.error:
            raise self.error
        order_id = f"order_test{len(self.orders) + 1}"
        self.orders.append({
            "id": order_id,
            "amount": amount_minor,
            "currency": currency,
            "receipt": receipt,
            "notes": notes,
        })
        return order_id


class RecordingMailer:
    def __init__(self):
        self.sent = []
        self.accept = True

    def __call__(self, to, subject, html, attachments=None):
        self.sent.append({
            "to": to,
            "subject": subject,
            "html": html,
            "attachments": attachments or [],
        })
        return self.accept


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


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def upload_root(tmp_path):
    return tmp_path


@pytest.fixture
def service(gateway, mailer, upload_root):
    delivery = DeliveryService(send=mailer, upload_root=str(upload_root), store_name="BookNest")
    return PurchaseService(gateway, delivery, currency="INR")


@pytest.fixture
def make_user(session):
    counter = {"n": 0}

    def _make(name="Reader", balance=0.0):
        counter["n"] += 1
        user = User(name=name, email=f"user{counter['n']}@example.com", wallet_balance=balance)
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make


@pytest.fixture
def make_book(session):
    def _make(seller, price=500.0, title="The Pragmatic Reader", pdf_file=None, is_available=True):
        book = Book(
            title=title,
            author="A. Author",
            description="A book",
            price=price,
            seller_id=seller.id,
            pdf_file=pdf_file,
            is_available=is_available,
            verification_status="verified",
        )
        session.add(book)
        session.commit()
        session.refresh(book)
        return book

    return _make


@pytest.fixture
def client(session, service):
    def _get_test_session():
        return session

    fastapi_app.dependency_overrides[get_session] = _get_test_session
    fastapi_app.state.purchase_service = service
    with TestClient(fastapi_app) as c:
        yield c
    fastapi_app.dependency_overrides.clear()
    fastapi_app.state.purchase_service = None


def auth_headers(user):
    token = create_access_token({"userId": user.id})
    return {"Authorization": f"Bearer {token}"}
