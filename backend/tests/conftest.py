import json
import os

# Settings are read once and cached, so the environment must be in place
# before anything from water_billing is imported.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_TO_FILE"] = "false"
os.environ["MPESA_BASE_URL"] = "https://sandbox.safaricom.co.ke"
os.environ["MPESA_CONSUMER_KEY"] = "test-key"
os.environ["MPESA_CONSUMER_SECRET"] = "test-secret"
os.environ["MPESA_SHORTCODE"] = "174379"
os.environ["MPESA_PASSKEY"] = "test-passkey"
os.environ["MPESA_CALLBACK_URL"] = "https://billing.example.com/mpesa/callback"
os.environ["TOPUP_RATE_LIMIT"] = "1000"

from decimal import Decimal

import httpx
import pytest
from fastapi.testclient import TestClient

from water_billing.config import BillingRates, get_settings
from water_billing.database import Base, SessionLocal, engine, init_db
from water_billing.main import app
from water_billing.models.balance import ClientBalance
from water_billing.models.payment import PaymentRequest
from water_billing.services.mpesa_service import MpesaService, get_mpesa_service
from water_billing.utils.rate_limiter import reset_rate_limits


class FakeDaraja:
    """Stands in for the Safaricom sandbox behind an httpx.MockTransport."""

    def __init__(self):
        self.requests = []
        self.stk_payloads = []
        self.token_status = 200
        self.token_error = None
        self.stk_status = 200
        self.stk_body = None
        self.stk_text = None
        self.stk_error = None
        self._issued = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.url.path == "/oauth/v1/generate":
            if self.token_error:
                raise self.token_error(request)
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"errorMessage": "Invalid credentials"})
            return httpx.Response(200, json={"access_token": "test-token", "expires_in": "3599"})

        if request.url.path == "/mpesa/stkpush/v1/processrequest":
            if self.stk_error:
                raise self.stk_error(request)
            self.stk_payloads.append(json.loads(request.content))
            if self.stk_text is not None:
                return httpx.Response(self.stk_status, text=self.stk_text)
            if self.stk_body is not None:
                return httpx.Response(self.stk_status, json=self.stk_body)
            self._issued += 1
            return httpx.Response(200, json={
                "MerchantRequestID": f"29115-34620561-{self._issued}",
                "CheckoutRequestID": f"ws_CO_{self._issued:04d}",
                "ResponseCode": "0",
                "ResponseDescription": "Success. Request accepted for processing",
                "CustomerMessage": "Success. Request accepted for processing",
            })

        return httpx.Response(404)


@pytest.fixture(autouse=True)
def fresh_database():
    Base.metadata.drop_all(bind=engine)
    init_db()
    reset_rate_limits()
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def rates():
    return BillingRates(rate_per_unit=Decimal("1"), unit_size=Decimal("1"), low_balance_threshold=Decimal("10"))


@pytest.fixture
def daraja():
    return FakeDaraja()


@pytest.fixture
def mpesa(daraja):
    http_client = httpx.Client(transport=httpx.MockTransport(daraja.handler))
    yield MpesaService(get_settings().mpesa_credentials(), http_client)
    http_client.close()


@pytest.fixture
def client(mpesa):
    app.dependency_overrides[get_mpesa_service] = lambda: mpesa
    return TestClient(app)


@pytest.fixture
def make_callback():
    def _make(checkout_request_id, result_code=0, amount=100, receipt="NLJ7RT61SV", phone=254712345678):
        callback = {
            "MerchantRequestID": "29115-34620561-1",
            "CheckoutRequestID": checkout_request_id,
            "ResultCode": result_code,
            "ResultDesc": "The service request is processed successfully." if result_code == 0
            else "Request cancelled by user",
        }
        if result_code == 0:
            callback["CallbackMetadata"] = {"Item": [
                {"Name": "Amount", "Value": amount},
                {"Name": "MpesaReceiptNumber", "Value": receipt},
                {"Name": "TransactionDate", "Value": 20191219102115},
                {"Name": "PhoneNumber", "Value": phone},
            ]}
        return {"Body": {"stkCallback": callback}}
    return _make


@pytest.fixture
def seed_balance(db):
    def _seed(meter_number="MTR1", remaining="100", purchased=None):
        balance = ClientBalance(
            meter_number=meter_number,
            user_id="user-1",
            phone="254712345678",
            remaining_quantity=Decimal(remaining),
            total_purchased=Decimal(purchased if purchased is not None else remaining),
            consumption_total=Decimal("0"),
            status="active",
            version=1,
        )
        db.add(balance)
        db.commit()
        return balance
    return _seed


@pytest.fixture
def seed_payment(db):
    def _seed(transaction_id="ws_CO_0001", meter_number="MTR1", amount=100, status="Pending"):
        payment = PaymentRequest(
            transaction_id=transaction_id,
            user_id="user-1",
            phone="254712345678",
            amount=amount,
            meter_number=meter_number,
            status=status,
            processed=False,
            quantity_purchased=0,
        )
        db.add(payment)
        db.commit()
        return payment
    return _seed


def fetch_balance(db, meter_number):
    db.expire_all()
    return db.query(ClientBalance).filter(ClientBalance.meter_number == meter_number).first()


def fetch_payment(db, transaction_id):
    db.expire_all()
    return db.query(PaymentRequest).filter(PaymentRequest.transaction_id == transaction_id).first()


@pytest.fixture
def balance_of(db):
    return lambda meter_number: fetch_balance(db, meter_number)


@pytest.fixture
def payment_of(db):
    return lambda transaction_id: fetch_payment(db, transaction_id)
