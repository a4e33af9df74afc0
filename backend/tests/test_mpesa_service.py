import base64
import re
from datetime import datetime

import httpx
import pytest

from water_billing.exceptions import UpstreamAuthError, UpstreamRejected, UpstreamUnavailable
from water_billing.services.mpesa_service import stk_password, stk_timestamp


def test_timestamp_format():
    assert stk_timestamp(datetime(2024, 3, 5, 7, 8, 9)) == "20240305070809"
    assert re.fullmatch(r"\d{14}", stk_timestamp())


def test_password_is_base64_of_shortcode_passkey_timestamp():
    password = stk_password("174379", "passkey", "20240305070809")
    assert base64.b64decode(password).decode() == "174379passkey20240305070809"


class TestAccessToken:
    def test_uses_basic_auth(self, mpesa, daraja):
        assert mpesa.get_access_token() == "test-token"

        request = daraja.requests[0]
        assert request.method == "GET"
        assert request.url.params["grant_type"] == "client_credentials"
        expected = base64.b64encode(b"test-key:test-secret").decode()
        assert request.headers["Authorization"] == f"Basic {expected}"

    def test_non_2xx_raises_auth_error(self, mpesa, daraja):
        daraja.token_status = 400
        with pytest.raises(UpstreamAuthError):
            mpesa.get_access_token()

    def test_timeout_raises_auth_error(self, mpesa, daraja):
        daraja.token_error = lambda request: httpx.ConnectTimeout("timed out", request=request)
        with pytest.raises(UpstreamAuthError):
            mpesa.get_access_token()


class TestStkPush:
    def test_payload(self, mpesa, daraja):
        response = mpesa.stk_push("254712345678", 100, "MTR1", timestamp="20240305070809")

        assert response["CheckoutRequestID"] == "ws_CO_0001"
        payload = daraja.stk_payloads[0]
        assert payload == {
            "BusinessShortCode": "174379",
            "Password": stk_password("174379", "test-passkey", "20240305070809"),
            "Timestamp": "20240305070809",
            "TransactionType": "CustomerPayBillOnline",
            "Amount": 100,
            "PartyA": "254712345678",
            "PartyB": "174379",
            "PhoneNumber": "254712345678",
            "CallBackURL": "https://billing.example.com/mpesa/callback",
            "AccountReference": "MTR1",
            "TransactionDesc": "Water Bill Payment",
        }
        assert daraja.requests[-1].headers["Authorization"] == "Bearer test-token"

    def test_provider_rejection(self, mpesa, daraja):
        daraja.stk_body = {"ResponseCode": "1", "ResponseDescription": "Invalid PhoneNumber"}
        with pytest.raises(UpstreamRejected, match="Invalid PhoneNumber"):
            mpesa.stk_push("254712345678", 100, "MTR1")

    def test_provider_4xx_error_message(self, mpesa, daraja):
        daraja.stk_status = 400
        daraja.stk_body = {"requestId": "1", "errorCode": "400.002.02", "errorMessage": "Bad Request - Invalid Amount"}
        with pytest.raises(UpstreamRejected, match="Invalid Amount"):
            mpesa.stk_push("254712345678", 100, "MTR1")

    def test_provider_4xx_plain_text_is_rejection(self, mpesa, daraja):
        daraja.stk_status = 400
        daraja.stk_text = "Bad Request"
        with pytest.raises(UpstreamRejected, match="Bad Request"):
            mpesa.stk_push("254712345678", 100, "MTR1")

    def test_accepted_without_checkout_id_is_unavailable(self, mpesa, daraja):
        daraja.stk_body = {"ResponseCode": "0", "ResponseDescription": "ok"}
        with pytest.raises(UpstreamUnavailable, match="missing CheckoutRequestID"):
            mpesa.stk_push("254712345678", 100, "MTR1")

    def test_provider_5xx_is_unavailable(self, mpesa, daraja):
        daraja.stk_status = 503
        daraja.stk_body = {"errorMessage": "Service unavailable"}
        with pytest.raises(UpstreamUnavailable):
            mpesa.stk_push("254712345678", 100, "MTR1")

    def test_connection_failure_is_unavailable(self, mpesa, daraja):
        daraja.stk_error = lambda request: httpx.ConnectError("connection refused", request=request)
        with pytest.raises(UpstreamUnavailable):
            mpesa.stk_push("254712345678", 100, "MTR1")

    def test_token_failure_stops_before_submission(self, mpesa, daraja):
        daraja.token_status = 401
        with pytest.raises(UpstreamAuthError):
            mpesa.stk_push("254712345678", 100, "MTR1")
        assert daraja.stk_payloads == []
