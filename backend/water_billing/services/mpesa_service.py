"""
M-Pesa Service — Daraja OAuth token exchange and STK push submission.
"""
import base64
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from water_billing.config import MpesaCredentials, get_settings
from water_billing.exceptions import UpstreamAuthError, UpstreamRejected, UpstreamUnavailable
from water_billing.utils.logging import get_logger

logger = get_logger(__name__)

TOKEN_PATH = "/oauth/v1/generate?grant_type=client_credentials"
STK_PUSH_PATH = "/mpesa/stkpush/v1/processrequest"


def _safe_json(resp: httpx.Response) -> Any:
    """Return parsed json or text if JSON fails."""
    try:
        return resp.json()
    except ValueError:
        return resp.text


def stk_timestamp(now: Optional[datetime] = None) -> str:
    """Daraja timestamp: YYYYMMDDHHmmss."""
    return (now or datetime.now()).strftime("%Y%m%d%H%M%S")


def stk_password(shortcode: str, passkey: str, timestamp: str) -> str:
    """base64(shortcode + passkey + timestamp)."""
    return base64.b64encode(f"{shortcode}{passkey}{timestamp}".encode("utf-8")).decode("ascii")


class MpesaService:
    """Thin synchronous client over the two Daraja endpoints the top-up flow uses."""

    def __init__(self, credentials: MpesaCredentials, http_client: Optional[httpx.Client] = None):
        self.credentials = credentials
        self._http = http_client or httpx.Client()

    def get_access_token(self) -> str:
        """Exchange consumer key/secret for a bearer token.

        Raises:
            UpstreamAuthError: on timeout, connection failure, non-2xx or a
                response without ``access_token``.
        """
        creds = self.credentials
        basic = base64.b64encode(f"{creds.consumer_key}:{creds.consumer_secret}".encode("utf-8")).decode("ascii")
        try:
            resp = self._http.get(
                creds.base_url + TOKEN_PATH,
                headers={"Authorization": f"Basic {basic}"},
                timeout=creds.token_timeout,
            )
        except httpx.RequestError as e:
            logger.error("[M-Pesa] token request error: %s", e)
            raise UpstreamAuthError(f"M-Pesa token request failed: {e}")

        body = _safe_json(resp)
        if resp.status_code >= 300:
            logger.error("[M-Pesa] token exchange error %s %s", resp.status_code, body)
            raise UpstreamAuthError(f"M-Pesa token exchange failed with HTTP {resp.status_code}")

        token = body.get("access_token") if isinstance(body, dict) else None
        if not token:
            raise UpstreamAuthError("M-Pesa token response did not include an access token")
        return token

    def build_stk_payload(self, phone: str, amount: int, reference: str, timestamp: str) -> Dict[str, Any]:
        creds = self.credentials
        return {
            "BusinessShortCode": creds.shortcode,
            "Password": stk_password(creds.shortcode, creds.passkey, timestamp),
            "Timestamp": timestamp,
            "TransactionType": creds.transaction_type,
            "Amount": amount,
            "PartyA": phone,
            "PartyB": creds.shortcode,
            "PhoneNumber": phone,
            "CallBackURL": creds.callback_url,
            "AccountReference": reference,
            "TransactionDesc": creds.transaction_desc,
        }

    def stk_push(self, phone: str, amount: int, reference: str, timestamp: Optional[str] = None) -> Dict[str, Any]:
        """Submit an STK push and return the provider's accepted response.

        Raises:
            UpstreamAuthError: token exchange failed.
            UpstreamRejected: the provider refused the request (non-zero
                ResponseCode or HTTP 4xx).
            UpstreamUnavailable: network failure, timeout, provider 5xx or an
                accepted response without a CheckoutRequestID.
        """
        token = self.get_access_token()
        payload = self.build_stk_payload(phone, amount, reference, timestamp or stk_timestamp())
        logger.info("[M-Pesa] STK push phone=%s amount=%s reference=%s", phone, amount, reference)

        try:
            resp = self._http.post(
                self.credentials.base_url + STK_PUSH_PATH,
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.credentials.request_timeout,
            )
        except httpx.RequestError as e:
            logger.error("[M-Pesa] STK push request error: %s", e)
            raise UpstreamUnavailable(f"STK Push failed: {e}")

        body = _safe_json(resp)
        if resp.status_code >= 500:
            logger.error("[M-Pesa] STK push provider error %s %s", resp.status_code, body)
            raise UpstreamUnavailable(f"STK Push failed: provider returned HTTP {resp.status_code}")
        if resp.status_code >= 400 and not isinstance(body, dict):
            logger.warning("[M-Pesa] STK push rejected %s %s", resp.status_code, body)
            raise UpstreamRejected(resp.text or f"STK Push rejected with HTTP {resp.status_code}")
        if not isinstance(body, dict):
            raise UpstreamUnavailable("STK Push failed: unreadable provider response")

        if resp.status_code >= 400 or str(body.get("ResponseCode")) != "0":
            description = body.get("ResponseDescription") or body.get("errorMessage") or "STK Push rejected"
            logger.warning("[M-Pesa] STK push rejected %s %s", resp.status_code, body)
            raise UpstreamRejected(description)

        if not body.get("CheckoutRequestID"):
            logger.error("[M-Pesa] STK push accepted without CheckoutRequestID %s", body)
            raise UpstreamUnavailable("STK Push failed: provider response missing CheckoutRequestID")

        logger.info("[M-Pesa] STK push accepted CheckoutRequestID=%s", body.get("CheckoutRequestID"))
        return body


def get_mpesa_service():
    """FastAPI dependency: provider client built from the configured credentials, closed after the request."""
    with httpx.Client() as client:
        yield MpesaService(get_settings().mpesa_credentials(), client)
