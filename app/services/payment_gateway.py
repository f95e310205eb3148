import logging
import secrets
import string
import time
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

import razorpay
import requests
from fastapi import status

from app.config import Settings
from app.utils.errors import ServiceError

logger = logging.getLogger(__name__)

# Razorpay rejects receipts longer than this
RECEIPT_MAX_LENGTH = 40
_RECEIPT_ALPHABET = string.ascii_lowercase + string.digits


class GatewayError(ServiceError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class GatewayConfigurationError(GatewayError):
    pass


class GatewayValidationError(GatewayError):
    status_code = status.HTTP_400_BAD_REQUEST


class GatewayTimeoutError(GatewayError):
    status_code = status.HTTP_504_GATEWAY_TIMEOUT

    def __init__(self):
        super().__init__("Payment gateway timed out")


def to_minor_units(amount: float) -> int:
    """Rupees -> paise, rounded half-up to a whole number."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def make_receipt_id() -> str:
    suffix = "".join(secrets.choice(_RECEIPT_ALPHABET) for _ in range(7))
    receipt = f"rcpt_{int(time.time() * 1000)}_{suffix}"
    return receipt[:RECEIPT_MAX_LENGTH]


class RazorpayGateway:
    """Thin wrapper over the razorpay client.

    Built once at startup; credentials are checked here so a misconfigured
    process fails before serving traffic. No retries: a failed remote call
    is translated into a GatewayError and raised to the caller.
    """

    def __init__(self, key_id: Optional[str], key_secret: Optional[str], timeout: float = 10.0):
        if not key_id or not key_secret:
            raise GatewayConfigurationError("Razorpay keys not loaded from environment")

        self.key_id = key_id
        self.timeout = timeout
        self.client = razorpay.Client(auth=(key_id, key_secret))

    @classmethod
    def from_settings(cls, settings: Settings) -> "RazorpayGateway":
        return cls(
            key_id=settings.RAZORPAY_KEY_ID,
            key_secret=settings.RAZORPAY_KEY_SECRET,
            timeout=settings.RAZORPAY_TIMEOUT_SECONDS,
        )

    def create_order(
        self,
        amount_minor: int,
        currency: str,
        receipt: str,
        notes: Optional[Dict[str, Any]] = None,
    ) -> str:
        data = {
            "amount": amount_minor,
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
        }

        try:
            order = self.client.order.create(data=data, timeout=self.timeout)
        except requests.Timeout:
            logger.error(f"Razorpay order create timed out after {self.timeout}s (receipt {receipt})")
            raise GatewayTimeoutError()
        except razorpay.errors.BadRequestError as e:
            logger.warning(f"Razorpay rejected order (receipt {receipt}): {e}")
            raise GatewayValidationError(str(e))
        except (razorpay.errors.ServerError, razorpay.errors.GatewayError, requests.RequestException) as e:
            logger.error(f"Razorpay order create failed (receipt {receipt}): {e}")
            raise GatewayError("Payment gateway error")

        logger.info(f"Razorpay order {order['id']} created for {amount_minor} {currency}")
        return order["id"]

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        # HMAC-SHA256(key_secret, "order_id|payment_id")
        try:
            return bool(self.client.utility.verify_payment_signature({
                "razorpay_order_id": order_id,
                "razorpay_payment_id": payment_id,
                "razorpay_signature": signature,
            }))
        except razorpay.errors.SignatureVerificationError:
            return False
