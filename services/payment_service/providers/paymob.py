"""
Paymob gateway.

Webhooks are signed with HMAC-SHA512 over the raw request body using the shared
secret, hex encoded in the ``x-paymob-signature`` header.
Reference: https://docs.paymob.com/docs/transaction-webhooks
"""
import hashlib
import hmac
import secrets
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping, Optional

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from shared.config import settings
from shared.errors import InvalidSignature, MalformedWebhook, PaymentGatewayError
from services.order_service.status import PaymentMethod, PaymentStatus

from ..schemas import BillingData, PaymentEvent
from .base import PaymentProvider

logger = structlog.get_logger(__name__)

WALLET_SUBTYPE_MARKERS = ("wallet", "cash")


class PaymobSourceData(BaseModel):
    type: Optional[str] = None
    sub_type: Optional[str] = None
    pan: Optional[str] = None


class PaymobOrderRef(BaseModel):
    id: Optional[int] = None
    merchant_order_id: Optional[str] = None


class PaymobTransaction(BaseModel):
    id: int
    success: bool
    pending: bool = False
    amount_cents: int
    currency: str
    order: PaymobOrderRef
    source_data: PaymobSourceData = PaymobSourceData()
    created_at: datetime


class PaymobWebhook(BaseModel):
    type: Optional[str] = None
    obj: PaymobTransaction

    def to_event(self) -> PaymentEvent:
        obj = self.obj
        order_id = obj.order.merchant_order_id or (str(obj.order.id) if obj.order.id is not None else None)
        if not order_id:
            raise MalformedWebhook("Invalid webhook payload: missing order reference")

        source_type = (obj.source_data.type or "").lower()
        sub_type = (obj.source_data.sub_type or "").lower()
        is_wallet = source_type == "wallet" or any(marker in sub_type for marker in WALLET_SUBTYPE_MARKERS)

        return PaymentEvent(
            order_id=order_id,
            transaction_id=str(obj.id),
            amount=(Decimal(obj.amount_cents) / 100).quantize(Decimal("0.01")),
            currency=obj.currency,
            status=PaymentStatus.PAID if obj.success and not obj.pending else PaymentStatus.FAILED,
            method=PaymentMethod.WALLET if is_wallet else PaymentMethod.CARD,
            captured_at=obj.created_at,
        )


def _to_cents(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def _billing_payload(billing: Optional[BillingData]) -> dict:
    if billing is None:
        fields = ("first_name", "last_name", "email", "phone_number", "apartment", "floor", "street",
                  "building", "shipping_method", "postal_code", "city", "country", "state")
        return {field: "NA" for field in fields}

    return {
        "first_name": billing.first_name,
        "last_name": billing.last_name,
        "email": billing.email or "NA",
        "phone_number": billing.phone,
        "apartment": billing.line2 or "NA",
        "floor": "NA",
        "street": billing.line1,
        "building": "NA",
        "shipping_method": "NA",
        "postal_code": billing.postal_code,
        "city": billing.city,
        "country": billing.country,
        "state": "NA",
    }


class PaymobProvider(PaymentProvider):
    provider_name = "PAYMOB"
    signature_header = "x-paymob-signature"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        hmac_secret: str,
        iframe_id: int,
        card_integration_id: int,
        wallet_integration_id: int,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.hmac_secret = hmac_secret
        self.iframe_id = iframe_id
        self.card_integration_id = card_integration_id
        self.wallet_integration_id = wallet_integration_id
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls) -> "PaymobProvider":
        return cls(
            base_url=settings.PAYMOB_BASE_URL,
            api_key=settings.PAYMOB_API_KEY,
            hmac_secret=settings.PAYMOB_HMAC_SECRET,
            iframe_id=settings.PAYMOB_IFRAME_ID,
            card_integration_id=settings.PAYMOB_CARD_INTEGRATION_ID,
            wallet_integration_id=settings.PAYMOB_WALLET_INTEGRATION_ID,
        )

    # --- Webhooks ---

    def sign(self, payload: bytes) -> str:
        return hmac.new(self.hmac_secret.encode(), payload, hashlib.sha512).hexdigest()

    def verify_signature(self, payload: bytes, signature: Optional[str]) -> bool:
        if not signature:
            return False
        return secrets.compare_digest(self.sign(payload), signature.strip().lower())

    async def parse_webhook(self, payload: bytes, signature: Optional[str], headers: Mapping[str, str]) -> PaymentEvent:
        if not self.verify_signature(payload, signature):
            raise InvalidSignature()

        try:
            webhook = PaymobWebhook.model_validate_json(payload)
        except ValidationError as exc:
            logger.warning("paymob_webhook_malformed", errors=exc.error_count())
            raise MalformedWebhook("Invalid webhook payload: missing obj") from exc

        return webhook.to_event()

    # --- Payment intents ---

    async def create_payment_intent(
        self,
        amount: Decimal,
        currency: str,
        method: PaymentMethod,
        billing_data: Optional[BillingData] = None,
        reference: Optional[str] = None,
    ) -> Optional[str]:
        if method == PaymentMethod.CASH_ON_DELIVERY:
            return None

        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self._transport) as client:
            auth_token = await self._authenticate(client)
            paymob_order_id = await self._register_order(client, auth_token, amount, currency, reference)

            if method == PaymentMethod.CARD:
                payment_key = await self._payment_key(
                    client, auth_token, paymob_order_id, amount, currency, billing_data, self.card_integration_id
                )
                return f"{self.base_url}/acceptance/iframes/{self.iframe_id}?payment_token={payment_key}"

            payment_key = await self._payment_key(
                client, auth_token, paymob_order_id, amount, currency, billing_data, self.wallet_integration_id
            )
            data = await self._post(
                client,
                "/acceptance/payments/pay",
                {
                    "source": {"identifier": billing_data.phone if billing_data else None, "subtype": "WALLET"},
                    "payment_token": payment_key,
                },
                "create wallet payment",
            )
            return data["redirect_url"]

    async def _post(self, client: httpx.AsyncClient, path: str, payload: dict, step: str) -> dict:
        try:
            response = await client.post(path, json=payload)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as exc:
            logger.error("paymob_request_failed", step=step, error=str(exc))
            raise PaymentGatewayError(f"Failed to {step}") from exc

    async def _authenticate(self, client: httpx.AsyncClient) -> str:
        data = await self._post(client, "/auth/tokens", {"api_key": self.api_key}, "authenticate with Paymob")
        return data["token"]

    async def _register_order(
        self, client: httpx.AsyncClient, auth_token: str, amount: Decimal, currency: str, reference: Optional[str]
    ):
        payload = {
            "auth_token": auth_token,
            "delivery_needed": False,
            "amount_cents": _to_cents(amount),
            "currency": currency,
            "items": [],
        }
        if reference:
            payload["merchant_order_id"] = reference
        data = await self._post(client, "/ecommerce/orders", payload, "create payment order")
        return data["id"]

    async def _payment_key(
        self,
        client: httpx.AsyncClient,
        auth_token: str,
        paymob_order_id,
        amount: Decimal,
        currency: str,
        billing_data: Optional[BillingData],
        integration_id: int,
    ) -> str:
        data = await self._post(
            client,
            "/acceptance/payment_keys",
            {
                "auth_token": auth_token,
                "amount_cents": _to_cents(amount),
                "expiration": 3600,
                "order_id": paymob_order_id,
                "billing_data": _billing_payload(billing_data),
                "currency": currency,
                "integration_id": integration_id,
                "lock_order_when_paid": "false",
            },
            "generate payment key",
        )
        return data["token"]
