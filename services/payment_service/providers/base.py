from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Mapping, Optional

from services.order_service.status import PaymentMethod

from ..schemas import BillingData, PaymentEvent


class PaymentProvider(ABC):
    """Contract every payment gateway integration implements."""

    provider_name: str
    signature_header: str

    @abstractmethod
    async def create_payment_intent(
        self,
        amount: Decimal,
        currency: str,
        method: PaymentMethod,
        billing_data: Optional[BillingData] = None,
        reference: Optional[str] = None,
    ) -> Optional[str]:
        """Return the URL the customer is redirected to, or None when no redirect is needed."""

    @abstractmethod
    async def parse_webhook(self, payload: bytes, signature: Optional[str], headers: Mapping[str, str]) -> PaymentEvent:
        """
        Verify ``signature`` over the raw ``payload`` and translate it to a PaymentEvent.

        Must raise InvalidSignature before interpreting the payload when the
        signature does not match.
        """
