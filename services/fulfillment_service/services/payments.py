"""
Payment orchestration.

Validates card details, charges cards through a ``CardGateway`` and records
the outcome on the order's ``PaymentDetails``. Cash on delivery never touches
the gateway. Card data is only held in memory for the duration of a charge.
"""

import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Protocol

import httpx

from libs.common.config import get_settings
from libs.common.logging import get_logger
from services.fulfillment_service.errors import (
    InvalidCardDataError,
    PaymentDeclinedError,
    PaymentGatewayError,
    UnsupportedPaymentMethodError,
)
from services.fulfillment_service.models import (
    PaymentDetails,
    PaymentMethodType,
    PaymentStatus,
)

logger = get_logger(__name__)

CARD_METHODS = frozenset({PaymentMethodType.CREDIT_CARD, PaymentMethodType.MADA})
SUPPORTED_METHODS = CARD_METHODS | {PaymentMethodType.CASH_ON_DELIVERY}

CARD_NUMBER_RE = re.compile(r"^[0-9]{16}$")
EXPIRY_RE = re.compile(r"^(0[1-9]|1[0-2])/([0-9]{2})$")
CVV_RE = re.compile(r"^[0-9]{3}$")


@dataclass(frozen=True)
class CardData:
    number: str
    expiry_month: int
    expiry_year: int
    cvv: str

    @property
    def last4(self) -> str:
        return self.number[-4:]

    def __repr__(self):
        return f"CardData(****{self.last4}, {self.expiry_month:02d}/{self.expiry_year})"


def parse_card_data(
    card_number: Optional[str],
    expiry_date: Optional[str],
    cvv: Optional[str],
    now: datetime,
) -> CardData:
    """
    Validate raw card fields.

    - card number: 16 digits, spaces ignored
    - expiry: MM/YY, the card is valid through the end of that month
    - cvv: 3 digits

    Raises:
        InvalidCardDataError: Naming the first field that failed.
    """
    number = (card_number or "").replace(" ", "")
    if not CARD_NUMBER_RE.match(number):
        raise InvalidCardDataError("Card number must be 16 digits", field="card_number")

    match = EXPIRY_RE.match((expiry_date or "").strip())
    if not match:
        raise InvalidCardDataError(
            "Expiry date must be in MM/YY format", field="expiry_date"
        )
    month, year = int(match.group(1)), 2000 + int(match.group(2))
    # First instant after the expiry month
    if month == 12:
        expires_at = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        expires_at = datetime(year, month + 1, 1, tzinfo=timezone.utc)
    if now >= expires_at:
        raise InvalidCardDataError("Card has expired", field="expiry_date")

    if not CVV_RE.match((cvv or "").strip()):
        raise InvalidCardDataError("CVV must be 3 digits", field="cvv")

    return CardData(
        number=number, expiry_month=month, expiry_year=year, cvv=cvv.strip()
    )


# ============================================================================
# GATEWAYS
# ============================================================================


@dataclass
class ChargeResult:
    """Result of a card charge attempt."""

    success: bool
    transaction_id: Optional[str] = None
    error_code: Optional[str] = None
    message: Optional[str] = None


class CardGateway(Protocol):
    async def charge(
        self, card: CardData, amount: Decimal, currency: str, idempotency_key: str
    ) -> ChargeResult: ...


class SimulatedCardGateway:
    """
    In-process gateway that approves every card except ``declined_numbers``.

    Repeating an idempotency key returns the first transaction id.
    """

    def __init__(self, declined_numbers: Optional[set[str]] = None):
        self.declined_numbers = declined_numbers or set()
        self._charges: dict[str, ChargeResult] = {}

    async def charge(
        self, card: CardData, amount: Decimal, currency: str, idempotency_key: str
    ) -> ChargeResult:
        if idempotency_key in self._charges:
            return self._charges[idempotency_key]
        if card.number in self.declined_numbers:
            result = ChargeResult(
                success=False, error_code="card_declined", message="Card was declined"
            )
        else:
            result = ChargeResult(
                success=True, transaction_id=f"CARD-{uuid.uuid4()}"
            )
        self._charges[idempotency_key] = result
        return result


class HttpCardGateway:
    """Async client for a JSON card-charging API."""

    def __init__(
        self,
        base_url: str,
        secret_key: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.base_url = base_url.rstrip("/")
        self.secret_key = secret_key or settings.CARD_GATEWAY_SECRET_KEY
        self.timeout = timeout
        self._transport = transport
        self._headers = {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    async def charge(
        self, card: CardData, amount: Decimal, currency: str, idempotency_key: str
    ) -> ChargeResult:
        payload = {
            "amount": str(amount),
            "currency": currency,
            "card": {
                "number": card.number,
                "expiry_month": card.expiry_month,
                "expiry_year": card.expiry_year,
                "cvv": card.cvv,
            },
        }
        headers = {**self._headers, "Idempotency-Key": idempotency_key}

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    f"{self.base_url}/charges", json=payload, headers=headers
                )
        except httpx.HTTPError as e:
            logger.error("Card gateway request failed: %s", e)
            raise PaymentGatewayError(f"Card gateway unreachable: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code in (402, 422):
            return ChargeResult(
                success=False,
                error_code=data.get("code", "card_declined"),
                message=data.get("message", "Card was declined"),
            )
        if not response.is_success:
            logger.error(
                "Card gateway error: %s - %s", response.status_code, data
            )
            raise PaymentGatewayError(
                data.get("message", "Card gateway error"),
                status_code=response.status_code,
            )

        status = data.get("status")
        if status != "succeeded":
            return ChargeResult(
                success=False,
                error_code=data.get("code", "card_declined"),
                message=data.get("message", f"Charge {status or 'failed'}"),
            )
        return ChargeResult(success=True, transaction_id=data.get("id"))


def build_card_gateway() -> CardGateway:
    """Gateway selected by settings: HTTP when a URL is configured, else simulated."""
    settings = get_settings()
    if settings.CARD_GATEWAY_URL:
        return HttpCardGateway(
            settings.CARD_GATEWAY_URL,
            settings.CARD_GATEWAY_SECRET_KEY,
            timeout=settings.CARD_GATEWAY_TIMEOUT,
        )
    return SimulatedCardGateway()


# ============================================================================
# ORCHESTRATOR
# ============================================================================


class PaymentOrchestrator:
    """Runs the payment step of order creation."""

    def __init__(self, gateway: CardGateway):
        self.gateway = gateway

    def validate(
        self,
        method: PaymentMethodType,
        card_number: Optional[str] = None,
        expiry_date: Optional[str] = None,
        cvv: Optional[str] = None,
        *,
        now: datetime,
    ) -> Optional[CardData]:
        """
        Check that ``method`` is supported and, for cards, that the card data
        is well formed. Returns the parsed card for card methods.
        """
        if method not in SUPPORTED_METHODS:
            raise UnsupportedPaymentMethodError(method.value)
        if method in CARD_METHODS:
            return parse_card_data(card_number, expiry_date, cvv, now)
        return None

    async def process(
        self,
        payment: PaymentDetails,
        card: Optional[CardData],
        *,
        idempotency_key: str,
        order_date: datetime,
        now: datetime,
    ) -> None:
        """
        Settle ``payment`` in place.

        Card: pending -> processing -> completed, with the gateway's
        transaction id. Cash on delivery: pending -> processing with a
        ``COD-`` reference; it is completed on delivery.

        Raises:
            PaymentDeclinedError: The gateway refused the card.
            PaymentGatewayError: The gateway could not be reached.
        """
        method = payment.payment_method
        if method == PaymentMethodType.CASH_ON_DELIVERY:
            payment.status = PaymentStatus.PROCESSING
            payment.transaction_id = f"COD-{uuid.uuid4().hex[:12].upper()}"
            payment.paid_at = order_date
            return

        if method not in CARD_METHODS:
            raise UnsupportedPaymentMethodError(method.value)
        if card is None:
            raise InvalidCardDataError("Card details are required")

        payment.status = PaymentStatus.PROCESSING
        result = await self.gateway.charge(
            card, payment.amount, payment.currency, idempotency_key
        )
        if not result.success:
            payment.status = PaymentStatus.FAILED
            payment.error_code = result.error_code
            payment.error_message = result.message
            logger.warning(
                "Card payment declined for order %s (%s): %s",
                payment.order_id,
                result.error_code,
                result.message,
            )
            raise PaymentDeclinedError(
                result.message or "Payment was declined", result.error_code
            )

        payment.status = PaymentStatus.COMPLETED
        payment.transaction_id = result.transaction_id
        payment.paid_at = now
        logger.info(
            "Card payment completed for order %s (card ****%s, %s %s)",
            payment.order_id,
            card.last4,
            payment.amount,
            payment.currency,
        )
