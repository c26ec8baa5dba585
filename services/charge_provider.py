"""
Charge Provider integration
Abstract payment capability plus simulated and HTTP implementations
"""

import logging
import random
import string
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from decimal import Decimal
from enum import Enum
from typing import Optional

import httpx
from pydantic import BaseModel

from config import settings
from database.models import PaymentMethod

logger = logging.getLogger(__name__)


class ChargeStatus(str, Enum):
    CREATED = "created"
    PROCESSING = "processing"
    PAID = "paid"
    REFUSED = "refused"
    FAILED = "failed"


class ChargeRequest(BaseModel):
    """Request sent to the payment provider"""

    amount: Decimal
    currency: str
    payment_method: PaymentMethod
    reference: str
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None


class ChargeResponse(BaseModel):
    """Outcome of one charge attempt"""

    success: bool
    transaction_id: str
    status: ChargeStatus
    message: Optional[str] = None
    processing_time: int = 0  # milliseconds


def generate_transaction_id(prefix: str = "PSP") -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=13))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}".upper()


STATUS_MESSAGES = {
    ChargeStatus.CREATED: "Charge created, awaiting payment",
    ChargeStatus.PAID: "Payment processed successfully",
    ChargeStatus.REFUSED: "Payment was refused by the payment provider",
    ChargeStatus.PROCESSING: "Payment is being processed",
    ChargeStatus.FAILED: "Payment failed",
}


class ChargeProvider(ABC):
    """Payment capability consumed by checkout and recurring billing"""

    @abstractmethod
    def charge(self, request: ChargeRequest) -> ChargeResponse:
        raise NotImplementedError


class SimulatedChargeProvider(ChargeProvider):
    """
    Local stand-in for a PSP

    PIX and SLIPBANK charges come back CREATED (paid later through a
    webhook). CARD charges are PAID 60%, REFUSED 20%, PROCESSING 20%.
    """

    def __init__(
        self,
        min_delay: float = 0.1,
        max_delay: float = 0.5,
        rng: Optional[random.Random] = None,
    ):
        self.min_delay = min_delay
        self.max_delay = max_delay
        self._rng = rng or random.Random()

    def charge(self, request: ChargeRequest) -> ChargeResponse:
        logger.info(f"Processing simulated charge: reference={request.reference}")
        started = time.monotonic()

        if self.max_delay > 0:
            time.sleep(self._rng.uniform(self.min_delay, self.max_delay))

        status = self._pick_status(request.payment_method)
        transaction_id = generate_transaction_id()
        success = status not in (ChargeStatus.REFUSED, ChargeStatus.FAILED)

        if success:
            logger.info(f"Charge {status.value}: {transaction_id}")
        else:
            logger.warning(f"Charge {status.value}: {transaction_id}")

        return ChargeResponse(
            success=success,
            transaction_id=transaction_id,
            status=status,
            message=STATUS_MESSAGES[status],
            processing_time=int((time.monotonic() - started) * 1000),
        )

    def _pick_status(self, payment_method: PaymentMethod) -> ChargeStatus:
        if payment_method in (PaymentMethod.PIX, PaymentMethod.SLIPBANK):
            return ChargeStatus.CREATED

        if payment_method == PaymentMethod.CARD:
            roll = self._rng.random()
            if roll < 0.6:
                return ChargeStatus.PAID
            if roll < 0.8:
                return ChargeStatus.REFUSED
            return ChargeStatus.PROCESSING

        return ChargeStatus.FAILED


class HttpChargeProvider(ChargeProvider):
    """PSP reached over HTTP with a bearer key"""

    def __init__(self, api_url: str, api_key: str, timeout: float = 10.0):
        if not api_url or not api_key:
            raise ValueError(
                "Charge provider configuration is incomplete. "
                "Please set CHARGE_API_URL and CHARGE_API_KEY in environment variables."
            )
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

        logger.info(f"HTTP charge provider initialized (url: {self.api_url})")

    def _get_headers(self):
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def charge(self, request: ChargeRequest) -> ChargeResponse:
        payload = request.model_dump(mode="json")
        started = time.monotonic()

        with httpx.Client(timeout=self.timeout) as client:
            try:
                response = client.post(
                    f"{self.api_url}/charges",
                    headers=self._get_headers(),
                    json=payload,
                )
                response.raise_for_status()
                data = response.json()

                transaction_id = data.get("transaction_id")
                if not transaction_id:
                    raise ValueError(
                        "Invalid response from charge provider: missing transaction_id"
                    )

                status = ChargeStatus(data.get("status", ChargeStatus.FAILED.value))
                logger.info(
                    f"Charge {status.value}: reference={request.reference}, "
                    f"transaction_id={transaction_id}"
                )

                return ChargeResponse(
                    success=status not in (ChargeStatus.REFUSED, ChargeStatus.FAILED),
                    transaction_id=transaction_id,
                    status=status,
                    message=data.get("message") or STATUS_MESSAGES[status],
                    processing_time=int(
                        data.get("processing_time")
                        or (time.monotonic() - started) * 1000
                    ),
                )

            except httpx.HTTPStatusError as e:
                logger.error(
                    f"Charge provider error: {e.response.status_code} - {e.response.text}"
                )
                return failed_charge(
                    f"Charge provider error: {e.response.status_code}",
                    started,
                )

            except httpx.TimeoutException:
                logger.error("Charge provider timeout")
                return failed_charge("Request to charge provider timed out", started)


def failed_charge(message: str, started: Optional[float] = None) -> ChargeResponse:
    """FAILED outcome with a locally generated transaction id"""
    elapsed = int((time.monotonic() - started) * 1000) if started is not None else 0
    return ChargeResponse(
        success=False,
        transaction_id=generate_transaction_id("LOCAL"),
        status=ChargeStatus.FAILED,
        message=message,
        processing_time=elapsed,
    )


_executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="charge")


def charge_with_timeout(
    provider: ChargeProvider,
    request: ChargeRequest,
    timeout: Optional[float] = None,
) -> ChargeResponse:
    """
    Call ``provider.charge`` with a hard deadline

    A provider that overruns the deadline or raises yields a FAILED outcome
    instead of an exception, so the caller can still record the attempt.
    """
    timeout = settings.CHARGE_TIMEOUT_SECONDS if timeout is None else timeout
    started = time.monotonic()
    future = _executor.submit(provider.charge, request)

    try:
        return future.result(timeout=timeout)
    except FutureTimeout:
        future.cancel()
        logger.error(
            f"Charge provider exceeded {timeout}s for reference={request.reference}"
        )
        return failed_charge("Charge provider timed out", started)
    except Exception as e:
        logger.exception(
            f"Charge provider raised for reference={request.reference}: {str(e)}"
        )
        return failed_charge(f"Charge provider error: {str(e)}", started)


def get_charge_provider() -> ChargeProvider:
    """Build the provider selected by CHARGE_PROVIDER"""
    if settings.CHARGE_PROVIDER == "http":
        return HttpChargeProvider(
            api_url=settings.CHARGE_API_URL,
            api_key=settings.CHARGE_API_KEY,
            timeout=settings.CHARGE_TIMEOUT_SECONDS,
        )
    if settings.CHARGE_PROVIDER == "simulated":
        return SimulatedChargeProvider()
    raise ValueError(f"Unknown charge provider: {settings.CHARGE_PROVIDER}")
