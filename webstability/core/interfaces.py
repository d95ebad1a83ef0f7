"""
PaymentGateway and Notifier interfaces and their implementations.

The lifecycle service only talks to these protocols:

- NoopPaymentGateway: default when no Mollie key is configured; hands out
  local checkout references and never reports a payment.
- MolliePaymentGateway: creates and fetches payments over the Mollie REST API.
- LoggingNotifier: logs every notification, sends nothing.
- CeleryNotifier: hands notifications to the ``notifications.send_notification``
  worker task.
"""

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Protocol

import httpx
from celery import Celery

from webstability.config import settings
from webstability.core.errors import InfrastructureError
from webstability.models import Project

logger = logging.getLogger(__name__)


# Monthly price per package, VAT included
PACKAGE_PRICES: dict[str, Decimal] = {
    "starter": Decimal("29.00"),
    "professional": Decimal("49.00"),
    "business": Decimal("79.00"),
    "webshop": Decimal("99.00"),
}


@dataclass(frozen=True)
class CheckoutSession:
    checkout_url: str
    reference: str


@dataclass(frozen=True)
class PaymentReport:
    """Provider-side view of one payment, as fetched for a webhook."""

    reference: str
    status: str
    amount: Decimal
    project_id: str | None = None


class PaymentGateway(Protocol):
    async def create_checkout(
        self, project: Project, amount: Decimal, description: str
    ) -> CheckoutSession:
        ...

    async def fetch_payment(self, reference: str) -> PaymentReport | None:
        ...


class Notifier(Protocol):
    async def send(self, kind: str, recipient: str, payload: dict[str, Any]) -> None:
        ...


# ── payment gateways ──────────────────────────────────────────────────────


class NoopPaymentGateway:
    """Core default: no payment provider configured."""

    async def create_checkout(
        self, project: Project, amount: Decimal, description: str
    ) -> CheckoutSession:
        reference = f"local_{uuid.uuid4().hex[:12]}"
        return CheckoutSession(
            checkout_url=f"{settings.site_url}/betalen/{project.project_id}?ref={reference}",
            reference=reference,
        )

    async def fetch_payment(self, reference: str) -> PaymentReport | None:
        return None


class MolliePaymentGateway:
    def __init__(
        self,
        api_key: str | None = None,
        api_url: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key or settings.mollie_api_key
        self.api_url = (api_url or settings.mollie_api_url).rstrip("/")
        self._client = client

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        url = f"{self.api_url}{path}"
        try:
            if self._client is not None:
                response = await self._client.request(
                    method, url, headers=self._headers(), **kwargs
                )
            else:
                async with httpx.AsyncClient(timeout=15.0) as client:
                    response = await client.request(
                        method, url, headers=self._headers(), **kwargs
                    )
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            detail = exc.response.text[:200]
            logger.error(f"Mollie {method} {path} failed: {exc.response.status_code} {detail}")
            raise InfrastructureError(
                f"Payment provider rejected the request ({exc.response.status_code})"
            ) from exc
        except httpx.HTTPError as exc:
            logger.error(f"Mollie {method} {path} failed: {exc}")
            raise InfrastructureError(f"Payment provider unreachable: {exc}") from exc

    async def create_checkout(
        self, project: Project, amount: Decimal, description: str
    ) -> CheckoutSession:
        payload = {
            "amount": {
                "value": f"{Decimal(amount):.2f}",
                "currency": settings.payment_currency,
            },
            "description": description,
            "redirectUrl": f"{settings.site_url}/project/{project.project_id}",
            "webhookUrl": f"{settings.site_url}/api/v1/payments/webhook",
            "metadata": {
                "projectId": project.project_id,
                "packageType": project.package,
            },
        }
        data = await self._request("POST", "/payments", json=payload)
        return CheckoutSession(
            checkout_url=data["_links"]["checkout"]["href"],
            reference=data["id"],
        )

    async def fetch_payment(self, reference: str) -> PaymentReport | None:
        data = await self._request("GET", f"/payments/{reference}")
        return PaymentReport(
            reference=data["id"],
            status=data["status"],
            amount=Decimal(data["amount"]["value"]),
            project_id=(data.get("metadata") or {}).get("projectId"),
        )


def build_payment_gateway() -> PaymentGateway:
    if settings.mollie_api_key:
        return MolliePaymentGateway()
    logger.info("No Mollie API key configured, using the no-op payment gateway")
    return NoopPaymentGateway()


# ── notifiers ─────────────────────────────────────────────────────────────


class LoggingNotifier:
    async def send(self, kind: str, recipient: str, payload: dict[str, Any]) -> None:
        logger.info(f"Notification '{kind}' for {recipient}: {payload}")


class CeleryNotifier:
    def __init__(self, celery_app: Celery):
        self.celery_app = celery_app

    async def send(self, kind: str, recipient: str, payload: dict[str, Any]) -> None:
        self.celery_app.send_task(
            "notifications.send_notification",
            args=[kind, recipient, payload],
        )


def build_notifier(celery_app: Celery | None = None) -> Notifier:
    if settings.notifier_backend == "celery":
        if celery_app is None:
            from webstability.celery_app import get_celery_app

            celery_app = get_celery_app()
        return CeleryNotifier(celery_app)
    return LoggingNotifier()
