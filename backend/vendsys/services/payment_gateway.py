# Overview: HTTP client for the external payment gateway (Mercado Pago REST API).

"""
Payment Gateway Client

Only the parts reconciliation depends on are modelled:
- create a checkout preference carrying our external reference
- fetch the authoritative payment record (status, status detail,
  external reference) by payment id

Network errors and non-2xx answers raise GatewayUnavailableError; a 404 on
a payment lookup raises NotFoundError.
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from ..errors import GatewayUnavailableError, NotFoundError


@dataclass(frozen=True)
class Preference:
    id: str
    redirect_url: str


@dataclass(frozen=True)
class GatewayPayment:
    id: str
    status: str
    status_detail: str | None
    external_reference: str | None


class PaymentGateway:
    """Interface the reconciliation engine talks to."""

    def create_preference(
        self, items: list[dict], external_reference: str, notification_url: str | None, currency: str
    ) -> Preference:
        raise NotImplementedError

    def get_payment(self, payment_id: str) -> GatewayPayment:
        raise NotImplementedError


class MercadoPagoClient(PaymentGateway):
    def __init__(
        self,
        access_token: str,
        *,
        api_base: str = "https://api.mercadopago.com",
        timeout: float = 10.0,
        http_client: httpx.Client | None = None,
    ):
        self._client = http_client or httpx.Client(
            base_url=api_base,
            timeout=timeout,
            headers={"Authorization": f"Bearer {access_token}"},
        )

    def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            resp = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise GatewayUnavailableError(f"Payment gateway unreachable: {exc}") from exc

        if resp.status_code == 404:
            raise NotFoundError(f"Payment gateway resource not found: {path}")
        if resp.is_error:
            raise GatewayUnavailableError(
                f"Payment gateway error ({resp.status_code})",
                details={"path": path},
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise GatewayUnavailableError("Payment gateway returned invalid JSON") from exc

    def create_preference(
        self, items: list[dict], external_reference: str, notification_url: str | None, currency: str
    ) -> Preference:
        body = {
            "items": [
                {
                    "title": item["name"],
                    "description": item.get("description") or item["name"],
                    "quantity": item["quantity"],
                    "currency_id": currency,
                    "unit_price": item["unit_price_cents"] / 100,
                }
                for item in items
            ],
            "external_reference": external_reference,
        }
        if notification_url:
            body["notification_url"] = notification_url

        data = self._request("POST", "/checkout/preferences", json=body)
        pref_id = data.get("id")
        if not pref_id:
            raise GatewayUnavailableError("Payment gateway response missing preference id")
        return Preference(id=str(pref_id), redirect_url=data.get("init_point") or "")

    def get_payment(self, payment_id: str) -> GatewayPayment:
        data = self._request("GET", f"/v1/payments/{payment_id}")
        return GatewayPayment(
            id=str(data.get("id", payment_id)),
            status=data.get("status") or "",
            status_detail=data.get("status_detail"),
            external_reference=data.get("external_reference"),
        )


def build_payment_gateway(config) -> PaymentGateway:
    return MercadoPagoClient(
        config.get("MERCADOPAGO_ACCESS_TOKEN", ""),
        api_base=config.get("MERCADOPAGO_API_BASE", "https://api.mercadopago.com"),
        timeout=config.get("GATEWAY_TIMEOUT_SECONDS", 10.0),
    )
