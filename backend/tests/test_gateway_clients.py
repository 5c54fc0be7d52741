"""
HTTP client tests for the payment gateway and the alert mail API.

Both clients are driven through httpx.MockTransport; no network access.
"""

import json

import httpx
import pytest

from vendsys.errors import GatewayUnavailableError, NotFoundError, TransportFailureError
from vendsys.services.mail_transport import LogTransport, SendGridTransport, build_mail_transport
from vendsys.services.payment_gateway import MercadoPagoClient


def _client(handler, base_url="https://api.mercadopago.test"):
    return httpx.Client(base_url=base_url, transport=httpx.MockTransport(handler))


ITEMS = [{"product_id": "SKU-1", "name": "Soda", "description": None, "quantity": 2, "unit_price_cents": 1550}]


# =============================================================================
# PAYMENT GATEWAY
# =============================================================================


class TestMercadoPagoClient:

    def test_create_preference(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"id": "PREF-42", "init_point": "https://mp.test/checkout/PREF-42"})

        gateway = MercadoPagoClient("token", http_client=_client(handler))
        pref = gateway.create_preference(ITEMS, "TXN-001", "https://api.vending.test/api/sales/webhook", "MXN")

        assert pref.id == "PREF-42"
        assert pref.redirect_url == "https://mp.test/checkout/PREF-42"
        assert seen["method"] == "POST"
        assert seen["path"] == "/checkout/preferences"
        assert seen["body"]["external_reference"] == "TXN-001"
        assert seen["body"]["notification_url"] == "https://api.vending.test/api/sales/webhook"
        assert seen["body"]["items"] == [{
            "title": "Soda",
            "description": "Soda",
            "quantity": 2,
            "currency_id": "MXN",
            "unit_price": 15.5,
        }]

    def test_preference_without_id_is_a_gateway_error(self):
        gateway = MercadoPagoClient("token", http_client=_client(lambda r: httpx.Response(200, json={})))

        with pytest.raises(GatewayUnavailableError):
            gateway.create_preference(ITEMS, "TXN-001", None, "MXN")

    def test_get_payment(self):
        def handler(request):
            assert request.url.path == "/v1/payments/123"
            return httpx.Response(200, json={
                "id": 123,
                "status": "approved",
                "status_detail": "accredited",
                "external_reference": "TXN-001",
            })

        payment = MercadoPagoClient("token", http_client=_client(handler)).get_payment("123")

        assert payment.id == "123"
        assert payment.status == "approved"
        assert payment.status_detail == "accredited"
        assert payment.external_reference == "TXN-001"

    def test_missing_payment(self):
        gateway = MercadoPagoClient("token", http_client=_client(lambda r: httpx.Response(404, json={})))

        with pytest.raises(NotFoundError):
            gateway.get_payment("999")

    @pytest.mark.parametrize("status_code", [401, 500, 503])
    def test_error_statuses(self, status_code):
        gateway = MercadoPagoClient("token", http_client=_client(lambda r: httpx.Response(status_code)))

        with pytest.raises(GatewayUnavailableError):
            gateway.get_payment("1")

    def test_network_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        gateway = MercadoPagoClient("token", http_client=_client(handler))

        with pytest.raises(GatewayUnavailableError):
            gateway.create_preference(ITEMS, "TXN-001", None, "MXN")

    def test_invalid_json(self):
        gateway = MercadoPagoClient("token", http_client=_client(lambda r: httpx.Response(200, text="<html>")))

        with pytest.raises(GatewayUnavailableError):
            gateway.get_payment("1")


# =============================================================================
# MAIL TRANSPORT
# =============================================================================


class TestSendGridTransport:

    def test_send_builds_one_message_for_all_recipients(self):
        seen = []

        def handler(request):
            seen.append((request.url.path, json.loads(request.content)))
            return httpx.Response(202)

        transport = SendGridTransport(
            "key", "alerts@vending.test", http_client=_client(handler, "https://api.sendgrid.test")
        )
        transport.send(["b@vending.test", "a@vending.test", "a@vending.test"], "Subject", "<p>hi</p>")

        assert len(seen) == 1
        path, body = seen[0]
        assert path == "/v3/mail/send"
        assert body["personalizations"] == [{"to": [{"email": "a@vending.test"}, {"email": "b@vending.test"}]}]
        assert body["from"] == {"email": "alerts@vending.test"}
        assert body["content"] == [{"type": "text/html", "value": "<p>hi</p>"}]

    def test_rejected_message(self):
        transport = SendGridTransport(
            "key", "alerts@vending.test", http_client=_client(lambda r: httpx.Response(401), "https://sg.test")
        )

        with pytest.raises(TransportFailureError):
            transport.send(["a@vending.test"], "Subject", "<p>hi</p>")

    def test_unreachable(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        transport = SendGridTransport("key", "alerts@vending.test", http_client=_client(handler, "https://sg.test"))

        with pytest.raises(TransportFailureError):
            transport.send(["a@vending.test"], "Subject", "<p>hi</p>")

    def test_no_recipients(self):
        transport = SendGridTransport(
            "key", "alerts@vending.test", http_client=_client(lambda r: httpx.Response(202), "https://sg.test")
        )

        with pytest.raises(TransportFailureError):
            transport.send([], "Subject", "<p>hi</p>")


def test_unconfigured_mail_falls_back_to_log_transport():
    assert isinstance(build_mail_transport({}), LogTransport)
    assert isinstance(
        build_mail_transport({"SENDGRID_API_KEY": "key", "ALERT_EMAIL_SENDER": "a@b.test"}),
        SendGridTransport,
    )
