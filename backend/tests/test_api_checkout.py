"""
API tests for checkout and shipping endpoints
"""
import pytest


@pytest.mark.asyncio
class TestCheckoutAPI:

    async def test_checkout_returns_session(self, async_client, mug, fake_gateway):
        response = await async_client.post("/checkout", json={
            "items": [{"id": str(mug.id), "name": "Mug", "price": 12.00, "quantity": 2}]
        })

        assert response.status_code == 200
        body = response.json()
        assert body["id"].startswith("cs_test_")
        assert body["url"].startswith("https://checkout.stripe.com/")
        line_items = fake_gateway.created_sessions[0]["line_items"]
        assert line_items[0]["quantity"] == 2
        assert line_items[0]["price_data"]["unit_amount"] == 1200

    async def test_stale_price_returns_409_with_itemized_errors(self, async_client, mug, product_store, fake_gateway):
        await product_store.update(mug.id, {"price": 15.00})

        response = await async_client.post("/checkout", json={
            "items": [{"id": str(mug.id), "name": "Mug", "price": 12.00, "quantity": 1}]
        })

        assert response.status_code == 409
        body = response.json()
        assert body["success"] is False
        assert body["error_code"] == "CART_STALE"
        assert body["errors"] == ['"Mug": price changed 12.00€ → 15.00€']
        assert fake_gateway.created_sessions == []

    async def test_malformed_cart_is_rejected_before_lookup(self, async_client, mug):
        response = await async_client.post("/checkout", json={
            "items": [{"id": str(mug.id), "name": "Mug", "price": 12.00, "quantity": 100}]
        })

        assert response.status_code == 409
        body = response.json()
        assert body["error_code"] == "CART_STALE"
        assert len(body["errors"]) == 1
        assert body["errors"][0].startswith("items.0.quantity: ")

    async def test_empty_cart_is_rejected(self, async_client, fake_gateway):
        response = await async_client.post("/checkout", json={"items": []})

        assert response.status_code == 409
        body = response.json()
        assert body["error_code"] == "CART_STALE"
        assert [error.split(":")[0] for error in body["errors"]] == ["items"]
        assert fake_gateway.created_sessions == []

    async def test_validation_outside_checkout_stays_422(self):
        import json
        from fastapi import Request
        from fastapi.exceptions import RequestValidationError
        from core.exceptions import validation_exception_handler

        request = Request({"type": "http", "method": "POST", "path": "/webhook/stripe", "headers": [], "query_string": b""})
        exc = RequestValidationError([{"loc": ("body", "name"), "msg": "Field required", "type": "missing"}])

        response = await validation_exception_handler(request, exc)

        assert response.status_code == 422
        body = json.loads(response.body)
        assert body["error_code"] == "VALIDATION_ERROR"
        assert body["errors"] == {"name": "Field required"}

    async def test_stripe_failure_is_reported(self, async_client, mug, fake_gateway):
        fake_gateway.fail_on.add("create_checkout_session")

        response = await async_client.post("/checkout", json={
            "items": [{"id": str(mug.id), "name": "Mug", "price": 12.00, "quantity": 1}]
        })

        assert response.status_code == 502
        assert response.json()["success"] is False

    async def test_missing_stripe_key_is_a_500(self, async_client, mug):
        from core.dependencies import get_stripe_gateway
        from core.exceptions import ConfigurationException
        from main import app

        def missing_key():
            raise ConfigurationException("STRIPE_SECRET_KEY")

        app.dependency_overrides[get_stripe_gateway] = missing_key

        response = await async_client.post("/checkout", json={
            "items": [{"id": str(mug.id), "name": "Mug", "price": 12.00, "quantity": 1}]
        })

        assert response.status_code == 500
        assert response.json()["error_code"] == "CONFIGURATION_ERROR"


@pytest.mark.asyncio
class TestShippingAPI:

    async def test_rates_are_camel_cased(self, async_client, fake_gateway):
        fake_gateway.shipping_rates = [{
            "id": "shr_colissimo",
            "display_name": "Colissimo",
            "type": "fixed_amount",
            "fixed_amount": {"amount": 590, "currency": "eur"},
            "metadata": {"free_shipping_threshold": "60"},
        }]

        response = await async_client.get("/shipping/rates")

        assert response.status_code == 200
        rate = response.json()["rates"][0]
        assert rate["id"] == "shr_colissimo"
        assert rate["displayName"] == "Colissimo"
        assert rate["fixedAmount"] == {"amount": "5.90", "currency": "eur"}
        assert rate["freeShippingThreshold"] == "60"
        assert rate["deliveryEstimate"] is None


@pytest.mark.asyncio
class TestHealthAPI:

    async def test_health(self, async_client):
        response = await async_client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_webhook_health(self, async_client):
        response = await async_client.get("/webhook/health")

        assert response.json() == {"status": "healthy", "service": "webhooks"}
