"""HTTP-level tests through FastAPI's TestClient with dependency overrides."""
import asyncio
import hashlib
import hmac
import json
import time
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import update

from serenade.core.config import settings
from serenade.db.session import get_db
from serenade.main import app
from serenade.models.failed_job import FailedJob
from serenade.models.order import ORDER_STATUS_COMPLETED, Order
from serenade.models.song_variant import VARIANT_COMPLETE, VARIANT_FAILED, VARIANT_PENDING, SongVariant
from serenade.services.auth.identity import AuthUser, get_current_user
from serenade.services.generation.engine import STATUS_GENERATED, GenerationResult
from serenade.services.moderation.service import get_moderation_client
from serenade.services.payments.gateway import CheckoutSession, PaymentGateway, get_payment_gateway
from serenade.services.payments.metadata import BaseOrderMetadata
from serenade.storage.local import LocalStorage, get_storage

WEBHOOK_SECRET = "whsec_api_tests"
ADMIN_HEADERS = {"X-Admin-Key": "admin-key-for-tests"}


@pytest.fixture
def user(make):
    return make.user(user_id="user-api", email="api@example.com")


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(base_path=str(tmp_path), signing_secret="api-test-signing-secret")


@pytest.fixture
def gateway():
    gw = PaymentGateway(api_key="sk_test_api", webhook_secret=WEBHOOK_SECRET)
    gw.create_checkout_session = MagicMock(return_value=CheckoutSession(id="cs_api", url="https://checkout.test/cs_api"))
    return gw


@pytest.fixture
def moderation():
    return MagicMock(first_flagged=MagicMock(return_value=None))


@pytest.fixture
def client(db, user, storage, gateway, moderation):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_current_user] = lambda: AuthUser(id=user.id, email=user.email)
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_moderation_client] = lambda: moderation
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _customization_payload(**overrides):
    payload = {
        "recipientName": "Sarah",
        "yourName": "Tom",
        "occasion": "birthday",
        "songLength": "60",
        "mood": ["happy", "happy", "funny"],
        "genre": "pop",
        "specialMemories": "Her cat Biscuit",
    }
    payload.update(overrides)
    return payload


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}


class TestAuth:
    def test_missing_token_is_401(self, db):
        app.dependency_overrides[get_db] = lambda: db
        try:
            response = TestClient(app).get("/api/balance")
        finally:
            app.dependency_overrides.clear()
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    def test_valid_token_upserts_user(self, db):
        token = jwt.encode(
            {"sub": "idp-user-1", "email": "idp@example.com", "aud": "authenticated", "exp": int(time.time()) + 60},
            settings.auth_jwt_secret,
            algorithm="HS256",
        )
        app.dependency_overrides[get_db] = lambda: db
        try:
            response = TestClient(app).get("/api/balance", headers={"Authorization": f"Bearer {token}"})
        finally:
            app.dependency_overrides.clear()
        assert response.status_code == 200
        assert response.json() == {"balance": 0}

    def test_expired_token_is_401(self, db):
        token = jwt.encode(
            {"sub": "idp-user-1", "aud": "authenticated", "exp": int(time.time()) - 60},
            settings.auth_jwt_secret,
            algorithm="HS256",
        )
        app.dependency_overrides[get_db] = lambda: db
        try:
            response = TestClient(app).get("/api/balance", headers={"Authorization": f"Bearer {token}"})
        finally:
            app.dependency_overrides.clear()
        assert response.status_code == 401


class TestCustomizations:
    def test_create(self, client, db):
        response = client.post("/api/customizations", json=_customization_payload())
        assert response.status_code == 200
        customization_id = response.json()["customizationId"]
        from serenade.models.customization import Customization

        saved = db.get(Customization, customization_id)
        assert saved.song_length == 60
        assert saved.mood == ["happy", "funny"]

    def test_validation_error(self, client):
        response = client.post("/api/customizations", json=_customization_payload(mood=[]))
        assert response.status_code == 422

    def test_flagged_text_names_the_field(self, client, moderation):
        moderation.first_flagged.return_value = "special_memories"
        response = client.post("/api/customizations", json=_customization_payload())
        assert response.status_code == 400
        assert "Special memories" in response.json()["error"]


class TestCheckout:
    def test_checkout_returns_stripe_url(self, client, make, user):
        customization = make.customization(user)
        response = client.post("/api/checkout", json={"customizationId": customization.id})
        assert response.status_code == 200
        assert response.json() == {"url": "https://checkout.test/cs_api"}

    def test_foreign_customization_404(self, client, make):
        other = make.user()
        customization = make.customization(other)
        response = client.post("/api/checkout", json={"customizationId": customization.id})
        assert response.status_code == 404
        assert response.json() == {"error": "Customisation not found"}

    def test_upsell_at_cap_409(self, client, make, user):
        order = make.order(user, make.customization(user), variants=(VARIANT_COMPLETE,) * 4, status=ORDER_STATUS_COMPLETED)
        response = client.post("/api/checkout/upsell", json={"orderId": order.id})
        assert response.status_code == 409


class TestWebhook:
    def _signed(self, payload: str) -> dict:
        ts = int(time.time())
        mac = hmac.new(WEBHOOK_SECRET.encode(), f"{ts}.{payload}".encode(), hashlib.sha256).hexdigest()
        return {"Stripe-Signature": f"t={ts},v1={mac}", "Content-Type": "application/json"}

    def test_bad_signature_400(self, client, db):
        response = client.post("/api/webhook", content=b"{}", headers={"Stripe-Signature": "t=1,v1=bad"})
        assert response.status_code == 400
        assert "error" in response.json()
        assert db.query(Order).count() == 0

    def test_missing_signature_400(self, client):
        assert client.post("/api/webhook", content=b"{}").status_code == 400

    def test_completed_session_creates_order(self, client, db, make, user, celery_delays):
        customization = make.customization(user)
        payload = json.dumps({
            "id": "evt_api",
            "type": "checkout.session.completed",
            "data": {"object": {
                "id": "cs_api_hook",
                "amount_total": 799,
                "currency": "gbp",
                "metadata": BaseOrderMetadata(user_id=user.id, customization_id=customization.id).to_stripe(),
            }},
        })
        response = client.post("/api/webhook", content=payload, headers=self._signed(payload))
        assert response.status_code == 200
        assert response.json()["received"] is True
        order = db.query(Order).filter(Order.stripe_session_id == "cs_api_hook").one()
        celery_delays.generation.assert_called_once_with(order.id)

    def test_handler_runs_outside_event_loop(self, client):
        seen = {}

        def handle(event):
            try:
                asyncio.get_running_loop()
                seen["on_loop"] = True
            except RuntimeError:
                seen["on_loop"] = False
            return {"received": True}

        payload = json.dumps({"id": "evt_loop", "type": "customer.created", "data": {"object": {}}})
        with patch("serenade.api.routes.webhook.PaymentEventHandler") as mock_handler:
            mock_handler.return_value.handle.side_effect = handle
            response = client.post("/api/webhook", content=payload, headers=self._signed(payload))

        assert response.json() == {"received": True}
        assert seen == {"on_loop": False}


class TestGeneration:
    def test_start_requires_secret(self, client):
        response = client.post("/api/generate/start", json={"orderId": "o1"}, headers={"X-Generation-Secret": "wrong"})
        assert response.status_code == 401

    def test_start_requires_order_id(self, client):
        response = client.post("/api/generate/start", json={}, headers={"X-Generation-Secret": settings.generation_secret})
        assert response.status_code == 400

    @patch("serenade.api.routes.generation.VariantGenerationEngine")
    def test_start_chains_while_remaining(self, mock_engine, client, celery_delays):
        mock_engine.return_value.generate_next_variant.return_value = GenerationResult(
            status=STATUS_GENERATED, remaining=2, variant_id="v1", variant_number=1
        )
        response = client.post(
            "/api/generate/start", json={"orderId": "o1"}, headers={"X-Generation-Secret": settings.generation_secret}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == STATUS_GENERATED
        assert body["remaining"] == 2
        assert body["chained"] is True
        celery_delays.generation.assert_called_once_with("o1")

    @patch("serenade.api.routes.generation.VariantGenerationEngine")
    def test_last_variant_does_not_chain(self, mock_engine, client, celery_delays):
        mock_engine.return_value.generate_next_variant.return_value = GenerationResult(status=STATUS_GENERATED, remaining=0)
        response = client.post(
            "/api/generate/start", json={"orderId": "o1"}, headers={"X-Generation-Secret": settings.generation_secret}
        )
        assert response.json()["chained"] is False
        celery_delays.generation.assert_not_called()

    def test_user_generate_foreign_order_404(self, client, make):
        other = make.user()
        order = make.order(other, make.customization(other))
        assert client.post("/api/generate", json={"orderId": order.id}).status_code == 404


class TestOrders:
    def test_status(self, client, make, user):
        order = make.order(user, make.customization(user))
        response = client.get(f"/api/orders/{order.id}/status")
        assert response.status_code == 200
        assert [v["generationStatus"] for v in response.json()["variants"]] == [VARIANT_PENDING] * 3

    def test_status_foreign_404(self, client, make):
        other = make.user()
        order = make.order(other, make.customization(other))
        assert client.get(f"/api/orders/{order.id}/status").status_code == 404

    def test_select_incomplete_409(self, client, make, user):
        order = make.order(user, make.customization(user))
        variant = make.variants(order)[0]
        response = client.post(f"/api/orders/{order.id}/variants/{variant.id}/select")
        assert response.status_code == 409

    def test_retry_failed(self, client, make, user, celery_delays):
        order = make.order(user, make.customization(user), variants=(VARIANT_FAILED, VARIANT_COMPLETE, VARIANT_FAILED),
                           status=ORDER_STATUS_COMPLETED)
        response = client.post(f"/api/orders/{order.id}/retry-failed")
        assert response.json() == {"resetCount": 2}
        celery_delays.generation.assert_called_once_with(order.id)

    def test_tweak_then_payment_required(self, client, db, make, user):
        order = make.order(user, make.customization(user), variants=(VARIANT_COMPLETE,) * 3, status=ORDER_STATUS_COMPLETED)
        first = client.post("/api/tweak", json={"orderId": order.id, "specialMemories": "Lisbon"})
        assert first.json()["requiresPayment"] is False
        # tweak variant rendered, order settled again
        db.execute(update(Order).where(Order.id == order.id).values(status=ORDER_STATUS_COMPLETED))
        db.commit()
        second = client.post("/api/tweak", json={"orderId": order.id, "specialMemories": "Porto"})
        assert second.json() == {"requiresPayment": True}

    def test_balance(self, client, make, user):
        make.bundle(user, remaining=4, purchased=5, tier="5-pack")
        assert client.get("/api/balance").json() == {"balance": 4}


class TestSongsAndShare:
    @pytest.fixture
    def shared(self, db, make, user, storage):
        order = make.order(user, make.customization(user, recipient_name="Zoë O'Neil"),
                           variants=(VARIANT_COMPLETE,) * 3, status=ORDER_STATUS_COMPLETED)
        variant = make.variants(order)[0]
        storage.upload(variant.storage_path, b"ID3-song")
        db.execute(update(SongVariant).where(SongVariant.id == variant.id).values(selected=True))
        db.commit()
        return SimpleNamespace(order=order, variant=make.reload(variant))

    def test_signed_url_round_trip(self, client, shared):
        response = client.get(f"/api/songs/{shared.variant.id}/url")
        assert response.status_code == 200
        token = response.json()["url"].rsplit("/", 1)[-1]
        audio = client.get(f"/api/storage/{token}")
        assert audio.status_code == 200
        assert audio.content == b"ID3-song"
        assert audio.headers["content-type"] == "audio/mpeg"

    def test_bad_storage_token_404(self, client):
        assert client.get("/api/storage/not-a-token").status_code == 404

    def test_share_page_data(self, client, shared):
        response = client.get(f"/api/share/{shared.variant.share_token}")
        assert response.status_code == 200
        assert response.json()["recipientName"] == "Zoë O'Neil"

    def test_stream_headers(self, client, shared):
        response = client.get(f"/api/share/{shared.variant.share_token}/stream")
        assert response.content == b"ID3-song"
        assert response.headers["cache-control"] == "public, max-age=3600"
        assert response.headers["content-disposition"] == "inline"

    def test_download_filename_sanitised(self, client, shared):
        response = client.get(f"/api/share/{shared.variant.share_token}/download")
        assert response.headers["content-disposition"] == 'attachment; filename="song-zo-o-neil.mp3"'

    def test_unselected_variant_not_shared(self, client, make, shared):
        other = make.variants(shared.order)[1]
        assert client.get(f"/api/share/{other.share_token}").status_code == 404


class TestGiftEmail:
    @pytest.fixture
    def share_token(self, db, make, user):
        order = make.order(user, make.customization(user), variants=(VARIANT_COMPLETE,) * 3,
                           status=ORDER_STATUS_COMPLETED)
        variant = make.variants(order)[2]
        db.execute(update(SongVariant).where(SongVariant.id == variant.id).values(selected=True))
        db.commit()
        return make.reload(variant).share_token

    def _payload(self, share_token, **overrides):
        payload = {
            "recipientEmail": "sarah@example.com",
            "recipientName": "Sarah",
            "senderName": "Tom",
            "shareToken": share_token,
            "personalMessage": "For you",
        }
        payload.update(overrides)
        return payload

    def test_scheduled_gift(self, client, share_token, celery_delays):
        when = datetime.now(timezone.utc) + timedelta(days=1)
        response = client.post("/api/email/send-gift", json=self._payload(share_token, scheduledAt=when.isoformat()))

        assert response.status_code == 200
        assert response.json() == {"success": True, "scheduled": True}
        assert celery_delays.email.call_args.args[3] == when.isoformat()

    def test_immediate_gift(self, client, share_token, celery_delays):
        response = client.post("/api/email/send-gift", json=self._payload(share_token))
        assert response.json() == {"success": True, "scheduled": False}
        assert celery_delays.email.call_args.args[3] is None

    def test_past_schedule_rejected(self, client, share_token, celery_delays):
        past = (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat()
        response = client.post("/api/email/send-gift", json=self._payload(share_token, scheduledAt=past))
        assert response.status_code == 422
        celery_delays.email.assert_not_called()

    def test_bad_recipient_email_rejected(self, client, share_token):
        response = client.post("/api/email/send-gift", json=self._payload(share_token, recipientEmail="sarah@"))
        assert response.status_code == 422

    def test_unknown_share_token_404(self, client, celery_delays):
        response = client.post("/api/email/send-gift", json=self._payload("missing"))
        assert response.status_code == 404
        assert response.json() == {"error": "Song not found"}


class TestUnsubscribe:
    def test_order_scoped_opt_out(self, client, make, user, db):
        order = make.order(user, make.customization(user))
        prefs = make.email_preferences(user)
        response = client.get(f"/api/unsubscribe/{prefs.unsubscribe_token}", params={"order_id": order.id})
        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
        prefs = make.reload(prefs)
        assert prefs.occasion_unsubscribes == [order.id]
        assert prefs.global_unsubscribe is False

    def test_global_opt_out(self, client, make, user):
        prefs = make.email_preferences(user)
        client.get(f"/api/unsubscribe/{prefs.unsubscribe_token}", params={"all": "true"})
        assert make.reload(prefs).global_unsubscribe is True

    def test_unknown_token_404_html(self, client):
        response = client.get("/api/unsubscribe/unknown")
        assert response.status_code == 404
        assert "text/html" in response.headers["content-type"]


class TestAdmin:
    def test_requires_key(self, client):
        assert client.get("/admin/failed-jobs").status_code == 403
        assert client.get("/admin/failed-jobs", headers={"X-Admin-Key": "wrong"}).status_code == 403

    def test_list_and_resolve(self, client, db):
        job = FailedJob(job_type="stripe_webhook", event_data={"sessionId": "cs_1"}, error_message="bad metadata")
        db.add(job)
        db.commit()

        listed = client.get("/admin/failed-jobs", headers=ADMIN_HEADERS).json()
        assert [item["id"] for item in listed["items"]] == [job.id]

        response = client.patch(f"/admin/failed-jobs/{job.id}", json={"action": "resolve"}, headers=ADMIN_HEADERS)
        assert response.status_code == 200
        assert client.get("/admin/failed-jobs", headers=ADMIN_HEADERS).json()["items"] == []

        audit = client.get(f"/admin/audit/failed_job/{job.id}", headers=ADMIN_HEADERS).json()["items"]
        assert [entry["action"] for entry in audit] == ["failed_job_resolve"]
        assert audit[0]["actor_id"].startswith("key:")
        assert settings.admin_api_key not in json.dumps(audit)

    def test_retry_generation(self, client, make, user, celery_delays):
        order = make.order(user, make.customization(user), variants=(VARIANT_FAILED, VARIANT_COMPLETE, VARIANT_COMPLETE),
                           status=ORDER_STATUS_COMPLETED)
        variant = make.variants(order)[0]
        response = client.post(f"/admin/generations/{variant.id}/retry", headers=ADMIN_HEADERS)
        assert response.json() == {"reset": True, "orderId": order.id}
        celery_delays.generation.assert_called_once_with(order.id)

    def test_retry_complete_generation_rejected(self, client, make, user):
        order = make.order(user, make.customization(user), variants=(VARIANT_COMPLETE,))
        variant = make.variants(order)[0]
        response = client.post(f"/admin/generations/{variant.id}/retry", headers=ADMIN_HEADERS)
        assert response.status_code == 400
        assert response.json() == {"error": "Only failed generations can be retried"}
