import httpx
import pytest

from serenade.schemas.customizations import CustomizationCreate
from serenade.services.customizations.service import CustomizationService
from serenade.services.errors import DomainError
from serenade.services.moderation.service import ModerationClient


def _client_with(monkeypatch, handler):
    real_client = httpx.Client
    monkeypatch.setattr(
        "serenade.services.moderation.service.httpx.Client",
        lambda *a, **kw: real_client(*a, transport=httpx.MockTransport(handler), **kw),
    )
    return ModerationClient(api_url="https://moderation.test/classify", timeout=1.0)


def _brief(**overrides) -> CustomizationCreate:
    data = {
        "recipientName": " Sarah ",
        "yourName": "Tom",
        "occasion": "birthday",
        "songLength": "60",
        "mood": ["happy", "happy", "funny"],
        "genre": "pop",
        "specialMemories": "Dancing in the kitchen",
    }
    data.update(overrides)
    return CustomizationCreate.model_validate(data)


class TestModerationClient:
    def test_unconfigured_passes_everything(self):
        assert ModerationClient(api_url="").is_clean("anything at all") is True

    def test_blank_text_not_sent(self, monkeypatch):
        calls = []
        client = _client_with(monkeypatch, lambda request: calls.append(request) or httpx.Response(200, json={"clean": True}))
        assert client.is_clean("   ") is True
        assert calls == []

    def test_first_flagged_field(self, monkeypatch):
        def handler(request):
            text = request.read().decode()
            return httpx.Response(200, json={"clean": "rude" not in text})

        client = _client_with(monkeypatch, handler)
        assert client.first_flagged({"recipient_name": "Sarah", "special_memories": "a rude word"}) == "special_memories"
        assert client.first_flagged({"recipient_name": "Sarah"}) is None

    def test_outage_fails_closed(self, monkeypatch):
        client = _client_with(monkeypatch, lambda request: httpx.Response(502))
        with pytest.raises(DomainError) as exc:
            client.is_clean("hello")
        assert exc.value.status_code == 503


class TestCustomizationService:
    def test_brief_normalised_and_stored(self, db, make):
        user = make.user()
        moderation = ModerationClient(api_url="")

        customization = CustomizationService(db, moderation).create(user.id, _brief())

        assert customization.id
        assert customization.recipient_name == "Sarah"
        assert customization.song_length == 60
        assert customization.mood == ["happy", "funny"]

    def test_flagged_field_named_in_error(self, db, make, monkeypatch):
        user = make.user()
        client = _client_with(monkeypatch, lambda request: httpx.Response(200, json={"clean": b"kitchen" not in request.read()}))

        with pytest.raises(DomainError) as exc:
            CustomizationService(db, client).create(user.id, _brief())

        assert str(exc.value) == "Special memories contains language we can't include in a song"
