"""Tests for the HTTP API."""

import pytest
from conftest import FakeClient, make_transaction
from fastapi.testclient import TestClient

from paysync.core.config import Settings
from paysync.core.constants import PaymentSource
from paysync.core.context import build_context
from paysync.main import app


@pytest.fixture
def settings():
    return Settings(AUTO_START_FETCHER=False, _env_file=None)


def client_for(context) -> TestClient:
    app.state.context = context
    return TestClient(app)


@pytest.fixture(autouse=True)
def reset_app_state():
    yield
    if hasattr(app.state, "context"):
        del app.state.context


class TestHealth:
    """Test health endpoints."""

    def test_root_and_healthz(self, settings, price_service):
        context = build_context(settings, clients=[], price_service=price_service)
        with client_for(context) as client:
            assert client.get("/").json() == {"status": "ok"}
            body = client.get("/healthz").json()
            assert body["status"] == "healthy"


class TestTransactionRoutes:
    """Test the transaction endpoints."""

    def test_list_is_enriched_and_sorted(self, settings, price_service):
        stripe = FakeClient(
            PaymentSource.STRIPE,
            [
                make_transaction("a", amount="650", minutes=1),
                make_transaction("b", amount="15", minutes=2),
            ],
        )
        context = build_context(settings, clients=[stripe], price_service=price_service)

        with client_for(context) as client:
            response = client.get("/transactions", params={"limit": 0})

        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 2
        assert [t["external_id"] for t in body["transactions"]] == ["b", "a"]
        assert body["transactions"][0]["product"] == "Shower"
        assert body["transactions"][1]["product"] == "Cabin"

    def test_list_unavailable_when_refresh_fails(self, settings, price_service, failing_client):
        context = build_context(settings, clients=[failing_client], price_service=price_service)

        with client_for(context) as client:
            response = client.get("/transactions")

        assert response.status_code == 503
        assert "failed to refresh cache" in response.json()["detail"]

    def test_get_by_id(self, settings, price_service):
        stripe = FakeClient(PaymentSource.STRIPE, [make_transaction("ch_1", amount="40")])
        context = build_context(settings, clients=[stripe], price_service=price_service)

        with client_for(context) as client:
            response = client.get("/transactions/ch_1")

        assert response.status_code == 200
        assert response.json()["product"] == "Washing machine"

    def test_get_by_id_not_found(self, settings, price_service):
        context = build_context(
            settings, clients=[FakeClient(PaymentSource.STRIPE)], price_service=price_service
        )

        with client_for(context) as client:
            response = client.get("/transactions/ghost")

        assert response.status_code == 404
        assert response.json()["detail"] == "transaction with ID ghost not found"

    def test_refresh(self, settings, price_service, failing_client):
        stripe = FakeClient(PaymentSource.STRIPE, [make_transaction("s1")])
        context = build_context(
            settings, clients=[stripe, failing_client], price_service=price_service
        )

        with client_for(context) as client:
            response = client.post("/transactions/refresh")

        body = response.json()
        assert response.status_code == 200
        assert body["status"] == "partial"
        assert body["total"] == 1
        assert body["errors"] == {"vipps": "vipps is down"}

    def test_refresh_without_providers(self, settings, price_service):
        context = build_context(settings, clients=[], price_service=price_service)

        with client_for(context) as client:
            response = client.post("/transactions/refresh")

        assert response.status_code == 503

    def test_fetcher_status(self, settings, price_service):
        stripe = FakeClient(PaymentSource.STRIPE)
        context = build_context(settings, clients=[stripe], price_service=price_service)

        with client_for(context) as client:
            body = client.get("/transactions/fetcher/status").json()

        assert body["running"] is False
        assert body["providers"] == ["stripe"]
        assert body["interval_seconds"] == 300

    def test_shutdown_closes_clients(self, settings, price_service):
        stripe = FakeClient(PaymentSource.STRIPE)
        context = build_context(settings, clients=[stripe], price_service=price_service)

        with client_for(context):
            pass

        assert stripe.closed is True
        assert context.closed is True


class TestBuildContext:
    """Test wiring from settings."""

    def test_providers_follow_credentials(self, prices_csv):
        settings = Settings(
            STRIPE_APIKEY="sk",
            ZETTLE_APIKEY="zk",
            PRICES_CSV_PATH=str(prices_csv),
            _env_file=None,
        )
        context = build_context(settings)

        assert context.repository.sources == ["stripe", "zettle"]
        assert len(context.price_service.all_prices()) == 7
        assert context.cache.get_price("Cabin")[1] is True

    def test_mock_provider_in_development(self, prices_csv):
        settings = Settings(
            USE_MOCK_PROVIDER=True, PRICES_CSV_PATH=str(prices_csv), _env_file=None
        )
        assert build_context(settings).repository.sources == ["mock"]

    def test_missing_price_list_is_fatal(self, tmp_path):
        from paysync.core.errors import PriceListLoadError

        settings = Settings(PRICES_CSV_PATH=str(tmp_path / "none.csv"), _env_file=None)
        with pytest.raises(PriceListLoadError):
            build_context(settings)

    def test_zero_cache_ttl_is_rejected(self):
        """A zero TTL would keep transactions forever, so settings refuse it."""
        from pydantic import ValidationError

        with pytest.raises(ValidationError):
            Settings(CACHE_TTL_HOURS=0, _env_file=None)

    def test_cache_ttl_reaches_cache_and_fetcher(self, prices_csv):
        settings = Settings(CACHE_TTL_HOURS=2, PRICES_CSV_PATH=str(prices_csv), _env_file=None)
        context = build_context(settings)

        assert context.cache.default_ttl.total_seconds() == 7200
        assert context.fetcher.config.cache_ttl_seconds == 7200
