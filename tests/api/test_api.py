"""
Tests for the FastAPI application.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from api.auth import AuthContext
from api.config import config as api_config
from api.main import create_app
from catalog.exceptions import AuthenticationError, CounterStoreError
from catalog.filters import SortMode, decode_cursor
from ratelimit.limiter import RateLimiter
from ratelimit.store import RedisCounterStore

VALID_KEY = "osk_test_key"
VALID_TOKEN = "oauth-token"


@pytest.fixture
def credentials():
    """Credential verifier that knows one API key and one bearer token."""
    async def verify_api_key(api_key):
        if api_key == VALID_KEY:
            return AuthContext(type="api_key", api_key_id="key-1", scopes=["catalog:read"])
        raise AuthenticationError("Invalid or expired API key", code="INVALID_API_KEY")

    async def verify_bearer(token):
        if token == VALID_TOKEN:
            return AuthContext(type="oauth", client_id="client-1", scopes=[])
        raise AuthenticationError("Access token has expired", code="TOKEN_EXPIRED")

    verifier = MagicMock()
    verifier.verify_api_key = AsyncMock(side_effect=verify_api_key)
    verifier.verify_bearer = AsyncMock(side_effect=verify_bearer)
    return verifier


@pytest.fixture
def client(memory_store, credentials, fake_redis):
    """Test client with the lifespan wired to in-memory stores."""
    engine = MagicMock()
    engine.dispose = AsyncMock()

    with patch("api.main.create_engine", return_value=engine), \
            patch("api.main.aioredis.from_url", return_value=fake_redis), \
            patch("api.main.PostgresPropertyStore", return_value=memory_store), \
            patch("api.main.CredentialVerifier", return_value=credentials), \
            patch("api.main.setup_logging"):
        with TestClient(create_app()) as test_client:
            yield test_client

    engine.dispose.assert_awaited_once()


class TestHealth:
    """Test cases for health endpoints."""

    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert "timestamp" in data
        assert data["version"] == api_config.api_version

    def test_ready(self, client):
        response = client.get("/ready")
        assert response.status_code == 200
        assert response.json()["services"] == {"database": "ok", "redis": "ok"}

    def test_not_ready_when_redis_down(self, client, fake_redis):
        with patch.object(fake_redis, "ping", AsyncMock(side_effect=ConnectionError("down"))):
            response = client.get("/ready")
        assert response.status_code == 503
        assert response.json()["services"]["redis"] == "error"


class TestListProperties:
    """Test cases for GET /v1/properties."""

    def test_anonymous_list(self, client):
        response = client.get("/v1/properties")
        assert response.status_code == 200
        data = response.json()
        assert [p["id"] for p in data["data"]] == ["p01", "p02", "p03", "p04", "p06", "p07", "p08"]
        assert data["next_cursor"] is None

    def test_rate_limit_headers(self, client):
        response = client.get("/v1/properties", params={"limit": 1})
        assert response.headers["X-RateLimit-Limit"] == str(api_config.rate_limit_max_requests)
        assert response.headers["X-RateLimit-Remaining"] == str(api_config.rate_limit_max_requests - 1)
        assert "X-RateLimit-Reset" in response.headers
        assert "Retry-After" not in response.headers

    def test_request_id(self, client):
        response = client.get("/v1/properties", headers={"X-Request-ID": "req-abc"})
        assert response.headers["X-Request-ID"] == "req-abc"

        generated = client.get("/v1/properties").headers["X-Request-ID"]
        assert generated.startswith("req_")

    def test_pagination_over_http(self, client):
        seen = []
        params = {"limit": 3, "sort": "rating_desc"}
        while True:
            data = client.get("/v1/properties", params=params).json()
            seen.extend(p["id"] for p in data["data"])
            if data["next_cursor"] is None:
                break
            params["cursor"] = data["next_cursor"]

        assert seen == ["p01", "p04", "p08", "p03", "p07", "p02", "p06"]

    def test_filters_and_masking(self, client):
        response = client.get("/v1/properties", params={
            "bbox": "174.0,-37.0,175.0,-36.0",
            "amenities": "wifi",
            "address_masking": "true",
            "mask_precision": 1,
        })
        assert response.status_code == 200
        props = response.json()["data"]
        assert [p["id"] for p in props] == ["p01", "p03"]
        assert all("coordinates" not in p and "public_coordinates" in p for p in props)

    def test_random_sort_cursor_carries_seed(self, client):
        response = client.get("/v1/properties", params={"sort": "random", "limit": 2, "seed": 5})
        cursor = decode_cursor(response.json()["next_cursor"], SortMode.RANDOM)
        assert cursor.seed == 5

    def test_unknown_sort_falls_back(self, client):
        default = client.get("/v1/properties").json()
        fallback = client.get("/v1/properties", params={"sort": "relevance"}).json()
        assert default == fallback

    @pytest.mark.parametrize("params", [
        {"bbox": "1,2,3"},
        {"near": "-36.8,174.7,0"},
        {"limit": 0},
        {"limit": 500},
        {"guests": 0},
        {"cancellation_tier": "whenever"},
        {"limit": "many"},
        {"mask_precision": 9},
    ])
    def test_validation_errors(self, client, params):
        response = client.get("/v1/properties", params=params, headers={"X-Request-ID": "req-val"})
        assert response.status_code == 400
        data = response.json()
        assert data["code"] == "VALIDATION_ERROR"
        assert data["errors"]
        assert data["request_id"] == "req-val"

    def test_invalid_cursor(self, client):
        response = client.get("/v1/properties", params={"cursor": "***"})
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_CURSOR"

    def test_store_failure_is_internal_error(self, client, memory_store):
        with patch.object(memory_store, "fetch", AsyncMock(side_effect=RuntimeError("relation does not exist"))):
            response = client.get("/v1/properties")

        assert response.status_code == 500
        data = response.json()
        assert data["code"] == "INTERNAL_ERROR"
        assert "relation" not in data["message"]
        assert "X-Request-ID" in response.headers


class TestGetProperty:
    """Test cases for GET /v1/properties/{property_id}."""

    def test_get_property(self, client):
        response = client.get("/v1/properties/p03")
        assert response.status_code == 200
        data = response.json()
        assert data["id"] == "p03"
        assert data["coordinates"] == {"lat": -36.85, "lon": 174.76}
        assert data["photos"][0]["caption"] == "Lounge"

    def test_get_property_masked(self, client):
        response = client.get("/v1/properties/p01", params={"address_masking": "true", "mask_precision": 0})
        assert response.json()["public_coordinates"] == {"lat": -37.0, "lon": 175.0}

    @pytest.mark.parametrize("property_id", ["p05", "does-not-exist"])
    def test_not_found(self, client, property_id):
        response = client.get(f"/v1/properties/{property_id}")
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_invalid_mask_precision(self, client):
        response = client.get("/v1/properties/p01", params={"mask_precision": 6})
        assert response.status_code == 400


class TestAuthentication:
    """Test cases for credentials and scopes."""

    def test_valid_api_key(self, client, credentials):
        response = client.get("/v1/properties", headers={"X-API-Key": VALID_KEY})
        assert response.status_code == 200
        credentials.verify_api_key.assert_awaited_once_with(VALID_KEY)

    def test_invalid_api_key(self, client):
        response = client.get("/v1/properties", headers={"X-API-Key": "osk_wrong"})
        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_API_KEY"
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_expired_bearer(self, client):
        response = client.get("/v1/properties", headers={"Authorization": "Bearer stale"})
        assert response.status_code == 401
        assert response.json()["code"] == "TOKEN_EXPIRED"

    def test_api_key_takes_precedence(self, client, credentials):
        response = client.get(
            "/v1/properties",
            headers={"X-API-Key": VALID_KEY, "Authorization": "Bearer stale"},
        )
        assert response.status_code == 200
        credentials.verify_bearer.assert_not_awaited()

    def test_required_scopes(self, client):
        with patch.object(api_config, "required_scopes", ["catalog:read"]):
            anonymous = client.get("/v1/properties")
            with_scope = client.get("/v1/properties", headers={"X-API-Key": VALID_KEY})
            without_scope = client.get("/v1/properties", headers={"Authorization": f"Bearer {VALID_TOKEN}"})

        assert anonymous.status_code == 401
        assert anonymous.json()["code"] == "AUTHENTICATION_REQUIRED"
        assert with_scope.status_code == 200
        assert without_scope.status_code == 403
        assert without_scope.json()["code"] == "INSUFFICIENT_SCOPE"


class TestRateLimiting:
    """Test cases for the admission gate."""

    @pytest.fixture
    def tight_limit(self, client, fake_redis):
        client.app.state.rate_limiter = RateLimiter(RedisCounterStore(fake_redis, 60000), default_limit=2)
        return client

    def test_rejects_over_limit(self, tight_limit):
        assert tight_limit.get("/v1/properties").status_code == 200
        assert tight_limit.get("/v1/properties").status_code == 200

        response = tight_limit.get("/v1/properties")
        assert response.status_code == 429
        assert response.json()["code"] == "RATE_LIMIT_EXCEEDED"
        assert int(response.headers["Retry-After"]) >= 1
        assert response.headers["X-RateLimit-Remaining"] == "0"

    def test_identities_have_separate_quotas(self, tight_limit):
        for _ in range(3):
            tight_limit.get("/v1/properties")

        response = tight_limit.get("/v1/properties", headers={"X-API-Key": VALID_KEY})
        assert response.status_code == 200

    def test_counter_store_failure(self, client):
        limiter = MagicMock()
        limiter.check = AsyncMock(side_effect=CounterStoreError("Rate limit counter transaction failed"))
        client.app.state.rate_limiter = limiter

        response = client.get("/v1/properties")

        assert response.status_code == 500
        assert response.json()["code"] == "INTERNAL_ERROR"

    def test_disabled(self, tight_limit):
        with patch.object(api_config, "rate_limit_enabled", False):
            responses = [tight_limit.get("/v1/properties") for _ in range(4)]
        assert all(r.status_code == 200 for r in responses)
        assert "X-RateLimit-Limit" not in responses[-1].headers

    def test_health_is_not_rate_limited(self, tight_limit):
        for _ in range(3):
            tight_limit.get("/v1/properties")
        assert tight_limit.get("/health").status_code == 200


def test_unknown_route(client):
    response = client.get("/v2/nothing")
    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"
