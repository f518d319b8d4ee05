"""
Tests for credential helpers and scope checks.
"""

import pytest

from api.auth import AuthContext, CredentialVerifier, check_scopes, generate_api_key, hash_api_key
from catalog.database import create_engine
from catalog.exceptions import AuthenticationError, AuthorizationError


def test_generated_keys_carry_prefix():
    key = generate_api_key("osk_")
    assert key.startswith("osk_")
    assert generate_api_key("osk_") != key


def test_hash_is_stable_sha256():
    assert hash_api_key("osk_abc") == hash_api_key("osk_abc")
    assert len(hash_api_key("osk_abc")) == 64
    assert hash_api_key("osk_abc") != hash_api_key("osk_abd")


class TestCheckScopes:
    """Test cases for scope enforcement."""

    def test_no_required_scopes(self):
        check_scopes(None, [])

    def test_anonymous_rejected_when_scopes_required(self):
        with pytest.raises(AuthenticationError) as exc_info:
            check_scopes(None, ["catalog:read"])
        assert exc_info.value.code == "AUTHENTICATION_REQUIRED"

    def test_missing_scope(self):
        auth = AuthContext(type="oauth", client_id="c1", scopes=["bookings:read"])
        with pytest.raises(AuthorizationError) as exc_info:
            check_scopes(auth, ["catalog:read"])
        assert exc_info.value.status_code == 403

    def test_scope_present(self):
        auth = AuthContext(type="api_key", api_key_id="k1", scopes=["catalog:read", "bookings:read"])
        check_scopes(auth, ["catalog:read"])


@pytest.mark.asyncio
async def test_malformed_api_key_rejected_without_lookup():
    verifier = CredentialVerifier(
        create_engine("postgresql+asyncpg://catalog@localhost:5432/catalog_test", pool_size=1),
        api_key_prefix="osk_",
    )
    with pytest.raises(AuthenticationError) as exc_info:
        await verifier.verify_api_key("sk_live_123")
    assert exc_info.value.code == "INVALID_API_KEY"
