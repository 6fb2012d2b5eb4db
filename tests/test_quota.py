"""
Unit tests for the quota gate.

Tests credential selection and conditional charging.
"""

import asyncio

import pytest

from conftest import FakeBilling
from promptgate.core.errors import ConfigNotFound, CredentialNotFound
from promptgate.core.quota import QuotaGate, ResolvedCredential
from promptgate.storage.models import ApiKey


class TestQuotaLookup:
    """Test quota retrieval."""

    def test_get_quota(self):
        """Test that the balance is returned."""
        gate = QuotaGate(FakeBilling({1: 3.5}))
        assert asyncio.run(gate.get_quota(1)) == 3.5

    def test_zero_balance_is_a_quota(self):
        """Test that an empty balance is not the same as no quota."""
        gate = QuotaGate(FakeBilling({1: 0.0}))
        assert asyncio.run(gate.get_quota(1)) == 0.0

    def test_missing_quota_raises(self):
        """Test that organizations without quota fail."""
        gate = QuotaGate(FakeBilling({}))
        with pytest.raises(ConfigNotFound, match="Quota not found"):
            asyncio.run(gate.get_quota(1))


class TestCredentialResolution:
    """Test which key pays for a run."""

    def test_bound_key_never_chargeable(self):
        """Test that a model-bound key is used as-is."""
        billing = FakeBilling({1: 10.0})
        billing.keys[4] = ApiKey(id=4, org_id=1, vendor="CUSTOM_OPENAI_COMPATIBLE", key="sk-own", base_url="")
        credential = asyncio.run(QuotaGate(billing).resolve_credential(1, "CUSTOM_OPENAI_COMPATIBLE", 10.0, 4))

        assert credential.api_key == "sk-own"
        assert credential.base_url is None
        assert credential.chargeable is False

    def test_missing_bound_key_raises(self):
        """Test that a dangling key binding fails."""
        with pytest.raises(CredentialNotFound, match="Custom provider API key not found"):
            asyncio.run(QuotaGate(FakeBilling({1: 1.0})).resolve_credential(1, "OPENAI", 1.0, 4))

    def test_bound_key_of_other_org_not_used(self):
        """Test that keys are scoped to their organization."""
        billing = FakeBilling({1: 1.0})
        billing.keys[4] = ApiKey(id=4, org_id=2, vendor="OPENAI", key="sk-other")
        with pytest.raises(CredentialNotFound):
            asyncio.run(QuotaGate(billing).resolve_credential(1, "OPENAI", 1.0, 4))

    def test_unbound_delegates_to_billing(self):
        """Test that billing picks the key for unbound models."""
        credential = asyncio.run(QuotaGate(FakeBilling({1: 1.0})).resolve_credential(1, "OPENAI", 1.0))
        assert credential.api_key == "platform-OPENAI"
        assert credential.chargeable is True

    def test_repr_hides_key(self):
        """Test that keys never appear in reprs."""
        credential = ResolvedCredential(api_key="sk-secret", chargeable=True)
        assert "sk-secret" not in repr(credential)


class TestCharging:
    """Test conditional charging."""

    def test_chargeable_credential_charged(self):
        """Test that organization-funded runs are charged."""
        billing = FakeBilling({1: 1.0})
        charged = asyncio.run(QuotaGate(billing).charge(
            1, ResolvedCredential(api_key="k", chargeable=True), 0.25, "attempt-1"
        ))
        assert charged is True
        assert billing.charges == [(1, 0.25, "attempt-1")]
        assert billing.balances[1] == pytest.approx(0.75)

    def test_non_chargeable_credential_not_charged(self):
        """Test that caller-funded runs are free."""
        billing = FakeBilling({1: 1.0})
        charged = asyncio.run(QuotaGate(billing).charge(1, ResolvedCredential(api_key="k"), 0.25))
        assert charged is False
        assert billing.charges == []
