"""Shared fakes for orchestrator, quota and system prompt tests."""

import asyncio
from datetime import datetime
from typing import Dict, List, Optional

import pytest

from promptgate.core.errors import CredentialNotFound
from promptgate.core.quota import ResolvedCredential
from promptgate.core.token_counter import TokenCounts
from promptgate.providers import Provider, ProviderRegistry, ProviderRequest, ProviderResponse
from promptgate.storage.models import ApiKey, LanguageModel, UsageRecord

FIXED_NOW = datetime(2025, 1, 1, 12, 0, 0)


class FakeBilling:
    """In-memory billing collaborator."""

    def __init__(self, balances: Optional[Dict[int, float]] = None, chargeable: bool = True):
        self.balances = dict(balances or {})
        self.keys: Dict[int, ApiKey] = {}
        self.chargeable = chargeable
        self.charges: List[tuple] = []
        self.fail_credential = False

    async def get_quota(self, org_id):
        return self.balances.get(org_id)

    async def get_api_key_by_id(self, org_id, key_id):
        key = self.keys.get(key_id)
        if key is None or key.org_id != org_id:
            return None
        return key

    async def get_api_key_by_quota(self, balance, org_id, vendor):
        if self.fail_credential:
            raise CredentialNotFound(f"AI API key not found for {vendor}")
        return ResolvedCredential(api_key=f"platform-{vendor}", chargeable=self.chargeable)

    async def charge_quota(self, org_id, amount, attempt_id=None):
        # Yield so concurrent runs interleave
        await asyncio.sleep(0)
        self.charges.append((org_id, amount, attempt_id))
        self.balances[org_id] -= amount


class FakeCatalog:
    def __init__(self, models: Optional[List[LanguageModel]] = None):
        self.models = {m.id: m for m in (models or [])}

    async def get_model(self, model_id):
        return self.models.get(model_id)

    async def get_default_model(self):
        return self.models.get(min(self.models)) if self.models else None


class FakeRecorder:
    def __init__(self, fail: bool = False):
        self.records: List[UsageRecord] = []
        self.fail = fail

    async def append(self, record):
        if self.fail:
            raise RuntimeError("ledger unavailable")
        self.records.append(record)


class FakeProvider(Provider):
    """Provider returning a canned answer, or raising a given error."""

    name = "fake"

    def __init__(self, answer: str = "Hello!", tokens: TokenCounts = TokenCounts(1000, 500, 1500),
                 error: Optional[Exception] = None):
        self.answer = answer
        self.tokens = tokens
        self.error = error
        self.requests: List[ProviderRequest] = []

    async def dispatch(self, request):
        self.requests.append(request)
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return ProviderResponse(
            answer=self.answer,
            tokens=self.tokens,
            response_time_ms=42,
            chain_of_thoughts="thinking",
            status="completed",
        )


@pytest.fixture
def model():
    return LanguageModel(
        id=1, name="gpt-4o", vendor="OPENAI", prompt_price=2.0, completion_price=8.0
    )


@pytest.fixture
def billing():
    return FakeBilling({7: 10.0})


@pytest.fixture
def recorder():
    return FakeRecorder()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def providers(provider):
    registry = ProviderRegistry()
    registry.register("OPENAI", provider)
    registry.register("CUSTOM_OPENAI_COMPATIBLE", provider)
    return registry
