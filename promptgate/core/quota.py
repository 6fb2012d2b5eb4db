"""
Quota gate.

Decides which credential pays for a run and whether the organization's
quota is charged for it. Charging is only ever requested by the
orchestrator after a successful dispatch; nothing here serializes
concurrent charges, that is left to the billing store.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from promptgate.storage.models import ApiKey

from .errors import ConfigNotFound, CredentialNotFound

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedCredential:
    """API key selected for a run.

    ``chargeable`` is True only for organization-funded keys whose cost is
    deducted from quota.
    """
    api_key: str
    base_url: Optional[str] = None
    chargeable: bool = False

    def __repr__(self) -> str:
        # Keep keys out of logs and tracebacks
        return f"ResolvedCredential(base_url={self.base_url!r}, chargeable={self.chargeable})"


class BillingService(Protocol):
    """External billing collaborator."""

    async def get_quota(self, org_id: int) -> Optional[float]: ...

    async def get_api_key_by_id(self, org_id: int, key_id: int) -> Optional[ApiKey]: ...

    async def get_api_key_by_quota(self, balance: float, org_id: int, vendor: str) -> ResolvedCredential: ...

    async def charge_quota(self, org_id: int, amount: float, attempt_id: Optional[str] = None) -> None: ...


class QuotaGate:
    """Credential resolution and conditional quota charging."""

    def __init__(self, billing: BillingService):
        self.billing = billing

    async def get_quota(self, org_id: int) -> float:
        """Current quota balance of an organization.

        Raises:
            ConfigNotFound: If the organization has no quota row
        """
        balance = await self.billing.get_quota(org_id)
        if balance is None:
            raise ConfigNotFound("Quota not found")
        return balance

    async def resolve_credential(
        self,
        org_id: int,
        vendor: str,
        balance: float,
        bound_key_id: Optional[int] = None
    ) -> ResolvedCredential:
        """Pick the credential for a run.

        A model bound to an explicit key (custom providers) always uses that
        key and never draws from quota. Otherwise the billing collaborator
        chooses between an organization-funded and a caller-supplied key.

        Raises:
            CredentialNotFound: If the bound key is missing or no key is usable
        """
        if bound_key_id is not None:
            api_key = await self.billing.get_api_key_by_id(org_id, bound_key_id)
            if api_key is None:
                raise CredentialNotFound("Custom provider API key not found")
            return ResolvedCredential(
                api_key=api_key.key,
                base_url=api_key.base_url or None,
                chargeable=False
            )

        return await self.billing.get_api_key_by_quota(balance, org_id, vendor)

    async def charge(
        self,
        org_id: int,
        credential: ResolvedCredential,
        amount: float,
        attempt_id: Optional[str] = None
    ) -> bool:
        """Charge quota for a successful run if the credential is chargeable.

        Returns:
            True if a charge was issued
        """
        if not credential.chargeable:
            return False
        await self.billing.charge_quota(org_id, amount, attempt_id=attempt_id)
        logger.debug("Charged org %s %.6f for attempt %s", org_id, amount, attempt_id)
        return True
