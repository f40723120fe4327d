"""
Tenant registry.

Each tenant is an integrating organisation: it authenticates with an API
key, receives webhooks, owns a storage bucket and brands its certificates.
Keys are never held in plaintext by the registry, only their SHA-256
digests.
"""

import hashlib
import hmac
import logging
from typing import Dict, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("endorsement.tenants")


def hash_api_key(api_key: str) -> str:
    return hashlib.sha256(api_key.encode("utf-8")).hexdigest()


class TenantConfig(BaseModel):
    """Immutable per-tenant configuration."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    tenant_id: str = Field(..., min_length=1)
    api_key_hash: str = Field(..., pattern=r"^[0-9a-f]{64}$")

    issuer_id: str
    issuer_name: str

    webhook_url: Optional[str] = None
    webhook_secret: Optional[SecretStr] = None

    s3_bucket: Optional[str] = None
    s3_prefix: Optional[str] = None
    s3_region: Optional[str] = None

    brand_logo_url: Optional[str] = None
    brand_primary_color: str = Field("#0B5FFF", pattern=r"^#[0-9A-Fa-f]{6}$")

    @property
    def storage_enabled(self) -> bool:
        return bool(self.s3_bucket and self.s3_prefix)

    @property
    def webhook_enabled(self) -> bool:
        return bool(self.webhook_url and self.webhook_secret)


# -------------------------------------------------------------------------
# Built-in tenant
# -------------------------------------------------------------------------

class SkillsAwareTenantSettings(BaseSettings):
    """Environment mapping for the built-in ``skillsaware`` tenant."""

    api_key: SecretStr = SecretStr("dev-api-key")
    webhook_url: Optional[str] = None
    webhook_secret: Optional[SecretStr] = None
    s3_bucket: Optional[str] = None
    s3_prefix: Optional[str] = None
    s3_region: Optional[str] = None
    brand_logo_url: Optional[str] = None
    brand_primary_color: str = "#0B5FFF"

    model_config = SettingsConfigDict(
        env_prefix="SKILLSAWARE_",
        env_file=".env",
        frozen=True,
        extra="ignore",
    )

    def to_tenant(self) -> TenantConfig:
        return TenantConfig(
            tenant_id="skillsaware",
            api_key_hash=hash_api_key(self.api_key.get_secret_value()),
            issuer_id="https://endorse.skillsaware.com/issuers/whatscookin",
            issuer_name="What's Cookin' Inc.",
            webhook_url=self.webhook_url,
            webhook_secret=self.webhook_secret,
            s3_bucket=self.s3_bucket,
            s3_prefix=self.s3_prefix,
            s3_region=self.s3_region,
            brand_logo_url=self.brand_logo_url,
            brand_primary_color=self.brand_primary_color,
        )


class TenantRegistry:
    """In-memory lookup of tenants by id or API key."""

    def __init__(self, tenants: Iterable[TenantConfig]):
        self._tenants: Dict[str, TenantConfig] = {}
        for tenant in tenants:
            if tenant.tenant_id in self._tenants:
                raise ValueError(f"duplicate tenant id: {tenant.tenant_id}")
            self._tenants[tenant.tenant_id] = tenant

    @classmethod
    def from_env(cls) -> "TenantRegistry":
        return cls([SkillsAwareTenantSettings().to_tenant()])

    def get(self, tenant_id: str) -> Optional[TenantConfig]:
        return self._tenants.get(tenant_id)

    def authenticate(self, api_key: Optional[str]) -> Optional[TenantConfig]:
        """
        Resolve the tenant owning ``api_key``.

        Every registered digest is compared in constant time; the loop does
        not exit early on a match.
        """
        if not api_key:
            return None

        candidate = hash_api_key(api_key)
        matched: Optional[TenantConfig] = None
        for tenant in self._tenants.values():
            if hmac.compare_digest(candidate, tenant.api_key_hash):
                matched = tenant

        if matched is None:
            logger.info("tenant_api_key_rejected")
        return matched
