"""Read-only access to per-tenant integration settings."""

import structlog
from pydantic import BaseModel, ConfigDict
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync_service.infrastructure.database.models import TenantIntegration
from catalog_sync_service.services.errors import NotConfiguredError

logger = structlog.get_logger()

COMMERCE_FIELDS = ("commerce_domain", "commerce_access_token")
VECTOR_INDEX_FIELDS = (
    "vector_api_key",
    "vector_environment",
    "vector_namespace",
    "vector_index_name",
)


class TenantConfig(BaseModel):
    """Commerce and vector index credentials for one tenant."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    tenant_id: str
    commerce_domain: str | None = None
    commerce_access_token: str | None = None
    vector_api_key: str | None = None
    vector_environment: str | None = None
    vector_namespace: str | None = None
    vector_index_name: str | None = None
    vector_host: str | None = None

    def _missing(self, fields: tuple[str, ...]) -> list[str]:
        return [name for name in fields if not getattr(self, name)]

    @property
    def has_commerce(self) -> bool:
        return not self._missing(COMMERCE_FIELDS)

    @property
    def has_vector_index(self) -> bool:
        return not self._missing(VECTOR_INDEX_FIELDS)

    def require_commerce(self) -> None:
        """Raise ``NotConfiguredError`` unless import credentials are complete."""
        missing = self._missing(COMMERCE_FIELDS)
        if missing:
            raise NotConfiguredError(self.tenant_id, missing, integration="commerce")

    def require_vector_index(self) -> None:
        """Raise ``NotConfiguredError`` unless vector index settings are complete."""
        missing = self._missing(VECTOR_INDEX_FIELDS)
        if missing:
            raise NotConfiguredError(self.tenant_id, missing, integration="vector index")


class TenantConfigStore:
    """Loads ``TenantConfig`` from the ``tenant_integrations`` table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def load(self, tenant_id: str) -> TenantConfig:
        """Return the tenant's settings; an unknown tenant has nothing configured."""
        query = select(TenantIntegration).where(TenantIntegration.tenant_id == tenant_id)
        row = (await self.session.execute(query)).scalar_one_or_none()
        if row is None:
            logger.debug("No integration settings for tenant", tenant_id=tenant_id)
            return TenantConfig(tenant_id=tenant_id)
        return TenantConfig.model_validate(row)

    async def list_commerce_tenants(self) -> list[str]:
        """Ids of tenants with complete commerce credentials."""
        query = (
            select(TenantIntegration)
            .where(
                TenantIntegration.commerce_domain.is_not(None),
                TenantIntegration.commerce_access_token.is_not(None),
            )
            .order_by(TenantIntegration.tenant_id)
        )
        rows = (await self.session.execute(query)).scalars().all()
        return [
            row.tenant_id
            for row in rows
            if TenantConfig.model_validate(row).has_commerce
        ]
