"""Error hierarchy for the catalog sync pipeline."""


class CatalogSyncError(Exception):
    """Base error raised by the catalog sync pipeline."""


class NotConfiguredError(CatalogSyncError):
    """Raised when a tenant lacks the credentials a phase requires.

    Never retried: the phase is not attempted at all.
    """

    def __init__(self, tenant_id: str, missing: list[str], integration: str):
        self.tenant_id = tenant_id
        self.missing = missing
        self.integration = integration
        super().__init__(
            f"{integration} integration not configured for tenant {tenant_id}: "
            f"missing {', '.join(missing)}"
        )


class AlreadyRunningError(CatalogSyncError):
    """Raised when a job of the same kind is already active for a tenant."""

    def __init__(self, tenant_id: str, kind: str = "sync"):
        self.tenant_id = tenant_id
        self.kind = kind
        super().__init__(f"A {kind} job is already in progress for tenant {tenant_id}")


class SourceFetchError(CatalogSyncError):
    """Raised when the commerce source is unreachable or answers with an error."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class EmbeddingProviderError(CatalogSyncError):
    """Raised when an embedding or vision model call fails."""


class VectorUpsertError(CatalogSyncError):
    """Raised when the vector index rejects an upsert."""


class ImportUpsertError(CatalogSyncError):
    """Raised when a single catalog item cannot be written to the store."""

    def __init__(self, external_item_id: str | None, message: str):
        self.external_item_id = external_item_id
        super().__init__(f"Failed to import item {external_item_id}: {message}")
