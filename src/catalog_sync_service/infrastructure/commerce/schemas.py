"""Normalized shapes produced by commerce source adapters."""

from pydantic import BaseModel, Field

from catalog_sync_service.infrastructure.database.models import ItemStatus


class SourceItem(BaseModel):
    """A catalog item as reported by the commerce source, already normalized."""

    external_item_id: str
    title: str = ""
    handle: str | None = None
    url: str | None = None
    image_url: str | None = None
    price: str = "0"
    category: str | None = None
    tags: list[str] = Field(default_factory=list)
    description: str | None = None
    item_status: ItemStatus = ItemStatus.DRAFT
    inventory_quantity: int = 0
    inventory_tracked: bool = False


class SourcePage(BaseModel):
    """One page of source items plus the cursor of the next page, if any."""

    items: list[SourceItem] = Field(default_factory=list)
    next_cursor: str | None = None
