from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class ProductCandidate(BaseModel):
    """Product returned by the product-search provider."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    product_id: str = Field(validation_alias=AliasChoices("product_id", "asin", "id"))
    title: str = ""
    image_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("image_url", "imageUrl"),
    )
    detail_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("detail_url", "detailPageUrl", "product_url"),
    )
    price_display: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("price_display", "priceDisplay"),
    )
    currency: Optional[str] = None
