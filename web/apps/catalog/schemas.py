"""Pydantic schemas for the bundle catalog, its admin API and reviews."""

import re
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

SLUG_RE = re.compile(r"^[a-z0-9-]+$")


def check_slug(v: Optional[str]) -> Optional[str]:
    if v is not None and not SLUG_RE.match(v):
        raise ValueError("Slug must contain only lowercase letters, numbers, and hyphens")
    return v


class BundleQuery(BaseModel):
    """Query string of ``GET /api/bundles``."""

    search: Optional[str] = Field(default=None, max_length=100)
    min_price: Optional[Decimal] = Field(default=None, alias="minPrice", ge=0)
    max_price: Optional[Decimal] = Field(default=None, alias="maxPrice", ge=0)
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=12, ge=1, le=100)

    @model_validator(mode="after")
    def check_price_range(self):
        if self.min_price is not None and self.max_price is not None and self.min_price > self.max_price:
            raise ValueError("minPrice must not exceed maxPrice")
        return self


class BundleStatusDTO(BaseModel):
    is_active: bool = Field(alias="isActive")


class BundleCreateDTO(BaseModel):
    """Body of ``POST /api/admin/bundles``.

    ``downloadUrl`` is usually left out and set later by uploading the
    bundle archive.
    """

    name: str = Field(min_length=1, max_length=100)
    slug: str = Field(min_length=1, max_length=100)
    short_description: str = Field(alias="shortDescription", min_length=1, max_length=200)
    description: str = Field(min_length=1, max_length=5000)
    price: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    download_url: str = Field(default="", alias="downloadUrl", max_length=500)
    is_active: bool = Field(default=True, alias="isActive")

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v: str) -> str:
        return check_slug(v)


class BundleUpdateDTO(BaseModel):
    """Body of ``PUT /api/admin/bundles/<id>``; only the fields sent change."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    slug: Optional[str] = Field(default=None, min_length=1, max_length=100)
    short_description: Optional[str] = Field(default=None, alias="shortDescription", min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, min_length=1, max_length=5000)
    price: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    download_url: Optional[str] = Field(default=None, alias="downloadUrl", max_length=500)
    is_active: Optional[bool] = Field(default=None, alias="isActive")

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v: Optional[str]) -> Optional[str]:
        return check_slug(v)

    @model_validator(mode="after")
    def reject_nulls(self):
        for name in self.model_fields_set:
            if name != "download_url" and getattr(self, name) is None:
                raise ValueError(f"{name} must not be null")
        return self

    def changes(self) -> dict:
        """Model field values to write, keyed by model attribute name."""
        data = self.model_dump(exclude_unset=True)
        if "download_url" in data and data["download_url"] is None:
            data["download_url"] = ""
        return data


class ReviewCreateDTO(BaseModel):
    """Body of ``POST /api/reviews``."""

    bundle_id: str = Field(alias="bundleId", min_length=1)
    rating: int = Field(ge=1, le=5)
    title: str = Field(default="", max_length=100)
    content: str = Field(min_length=1, max_length=1000)
    is_public: bool = Field(default=True, alias="isPublic")

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Review content is required")
        return v


class ReviewReadDTO(BaseModel):
    id: int
    rating: int
    title: str
    content: str
    author: str
    is_public: bool = Field(serialization_alias="isPublic")
    created_at: datetime = Field(serialization_alias="createdAt")

    @classmethod
    def from_model(cls, obj) -> "ReviewReadDTO":
        user = obj.user
        return cls(
            id=obj.id,
            rating=obj.rating,
            title=obj.title,
            content=obj.content,
            author=user.get_full_name() or user.get_username(),
            is_public=obj.is_public,
            created_at=obj.created_at,
        )

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class BundleReadDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    slug: str
    short_description: str = Field(serialization_alias="shortDescription")
    description: str
    price: Decimal
    is_active: bool = Field(serialization_alias="isActive")
    created_at: datetime = Field(serialization_alias="createdAt")

    @classmethod
    def from_model(cls, obj, **extra) -> "BundleReadDTO":
        return cls(
            id=str(obj.id),
            name=obj.name,
            slug=obj.slug,
            short_description=obj.short_description,
            description=obj.description,
            price=obj.price,
            is_active=obj.is_active,
            created_at=obj.created_at,
            **extra,
        )

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class BundleAdminReadDTO(BundleReadDTO):
    """Admin view of a bundle; the only one that carries the download URL."""

    download_url: str = Field(serialization_alias="downloadUrl")

    @classmethod
    def from_model(cls, obj, **extra) -> "BundleAdminReadDTO":
        return super().from_model(obj, download_url=obj.download_url, **extra)
