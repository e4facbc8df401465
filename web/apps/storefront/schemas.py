"""Pydantic schemas for the newsletter and contact endpoints."""

from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from apps.orders.schemas import normalize_email

ContactSubject = Literal["TECHNICAL", "BILLING", "PRESALES", "PARTNERSHIP", "FEEDBACK", "OTHER"]


class NewsletterDTO(BaseModel):
    email: str = Field(max_length=254)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return normalize_email(v).lower()


class ContactDTO(BaseModel):
    """Body of ``POST /api/contact``."""

    first_name: str = Field(alias="firstName", min_length=1, max_length=50)
    last_name: str = Field(alias="lastName", min_length=1, max_length=50)
    email: str = Field(max_length=254)
    company: Optional[str] = Field(default=None, max_length=100)
    subject: ContactSubject
    message: str = Field(min_length=1, max_length=2000)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return normalize_email(v)
