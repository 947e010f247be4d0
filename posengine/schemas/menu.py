"""Menu item schemas."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MenuItem(BaseModel):
    """A sellable item as published by menu management."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    price: Decimal = Field(ge=0)
    cost: Optional[Decimal] = Field(default=None, ge=0)
    category: Optional[str] = None
    available: bool = True


class MenuItemCreate(BaseModel):
    """Menu item creation schema."""

    name: str = Field(min_length=1, max_length=200)
    price: Decimal = Field(ge=0)
    cost: Optional[Decimal] = Field(default=None, ge=0)
    category: Optional[str] = None
    available: bool = True


class MenuItemUpdate(BaseModel):
    """Partial menu item update; unset fields are left alone."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    price: Optional[Decimal] = Field(default=None, ge=0)
    cost: Optional[Decimal] = Field(default=None, ge=0)
    category: Optional[str] = None
    available: Optional[bool] = None

    @field_validator("name", "price", "available")
    @classmethod
    def reject_null(cls, v):
        # Only cost and category may be cleared
        if v is None:
            raise ValueError("field cannot be null")
        return v
