"""Menu category schemas."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field


class CategoryResponse(BaseModel):
    id: int
    name: str
    display_order: int
    active: bool

    model_config = ConfigDict(from_attributes=True)


class CategoryPosition(BaseModel):
    id: int
    display_order: int = Field(ge=0)


class CategoryReorder(BaseModel):
    categories: List[CategoryPosition]
