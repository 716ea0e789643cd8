# models/user_input_models.py
"""User-facing models for providing book input data."""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class UnitSpecModel(BaseModel):
    """A single unit (chapter) the book should contain."""

    title: str = Field(..., min_length=1)
    description: str = ""


class BookSpecModel(BaseModel):
    """Book description as loaded from the user's YAML file."""

    model_config = ConfigDict(extra="ignore")

    book_id: str = ""
    title: str = Field(..., min_length=1)
    description: str = ""
    niche: str | None = None
    audience: str | None = None
    thesis: str | None = None
    core_argument: str | None = None
    archetype: str | None = None
    tone: list[str] = Field(default_factory=list)
    units: list[UnitSpecModel] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _coerce_shapes(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        if isinstance(data.get("tone"), str):
            data["tone"] = [t.strip() for t in data["tone"].split(",") if t.strip()]
        units = data.get("units") or data.get("chapters")
        if units is not None:
            data["units"] = [
                {"title": unit} if isinstance(unit, str) else unit for unit in units
            ]
        return data

    @model_validator(mode="after")
    def _default_book_id(self) -> BookSpecModel:
        if not self.book_id:
            self.book_id = re.sub(r"[^a-z0-9]+", "-", self.title.lower()).strip("-")
        return self
