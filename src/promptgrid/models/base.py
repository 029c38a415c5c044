# Copyright (c) Syntropy Systems
"""Shared Pydantic model helpers for promptgrid."""

from __future__ import annotations

from typing import ClassVar

from pydantic import BaseModel, ConfigDict, JsonValue
from pydantic.alias_generators import to_camel
from typing_extensions import TypeAlias

JSONValue: TypeAlias = JsonValue


class PromptgridBaseModel(BaseModel):
    """Base model with shared config for promptgrid schemas."""

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="ignore",
        populate_by_name=True,
    )


class CamelModel(PromptgridBaseModel):
    """Base model whose JSON field names are camelCase.

    Snake_case names are still accepted on input.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
        serialize_by_alias=True,
    )
