"""Insight request schemas."""

from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class Pagination(BaseModel):
    limit: Optional[int] = Field(default=None, ge=1, le=500)
    offset: int = Field(default=0, ge=0)


class InsightCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    thesis: Optional[str] = Field(default=None, max_length=20000)
    status: Optional[str] = Field(default=None, max_length=16)
    valid_from: Optional[dt.date] = None
    valid_to: Optional[dt.date] = None
    tags: List[str] = Field(default_factory=list)
    meta: Optional[Dict[str, Any]] = None

    @field_validator("tags", mode="before")
    @classmethod
    def _split_tags(cls, value):
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value


class InsightUpdate(BaseModel):
    title: Optional[str] = Field(default=None, max_length=255)
    thesis: Optional[str] = Field(default=None, max_length=20000)
    status: Optional[str] = Field(default=None, max_length=16)
    valid_from: Optional[dt.date] = None
    valid_to: Optional[dt.date] = None
    tags: Optional[List[str]] = None
    meta: Optional[Dict[str, Any]] = None

    @field_validator("tags", mode="before")
    @classmethod
    def _split_tags(cls, value):
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value


class InsightListFilter(Pagination):
    query: Optional[str] = Field(default=None, max_length=255)
    status: Optional[str] = Field(default=None, max_length=16)


class SearchQuery(BaseModel):
    q: str = Field(default="", max_length=255)
    limit: Optional[int] = Field(default=None, ge=1, le=200)
    offset: int = Field(default=0, ge=0)


class ScopeRuleUpsert(BaseModel):
    id: Optional[int] = None
    scope_type: str = Field(min_length=1, max_length=32)
    scope_key: str = Field(min_length=1, max_length=255)
    mode: str = Field(default="include", max_length=16)
    enabled: bool = True


class EffectChannelUpsert(BaseModel):
    method_key: str = Field(min_length=1, max_length=128)
    metric_key: str = Field(min_length=1, max_length=128)
    stage: str = Field(min_length=1, max_length=16)
    operator: str = Field(min_length=1, max_length=8)
    priority: int = 0
    enabled: bool = True
    meta: Optional[Dict[str, Any]] = None


class EffectPointInput(BaseModel):
    effect_date: dt.date
    effect_value: float


class EffectPointsUpsert(BaseModel):
    points: List[EffectPointInput] = Field(min_length=1, max_length=1000)


class ChannelValueQuery(BaseModel):
    as_of: dt.date


class TargetPreviewRequest(BaseModel):
    limit: Optional[int] = Field(default=None, ge=1)
    persist: bool = True


class TargetListFilter(BaseModel):
    include_excluded: bool = True


class TargetExclusionCreate(BaseModel):
    symbol: str = Field(min_length=1, max_length=64)
    reason: Optional[str] = Field(default=None, max_length=1000)


class FactCreate(BaseModel):
    content: str = Field(min_length=1, max_length=10000)


class FactListFilter(Pagination):
    pass
