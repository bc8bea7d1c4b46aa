"""Valuation adjustment request schemas."""

from __future__ import annotations

import datetime as dt
from typing import List, Optional

from pydantic import BaseModel, Field


class AdjustmentQuery(BaseModel):
    symbol: str = Field(min_length=1, max_length=64)
    as_of: Optional[dt.date] = None
    method_key: Optional[str] = Field(default=None, max_length=128)


class AdjustmentBatchRequest(BaseModel):
    symbols: List[str] = Field(min_length=1, max_length=500)
    as_of: Optional[dt.date] = None
    method_key: Optional[str] = Field(default=None, max_length=128)
