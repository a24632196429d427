"""Checkpoint reference data: the ordered list of waypoints on the route."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Checkpoint(_CamelModel):
    id: int
    name: str
    display_name: str
    order: int
    region: str
    country: str
    is_active: bool = True
    is_major: bool = False
    fuel_available: bool = False
    border_crossing: bool = False
    alternative_names: List[str] = Field(default_factory=list)
    created_by: Optional[str] = None
    is_deleted: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CheckpointCreate(_CamelModel):
    name: str = Field(..., min_length=1)
    display_name: str = Field(..., min_length=1)
    region: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)
    order: Optional[int] = Field(default=None, ge=1)
    insert_after: Optional[str] = None
    is_active: bool = True
    is_major: bool = False
    fuel_available: bool = False
    border_crossing: bool = False
    alternative_names: List[str] = Field(default_factory=list)


class CheckpointUpdate(_CamelModel):
    """Name and order cannot be changed here; use reorder for positions."""
    display_name: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None
    is_active: Optional[bool] = None
    is_major: Optional[bool] = None
    fuel_available: Optional[bool] = None
    border_crossing: Optional[bool] = None
    alternative_names: Optional[List[str]] = None


class CheckpointPosition(_CamelModel):
    id: int
    order: int = Field(..., ge=1)


class CheckpointReorder(_CamelModel):
    checkpoints: List[CheckpointPosition]
