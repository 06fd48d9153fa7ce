from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class SyncStatsResponse(BaseModel):
    totalDiscrepancies: int
    toAdd: int
    toRemove: int
    toUpdate: int
    lastSync: str


class DiscrepanciesResponse(BaseModel):
    toAdd: List[Dict[str, Any]] = Field(default_factory=list)
    toUpdate: List[Dict[str, Any]] = Field(default_factory=list)
    toRemove: List[Dict[str, Any]] = Field(default_factory=list)
    stats: SyncStatsResponse


class SyncApplyRequest(BaseModel):
    add_file_ids: List[str] = Field(default_factory=list)
    update_file_ids: List[str] = Field(default_factory=list)
    remove_file_ids: List[str] = Field(default_factory=list)
    apply_all: bool = False


class SyncSummary(BaseModel):
    added: int
    updated: int
    removed: int
    errors: int


class SyncApplyResponse(BaseModel):
    added: List[Dict[str, Any]]
    updated: List[Dict[str, Any]]
    removed: List[Dict[str, Any]]
    errors: List[Dict[str, Any]]
    summary: SyncSummary
    skipped_ids: Optional[List[str]] = None
