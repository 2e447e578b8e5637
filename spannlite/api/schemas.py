"""
Request and response models for the search API.
"""

from pydantic import BaseModel, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime


class DocumentUpsertRequest(BaseModel):
    title: str = ""
    text: str


class DocumentResponse(BaseModel):
    document_id: str
    indexed: bool
    """False when empty text turned the upsert into a removal"""


class SearchRequest(BaseModel):
    query: str
    k: int = 10

    @field_validator('k')
    @classmethod
    def k_must_be_positive(cls, v):
        if v < 1 or v > 1000:
            raise ValueError('k must be between 1 and 1000')
        return v


class SearchResult(BaseModel):
    document_id: str
    title: str
    text: str
    score: float


class SearchResponse(BaseModel):
    query: str
    results: List[SearchResult]
    count: int


class RebuildResponse(BaseModel):
    centroids: int
    report: Dict[str, Any]


class IndexStatusResponse(BaseModel):
    index_built: bool
    centroids: int
    embeddings: int
    last_rebuild: Optional[Dict[str, Any]] = None


class SnapshotInfo(BaseModel):
    file_name: str
    checksum: str
    created_at: datetime


class SnapshotListResponse(BaseModel):
    snapshots: List[SnapshotInfo]
    count: int
    latest_date: Optional[datetime] = None
    total_size: Optional[int] = None


class HealthResponse(BaseModel):
    status: str
    version: str
    db_health: bool
    index_built: bool
