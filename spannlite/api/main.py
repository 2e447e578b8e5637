"""
FastAPI surface over the hybrid search engine.
"""

import asyncio

from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from .schemas import (
    DocumentUpsertRequest,
    DocumentResponse,
    SearchRequest,
    SearchResult,
    SearchResponse,
    RebuildResponse,
    IndexStatusResponse,
    SnapshotInfo,
    SnapshotListResponse,
    HealthResponse
)
from ..core.db import health_check
from ..core.config import VERSION, debug_enabled, create_search_engine
from ..core.errors import (
    ConfigurationError,
    CorruptionError,
    InsufficientDataError,
    TransientStoreError
)
from ..vector.engine import HybridSearchEngine

from util.logging import logger

# Initialize the FastAPI application
app = FastAPI(
    title="spannlite Search API",
    version=VERSION,
    description="Hybrid centroid-graph search over a local document corpus",
    docs_url="/docs" if debug_enabled() else None,
    redoc_url="/redoc" if debug_enabled() else None
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_engine = None


async def get_engine() -> HybridSearchEngine:
    """Process engine, created on first use and initialized before it is handed out."""
    global _engine
    if _engine is None:
        _engine = create_search_engine()
    await _engine.initialize()
    return _engine


@app.exception_handler(InsufficientDataError)
async def insufficient_data_handler(request: Request, exc: InsufficientDataError):
    return JSONResponse(
        status_code=409,
        content={"detail": str(exc), "count": exc.count, "required": exc.required}
    )


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(TransientStoreError)
async def transient_store_handler(request: Request, exc: TransientStoreError):
    logger.warning(f"Store unavailable for {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(CorruptionError)
async def corruption_handler(request: Request, exc: CorruptionError):
    logger.error(f"Corrupt snapshot encountered for {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": str(exc)})


@app.get("/health", response_model=HealthResponse)
async def health_check_endpoint(engine: HybridSearchEngine = Depends(get_engine)):
    """Check system health."""
    db_health = await asyncio.to_thread(health_check)

    return HealthResponse(
        status="healthy" if db_health else "unhealthy",
        version=VERSION,
        db_health=db_health,
        index_built=engine.is_index_built()
    )


@app.get("/index/status", response_model=IndexStatusResponse)
async def index_status(engine: HybridSearchEngine = Depends(get_engine)):
    return IndexStatusResponse(
        index_built=engine.is_index_built(),
        centroids=engine.get_centroid_count(),
        embeddings=await engine.get_embedding_count(),
        last_rebuild=engine.last_rebuild.to_dict() if engine.last_rebuild else None
    )


@app.put("/documents/{document_id}", response_model=DocumentResponse)
async def upsert_document(document_id: str, req: DocumentUpsertRequest, engine: HybridSearchEngine = Depends(get_engine)):
    """Store a document in the corpus and embed it. Empty text removes it."""
    if not document_id.strip():
        raise HTTPException(status_code=400, detail="Document id cannot be empty")

    source = engine.document_source
    if req.text.strip():
        await asyncio.to_thread(source.upsert, document_id, req.title, req.text)
    else:
        await asyncio.to_thread(source.remove, document_id)

    indexed = await engine.add_or_update_document(document_id, req.title, req.text)
    return DocumentResponse(document_id=document_id, indexed=indexed)


@app.delete("/documents/{document_id}", response_model=DocumentResponse)
async def delete_document(document_id: str, engine: HybridSearchEngine = Depends(get_engine)):
    await asyncio.to_thread(engine.document_source.remove, document_id)
    await engine.remove_document(document_id)
    return DocumentResponse(document_id=document_id, indexed=False)


@app.post("/index/rebuild", response_model=RebuildResponse)
async def rebuild_index(engine: HybridSearchEngine = Depends(get_engine)):
    centroids = await engine.rebuild_index()
    return RebuildResponse(centroids=centroids, report=engine.last_rebuild.to_dict())


@app.post("/search", response_model=SearchResponse)
async def search(req: SearchRequest, engine: HybridSearchEngine = Depends(get_engine)):
    hits = await engine.search(req.query, req.k)
    results = [SearchResult(**hit.to_dict()) for hit in hits]
    return SearchResponse(query=req.query, results=results, count=len(results))


@app.get("/index/snapshots", response_model=SnapshotListResponse)
async def list_snapshots(engine: HybridSearchEngine = Depends(get_engine)):
    snapshots = await asyncio.to_thread(engine.persistence.snapshot_index.list_snapshots)
    info = await engine.get_snapshot_info()

    return SnapshotListResponse(
        snapshots=[
            SnapshotInfo(file_name=s.file_name, checksum=s.checksum, created_at=s.created_at)
            for s in snapshots
        ],
        count=info["count"],
        latest_date=info["latest_date"],
        total_size=info["total_size"]
    )
