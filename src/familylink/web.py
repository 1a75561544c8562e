"""
FastAPI web service for FamilyLink.

Exposes the relationship mutation contract, privacy-filtered person views and
the generational tree layout as JSON.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any

from fastapi import FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from familylink import __version__
from familylink.api.service import FamilyTreeService, MutationResult
from familylink.config import FamilyLinkConfig, configure_logging
from familylink.core.exceptions import FamilyLinkError, NotFound, StructuralViolation, ValidationError
from familylink.core.layout import LayoutEngine, TreeLayout
from familylink.core.models import (
    Family,
    Memory,
    ParentChildEdge,
    PrivacyTier,
    SpouseEdge,
    WireModel,
)
from familylink.core.validation import RejectionReason
from familylink.store.client import FamilyStore

logger = logging.getLogger(__name__)


# =============================================================================
# Application Lifespan
# =============================================================================

# Global instances
_store: FamilyStore | None = None
_service: FamilyTreeService | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application startup and shutdown."""
    global _store, _service

    # Startup
    config = FamilyLinkConfig.from_env()
    configure_logging(config.log_level)
    _store = FamilyStore(config.database_path)
    _store.connect()
    _service = FamilyTreeService(_store, layout=LayoutEngine(config.layout_config()))

    yield

    # Shutdown
    if _store:
        _store.close()
    _store = None
    _service = None


def get_service() -> FamilyTreeService:
    if not _service:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return _service


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="FamilyLink API",
    description="Family kinship graph with validated relationships, generational layout and privacy filtering.",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware for web clients
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(FamilyLinkError)
async def familylink_error_handler(request: Request, exc: FamilyLinkError) -> JSONResponse:
    if isinstance(exc, NotFound):
        return JSONResponse(status_code=404, content={"detail": str(exc)})
    if isinstance(exc, ValidationError):
        return JSONResponse(status_code=422, content=jsonable_encoder({"detail": str(exc), "errors": exc.errors}))
    if isinstance(exc, StructuralViolation):
        return JSONResponse(
            status_code=409,
            content={"detail": {"reason": exc.reason.value, "message": exc.message}},
        )
    return JSONResponse(status_code=400, content={"detail": str(exc)})


# =============================================================================
# Request/Response Models
# =============================================================================

class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    version: str


class FamilyCreateRequest(WireModel):
    name: str = Field(..., description="Family name")
    slug: str = Field(..., description="URL slug: lowercase letters, numbers, hyphens")
    description: str | None = None


class FamilyUpdateRequest(WireModel):
    name: str | None = None
    slug: str | None = None
    description: str | None = None


class MemoryCreateRequest(WireModel):
    title: str
    body: str
    image_url: str | None = None
    author: str | None = None
    tagged_person_ids: list[str] = Field(default_factory=list)


class MemoryUpdateRequest(WireModel):
    title: str | None = None
    body: str | None = None
    image_url: str | None = None
    tagged_person_ids: list[str] | None = None


class PersonCreateRequest(WireModel):
    given_name: str = Field(..., description="Given name")
    middle_name: str | None = None
    family_name: str | None = None
    gender: str | None = None
    birth_date: date | None = None
    death_date: date | None = None
    avatar_url: str | None = None
    notes: str | None = None
    privacy: dict[str, str] = Field(default_factory=dict, description="Sensitive field -> tier")


class ParentChildRequest(WireModel):
    parent_id: str
    child_id: str


class SpouseRequest(WireModel):
    a_id: str
    b_id: str
    start_date: date | None = None
    end_date: date | None = None


class EndSpouseRequest(WireModel):
    end_date: date | None = None


class MutationResponse(WireModel):
    accepted: bool
    edge: ParentChildEdge | SpouseEdge | None = None


class ShareResponse(WireModel):
    family: Family
    tree: TreeLayout


def _respond(result: MutationResult) -> MutationResponse:
    """Map a rejection to 404/409, pass acceptances through."""
    if not result.accepted:
        status = 404 if result.reason == RejectionReason.NOT_FOUND else 409
        raise HTTPException(
            status_code=status,
            detail={"reason": result.reason.value, "message": result.message},
        )
    return MutationResponse(accepted=True, edge=result.edge)


# =============================================================================
# Health Endpoints
# =============================================================================

@app.get("/health", response_model=HealthResponse, tags=["Health"])
def health_check():
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(),
        version=__version__,
    )


# =============================================================================
# Family and Person Endpoints
# =============================================================================

@app.post("/families", response_model=Family, status_code=201, tags=["Families"])
def create_family(request: FamilyCreateRequest):
    return get_service().create_family(request.name, request.slug, request.description)


@app.patch("/families/{family_id}", response_model=Family, tags=["Families"])
def update_family(family_id: str, request: FamilyUpdateRequest):
    return get_service().update_family(family_id, **request.model_dump())


@app.get("/families/{family_id}/tree", response_model=TreeLayout, tags=["Tree"])
def family_tree(
    family_id: str,
    tier: PrivacyTier = Query(PrivacyTier.PUBLIC, description="Viewer tier"),
    family_member: bool = Query(False, alias="familyMember"),
):
    """Generational layout with payloads redacted for the viewer."""
    return get_service().get_layout(family_id, tier, family_member)


@app.get("/share/{slug}", response_model=ShareResponse, tags=["Tree"])
def share_tree(slug: str):
    """Public view of a family tree."""
    family, tree = get_service().get_public_layout(slug)
    return ShareResponse(family=family, tree=tree)


@app.post("/families/{family_id}/persons", status_code=201, tags=["Persons"])
def create_person(family_id: str, request: PersonCreateRequest) -> dict[str, Any]:
    person = get_service().create_person(family_id, **request.model_dump())
    return person.model_dump(by_alias=True, mode="json")


@app.get("/families/{family_id}/persons/search", tags=["Persons"])
def search_persons(family_id: str, q: str = Query(..., min_length=1)) -> list[dict[str, Any]]:
    persons = get_service().search_persons(family_id, q)
    return [p.model_dump(by_alias=True, mode="json") for p in persons]


@app.get("/persons/{person_id}", tags=["Persons"])
def get_person(
    person_id: str,
    tier: PrivacyTier = Query(PrivacyTier.PUBLIC),
    family_member: bool = Query(False, alias="familyMember"),
) -> dict[str, Any]:
    return get_service().get_person(person_id, tier, family_member)


@app.get("/persons/{person_id}/siblings", tags=["Persons"])
def get_siblings(person_id: str) -> list[dict[str, Any]]:
    return [
        p.model_dump(by_alias=True, mode="json")
        for p in get_service().get_siblings(person_id)
    ]


# =============================================================================
# Relationship Endpoints
# =============================================================================

@app.post("/relationships/parent-child", response_model=MutationResponse, status_code=201, tags=["Relationships"])
def propose_parent_child(request: ParentChildRequest):
    return _respond(get_service().propose_parent_child(request.parent_id, request.child_id))


@app.post("/relationships/spouse", response_model=MutationResponse, status_code=201, tags=["Relationships"])
def propose_spouse_link(request: SpouseRequest):
    return _respond(get_service().propose_spouse_link(
        request.a_id, request.b_id, request.start_date, request.end_date,
    ))


@app.post("/relationships/spouse/{edge_id}/end", response_model=MutationResponse, tags=["Relationships"])
def end_spouse_link(edge_id: str, request: EndSpouseRequest):
    return _respond(get_service().end_spouse_link(edge_id, request.end_date))


@app.delete("/relationships/{edge_id}", response_model=MutationResponse, tags=["Relationships"])
def remove_relationship(edge_id: str):
    return _respond(get_service().propose_edge_removal(edge_id))


# =============================================================================
# Memory Endpoints
# =============================================================================

@app.post("/families/{family_id}/memories", response_model=Memory, status_code=201, tags=["Memories"])
def create_memory(family_id: str, request: MemoryCreateRequest):
    return get_service().create_memory(family_id, **request.model_dump())


@app.get("/families/{family_id}/memories", response_model=list[Memory], tags=["Memories"])
def list_memories(family_id: str, person_id: str | None = Query(None, alias="personId")):
    """Family feed, newest first."""
    return get_service().get_memories(family_id, person_id)


@app.get("/memories/{memory_id}", response_model=Memory, tags=["Memories"])
def get_memory(memory_id: str):
    return get_service().get_memory(memory_id)


@app.patch("/memories/{memory_id}", response_model=Memory, tags=["Memories"])
def update_memory(memory_id: str, request: MemoryUpdateRequest):
    return get_service().update_memory(memory_id, **request.model_dump())


@app.delete("/memories/{memory_id}", status_code=204, tags=["Memories"])
def delete_memory(memory_id: str):
    get_service().delete_memory(memory_id)
    return Response(status_code=204)


# =============================================================================
# Main Entry Point
# =============================================================================

def main():
    """Run the web server."""
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
