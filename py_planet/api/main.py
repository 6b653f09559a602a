"""FastAPI main application."""

import threading
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from fastapi import BackgroundTasks, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, conint, model_validator

from ..config import GenerationSettings, settings
from ..core.pipeline import GeneratedBody, PlanetGenerator
from ..core.vertex_generators import VertexDistribution
from ..utils.logging_setup import configure_logging

configure_logging(settings.log_level, settings.log_format)

logger = structlog.get_logger()

# Initialize FastAPI app
app = FastAPI(
    title="Planet Generator API",
    description="Icosphere planets with Voronoi continents and tectonic terrain",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Upper bounds for a single generation request
MAX_VERTICES_PER_EDGE = 32
MAX_BASE_FACES = 200_000


# Request/Response models
class BodyGenerationRequest(BaseModel):
    """Request to generate a new body."""

    seed: Optional[str] = Field(None, description="Random seed for reproducible generation")
    radius: float = Field(100.0, gt=0, le=10000, description="Body radius")
    subdivisions: int = Field(1, ge=0, le=4, description="Number of subdivision levels")
    vertices_per_edge: List[conint(ge=0, le=MAX_VERTICES_PER_EDGE)] = Field(
        [2], min_length=1, max_length=4, description="Vertices inserted per edge, one per level"
    )
    distribution: VertexDistribution = Field(VertexDistribution.LINEAR, description="Edge vertex distribution")
    num_continents: int = Field(5, ge=1, le=64, description="Number of continents")
    deformation_cycles: int = Field(4, ge=0, le=64, description="Deformation cycles")
    deformation_attempts: int = Field(20, ge=0, le=10000, description="Flip attempts per cycle")

    @model_validator(mode="after")
    def check_face_count(self) -> "BodyGenerationRequest":
        faces = 20
        for level in range(self.subdivisions):
            n = self.vertices_per_edge[min(level, len(self.vertices_per_edge) - 1)]
            faces *= (n + 1) ** 2
        if faces > MAX_BASE_FACES:
            raise ValueError(f"Request would build {faces} base faces, the limit is {MAX_BASE_FACES}")
        return self


class JobResponse(BaseModel):
    """Response with job information."""

    job_id: str
    status: str
    message: str
    body_id: Optional[str] = None
    error_message: Optional[str] = None


class BodySummary(BaseModel):
    """Summary information about a generated body."""

    id: str
    seed: str
    radius: float
    cells_count: int
    continents_count: int
    created_at: datetime
    generation_time_seconds: Optional[float]
    stats: Dict[str, Any]


class ContinentInfo(BaseModel):
    """Information about a continent."""

    id: int
    crust_type: str
    cells: int
    average_height: float
    average_moisture: float
    velocity: float
    rotation: float
    neighbors: List[int]
    neighbor_stress: Dict[str, float]
    stress_accumulation: float


class GenerationRegistry:
    """In-memory store of jobs and generated bodies."""

    def __init__(self):
        self._lock = threading.Lock()
        self.jobs: Dict[str, Dict[str, Any]] = {}
        self.bodies: Dict[str, Dict[str, Any]] = {}

    def create_job(self, seed: str) -> str:
        job_id = str(uuid.uuid4())
        with self._lock:
            self.jobs[job_id] = {
                "status": "pending",
                "seed": seed,
                "body_id": None,
                "error_message": None,
                "created_at": datetime.utcnow(),
            }
        return job_id

    def update_job(self, job_id: str, **fields) -> None:
        with self._lock:
            self.jobs[job_id].update(fields)

    def get_job(self, job_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            job = self.jobs.get(job_id)
            return dict(job) if job else None

    def add_body(self, body: GeneratedBody) -> str:
        body_id = str(uuid.uuid4())
        with self._lock:
            self.bodies[body_id] = {"body": body, "created_at": datetime.utcnow()}
        return body_id

    def get_body(self, body_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self.bodies.get(body_id)

    def clear(self) -> None:
        with self._lock:
            self.jobs.clear()
            self.bodies.clear()


registry = GenerationRegistry()


@app.on_event("startup")
async def startup_event():
    logger.info("Starting Planet Generator API")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down Planet Generator API")


# API endpoints
@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": "Planet Generator API", "version": "0.1.0", "status": "running"}


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "jobs": len(registry.jobs), "bodies": len(registry.bodies)}


@app.post("/bodies/generate", response_model=JobResponse)
async def generate_body(request: BodyGenerationRequest, background_tasks: BackgroundTasks):
    """
    Start a body generation job.

    Returns immediately with a job ID. Use /jobs/{job_id} to check status.
    """
    logger.info("Body generation requested", request=request.dict())
    seed = request.seed or str(uuid.uuid4())[:8]
    job_id = registry.create_job(seed)

    background_tasks.add_task(run_body_generation, job_id, request, seed)

    return JobResponse(job_id=job_id, status="pending", message="Body generation job started")


@app.get("/jobs/{job_id}", response_model=JobResponse)
async def get_job_status(job_id: str):
    """Get status of a body generation job."""
    job = registry.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobResponse(
        job_id=job_id,
        status=job["status"],
        message=f"Job {job['status']}",
        body_id=job["body_id"],
        error_message=job["error_message"],
    )


def _require_body(body_id: str) -> Dict[str, Any]:
    entry = registry.get_body(body_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Body not found")
    return entry


@app.get("/bodies/{body_id}", response_model=BodySummary)
async def get_body(body_id: str):
    """Get body details."""
    entry = _require_body(body_id)
    body: GeneratedBody = entry["body"]
    summary = body.summary()
    return BodySummary(
        id=body_id,
        seed=body.seed,
        radius=body.store.radius,
        cells_count=len(body.cells),
        continents_count=len(body.continents),
        created_at=entry["created_at"],
        generation_time_seconds=body.timings.get("total"),
        stats=summary,
    )


@app.get("/bodies/{body_id}/cells")
async def get_body_cells(body_id: str, offset: int = 0, limit: int = 500):
    """Renderer payload for a slice of the body's cells."""
    if offset < 0 or limit < 1:
        raise HTTPException(status_code=400, detail="Invalid offset or limit")
    body: GeneratedBody = _require_body(body_id)["body"]
    cells = body.export_cells()
    return {"total": len(cells), "offset": offset, "cells": cells[offset:offset + limit]}


@app.get("/bodies/{body_id}/continents", response_model=List[ContinentInfo])
async def get_body_continents(body_id: str):
    """Continent plates of a body."""
    body: GeneratedBody = _require_body(body_id)["body"]
    return [ContinentInfo(**c) for c in body.export_continents()]


def run_body_generation(job_id: str, request: BodyGenerationRequest, seed: str) -> None:
    """
    Background task to generate a body.
    """
    logger.info("Starting body generation", job_id=job_id)
    registry.update_job(job_id, status="running")
    try:
        job_settings = GenerationSettings(
            seed=seed,
            radius=request.radius,
            subdivisions=request.subdivisions,
            vertices_per_edge=request.vertices_per_edge,
            distribution=request.distribution,
            num_continents=request.num_continents,
            deformation_cycles=request.deformation_cycles,
            deformation_attempts=request.deformation_attempts,
            workers=settings.workers,
            log_level=settings.log_level,
            log_format=settings.log_format,
        )
        body = PlanetGenerator(job_settings).generate()
        body_id = registry.add_body(body)
        registry.update_job(job_id, status="completed", body_id=body_id)
        logger.info("Body generation completed", job_id=job_id, body_id=body_id)
    except Exception as e:
        logger.error("Body generation failed", job_id=job_id, error=str(e))
        registry.update_job(job_id, status="failed", error_message=str(e))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
