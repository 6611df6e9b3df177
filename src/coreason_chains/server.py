# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_chains

import asyncio
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import redis.asyncio as redis
from fastapi import FastAPI, HTTPException
from loguru import logger
from pydantic import BaseModel, Field

from coreason_chains.config import EngineSettings
from coreason_chains.core.exceptions import ChainNotFound, InvalidChainDefinition
from coreason_chains.core.models import RecipeChain
from coreason_chains.core.registry import ChainRegistry
from coreason_chains.engine.builder import ChainBuilder
from coreason_chains.engine.engine import ChainEngine
from coreason_chains.events.sink import AsyncEventSink, EventDispatcher, LoggingEventSink, RedisEventSink
from coreason_chains.infrastructure.manifest_inspector import ManifestInspector
from coreason_chains.infrastructure.remote_runner import RemoteRecipeRunner
from coreason_chains.storage.builtin import register_builtin_chains
from coreason_chains.storage.chain_store import ChainStore
from coreason_chains.utils.logger import configure_logging


# --- Data Models ---
class CreateChainRequest(BaseModel):
    name: str
    description: str = ""
    root_node: Dict[str, Any]
    options: Optional[Dict[str, Any]] = None


class PatternChainRequest(BaseModel):
    name: str
    issues: List[Dict[str, Any]]
    options: Optional[Dict[str, Any]] = None


class ExecuteChainRequest(BaseModel):
    context: Dict[str, Any] = Field(default_factory=dict)


class StartExecutionResponse(BaseModel):
    execution_id: str
    status: str


# --- Global State ---
MAX_FINISHED_JOBS = 100
registry = ChainRegistry()
job_registry: Dict[str, Dict[str, Any]] = {}
redis_client: Optional[redis.Redis] = None
chain_store: Optional[ChainStore] = None
builder: Optional[ChainBuilder] = None
engine: Optional[ChainEngine] = None


@asynccontextmanager
async def lifespan(app: FastAPI) -> Any:
    # Startup
    global redis_client, chain_store, builder, engine
    settings = EngineSettings.from_env()
    configure_logging(settings.log_level)
    try:
        redis_client = redis.from_url(settings.redis_url, decode_responses=True)
    except Exception as e:
        logger.error(f"Failed to connect to Redis: {e}")

    sink: AsyncEventSink
    if redis_client:
        sink = RedisEventSink(redis_client)
    else:
        logger.warning("Redis client not available, using Logging sink")
        sink = LoggingEventSink()
    dispatcher = EventDispatcher([sink])

    register_builtin_chains(registry)
    chain_store = ChainStore(settings.store_dir) if settings.store_dir else None
    if chain_store is not None:
        chain_store.load_into(registry)

    builder = ChainBuilder(registry, dispatcher=dispatcher)
    engine = ChainEngine(
        registry,
        RemoteRecipeRunner(settings.recipe_runner_url),
        inspector=ManifestInspector(),
        dispatcher=dispatcher,
        max_parallel=settings.max_parallel,
    )

    yield

    # Shutdown
    for job in job_registry.values():
        job["cancel_event"].set()
    if redis_client:
        await redis_client.aclose()


app = FastAPI(lifespan=lifespan)


def _dump(chain: RecipeChain) -> Dict[str, Any]:
    return chain.model_dump(mode="json", by_alias=True)


def _persist(chain: RecipeChain) -> None:
    if chain_store is not None:
        chain_store.save(chain)


def _evict_finished_jobs() -> None:
    finished = [job_id for job_id, job in job_registry.items() if job["status"] != "running"]
    # Dicts keep insertion order, so the oldest finished jobs come first.
    for job_id in finished[: max(len(finished) - MAX_FINISHED_JOBS, 0)]:
        del job_registry[job_id]


async def run_chain_background(execution_id: str, chain_id: str, context: Dict[str, Any]) -> None:
    job = job_registry[execution_id]
    try:
        assert engine is not None
        result = await engine.execute_chain(
            chain_id, context, cancel_event=job["cancel_event"], execution_id=execution_id
        )
        job["status"] = result.status
        job["result"] = result.model_dump(mode="json", by_alias=True)
        _persist(registry.require(chain_id))
    except Exception as e:
        logger.exception(f"Chain execution {execution_id} failed: {e}")
        job["status"] = "failed"
        job["error"] = str(e)
    finally:
        _evict_finished_jobs()


@app.get("/health")  # type: ignore
async def health_check() -> Dict[str, str]:
    return {"status": "healthy"}


@app.get("/chains")  # type: ignore
async def list_chains(category: Optional[str] = None) -> List[Dict[str, Any]]:
    chains = registry.by_category(category) if category else registry.all()
    return [_dump(chain) for chain in chains]


@app.get("/chains/{chain_id}")  # type: ignore
async def get_chain(chain_id: str) -> Dict[str, Any]:
    try:
        return _dump(registry.require(chain_id))
    except ChainNotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@app.post("/chains", status_code=201)  # type: ignore
async def create_chain(req: CreateChainRequest) -> Dict[str, Any]:
    assert builder is not None
    try:
        chain = await builder.create_chain(req.name, req.description, req.root_node, req.options)
    except InvalidChainDefinition as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    _persist(chain)
    return _dump(chain)


@app.post("/chains/from-patterns", status_code=201)  # type: ignore
async def create_chain_from_patterns(req: PatternChainRequest) -> Dict[str, Any]:
    assert builder is not None
    try:
        chain = await builder.create_chain_from_patterns(req.issues, req.name, req.options)
    except InvalidChainDefinition as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    _persist(chain)
    return _dump(chain)


@app.post("/chains/{chain_id}/execute", response_model=StartExecutionResponse)  # type: ignore
async def start_execution(chain_id: str, req: ExecuteChainRequest) -> StartExecutionResponse:
    if chain_id not in registry:
        raise HTTPException(status_code=404, detail=f"Chain not found: {chain_id}")

    execution_id = f"exec-{uuid.uuid4().hex}"
    job_registry[execution_id] = {
        "chain_id": chain_id,
        "status": "running",
        "cancel_event": asyncio.Event(),
        "result": None,
    }
    # We keep the task reference so it is not garbage collected mid-run
    job_registry[execution_id]["task"] = asyncio.create_task(
        run_chain_background(execution_id, chain_id, req.context)
    )
    return StartExecutionResponse(execution_id=execution_id, status="accepted")


@app.get("/executions/{execution_id}")  # type: ignore
async def get_execution(execution_id: str) -> Dict[str, Any]:
    job = job_registry.get(execution_id)
    if not job:
        raise HTTPException(status_code=404, detail="Execution not found")
    return {
        "execution_id": execution_id,
        "chain_id": job["chain_id"],
        "status": job["status"],
        "result": job["result"],
        "error": job.get("error"),
    }


@app.post("/executions/{execution_id}/cancel")  # type: ignore
async def cancel_execution(execution_id: str) -> Dict[str, str]:
    job = job_registry.get(execution_id)
    if not job:
        raise HTTPException(status_code=404, detail="Execution not found")
    if job["status"] != "running":
        return {"status": "already finished"}

    job["cancel_event"].set()
    return {"status": "cancelling"}
