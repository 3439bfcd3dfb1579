# main.py
"""
FastAPI entry point for the household meal-generation service.

Startup wires every collaborator explicitly (no module-level singletons):
Supabase client -> monitored job store -> OpenAI generator -> orchestrator
-> background job runner. Shutdown waits for in-flight jobs before closing
the Supabase client.
"""
import asyncio
import logging
import os
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from meal_planner.api.generation_jobs import router as generation_jobs_router
from meal_planner.config.generation import GenerationConfig
from meal_planner.config.settings import settings
from meal_planner.config.supabase import SupabaseClient
from meal_planner.services.job_runner import MealGenerationJobRunner
from meal_planner.services.llm_client import OpenAITextGenerator
from meal_planner.services.meal_generator import MealGenerator
from meal_planner.services.meal_review import MealReviewService
from meal_planner.services.monitoring import MonitoredGenerationStore, StoreMonitor
from meal_planner.services.storage import SupabaseGenerationStore

logger = logging.getLogger("uvicorn.error")

HEALTH_CHECK_TIMEOUT = settings.health_check_timeout
FAIL_ON_DB_STARTUP = os.getenv("FAIL_ON_DB_STARTUP", "false").strip().lower() in ("1", "true", "yes")
SHUTDOWN_DRAIN_TIMEOUT = float(os.getenv("SHUTDOWN_DRAIN_TIMEOUT", "30"))


async def _in_threadpool(fn, *args, timeout: float = HEALTH_CHECK_TIMEOUT):
    """Run a blocking callable in the default executor, bounded by `timeout` seconds."""
    loop = asyncio.get_running_loop()
    return await asyncio.wait_for(loop.run_in_executor(None, fn, *args), timeout=timeout)


async def _supabase_health(app: FastAPI, timeout: float = HEALTH_CHECK_TIMEOUT) -> bool:
    holder: Optional[SupabaseClient] = getattr(app.state, "supabase", None)
    if holder is None:
        return False
    try:
        return bool(await _in_threadpool(holder.health_check, timeout=timeout))
    except asyncio.TimeoutError:
        logger.warning("Supabase health check exceeded %.1fs", timeout)
        return False
    except Exception as exc:
        logger.exception("Supabase health check raised: %s", exc)
        return False


def build_services(app: FastAPI) -> None:
    """Construct the service graph once and hang it on app.state."""
    holder = SupabaseClient(settings)
    monitor = StoreMonitor()
    store = MonitoredGenerationStore(SupabaseGenerationStore(holder.client), monitor)
    generator = MealGenerator(
        OpenAITextGenerator.from_settings(settings),
        config=GenerationConfig.from_settings(settings),
    )

    app.state.supabase = holder
    app.state.store_monitor = monitor
    app.state.generation_store = store
    app.state.meal_generator = generator
    app.state.job_runner = MealGenerationJobRunner(store, generator)
    app.state.review_service = MealReviewService(store)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.getLogger("meal_planner").setLevel(settings.log_level)
    logger.info("Meal generation service starting (model=%s)", settings.openai_model)

    try:
        build_services(app)
        app.state.supabase_healthy = await _supabase_health(app)
        logger.info("Job store reachable at startup: %s", app.state.supabase_healthy)
        if not app.state.supabase_healthy and FAIL_ON_DB_STARTUP:
            raise RuntimeError("Job store unreachable and FAIL_ON_DB_STARTUP is set")
    except Exception:
        # re-raised so uvicorn exits instead of serving a half-built app
        logger.exception("Startup failed")
        raise

    try:
        yield
    finally:
        logger.info("Meal generation service stopping")
        runner: Optional[MealGenerationJobRunner] = getattr(app.state, "job_runner", None)
        if runner is not None:
            try:
                await runner.drain(timeout=SHUTDOWN_DRAIN_TIMEOUT)
            except Exception:
                logger.exception("Draining generation jobs failed")
        holder: Optional[SupabaseClient] = getattr(app.state, "supabase", None)
        if holder is not None:
            holder.close()


app = FastAPI(
    title="Household Meal Planner",
    description="AI-assisted meal generation for household groups and weekly plans",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    """Tag each request with an id (caller supplied or generated) and log it."""
    request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex
    request.state.request_id = request_id
    logger.info("%s %s [%s]", request.method, request.url.path, request_id)
    try:
        response = await call_next(request)
    except Exception as exc:
        logger.exception("Unhandled error [%s]: %s", request_id, exc)
        return JSONResponse(
            {"ok": False, "message": "Internal server error", "request_id": request_id},
            status_code=500,
            headers={"X-Request-Id": request_id},
        )
    logger.info("%s %s [%s] -> %s", request.method, request.url.path, request_id, response.status_code)
    response.headers["X-Request-Id"] = request_id
    return response


app.include_router(generation_jobs_router, prefix="/meal-generation", tags=["meal-generation"])


@app.get("/")
async def root() -> Dict[str, str]:
    return {"service": "meal-planner", "status": "running"}


@app.get("/health")
async def health_check():
    """Live Supabase round trip; reports degraded (503) rather than raising."""
    db_ok = await _supabase_health(app)
    return JSONResponse(
        {
            "status": "healthy" if db_ok else "degraded",
            "service": "meal-planner",
            "database": "connected" if db_ok else "disconnected",
        },
        status_code=200 if db_ok else 503,
    )


@app.get("/ready")
async def readiness_check():
    cached: Optional[bool] = getattr(app.state, "supabase_healthy", None)
    db_ok = cached if cached is not None else await _supabase_health(app, timeout=2.0)
    runner_ok = getattr(app.state, "job_runner", None) is not None
    ready = bool(db_ok) and runner_ok
    return JSONResponse(
        {"ready": ready, "database": "connected" if db_ok else "disconnected", "job_runner": runner_ok},
        status_code=200 if ready else 503,
    )


@app.get("/diagnostics")
async def diagnostics() -> Dict[str, Any]:
    """Non-sensitive runtime information: store metrics, config presence, queue size."""
    holder: Optional[SupabaseClient] = getattr(app.state, "supabase", None)
    monitor: Optional[StoreMonitor] = getattr(app.state, "store_monitor", None)
    runner: Optional[MealGenerationJobRunner] = getattr(app.state, "job_runner", None)
    generator: Optional[MealGenerator] = getattr(app.state, "meal_generator", None)
    return {
        "ok": True,
        "diagnostics": {
            "supabase": holder.diagnostics() if holder else {"configured": False},
            "store": monitor.snapshot() if monitor else None,
            "store_warnings": monitor.warnings() if monitor else [],
            "openai": {
                "model": settings.openai_model,
                "configured": bool(generator and getattr(generator.text_generator, "configured", False)),
            },
            "pending_jobs": runner.pending_jobs if runner else 0,
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))
