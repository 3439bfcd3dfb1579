"""
Meal-generation job endpoints: trigger, poll, review and select.

Collaborators (job runner, store, review service) are created once in the
application lifespan and read from `app.state` through small dependency
functions, so tests can swap them with `app.dependency_overrides`.
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from meal_planner.models.group import Group
from meal_planner.models.plan import Plan
from meal_planner.services.errors import StorageError
from meal_planner.services.group_validation import normalize_dietary_restrictions, sanitize_group_name
from meal_planner.services.job_runner import MealGenerationJobRunner
from meal_planner.services.job_tracker import (
    estimate_time_remaining,
    format_job_status,
    job_status_view,
)
from meal_planner.services.meal_review import MealReviewService
from meal_planner.services.plan_validation import (
    sanitize_plan_name,
    validate_plan,
    validate_plan_for_generation,
)
from meal_planner.services.storage import GenerationStore

logger = logging.getLogger(__name__)

router = APIRouter()


class GenerationJobRequest(BaseModel):
    plan: Dict[str, Any]
    groups: List[Group] = Field(default_factory=list)
    user_id: Optional[str] = None


class MealSelectionRequest(BaseModel):
    meal_ids: List[str] = Field(default_factory=list)


def _from_state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(status_code=503, detail=f"{name} not configured")
    return value


def get_job_runner(request: Request) -> MealGenerationJobRunner:
    return _from_state(request, "job_runner")


def get_store(request: Request) -> GenerationStore:
    return _from_state(request, "generation_store")


def get_review_service(request: Request) -> MealReviewService:
    return _from_state(request, "review_service")


def _clean_group(group: Group) -> Group:
    return group.model_copy(
        update={
            "name": sanitize_group_name(group.name),
            "dietary_restrictions": normalize_dietary_restrictions(group.dietary_restrictions),
        }
    )


def _storage_unavailable(exc: StorageError) -> HTTPException:
    logger.error("Storage error (%s): %s", exc.operation, exc)
    return HTTPException(status_code=503, detail="Storage unavailable")


@router.post("/jobs", status_code=202)
async def create_generation_job(
    body: GenerationJobRequest,
    runner: MealGenerationJobRunner = Depends(get_job_runner),
):
    """Validate the plan, create a pending job and start it in the background."""
    checked = validate_plan(body.plan)
    if not checked["is_valid"]:
        return JSONResponse({"ok": False, "errors": checked["errors"]}, status_code=422)

    try:
        plan = Plan.model_validate({**body.plan, "name": sanitize_plan_name(body.plan["name"])})
    except ValidationError as exc:
        return JSONResponse(
            {"ok": False, "errors": {"plan": [e["msg"] for e in exc.errors()]}}, status_code=422
        )

    groups = [_clean_group(g) for g in body.groups]
    readiness = validate_plan_for_generation(plan, groups)
    if not readiness["is_valid"]:
        return JSONResponse(
            {"ok": False, "errors": {"plan": readiness["errors"]}, "warnings": readiness["warnings"]},
            status_code=422,
        )

    try:
        job = await runner.create_job(plan, groups, user_id=body.user_id)
    except StorageError as exc:
        raise _storage_unavailable(exc)

    runner.submit(job.id, plan, groups, user_id=body.user_id)
    return {
        "ok": True,
        "job_id": job.id,
        "status": job.status.value,
        "warnings": readiness["warnings"],
    }


@router.get("/jobs/{job_id}")
async def get_generation_job(job_id: str, store: GenerationStore = Depends(get_store)):
    """Poll a job. Only plain status fields are exposed."""
    try:
        job = await store.get_job(job_id)
    except StorageError as exc:
        raise _storage_unavailable(exc)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")

    view = job_status_view(job)
    view["display"] = format_job_status(job)
    view["estimate"] = estimate_time_remaining(job)
    return view


@router.get("/jobs/{job_id}/meals")
async def get_generated_meals(
    job_id: str,
    group_id: Optional[str] = Query(default=None, alias="groupId"),
    selected_only: bool = Query(default=False, alias="selectedOnly"),
    review: MealReviewService = Depends(get_review_service),
):
    try:
        if group_id or selected_only:
            meals = await review.list_meals(job_id, group_id=group_id, selected_only=selected_only)
            return {"job_id": job_id, "meals": meals, "count": len(meals)}
        return await review.review(job_id)
    except StorageError as exc:
        raise _storage_unavailable(exc)


@router.post("/jobs/{job_id}/selection")
async def select_generated_meals(
    job_id: str,
    body: MealSelectionRequest,
    review: MealReviewService = Depends(get_review_service),
):
    try:
        result = await review.select_meals(job_id, body.meal_ids)
    except StorageError as exc:
        raise _storage_unavailable(exc)
    return {"ok": True, **result}
