"""Meal logging endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from nutricoach.api.dependencies import get_store
from nutricoach.coaching.interfaces import CoachingStore
from nutricoach.services.meals import MEAL_SOURCES, log_meal

router = APIRouter(prefix="/meals", tags=["meals"])


class MealCreate(BaseModel):
    line_user_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    calories: float = Field(default=0.0, ge=0)
    protein: float = Field(default=0.0, ge=0)
    carbs: float = Field(default=0.0, ge=0)
    fat: float = Field(default=0.0, ge=0)
    source: str = "manual"


@router.post("", status_code=status.HTTP_201_CREATED)
def create_meal(body: MealCreate, store: CoachingStore = Depends(get_store)):
    # Sync route: runs in the threadpool, so invalidation happens inline on the
    # request session before the session is closed
    if body.source not in MEAL_SOURCES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown meal source {body.source!r}")
    member = store.find_member_by_external_id(body.line_user_id)
    if member is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Member not found")

    meal = log_meal(
        store,
        member.id,
        body.name,
        calories=body.calories,
        protein=body.protein,
        carbs=body.carbs,
        fat=body.fat,
        source=body.source,
    )
    return {"id": meal.id, "name": meal.name, "date": meal.date.isoformat()}
