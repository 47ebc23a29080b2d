"""Request bodies accepted by the REST API.

Create bodies default missing fields so the routers can report which
required field is absent; patch bodies leave every field optional and only
the fields that are present and non-null are applied.
"""

from typing import List, Optional

from pydantic import BaseModel


class PatchModel(BaseModel):
    def changes(self) -> dict:
        return self.model_dump(exclude_none=True)


class ExerciseCreate(BaseModel):
    name: str = ""
    type: str = ""
    category: Optional[str] = None
    target_sets: Optional[int] = None
    target_reps: Optional[int] = None
    target_weight: Optional[float] = None


class ExercisePatch(PatchModel):
    name: Optional[str] = None
    type: Optional[str] = None
    category: Optional[str] = None
    target_sets: Optional[int] = None
    target_reps: Optional[int] = None
    target_weight: Optional[float] = None


class RoutineCreate(BaseModel):
    exercise_id: int = 0
    day_of_week: str = ""
    notes: Optional[str] = None


class RoutinePatch(PatchModel):
    order_index: Optional[int] = None
    notes: Optional[str] = None
    last_done: Optional[str] = None


class RoutineReorder(BaseModel):
    day_of_week: str = ""
    routine_ids: List[int] = []


class HistoryCreate(BaseModel):
    exercise_id: int = 0
    session_date: str = ""
    weight: Optional[float] = None
    sets_completed: List[int] = []
    completed: bool = False
    volume: Optional[float] = None
    notes: Optional[str] = None


class HistoryPatch(PatchModel):
    weight: Optional[float] = None
    sets_completed: Optional[List[int]] = None
    completed: Optional[bool] = None
    volume: Optional[float] = None
    notes: Optional[str] = None


class DayTitleUpdate(BaseModel):
    title: str = ""


class MetricTypeCreate(BaseModel):
    name: str = ""
    unit: str = ""
    color: str = ""
    order_index: int = 0


class MetricTypePatch(PatchModel):
    name: Optional[str] = None
    unit: Optional[str] = None
    color: Optional[str] = None
    order_index: Optional[int] = None


class MetricTypeOrder(BaseModel):
    id: int
    order_index: int


class MetricTypeReorder(BaseModel):
    metric_types: List[MetricTypeOrder] = []


class MetricEntryCreate(BaseModel):
    metric_type_id: int = 0
    entry_date: str = ""
    value: float = 0.0
    notes: Optional[str] = None


class MetricEntryPatch(PatchModel):
    value: Optional[float] = None
    entry_date: Optional[str] = None
    notes: Optional[str] = None
