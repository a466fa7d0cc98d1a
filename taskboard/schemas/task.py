from datetime import datetime
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, PositiveInt, ValidationError, field_validator
from pydantic_core import PydanticCustomError

from taskboard.models.task import TaskStatus
from taskboard.utils.errors import ValidationFailure

TITLE_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500
TASK_FIELDS = ("title", "description", "status")


def _check_title(v: Any) -> str:
    if v is None or (isinstance(v, str) and not v.strip()):
        raise PydanticCustomError("title_required", "Title is required")
    if not isinstance(v, str):
        raise PydanticCustomError("title_type", "Title must be text")
    v = v.strip()
    if len(v) > TITLE_MAX_LENGTH:
        raise PydanticCustomError("title_too_long", "Title too long")
    return v


def _check_description(v: Any) -> Optional[str]:
    if v is None or v == "":
        return None
    if not isinstance(v, str):
        raise PydanticCustomError("description_type", "Description must be text")
    if len(v) > DESCRIPTION_MAX_LENGTH:
        raise PydanticCustomError("description_too_long", "Description too long")
    return v


def _check_status(v: Any) -> TaskStatus:
    # exact literals only: "todo" or "" are rejected
    if isinstance(v, TaskStatus):
        return v
    try:
        return TaskStatus(v)
    except (ValueError, TypeError):
        raise PydanticCustomError("invalid_status", "Invalid status")


class TaskFields(BaseModel):
    """Field rules shared by the create and update payloads."""

    @field_validator("title", mode="before", check_fields=False)
    @classmethod
    def title_valid(cls, v):
        return _check_title(v)

    @field_validator("description", mode="before", check_fields=False)
    @classmethod
    def description_valid(cls, v):
        return _check_description(v)

    @field_validator("status", mode="before", check_fields=False)
    @classmethod
    def status_valid(cls, v):
        return _check_status(v)


class TaskCreate(TaskFields):
    title: str
    description: Optional[str] = None
    status: TaskStatus


class TaskPatch(TaskFields):
    """Client payload for a partial update; omitted fields stay untouched."""

    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[TaskStatus] = None


class TaskUpdate(TaskPatch):
    id: PositiveInt

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True, exclude={"id"})


class TaskOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: Optional[str] = None
    status: TaskStatus
    user_id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class FieldError(BaseModel):
    field: str
    message: str


class SkippedRow(BaseModel):
    row: int
    reason: str
    errors: list[FieldError] = []


class UploadResult(BaseModel):
    persisted: int
    skipped: list[SkippedRow] = []


def field_errors(exc: ValidationError) -> list[dict]:
    """Flatten a pydantic error into one {field, message} entry per violation."""
    errors = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p != "body"]
        errors.append({"field": ".".join(loc) or "__root__", "message": err["msg"]})
    return errors


def validate_row(row: Mapping[str, Any]) -> TaskCreate:
    """Validate one untyped row, reporting every violated constraint at once.

    Missing keys are treated as empty values so that a row lacking a column
    gets the same message as one with a blank cell.
    """
    candidate = {name: row.get(name) for name in TASK_FIELDS}
    try:
        return TaskCreate.model_validate(candidate)
    except ValidationError as exc:
        raise ValidationFailure("invalid task", field_errors(exc))


def validate_update(task_id: Any, payload: Mapping[str, Any]) -> TaskUpdate:
    try:
        return TaskUpdate.model_validate({**payload, "id": task_id})
    except ValidationError as exc:
        raise ValidationFailure("invalid task update", field_errors(exc))
