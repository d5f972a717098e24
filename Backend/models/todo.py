import math
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, List, Literal, Mapping, Optional

from bson import ObjectId
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError as PydanticValidationError,
    ValidationInfo,
    field_validator,
)
from pydantic.alias_generators import to_camel

from models.errors import ValidationError, validation_error_from_pydantic

Priority = Literal["low", "medium", "high"]
PRIORITIES = ("low", "medium", "high")

TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 1000
CATEGORY_MAX_LENGTH = 50
TAG_MAX_LENGTH = 30

ONE_DAY = timedelta(days=1)


class DueStatus(str, Enum):
    NO_DUE_DATE = "no-due-date"
    COMPLETED = "completed"
    OVERDUE = "overdue"
    DUE_TODAY = "due-today"
    DUE_SOON = "due-soon"
    NOT_DUE = "not-due"


def as_utc(value: datetime) -> datetime:
    """Naive datetimes coming back from the driver are UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Input models ---

class TodoBase(BaseModel):
    """Rules shared by create and partial update."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    @field_validator("title", check_fields=False)
    @classmethod
    def _title_not_blank(cls, value: Optional[str]) -> str:
        if not value:
            raise ValueError("Title is required and cannot be empty.")
        return value

    @field_validator("tags", mode="before", check_fields=False)
    @classmethod
    def _tags_null_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("tags", check_fields=False)
    @classmethod
    def _normalize_tags(cls, value: List[str]) -> List[str]:
        tags = [tag.strip() for tag in value if tag.strip()]
        for tag in tags:
            if len(tag) > TAG_MAX_LENGTH:
                raise ValueError(f"Each tag cannot exceed {TAG_MAX_LENGTH} characters.")
        return tags

    @field_validator("due_date", check_fields=False)
    @classmethod
    def _due_date_in_future(cls, value: Optional[datetime], info: ValidationInfo) -> Optional[datetime]:
        if value is None:
            return None
        value = as_utc(value)
        now = (info.context or {}).get("now") or utcnow()
        if value <= now:
            raise ValueError("Due date must be in the future.")
        return value

    @field_validator("created_by", mode="before", check_fields=False)
    @classmethod
    def _created_by_object_id(cls, value: Any) -> Any:
        if isinstance(value, ObjectId):
            return str(value)
        if value is not None and not ObjectId.is_valid(value):
            raise ValueError(f"'{value}' is not a valid ObjectId.")
        return value


class TodoCreate(TodoBase):
    title: str = Field(..., max_length=TITLE_MAX_LENGTH)
    description: Optional[str] = Field(None, max_length=DESCRIPTION_MAX_LENGTH)
    completed: bool = False
    priority: Priority = "medium"
    category: Optional[str] = Field(None, max_length=CATEGORY_MAX_LENGTH)
    due_date: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list)
    created_by: Optional[str] = None


class TodoUpdate(TodoBase):
    """Every field optional; only the ones present in the input are applied."""
    title: Optional[str] = Field(None, max_length=TITLE_MAX_LENGTH)
    description: Optional[str] = Field(None, max_length=DESCRIPTION_MAX_LENGTH)
    completed: Optional[bool] = None
    priority: Optional[Priority] = None
    category: Optional[str] = Field(None, max_length=CATEGORY_MAX_LENGTH)
    due_date: Optional[datetime] = None
    tags: Optional[List[str]] = None

    @field_validator("completed", "priority")
    @classmethod
    def _not_null(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            raise ValueError(f"{to_camel(info.field_name)} cannot be null.")
        return value


# Update fields that may be cleared by sending null
CLEARABLE_FIELDS = ("description", "category", "dueDate")


def validate_and_normalize(data: Any, now: datetime, partial: bool = False) -> dict:
    """
    Validates a todo payload and returns it in storage form (camelCase keys).

    With partial=False the create rules and defaults apply and unset optional
    fields are omitted. With partial=True only the keys present in `data`
    come back; a None value means "clear this field".

    Raises ValidationError for the first failing field.
    """
    if not isinstance(data, Mapping):
        raise ValidationError(field="body", reason="Request body must be a JSON object.")

    model_cls = TodoUpdate if partial else TodoCreate
    try:
        model = model_cls.model_validate(data, context={"now": now})
    except PydanticValidationError as e:
        raise validation_error_from_pydantic(e.errors()) from e

    if partial:
        doc = model.model_dump(by_alias=True, exclude_unset=True)
        if not doc:
            raise ValidationError(field="body", reason="No updatable fields were supplied.")
    else:
        doc = model.model_dump(by_alias=True, exclude_none=True)

    if doc.get("createdBy"):
        doc["createdBy"] = ObjectId(doc["createdBy"])
    return doc


# --- Derived fields ---

def compute_days_until_due(todo: Mapping[str, Any], now: datetime) -> Optional[int]:
    due = todo.get("dueDate")
    if due is None:
        return None
    return math.ceil((as_utc(due) - now) / ONE_DAY)


def compute_due_status(todo: Mapping[str, Any], now: datetime) -> DueStatus:
    """
    Where a todo sits relative to its due date. Completion is checked before
    the date, so a finished todo is never reported overdue.
    """
    due = todo.get("dueDate")
    if due is None:
        return DueStatus.NO_DUE_DATE
    if todo.get("completed"):
        return DueStatus.COMPLETED
    due = as_utc(due)
    if due < now:
        return DueStatus.OVERDUE
    if due <= now + ONE_DAY:
        return DueStatus.DUE_TODAY
    if due <= now + 7 * ONE_DAY:
        return DueStatus.DUE_SOON
    return DueStatus.NOT_DUE


# --- Response model ---

class TodoResponse(BaseModel):
    """Todo as returned by the API, derived fields included."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    title: str
    description: Optional[str] = None
    completed: bool = False
    priority: str = "medium"
    category: Optional[str] = None
    due_date: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list)
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    days_until_due: Optional[int] = None
    due_status: DueStatus

    @classmethod
    def from_document(cls, doc: Mapping[str, Any], now: datetime) -> "TodoResponse":
        def _dt(key: str) -> Optional[datetime]:
            value = doc.get(key)
            return as_utc(value) if value is not None else None

        created_by = doc.get("createdBy")
        return cls(
            id=str(doc["_id"]),
            title=doc["title"],
            description=doc.get("description"),
            completed=doc.get("completed", False),
            priority=doc.get("priority", "medium"),
            category=doc.get("category"),
            due_date=_dt("dueDate"),
            tags=doc.get("tags") or [],
            created_by=str(created_by) if created_by is not None else None,
            created_at=_dt("createdAt"),
            updated_at=_dt("updatedAt"),
            days_until_due=compute_days_until_due(doc, now),
            due_status=compute_due_status(doc, now),
        )
