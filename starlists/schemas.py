from typing import List, Optional

from pydantic import BaseModel, Field

from .models import Category


class TaskQueuedResponse(BaseModel):
    task_id: str
    status: str
    message: str | None = None


class TaskFailureOut(BaseModel):
    item_id: str
    error: str | None = None
    categories: List[str] = Field(default_factory=list)
    created_at: str


class TaskStatusResponse(BaseModel):
    task_id: str
    status: str
    task_type: str
    created_at: str
    started_at: str | None
    finished_at: str | None
    message: str | None
    result: dict | None
    failures: List[TaskFailureOut] = Field(default_factory=list)


class PlanRequest(BaseModel):
    max_categories: Optional[int] = Field(default=None, ge=1, le=100)
    only_new: bool = False


class PlanResponse(BaseModel):
    created_at: str
    repo_count: int
    categories: List[Category]


class ListOut(BaseModel):
    id: str
    name: str
    description: str | None = None
    is_private: bool = False
    item_count: int = 0


class ListsResponse(BaseModel):
    total: int
    items: List[ListOut]


class CreateListsResponse(BaseModel):
    created: List[str]
    skipped: List[str]
    failed: List[str]


class DeleteListsResponse(BaseModel):
    deleted: int
    failed: int


class ClassifyRequest(BaseModel):
    only_new: bool = False
    use_existing: bool = False
    limit: Optional[int] = Field(default=None, ge=1)


class ClassifyStatusResponse(BaseModel):
    running: bool
    phase: str
    started_at: str | None
    finished_at: str | None
    total: int
    processed: int
    succeeded: int
    failed: int
    batches: int
    last_error: str | None
    task_id: str | None = None
