from fastapi import APIRouter, HTTPException

from ..db import get_task, list_task_failures
from ..schemas import TaskFailureOut, TaskStatusResponse

router = APIRouter()


@router.get("/tasks/{task_id}", response_model=TaskStatusResponse)
async def task_status(task_id: str) -> TaskStatusResponse:
    task = await get_task(task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    failures = [TaskFailureOut(**row) for row in await list_task_failures(task_id)]
    response_data = {key: task.get(key) for key in TaskStatusResponse.model_fields if key != "failures"}
    return TaskStatusResponse(**response_data, failures=failures)
