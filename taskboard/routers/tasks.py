from typing import Optional

from fastapi import APIRouter, Body, Depends, File, Query, Request, UploadFile
from fastapi.responses import StreamingResponse

from taskboard.models.task import TaskStatus
from taskboard.schemas.task import TaskCreate, TaskOut, UploadResult, validate_update
from taskboard.services.events import EventBus, EventKind, event_stream, get_event_bus
from taskboard.services.ingest import ingest_csv
from taskboard.services.task_store import TaskStore, get_task_store
from taskboard.utils.auth import get_current_user_id
from taskboard.utils.errors import NoFileProvided

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


@router.post("/", response_model=TaskOut, status_code=201)
def create_task(task: TaskCreate, owner_id: int = Depends(get_current_user_id),
                store: TaskStore = Depends(get_task_store), bus: EventBus = Depends(get_event_bus)):
    created = TaskOut.model_validate(store.create(owner_id, task))
    # only published once the row is committed
    bus.publish(EventKind.CREATED, created)
    return created


@router.get("/")
def list_tasks(q: Optional[str] = Query(None, description="Search by title"),
               status: Optional[TaskStatus] = None, page: Optional[int] = None, limit: Optional[int] = None,
               owner_id: int = Depends(get_current_user_id), store: TaskStore = Depends(get_task_store)):
    """If page and limit are provided, return paginated result dict {items,page,limit,total,pages}.
    Otherwise return plain list.
    """
    if page is None or limit is None:
        return [TaskOut.model_validate(t) for t in store.list(owner_id, q, status)]

    result = store.paginate(owner_id, page, limit, q, status)
    result["items"] = [TaskOut.model_validate(t) for t in result["items"]]
    return result


@router.post("/upload", response_model=UploadResult, status_code=201)
def upload_tasks(file: Optional[UploadFile] = File(None), owner_id: int = Depends(get_current_user_id),
                 store: TaskStore = Depends(get_task_store), bus: EventBus = Depends(get_event_bus)):
    if file is None:
        raise NoFileProvided()
    result, tasks = ingest_csv(file.file, owner_id, store)
    for task in tasks:
        bus.publish(EventKind.CREATED, TaskOut.model_validate(task))
    return result


@router.get("/events")
async def stream_events(request: Request, owner_id: int = Depends(get_current_user_id),
                        bus: EventBus = Depends(get_event_bus)):
    return StreamingResponse(
        event_stream(bus, owner_id, request.is_disconnected),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/{task_id}", response_model=TaskOut)
def get_task(task_id: int, owner_id: int = Depends(get_current_user_id),
             store: TaskStore = Depends(get_task_store)):
    return TaskOut.model_validate(store.get(owner_id, task_id))


@router.patch("/{task_id}", response_model=TaskOut)
def update_task(task_id: int, payload: dict = Body(...), owner_id: int = Depends(get_current_user_id),
                store: TaskStore = Depends(get_task_store), bus: EventBus = Depends(get_event_bus)):
    changes = validate_update(task_id, payload)
    updated = TaskOut.model_validate(store.update(owner_id, changes))
    bus.publish(EventKind.UPDATED, updated)
    return updated


@router.delete("/{task_id}")
def delete_task(task_id: int, owner_id: int = Depends(get_current_user_id),
                store: TaskStore = Depends(get_task_store), bus: EventBus = Depends(get_event_bus)):
    snapshot = store.delete(owner_id, task_id)
    bus.publish(EventKind.DELETED, snapshot)
    return {"detail": "deleted"}
