from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from ..auth import get_todo_service, require_auth
from ..errors import unwrap
from ..gate import AuthContext
from ..models import TodoEntity
from ..schemas import ErrorResponse, TodoCreate, TodoFilter, TodoOrder, TodoOut, TodoUpdate
from ..services import TodoService

router = APIRouter(tags=["todos"])

_UNAUTHORIZED = {401: {"model": ErrorResponse, "description": "Missing, invalid or revoked token"}}
_NOT_FOUND = {404: {"model": ErrorResponse, "description": "Task not found"}}


def _out(item: TodoEntity) -> TodoOut:
    return TodoOut(**item)  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.get(
    "/todos",
    response_model=List[TodoOut],
    summary="List Todos",
    description=(
        "List the caller's tasks.\n\n"
        "Query parameters:\n"
        "- filter: INCOMPLETE, COMPLETE or ALL (default ALL)\n"
        "- orderBy: CREATED_AT, COMPLETED_AT or DESCRIPTION (default CREATED_AT, ascending)"
    ),
    responses={**_UNAUTHORIZED, 400: {"model": ErrorResponse, "description": "Invalid query parameters"}},
)
def list_todos(
    state_filter: TodoFilter = Query(TodoFilter.ALL, alias="filter", description="State to filter tasks by"),
    order_by: TodoOrder = Query(TodoOrder.CREATED_AT, alias="orderBy", description="Property to order tasks by"),
    auth: AuthContext = Depends(require_auth),
    service: TodoService = Depends(get_todo_service),
) -> List[TodoOut]:
    return [_out(it) for it in unwrap(service.list(auth, state_filter, order_by))]


# PUBLIC_INTERFACE
@router.post(
    "/todos",
    response_model=TodoOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Todo",
    description="Create a new INCOMPLETE task owned by the caller.",
    responses={**_UNAUTHORIZED, 400: {"model": ErrorResponse, "description": "Validation error"}},
)
def create_todo(
    payload: TodoCreate,
    auth: AuthContext = Depends(require_auth),
    service: TodoService = Depends(get_todo_service),
) -> TodoOut:
    return _out(unwrap(service.create(auth, payload.description)))


# PUBLIC_INTERFACE
@router.get(
    "/todo/{todo_id}",
    response_model=TodoOut,
    summary="Get Todo",
    description="Get one of the caller's tasks by id. Other users' tasks are reported as not found.",
    responses={**_UNAUTHORIZED, **_NOT_FOUND},
)
def get_todo(
    todo_id: UUID,
    auth: AuthContext = Depends(require_auth),
    service: TodoService = Depends(get_todo_service),
) -> TodoOut:
    return _out(unwrap(service.get(auth, str(todo_id))))


# PUBLIC_INTERFACE
@router.patch(
    "/todo/{todo_id}",
    response_model=TodoOut,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Update Todo",
    description=(
        "Change a task's state and/or description. Completed tasks cannot have "
        "their description changed."
    ),
    responses={**_UNAUTHORIZED, **_NOT_FOUND, 400: {"model": ErrorResponse, "description": "Illegal change"}},
)
def patch_todo(
    todo_id: UUID,
    payload: TodoUpdate,
    auth: AuthContext = Depends(require_auth),
    service: TodoService = Depends(get_todo_service),
) -> TodoOut:
    return _out(unwrap(service.update(auth, str(todo_id), payload)))


# PUBLIC_INTERFACE
@router.delete(
    "/todo/{todo_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Delete Todo",
    description="Delete one of the caller's tasks by id.",
    responses={**_UNAUTHORIZED, **_NOT_FOUND},
)
def delete_todo(
    todo_id: UUID,
    auth: AuthContext = Depends(require_auth),
    service: TodoService = Depends(get_todo_service),
) -> Response:
    unwrap(service.delete(auth, str(todo_id)))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
