"""FastAPI application exposing registration, login and travel request endpoints."""

import logging
import uuid
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import Counter, make_asgi_app
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from sqlalchemy.exc import SQLAlchemyError

from .auth import get_current_user_id
from .config import settings
from .database import SessionLocal
from .entities import (
    TravelRequest,
    TravelRequestChanges,
    TravelRequestFilters,
    TravelStatus,
    UserRole,
)
from .errors import InvalidStatus, NotFound, TravelError, Unauthorized
from .notifications import StatusNotifier
from .services import AuthWorkflow, TravelWorkflow
from .stores import SqlTravelStore, SqlUserStore


limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)
app = FastAPI(title=settings.api_title)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.mount("/metrics", make_asgi_app())

logger = logging.getLogger(__name__)

# Prometheus counter to track API requests by method, endpoint and status code
REQUEST_COUNTER = Counter(
    "api_requests_total",
    "Total API requests",
    ["method", "endpoint", "status"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log incoming requests and their outcomes while updating metrics."""
    logger.info("request %s %s", request.method, request.url.path)
    try:
        response = await call_next(request)
        REQUEST_COUNTER.labels(
            method=request.method,
            endpoint=request.url.path,
            status=str(response.status_code),
        ).inc()
        logger.info(
            "response %s %s status %s",
            request.method,
            request.url.path,
            response.status_code,
        )
        return response
    except Exception:
        REQUEST_COUNTER.labels(
            method=request.method,
            endpoint=request.url.path,
            status="500",
        ).inc()
        logger.exception(
            "error handling %s %s", request.method, request.url.path
        )
        raise


@app.exception_handler(TravelError)
async def travel_error_handler(request: Request, exc: TravelError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    return JSONResponse(status_code=500, content={"detail": "Database error"})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


def get_user_store() -> SqlUserStore:
    return SqlUserStore(SessionLocal)


def get_travel_store() -> SqlTravelStore:
    return SqlTravelStore(SessionLocal)


def get_notifier() -> StatusNotifier:
    return StatusNotifier()


def get_auth_workflow(users: SqlUserStore = Depends(get_user_store)) -> AuthWorkflow:
    return AuthWorkflow(users)


def get_travel_workflow(
    travels: SqlTravelStore = Depends(get_travel_store),
    users: SqlUserStore = Depends(get_user_store),
    notifier: StatusNotifier = Depends(get_notifier),
) -> TravelWorkflow:
    return TravelWorkflow(travels, users, notifier)


class UserCreate(BaseModel):
    """Request body for registering a new user."""

    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: str = UserRole.COMMON.value


class UserLogin(BaseModel):
    """Request body for user login."""

    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    """JWT access token."""

    access_token: str
    token_type: str = "bearer"


class UserResponse(BaseModel):
    """Serialized user without credentials."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    email: str
    role: UserRole
    is_active: bool
    created_at: datetime


class TravelRequestCreate(BaseModel):
    """Request body for submitting a travel request."""

    traveler_name: str = Field(..., min_length=1)
    destination_name: str
    departure_date: datetime
    return_date: Optional[datetime] = None


class TravelRequestUpdate(BaseModel):
    """Partial update of a pending travel request; omitted fields are kept."""

    traveler_name: Optional[str] = None
    destination_name: Optional[str] = None
    departure_date: Optional[datetime] = None
    return_date: Optional[datetime] = None


class StatusUpdate(BaseModel):
    """Request body for approving or canceling a travel request."""

    status: str = Field(..., description="APPROVED or CANCELED (REJECTED is accepted)")


class TravelRequestResponse(BaseModel):
    """Serialized travel request."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    traveler_name: str
    destination_name: str
    departure_date: datetime
    return_date: Optional[datetime] = None
    status: TravelStatus
    canceled_by: Optional[uuid.UUID] = None
    canceled_at: Optional[datetime] = None
    approved_by: Optional[uuid.UUID] = None
    approved_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    user: Optional[UserResponse] = None


class TravelRequestListResponse(BaseModel):
    """Paginated list of travel requests."""

    total: int
    page: int
    page_size: int
    items: List[TravelRequestResponse]


def _serialize(request: TravelRequest) -> TravelRequestResponse:
    return TravelRequestResponse.model_validate(request)


def _filters(
    status_filter: Optional[str],
    start: Optional[datetime],
    end: Optional[datetime],
    destination: Optional[str],
    page: int,
    page_size: int,
    user_id: Optional[uuid.UUID] = None,
) -> TravelRequestFilters:
    parsed_status = None
    if status_filter:
        try:
            parsed_status = TravelStatus(status_filter)
        except ValueError as exc:
            raise InvalidStatus(f"unknown status: {status_filter!r}") from exc
    return TravelRequestFilters(
        user_id=user_id,
        status=parsed_status,
        start=start,
        end=end,
        destination=destination or None,
        page=page,
        page_size=page_size,
    )


def _page(items: List[TravelRequest], total: int, filters: TravelRequestFilters):
    return TravelRequestListResponse(
        total=total,
        page=filters.page,
        page_size=filters.page_size,
        items=[_serialize(item) for item in items],
    )


router = APIRouter(prefix="/api/v1")


@router.post("/auth/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.auth_rate_limit)
def register(
    request: Request, payload: UserCreate, auth: AuthWorkflow = Depends(get_auth_workflow)
):
    user = auth.register(payload.name, payload.email, payload.password, payload.role)
    return UserResponse.model_validate(user)


@router.post("/auth/login", response_model=TokenResponse)
@limiter.limit(settings.auth_rate_limit)
def login(request: Request, payload: UserLogin, auth: AuthWorkflow = Depends(get_auth_workflow)):
    return TokenResponse(access_token=auth.authenticate(payload.email, payload.password))


@router.get("/auth/me", response_model=UserResponse)
def me(
    user_id: uuid.UUID = Depends(get_current_user_id),
    auth: AuthWorkflow = Depends(get_auth_workflow),
):
    """Return the profile of the authenticated user."""
    return UserResponse.model_validate(auth.get_profile(user_id))


@router.post(
    "/travels", response_model=TravelRequestResponse, status_code=status.HTTP_201_CREATED
)
def create_travel(
    payload: TravelRequestCreate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    workflow: TravelWorkflow = Depends(get_travel_workflow),
):
    """Submit a travel request owned by the caller."""
    return _serialize(
        workflow.create_travel_request(
            user_id,
            payload.traveler_name,
            payload.destination_name,
            payload.departure_date,
            payload.return_date,
        )
    )


@router.get("/travels", response_model=TravelRequestListResponse)
def list_travels(
    status_filter: Optional[str] = Query(None, alias="status"),
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    destination: Optional[str] = None,
    page: int = 1,
    page_size: int = 10,
    user_id: uuid.UUID = Depends(get_current_user_id),
    workflow: TravelWorkflow = Depends(get_travel_workflow),
):
    """Return the caller's travel requests with optional filters."""
    filters = _filters(status_filter, start, end, destination, page, page_size)
    items, total = workflow.list_travel_requests(user_id, filters)
    return _page(items, total, filters)


@router.get("/travels/{travel_id}", response_model=TravelRequestResponse)
def get_travel(
    travel_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    workflow: TravelWorkflow = Depends(get_travel_workflow),
):
    """Return a travel request owned by the caller; foreign requests read as missing."""
    try:
        request = workflow.get_by_id(travel_id, user_id)
    except Unauthorized as exc:
        raise NotFound("travel request not found") from exc
    return _serialize(request)


@router.put("/travels/{travel_id}", response_model=TravelRequestResponse)
def update_travel(
    travel_id: uuid.UUID,
    payload: TravelRequestUpdate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    workflow: TravelWorkflow = Depends(get_travel_workflow),
):
    """Edit the content of a pending travel request owned by the caller."""
    changes = TravelRequestChanges(
        traveler_name=payload.traveler_name,
        destination_name=payload.destination_name,
        departure_date=payload.departure_date,
        return_date=payload.return_date,
    )
    return _serialize(workflow.update_travel_request(travel_id, user_id, changes))


@router.patch("/travels/{travel_id}/status", status_code=status.HTTP_204_NO_CONTENT)
def update_travel_status(
    travel_id: str,
    payload: StatusUpdate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    workflow: TravelWorkflow = Depends(get_travel_workflow),
):
    """Approve or cancel a travel request. Administrators only."""
    workflow.update_status_travel_request(user_id, travel_id, payload.status)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/admin/travels", response_model=TravelRequestListResponse)
def list_all_travels(
    status_filter: Optional[str] = Query(None, alias="status"),
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    destination: Optional[str] = None,
    owner_id: Optional[uuid.UUID] = None,
    page: int = 1,
    page_size: int = 10,
    user_id: uuid.UUID = Depends(get_current_user_id),
    workflow: TravelWorkflow = Depends(get_travel_workflow),
):
    """Return travel requests of every user for administrators to review."""
    filters = _filters(status_filter, start, end, destination, page, page_size, owner_id)
    items, total = workflow.list_all_travel_requests(user_id, filters)
    return _page(items, total, filters)


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(router)
