import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Annotated, Optional

from fastapi import Depends, FastAPI, File, Query, Request, Response, UploadFile, status
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from blueme import contacts as contact_directory
from blueme import messages as conversation_log
from blueme import presence
from blueme.auth import Identity, authenticate, get_current_identity, get_current_user_id, issue_token, register
from blueme.config import settings
from blueme.errors import BlueMeError, ValidationError
from blueme.logging_utils import RequestLoggingMiddleware, log_request_data, setup_logging
from blueme.metrics import (
    get_metrics,
    get_metrics_content_type,
    record_auth_attempt,
    record_contact_added,
    record_message_sent,
)
from blueme.schemas import (
    AddContactRequest,
    AddContactResponse,
    ContactResponse,
    ErrorResponse,
    HealthResponse,
    IdentityResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    PresenceResponse,
    ProfileUpdateRequest,
    RegisterRequest,
    SendMessageRequest,
    SuccessResponse,
    UploadResponse,
    UserResponse,
    UserSearchResult,
)
from blueme.storage import RecordStore, get_store
from blueme.uploads import save_profile_picture
from blueme.users import public_user, require_user, update_profile


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

Store = Annotated[RecordStore, Depends(get_store)]
CurrentUserId = Annotated[str, Depends(get_current_user_id)]

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Validation error"},
    401: {"model": ErrorResponse, "description": "Missing or invalid session"},
    404: {"model": ErrorResponse, "description": "Unknown user"},
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: make sure the upload directory exists for static serving
    """
    Path(settings.UPLOAD_DIR).mkdir(parents=True, exist_ok=True)
    logger.info(f"Starting Blue+Me API with {settings.STORAGE_BACKEND} storage")
    yield


app = FastAPI(
    title="Blue+Me API",
    description="Private messaging: contacts, direct messages, presence and profiles",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)

app.mount(
    settings.UPLOAD_URL_PREFIX,
    StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False),
    name="uploads",
)


@app.exception_handler(BlueMeError)
async def blueme_error_handler(request: Request, exc: BlueMeError) -> JSONResponse:
    """Render domain errors as {"detail": message} with their status code."""
    log_request_data(request, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """Liveness probe - always returns 200 once the app is running."""
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
def health_ready(response: Response, store: Store) -> HealthResponse:
    """
    Readiness probe - returns 200 only if:
    1. SESSION_SECRET is set (non-empty)
    2. The record store is reachable and writable

    Otherwise returns 503 (Service Unavailable).
    """
    if not settings.SESSION_SECRET:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not_ready", reason="SESSION_SECRET not configured")

    if not store.check_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not_ready", reason="Storage not reachable or not writable")

    return HealthResponse(status="ready")


# =============================================================================
# Auth Routes
# =============================================================================

@app.post("/auth/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED,
          responses={400: ERROR_RESPONSES[400]})
def register_user(body: RegisterRequest, request: Request, store: Store) -> dict:
    """
    Create an account for a phone number (10-15 digits, spaces ignored).
    Fails with 400 if the phone already belongs to a registered account.
    """
    try:
        user = register(store, body.phone, body.password, body.name)
    except ValidationError:
        record_auth_attempt("register", "failure")
        raise

    record_auth_attempt("register", "success")
    log_request_data(request, user_id=user["id"], result="registered")
    return public_user(user)


@app.post("/auth/login", response_model=LoginResponse, responses={401: ERROR_RESPONSES[401]})
def login(body: LoginRequest, request: Request, response: Response, store: Store) -> LoginResponse:
    """
    Check phone + password and set the session cookie.
    Every failure returns the same 401 message.
    """
    try:
        identity = authenticate(store, body.phone, body.password)
    except BlueMeError:
        record_auth_attempt("login", "failure")
        log_request_data(request, result="login_failed")
        raise

    presence.heartbeat(store, identity.id)
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=issue_token(identity),
        max_age=settings.SESSION_MAX_AGE,
        httponly=True,
        samesite="lax",
    )
    record_auth_attempt("login", "success")
    log_request_data(request, user_id=identity.id, result="logged_in")
    return LoginResponse(user=IdentityResponse(id=identity.id, phone=identity.phone, name=identity.name))


@app.post("/auth/logout", response_model=SuccessResponse)
def logout(response: Response) -> SuccessResponse:
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return SuccessResponse()


@app.get("/auth/session", response_model=IdentityResponse, responses={401: ERROR_RESPONSES[401]})
def current_session(identity: Annotated[Identity, Depends(get_current_identity)]) -> IdentityResponse:
    return IdentityResponse(id=identity.id, phone=identity.phone, name=identity.name)


# =============================================================================
# Contacts Routes
# =============================================================================

@app.get("/contacts", response_model=list[ContactResponse], responses={401: ERROR_RESPONSES[401]})
def list_contacts(user_id: CurrentUserId, store: Store) -> list:
    """Caller's contacts with profile fields, presence and unread counts."""
    return contact_directory.list_contacts(store, user_id)


@app.post("/contacts", response_model=AddContactResponse, status_code=status.HTTP_201_CREATED,
          responses=ERROR_RESPONSES)
def add_contact(body: AddContactRequest, request: Request, user_id: CurrentUserId, store: Store) -> AddContactResponse:
    """
    Add a contact by {contactId}, or by {phone, name}. Adding an unknown
    phone creates a placeholder account for it (created=true).
    """
    if body.contact_id:
        contact = contact_directory.add_contact_by_id(store, user_id, body.contact_id)
        created = False
        record_contact_added("id")
    elif body.phone and body.name:
        result = contact_directory.add_contact_by_phone(store, user_id, body.phone, body.name)
        contact, created = result.user, result.created
        record_contact_added("phone", created)
    else:
        raise ValidationError("Either contactId or phone and name are required")

    log_request_data(request, user_id=user_id, contact_id=contact["id"], placeholder_created=created)
    return AddContactResponse(created=created, contact=UserResponse.model_validate(public_user(contact)))


# =============================================================================
# Messages Routes
# =============================================================================

@app.get("/messages", response_model=list[MessageResponse], responses=ERROR_RESPONSES)
def get_messages(
    request: Request,
    user_id: CurrentUserId,
    store: Store,
    other_user_id: Annotated[Optional[str], Query(alias="userId", description="The other participant")] = None,
) -> list:
    """
    Conversation between the caller and userId, oldest first.
    Side effect: messages the caller received in it are marked read.
    """
    if not other_user_id:
        raise ValidationError("User ID is required")

    conversation = conversation_log.fetch_conversation(store, user_id, other_user_id)
    log_request_data(request, user_id=user_id, count=len(conversation))
    return conversation


@app.post("/messages", response_model=MessageResponse, status_code=status.HTTP_201_CREATED,
          responses=ERROR_RESPONSES)
def send_message(body: SendMessageRequest, request: Request, user_id: CurrentUserId, store: Store) -> dict:
    message = conversation_log.send(store, user_id, body.receiver_id, body.content)
    presence.heartbeat(store, user_id)
    record_message_sent()
    log_request_data(request, user_id=user_id, message_id=message["id"])
    return message


# =============================================================================
# Users Routes
# =============================================================================

@app.get("/users/search", response_model=list[UserSearchResult], responses={401: ERROR_RESPONSES[401]})
def search_users(user_id: CurrentUserId, store: Store, q: Annotated[str, Query()] = "") -> list:
    """Users matching q by name or phone, excluding the caller and existing contacts."""
    return contact_directory.search_users(store, q, user_id)


@app.get("/users/status", response_model=dict[str, PresenceResponse], responses={401: ERROR_RESPONSES[401]})
def get_statuses(
    user_id: CurrentUserId,
    store: Store,
    user_ids: Annotated[str, Query(alias="userIds", description="Comma separated user ids")] = "",
) -> dict:
    ids = [value.strip() for value in user_ids.split(",") if value.strip()]
    return presence.status_of(store, ids)


@app.post("/users/status", response_model=SuccessResponse, responses={401: ERROR_RESPONSES[401]})
def post_heartbeat(user_id: CurrentUserId, store: Store) -> SuccessResponse:
    """Heartbeat: mark the caller as active now."""
    presence.heartbeat(store, user_id)
    return SuccessResponse()


@app.get("/users/{target_id}", response_model=UserResponse, responses=ERROR_RESPONSES)
def get_user(target_id: str, user_id: CurrentUserId, store: Store) -> dict:
    return public_user(require_user(store, target_id))


# =============================================================================
# Profile Routes
# =============================================================================

@app.get("/profile", response_model=UserResponse, responses=ERROR_RESPONSES)
def get_profile(user_id: CurrentUserId, store: Store) -> dict:
    return public_user(require_user(store, user_id))


@app.put("/profile", response_model=UserResponse, responses=ERROR_RESPONSES)
def put_profile(body: ProfileUpdateRequest, request: Request, user_id: CurrentUserId, store: Store) -> dict:
    user = update_profile(
        store,
        user_id,
        name=body.name,
        status=body.status,
        profile_picture=body.profile_picture,
    )
    log_request_data(request, user_id=user_id, result="profile_updated")
    return public_user(user)


@app.post("/upload/profile-picture", response_model=UploadResponse, responses=ERROR_RESPONSES)
def upload_profile_picture(
    request: Request,
    user_id: CurrentUserId,
    store: Store,
    file: Annotated[Optional[UploadFile], File()] = None,
) -> UploadResponse:
    """
    Store an image (5MB max) and return its URL. The previous uploaded
    picture file is deleted; inline data: pictures are left alone.
    """
    if file is None:
        raise ValidationError("No file provided")

    # Read one byte past the limit so oversized files are detected without reading them whole
    data = file.file.read(settings.MAX_UPLOAD_BYTES + 1)
    url = save_profile_picture(store, user_id, file.filename, file.content_type, data)
    log_request_data(request, user_id=user_id, result="picture_uploaded")
    return UploadResponse(url=url)


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus-style metrics."""
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )
