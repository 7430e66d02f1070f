"""HTTP API for MyMetas.

FastAPI application exposing account, session, meta and step endpoints.
Every meta and step route is scoped to the bearer token's user: rows owned by
someone else are reported exactly like rows that do not exist (404).

Request flow:
    1. Middleware assigns a request id, binds it to the log context and
       records Prometheus metrics once the response is produced.
    2. ``current_user`` resolves the bearer token (401 before any handler body).
    3. Meta routes resolve the meta under the ownership rule (404) before the
       body is validated (422).
    4. Application errors are rendered by ``handle_app_error``; SQLAlchemy
       failures and any other unexpected exception become a generic 500.

Example:
    $ uvicorn --factory mymetas.api:create_app
"""

import time
import uuid
from collections.abc import Iterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Annotated, Any, Optional

from fastapi import Body, Depends, FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session
from starlette.concurrency import run_in_threadpool

from mymetas import __version__
from mymetas.auth import (
    create_session_token,
    decode_session_token,
    hash_password,
    verify_password,
)
from mymetas.config import settings
from mymetas.database import DatabaseManager
from mymetas.exceptions import (
    AuthenticationError,
    FieldError,
    MyMetasError,
    NotFoundError,
    StorageError,
    ValidationFailed,
)
from mymetas.lifecycle import enters_completed
from mymetas.logging import clear_request_context, logger, set_request_context
from mymetas.metrics import (
    CONTENT_TYPE_LATEST,
    generate_metrics_output,
    initialize_metrics,
    metas_completed_total,
    metas_created_total,
    record_db_operation,
    record_request,
)
from mymetas.models import (
    MetaDetail,
    MetaRead,
    MetaStatus,
    SessionToken,
    StepRead,
    UserRead,
    UserRow,
)
from mymetas.repository import MetaRepository, StepRepository, UserRepository
from mymetas.storage import AvatarStore
from mymetas.validators import (
    validate_meta_create,
    validate_meta_update,
    validate_session_create,
    validate_step_create,
    validate_step_update,
    validate_user_create,
    validate_user_update,
)

bearer_scheme = HTTPBearer(auto_error=False)

JSONBody = Annotated[Any, Body()]


# =============================================================================
# Dependencies
# =============================================================================


def get_session(request: Request) -> Iterator[Session]:
    """One database session per request, closed with the response."""
    db: DatabaseManager = request.app.state.db
    with db.session_scope() as session:
        yield session


SessionDep = Annotated[Session, Depends(get_session)]


async def current_user(
    session: SessionDep,
    credentials: Annotated[
        Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)
    ] = None,
) -> UserRow:
    """Resolve the bearer token to its account.

    Raises:
        AuthenticationError: Missing or invalid token, or deleted account
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Missing bearer token")
    user_id = decode_session_token(credentials.credentials)
    user = await run_in_threadpool(UserRepository(session).get, user_id)
    if user is None:
        raise AuthenticationError("Invalid token")
    set_request_context(user_id=str(user.id))
    return user


CurrentUser = Annotated[UserRow, Depends(current_user)]


# =============================================================================
# Error Handlers
# =============================================================================


async def handle_app_error(request: Request, exc: MyMetasError) -> JSONResponse:
    headers = None
    if isinstance(exc, AuthenticationError):
        headers = {"WWW-Authenticate": "Bearer"}
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.method} {request.url.path}")
    return JSONResponse(exc.to_dict(), status_code=exc.status_code, headers=headers)


async def handle_request_validation(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = []
    for error in exc.errors():
        loc = [
            str(part)
            for part in error.get("loc", ())
            if part not in ("body", "path", "query")
        ]
        errors.append(
            FieldError(
                field=".".join(loc) or "body",
                message=error.get("msg", "invalid"),
                rule=error.get("type", "invalid"),
            )
        )
    return await handle_app_error(request, ValidationFailed(errors))


async def handle_storage_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.opt(exception=exc).error(f"Database failure on {request.method} {request.url.path}")
    return await handle_app_error(request, StorageError())


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.opt(exception=exc).error(f"Unhandled error on {request.method} {request.url.path}")
    return await handle_app_error(request, StorageError())


# =============================================================================
# Helpers
# =============================================================================


def _meta_or_404(session: Session, user: UserRow, meta_id: int):
    meta = MetaRepository(session).get_owned(user.id, meta_id)
    if meta is None:
        raise NotFoundError("Meta")
    return meta


def _user_changes(session: Session, user: UserRow, body: Any) -> dict[str, Any]:
    payload = validate_user_update(body).unwrap()
    changes = payload.changes()
    if "email" in changes and UserRepository(session).email_taken(changes["email"], user.id):
        raise ValidationFailed([FieldError("email", "is already registered", "unique")])
    if "password" in changes:
        changes["password_hash"] = hash_password(changes.pop("password"))
    return changes


def _store_avatar(
    session: Session, user: UserRow, avatars: AvatarStore, data: bytes
) -> UserRow:
    user.profile_photo_url = avatars.save(user.id, data)
    user.touch()
    return UserRepository(session).save(user)


# =============================================================================
# Application Factory
# =============================================================================


def create_app(
    db: Optional[DatabaseManager] = None,
    avatar_store: Optional[AvatarStore] = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        db: Database manager (defaults to one on settings.database_path)
        avatar_store: Avatar bucket (defaults to settings.avatar_dir)

    Returns:
        Configured FastAPI app with an initialized database
    """
    owns_db = db is None
    db = db or DatabaseManager()
    db.initialize()

    avatar_store = avatar_store or AvatarStore(
        Path(settings.avatar_dir or settings.data_dir / "avatars"),
        settings.avatar_base_url,
    )
    avatar_store.root.mkdir(parents=True, exist_ok=True)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        initialize_metrics()
        logger.info(f"MyMetas API {__version__} ready ({settings.environment})")
        yield
        if owns_db:
            db.close()

    app = FastAPI(
        title="MyMetas",
        description="Goal tracking with ownership-scoped metas and steps",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.db = db
    app.state.avatars = avatar_store

    app.add_exception_handler(MyMetasError, handle_app_error)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, handle_request_validation)  # type: ignore[arg-type]
    app.add_exception_handler(SQLAlchemyError, handle_storage_error)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, handle_unexpected_error)

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
        set_request_context(request_id=request_id, operation=f"{request.method} {request.url.path}")
        start = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            clear_request_context()
        duration = time.perf_counter() - start
        route = request.scope.get("route")
        path = getattr(route, "path", "unmatched")
        record_request(request.method, path, response.status_code, duration)
        logger.debug(f"{request.method} {request.url.path} -> {response.status_code} ({duration * 1000:.1f}ms)")
        response.headers["X-Request-ID"] = request_id
        return response

    app.mount("/avatars", StaticFiles(directory=avatar_store.root, check_dir=False), name="avatars")

    # ----- service -----

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    @app.get("/metrics")
    def metrics() -> Response:
        return Response(generate_metrics_output(), media_type=CONTENT_TYPE_LATEST)

    # ----- accounts -----

    @app.post("/user", status_code=status.HTTP_201_CREATED, response_model=UserRead)
    def register(session: SessionDep, body: JSONBody = None):
        payload = validate_user_create(body).unwrap()
        users = UserRepository(session)
        if users.email_taken(payload.email):
            raise ValidationFailed([FieldError("email", "is already registered", "unique")])
        user = users.save(
            UserRow(
                name=payload.name,
                email=payload.email,
                password_hash=hash_password(payload.password),
                profile_photo_url=payload.profile_photo_url,
            )
        )
        record_db_operation("insert", "users")
        logger.info(f"Registered user {user.id}")
        return UserRead.model_validate(user)

    @app.post("/session", response_model=SessionToken)
    def login(session: SessionDep, body: JSONBody = None):
        result = validate_session_create(body)
        if not result.ok:
            raise AuthenticationError()
        payload = result.unwrap()
        user = UserRepository(session).get_by_email(payload.email)
        if user is None or not verify_password(payload.password, user.password_hash):
            raise AuthenticationError()
        token, expires_at = create_session_token(user.id)
        return SessionToken(token=token, expires_at=expires_at, user=UserRead.model_validate(user))

    @app.get("/user", response_model=UserRead)
    def read_user(user: CurrentUser):
        return UserRead.model_validate(user)

    @app.put("/user", response_model=UserRead)
    def update_user(session: SessionDep, user: CurrentUser, body: JSONBody = None):
        for key, value in _user_changes(session, user, body).items():
            setattr(user, key, value)
        user.touch()
        user = UserRepository(session).save(user)
        record_db_operation("update", "users")
        return UserRead.model_validate(user)

    @app.delete("/user", status_code=status.HTTP_204_NO_CONTENT)
    def delete_user(session: SessionDep, user: CurrentUser) -> Response:
        UserRepository(session).delete_account(user)
        record_db_operation("delete", "users")
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.post("/user/avatar", response_model=UserRead)
    async def upload_avatar(request: Request, session: SessionDep, user: CurrentUser):
        data = await request.body()
        user = await run_in_threadpool(
            _store_avatar, session, user, request.app.state.avatars, data
        )
        record_db_operation("update", "users")
        return UserRead.model_validate(user)

    # ----- metas -----

    @app.get("/metas", response_model=list[MetaRead])
    def list_metas(session: SessionDep, user: CurrentUser, search: Optional[str] = None):
        metas = MetaRepository(session).list_for_owner(user.id, search=search)
        return [MetaRead.model_validate(meta) for meta in metas]

    @app.post("/metas", status_code=status.HTTP_201_CREATED, response_model=MetaRead)
    def create_meta(session: SessionDep, user: CurrentUser, body: JSONBody = None):
        payload = validate_meta_create(body).unwrap()
        meta = MetaRepository(session).create_for_owner(user.id, payload)
        record_db_operation("insert", "metas")
        metas_created_total.inc()
        if meta.status == MetaStatus.COMPLETED:
            metas_completed_total.inc()
        return MetaRead.model_validate(meta)

    @app.get("/metas/{meta_id}", response_model=MetaDetail)
    def read_meta(meta_id: int, session: SessionDep, user: CurrentUser):
        return MetaDetail.model_validate(_meta_or_404(session, user, meta_id))

    @app.put("/metas/{meta_id}", response_model=MetaRead)
    def update_meta(meta_id: int, session: SessionDep, user: CurrentUser, body: JSONBody = None):
        previous = MetaStatus(_meta_or_404(session, user, meta_id).status)
        payload = validate_meta_update(body).unwrap()
        meta = MetaRepository(session).update_owned(user.id, meta_id, payload)
        if meta is None:
            raise NotFoundError("Meta")
        record_db_operation("update", "metas")
        if enters_completed(previous, MetaStatus(meta.status)):
            metas_completed_total.inc()
        return MetaRead.model_validate(meta)

    @app.delete("/metas/{meta_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_meta(meta_id: int, session: SessionDep, user: CurrentUser) -> Response:
        if not MetaRepository(session).delete_owned(user.id, meta_id):
            raise NotFoundError("Meta")
        record_db_operation("delete", "metas")
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.post("/metas/{meta_id}/favorite", response_model=MetaRead)
    def toggle_favorite(meta_id: int, session: SessionDep, user: CurrentUser):
        meta = MetaRepository(session).toggle_favorite(user.id, meta_id)
        if meta is None:
            raise NotFoundError("Meta")
        record_db_operation("update", "metas")
        return MetaRead.model_validate(meta)

    # ----- steps -----

    @app.post(
        "/metas/{meta_id}/steps",
        status_code=status.HTTP_201_CREATED,
        response_model=StepRead,
    )
    def create_step(meta_id: int, session: SessionDep, user: CurrentUser, body: JSONBody = None):
        _meta_or_404(session, user, meta_id)
        payload = validate_step_create(body).unwrap()
        step = StepRepository(session).create_in_meta(user.id, meta_id, payload)
        if step is None:
            raise NotFoundError("Meta")
        record_db_operation("insert", "steps")
        return StepRead.model_validate(step)

    @app.put("/metas/{meta_id}/steps/{step_id}", response_model=StepRead)
    def update_step(
        meta_id: int,
        step_id: int,
        session: SessionDep,
        user: CurrentUser,
        body: JSONBody = None,
    ):
        _meta_or_404(session, user, meta_id)
        steps = StepRepository(session)
        if steps.get_in_meta(user.id, meta_id, step_id) is None:
            raise NotFoundError("Step")
        payload = validate_step_update(body).unwrap()
        step = steps.update_in_meta(user.id, meta_id, step_id, payload)
        if step is None:
            raise NotFoundError("Step")
        record_db_operation("update", "steps")
        return StepRead.model_validate(step)

    @app.delete("/metas/{meta_id}/steps/{step_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_step(meta_id: int, step_id: int, session: SessionDep, user: CurrentUser) -> Response:
        _meta_or_404(session, user, meta_id)
        if not StepRepository(session).delete_in_meta(user.id, meta_id, step_id):
            raise NotFoundError("Step")
        record_db_operation("delete", "steps")
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return app


__all__ = ["create_app", "current_user", "get_session"]
