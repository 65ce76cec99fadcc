"""FastAPI application that exposes account store operations over HTTP."""
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from .config import StoreConfig, load_config, resolve_config_path
from .errors import AlreadyExistsError, DecodeError, NotFoundError, PasswordMismatchError
from .models import User
from .store import AccountStore

logger = logging.getLogger("userdb.api")

_MAX_EMAIL_LENGTH = 320


def _normalise_email(value: str) -> str:
    stripped = value.strip()
    if not stripped:
        raise ValueError("email must not be empty")
    return stripped


class CreateUserRequest(BaseModel):
    email: str = Field(..., min_length=1, max_length=_MAX_EMAIL_LENGTH)
    password: str
    data: Any = None

    @field_validator("email")
    @classmethod
    def _validate_email(cls, value: str) -> str:
        return _normalise_email(value)


class PasswordRequest(BaseModel):
    password: str


class ChangeEmailRequest(BaseModel):
    email: str = Field(..., min_length=1, max_length=_MAX_EMAIL_LENGTH)

    @field_validator("email")
    @classmethod
    def _validate_email(cls, value: str) -> str:
        return _normalise_email(value)


class ModifyUserRequest(BaseModel):
    data: Any = None


class UserResponse(BaseModel):
    email: str
    data: Any = None
    created_date: datetime
    modified_date: datetime


class UserListResponse(BaseModel):
    users: List[UserResponse]


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        email=user.email,
        data=user.data,
        created_date=user.created_date,
        modified_date=user.modified_date,
    )


def _default_config() -> StoreConfig:
    return load_config(
        resolve_config_path(os.getenv("USERDB_CONFIG")),
        database_path=os.getenv("USERDB_PATH"),
    )


def create_app(
    *,
    store: AccountStore | None = None,
    config: StoreConfig | None = None,
) -> FastAPI:
    """Build the HTTP application.

    An injected ``store`` is left open at shutdown; otherwise one is opened
    from ``config`` (or the environment) for the lifetime of the app.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned: Optional[AccountStore] = None
        if app.state.store is None:
            owned = AccountStore.open(config or _default_config())
            app.state.store = owned
        try:
            yield
        finally:
            if owned is not None:
                app.state.store = None
                await owned.close()

    app = FastAPI(
        title="userdb",
        description="Embedded user-account store",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.store = store

    def get_store(request: Request) -> AccountStore:
        current = request.app.state.store
        if current is None:  # pragma: no cover - lifespan always sets it
            raise RuntimeError("Account store is not available")
        return current

    @app.get("/health")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/v1/users", response_model=UserListResponse)
    async def list_users(accounts: AccountStore = Depends(get_store)) -> UserListResponse:
        users = [user_to_response(user) async for user in accounts.create_user_stream()]
        return UserListResponse(users=users)

    @app.post("/v1/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
    async def create_user(
        payload: CreateUserRequest,
        accounts: AccountStore = Depends(get_store),
    ) -> UserResponse:
        user = await accounts.add_user(payload.email, payload.password, payload.data)
        return user_to_response(user)

    @app.get("/v1/users/{email}", response_model=UserResponse)
    async def read_user(email: str, accounts: AccountStore = Depends(get_store)) -> UserResponse:
        return user_to_response(await accounts.find_user(email))

    @app.post("/v1/users/{email}/verify", response_model=UserResponse)
    async def verify_password(
        email: str,
        payload: PasswordRequest,
        accounts: AccountStore = Depends(get_store),
    ) -> UserResponse:
        return user_to_response(await accounts.check_password(email, payload.password))

    @app.put("/v1/users/{email}/email", status_code=status.HTTP_204_NO_CONTENT)
    async def change_email(
        email: str,
        payload: ChangeEmailRequest,
        accounts: AccountStore = Depends(get_store),
    ) -> Response:
        await accounts.change_email(email, payload.email)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.put("/v1/users/{email}/password", status_code=status.HTTP_204_NO_CONTENT)
    async def change_password(
        email: str,
        payload: PasswordRequest,
        accounts: AccountStore = Depends(get_store),
    ) -> Response:
        await accounts.change_password(email, payload.password)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.put("/v1/users/{email}/data", status_code=status.HTTP_204_NO_CONTENT)
    async def modify_user(
        email: str,
        payload: ModifyUserRequest,
        accounts: AccountStore = Depends(get_store),
    ) -> Response:
        await accounts.modify_user(email, payload.data)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.delete("/v1/users/{email}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_user(email: str, accounts: AccountStore = Depends(get_store)) -> Response:
        await accounts.delete_user(email)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(_: object, exc: NotFoundError):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})

    @app.exception_handler(AlreadyExistsError)
    async def handle_already_exists(_: object, exc: AlreadyExistsError):
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})

    @app.exception_handler(PasswordMismatchError)
    async def handle_password_mismatch(_: object, exc: PasswordMismatchError):
        return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"detail": str(exc)})

    @app.exception_handler(DecodeError)
    async def handle_decode_error(_: object, exc: DecodeError):
        logger.error("Corrupt record served for %s: %s", exc.email, exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Stored user record is corrupt"},
        )

    return app


app = create_app()


__all__ = ["app", "create_app", "user_to_response"]
