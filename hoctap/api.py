"""JSON endpoints exposing the user repository over HTTP."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict

import anyio
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError, field_validator

from .database import Database, DatabaseConnectionError
from .models import User
from .repository import ConflictError, NotFoundError, QueryError, UserRepository

API_VERSION = "1.0.0"

# Ids are stored as signed 64-bit integers at most.
MAX_USER_ID = 2**63 - 1

logger = logging.getLogger("hoctap.api")


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    created_at: datetime
    updated_at: datetime


class UserPayload(BaseModel):
    name: str = ""
    email: str = ""

    @field_validator("name", "email")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()


class BadRequestError(Exception):
    """Raised for request bodies or path parameters that cannot be used."""


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def current_timestamp() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def json_response(status_code: int, message: str, data: Any = None) -> JSONResponse:
    """Wrap ``data`` in the ``message``/``data``/``timestamp`` envelope."""

    content: Dict[str, Any] = {"message": message}
    if data is not None:
        content["data"] = jsonable_encoder(data)
    content["timestamp"] = current_timestamp()
    return JSONResponse(status_code=status_code, content=content)


def parse_user_id(raw: str) -> int:
    if not raw.isascii() or not raw.isdigit():
        raise BadRequestError("Invalid user ID")
    value = int(raw)
    if value > MAX_USER_ID:
        raise BadRequestError("Invalid user ID")
    return value


async def read_user_payload(request: Request) -> UserPayload:
    try:
        body = await request.json()
    except ValueError as exc:
        raise BadRequestError("Invalid JSON format") from exc

    if not isinstance(body, dict):
        raise BadRequestError("Invalid JSON format")

    try:
        payload = UserPayload.model_validate(body)
    except ValidationError as exc:
        raise BadRequestError("Invalid JSON format") from exc

    if not payload.name or not payload.email:
        raise BadRequestError("Name and email are required")
    return payload


def register_api_routes(app: FastAPI, repository: UserRepository, database: Database) -> None:
    """Attach the health, welcome and ``/api/users`` endpoints to ``app``."""

    @app.exception_handler(BadRequestError)
    async def handle_bad_request(_: Request, exc: BadRequestError) -> JSONResponse:
        return json_response(status.HTTP_400_BAD_REQUEST, str(exc))

    @app.exception_handler(NotFoundError)
    async def handle_not_found(_: Request, exc: NotFoundError) -> JSONResponse:
        logger.info("%s", exc)
        return json_response(status.HTTP_404_NOT_FOUND, str(exc))

    @app.exception_handler(ConflictError)
    async def handle_conflict(_: Request, exc: ConflictError) -> JSONResponse:
        logger.info("%s", exc)
        return json_response(status.HTTP_409_CONFLICT, str(exc))

    @app.get("/health")
    async def healthcheck() -> JSONResponse:
        database_status = "healthy"
        if not database.is_initialized:
            database_status = "disconnected"
        else:
            try:
                await anyio.to_thread.run_sync(database.ping)
            except DatabaseConnectionError as exc:
                database_status = f"error: {exc}"

        return json_response(
            status.HTTP_200_OK,
            "API is running successfully",
            {
                "status": "healthy",
                "version": API_VERSION,
                "database": database_status,
                "timestamp": current_timestamp(),
            },
        )

    @app.get("/welcome")
    async def welcome() -> JSONResponse:
        return json_response(
            status.HTTP_200_OK,
            "Welcome to HocTap API!",
            {
                "endpoints": {
                    "health": "GET /health",
                    "users": "GET /api/users",
                    "user_by_id": "GET /api/users/{id}",
                    "create_user": "POST /api/users",
                    "update_user": "PUT /api/users/{id}",
                    "delete_user": "DELETE /api/users/{id}",
                    "users_stats": "GET /api/users/stats",
                    "dashboard": "GET / (HTML Dashboard)",
                },
                "database": database.url.get_backend_name(),
                "documentation": "Use the endpoints above to interact with the API, or visit / for the web dashboard",
            },
        )

    @app.get("/api/users")
    async def list_users() -> JSONResponse:
        try:
            users = await anyio.to_thread.run_sync(repository.list_users)
        except QueryError as exc:
            logger.error("Error getting users: %s", exc)
            return json_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to retrieve users")
        return json_response(
            status.HTTP_200_OK,
            "Users retrieved successfully",
            [user_to_response(user) for user in users],
        )

    @app.get("/api/users/stats")
    async def users_stats() -> JSONResponse:
        try:
            count = await anyio.to_thread.run_sync(repository.count_users)
        except QueryError as exc:
            logger.error("Error getting users count: %s", exc)
            return json_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to get users statistics")
        return json_response(
            status.HTTP_200_OK,
            "Users statistics retrieved successfully",
            {"total_users": count, "timestamp": current_timestamp()},
        )

    @app.get("/api/users/{user_id}")
    async def read_user(user_id: str) -> JSONResponse:
        identifier = parse_user_id(user_id)
        try:
            user = await anyio.to_thread.run_sync(repository.get_user, identifier)
        except QueryError as exc:
            logger.error("Error getting user by ID %s: %s", identifier, exc)
            return json_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to retrieve user")
        return json_response(status.HTTP_200_OK, "User found", user_to_response(user))

    @app.post("/api/users")
    async def create_user(request: Request) -> JSONResponse:
        payload = await read_user_payload(request)
        try:
            user = await anyio.to_thread.run_sync(repository.create_user, payload.name, payload.email)
        except QueryError as exc:
            logger.error("Error creating user: %s", exc)
            return json_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to create user")
        logger.info("Created user %s <%s>", user.id, user.email)
        return json_response(status.HTTP_201_CREATED, "User created successfully", user_to_response(user))

    @app.put("/api/users/{user_id}")
    async def update_user(user_id: str, request: Request) -> JSONResponse:
        identifier = parse_user_id(user_id)
        payload = await read_user_payload(request)
        try:
            user = await anyio.to_thread.run_sync(
                repository.update_user, identifier, payload.name, payload.email
            )
        except QueryError as exc:
            logger.error("Error updating user %s: %s", identifier, exc)
            return json_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to update user")
        return json_response(status.HTTP_200_OK, "User updated successfully", user_to_response(user))

    @app.delete("/api/users/{user_id}")
    async def delete_user(user_id: str) -> JSONResponse:
        identifier = parse_user_id(user_id)
        try:
            await anyio.to_thread.run_sync(repository.delete_user, identifier)
        except QueryError as exc:
            logger.error("Error deleting user %s: %s", identifier, exc)
            return json_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to delete user")
        logger.info("Deleted user %s", identifier)
        return json_response(status.HTTP_200_OK, "User deleted successfully")


__all__ = [
    "API_VERSION",
    "BadRequestError",
    "UserPayload",
    "UserResponse",
    "json_response",
    "parse_user_id",
    "register_api_routes",
    "user_to_response",
]
