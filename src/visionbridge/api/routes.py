"""API route definitions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Annotated, Any

from fastapi import APIRouter, Body, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from visionbridge.api.middleware import require_bridge_key
from visionbridge.api.schemas import (
    CommandInfo,
    CommandsResponse,
    ErrorResponse,
    HealthResponse,
)
from visionbridge.client.bridge import BridgeError, Command, UnknownCommandError
from visionbridge.host.commands import PayloadTooLargeError, ProcessImageArgs, SaveUploadedImageArgs

if TYPE_CHECKING:
    from pydantic import BaseModel

    from visionbridge.host.commands import HostCommands
    from visionbridge.host.pool import CommandPool

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1")

# Starlette deprecated the named 413/422 constants.
HTTP_CONTENT_TOO_LARGE = 413
HTTP_UNPROCESSABLE_CONTENT = 422

_COMMAND_ARGS: dict[str, type[BaseModel]] = {
    Command.SAVE_UPLOADED_IMAGE: SaveUploadedImageArgs,
    Command.PROCESS_IMAGE: ProcessImageArgs,
}


def _get_host_commands(request: Request) -> HostCommands:
    commands: HostCommands = request.app.state.host_commands
    return commands


def _get_command_pool(request: Request) -> CommandPool:
    pool: CommandPool = request.app.state.command_pool
    return pool


def _error(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail})


@router.post(
    "/invoke/{command}",
    dependencies=[Depends(require_bridge_key)],
    response_model=None,
    responses={
        status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
        HTTP_CONTENT_TOO_LARGE: {"model": ErrorResponse},
        HTTP_UNPROCESSABLE_CONTENT: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Run a host command",
)
async def invoke_command(
    command: str,
    request: Request,
    args: Annotated[dict[str, Any], Body()],
) -> JSONResponse:
    """Run a bridge command with the JSON body as its arguments."""
    host_commands = _get_host_commands(request)
    try:
        result = await host_commands.invoke(command, args)
    except UnknownCommandError as exc:
        return _error(status.HTTP_404_NOT_FOUND, str(exc))
    except ValidationError as exc:
        return _error(HTTP_UNPROCESSABLE_CONTENT, str(exc))
    except PayloadTooLargeError as exc:
        return _error(HTTP_CONTENT_TOO_LARGE, str(exc))
    except BridgeError as exc:
        logger.error("Command %s failed: %s", command, exc)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))
    except TimeoutError:
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "Host is busy, try again later")
    return JSONResponse(content=result)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return host health status."""
    pool = _get_command_pool(request)
    return HealthResponse(
        status="ok",
        active_commands=pool.active_count,
        running=pool.running_by_command,
        queue_depth=pool.queue_depth,
    )


@router.get(
    "/commands",
    dependencies=[Depends(require_bridge_key)],
    response_model=CommandsResponse,
    summary="List available commands",
)
async def list_commands(request: Request) -> CommandsResponse:
    """Return the commands this host implements and their argument names."""
    host_commands = _get_host_commands(request)
    commands: list[CommandInfo] = []
    for name in host_commands.commands:
        schema = _COMMAND_ARGS[name]
        arg_names = [field.alias or field_name for field_name, field in schema.model_fields.items()]
        commands.append(CommandInfo(name=name, args=arg_names))
    return CommandsResponse(commands=commands)
