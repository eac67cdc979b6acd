"""Host-side implementation of the bridge commands.

``save_uploaded_image`` stores the uploaded bytes under ``<app_dir>/uploads``.
``process_image`` runs ``<app_dir>/python/inference.py`` with the configured
interpreter and model file, and returns its JSON output. The classifier
script is opaque: it must print either a classification result or
``{"error": ...}`` on stdout.
"""

from __future__ import annotations

import json
import logging
import subprocess
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from visionbridge.client.bridge import BridgeError, Command, UnknownCommandError
from visionbridge.client.result import parse_classify_response

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping

    from visionbridge.config import Settings
    from visionbridge.host.pool import CommandPool

logger = logging.getLogger(__name__)

_VERSION_CHECK_TIMEOUT_SECONDS: float = 10.0


class PayloadTooLargeError(BridgeError):
    """The uploaded image exceeds the configured size limit."""


class SaveUploadedImageArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_data: list[Annotated[int, Field(ge=0, le=255)]] = Field(alias="fileData")
    file_name: str = Field(alias="fileName", min_length=1)


class ProcessImageArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image_path: str = Field(alias="imagePath", min_length=1)


def resolve_python_executable(settings: Settings) -> str:
    """Pick the classifier interpreter: explicit path, then venv, then PATH."""
    if settings.python_executable:
        return settings.python_executable
    if settings.python_venv_path is not None:
        if sys.platform == "win32":
            return str(settings.python_venv_path / "python.exe")
        return str(settings.python_venv_path / "bin" / "python")
    return "python"


class HostCommands:
    """In-process ``Invoker`` for the host commands."""

    def __init__(self, settings: Settings, pool: CommandPool) -> None:
        self._settings = settings
        self._pool = pool
        self._handlers: dict[str, Callable[[Mapping[str, Any]], Awaitable[Any]]] = {
            Command.SAVE_UPLOADED_IMAGE: self.save_uploaded_image,
            Command.PROCESS_IMAGE: self.process_image,
        }

    @property
    def commands(self) -> list[str]:
        return list(self._handlers)

    @property
    def upload_dir(self) -> Path:
        return self._settings.app_dir / "uploads"

    @property
    def script_path(self) -> Path:
        return self._settings.app_dir / "python" / "inference.py"

    @property
    def model_path(self) -> Path:
        return self._settings.app_dir / "resources" / "model" / self._settings.model_file

    async def invoke(self, command: str, args: Mapping[str, Any]) -> Any:
        """Dispatch a command by name.

        Raises:
            UnknownCommandError: If no such command exists.
            pydantic.ValidationError: If the arguments are malformed.
            BridgeError: If the command fails.
            TimeoutError: If no command slot frees up in time.
        """
        handler = self._handlers.get(command)
        if handler is None:
            raise UnknownCommandError(f"Unknown command: {command}")
        return await handler(args)

    async def save_uploaded_image(self, args: Mapping[str, Any]) -> str:
        parsed = SaveUploadedImageArgs.model_validate(args)
        limit = self._settings.max_file_size
        if limit is not None and len(parsed.file_data) > limit:
            raise PayloadTooLargeError(f"Image exceeds {limit} bytes")
        return await self._pool.run(
            Command.SAVE_UPLOADED_IMAGE, self._write_upload, bytes(parsed.file_data), parsed.file_name
        )

    async def process_image(self, args: Mapping[str, Any]) -> dict[str, Any]:
        parsed = ProcessImageArgs.model_validate(args)
        return await self._pool.run(Command.PROCESS_IMAGE, self._run_classifier, parsed.image_path)

    # -- Blocking work (runs in the command pool) ----------------------------

    def _write_upload(self, data: bytes, file_name: str) -> str:
        name = Path(file_name).name
        if name in ("", ".", ".."):
            raise BridgeError(f"Invalid file name: {file_name!r}")
        try:
            self.upload_dir.mkdir(parents=True, exist_ok=True)
            path = self.upload_dir / name
            path.write_bytes(data)
        except OSError as exc:
            raise BridgeError(str(exc)) from exc
        logger.info("Saved upload %s (%d bytes)", path, len(data))
        return str(path)

    def _run_classifier(self, image_path: str) -> dict[str, Any]:
        python = resolve_python_executable(self._settings)
        self._check_interpreter(python)
        logger.info("Using Python interpreter %s", python)

        try:
            completed = subprocess.run(  # noqa: S603
                [python, str(self.script_path), image_path, str(self.model_path)],
                capture_output=True,
                text=True,
                timeout=self._settings.classify_timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise BridgeError(f"Classifier timed out after {self._settings.classify_timeout}s") from exc
        except OSError as exc:
            raise BridgeError(f"Failed to run classifier script: {exc}") from exc

        if completed.stderr:
            logger.warning("Classifier stderr: %s", completed.stderr.strip())

        try:
            parsed = parse_classify_response(json.loads(completed.stdout))
        except (ValueError, ValidationError) as exc:
            raise BridgeError(f"Failed to parse classifier output: {exc}") from exc
        return parsed.model_dump()

    @staticmethod
    def _check_interpreter(python: str) -> None:
        try:
            completed = subprocess.run(  # noqa: S603
                [python, "--version"],
                capture_output=True,
                text=True,
                timeout=_VERSION_CHECK_TIMEOUT_SECONDS,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise BridgeError(f"Python environment check failed: {exc}") from exc
        if completed.returncode != 0:
            raise BridgeError(f"Python environment unavailable: {completed.stderr.strip()}")
