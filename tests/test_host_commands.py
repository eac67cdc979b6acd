"""Tests for the host command implementations."""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest
from pydantic import ValidationError

from conftest import make_settings
from visionbridge.client.bridge import BridgeError, UnknownCommandError
from visionbridge.config import Settings
from visionbridge.host.commands import HostCommands, PayloadTooLargeError, resolve_python_executable
from visionbridge.host.pool import CommandPool


@pytest.fixture()
def host(settings: Settings) -> Iterator[HostCommands]:
    pool = CommandPool(settings)
    yield HostCommands(settings, pool)
    pool.shutdown()


def _host(settings: Settings) -> tuple[HostCommands, CommandPool]:
    pool = CommandPool(settings)
    return HostCommands(settings, pool), pool


class TestResolvePythonExecutable:
    def test_explicit_executable_wins(self, app_dir: Path) -> None:
        settings = make_settings(app_dir, python_executable="/opt/py/bin/python3", python_venv_path=Path("/venv"))
        assert resolve_python_executable(settings) == "/opt/py/bin/python3"

    def test_venv_on_posix(self, app_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(sys, "platform", "linux")
        settings = make_settings(app_dir, python_executable=None, python_venv_path=Path("/venv"))
        assert resolve_python_executable(settings) == str(Path("/venv") / "bin" / "python")

    def test_venv_on_windows(self, app_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(sys, "platform", "win32")
        settings = make_settings(app_dir, python_executable=None, python_venv_path=Path("/venv"))
        assert resolve_python_executable(settings) == str(Path("/venv") / "python.exe")

    def test_falls_back_to_path_python(self, app_dir: Path) -> None:
        settings = make_settings(app_dir, python_executable=None, python_venv_path=None)
        assert resolve_python_executable(settings) == "python"


class TestLayout:
    def test_paths_derive_from_app_dir(self, host: HostCommands, app_dir: Path) -> None:
        assert host.upload_dir == app_dir / "uploads"
        assert host.script_path == app_dir / "python" / "inference.py"
        assert host.model_path == app_dir / "resources" / "model" / "result_improved.pth"

    def test_commands(self, host: HostCommands) -> None:
        assert host.commands == ["save_uploaded_image", "process_image"]


class TestInvoke:
    async def test_unknown_command(self, host: HostCommands) -> None:
        with pytest.raises(UnknownCommandError, match="Unknown command: greet"):
            await host.invoke("greet", {})

    async def test_invalid_args(self, host: HostCommands) -> None:
        with pytest.raises(ValidationError):
            await host.invoke("process_image", {"image_path": 3})

    async def test_args_accept_field_names(self, host: HostCommands, app_dir: Path) -> None:
        path = await host.invoke("save_uploaded_image", {"file_data": [7], "file_name": "a.png"})
        assert Path(path).read_bytes() == b"\x07"


class TestSaveUploadedImage:
    async def test_overwrites_existing_upload(self, host: HostCommands) -> None:
        first = await host.save_uploaded_image({"fileData": [1], "fileName": "cat.png"})
        second = await host.save_uploaded_image({"fileData": [2, 2], "fileName": "cat.png"})
        assert first == second
        assert Path(second).read_bytes() == b"\x02\x02"

    async def test_rejects_oversized_payload(self, app_dir: Path) -> None:
        host, pool = _host(make_settings(app_dir, max_file_size=1))
        try:
            with pytest.raises(PayloadTooLargeError):
                await host.save_uploaded_image({"fileData": [1, 2], "fileName": "cat.png"})
        finally:
            pool.shutdown()

    async def test_rejects_name_without_basename(self, host: HostCommands) -> None:
        with pytest.raises(BridgeError, match="Invalid file name"):
            await host.save_uploaded_image({"fileData": [1], "fileName": ".."})

    async def test_write_failure_becomes_bridge_error(self, app_dir: Path) -> None:
        blocker = app_dir / "blocked"
        blocker.write_text("not a directory")
        host, pool = _host(make_settings(blocker))
        try:
            with pytest.raises(BridgeError):
                await host.save_uploaded_image({"fileData": [1], "fileName": "cat.png"})
        finally:
            pool.shutdown()


class TestProcessImage:
    async def test_passes_image_and_model_paths(self, host: HostCommands) -> None:
        result = await host.process_image({"imagePath": "echo.png"})
        assert result == {"error": str(host.model_path)}

    async def test_result_is_json_ready(self, host: HostCommands) -> None:
        result = await host.process_image({"imagePath": "cat.png"})
        assert result == {
            "prediction": "cat",
            "confidence": 0.92,
            "class_probabilities": {"cat": 0.92, "dog": 0.05, "bird": 0.03},
        }

    async def test_stderr_is_logged(self, host: HostCommands, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="visionbridge.host.commands"):
            await host.process_image({"imagePath": "noisy.png"})
        assert "deprecated weights format" in caplog.text

    async def test_timeout(self, app_dir: Path) -> None:
        host, pool = _host(make_settings(app_dir, classify_timeout=0.5))
        try:
            with pytest.raises(BridgeError, match="timed out"):
                await host.process_image({"imagePath": "slow.png"})
        finally:
            pool.shutdown()

    async def test_failing_interpreter(self, app_dir: Path) -> None:
        broken = app_dir / "broken-python"
        broken.write_text("#!/bin/sh\necho broken >&2\nexit 3\n")
        broken.chmod(0o755)
        host, pool = _host(make_settings(app_dir, python_executable=str(broken)))
        try:
            with pytest.raises(BridgeError, match="Python environment unavailable: broken"):
                await host.process_image({"imagePath": "cat.png"})
        finally:
            pool.shutdown()
