"""Shared fixtures: a host directory with a scripted classifier."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

import pytest

from visionbridge.config import Settings

if TYPE_CHECKING:
    from pathlib import Path

# Behaviour is keyed on the image file name so tests can pick a branch.
FAKE_CLASSIFIER = """\
import json
import sys
import time
from pathlib import Path

image, model = Path(sys.argv[1]), sys.argv[2]
if "garbage" in image.name:
    print("not json")
elif "slow" in image.name:
    time.sleep(5)
elif "echo" in image.name:
    print(json.dumps({"error": model}))
elif image.suffix == ".gif":
    print(json.dumps({"error": "unsupported format"}))
else:
    if "noisy" in image.name:
        print("deprecated weights format", file=sys.stderr)
    print(json.dumps({
        "prediction": "cat",
        "confidence": 0.92,
        "class_probabilities": {"cat": 0.92, "dog": 0.05, "bird": 0.03},
    }))
"""


@pytest.fixture()
def app_dir(tmp_path: Path) -> Path:
    """Host directory containing python/inference.py."""
    script = tmp_path / "python" / "inference.py"
    script.parent.mkdir(parents=True)
    script.write_text(FAKE_CLASSIFIER)
    return tmp_path


def make_settings(app_dir: Path, **overrides: object) -> Settings:
    defaults: dict[str, object] = {
        "app_dir": app_dir,
        "python_executable": sys.executable,
        "max_concurrent": 2,
        "classify_timeout": 30.0,
        "api_key": None,
    }
    defaults.update(overrides)
    return Settings(**defaults)  # type: ignore[arg-type]


@pytest.fixture()
def settings(app_dir: Path) -> Settings:
    return make_settings(app_dir)
