"""Fixtures building a small project tree under ``tmp_path``."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from fsmcp.config import SearchSettings
from fsmcp.handlers._paths import PathResolver

if TYPE_CHECKING:
    from pathlib import Path

_APP_PY = '''\
"""Sample module."""


class Greeter:
    def greet(self, name):
        # TODO: localise
        return f"hello {name}"


def main():
    print(Greeter().greet("world"))
'''


@pytest.fixture
def project(tmp_path: Path) -> Path:
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "app.py").write_text(_APP_PY)
    (tmp_path / "src" / "util.js").write_text(
        "// helper\nfunction add(a, b) {\n  return a + b;\n}\n"
    )
    (tmp_path / "README.md").write_text("# Sample\n")
    (tmp_path / "notes.txt").write_text("plain notes\n")
    (tmp_path / "node_modules").mkdir()
    (tmp_path / "node_modules" / "dep.js").write_text("function hidden() {}\n")
    (tmp_path / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n\x00\x00binary")
    return tmp_path.resolve()


@pytest.fixture
def resolver(project: Path) -> PathResolver:
    return PathResolver(project)


@pytest.fixture
def search() -> SearchSettings:
    return SearchSettings()
