"""Shared pytest fixtures for the ruletrace test suite.

Project fixtures build a small tree under ``tmp_path``: one spec with three
rules under ``docs/`` and a Rust implementation under ``src/`` that
references one of them from line 10.
"""

from pathlib import Path

import pytest

from ruletrace.engine.controller import UpdateController

CONFIG_PATH = ".config/ruletrace/config.toml"

CONFIG_TOML = """\
[[specs]]
name = "app"
rules_glob = "docs/**/*.md"

[[specs.impls]]
lang = "rust"
include = ["src/**/*.rs"]
"""

SPEC_MD = """\
# Auth {#auth}

## Tokens

r[auth.token.validation]
Tokens MUST be validated before use.

r[auth.token.expiry]
Expired tokens MUST be rejected.

## Sessions

r[auth.session.create]
A session SHOULD be created on login.
"""

LIB_RS = """\
use std::time::Duration;

pub struct Token {
    value: String,
}

impl Token {
    pub fn new(v: &str) -> Self { Self { value: v.into() } }

    // [impl auth.token.validation]
    pub fn validate(&self) -> bool {
        !self.value.is_empty()
    }
}

pub fn unused() {}
"""

TESTS_RS = """\
// [verify auth.token.validation]
fn token_is_validated() {}
"""


def write_files(root: Path, files: dict[str, str]) -> None:
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")


@pytest.fixture
def project(tmp_path):
    """Project root with config, one spec document and one source file."""
    write_files(
        tmp_path,
        {CONFIG_PATH: CONFIG_TOML, "docs/auth.md": SPEC_MD, "src/lib.rs": LIB_RS},
    )
    return tmp_path


@pytest.fixture
def make_controller():
    """Factory for controllers, unwatched unless ``watch=True``; stopped at teardown."""
    created = []

    def factory(root: Path, start: bool = True, **kwargs) -> UpdateController:
        kwargs.setdefault("debounce_ms", 20)
        kwargs.setdefault("scan_workers", 2)
        kwargs.setdefault("watch", False)
        ctl = UpdateController(root, **kwargs)
        if start:
            ctl.start()
            created.append(ctl)
        return ctl

    yield factory
    for ctl in created:
        ctl.stop()


@pytest.fixture
def controller(project, make_controller):
    """Started controller serving the ``project`` fixture."""
    return make_controller(project)
