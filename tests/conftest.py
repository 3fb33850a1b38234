"""
Shared fixtures for cargo-recipe tests.
"""

import os
import textwrap
from pathlib import Path

import pytest

from cargo_recipe.cli_config import reset_config
from cargo_recipe.error_handling import get_error_handler

CRATES_IO = "registry+https://github.com/rust-lang/crates.io-index"

MIT_TEXT = "Permission is hereby granted, free of charge, to any person obtaining a copy\n"
APACHE_TEXT = "Apache License\nVersion 2.0, January 2004\n"


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep config files, env overrides and git discovery out of every test."""
    for key in list(os.environ):
        if key.startswith("CARGO_RECIPE_"):
            monkeypatch.delenv(key, raising=False)
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("CARGO_RECIPE_PROJECT_SOURCE", "false")
    monkeypatch.chdir(tmp_path)
    reset_config()
    get_error_handler().reset_stats()
    yield
    reset_config()


@pytest.fixture
def temp_dir(tmp_path):
    """Working directory for files created by a test."""
    work = tmp_path / "work"
    work.mkdir()
    return work


def lock_package(name, version, source=CRATES_IO, dependencies=()):
    lines = ["[[package]]", f'name = "{name}"', f'version = "{version}"']
    if source:
        lines.append(f'source = "{source}"')
    if dependencies:
        lines.append("dependencies = [")
        lines.extend(f' "{dep}",' for dep in dependencies)
        lines.append("]")
    return "\n".join(lines)


class CrateBuilder:
    """Writes a crate directory with Cargo.toml, Cargo.lock and license files."""

    def __init__(self, root: Path):
        self.root = root

    def manifest(self, name="mycrate", version="0.1.0", extra="", **fields):
        package = {
            "description": "A test crate",
            "homepage": "https://example.com/mycrate",
            "license": "MIT",
        }
        package.update(fields)
        lines = ["[package]", f'name = "{name}"', f'version = "{version}"']
        for key, value in package.items():
            if value is not None:
                lines.append(f'{key.replace("_", "-")} = "{value}"')
        text = "\n".join(lines) + "\n" + textwrap.dedent(extra)
        (self.root / "Cargo.toml").write_text(text)
        return self.root / "Cargo.toml"

    def lockfile(self, *packages):
        text = "version = 3\n\n" + "\n\n".join(packages) + "\n"
        (self.root / "Cargo.lock").write_text(text)
        return self.root / "Cargo.lock"

    def license(self, name, text=MIT_TEXT):
        path = self.root / name
        path.write_bytes(text.encode("utf-8"))
        return path


@pytest.fixture
def crate(temp_dir):
    """A crate builder rooted in a fresh directory."""
    root = temp_dir / "mycrate"
    root.mkdir()
    return CrateBuilder(root)


@pytest.fixture
def simple_crate(crate):
    """mycrate 0.1.0 depending on foo 1.0.0, MIT licensed with LICENSE-MIT."""
    crate.manifest(extra='\n[dependencies]\nfoo = "1.0"\n')
    crate.lockfile(
        lock_package("foo", "1.0.0"),
        lock_package("mycrate", "0.1.0", source=None, dependencies=["foo"]),
    )
    crate.license("LICENSE-MIT")
    return crate
