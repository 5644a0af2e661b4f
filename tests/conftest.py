"""Shared test fixtures for Roku Integration tests."""

import pathlib

import pytest

REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
CONFIG_ROOT = REPO_ROOT / "config"


@pytest.fixture
def repo_root() -> pathlib.Path:
    return REPO_ROOT


@pytest.fixture
def defaults_path() -> pathlib.Path:
    return CONFIG_ROOT / "roku_defaults.yaml"
