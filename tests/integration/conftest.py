"""Shared fixtures for integration tests."""

import json
import shutil
import subprocess
from pathlib import Path
from typing import List

import pytest

from bytesize_digest.models import SourcePost, parse_source_posts


FIXTURES_DIR = Path(__file__).parent.parent / "fixtures"
POSTS_DIR = FIXTURES_DIR / "posts"


@pytest.fixture
def fixtures_dir():
    """Path to test fixtures directory."""
    return FIXTURES_DIR


def load_fixture(name: str) -> List[SourcePost]:
    """Load a post fixture file and parse it into SourcePost objects."""
    return parse_source_posts(load_fixture_raw(name))


def load_fixture_raw(name: str):
    """Load a post fixture file as raw JSON."""
    with open(POSTS_DIR / name, "r", encoding="utf-8") as f:
        return json.load(f)


@pytest.fixture
def subscriptions_file(tmp_path):
    """Writable copy of the subscriptions fixture."""
    path = tmp_path / "subscriptions.json"
    shutil.copy(FIXTURES_DIR / "subscriptions.json", path)
    return path


@pytest.fixture
def bird_env_file(tmp_path):
    path = tmp_path / "bird.env"
    path.write_text('export AUTH_TOKEN="auth"\nexport CT0="ct0"\n')
    return path


def fake_bird_run(cmd, **kwargs):
    """Stand-in for subprocess.run answering `bird search from:<handle>` from fixtures."""
    query = next(arg for arg in cmd if arg.startswith("from:"))
    handle = query[len("from:"):]
    fixture = POSTS_DIR / f"{handle}.json"
    stdout = fixture.read_text(encoding="utf-8") if fixture.exists() else "[]"
    return subprocess.CompletedProcess(args=cmd, returncode=0, stdout=stdout, stderr="")
