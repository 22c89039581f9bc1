"""
Shared pytest fixtures for the rotator test suite.
"""

import pytest

from rotator.backends.file import FileBackend
from tests.helpers import InMemoryStore


@pytest.fixture
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def file_store(tmp_path) -> FileBackend:
    return FileBackend(tmp_path / "secrets")
