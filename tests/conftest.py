# tests/conftest.py
import os

import pytest

os.environ.setdefault("LANGSMITH_TRACING", "false")

from tests.fake_firestore import FakeFirestore  # noqa: E402
from tests.fakes import make_services  # noqa: E402


@pytest.fixture
def db():
    return FakeFirestore()


@pytest.fixture
def services(db):
    return make_services(db)
