"""Shared fixtures: an in-memory store, a scripted backend and the app around them."""

import pytest

from assistant_chat.api.app import create_app
from assistant_chat.api.dependencies import Services
from assistant_chat.repositories.memory import InMemoryRepository
from assistant_chat.services.orchestrator import RunOrchestrator
from assistant_chat.services.tools import default_registry
from fakes import ScriptedBackend

ASSISTANT_ID = "asst_test"
SUMMARY_MODEL = "gpt-4o-mini"


@pytest.fixture
def backend() -> ScriptedBackend:
    return ScriptedBackend()


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def orchestrator(repository, backend) -> RunOrchestrator:
    return RunOrchestrator(
        repository=repository,
        backend=backend,
        tools=default_registry(),
        assistant_id=ASSISTANT_ID,
        summary_model=SUMMARY_MODEL,
    )


@pytest.fixture
def app(repository, backend, orchestrator):
    return create_app(Services(repository=repository, backend=backend, orchestrator=orchestrator))
