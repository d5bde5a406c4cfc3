"""Service container and FastAPI dependency getters."""

from dataclasses import dataclass

from starlette.requests import HTTPConnection

from ..repositories.base import Repository
from ..services.backend import AssistantBackend
from ..services.orchestrator import RunOrchestrator


@dataclass(frozen=True)
class Services:
    """Handles built once at startup and shared by every connection."""

    repository: Repository
    backend: AssistantBackend
    orchestrator: RunOrchestrator


def get_services(connection: HTTPConnection) -> Services:
    """Returns the services attached to the running app"""
    return connection.app.state.services


def get_orchestrator(connection: HTTPConnection) -> RunOrchestrator:
    """Returns the run orchestrator"""
    return get_services(connection).orchestrator
