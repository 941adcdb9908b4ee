"""Request-scoped access to the components built by the app factory."""

from fastapi import Request

from harvest_api.config import Settings
from harvest_api.jobs.broadcaster import EventBroadcaster
from harvest_api.jobs.registry import JobRegistry
from harvest_api.jobs.runner import JobRunner
from harvest_api.storage.result_store import ResultStore


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_registry(request: Request) -> JobRegistry:
    return request.app.state.registry


def get_broadcaster(request: Request) -> EventBroadcaster:
    return request.app.state.broadcaster


def get_runner(request: Request) -> JobRunner:
    return request.app.state.runner


def get_result_store(request: Request) -> ResultStore:
    return request.app.state.result_store
