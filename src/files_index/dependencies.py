from fastapi import Request

from files_index.adapters.storage import BaseObjectStore
from files_index.config.settings import Settings
from files_index.index.models import IndexConfig
from files_index.tasks import MaintenanceRunner


def get_app_settings(request: Request) -> Settings:
    """Settings loaded once by the app factory."""
    return request.app.state.settings


def get_index_config(request: Request) -> IndexConfig:
    return request.app.state.index_config


def get_store(request: Request) -> BaseObjectStore:
    """Object store dependency."""
    return request.app.state.store


def get_maintenance_runner(request: Request) -> MaintenanceRunner:
    return request.app.state.maintenance
