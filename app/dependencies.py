from fastapi import Request

from app.services.storage_manager import StorageManager
from config import Settings


def get_settings(request: Request) -> Settings:
    """Settings the app was created with."""
    return request.app.state.settings


def get_storage_manager(request: Request) -> StorageManager:
    return request.app.state.storage_manager
