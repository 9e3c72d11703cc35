from fastapi import Request

from core.config import Settings
from services.video_store import VideoStore


def get_store(request: Request) -> VideoStore:
    return request.app.state.store


def get_settings(request: Request) -> Settings:
    return request.app.state.settings
