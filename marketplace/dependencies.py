import httpx
from fastapi import Request

from marketplace.config import Settings
from marketplace.db import Connection
from marketplace.notifications import Notifier


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_connection(request: Request) -> Connection:
    return request.app.state.connection


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client
