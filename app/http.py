"""
Outbound HTTP client factory.

Background sync outlives the request, so callers get a factory and open
their own ``httpx.Client`` for the unit of work.
"""
from typing import Callable

import httpx

from app.config import settings

HttpFactory = Callable[[], httpx.Client]


def build_http_client() -> httpx.Client:
    return httpx.Client(timeout=settings.HTTP_TIMEOUT, follow_redirects=True)


def get_http_factory() -> HttpFactory:
    return build_http_client
