"""FastAPI dependencies shared by the routers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from stack_health.config import Settings
from stack_health.services.manager import build_probe
from stack_health.services.php_runtime import PhpRuntimeProbe


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


AppSettings = Annotated[Settings, Depends(get_app_settings)]


def get_probe(settings: AppSettings) -> PhpRuntimeProbe:
    """A fresh probe per request, so each request takes one runtime snapshot."""
    return build_probe(settings)


RuntimeProbe = Annotated[PhpRuntimeProbe, Depends(get_probe)]
