from __future__ import annotations

import importlib
import logging
import pkgutil
from typing import Optional, Sequence

from fastapi import FastAPI
from fastapi.params import Depends

logger = logging.getLogger(__name__)


def register_all_routers(
        app: FastAPI,
        *,
        base_package: Optional[str] = None,
        prefix: str = "",
        dependencies: Optional[Sequence[Depends]] = None,
) -> None:
    """
    Include every module of a routers package that defines a top-level ``router``.

    Module conventions:
        ROUTER_PREFIX   mounted under ``prefix`` (e.g. "/api" + "/files")
        ROUTER_TAG      OpenAPI tag
        INCLUDE_ROUTER_IN_SCHEMA  hide internal routers from the docs

    Modules whose name starts with ``_`` are skipped. ``dependencies`` apply to
    every discovered router (the API-wide rate limit). Import errors propagate
    so a broken router module fails startup instead of silently vanishing.
    """
    base_package = base_package or __package__
    package_module = importlib.import_module(base_package)
    if not hasattr(package_module, "__path__"):
        raise RuntimeError(f"Provided base_package '{base_package}' is not a package (no __path__).")

    for _, module_name, _ in pkgutil.walk_packages(package_module.__path__, prefix=f"{base_package}."):
        if module_name.rsplit(".", 1)[-1].startswith("_"):
            continue
        module = importlib.import_module(module_name)
        router = getattr(module, "router", None)
        if router is None:
            continue
        router_prefix = getattr(module, "ROUTER_PREFIX", "")
        router_tag = getattr(module, "ROUTER_TAG", None)
        app.include_router(
            router,
            prefix=prefix.rstrip("/") + router_prefix,
            tags=[router_tag] if router_tag else None,
            include_in_schema=getattr(module, "INCLUDE_ROUTER_IN_SCHEMA", True),
            dependencies=list(dependencies or []),
        )
        logger.debug("Included router %s at %s", module_name, prefix.rstrip("/") + router_prefix)
