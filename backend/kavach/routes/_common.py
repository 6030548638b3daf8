# kavach/routes/_common.py
# ------------------------------------------------------------
# Shared helpers for route modules.
# Keeps route files small and consistent.
# ------------------------------------------------------------

from typing import Any, Dict, Iterable, List

from fastapi import Request
from pydantic import BaseModel

from ..runtime import Runtime


def get_runtime(request: Request) -> Runtime:
    """
    FastAPI dependency: the Runtime created by create_app().
    """
    return request.app.state.runtime


def dump_items(items: Iterable[BaseModel]) -> Dict[str, List[Dict[str, Any]]]:
    """
    Wrap models in the {"items": [...]} envelope used by list endpoints.
    """
    return {"items": [x.model_dump(mode="json") for x in items]}
