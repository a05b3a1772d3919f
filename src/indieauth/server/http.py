"""Starlette adapter for the IndieAuth server.

Reads inbound request parameters and renders IndieAuth errors as OAuth
error responses.
"""

from __future__ import annotations

import logging

from starlette.datastructures import ImmutableMultiDict
from starlette.requests import Request
from starlette.responses import JSONResponse

from indieauth.models.errors import IndieAuthError

logger = logging.getLogger(__name__)

FORM_METHODS = ("POST", "PUT", "PATCH")


async def request_params(request: Request) -> ImmutableMultiDict:
    """Collect the parameters of a request.

    Query string and form body are merged. Where both carry a key, the
    body value wins for ``get`` while ``getlist`` sees both.
    """
    items: list[tuple[str, str]] = list(request.query_params.multi_items())

    if request.method in FORM_METHODS:
        form = await request.form()
        items.extend(
            (key, value) for key, value in form.multi_items() if isinstance(value, str)
        )

    return ImmutableMultiDict(items)


def error_response(error: IndieAuthError) -> JSONResponse:
    """Render an IndieAuth error as a 400 OAuth error response."""
    logger.warning(f"Rejected request: {type(error).__name__}: {error}")
    return JSONResponse(
        {"error": error.error_code, "error_description": str(error)},
        status_code=400,
    )
