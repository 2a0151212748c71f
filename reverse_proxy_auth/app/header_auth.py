"""
Endpoints for header-based authentication.

The proxy authenticates the user and passes the username in a trusted header
(default: ``X-Forwarded-User``).  :class:`~.gateway.TrustedHeaderMiddleware`
has already turned that header into a principal by the time these handlers
run; they only report it.
"""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request, Response, status

from reverse_proxy_auth.exc import DirectoryError, IdentityNotFound
from reverse_proxy_auth.logging import get_logger

from .gateway import get_principal
from .models import Principal

router = APIRouter(tags=["header-auth"])

CurrentPrincipal = Annotated[Principal, Depends(get_principal)]


@router.get("/check-header")
async def check_header_auth(
    request: Request, response: Response, principal: CurrentPrincipal
) -> dict[str, Any]:
    """
    Authentication check for NGINX ``auth_request``.

    **Response Codes:**

    - ``200 OK``: a user was established; ``X-Auth-User`` and
      ``X-Auth-Authorities`` carry the name and its authorities
    - ``401 Unauthorized``: no (or an empty) trusted header
    - ``403 Forbidden``: the user is not in the directory
    - ``503 Service Unavailable``: the directory could not be queried
    """
    _logger = get_logger(request)
    response.headers["Cache-Control"] = "no-cache"

    if principal.is_anonymous:
        _logger.warning(
            "header_auth.check.missing_header",
            header=request.app.state.gateway.realm.config.trusted_header,
        )
        response.status_code = status.HTTP_401_UNAUTHORIZED
        return {}

    _logger.info("header_auth.check.success", username=principal.name)
    response.headers["X-Auth-User"] = principal.name
    response.headers["X-Auth-Authorities"] = ",".join(principal.authorities)
    return principal.model_dump()


@router.get("/whoami")
async def whoami(principal: CurrentPrincipal) -> dict[str, Any]:
    return principal.model_dump()


@router.get("/groups/{group_name}")
async def get_group(
    group_name: str, request: Request, response: Response
) -> dict[str, Any]:
    """
    Look a group up by name.

    ``404`` when no group matches, ``503`` when there is no directory or it
    cannot be queried.
    """
    _logger = get_logger(request)
    groups = request.app.state.gateway.realm.groups
    if groups is None:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"detail": "no directory configured"}

    try:
        details = await groups.load_group(group_name)
    except IdentityNotFound:
        _logger.info("header_auth.group.not_found", group=group_name)
        response.status_code = status.HTTP_404_NOT_FOUND
        return {"detail": f"unknown group: {group_name}"}
    except DirectoryError:
        _logger.exception("header_auth.group.ldap_error", group=group_name)
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"detail": "directory unavailable"}
    return details.model_dump()


@router.get("/status")
async def service_status(request: Request) -> dict[str, Any]:
    return {
        "status": "ok",
        "directory": request.app.state.gateway.realm.config.uses_directory,
    }
