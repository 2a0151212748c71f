from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status

from reverse_proxy_auth.logging import get_logger

from .gateway import get_principal
from .models import Principal, ProbeResult, ServerCheckRequest
from .probe import ConnectivityProbe

router = APIRouter(prefix="/admin", tags=["admin"])


def require_admin(
    request: Request, principal: Annotated[Principal, Depends(get_principal)]
) -> Principal:
    """
    Allow only an authenticated principal, and one holding ``admin_authority``
    when that setting is configured.
    """
    required = request.app.state.settings.admin_authority
    if principal.is_anonymous or (
        required is not None and not principal.has_authority(required)
    ):
        get_logger(request).warning(
            "admin.forbidden", username=principal.name, required=required
        )
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
    return principal


@router.post("/check-server")
async def check_server(
    body: ServerCheckRequest,
    request: Request,
    principal: Annotated[Principal, Depends(require_admin)],
) -> ProbeResult:
    """Try to bind to ``body.server`` and explain what went wrong if we can't."""
    probe = ConnectivityProbe(timeout=request.app.state.settings.ldap_timeout)
    result = await probe.check(body.server, body.bind_dn, body.bind_password)
    get_logger(request).info(
        "admin.check_server",
        username=principal.name,
        server=body.server,
        kind=result.kind,
    )
    return result
