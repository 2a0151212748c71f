"""
Per-request identity propagation.

:class:`IdentityGateway` turns the trusted header into a :class:`Principal`:

1. no header (or an empty one): :data:`ANONYMOUS`
2. a cached entry with more than the bare ``authenticated`` marker: reuse it
3. otherwise ask the realm, add ``authenticated``, write the result back

An entry holding only ``authenticated`` counts as unresolved and is looked up
again, so one failed or directory-less resolution cannot pin an identity to
the bare marker forever.

:class:`TrustedHeaderMiddleware` runs the gateway for every request and
leaves the principal on ``request.state``; handlers get it through
:func:`get_principal`.
"""

from collections.abc import Mapping

from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse, Response

from reverse_proxy_auth.exc import (
    CacheUnavailable,
    DirectoryError,
    IdentityNotFound,
    IdentityResolutionFailed,
)
from reverse_proxy_auth.logging import get_logger, logger

from .cache import AuthorityCache, merge_authorities
from .models import ANONYMOUS, AUTHENTICATED, Principal
from .realm import Realm


class IdentityGateway:
    def __init__(self, realm: Realm, cache: AuthorityCache) -> None:
        self.realm = realm
        self.cache = cache

    async def authenticate(self, headers: Mapping[str, str]) -> Principal:
        """
        Build the principal for a request carrying ``headers``.

        Raises :class:`IdentityNotFound` when the directory does not know the
        user, and :class:`IdentityResolutionFailed` (chained to the
        :class:`DirectoryError` or :class:`CacheUnavailable`) when the
        directory or the cache backend could not be used.
        Nothing is cached in either case.
        """
        username = self.realm.resolve_identity(headers)
        if username is None:
            return ANONYMOUS

        try:
            authorities = await self._authorities(username)
        except (CacheUnavailable, DirectoryError) as exc:
            logger.warning(
                "gateway.resolution.failed", username=username, error=str(exc)
            )
            raise IdentityResolutionFailed(username) from exc

        return Principal(
            name=username,
            credentials="",
            authorities=merge_authorities([AUTHENTICATED], authorities),
        )

    async def _authorities(self, username: str) -> tuple[str, ...]:
        # The directory is queried with no lock held: two first requests for
        # the same user may both query it, and the last write wins.
        cached = await self.cache.get(username)
        if cached is not None and len(cached) > 1:
            logger.debug("gateway.cache.hit", username=username)
            return cached
        resolved = await self.realm.resolve_authorities(username)
        authorities = merge_authorities([AUTHENTICATED], resolved)
        await self.cache.put(username, authorities)
        logger.info("gateway.resolved", username=username, authorities=len(authorities))
        return authorities


class TrustedHeaderMiddleware(BaseHTTPMiddleware):
    """
    Attach the request's principal to ``request.state.principal``.

    Never turns a request away for being anonymous.  Directory trouble is
    answered with ``503`` and an identity unknown to the directory with
    ``403``; a failing cache backend counts as directory trouble.  Neither
    falls back to anonymous or to a stale cache entry.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        _logger = get_logger(request)
        gateway: IdentityGateway = request.app.state.gateway
        try:
            principal = await gateway.authenticate(request.headers)
        except IdentityNotFound as exc:
            _logger.warning("gateway.user.unknown", username=exc.name)
            return JSONResponse(
                {"detail": "unknown user"}, status_code=status.HTTP_403_FORBIDDEN
            )
        except IdentityResolutionFailed as exc:
            _logger.error(
                "gateway.resolution.error",
                username=exc.identity,
                cause=str(exc.__cause__),
            )
            return JSONResponse(
                {"detail": "identity resolution failed"},
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            )
        request.state.principal = principal
        return await call_next(request)


def get_principal(request: Request) -> Principal:
    """FastAPI dependency returning the principal set by the middleware."""
    return getattr(request.state, "principal", ANONYMOUS)
