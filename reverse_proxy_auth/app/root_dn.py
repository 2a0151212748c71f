"""
Best-effort discovery of a directory's root DN from its root DSE.

Only used while the realm is being configured, never per request.
"""

from reverse_proxy_auth.exc import DirectoryError, InferenceUnavailable
from reverse_proxy_auth.logging import logger

from .directory import DirectoryClient
from .server_spec import to_provider_url


async def _read_root_dn(client: DirectoryClient) -> str:
    try:
        attributes = await client.root_attributes()
    except DirectoryError as exc:
        raise InferenceUnavailable(str(exc)) from exc

    # Active Directory publishes the domain's naming context here
    default_context = attributes.get("defaultnamingcontext") or []
    if default_context and default_context[0]:
        return default_context[0]

    naming_contexts = attributes.get("namingcontexts")
    if not naming_contexts:
        raise InferenceUnavailable("namingContexts attribute not found in root DSE")
    return naming_contexts[0]


async def infer_root_dn(
    server: str,
    bind_dn: str | None = None,
    bind_password: str | None = None,
    timeout: float | None = None,
) -> str | None:
    """
    Return the root DN advertised by ``server``, or ``None``.

    Failures are logged and never raised: the realm simply runs without a
    root DN.
    """
    client = DirectoryClient(
        to_provider_url(server, ""),
        bind_dn=bind_dn,
        bind_password=bind_password,
        timeout=timeout,
    )
    try:
        root_dn = await _read_root_dn(client)
    except InferenceUnavailable as exc:
        logger.warning("root_dn.inference.failed", server=server, error=str(exc))
        return None
    logger.info("root_dn.inferred", server=server, root_dn=root_dn)
    return root_dn
