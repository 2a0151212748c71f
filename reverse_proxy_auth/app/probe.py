"""
Connectivity check for an LDAP server string.

Used from the admin endpoint and the CLI, never on the request path.  When
the bind fails the raw bonsai error is rarely useful to an operator, so the
cause is narrowed down with independent checks:

1. is the first port (if any) a number
2. does the string look like ``[ldap[s]://]host[:port] ...`` at all
3. does the first host resolve
4. is its port in range
5. does a plain TCP connection to it succeed

and only then is the directory's own message passed through.
"""

import asyncio
import re
import socket

from reverse_proxy_auth.exc import DirectoryError
from reverse_proxy_auth.logging import logger

from .directory import DirectoryClient
from .models import ProbeResult
from .server_spec import first_server_address, to_provider_url

# Port text of the first host, numeric or not: "host:abc" -> "abc"
_FIRST_PORT = re.compile(r"\s*(?:ldaps?://)?[^:\s/]+:([^\s/]*)")


def _credential(value: str | None) -> str | None:
    # Browser forms send the literal "undefined" for untouched fields
    if value is None or not value.strip() or value == "undefined":
        return None
    return value


class ConnectivityProbe:
    def __init__(self, timeout: float = 10.0) -> None:
        self.timeout = timeout

    async def check(
        self,
        server: str,
        bind_dn: str | None = None,
        bind_password: str | None = None,
    ) -> ProbeResult:
        client = DirectoryClient(
            to_provider_url(server, ""),
            bind_dn=_credential(bind_dn),
            bind_password=_credential(bind_password),
            timeout=self.timeout,
        )
        try:
            # Reading the root DSE proves the bound connection is usable
            await client.root_attributes()
        except DirectoryError as exc:
            result = await self.diagnose(server, exc)
            logger.info(
                "probe.failed", server=server, kind=result.kind, message=result.message
            )
            return result
        logger.info("probe.ok", server=server)
        return ProbeResult.ok()

    async def diagnose(self, server: str, error: Exception) -> ProbeResult:
        """Classify why a bind against ``server`` failed with ``error``."""
        port_text = _FIRST_PORT.match(server)
        if port_text is not None and not port_text.group(1).isdecimal():
            return ProbeResult.error(
                "invalid_port", f"Invalid port number: {port_text.group(1)!r}"
            )

        address = first_server_address(server)
        if address is None:
            return ProbeResult.error(
                "syntax",
                "Syntax of server field is SERVER or SERVER:PORT or "
                "ldaps://SERVER[:PORT], separated by spaces",
            )

        loop = asyncio.get_running_loop()
        try:
            await loop.getaddrinfo(address.host, None, type=socket.SOCK_STREAM)
        except socket.gaierror as exc:
            return ProbeResult.error(
                "unknown_host", f"Unknown host: {address.host} ({exc.strerror})"
            )

        port = int(address.port) if address.port is not None else address.default_port
        if not 0 < port < 65536:
            return ProbeResult.error("invalid_port", f"Invalid port number: {port}")

        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(address.host, port), timeout=self.timeout
            )
        except (OSError, asyncio.TimeoutError) as exc:
            reason = str(exc) or type(exc).__name__
            return ProbeResult.error(
                "unable_to_connect", f"Unable to connect to {server}: {reason}"
            )
        writer.close()
        await writer.wait_closed()

        # The host answers on that port, so the directory itself refused us
        cause = error.__cause__ or error
        return ProbeResult.error(
            "directory_error", f"Unable to connect to {server}: {cause}"
        )
