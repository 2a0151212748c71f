"""
Thin async wrapper around :mod:`bonsai` used by the realm, the group resolver,
root DN inference and the connectivity probe.

A connection is opened per operation and closed afterwards.  When the server
string holds several hosts they are tried in order until one accepts the bind.
"""

import base64
import re
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import asynccontextmanager
from typing import Any

import bonsai
from bonsai import LDAPClient, LDAPSearchScope

from reverse_proxy_auth.exc import DirectorySearchFailed, DirectoryUnavailable
from reverse_proxy_auth.logging import logger

from .server_spec import split_provider_urls

_PLACEHOLDER = re.compile(r"\{(\d+)\}")
# Whitespace between filter components, e.g. "(& (cn=x) (| ...))".
_COMPONENT_SPACE = re.compile(r"([(&|!)])\s+(?=[()])")

ROOT_DSE_ATTRIBUTES = ["defaultNamingContext", "namingContexts"]


def join_dn(relative: str | None, root_dn: str | None) -> str:
    """Return ``relative,root_dn``, skipping whichever part is empty."""
    return ",".join(part for part in (relative, root_dn) if part)


def format_filter(template: str, args: Sequence[str] = ()) -> str:
    """
    Substitute ``{0}``, ``{1}``... in ``template`` with LDAP-escaped ``args``.

    Placeholders without a matching argument are left untouched.  A bare
    filter such as ``uid={0}`` is wrapped in parentheses.
    """
    template = _COMPONENT_SPACE.sub(r"\1", template.strip())
    escaped = [bonsai.escape_filter_exp(str(arg)) for arg in args]

    def _replace(match: re.Match) -> str:
        index = int(match.group(1))
        if index < len(escaped):
            return escaped[index]
        return match.group(0)

    filter_exp = _PLACEHOLDER.sub(_replace, template)
    if not filter_exp.startswith("("):
        filter_exp = f"({filter_exp})"
    return filter_exp


def scramble(secret: str | None) -> str | None:
    """Obscure ``secret`` so it does not sit in memory or dumps as plain text."""
    if secret is None:
        return None
    return base64.b64encode(secret.encode("utf-8")).decode("ascii")


def descramble(scrambled: str | None) -> str | None:
    if scrambled is None:
        return None
    return base64.b64decode(scrambled.encode("ascii")).decode("utf-8")


def entry_values(
entry: Any, attribute: str) -> list[Any]:
    """Values of ``attribute`` in ``entry``; attribute names are case-insensitive."""
    wanted = attribute.lower()
    for key, values in entry.items():
        if str(key).lower() == wanted:
            return list(values)
    return []


class DirectoryClient:
    """
    Run binds and searches against the servers of a provider URL.

    :param provider_url: one or more space-separated LDAP URLs, as built by
        :func:`~reverse_proxy_auth.app.server_spec.to_provider_url`
    :param bind_dn: DN to bind as; anonymous bind when ``None``
    :param bind_password: password for ``bind_dn``; kept scrambled until a
        connection is opened
    :param timeout: seconds allowed for connect and for each search
    """

    def __init__(
        self,
        provider_url: str | None,
        bind_dn: str | None = None,
        bind_password: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.urls = split_provider_urls(provider_url)
        self.bind_dn = bind_dn
        self._scrambled_password = scramble(bind_password)
        self.timeout = timeout

    def _client(self, url: str) -> LDAPClient:
        client = LDAPClient(url)
        if self.bind_dn:
            password = descramble(self._scrambled_password) or ""
            client.set_credentials("SIMPLE", user=self.bind_dn, password=password)
        return client

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[Any]:
        """
        Yield an open, bound connection to the first server that accepts us.

        Raises :class:`DirectoryUnavailable` when no server does.
        """
        last_error: Exception | None = None
        for url in self.urls:
            try:
                conn = await self._client(url).connect(
                    is_async=True, timeout=self.timeout
                )
            except (bonsai.LDAPError, ValueError) as exc:
                # ValueError: bonsai could not parse the URL
                logger.warning("directory.connect.failed", url=url, error=str(exc))
                last_error = exc
                continue
            logger.debug("directory.connect.success", url=url)
            try:
                yield conn
            finally:
                conn.close()
            return
        if last_error is None:
            raise DirectoryUnavailable("no LDAP server configured")
        raise DirectoryUnavailable(str(last_error)) from last_error

    async def bind(self) -> None:
        """Open and close a connection, raising if no server accepts the bind."""
        async with self.connection():
            pass

    async def search(
        self,
        base: str,
        filter_template: str,
        args: Sequence[str] = (),
        attributes: Iterable[str] | None = None,
        scope: LDAPSearchScope = LDAPSearchScope.SUBTREE,
    ) -> list[Any]:
        """Return the entries under ``base`` matching the formatted filter."""
        filter_exp = format_filter(filter_template, args)
        attrlist = list(attributes) if attributes is not None else None
        async with self.connection() as conn:
            try:
                return await conn.search(
                    base, scope, filter_exp, attrlist=attrlist, timeout=self.timeout
                )
            except (bonsai.ConnectionError, bonsai.TimeoutError) as exc:
                logger.warning(
                    "directory.search.unavailable", base=base, filter=filter_exp
                )
                raise DirectoryUnavailable(str(exc)) from exc
            except bonsai.LDAPError as exc:
                logger.warning(
                    "directory.search.failed",
                    base=base,
                    filter=filter_exp,
                    error=str(exc),
                )
                raise DirectorySearchFailed(str(exc)) from exc

    async def search_for_single_attribute_values(
        self,
        base: str,
        filter_template: str,
        args: Sequence[str],
        attribute: str,
    ) -> set[str]:
        """Return the distinct values of ``attribute`` over all matching entries."""
        entries = await self.search(base, filter_template, args, [attribute])
        values: set[str] = set()
        for entry in entries:
            values.update(str(value) for value in entry_values(entry, attribute))
        return values

    async def search_for_dns(
        self, base: str, filter_template: str, args: Sequence[str]
    ) -> list[str]:
        """Return the DNs of the matching entries, in server order."""
        # "1.1" asks the server for no attributes at all
        entries = await self.search(base, filter_template, args, ["1.1"])
        return [str(entry.dn) for entry in entries]

    async def root_attributes(self) -> dict[str, list[str]]:
        """
        Read the root DSE.

        Attribute names are lower-cased; values are strings.
        """
        entries = await self.search(
            "",
            "(objectClass=*)",
            attributes=ROOT_DSE_ATTRIBUTES,
            scope=LDAPSearchScope.BASE,
        )
        if not entries:
            return {}
        entry = entries[0]
        return {
            str(key).lower(): [str(value) for value in values]
            for key, values in entry.items()
            if str(key).lower() != "dn"
        }
