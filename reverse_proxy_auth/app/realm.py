"""
Realm configuration and the two realm variants.

A realm answers two questions for the gateway: which identity did the proxy
send (:meth:`resolve_identity`), and which authorities does it have
(:meth:`resolve_authorities`).  :func:`build_realm` picks the variant once,
when the configuration is loaded:

- :class:`DirectoryBackedRealm` when an LDAP server is configured
- :class:`HeaderOnlyRealm` otherwise; identities only get ``authenticated``
"""

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Protocol

from reverse_proxy_auth.exc import ConfigurationError, IdentityNotFound
from reverse_proxy_auth.logging import logger
from reverse_proxy_auth.settings import (
    DEFAULT_GROUP_MEMBERSHIP_FILTER,
    DEFAULT_USER_SEARCH_FILTER,
    Settings,
)

from .directory import DirectoryClient, descramble, join_dn, scramble
from .groups import GroupResolver
from .root_dn import infer_root_dn
from .server_spec import is_valid_server, normalize_server, to_provider_url

RootDNInferrer = Callable[..., Awaitable[str | None]]


def _fix_empty(value: str | None) -> str | None:
    if value is None or not value.strip():
        return None
    return value.strip()


@dataclass(frozen=True)
class RealmConfig:
    """Immutable realm settings, shared read-only by every request."""

    trusted_header: str
    server: str | None = None
    root_dn: str | None = None
    inhibit_infer_root_dn: bool = False
    user_search_base: str = ""
    user_search_filter: str = DEFAULT_USER_SEARCH_FILTER
    group_search_base: str | None = None
    group_search_filter: str | None = None
    group_membership_filter: str = DEFAULT_GROUP_MEMBERSHIP_FILTER
    bind_dn: str | None = None
    scrambled_bind_password: str | None = field(default=None, repr=False)
    timeout: float | None = None

    @property
    def uses_directory(self) -> bool:
        return self.server is not None

    @property
    def bind_password(self) -> str | None:
        return descramble(self.scrambled_bind_password)

    @property
    def provider_url(self) -> str | None:
        return to_provider_url(self.server, self.root_dn)

    def directory_client(self) -> DirectoryClient:
        return DirectoryClient(
            self.provider_url,
            bind_dn=self.bind_dn,
            bind_password=self.bind_password,
            timeout=self.timeout,
        )

    @classmethod
    async def from_settings(
        cls, settings: Settings, infer: RootDNInferrer = infer_root_dn
    ) -> "RealmConfig":
        """
        Build the realm configuration, inferring the root DN when needed.

        Inference runs only if a server is configured, no root DN was given
        and ``ldap_inhibit_infer_root_dn`` is false.  Raises
        :class:`ConfigurationError` for a malformed server string or a blank
        trusted header name.
        """
        trusted_header = _fix_empty(settings.ldap_trusted_user_header)
        if trusted_header is None:
            raise ConfigurationError("the trusted user header name must not be empty")

        raw_server = _fix_empty(settings.ldap_server)
        if raw_server is not None and not is_valid_server(raw_server):
            raise ConfigurationError(f"malformed LDAP server string: {raw_server!r}")
        server = normalize_server(raw_server)

        bind_dn = _fix_empty(settings.ldap_bind_dn)
        bind_password = None
        if settings.ldap_bind_password is not None:
            bind_password = settings.ldap_bind_password.get_secret_value() or None

        root_dn = None
        if server is not None:
            root_dn = _fix_empty(settings.ldap_root_dn)
            if root_dn is None and not settings.ldap_inhibit_infer_root_dn:
                root_dn = await infer(
                    server,
                    bind_dn=bind_dn,
                    bind_password=bind_password,
                    timeout=settings.ldap_timeout,
                )

        return cls(
            trusted_header=trusted_header,
            server=server,
            root_dn=root_dn,
            inhibit_infer_root_dn=settings.ldap_inhibit_infer_root_dn,
            user_search_base=(settings.ldap_user_search_base or "").strip(),
            user_search_filter=(
                _fix_empty(settings.ldap_user_search_filter)
                or DEFAULT_USER_SEARCH_FILTER
            ),
            group_search_base=_fix_empty(settings.ldap_group_search_base),
            group_search_filter=_fix_empty(settings.ldap_group_search_filter),
            group_membership_filter=(
                _fix_empty(settings.ldap_group_membership_filter)
                or DEFAULT_GROUP_MEMBERSHIP_FILTER
            ),
            bind_dn=bind_dn,
            scrambled_bind_password=scramble(bind_password),
            timeout=settings.ldap_timeout,
        )


class Realm(Protocol):
    config: RealmConfig
    groups: GroupResolver | None

    def resolve_identity(self, headers: Mapping[str, str]) -> str | None: ...

    async def resolve_authorities(self, username: str) -> tuple[str, ...]: ...


class HeaderOnlyRealm:
    """Trust the header and grant nothing beyond ``authenticated``."""

    groups: GroupResolver | None = None

    def __init__(self, config: RealmConfig) -> None:
        self.config = config

    def resolve_identity(self, headers: Mapping[str, str]) -> str | None:
        # Header lookups on starlette's Headers are case-insensitive
        return headers.get(self.config.trusted_header) or None

    async def resolve_authorities(self, username: str) -> tuple[str, ...]:
        return ()


class DirectoryBackedRealm(HeaderOnlyRealm):
    """Trust the header and read the user's groups from LDAP."""

    def __init__(
        self, config: RealmConfig, client: DirectoryClient | None = None
    ) -> None:
        super().__init__(config)
        self.client = client if client is not None else config.directory_client()
        self.groups = GroupResolver(
            self.client,
            root_dn=config.root_dn,
            group_search_base=config.group_search_base,
            group_search_filter=config.group_search_filter,
        )
        self.user_search_base = join_dn(config.user_search_base, config.root_dn)
        self.membership_search_base = join_dn(
            config.group_search_base, config.root_dn
        )

    async def find_user_dn(self, username: str) -> str:
        dns = await self.client.search_for_dns(
            self.user_search_base, self.config.user_search_filter, [username]
        )
        if not dns:
            logger.info(
                "realm.user.not_found", username=username, base=self.user_search_base
            )
            raise IdentityNotFound(username)
        return dns[0]

    async def resolve_authorities(self, username: str) -> tuple[str, ...]:
        """
        Return the names of the groups ``username`` is a member of.

        Directory errors propagate unchanged.
        """
        user_dn = await self.find_user_dn(username)
        groups = await self.client.search_for_single_attribute_values(
            self.membership_search_base,
            self.config.group_membership_filter,
            [user_dn, username],
            "cn",
        )
        logger.debug("realm.user.groups", username=username, groups=len(groups))
        return tuple(sorted(groups))


def build_realm(config: RealmConfig, client: DirectoryClient | None = None) -> Realm:
    if config.uses_directory:
        return DirectoryBackedRealm(config, client=client)
    return HeaderOnlyRealm(config)
