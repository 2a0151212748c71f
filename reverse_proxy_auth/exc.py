"""
Exceptions raised by the trusted-header gateway and its directory layer.

Transport problems (:class:`DirectoryUnavailable`, :class:`DirectorySearchFailed`)
are kept apart from "the entry does not exist" (:class:`IdentityNotFound`) so
that callers can answer them differently.
"""


class ProxyAuthError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(ProxyAuthError):
    """The realm configuration is unusable, e.g. a malformed server string."""


class DirectoryError(ProxyAuthError):
    """Something went wrong while talking to the LDAP directory."""


class DirectoryUnavailable(DirectoryError):
    """Bind or connect failed (or timed out) on every configured server."""


class DirectorySearchFailed(DirectoryError):
    """The directory accepted the connection but the search itself failed."""


class CacheUnavailable(ProxyAuthError):
    """The authority cache backend could not be read or written."""


class IdentityNotFound(ProxyAuthError):
    """A required lookup (user or group) matched no entries."""

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name


class InferenceUnavailable(ProxyAuthError):
    """The root DN could not be read from the directory's root DSE."""


class IdentityResolutionFailed(ProxyAuthError):
    """
    The authorities of a header-supplied identity could not be resolved.

    Always raised ``from`` the underlying :class:`DirectoryError` or
    :class:`CacheUnavailable`.
    """

    def __init__(self, identity: str) -> None:
        super().__init__(f"could not resolve authorities for {identity!r}")
        self.identity = identity
