from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from reverse_proxy_auth.app.server_spec import is_valid_server

DEFAULT_USER_SEARCH_FILTER = "uid={0}"

#: ``{0}`` is the group name as given by the caller.
DEFAULT_GROUP_SEARCH_FILTER = (
    "(& (cn={0}) (| (objectclass=groupOfNames) (objectclass=groupOfUniqueNames)"
    " (objectclass=posixGroup)))"
)

#: ``{0}`` is the user's DN, ``{1}`` the user name from the trusted header.
DEFAULT_GROUP_MEMBERSHIP_FILTER = "(| (member={0}) (uniqueMember={0}) (memberUid={1}))"


class Settings(BaseSettings):
    """
    Service configuration, read from the environment (or ``.env``).

    Blank LDAP values are treated as unset when the realm is built; see
    :class:`reverse_proxy_auth.app.realm.RealmConfig`.
    """

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, extra="ignore"
    )

    # HTTP server
    host: str = "0.0.0.0"
    port: int = 8888
    log_level: str = "INFO"
    log_type: Literal["json", "text"] = "json"

    # Trusted header
    ldap_trusted_user_header: str = "X-Forwarded-User"

    # Directory
    ldap_server: str | None = None
    ldap_root_dn: str | None = None
    ldap_inhibit_infer_root_dn: bool = False
    ldap_user_search_base: str = ""
    ldap_user_search_filter: str = DEFAULT_USER_SEARCH_FILTER
    ldap_group_search_base: str | None = None
    ldap_group_search_filter: str | None = None
    ldap_group_membership_filter: str = DEFAULT_GROUP_MEMBERSHIP_FILTER
    ldap_bind_dn: str | None = None
    ldap_bind_password: SecretStr | None = Field(default=None, repr=False)
    #: Seconds allowed for each connect, bind and search.
    ldap_timeout: float = 15.0

    # Authority cache
    cache_backend: Literal["memory", "redis"] = "memory"
    redis_url: str | None = None
    redis_prefix: str = "reverse_proxy_auth:"

    # Authority required to use the /admin endpoints; unset means no check.
    admin_authority: str | None = None

    @field_validator("ldap_server")
    @classmethod
    def _check_server(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        if not is_valid_server(value):
            raise ValueError(
                f"{value!r} is not a valid LDAP server string; expected "
                "whitespace-separated [ldap[s]://]host[:port] entries"
            )
        return value
