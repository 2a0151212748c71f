from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

#: Granted to every identity that arrives through the trusted header.
AUTHENTICATED = "authenticated"


class Principal(BaseModel):
    """The identity a request runs as, with its authorities."""

    model_config = ConfigDict(frozen=True)

    name: str
    #: Always empty: the proxy authenticated the user, we never see a secret.
    credentials: str = Field(default="", exclude=True)
    authorities: tuple[str, ...] = ()
    is_anonymous: bool = False

    def has_authority(self, authority: str) -> bool:
        return authority in self.authorities


ANONYMOUS = Principal(name="anonymous", is_anonymous=True)


class GroupDetails(BaseModel):
    name: str


ProbeKind = Literal[
    "ok",
    "syntax",
    "unknown_host",
    "unable_to_connect",
    "invalid_port",
    "directory_error",
]


class ProbeResult(BaseModel):
    """Outcome of a connectivity check against an LDAP server string."""

    status: Literal["ok", "error"]
    kind: ProbeKind
    message: str

    @classmethod
    def ok(cls) -> "ProbeResult":
        return cls(status="ok", kind="ok", message="Connected")

    @classmethod
    def error(cls, kind: ProbeKind, message: str) -> "ProbeResult":
        return cls(status="error", kind=kind, message=message)


class ServerCheckRequest(BaseModel):
    server: str
    bind_dn: str | None = None
    bind_password: str | None = Field(default=None, repr=False)
