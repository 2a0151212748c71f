import pytest
from fastapi.testclient import TestClient

from reverse_proxy_auth.app.cache import MemoryAuthorityCache
from reverse_proxy_auth.app.directory import DirectoryClient
from reverse_proxy_auth.app.gateway import IdentityGateway
from reverse_proxy_auth.app.main import create_app
from reverse_proxy_auth.app.realm import (
    DirectoryBackedRealm,
    HeaderOnlyRealm,
    RealmConfig,
)
from reverse_proxy_auth.settings import Settings

USER_DN = "uid=testuser,ou=people,dc=example,dc=com"


class FakeEntry(dict):
    """Stands in for :class:`bonsai.LDAPEntry`: a dict with a ``dn``."""

    def __init__(self, dn, **attributes):
        super().__init__(attributes)
        self.dn = dn


@pytest.fixture
def realm_config():
    return RealmConfig(
        trusted_header="X-Forwarded-User",
        server="ldap://ldap.example.com",
        root_dn="dc=example,dc=com",
        user_search_base="ou=people",
        group_search_base="ou=groups",
    )


@pytest.fixture
def header_only_config():
    return RealmConfig(trusted_header="X-Forwarded-User")


@pytest.fixture
def mock_directory(mocker):
    directory = mocker.Mock(spec=DirectoryClient)
    directory.search_for_dns = mocker.AsyncMock(return_value=[USER_DN])
    directory.search_for_single_attribute_values = mocker.AsyncMock(
        return_value={"developers", "admins"}
    )
    return directory


@pytest.fixture
def cache():
    return MemoryAuthorityCache()


@pytest.fixture
def gateway(realm_config, mock_directory, cache):
    realm = DirectoryBackedRealm(realm_config, client=mock_directory)
    return IdentityGateway(realm, cache)


@pytest.fixture
def header_only_gateway(header_only_config, cache):
    return IdentityGateway(HeaderOnlyRealm(header_only_config), cache)


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def client(settings, gateway):
    with TestClient(create_app(settings=settings, gateway=gateway)) as test_client:
        yield test_client


@pytest.fixture
def header_only_client(settings, header_only_gateway):
    app = create_app(settings=settings, gateway=header_only_gateway)
    with TestClient(app) as test_client:
        yield test_client
