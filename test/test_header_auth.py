"""
Tests for the header-based authentication endpoints.

NGINX (or another proxy) authenticates the user and passes the username via
a trusted header; the middleware turns it into a principal.
"""

from reverse_proxy_auth.exc import DirectorySearchFailed, DirectoryUnavailable


class TestCheckHeaderEndpoint:
    """Tests for the /check-header endpoint."""

    def test_check_header_success(self, client, mock_directory):
        """A known user gets 200 with name and authorities in the headers."""
        response = client.get("/check-header", headers={"x-forwarded-user": "testuser"})

        assert response.status_code == 200
        assert response.headers.get("x-auth-user") == "testuser"
        assert response.headers.get("x-auth-authorities") == (
            "authenticated,admins,developers"
        )
        assert response.headers.get("cache-control") == "no-cache"
        assert response.json() == {
            "name": "testuser",
            "authorities": ["authenticated", "admins", "developers"],
            "is_anonymous": False,
        }

    def test_check_header_missing_header(self, client, mock_directory):
        """Without the trusted header the request is anonymous: 401."""
        response = client.get("/check-header")

        assert response.status_code == 401
        assert "x-auth-user" not in response.headers
        assert response.headers.get("cache-control") == "no-cache"
        mock_directory.search_for_dns.assert_not_called()

    def test_check_header_empty_header(self, client, mock_directory):
        response = client.get("/check-header", headers={"x-forwarded-user": ""})

        assert response.status_code == 401
        mock_directory.search_for_dns.assert_not_called()

    def test_check_header_unknown_user(self, client, mock_directory):
        """A user the directory does not know is refused with 403."""
        mock_directory.search_for_dns.return_value = []

        response = client.get("/check-header", headers={"x-forwarded-user": "ghost"})

        assert response.status_code == 403
        assert response.json() == {"detail": "unknown user"}

    def test_check_header_ldap_error(self, client, mock_directory):
        """Directory failures answer 503 instead of falling back to anonymous."""
        mock_directory.search_for_dns.side_effect = DirectoryUnavailable(
            "Connection failed"
        )

        response = client.get("/check-header", headers={"x-forwarded-user": "testuser"})

        assert response.status_code == 503
        assert response.json() == {"detail": "identity resolution failed"}
        assert "x-auth-user" not in response.headers

    def test_check_header_search_error(self, client, mock_directory):
        mock_directory.search_for_single_attribute_values.side_effect = (
            DirectorySearchFailed("Bad search filter")
        )

        response = client.get("/check-header", headers={"x-forwarded-user": "testuser"})

        assert response.status_code == 503

    def test_check_header_cache_backend_down(
        self, settings, realm_config, mock_directory, mocker
    ):
        """A Redis outage is answered like directory trouble, not with a 500."""
        import redis
        from fastapi.testclient import TestClient

        from reverse_proxy_auth.app.cache import RedisAuthorityCache
        from reverse_proxy_auth.app.gateway import IdentityGateway
        from reverse_proxy_auth.app.main import create_app
        from reverse_proxy_auth.app.realm import DirectoryBackedRealm

        connection = mocker.AsyncMock()
        connection.get.side_effect = redis.ConnectionError("redis down")
        gateway = IdentityGateway(
            DirectoryBackedRealm(realm_config, client=mock_directory),
            RedisAuthorityCache(connection),
        )
        with TestClient(create_app(settings=settings, gateway=gateway)) as client:
            response = client.get(
                "/check-header", headers={"x-forwarded-user": "testuser"}
            )

        assert response.status_code == 503
        assert response.json() == {"detail": "identity resolution failed"}
        mock_directory.search_for_dns.assert_not_called()

    def test_check_header_cache_hit(self, client, mock_directory):
        """Cached authorities are reused (LDAP not queried on second request)."""
        headers = {"x-forwarded-user": "cacheuser"}

        response1 = client.get("/check-header", headers=headers)
        assert response1.status_code == 200
        assert mock_directory.search_for_dns.call_count == 1

        response2 = client.get("/check-header", headers=headers)
        assert response2.status_code == 200
        assert mock_directory.search_for_dns.call_count == 1
        assert response2.headers["x-auth-authorities"] == (
            response1.headers["x-auth-authorities"]
        )

    def test_check_header_different_users(self, client, mock_directory):
        """Each identity has its own cache entry."""
        client.get("/check-header", headers={"x-forwarded-user": "alice"})
        client.get("/check-header", headers={"x-forwarded-user": "bob"})

        assert mock_directory.search_for_dns.call_count == 2

    def test_check_header_custom_header_name(self, settings, mock_directory, cache):
        """The header name comes from the realm configuration."""
        from fastapi.testclient import TestClient

        from reverse_proxy_auth.app.gateway import IdentityGateway
        from reverse_proxy_auth.app.main import create_app
        from reverse_proxy_auth.app.realm import DirectoryBackedRealm, RealmConfig

        config = RealmConfig(
            trusted_header="X-Remote-User",
            server="ldap://ldap.example.com",
            root_dn="dc=example,dc=com",
        )
        gateway = IdentityGateway(
            DirectoryBackedRealm(config, client=mock_directory), cache
        )
        with TestClient(create_app(settings=settings, gateway=gateway)) as client:
            ignored = client.get(
                "/check-header", headers={"x-forwarded-user": "someone"}
            )
            response = client.get(
                "/check-header", headers={"x-remote-user": "customuser"}
            )

        assert ignored.status_code == 401
        assert response.status_code == 200
        assert response.headers.get("x-auth-user") == "customuser"

    def test_check_header_without_directory(self, header_only_client):
        """Without an LDAP server every identity only gets ``authenticated``."""
        response = header_only_client.get(
            "/check-header", headers={"x-forwarded-user": "testuser"}
        )

        assert response.status_code == 200
        assert response.headers.get("x-auth-authorities") == "authenticated"


class TestWhoami:
    def test_whoami_anonymous(self, client):
        response = client.get("/whoami")

        assert response.status_code == 200
        assert response.json() == {
            "name": "anonymous",
            "authorities": [],
            "is_anonymous": True,
        }

    def test_whoami_user(self, client):
        response = client.get("/whoami", headers={"x-forwarded-user": "testuser"})

        assert response.status_code == 200
        assert response.json()["name"] == "testuser"
        assert "authenticated" in response.json()["authorities"]


class TestGroupsEndpoint:
    def test_group_found(self, client, mock_directory):
        mock_directory.search_for_single_attribute_values.return_value = {"admins"}

        response = client.get("/groups/admins")

        assert response.status_code == 200
        assert response.json() == {"name": "admins"}

    def test_group_not_found(self, client, mock_directory):
        mock_directory.search_for_single_attribute_values.return_value = set()

        response = client.get("/groups/nobody")

        assert response.status_code == 404

    def test_group_ldap_error(self, client, mock_directory):
        mock_directory.search_for_single_attribute_values.side_effect = (
            DirectoryUnavailable("down")
        )

        response = client.get("/groups/admins")

        assert response.status_code == 503

    def test_group_without_directory(self, header_only_client):
        response = header_only_client.get("/groups/admins")

        assert response.status_code == 503


class TestStatus:
    def test_status(self, client, header_only_client):
        assert client.get("/status").json() == {"status": "ok", "directory": True}
        assert header_only_client.get("/status").json() == {
            "status": "ok",
            "directory": False,
        }
