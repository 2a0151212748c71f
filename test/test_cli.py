import pytest
from click.testing import CliRunner

from reverse_proxy_auth.app.models import ProbeResult
from reverse_proxy_auth.cli import cli


@pytest.fixture
def runner(mocker):
    mocker.patch("reverse_proxy_auth.cli.configure_logging")
    return CliRunner()


class TestCheckServerCommand:
    def test_ok(self, runner, mocker):
        probe_class = mocker.patch("reverse_proxy_auth.cli.ConnectivityProbe")
        probe_class.return_value.check = mocker.AsyncMock(return_value=ProbeResult.ok())

        result = runner.invoke(
            cli, ["check-server", "ldap.example.com", "--bind-dn", "cn=admin,dc=x"]
        )

        assert result.exit_code == 0
        assert "Connected" in result.output
        probe_class.return_value.check.assert_awaited_once_with(
            "ldap.example.com", "cn=admin,dc=x", None
        )

    def test_error_exits_non_zero(self, runner, mocker):
        probe_class = mocker.patch("reverse_proxy_auth.cli.ConnectivityProbe")
        probe_class.return_value.check = mocker.AsyncMock(
            return_value=ProbeResult.error("unknown_host", "Unknown host: nope")
        )

        result = runner.invoke(cli, ["check-server", "nope"])

        assert result.exit_code == 1


class TestInferRootDNCommand:
    def test_prints_root_dn(self, runner, mocker):
        infer = mocker.patch(
            "reverse_proxy_auth.cli.infer_root_dn",
            new_callable=mocker.AsyncMock,
            return_value="dc=example,dc=com",
        )

        result = runner.invoke(cli, ["infer-root-dn", " ldap.example.com "])

        assert result.exit_code == 0
        assert result.output.strip() == "dc=example,dc=com"
        assert infer.call_args.args == ("ldap://ldap.example.com",)

    def test_failure_exits_non_zero(self, runner, mocker):
        mocker.patch(
            "reverse_proxy_auth.cli.infer_root_dn",
            new_callable=mocker.AsyncMock,
            return_value=None,
        )

        result = runner.invoke(cli, ["infer-root-dn", "ldap.example.com"])

        assert result.exit_code == 1


def test_start_runs_uvicorn(runner, mocker):
    run = mocker.patch("reverse_proxy_auth.cli.uvicorn.run")

    result = runner.invoke(cli, ["start", "--port", "9000"])

    assert result.exit_code == 0
    run.assert_called_once()
    assert run.call_args.args == ("reverse_proxy_auth.app.main:app",)
    assert run.call_args.kwargs["port"] == 9000
