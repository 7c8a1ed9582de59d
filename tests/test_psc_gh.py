import json
import os
from unittest import mock

import pytest

import psc_gh
from psc_auth import InstallationToken, decode_segment
from psc_errors import TransportError
from psc_gh import run_gh_with_token, split_gh_args

RAW_TOKEN = "ghs_1234567890abcdefghijklmnop"


@pytest.fixture
def pem_file(tmp_path, rsa_pem):
    path = tmp_path / "app.pem"
    path.write_text(rsa_pem, encoding="utf-8")
    return str(path)


@pytest.fixture
def issue(monkeypatch):
    token = InstallationToken(value=RAW_TOKEN, expires_at="2026-01-01T01:00:00Z", repositories_count=3)
    m = mock.Mock(return_value=token)
    monkeypatch.setattr(psc_gh, "issue_installation_token", m)
    return m


# Test intent: --token-only prints metadata with the token masked to the
# (6, 4) shape and never the raw value.
def test_token_only_prints_masked_metadata(issue, pem_file, capsys):
    rc = psc_gh.main(["--app-id", "2913321", "--installation-id", "456", "--pem-path", pem_file, "--token-only"])

    out = capsys.readouterr().out
    assert rc == 0
    assert RAW_TOKEN not in out
    assert json.loads(out) == {
        "appId": "2913321",
        "installationId": "456",
        "token": "ghs_12...mnop",
        "expiresAt": "2026-01-01T01:00:00Z",
        "repositoriesCount": 3,
    }
    app_jwt, installation_id = issue.call_args[0]
    assert installation_id == "456"
    claims = decode_segment(app_jwt.compact.split(".")[1])
    assert claims["iss"] == 2913321
    assert claims["exp"] - claims["iat"] == 600


# Test intent: options may come from environment variables.
def test_options_from_environment(issue, pem_file, monkeypatch, capsys):
    monkeypatch.setenv("PSC_GH_APP_ID", "11")
    monkeypatch.setenv("PSC_GH_INSTALLATION_ID", "22")
    monkeypatch.setenv("PSC_GH_PRIVATE_KEY_PATH", pem_file)

    rc = psc_gh.main(["--token-only"])

    assert rc == 0
    assert json.loads(capsys.readouterr().out)["installationId"] == "22"


def test_missing_options_exit_code(capsys):
    rc = psc_gh.main(["--token-only"])

    err = capsys.readouterr().err
    assert rc == 2
    assert "[psc-gh] failed" in err
    assert "--app-id" in err


def test_no_gh_args_prints_help(issue, pem_file, capsys):
    rc = psc_gh.main(["--app-id", "1", "--installation-id", "2", "--pem-path", pem_file])

    assert rc == 1
    assert "No gh arguments given" in capsys.readouterr().err
    issue.assert_not_called()


# Test intent: remaining arguments go to gh unchanged, a leading "gh" is
# dropped, and the token only travels in the child environment.
def test_passthrough_runs_gh_with_token_env(issue, pem_file, capsys):
    with mock.patch("subprocess.run") as m_run:
        m_run.return_value.returncode = 0

        rc = psc_gh.main(["--app-id", "1", "--installation-id", "2", "--pem-path", pem_file, "--", "gh", "repo", "view", "org/repo"])

    assert rc == 0
    args, kwargs = m_run.call_args
    assert args[0] == ["gh", "repo", "view", "org/repo"]
    assert kwargs["env"]["GH_TOKEN"] == RAW_TOKEN
    assert kwargs["env"]["GITHUB_TOKEN"] == ""
    assert RAW_TOKEN not in capsys.readouterr().out
    assert os.environ.get("GH_TOKEN") != RAW_TOKEN


def test_passthrough_without_separator(issue, pem_file):
    with mock.patch("subprocess.run") as m_run:
        m_run.return_value.returncode = 4

        rc = psc_gh.main(["--app-id", "1", "--installation-id", "2", "--pem-path", pem_file, "api", "/repos/org/repo"])

    assert rc == 4
    assert m_run.call_args[0][0] == ["gh", "api", "/repos/org/repo"]


def test_installation_token_failure(issue, pem_file, capsys):
    issue.side_effect = TransportError("installation token issuance", 401, "Bad credentials")

    rc = psc_gh.main(["--app-id", "1", "--installation-id", "2", "--pem-path", pem_file, "--token-only"])

    err = capsys.readouterr().err
    assert rc == 1
    assert "[psc-gh] failed" in err
    assert "[HTTP 401]" in err


# Test intent: a missing gh binary maps to exit code 127.
def test_run_gh_missing_binary_returns_127():
    with mock.patch("subprocess.run", side_effect=FileNotFoundError("gh")):
        assert run_gh_with_token(["repo", "list"], "tok") == 127


def test_run_gh_os_error_returns_1():
    with mock.patch("subprocess.run", side_effect=PermissionError(13, "Permission denied")):
        assert run_gh_with_token(["repo", "list"], "tok") == 1


# Test intent: psc-gh options are only read before the gh command; flags that
# follow it belong to gh even when psc-gh has an option of the same name.
@pytest.mark.parametrize("gh_args", [
    ["pr", "list", "--help"],
    ["repo", "view", "--token-only"],
    ["api", "/user", "--app-id", "9"],
])
def test_flags_after_gh_command_are_passed_through(issue, pem_file, gh_args):
    with mock.patch("subprocess.run") as m_run:
        m_run.return_value.returncode = 0

        rc = psc_gh.main(["--app-id", "1", "--installation-id", "2", "--pem-path", pem_file] + gh_args)

    assert rc == 0
    assert m_run.call_args[0][0] == ["gh"] + gh_args
    issue.assert_called_once()


def test_split_gh_args():
    assert split_gh_args(["--app-id", "1", "--token-only", "repo", "view", "--web"]) == (
        ["--app-id", "1", "--token-only"],
        ["repo", "view", "--web"],
    )
    assert split_gh_args(["--pem-path", "k.pem", "--", "--version"]) == (["--pem-path", "k.pem"], ["--version"])
    assert split_gh_args(["--app-id=1", "gh", "status"]) == (["--app-id=1"], ["gh", "status"])
    assert split_gh_args(["--token-only"]) == (["--token-only"], [])
