#!/usr/bin/env python3
# MIT License
# Copyright (c) 2025 Gordon Trevorrow
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
# The above copyright notice and this permission notice shall be included in all
# copies or substantial portions of the Software.
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.

"""
psc-gh: run the GitHub CLI with a GitHub App installation token.

The app JWT (iat now-60s, exp now+540s) is signed locally, exchanged for an
installation token and handed to `gh` through GH_TOKEN in the child
environment only. The token is never printed unmasked.

Usage examples:
  - psc-gh --app-id 123 --installation-id 456 --pem-path ~/app.pem repo view org/repo
  - psc-gh -- api /repos/org/repo
  - psc-gh --token-only
"""

import argparse
import json
import logging
import os
import subprocess
import sys
from typing import List, Optional, Tuple

import requests

from psc_auth import app_claims, issue_assertion, issue_installation_token, load_app_credential
from psc_config import load_profile, pick
from psc_errors import ConfigurationError, PscError
from psc_secrets import setup_logging

LOG = logging.getLogger("psc.gh")

APP_ID_ENV = "PSC_GH_APP_ID"
INSTALLATION_ID_ENV = "PSC_GH_INSTALLATION_ID"
PEM_PATH_ENV = "PSC_GH_PRIVATE_KEY_PATH"
LOG_LEVEL_ENV = "PSC_LOG_LEVEL"


def run_gh_with_token(gh_args: List[str], token: str) -> int:
    env = dict(os.environ)
    env["GH_TOKEN"] = token
    # an inherited GITHUB_TOKEN would take precedence inside gh
    env["GITHUB_TOKEN"] = ""
    full = ["gh"] + list(gh_args)
    LOG.info("Executing: %s", " ".join(full))
    try:
        return subprocess.run(full, env=env).returncode
    except FileNotFoundError as e:
        LOG.error("Command not found: %s", e)
        return 127
    except OSError as e:
        LOG.error("Command error (token redacted): %s", e.strerror)
        return 1


# psc-gh options that take a value; the rest are flags
VALUE_OPTIONS = ("--app-id", "--installation-id", "--pem-path", "--config-file", "--profile", "--log-level")


def split_gh_args(argv: List[str]) -> Tuple[List[str], List[str]]:
    """Split argv into psc-gh options and the gh command line.

    psc-gh options come first. The first non-option token, or everything after
    "--", starts the gh arguments, which are passed on untouched even when they
    look like psc-gh options (`psc-gh pr list --help`).
    """
    own: List[str] = []
    i = 0
    while i < len(argv):
        token = argv[i]
        if token == "--":
            return own, argv[i + 1:]
        if not token.startswith("-"):
            return own, argv[i:]
        own.append(token)
        if token in VALUE_OPTIONS and i + 1 < len(argv):
            own.append(argv[i + 1])
            i += 1
        i += 1
    return own, []


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="psc-gh",
        description="Run gh CLI with a GitHub App installation token",
        allow_abbrev=False,
    )
    p.add_argument("--app-id", default=None, help=f"GitHub App ID (default: ${APP_ID_ENV})")
    p.add_argument("--installation-id", default=None, help=f"GitHub App installation ID (default: ${INSTALLATION_ID_ENV})")
    p.add_argument("--pem-path", default=None, help=f"GitHub App private key PEM path (default: ${PEM_PATH_ENV})")
    p.add_argument("--token-only", action="store_true", help="Print masked token metadata only")
    p.add_argument("--config-file", default=None, help="Optional INI or TOML profile file")
    p.add_argument("--profile", default=None, help="Profile section inside --config-file")
    p.add_argument("--log-level", default=None, help="Logging level (DEBUG, INFO, WARNING, ERROR; default WARNING)")
    return p


def main(argv: Optional[list] = None) -> int:
    p = build_parser()
    argv = sys.argv[1:] if argv is None else list(argv)
    own, gh_args = split_gh_args(argv)
    args = p.parse_args(own)
    if gh_args and gh_args[0] == "gh":
        gh_args = gh_args[1:]

    try:
        profile = load_profile(args.config_file, args.profile)
        redactor = setup_logging(logging.getLogger("psc"), pick("log_level", args.log_level, profile, env_name=LOG_LEVEL_ENV))

        app_id = pick("app_id", args.app_id, profile, env_name=APP_ID_ENV, cast=str)
        installation_id = pick("installation_id", args.installation_id, profile, env_name=INSTALLATION_ID_ENV, cast=str)
        pem_path = pick("pem_path", args.pem_path, profile, env_name=PEM_PATH_ENV)
        missing = [name for name, val in (("--app-id", app_id), ("--installation-id", installation_id), ("--pem-path", pem_path)) if not val]
        if missing:
            raise ConfigurationError(f"Missing required options: {', '.join(missing)}. Provide via CLI, environment or config file.")

        if not args.token_only and not gh_args:
            p.print_help()
            print("\nNo gh arguments given. Example: psc-gh repo view org/repo", file=sys.stderr)
            return 1

        credential = load_app_credential(app_id, pem_path)
        app_jwt = issue_assertion(credential, app_claims)
        issued = issue_installation_token(app_jwt, installation_id)
        redactor.register(issued.value)
    except PscError as e:
        print("[psc-gh] failed", file=sys.stderr)
        print(str(e), file=sys.stderr)
        return e.exit_code
    except requests.RequestException as e:
        print("[psc-gh] failed", file=sys.stderr)
        print(f"request failed: {e}", file=sys.stderr)
        return 1

    if args.token_only:
        print(json.dumps({
            "appId": app_id,
            "installationId": installation_id,
            "token": issued.masked(),
            "expiresAt": issued.expires_at,
            "repositoriesCount": issued.repositories_count,
        }, indent=2))
        return 0

    rc = run_gh_with_token(gh_args, issued.value)
    if rc != 0:
        LOG.error("gh exited with code %s", rc)
    return rc


if __name__ == "__main__":
    sys.exit(main())
