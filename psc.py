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
psc: Google Play Developer API CLI for the edits workflow.

Every invocation loads a service account, signs one RS256 assertion, exchanges
it for one access token and then runs the requested command. Tokens are never
cached or written anywhere and are masked in all output.

Usage examples:
  - Check credentials:
      psc auth token --credentials sa.json
  - Full release to the internal track:
      psc publish submit --package-name com.example.app --aab app.aab --track internal
  - Staged rollout with release notes:
      psc publish submit --aab app.aab --track production \
        --status inProgress --user-fraction 0.1 --release-notes-file notes.json
"""

import argparse
import json
import logging
import sys
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from psc_auth import AccessToken, Credential, authorize_service_account, load_service_account_credential
from psc_config import load_profile, pick
from psc_errors import ConfigurationError, PscError
from psc_play_api import PlayEditsClient
from psc_publish import PublishOrchestrator, PublishRequest, ensure_bundle_file
from psc_release import build_release_options, parse_version_codes
from psc_secrets import SecretRedactionFilter, setup_logging

__version__ = "0.1.0"

LOG = logging.getLogger("psc")

PACKAGE_ENV = "PSC_PACKAGE_NAME"
SUBJECT_ENV = "PSC_IMPERSONATE_SUBJECT"
LOG_LEVEL_ENV = "PSC_LOG_LEVEL"


@dataclass
class PscContext:
    """Per-invocation state handed to every command."""

    credential: Credential
    access_token: AccessToken
    client: PlayEditsClient
    package_name: Optional[str]


def resolve_package_name(args, profile: Dict[str, Any], required: bool) -> Optional[str]:
    package_name = pick("package_name", getattr(args, "package_name", None), profile, env_name=PACKAGE_ENV)
    if required and not package_name:
        raise ConfigurationError(f"Package name not found. Pass --package-name or set {PACKAGE_ENV}.")
    return package_name


def create_context(args, profile: Dict[str, Any], redactor: SecretRedactionFilter, require_package: bool = False) -> PscContext:
    package_name = resolve_package_name(args, profile, require_package)
    credential = load_service_account_credential(pick("credentials", args.credentials, profile))
    subject = pick("subject", args.subject, profile, env_name=SUBJECT_ENV)
    LOG.info("Authorizing %s (source %s)", credential.principal_id, credential.source)
    access_token = authorize_service_account(credential, subject=subject)
    redactor.register(access_token.value)
    return PscContext(
        credential=credential,
        access_token=access_token,
        client=PlayEditsClient(access_token),
        package_name=package_name,
    )


def _expires_at(token: AccessToken) -> str:
    exp = token.expires_at
    return exp.isoformat() if exp else "(unknown)"


# ---------- auth ----------

def cmd_auth_token(args, profile, redactor) -> int:
    ctx = create_context(args, profile, redactor)
    print(f"serviceAccount: {ctx.credential.principal_id}")
    print(f"credentialsSource: {ctx.credential.source}")
    print(f"accessToken: {ctx.access_token.masked()}")
    print(f"expiresAt: {_expires_at(ctx.access_token)}")
    return 0


def cmd_auth_status(args, profile, redactor) -> int:
    ctx = create_context(args, profile, redactor)
    print(f"serviceAccount: {ctx.credential.principal_id}")
    print(f"credentialsSource: {ctx.credential.source}")
    print("tokenIssued: yes")
    print(f"accessToken: {ctx.access_token.masked()}")
    print(f"expiresAt: {_expires_at(ctx.access_token)}")

    if not ctx.package_name:
        print(f"packageAccess: skipped (needs --package-name or {PACKAGE_ENV})")
        return 0
    if not args.probe_edit:
        print("packageAccess: not checked (pass --probe-edit to create an uncommitted probe edit)")
        return 0

    LOG.warning("Probe edit for %s is never committed and stays open until the server expires it.", ctx.package_name)
    edit = ctx.client.create_edit(ctx.package_name)
    print("packageAccess: ok")
    print(f"packageName: {ctx.package_name}")
    print(f"probeEditId: {edit.edit_id}")
    print(f"probeEditExpiry: {edit.expiry_time_seconds or '(none)'}")
    print("note: probe edit was not committed")
    return 0


# ---------- edits ----------

def cmd_edits_create(args, profile, redactor) -> int:
    ctx = create_context(args, profile, redactor, require_package=True)
    edit = ctx.client.create_edit(ctx.package_name)
    print(f"packageName: {ctx.package_name}")
    print(f"editId: {edit.edit_id}")
    print(f"expiryTimeSeconds: {edit.expiry_time_seconds or '(none)'}")
    return 0


def cmd_edits_validate(args, profile, redactor) -> int:
    ctx = create_context(args, profile, redactor, require_package=True)
    ctx.client.validate_edit(ctx.package_name, args.edit_id)
    print(f"packageName: {ctx.package_name}")
    print(f"editId: {args.edit_id}")
    print("validated: yes")
    return 0


def cmd_edits_commit(args, profile, redactor) -> int:
    ctx = create_context(args, profile, redactor, require_package=True)
    resp = ctx.client.commit_edit(ctx.package_name, args.edit_id, args.changes_not_sent_for_review)
    print(f"packageName: {ctx.package_name}")
    print(f"editId: {resp.get('id') or args.edit_id}")
    print("committed: yes")
    return 0


# ---------- bundles / tracks ----------

def cmd_bundles_upload(args, profile, redactor) -> int:
    aab_path = ensure_bundle_file(args.aab)
    ctx = create_context(args, profile, redactor, require_package=True)
    upload = ctx.client.upload_bundle(ctx.package_name, args.edit_id, aab_path)
    print(f"packageName: {ctx.package_name}")
    print(f"editId: {args.edit_id}")
    print(f"aabPath: {aab_path}")
    print(f"versionCode: {upload.version_code}")
    if upload.sha1:
        print(f"sha1: {upload.sha1}")
    if upload.sha256:
        print(f"sha256: {upload.sha256}")
    return 0


def cmd_tracks_get(args, profile, redactor) -> int:
    track = _require_track(args, profile)
    ctx = create_context(args, profile, redactor, require_package=True)
    print(json.dumps(ctx.client.get_track(ctx.package_name, args.edit_id, track), indent=2))
    return 0


def cmd_tracks_update(args, profile, redactor) -> int:
    track = _require_track(args, profile)
    version_codes = parse_version_codes(args.version_code)
    release = _release_options(args, profile).release_for(version_codes)
    ctx = create_context(args, profile, redactor, require_package=True)
    print(json.dumps(ctx.client.update_track(ctx.package_name, args.edit_id, track, release), indent=2))
    return 0


# ---------- publish ----------

def cmd_publish_submit(args, profile, redactor) -> int:
    # everything local is checked before the token exchange
    track = _require_track(args, profile)
    options = _release_options(args, profile)
    aab_path = ensure_bundle_file(args.aab)
    resolve_package_name(args, profile, required=True)

    ctx = create_context(args, profile, redactor, require_package=True)
    request = PublishRequest(
        package_name=ctx.package_name,
        bundle_path=aab_path,
        track=track,
        release=options,
        changes_not_sent_for_review=args.changes_not_sent_for_review,
    )
    outcome = PublishOrchestrator(ctx.client).submit(request)
    outcome.raise_for_failure()

    if args.json:
        print(json.dumps(outcome.to_dict(), indent=2))
        return 0
    print(f"packageName: {ctx.package_name}")
    print(f"editId: {outcome.created_edit_id}")
    print(f"aabPath: {aab_path}")
    print(f"uploadedVersionCode: {outcome.uploaded_version_code}")
    print(f"track: {outcome.track}")
    print(f"releaseStatus: {outcome.status}")
    print("validated: yes")
    print("committed: yes")
    print(f"committedEditId: {outcome.edit_id}")
    if outcome.track_releases:
        print(f"trackReleases: {outcome.track_releases}")
    return 0


def _require_track(args, profile) -> str:
    track = pick("track", args.track, profile)
    if not track:
        raise ConfigurationError("--track is required (internal, alpha, beta, production, ...)")
    return track


def _release_options(args, profile):
    return build_release_options(
        status=pick("status", args.status, profile),
        name=args.release_name,
        user_fraction=args.user_fraction,
        update_priority=args.in_app_update_priority,
        release_notes_file=args.release_notes_file,
    )


# ---------- argument parsing ----------

def _common_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(add_help=False)
    p.add_argument("--config-file", default=None, help="Optional INI or TOML profile file (default: $PSC_CONFIG_FILE)")
    p.add_argument("--profile", default=None, help="Profile section inside --config-file (default: DEFAULT)")
    p.add_argument("--log-level", default=None, help="Logging level (DEBUG, INFO, WARNING, ERROR; default WARNING)")
    p.add_argument("--credentials", default=None, help="Service account JSON file path")
    p.add_argument("--subject", default=None, help="User to impersonate with domain-wide delegation")
    return p


def _package_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(add_help=False)
    p.add_argument("--package-name", default=None, help=f"Android package name, e.g. com.example.app (default: ${PACKAGE_ENV})")
    return p


def _release_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(add_help=False)
    p.add_argument("--status", default=None, help="Release status: draft, inProgress, halted, completed (default completed)")
    p.add_argument("--release-name", default=None, help="Release name")
    p.add_argument("--user-fraction", default=None, help="Rollout fraction for inProgress, strictly between 0 and 1")
    p.add_argument("--in-app-update-priority", default=None, help="In-app update priority (0-5)")
    p.add_argument("--release-notes-file", default=None, help="Release notes JSON: [{language, text}] or {language: text}")
    return p


def build_parser() -> argparse.ArgumentParser:
    common = _common_parser()
    pkg = _package_parser()
    rel = _release_parser()

    parser = argparse.ArgumentParser(prog="psc", description="Google Play Developer API CLI (edits workflow)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    groups = parser.add_subparsers(dest="group", required=True)

    auth = groups.add_parser("auth", help="Authentication checks").add_subparsers(dest="command", required=True)
    p = auth.add_parser("token", parents=[common], help="Issue an access token and print it masked")
    p.set_defaults(handler=cmd_auth_token)
    p = auth.add_parser("status", parents=[common, pkg], help="Check credentials and, optionally, package access")
    p.add_argument("--probe-edit", action="store_true", help="Create an uncommitted edit to prove package access")
    p.set_defaults(handler=cmd_auth_status)

    edits = groups.add_parser("edits", help="Manage edits").add_subparsers(dest="command", required=True)
    p = edits.add_parser("create", parents=[common, pkg], help="Create a new edit")
    p.set_defaults(handler=cmd_edits_create)
    p = edits.add_parser("validate", parents=[common, pkg], help="Validate an edit")
    p.add_argument("--edit-id", required=True)
    p.set_defaults(handler=cmd_edits_validate)
    p = edits.add_parser("commit", parents=[common, pkg], help="Commit an edit")
    p.add_argument("--edit-id", required=True)
    p.add_argument("--changes-not-sent-for-review", action="store_true", help="Apply changes without sending them for review")
    p.set_defaults(handler=cmd_edits_commit)

    bundles = groups.add_parser("bundles", help="Upload app bundles").add_subparsers(dest="command", required=True)
    p = bundles.add_parser("upload", parents=[common, pkg], help="Upload an .aab into an edit")
    p.add_argument("--edit-id", required=True)
    p.add_argument("--aab", required=True, help=".aab file path")
    p.set_defaults(handler=cmd_bundles_upload)

    tracks = groups.add_parser("tracks", help="Read or update tracks").add_subparsers(dest="command", required=True)
    p = tracks.add_parser("get", parents=[common, pkg], help="Show a track")
    p.add_argument("--edit-id", required=True)
    p.add_argument("--track", default=None, help="Track name (internal, alpha, beta, production, ...)")
    p.set_defaults(handler=cmd_tracks_get)
    p = tracks.add_parser("update", parents=[common, pkg, rel], help="Replace a track's release")
    p.add_argument("--edit-id", required=True)
    p.add_argument("--track", default=None, help="Track name (internal, alpha, beta, production, ...)")
    p.add_argument("--version-code", action="append", default=[], help="versionCode to release (repeat or comma separate)")
    p.set_defaults(handler=cmd_tracks_update)

    publish = groups.add_parser("publish", help="Full release flow").add_subparsers(dest="command", required=True)
    p = publish.add_parser("submit", parents=[common, pkg, rel], help="create -> upload -> track update -> validate -> commit")
    p.add_argument("--aab", required=True, help=".aab file path")
    p.add_argument("--track", default=None, help="Track name (internal, alpha, beta, production, ...)")
    p.add_argument("--changes-not-sent-for-review", action="store_true", help="Apply changes without sending them for review")
    p.add_argument("--json", action="store_true", help="Print the result as JSON")
    p.set_defaults(handler=cmd_publish_submit)

    return parser


def main(argv: Optional[list] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        profile = load_profile(args.config_file, args.profile)
        redactor = setup_logging(LOG, pick("log_level", args.log_level, profile, env_name=LOG_LEVEL_ENV))
        return args.handler(args, profile, redactor)
    except PscError as e:
        print(f"Error: {e}", file=sys.stderr)
        return e.exit_code
    except requests.RequestException as e:
        print(f"Error: request failed: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
