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

"""Thin client for the Google Play Developer API v3 edits resource.

One HTTP call per method, no state beyond the bearer token. Response bodies are
passed back as-is except for the fields needed to chain calls.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union
from urllib.parse import quote

import requests

from psc_auth import AccessToken
from psc_errors import TransportError, UnexpectedResponseError
from psc_release import ReleaseSpec

LOG = logging.getLogger("psc.play_api")

PLAY_API_ROOT = "https://androidpublisher.googleapis.com"
EDITS_BASE = PLAY_API_ROOT + "/androidpublisher/v3/applications/{package}/edits"
UPLOAD_EDITS_BASE = PLAY_API_ROOT + "/upload/androidpublisher/v3/applications/{package}/edits"


@dataclass(frozen=True)
class EditSession:
    package_name: str
    edit_id: str
    expiry_time_seconds: Optional[str] = None


@dataclass(frozen=True)
class BundleUpload:
    version_code: str
    sha1: Optional[str] = None
    sha256: Optional[str] = None


def _q(value: str) -> str:
    return quote(str(value), safe="")


class PlayEditsClient:
    def __init__(self, access_token: Union[AccessToken, str], session: Optional[requests.Session] = None):
        token = access_token.value if isinstance(access_token, AccessToken) else access_token
        self._session = session or requests.Session()
        self._auth_header = f"Bearer {token}"

    def __repr__(self) -> str:
        return "PlayEditsClient(token redacted)"

    # ---------- plumbing ----------

    def _edits_url(self, package_name: str, suffix: str = "") -> str:
        return EDITS_BASE.format(package=_q(package_name)) + suffix

    def _request(self, action: str, method: str, url: str, **kwargs) -> Dict[str, Any]:
        headers = kwargs.pop("headers", {})
        headers["Authorization"] = self._auth_header
        LOG.debug("%s %s", method, url)
        resp = self._session.request(method, url, headers=headers, **kwargs)
        if not 200 <= resp.status_code < 300:
            raise TransportError(action, resp.status_code, resp.text)
        if not resp.content:
            return {}
        try:
            body = resp.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    # ---------- edits ----------

    def create_edit(self, package_name: str) -> EditSession:
        body = self._request("edit create", "POST", self._edits_url(package_name), json={})
        edit_id = body.get("id")
        if not edit_id:
            raise UnexpectedResponseError("edit create", 200, "edit create failed: missing id")
        LOG.info("Created edit %s for %s", edit_id, package_name)
        return EditSession(
            package_name=package_name,
            edit_id=str(edit_id),
            expiry_time_seconds=body.get("expiryTimeSeconds"),
        )

    def upload_bundle(self, package_name: str, edit_id: str, bundle_path: str) -> BundleUpload:
        url = UPLOAD_EDITS_BASE.format(package=_q(package_name)) + f"/{_q(edit_id)}/bundles"
        LOG.info("Uploading bundle %s to edit %s", bundle_path, edit_id)
        with open(bundle_path, "rb") as fh:
            body = self._request(
                "bundle upload",
                "POST",
                url,
                params={"uploadType": "media"},
                headers={"Content-Type": "application/octet-stream"},
                data=fh,
            )
        version_code = body.get("versionCode")
        if version_code is None or version_code == "":
            raise UnexpectedResponseError("bundle upload", 200, "bundle upload response has no versionCode")
        return BundleUpload(
            version_code=str(version_code),
            sha1=body.get("sha1"),
            sha256=body.get("sha256"),
        )

    def get_track(self, package_name: str, edit_id: str, track: str) -> Dict[str, Any]:
        url = self._edits_url(package_name, f"/{_q(edit_id)}/tracks/{_q(track)}")
        return self._request("track get", "GET", url)

    def update_track(self, package_name: str, edit_id: str, track: str, release: ReleaseSpec) -> Dict[str, Any]:
        url = self._edits_url(package_name, f"/{_q(edit_id)}/tracks/{_q(track)}")
        payload = {
            "track": track,
            "releases": [release.to_body()],
        }
        LOG.info("Updating track %s in edit %s (status=%s, versionCodes=%s)", track, edit_id, release.status, ",".join(release.version_codes))
        return self._request("track update", "PUT", url, json=payload)

    def validate_edit(self, package_name: str, edit_id: str) -> Dict[str, Any]:
        LOG.info("Validating edit %s", edit_id)
        return self._request("edit validate", "POST", self._edits_url(package_name, f"/{_q(edit_id)}:validate"))

    def commit_edit(self, package_name: str, edit_id: str, changes_not_sent_for_review: bool = False) -> Dict[str, Any]:
        params = {"changesNotSentForReview": "true"} if changes_not_sent_for_review else None
        LOG.info("Committing edit %s", edit_id)
        return self._request("edit commit", "POST", self._edits_url(package_name, f"/{_q(edit_id)}:commit"), params=params)
