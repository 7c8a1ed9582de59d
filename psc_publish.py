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

"""Publish transaction: create -> upload -> track update -> validate -> commit.

Each state is entered by exactly one API call. The first failure stops the
sequence and leaves the edit for the server to expire; there is nothing to roll
back because edits only take effect on commit.
"""

import enum
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from psc_errors import PscError, PublishError, ValidationError
from psc_play_api import PlayEditsClient
from psc_release import ReleaseOptions

LOG = logging.getLogger("psc.publish")


class PublishState(enum.Enum):
    IDLE = "idle"
    EDIT_CREATED = "editCreated"
    BUNDLE_UPLOADED = "bundleUploaded"
    TRACK_UPDATED = "trackUpdated"
    VALIDATED = "validated"
    COMMITTED = "committed"
    FAILED = "failed"


# step name entered from each state
STEP_CREATE = "create_edit"
STEP_UPLOAD = "upload_bundle"
STEP_TRACK = "update_track"
STEP_VALIDATE = "validate_edit"
STEP_COMMIT = "commit_edit"


@dataclass(frozen=True)
class PublishRequest:
    package_name: str
    bundle_path: str
    track: str
    release: ReleaseOptions = field(default_factory=ReleaseOptions)
    changes_not_sent_for_review: bool = False


@dataclass
class PublishOutcome:
    track: str
    status: str
    state: PublishState = PublishState.IDLE
    created_edit_id: Optional[str] = None
    edit_id: Optional[str] = None
    uploaded_version_code: Optional[str] = None
    track_releases: Optional[int] = None
    failed_step: Optional[str] = None
    error: Optional[BaseException] = None
    history: List[PublishState] = field(default_factory=list)

    @property
    def committed(self) -> bool:
        return self.state is PublishState.COMMITTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "editId": self.edit_id,
            "uploadedVersionCode": self.uploaded_version_code,
            "track": self.track,
            "status": self.status,
            "committed": self.committed,
        }

    def raise_for_failure(self) -> None:
        if self.state is PublishState.FAILED:
            raise PublishError(self.failed_step or "unknown", self.edit_id, self.error)


def ensure_bundle_file(bundle_path: Optional[str]) -> str:
    if not bundle_path:
        raise ValidationError("--aab is required")
    resolved = os.path.abspath(os.path.expanduser(bundle_path))
    if not os.path.exists(resolved):
        raise ValidationError(f"AAB file does not exist: {resolved}")
    if not os.path.isfile(resolved):
        raise ValidationError(f"AAB path is not a file: {resolved}")
    return resolved


class PublishOrchestrator:
    def __init__(self, client: PlayEditsClient):
        self._client = client

    def submit(self, request: PublishRequest) -> PublishOutcome:
        """Run the whole transaction and report where it ended.

        Local validation errors are raised before any call. Remote failures are
        returned in the outcome (state FAILED, failed_step, error) so the caller
        decides how to surface them; raise_for_failure() turns them into a
        PublishError.
        """
        bundle_path = ensure_bundle_file(request.bundle_path)
        outcome = PublishOutcome(track=request.track, status=request.release.status)
        outcome.history.append(PublishState.IDLE)
        pkg = request.package_name

        def advance(state: PublishState) -> None:
            outcome.state = state
            outcome.history.append(state)
            LOG.info("Publish %s: %s", pkg, state.value)

        step = STEP_CREATE
        try:
            edit = self._client.create_edit(pkg)
            outcome.created_edit_id = outcome.edit_id = edit.edit_id
            advance(PublishState.EDIT_CREATED)

            step = STEP_UPLOAD
            upload = self._client.upload_bundle(pkg, edit.edit_id, bundle_path)
            outcome.uploaded_version_code = upload.version_code
            advance(PublishState.BUNDLE_UPLOADED)

            step = STEP_TRACK
            release = request.release.release_for([upload.version_code])
            track_result = self._client.update_track(pkg, edit.edit_id, request.track, release)
            releases = track_result.get("releases")
            if isinstance(releases, list):
                outcome.track_releases = len(releases)
            advance(PublishState.TRACK_UPDATED)

            step = STEP_VALIDATE
            self._client.validate_edit(pkg, edit.edit_id)
            advance(PublishState.VALIDATED)

            step = STEP_COMMIT
            commit = self._client.commit_edit(pkg, edit.edit_id, request.changes_not_sent_for_review)
            # the commit response id wins if the server renumbered the edit
            outcome.edit_id = str(commit.get("id") or edit.edit_id)
            advance(PublishState.COMMITTED)
        except (PscError, requests.RequestException, OSError) as e:
            outcome.failed_step = step
            outcome.error = e
            outcome.state = PublishState.FAILED
            outcome.history.append(PublishState.FAILED)
            LOG.error("Publish %s failed at %s (editId=%s): %s", pkg, step, outcome.edit_id, e)
        return outcome
