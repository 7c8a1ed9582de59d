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

"""Track release definitions and their local validation.

Everything here runs before the first API call, so a bad --user-fraction or
release notes file never costs an edit.
"""

import json
import math
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

from psc_errors import ValidationError

RELEASE_STATUSES = ("draft", "inProgress", "halted", "completed")
IN_PROGRESS = "inProgress"
_VERSION_CODE_RE = re.compile(r"^\d+$")


def parse_user_fraction(raw: Union[str, float, None]) -> Optional[float]:
    if raw is None:
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"--user-fraction must be a number, got {raw!r}")
    if not math.isfinite(value) or value <= 0 or value >= 1:
        raise ValidationError("--user-fraction must be greater than 0 and less than 1")
    return value


def parse_update_priority(raw: Union[str, int, None]) -> Optional[int]:
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise ValidationError("--in-app-update-priority must be an integer from 0 to 5")
    try:
        value = int(str(raw).strip())
    except ValueError:
        raise ValidationError("--in-app-update-priority must be an integer from 0 to 5")
    if value < 0 or value > 5:
        raise ValidationError("--in-app-update-priority must be an integer from 0 to 5")
    return value


def parse_version_codes(values: Union[str, Iterable[str], None]) -> Tuple[str, ...]:
    """Flatten repeated and comma separated --version-code values.

    Order is kept, duplicates dropped.
    """
    if values is None:
        values = []
    elif isinstance(values, (str, int)):
        values = [values]
    codes = []
    for value in values:
        for item in str(value).split(","):
            item = item.strip()
            if not item:
                continue
            if not _VERSION_CODE_RE.match(item) or int(item) <= 0:
                raise ValidationError(f"Invalid versionCode: {item}")
            if item not in codes:
                codes.append(item)
    if not codes:
        raise ValidationError("At least one --version-code is required")
    return tuple(codes)


def normalize_release_notes(parsed: Any) -> Dict[str, str]:
    """Map either release notes JSON shape to {language: text}.

    Accepted:
      [{"language": "en-US", "text": "Bug fixes"}, ...]
      {"en-US": "Bug fixes", ...}
    """
    notes: Dict[str, str] = {}
    if isinstance(parsed, list):
        for entry in parsed:
            language = entry.get("language") if isinstance(entry, dict) else None
            text = entry.get("text") if isinstance(entry, dict) else None
            if not language or not isinstance(text, str) or not text:
                raise ValidationError("Each release notes entry needs both language and text")
            notes[str(language)] = str(text)
        return notes
    if isinstance(parsed, dict):
        if not parsed:
            raise ValidationError("Release notes object is empty")
        for language, text in parsed.items():
            if not isinstance(text, str) or not text:
                raise ValidationError(f"Release notes text for {language} must be a non-empty string")
            notes[str(language)] = text
        return notes
    raise ValidationError("Release notes must be a JSON array or object")


def load_release_notes(path: Optional[str]) -> Optional[Dict[str, str]]:
    if not path:
        return None
    resolved = os.path.abspath(os.path.expanduser(path))
    if not os.path.isfile(resolved):
        raise ValidationError(f"Release notes file does not exist: {resolved}")
    try:
        with open(resolved, "r", encoding="utf-8") as f:
            raw = f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise ValidationError(f"Failed to read release notes file {resolved}: {e}")
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Failed to parse release notes JSON {resolved}: {e.msg}")
    return normalize_release_notes(parsed)


@dataclass(frozen=True)
class ReleaseOptions:
    status: str = "completed"
    name: Optional[str] = None
    user_fraction: Optional[float] = None
    update_priority: Optional[int] = None
    release_notes: Optional[Mapping[str, str]] = None

    def __post_init__(self):
        if self.status not in RELEASE_STATUSES:
            raise ValidationError(f"Invalid release status: {self.status} (expected one of {', '.join(RELEASE_STATUSES)})")
        if self.user_fraction is not None:
            parse_user_fraction(self.user_fraction)
        if self.status == IN_PROGRESS and self.user_fraction is None:
            raise ValidationError("Release status inProgress requires --user-fraction")
        if self.update_priority is not None:
            parse_update_priority(self.update_priority)
        if self.release_notes is not None and not self.release_notes:
            raise ValidationError("Release notes are empty")

    def release_for(self, version_codes: Union[str, Iterable[str]]) -> "ReleaseSpec":
        return ReleaseSpec(
            version_codes=parse_version_codes(version_codes),
            status=self.status,
            name=self.name,
            user_fraction=self.user_fraction,
            update_priority=self.update_priority,
            release_notes=self.release_notes,
        )


@dataclass(frozen=True)
class ReleaseSpec(ReleaseOptions):
    version_codes: Tuple[str, ...] = ()

    def __post_init__(self):
        super().__post_init__()
        if not self.version_codes:
            raise ValidationError("A release needs at least one versionCode")
        for code in self.version_codes:
            if not _VERSION_CODE_RE.match(str(code)) or int(code) <= 0:
                raise ValidationError(f"Invalid versionCode: {code}")

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "status": self.status,
            "versionCodes": [str(code) for code in self.version_codes],
        }
        if self.name:
            body["name"] = self.name
        if self.user_fraction is not None:
            body["userFraction"] = self.user_fraction
        if self.update_priority is not None:
            body["inAppUpdatePriority"] = self.update_priority
        if self.release_notes:
            body["releaseNotes"] = [{"language": lang, "text": text} for lang, text in self.release_notes.items()]
        return body


def build_release_options(
    status: Optional[str] = None,
    name: Optional[str] = None,
    user_fraction: Union[str, float, None] = None,
    update_priority: Union[str, int, None] = None,
    release_notes_file: Optional[str] = None,
) -> ReleaseOptions:
    """Turn raw CLI strings into validated ReleaseOptions."""
    return ReleaseOptions(
        status=status or "completed",
        name=name or None,
        user_fraction=parse_user_fraction(user_fraction),
        update_priority=parse_update_priority(update_priority),
        release_notes=load_release_notes(release_notes_file),
    )
