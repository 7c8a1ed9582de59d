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

import logging
import sys
from typing import Optional, Set

PREFIX_RANGE = range(6, 11)
SUFFIX_RANGE = range(4, 7)
LOG_FORMAT = "%(asctime)s %(levelname)s: %(message)s"


# ---------- Masking ----------

def mask_secret(secret: Optional[str], prefix_len: int = 8, suffix_len: int = 4, redaction_char: str = "*") -> str:
    """Return a display-safe form of a token.

    Short values are replaced entirely so no character of the secret leaks.
    """
    if prefix_len not in PREFIX_RANGE:
        raise ValueError(f"prefix_len must be between 6 and 10, got {prefix_len}")
    if suffix_len not in SUFFIX_RANGE:
        raise ValueError(f"suffix_len must be between 4 and 6, got {suffix_len}")
    if secret is None:
        return "(none)"
    if len(secret) <= prefix_len + suffix_len:
        return redaction_char * len(secret)
    return f"{secret[:prefix_len]}...{secret[-suffix_len:]}"


# ---------- Logging ----------

class SecretRedactionFilter(logging.Filter):
    """Rewrite log records that would print a registered secret."""

    def __init__(self):
        super().__init__()
        self._secrets: Set[str] = set()

    def register(self, secret: Optional[str]) -> None:
        if secret:
            self._secrets.add(secret)

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True
        msg = record.getMessage()
        redacted = msg
        for secret in self._secrets:
            if secret in redacted:
                redacted = redacted.replace(secret, mask_secret(secret))
        if redacted != msg:
            record.msg = redacted
            record.args = None
        return True


def setup_logging(logger: logging.Logger, level_str: str) -> SecretRedactionFilter:
    level = getattr(logging, str(level_str).upper(), logging.INFO)
    if not isinstance(level, int):
        level = logging.INFO
    # one handler per logger even when a CLI entry point runs more than once
    for old in list(logger.handlers):
        if any(isinstance(f, SecretRedactionFilter) for f in old.filters):
            logger.removeHandler(old)
    redactor = SecretRedactionFilter()
    h = logging.StreamHandler(sys.stderr)
    h.setFormatter(logging.Formatter(LOG_FORMAT))
    h.addFilter(redactor)
    logger.addHandler(h)
    logger.setLevel(level)
    return redactor
