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

"""Error types shared by the psc and psc-gh tools.

Every error carries the process exit code the CLIs return for it. Config and
validation problems use 2 (same as a bad command line), everything else 1.
"""

from typing import Optional


class PscError(Exception):
    exit_code = 1


class ConfigurationError(PscError):
    exit_code = 2


class CredentialNotFoundError(ConfigurationError):
    pass


class ValidationError(PscError):
    exit_code = 2


class SigningError(PscError):
    pass


class TransportError(PscError):
    """Non-2xx response from a remote endpoint.

    The body is kept verbatim; token endpoints and the publishing API only put
    error descriptions there.
    """

    def __init__(self, action: str, status: Optional[int], body: str, message: Optional[str] = None):
        self.action = action
        self.status = status
        self.body = body
        if message is None:
            message = f"{action} failed [HTTP {status}]: {body}"
        super().__init__(message)


class UnexpectedResponseError(TransportError):
    """2xx response that lacks a field needed to continue."""

    def __init__(self, action: str, status: Optional[int], message: str):
        super().__init__(action, status, "", message=message)


class PublishError(PscError):
    """A publish step failed; carries enough state to resume by hand."""

    def __init__(self, step: str, edit_id: Optional[str], cause: BaseException):
        self.step = step
        self.edit_id = edit_id
        self.cause = cause
        self.exit_code = getattr(cause, "exit_code", 1)
        where = f"editId={edit_id}" if edit_id else "no edit created"
        super().__init__(f"publish failed at step '{step}' ({where}): {cause}")
