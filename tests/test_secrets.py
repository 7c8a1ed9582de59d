import logging

import pytest

from psc_secrets import SecretRedactionFilter, mask_secret, setup_logging


# Test intent: a secret no longer than prefix+suffix must be fully replaced by
# the redaction character, keeping only its length.
@pytest.mark.parametrize("secret", ["a", "abcdef", "abcdefghijkl", "x" * 16])
def test_mask_short_secret_is_fully_redacted(secret):
    masked = mask_secret(secret, prefix_len=10, suffix_len=6)

    assert masked == "*" * len(secret)
    assert set(masked) <= {"*"}


# Test intent: the boundary length (exactly prefix+suffix) is still "short".
def test_mask_boundary_length_reveals_nothing():
    secret = "ABCDEFGH1234"  # 8 + 4
    assert mask_secret(secret) == "************"


# Test intent: longer secrets reveal exactly prefix_len leading and
# suffix_len trailing characters around "...".
def test_mask_long_secret_reveals_prefix_and_suffix_only():
    secret = "ya29.a0AfH6SMBx-very-long-access-token-value-XYZ123"

    masked = mask_secret(secret, prefix_len=10, suffix_len=6)

    assert masked == "ya29.a0AfH...XYZ123"
    assert masked.startswith(secret[:10])
    assert masked.endswith(secret[-6:])
    assert len(masked) == 10 + 3 + 6


# Test intent: the installation-token style (6, 4) masking matches the
# shape printed by psc-gh.
def test_mask_installation_token_shape():
    assert mask_secret("ghs_1234567890abcdef", 6, 4) == "ghs_12...cdef"


def test_mask_none_and_empty():
    assert mask_secret(None) == "(none)"
    assert mask_secret("") == ""


# Test intent: prefix/suffix lengths are bounded so callers cannot reveal
# most of a token by accident.
@pytest.mark.parametrize("prefix_len,suffix_len", [(5, 4), (11, 4), (8, 3), (8, 7)])
def test_mask_rejects_out_of_range_lengths(prefix_len, suffix_len):
    with pytest.raises(ValueError):
        mask_secret("x" * 40, prefix_len=prefix_len, suffix_len=suffix_len)


# Test intent: once a token is registered with the redaction filter, log
# records containing it are rewritten before reaching any handler output.
def test_redaction_filter_rewrites_registered_secret():
    token = "ya29.super-secret-access-token-value"
    redactor = SecretRedactionFilter()
    redactor.register(token)
    record = logging.LogRecord("psc", logging.INFO, __file__, 1, "using token %s", (token,), None)

    assert redactor.filter(record) is True
    message = record.getMessage()
    assert token not in message
    assert mask_secret(token) in message


def test_redaction_filter_leaves_other_records_untouched():
    redactor = SecretRedactionFilter()
    redactor.register("some-secret-value-here")
    record = logging.LogRecord("psc", logging.INFO, __file__, 1, "edit %s created", ("E1",), None)

    redactor.filter(record)

    assert record.getMessage() == "edit E1 created"


# Test intent: setup_logging wires the filter to stderr output, and a second
# call replaces rather than duplicates the handler.
def test_setup_logging_redacts_on_stderr(capsys):
    logger = logging.getLogger("psc.test-secrets")
    logger.propagate = False
    redactor = setup_logging(logger, "INFO")
    setup_logging(logger, "INFO")
    redactor = setup_logging(logger, "INFO")
    redactor.register("ghs_abcdefghijklmnopqrstuvwxyz")

    logger.info("token=%s", "ghs_abcdefghijklmnopqrstuvwxyz")

    err = capsys.readouterr().err
    assert "ghs_abcdefghijklmnopqrstuvwxyz" not in err
    assert err.count("token=") == 1
