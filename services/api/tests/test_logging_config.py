import logging

from ourspace.core.logging_config import REDACTED, RedactSecretsFilter, UTCTimeFormatter


def make_record(msg, *args):
    return logging.LogRecord("ourspace.test", logging.INFO, __file__, 1, msg, args, None)


def test_secrets_are_masked_in_rendered_message():
    record = make_record("signing with %s for %s", "S3CR3T-VALUE", "demo")

    assert RedactSecretsFilter(["S3CR3T-VALUE"]).filter(record) is True
    assert record.getMessage() == f"signing with {REDACTED} for demo"


def test_short_or_empty_secrets_are_ignored():
    record = make_record("cloud demo ok")

    RedactSecretsFilter(["", "ok"]).filter(record)

    assert record.getMessage() == "cloud demo ok"


def test_utc_formatter_uses_iso_timestamp():
    record = make_record("hello")
    record.created = 0
    record.msecs = 0

    line = UTCTimeFormatter("%(asctime)s.%(msecs)03dZ %(message)s", datefmt="%Y-%m-%dT%H:%M:%S").format(record)

    assert line == "1970-01-01T00:00:00.000Z hello"
