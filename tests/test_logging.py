"""
Log redaction tests.
"""

import json
import logging
import sys

from solders.keypair import Keypair

from solforge.config import AGENT_WALLET_ENV_VAR, StaticSecretSource
from solforge.main import REDACTED, SecretRedactionFilter


def _record(msg, *args):
    return logging.LogRecord("solforge", logging.INFO, __file__, 1, msg, args, None)


class TestSecretRedactionFilter:

    def test_redacts_configured_secret(self):
        secret = json.dumps(list(bytes(Keypair())))
        redaction = SecretRedactionFilter(StaticSecretSource({AGENT_WALLET_ENV_VAR: secret}))
        record = _record("loaded %s", secret)

        assert redaction.filter(record) is True
        assert secret not in record.getMessage()
        assert REDACTED in record.getMessage()

    def test_redacts_any_64_number_array(self):
        array = "[" + ",".join(["7"] * 64) + "]"
        record = _record(f"payload {array}")

        SecretRedactionFilter().filter(record)

        assert record.getMessage() == f"payload {REDACTED}"

    def test_leaves_ordinary_messages(self):
        record = _record("Executed %s on %s", "memo", "devnet")

        SecretRedactionFilter().filter(record)

        assert record.getMessage() == "Executed memo on devnet"
        assert record.args == ("memo", "devnet")

    def test_redacts_exception_traceback(self):
        secret = json.dumps(list(bytes(Keypair())))
        redaction = SecretRedactionFilter(StaticSecretSource({AGENT_WALLET_ENV_VAR: secret}))
        try:
            raise ValueError(f"could not decode {secret}")
        except ValueError:
            record = logging.LogRecord(
                "solforge", logging.ERROR, __file__, 1, "load failed", None, sys.exc_info()
            )

        redaction.filter(record)
        formatted = logging.Formatter().format(record)

        assert "ValueError" in formatted
        assert secret not in formatted
        assert REDACTED in formatted

    def test_redacts_array_in_traceback_without_source(self):
        array = "[" + ", ".join(["9"] * 64) + "]"
        try:
            raise RuntimeError(array)
        except RuntimeError:
            record = logging.LogRecord(
                "solforge", logging.ERROR, __file__, 1, "boom", None, sys.exc_info()
            )

        SecretRedactionFilter().filter(record)

        assert array not in logging.Formatter().format(record)


class CountingSecretSource(StaticSecretSource):
    """Static source that counts how often it is read."""

    def __init__(self, values):
        super().__init__(values)
        self.reads = 0

    def get(self, name):
        self.reads += 1
        return super().get(name)


class TestSecretCaching:

    def test_source_read_once_per_interval(self):
        source = CountingSecretSource({AGENT_WALLET_ENV_VAR: "old-secret"})
        now = [100.0]
        redaction = SecretRedactionFilter(source, refresh_seconds=5.0, clock=lambda: now[0])

        for _ in range(10):
            redaction.filter(_record("value old-secret"))

        assert source.reads == 1

    def test_rotated_secret_picked_up_after_interval(self):
        source = CountingSecretSource({AGENT_WALLET_ENV_VAR: "old-secret"})
        now = [100.0]
        redaction = SecretRedactionFilter(source, refresh_seconds=5.0, clock=lambda: now[0])
        redaction.filter(_record("warm up"))

        source.set(AGENT_WALLET_ENV_VAR, "new-secret")
        now[0] += 5.0
        record = _record("value %s", "new-secret")
        redaction.filter(record)

        assert source.reads == 2
        assert record.getMessage() == f"value {REDACTED}"
