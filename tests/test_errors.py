"""Tests for error types, the error log and the operations log."""

import logging

from sane.errors import (
    BudgetExceededError,
    NotConfiguredError,
    ProviderError,
    SaneError,
    log_exception,
)
from sane.logging_config import configure_ops_log, configure_quiet_mode


class TestErrors:
    def test_hierarchy(self):
        for exc in (
            NotConfiguredError("grok"),
            ProviderError("grok", "boom"),
            BudgetExceededError(1.2, 1.0),
        ):
            assert isinstance(exc, SaneError)

    def test_messages(self):
        assert str(NotConfiguredError("azure")) == (
            "AI provider 'azure' not configured. Please check settings."
        )
        err = ProviderError("openai", "API error: 500", status=500)
        assert str(err) == "openai: API error: 500"
        assert err.status == 500
        assert "daily budget" in str(BudgetExceededError(1.0, 1.0))


class TestLogException:
    def test_writes_traceback(self, tmp_path):
        log_path = tmp_path / "sane-errors.log"
        try:
            raise ProviderError("local", "connection refused")
        except ProviderError as e:
            returned = log_exception(e, context="process a.md", log_path=log_path)

        assert returned == log_path
        text = log_path.read_text()
        assert "process a.md" in text
        assert "Traceback" in text
        assert "connection refused" in text

    def test_respects_store_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SANE_STORE_PATH", str(tmp_path))
        path = log_exception(ValueError("x"))
        assert path == tmp_path / "sane-errors.log"
        assert path.exists()


class TestLogging:
    def test_ops_log_records_sane_messages(self, tmp_path):
        handler = configure_ops_log(tmp_path)
        try:
            logging.getLogger("sane.pipeline").info("Processed %s", "a.md")
            handler.flush()
        finally:
            logging.getLogger("sane").removeHandler(handler)
            handler.close()

        assert "Processed a.md" in (tmp_path / "sane-ops.log").read_text()

    def test_quiet_mode_silences_http_loggers(self):
        configure_quiet_mode()
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("openai").level == logging.WARNING
