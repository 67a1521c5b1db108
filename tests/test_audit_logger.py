"""
Unit tests for logging setup and structured audit events.
"""

import json
import logging

from audit_logger import (
    AUDIT_LOGGER_NAME,
    AuditLogger,
    configure_logging,
    get_audit_logger,
    sanitize_for_logging,
)
from config_manager import LoggingConfig


class TestSanitizeForLogging:
    """Tests for log injection prevention."""

    def test_removes_newlines(self):
        assert sanitize_for_logging("Org\nFAKE ENTRY") == "Org FAKE ENTRY"
        assert sanitize_for_logging("a\r\n\tb") == "a b"

    def test_handles_empty_and_non_strings(self):
        assert sanitize_for_logging(None) == ""
        assert sanitize_for_logging("") == ""
        assert sanitize_for_logging(42) == "42"

    def test_truncates_long_values(self):
        assert len(sanitize_for_logging("x" * 1000)) == 500


class TestAuditLogger:
    """Tests for audit event emission."""

    def test_events_are_json(self, audit_logger, caplog):
        with caplog.at_level(logging.INFO, logger=AUDIT_LOGGER_NAME):
            event = audit_logger.log_vetting_completed("530196605", "PASS", 100, 0,
                                                       requested_by="analyst", request_id="VET-1")
        payload = json.loads(caplog.records[-1].getMessage())
        assert payload['event_type'] == "VETTING_COMPLETED"
        assert payload['recommendation'] == "PASS"
        assert payload['context'] == {'score': 100, 'red_flag_count': 0}
        assert event.request_id == "VET-1"

    def test_user_input_sanitized(self, audit_logger):
        event = audit_logger.log_event("VETTING_FAILED", ein="53\n0196605",
                                       additional_context={'error': "bad\ninput"})
        assert event.ein == "53 0196605"
        assert event.additional_context == {'error': "bad input"}

    def test_failure_events_are_warnings(self, audit_logger, caplog):
        with caplog.at_level(logging.INFO, logger=AUDIT_LOGGER_NAME):
            audit_logger.log_cache_write_failed("530196605", "database is locked")
            audit_logger.log_vetting_failed("530196605", "NOT_FOUND", "No organization found")
        assert [r.levelno for r in caplog.records[-2:]] == [logging.WARNING, logging.WARNING]

    def test_gate_blocked_and_cache_hit(self, audit_logger):
        blocked = audit_logger.log_gate_blocked("530196605", "ofac_sanctions")
        assert blocked.recommendation == "REJECT"
        assert blocked.additional_context == {'blocking_gate': "ofac_sanctions"}
        hit = audit_logger.log_cache_hit("530196605", "PASS", "2025-06-01T00:00:00+00:00", "analyst")
        assert hit.event_type == "CACHE_HIT"

    def test_writes_audit_file(self, tmp_path):
        log_file = tmp_path / "logs" / "audit.log"
        audit = AuditLogger(log_file=str(log_file))
        audit.log_gate_blocked("530196605", "verified_501c3")
        for handler in audit.logger.handlers:
            handler.flush()
        assert "GATE_BLOCKED" in log_file.read_text(encoding="utf-8")
        for handler in list(audit.logger.handlers):
            audit.logger.removeHandler(handler)
            handler.close()

    def test_request_ids_are_unique(self):
        assert AuditLogger.new_request_id() != AuditLogger.new_request_id()
        assert AuditLogger.new_request_id().startswith("VET-")

    def test_global_instance(self):
        assert get_audit_logger() is get_audit_logger()


class TestConfigureLogging:
    def test_installs_handlers_once(self, tmp_path):
        config = LoggingConfig(level="DEBUG", file=str(tmp_path / "vetting.log"), console=False)
        root = logging.getLogger()
        original_level = root.level
        try:
            configure_logging(config)
            configure_logging(config)
            ours = [h for h in root.handlers if getattr(h, '_vetting_handler', False)]
            assert len(ours) == 1
            assert root.level == logging.DEBUG
        finally:
            for handler in [h for h in root.handlers if getattr(h, '_vetting_handler', False)]:
                root.removeHandler(handler)
                handler.close()
            root.setLevel(original_level)
