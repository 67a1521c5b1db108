"""
Vetting Audit Logging Module

Provides logging setup and structured audit events for vetting runs:
- Cache hits and cache write failures
- Completed verdicts and gate blocks
- Runs that could not be evaluated

User-supplied strings are sanitized before they reach any log record.
"""

import logging
import json
import re
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Dict, Any
from dataclasses import dataclass, field as dataclass_field

AUDIT_LOGGER_NAME = "vetting.audit"

CONTROL_CHARS = re.compile(r'[\r\n\x00-\x1f\x7f-\x9f]')
WHITESPACE = re.compile(r'\s+')


def sanitize_for_logging(text: Any) -> str:
    """Sanitize user input for safe logging, preventing log injection

    Removes newlines, carriage returns, and other control characters
    that could be used to inject fake log entries.
    """
    if text is None or text == '':
        return ''
    sanitized = CONTROL_CHARS.sub(' ', str(text))
    sanitized = WHITESPACE.sub(' ', sanitized).strip()
    return sanitized[:500] if len(sanitized) > 500 else sanitized


def configure_logging(logging_config: Any = None) -> None:
    """Install root console/file handlers from a LoggingConfig

    Args:
        logging_config: LoggingConfig section (defaults when None)
    """
    if logging_config is None:
        from config_manager import LoggingConfig
        logging_config = LoggingConfig()

    root = logging.getLogger()
    root.setLevel(getattr(logging, str(logging_config.level).upper(), logging.INFO))
    formatter = logging.Formatter(logging_config.format)

    for handler in list(root.handlers):
        if getattr(handler, '_vetting_handler', False):
            root.removeHandler(handler)
            handler.close()

    handlers = []
    if logging_config.console:
        handlers.append(logging.StreamHandler())
    if logging_config.file:
        log_path = Path(logging_config.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding='utf-8'))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler._vetting_handler = True
        root.addHandler(handler)


@dataclass
class VettingEvent:
    """Structured audit event for one step of a vetting run"""
    event_type: str  # CACHE_HIT, VETTING_COMPLETED, GATE_BLOCKED, CACHE_WRITE_FAILED, VETTING_FAILED
    severity: str  # INFO, WARNING, ERROR
    ein: str = ""
    recommendation: str = ""
    error_code: str = ""
    source: str = ""
    request_id: str = ""
    requested_by: str = ""
    additional_context: Dict[str, Any] = dataclass_field(default_factory=dict)
    timestamp: str = dataclass_field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return {
            'timestamp': self.timestamp,
            'event_type': self.event_type,
            'severity': self.severity,
            'ein': self.ein,
            'recommendation': self.recommendation,
            'error_code': self.error_code,
            'source': self.source,
            'request_id': self.request_id,
            'requested_by': self.requested_by,
            'context': self.additional_context
        }

    def to_json(self) -> str:
        """Convert to JSON string"""
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)


class AuditLogger:
    """Writes JSON vetting events to the dedicated audit logger

    Events propagate to the root logger as well, so a single
    configure_logging() call is enough for console output.
    """

    def __init__(
        self,
        log_file: Optional[str] = None,
        log_level: int = logging.INFO,
        enable_console: bool = False
    ):
        """Initialize audit logger

        Args:
            log_file: Optional path of a dedicated audit log file
            log_level: Minimum log level to record
            enable_console: Also output to console
        """
        self.logger = logging.getLogger(AUDIT_LOGGER_NAME)
        self.logger.setLevel(log_level)
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

        formatter = logging.Formatter('%(asctime)s - AUDIT - %(levelname)s - %(message)s')

        if log_file:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path, encoding='utf-8')
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

        if enable_console:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(log_level)
            console_handler.setFormatter(formatter)
            self.logger.addHandler(console_handler)

    @staticmethod
    def new_request_id() -> str:
        return f"VET-{uuid.uuid4().hex[:8]}"

    def _sanitize_input(self, text: Any, max_length: int = 200) -> str:
        if text is None:
            return ""
        sanitized = sanitize_for_logging(text)
        if len(sanitized) > max_length:
            return sanitized[:max_length] + "...(truncated)"
        return sanitized

    def _sanitize_context(self, context: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Sanitize string values of a context dict, recursively"""
        if not context:
            return {}

        sanitized: Dict[str, Any] = {}
        for key, value in context.items():
            safe_key = self._sanitize_input(key, max_length=100) or "unknown"
            if value is None or isinstance(value, (bool, int, float)):
                sanitized[safe_key] = value
            elif isinstance(value, dict):
                sanitized[safe_key] = self._sanitize_context(value)
            elif isinstance(value, (list, tuple)):
                sanitized[safe_key] = [
                    item if isinstance(item, (bool, int, float, type(None)))
                    else self._sanitize_input(item)
                    for item in value
                ]
            else:
                sanitized[safe_key] = self._sanitize_input(value)
        return sanitized

    def log_event(
        self,
        event_type: str,
        severity: str = "INFO",
        ein: str = "",
        recommendation: str = "",
        error_code: str = "",
        source: str = "vetting_pipeline",
        request_id: str = "",
        requested_by: str = "",
        additional_context: Optional[Dict[str, Any]] = None
    ) -> VettingEvent:
        """Log a vetting event and return it"""
        event = VettingEvent(
            event_type=event_type,
            severity=severity,
            ein=self._sanitize_input(ein, max_length=20),
            recommendation=recommendation,
            error_code=error_code,
            source=source,
            request_id=request_id,
            requested_by=self._sanitize_input(requested_by, max_length=100),
            additional_context=self._sanitize_context(additional_context)
        )

        if severity == "ERROR":
            self.logger.error(event.to_json())
        elif severity == "WARNING":
            self.logger.warning(event.to_json())
        else:
            self.logger.info(event.to_json())
        return event

    def log_cache_hit(self, ein: str, recommendation: str, vetted_at: str, vetted_by: str,
                      request_id: str = "") -> VettingEvent:
        return self.log_event(
            "CACHE_HIT",
            ein=ein,
            recommendation=recommendation,
            request_id=request_id,
            additional_context={'vetted_at': vetted_at, 'vetted_by': vetted_by}
        )

    def log_vetting_completed(self, ein: str, recommendation: str, score: Optional[int],
                              red_flag_count: int, requested_by: str = "",
                              request_id: str = "") -> VettingEvent:
        return self.log_event(
            "VETTING_COMPLETED",
            ein=ein,
            recommendation=recommendation,
            request_id=request_id,
            requested_by=requested_by,
            additional_context={'score': score, 'red_flag_count': red_flag_count}
        )

    def log_gate_blocked(self, ein: str, blocking_gate: str, request_id: str = "") -> VettingEvent:
        return self.log_event(
            "GATE_BLOCKED",
            ein=ein,
            recommendation="REJECT",
            request_id=request_id,
            additional_context={'blocking_gate': blocking_gate}
        )

    def log_cache_write_failed(self, ein: str, error: str, request_id: str = "") -> VettingEvent:
        return self.log_event(
            "CACHE_WRITE_FAILED",
            severity="WARNING",
            ein=ein,
            error_code="CACHE_ERROR",
            request_id=request_id,
            additional_context={'error': error}
        )

    def log_vetting_failed(self, ein: str, error_code: str, error: str,
                           request_id: str = "") -> VettingEvent:
        return self.log_event(
            "VETTING_FAILED",
            severity="WARNING",
            ein=ein,
            error_code=error_code,
            request_id=request_id,
            additional_context={'error': error}
        )


# Global audit logger instance
_audit_logger: Optional[AuditLogger] = None


def get_audit_logger(log_file: Optional[str] = None, enable_console: bool = False) -> AuditLogger:
    """Get or create the global audit logger instance"""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger(log_file=log_file, enable_console=enable_console)
    return _audit_logger


def reset_audit_logger() -> None:
    """Reset the global audit logger (for testing)"""
    global _audit_logger
    _audit_logger = None
