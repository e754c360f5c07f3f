"""
Structured (JSON) audit logging for checkout and webhook events
"""
import logging
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class StructuredLogger:
    """
    Emits one JSON document per audit event so checkout sessions and webhook
    deliveries can be traced by id in the log stream.
    """

    def __init__(self, name: str = "ekom.audit", service: str = "ekom-backend"):
        self.logger = logging.getLogger(name)
        self.service = service

    def _entry(
        self,
        level: str,
        message: str,
        session_id: Optional[str] = None,
        event_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        exception: Optional[BaseException] = None
    ) -> Dict[str, Any]:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level.upper(),
            "message": message,
            "service": self.service,
        }
        if session_id:
            entry["session_id"] = session_id
        if event_id:
            entry["event_id"] = event_id
        if metadata:
            entry["metadata"] = metadata
        if exception is not None:
            entry["exception"] = {
                "type": type(exception).__name__,
                "message": str(exception),
            }
        return entry

    def info(self, message: str, **kwargs):
        self.logger.info(json.dumps(self._entry("info", message, **kwargs), default=str))

    def warning(self, message: str, **kwargs):
        self.logger.warning(json.dumps(self._entry("warning", message, **kwargs), default=str))

    def error(self, message: str, **kwargs):
        self.logger.error(json.dumps(self._entry("error", message, **kwargs), default=str))


# Global audit logger instance
structured_logger = StructuredLogger()
