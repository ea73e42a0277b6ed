import hashlib
import json
import logging
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional

from authgate.core.config import settings
from authgate.core.logging_middleware import sanitize_data

logger = logging.getLogger("api.security")

SEVERITY_LEVELS = {
    "info": logging.INFO,
    "medium": logging.WARNING,
    "warning": logging.WARNING,
    "high": logging.ERROR,
}


class SecurityEventLog:
    """
    Eventos de segurança do 2FA, mantidos em memória (apenas os mais recentes) e enviados ao log
    """
    def __init__(self, max_events: Optional[int] = None):
        self.max_events = max_events or settings.SECURITY_EVENTS_MAX
        self.recent_events: List[Dict[str, Any]] = []
        self.lock = threading.Lock()

    def record(self, event_type: str, message: str, severity: str = "info", **details) -> Dict[str, Any]:
        now = datetime.now()
        details = sanitize_data(details)
        event_id = hashlib.sha256(
            f"{event_type}:{now.isoformat()}:{json.dumps(details, default=str)}".encode()
        ).hexdigest()

        event = {
            "id": event_id,
            "type": event_type,
            "message": message,
            "severity": severity,
            "timestamp": now.isoformat(),
            "details": details,
        }

        with self.lock:
            self.recent_events.append(event)
            if len(self.recent_events) > self.max_events:
                self.recent_events = self.recent_events[-self.max_events:]

        logger.log(SEVERITY_LEVELS.get(severity, logging.INFO), "[%s] %s %s", event_type, message, details)
        return event

    def recent(self, limit: int = 20, event_type: Optional[str] = None) -> List[Dict[str, Any]]:
        with self.lock:
            events = list(self.recent_events)
        if event_type:
            events = [e for e in events if e["type"] == event_type]
        return events[-limit:]

    def clear(self) -> None:
        with self.lock:
            self.recent_events = []


security_events = SecurityEventLog()
