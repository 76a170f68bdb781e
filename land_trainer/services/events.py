"""
Event Logger

Injected analytics/error-capture interface. The default implementation writes
structured log lines; a deployment can subclass it to forward events to an
analytics or error-tracking service.
"""

import logging
from typing import Any, Dict, Optional


class EventLogger:
    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("land_trainer.events")

    def log_info(self, event: str, **payload: Any) -> None:
        self.logger.info("%s %s", event, self._compact(payload))

    def capture_error(self, event: str, exception: Optional[BaseException] = None, **payload: Any) -> None:
        if exception is not None:
            payload["error"] = f"{type(exception).__name__}: {exception}"
            self.logger.error("%s %s", event, self._compact(payload), exc_info=exception)
        else:
            self.logger.error("%s %s", event, self._compact(payload))

    @staticmethod
    def _compact(payload: Dict[str, Any]) -> Dict[str, Any]:
        return {k: v for k, v in payload.items() if v is not None}
