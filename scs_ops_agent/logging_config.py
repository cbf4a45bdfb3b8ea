"""Logging configuration and setup."""

import logging
import logging.handlers
import json
from typing import Dict, Any, Optional
from datetime import datetime
from scs_ops_agent.config import config


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    EXTRA_FIELDS = ('instance_id', 'operation', 'step', 'client_token')

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            'timestamp': datetime.utcnow().isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        # Add extra fields if present
        for name in self.EXTRA_FIELDS:
            if hasattr(record, name):
                log_entry[name] = getattr(record, name)

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class AuditLogger:
    """Specialized logger for the reconciliation audit trail."""

    def __init__(self):
        self.logger = logging.getLogger('scs_ops_agent.audit')

    def log_operation(self, instance_id: Optional[str], operation: str,
                      details: Optional[Dict[str, Any]] = None, failed: bool = False):
        """Log a reconciliation milestone for an instance."""
        extra = {
            'instance_id': instance_id or 'unassigned',
            'operation': operation
        }

        message = f"Reconciliation event: {operation} for instance {extra['instance_id']}"
        if details:
            message += f" - Details: {json.dumps(details, default=str)}"

        if failed:
            self.logger.error(message, extra=extra)
        else:
            self.logger.info(message, extra=extra)


def setup_logging():
    """Set up logging configuration."""
    # Root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, config.logging.level.upper()))

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(JSONFormatter())
    root_logger.addHandler(console_handler)

    # File handler if configured
    if config.logging.file_path:
        file_handler = logging.handlers.RotatingFileHandler(
            config.logging.file_path,
            maxBytes=config.logging.max_file_size,
            backupCount=config.logging.backup_count
        )
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    # Set specific logger levels
    logging.getLogger('scs_ops_agent').setLevel(logging.DEBUG)
    logging.getLogger('asyncio').setLevel(logging.WARNING)


# Initialize audit logger
audit_logger = AuditLogger()
