"""
Logging configuration for the inventory dashboard service
"""

import logging
import logging.config
import re
import sys
import json
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from pathlib import Path

from config import settings

_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
    'module', 'exc_info', 'exc_text', 'stack_info', 'lineno', 'funcName',
    'created', 'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'taskName', 'message', 'asctime',
}

def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()

class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging"""

    def format(self, record):
        log_entry = {
            'timestamp': _utc_now(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)

class RequestFormatter(logging.Formatter):
    """Formatter for HTTP request logs"""

    def format(self, record):
        return json.dumps({
            'timestamp': _utc_now(),
            'type': 'request',
            'method': getattr(record, 'method', ''),
            'path': getattr(record, 'path', ''),
            'status_code': getattr(record, 'status_code', ''),
            'duration_ms': getattr(record, 'duration_ms', ''),
            'tier': getattr(record, 'tier', ''),
            'message': record.getMessage()
        }, default=str)

class AgentFormatter(logging.Formatter):
    """Formatter for agent operation logs"""

    def format(self, record):
        log_entry = {
            'timestamp': _utc_now(),
            'type': 'agent_operation',
            'agent_type': getattr(record, 'agent_type', ''),
            'operation': getattr(record, 'operation', ''),
            'variant_id': getattr(record, 'variant_id', ''),
            'status': getattr(record, 'status', ''),
            'message': record.getMessage()
        }

        if hasattr(record, 'metadata'):
            log_entry['metadata'] = record.metadata

        return json.dumps(log_entry, default=str)

def setup_logging(log_dir: Optional[str] = None):
    """Configure logging for the application"""

    log_path = Path(log_dir or settings.log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    config = {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'default': {
                'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                'datefmt': '%Y-%m-%d %H:%M:%S'
            },
            'json': {'()': JSONFormatter},
            'request': {'()': RequestFormatter},
            'agent': {'()': AgentFormatter},
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'level': log_level,
                'formatter': 'json' if settings.debug else 'default',
                'stream': sys.stdout
            },
            'file': {
                'class': 'logging.handlers.RotatingFileHandler',
                'level': log_level,
                'formatter': 'json',
                'filename': str(log_path / 'app.log'),
                'maxBytes': 10 * 1024 * 1024,
                'backupCount': 5
            },
            'error_file': {
                'class': 'logging.handlers.RotatingFileHandler',
                'level': logging.ERROR,
                'formatter': 'json',
                'filename': str(log_path / 'error.log'),
                'maxBytes': 10 * 1024 * 1024,
                'backupCount': 5
            },
            'request_file': {
                'class': 'logging.handlers.RotatingFileHandler',
                'level': logging.INFO,
                'formatter': 'request',
                'filename': str(log_path / 'requests.log'),
                'maxBytes': 50 * 1024 * 1024,
                'backupCount': 10
            },
            'agent_file': {
                'class': 'logging.handlers.RotatingFileHandler',
                'level': logging.INFO,
                'formatter': 'agent',
                'filename': str(log_path / 'agents.log'),
                'maxBytes': 25 * 1024 * 1024,
                'backupCount': 5
            }
        },
        'loggers': {
            '': {
                'level': log_level,
                'handlers': ['console', 'file', 'error_file'],
                'propagate': False
            },
            'requests': {
                'level': logging.INFO,
                'handlers': ['request_file'],
                'propagate': False
            },
            'agents': {
                'level': logging.INFO,
                'handlers': ['agent_file'],
                'propagate': False
            },
            'uvicorn': {
                'level': logging.INFO,
                'handlers': ['console', 'file'],
                'propagate': False
            },
            'uvicorn.access': {
                'level': logging.INFO,
                'handlers': ['request_file'],
                'propagate': False
            },
            'google_genai': {
                'level': logging.WARNING,
                'handlers': ['console', 'file'],
                'propagate': False
            },
            'httpx': {
                'level': logging.WARNING,
                'handlers': ['console', 'file'],
                'propagate': False
            }
        }
    }

    logging.config.dictConfig(config)
    add_security_filters()

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured - Level: {settings.log_level}, Debug: {settings.debug}")

def log_request(method: str, path: str, status_code: int, duration_ms: float, tier: str = ""):
    """Log an HTTP request to the requests logger"""
    get_request_logger().info(
        f"{method} {path} {status_code} {duration_ms}ms",
        extra={
            'method': method,
            'path': path,
            'status_code': status_code,
            'duration_ms': duration_ms,
            'tier': tier
        }
    )

def log_operation(agent_type: str, operation: str, variant_id: str = "",
                  status: str = "success", metadata: Optional[Dict[str, Any]] = None):
    """Log an agent operation to the agents logger"""
    get_agent_logger().info(
        f"{agent_type}.{operation} - {status}",
        extra={
            'agent_type': agent_type,
            'operation': operation,
            'variant_id': variant_id,
            'status': status,
            'metadata': metadata or {}
        }
    )

def get_request_logger():
    return logging.getLogger('requests')

def get_agent_logger():
    return logging.getLogger('agents')

class SensitiveDataFilter(logging.Filter):
    """Filter to remove sensitive data from logs"""

    SENSITIVE_KEYS = {
        'password', 'secret', 'key', 'token', 'credential',
        'authorization', 'cookie', 'session'
    }

    PATTERNS = [
        re.compile(r'(password|secret|key|token)=[\w\-\.\+/]+', re.IGNORECASE),
        re.compile(r'(Bearer) [\w\-\.\+/=]+', re.IGNORECASE),
    ]

    def filter(self, record):
        if isinstance(record.msg, str):
            record.msg = self._sanitize_text(record.msg)

        if record.args and isinstance(record.args, tuple):
            record.args = tuple(
                self._sanitize_text(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )

        for key, value in list(record.__dict__.items()):
            if key in _RESERVED_ATTRS:
                continue
            if isinstance(value, str) and any(sensitive in key.lower() for sensitive in self.SENSITIVE_KEYS):
                setattr(record, key, '[REDACTED]')

        return True

    def _sanitize_text(self, text: str) -> str:
        text = self.PATTERNS[0].sub(r'\1=[REDACTED]', text)
        return self.PATTERNS[1].sub(r'\1 [REDACTED]', text)

def add_security_filters():
    """Add security filters to all root handlers"""
    sensitive_filter = SensitiveDataFilter()

    for handler in logging.getLogger().handlers:
        handler.addFilter(sensitive_filter)
