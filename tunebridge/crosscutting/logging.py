import json
import logging
import re
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from contextvars import ContextVar

# Context variables for correlation
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
entity_id_var: ContextVar[Optional[str]] = ContextVar('entity_id', default=None)
platform_var: ContextVar[Optional[str]] = ContextVar('platform', default=None)
stage_var: ContextVar[Optional[str]] = ContextVar('stage', default=None)

_CONTEXT_FIELDS = (
    ('request_id', 'requestId', request_id_var),
    ('entity_id', 'entityId', entity_id_var),
    ('platform', 'platform', platform_var),
    ('stage', 'stage', stage_var),
)


# Keys whose values are always fully masked in structured fields
_SENSITIVE_KEYS = ('secret', 'token', 'password', 'authorization')


def _mask_value(value: str) -> str:
    if len(value) > 8:
        return value[:4] + '*' * (len(value) - 8) + value[-4:]
    return '*' * len(value)


class SecretMasker:
    """Masks Spotify client credentials and bearer tokens in log output.

    Covers the token endpoint response (``access_token``), the configured
    ``client_secret`` and ``Authorization`` header values.
    """

    patterns = (
        re.compile(r'(?i)(access_token|client_secret)\s*[:=]\s*["\']?([\w\-.]{10,})["\']?'),
        re.compile(r'(?i)(bearer|basic)\s+([\w\-.=+/]{16,})'),
    )

    def mask_secrets(self, text: str) -> str:
        """Mask credentials embedded in free text."""
        if not text:
            return text
        for pattern in self.patterns:
            text = pattern.sub(lambda m: f"{m.group(1)}: {_mask_value(m.group(2))}", text)
        return text

    def mask_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Mask credentials in structured log fields, recursing into containers."""
        if not data:
            return data
        return {key: self._mask_field(key, value) for key, value in data.items()}

    def _mask_field(self, key: str, value: Any) -> Any:
        if isinstance(value, dict):
            return self.mask_dict(value)
        if isinstance(value, list):
            return [self._mask_field(key, item) for item in value]
        if isinstance(value, str):
            if any(word in key.lower() for word in _SENSITIVE_KEYS):
                return '*' * len(value)
            return self.mask_secrets(value)
        return value


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(self):
        """Initialize formatter."""
        super().__init__()
        self.masker = SecretMasker()

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            'ts': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': self.masker.mask_secrets(record.getMessage()),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        # Add correlation fields if available
        for _, json_key, var in _CONTEXT_FIELDS:
            value = var.get()
            if value:
                log_entry[json_key] = value

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        if getattr(record, 'fields', None):
            log_entry['fields'] = self.masker.mask_dict(record.fields)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class CorrelationContext:
    """Context manager for correlation data.

    Only the values passed explicitly are set; the others keep whatever the
    enclosing context holds. Previous values are restored on exit.
    """

    def __init__(self, request_id: Optional[str] = None,
                 entity_id: Optional[str] = None,
                 platform: Optional[str] = None,
                 stage: Optional[str] = None):
        """Initialize correlation context."""
        self._values = {
            'request_id': request_id,
            'entity_id': entity_id,
            'platform': platform,
            'stage': stage,
        }
        self._tokens = []

    def __enter__(self):
        """Set correlation context."""
        for name, _, var in _CONTEXT_FIELDS:
            value = self._values[name]
            if value is not None:
                self._tokens.append((var, var.set(value)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Restore correlation context."""
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)


def setup_logging(level: str = 'INFO',
                  log_file: Optional[str] = None,
                  structured: bool = True) -> logging.Logger:
    """Configure the ``tunebridge`` logger hierarchy."""
    logger = logging.getLogger('tunebridge')
    logger.setLevel(getattr(logging, level.upper()))

    # Clear existing handlers
    logger.handlers.clear()

    if structured:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str = 'tunebridge') -> logging.Logger:
    """Get logger with structured formatting."""
    return logging.getLogger(name)


def log_with_fields(logger: logging.Logger, level: str, message: str,
                    fields: Optional[Dict[str, Any]] = None, exc_info: Any = False, **kwargs):
    """Log message with additional structured fields."""
    merged = dict(fields or {})
    merged.update(kwargs)
    logger.log(getattr(logging, level.upper()), message,
               extra={'fields': merged} if merged else None, exc_info=exc_info)


def log_error(logger: logging.Logger, message: str, error: Exception, level: str = 'ERROR', **kwargs):
    """Log error with exception details.

    At ERROR and above the traceback of ``error`` (with its cause chain) is attached.
    """
    with_traceback = getattr(logging, level.upper()) >= logging.ERROR
    log_with_fields(logger, level, message, {
        'error_type': type(error).__name__,
        'error_message': str(error),
        **kwargs
    }, exc_info=error if with_traceback else False)
