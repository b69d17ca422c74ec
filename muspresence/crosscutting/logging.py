import json
import logging
import re
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Dict, Any, Optional
from contextvars import ContextVar

# Context variables for correlation
tick_id_var: ContextVar[Optional[int]] = ContextVar('tick_id', default=None)
track_id_var: ContextVar[Optional[int]] = ContextVar('track_id', default=None)
stage_var: ContextVar[Optional[str]] = ContextVar('stage', default=None)

TEXT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class SecretMasker:
    """Masks sensitive information in log messages."""

    def __init__(self):
        """Initialize secret masker with patterns."""
        self.patterns = [
            # API tokens and keys
            r'(?i)(?<![a-z])(token|key|secret|password)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{10,})["\']?',
            # Imgur client ids, as config values and as Authorization header values
            r'(?i)(imgur_client_id|client_id)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{8,})["\']?',
            r'(Client-ID)[\s]+([a-zA-Z0-9\-_\.]{8,})',
        ]

        self.compiled_patterns = [re.compile(pattern) for pattern in self.patterns]

    def mask_secrets(self, text: str) -> str:
        """Mask sensitive information in text."""
        if not text:
            return text

        masked_text = text

        for pattern in self.compiled_patterns:
            def replace_match(match):
                prefix = match.group(1)
                secret = match.group(2)
                # Keep first 4 and last 4 characters, mask the rest
                if len(secret) > 8:
                    masked_secret = secret[:4] + '*' * (len(secret) - 8) + secret[-4:]
                else:
                    masked_secret = '*' * len(secret)
                return f"{prefix}: {masked_secret}"

            masked_text = pattern.sub(replace_match, masked_text)

        return masked_text

    def mask_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Mask sensitive information in dictionary."""
        if not data:
            return data

        masked_data = {}

        for key, value in data.items():
            if isinstance(value, str):
                masked_data[key] = self.mask_secrets(value)
            elif isinstance(value, dict):
                masked_data[key] = self.mask_dict(value)
            elif isinstance(value, list):
                masked_data[key] = [self.mask_dict(item) if isinstance(item, dict)
                                  else self.mask_secrets(item) if isinstance(item, str)
                                  else item for item in value]
            else:
                masked_data[key] = value

        return masked_data


class MaskingTextFormatter(logging.Formatter):
    """Plain text formatter that masks secrets in the rendered line."""

    def __init__(self, fmt: str = TEXT_FORMAT):
        super().__init__(fmt)
        self.masker = SecretMasker()

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = getattr(record, 'fields', None)
        if fields:
            rendered = ' '.join(f"{k}={v}" for k, v in self.masker.mask_dict(fields).items())
            line = f"{line} [{rendered}]"
        return self.masker.mask_secrets(line)


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(self):
        """Initialize formatter."""
        super().__init__()
        self.masker = SecretMasker()

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        # Get correlation data from context
        tick_id = tick_id_var.get()
        track_id = track_id_var.get()
        stage = stage_var.get()

        log_entry = {
            'ts': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': self.mask_secrets(record.getMessage()),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        # Add correlation fields if available
        if tick_id is not None:
            log_entry['tickId'] = tick_id
        if track_id:
            log_entry['trackId'] = track_id
        if stage:
            log_entry['stage'] = stage

        if record.exc_info:
            log_entry['exception'] = self.mask_secrets(self.formatException(record.exc_info))

        if hasattr(record, 'fields') and record.fields:
            log_entry['fields'] = self.masker.mask_dict(record.fields)

        return json.dumps(log_entry, ensure_ascii=False)

    def mask_secrets(self, text: str) -> str:
        """Mask secrets in text."""
        return self.masker.mask_secrets(text)


class CorrelationContext:
    """Context manager for correlation data."""

    def __init__(self, tick_id: Optional[int] = None,
                 track_id: Optional[int] = None,
                 stage: Optional[str] = None):
        """Initialize correlation context."""
        self.tick_id = tick_id
        self.track_id = track_id
        self.stage = stage
        self._tokens = []

    def __enter__(self):
        """Set correlation context."""
        if self.tick_id is not None:
            self._tokens.append((tick_id_var, tick_id_var.set(self.tick_id)))
        if self.track_id is not None:
            self._tokens.append((track_id_var, track_id_var.set(self.track_id)))
        if self.stage is not None:
            self._tokens.append((stage_var, stage_var.set(self.stage)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Restore correlation context."""
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)


def setup_logging(level: str = 'INFO',
                 log_file: Optional[str] = None,
                 json_format: bool = False) -> logging.Logger:
    """Setup application logging on the ``muspresence`` logger."""
    logger = logging.getLogger('muspresence')
    logger.setLevel(getattr(logging, level.upper()))

    # Clear existing handlers
    logger.handlers.clear()
    logger.propagate = False

    formatter = StructuredFormatter() if json_format else MaskingTextFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # Rotate at ~10MB with up to 5 backups
    if log_file:
        file_handler = RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024, backupCount=5)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def log_with_fields(logger: logging.Logger, level: str, message: str,
                   fields: Optional[Dict[str, Any]] = None, exc_info=None, **kwargs):
    """Log message with additional fields."""
    levelno = getattr(logging, level.upper())
    if not logger.isEnabledFor(levelno):
        return
    if exc_info is True:
        exc_info = sys.exc_info()
        if exc_info[0] is None:
            exc_info = None

    record = logger.makeRecord(
        logger.name, levelno,
        '', 0, message, (), exc_info
    )

    merged = dict(fields or {})
    merged.update(kwargs)
    if merged:
        record.fields = merged

    logger.handle(record)


# Convenience functions for common logging patterns
def log_now_playing(logger: logging.Logger, line: str, track_id: int, **kwargs):
    """Log a track or play state change that is about to be announced."""
    with CorrelationContext(track_id=track_id, stage='announce'):
        log_with_fields(logger, 'INFO', line, {'track_id': track_id, **kwargs})


def log_presence_cleared(logger: logging.Logger, previous_track_id: int, **kwargs):
    """Log presence removal after playback stopped."""
    with CorrelationContext(stage='idle'):
        log_with_fields(logger, 'INFO', 'No active playback, cleared presence.', {
            'previous_track_id': previous_track_id,
            **kwargs
        })


def log_error(logger: logging.Logger, message: str, error: Exception,
              level: str = 'ERROR', exc_info: bool = False, **kwargs):
    """Log error with exception details."""
    log_with_fields(logger, level, message, {
        'error_type': type(error).__name__,
        'error_message': str(error),
        **kwargs
    }, exc_info=exc_info)

