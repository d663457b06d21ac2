import json
import logging
import re
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from contextvars import ContextVar

job_id_var: ContextVar[Optional[str]] = ContextVar('job_id', default=None)
playlist_id_var: ContextVar[Optional[str]] = ContextVar('playlist_id', default=None)
stage_var: ContextVar[Optional[str]] = ContextVar('stage', default=None)

ROOT_LOGGER = 'app'

SENSITIVE_KEYS = (
    'access_token', 'refresh_token', 'token', 'client_secret', 'secret',
    'password', 'authorization', 'auth', 'key', 'code',
)


def _partially_mask(secret: str) -> str:
    if len(secret) > 8:
        return secret[:4] + '*' * (len(secret) - 8) + secret[-4:]
    return '*' * len(secret)


class SecretMasker:
    """Redacts OAuth tokens and similar credentials before they reach a log sink.

    Two shapes are recognised: ``key: value`` / ``key=value`` pairs where the key
    names a credential, and bare ``Bearer <token>`` headers. Values shorter than
    ten characters are left alone so ordinary words survive.
    """

    def __init__(self):
        keys = '|'.join(sorted(SENSITIVE_KEYS, key=len, reverse=True))
        self._pair = re.compile(
            rf'(?i)\b({keys})\s*[:=]\s*["\']?(?:bearer\s+)?([A-Za-z0-9\-_.]{{10,}})["\']?')
        self._bearer = re.compile(r'(?i)\bbearer\s+([A-Za-z0-9\-_.]{10,})')

    def mask_secrets(self, text: str) -> str:
        if not text:
            return text
        text = self._pair.sub(lambda m: f"{m.group(1)}: {_partially_mask(m.group(2))}", text)
        return self._bearer.sub(lambda m: f"Bearer {_partially_mask(m.group(1))}", text)

    def mask_value(self, key: Optional[str], value: Any) -> Any:
        if isinstance(value, dict):
            return self.mask_dict(value)
        if isinstance(value, (list, tuple)):
            return [self.mask_value(None, item) for item in value]
        if not isinstance(value, str):
            return value
        if key and key.lower() in SENSITIVE_KEYS:
            return _partially_mask(value)
        return self.mask_secrets(value)

    def mask_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Copy of ``data`` with credential-named values masked at any depth."""
        if not data:
            return data
        return {key: self.mask_value(key, value) for key, value in data.items()}


def current_correlation() -> Dict[str, str]:
    """Correlation fields set by the innermost CorrelationContext."""
    values = {'jobId': job_id_var.get(), 'playlistId': playlist_id_var.get(), 'stage': stage_var.get()}
    return {k: v for k, v in values.items() if v}


class StructuredFormatter(logging.Formatter):
    """One JSON object per line, tagged with the job being processed."""

    def __init__(self):
        super().__init__()
        self.masker = SecretMasker()

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            'ts': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': self.masker.mask_secrets(record.getMessage()),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }
        log_entry.update(current_correlation())

        if record.exc_info:
            log_entry['exception'] = self.masker.mask_secrets(self.formatException(record.exc_info))

        fields = getattr(record, 'fields', None)
        if fields:
            log_entry['fields'] = self.masker.mask_dict(fields)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class CorrelationContext:
    """Sets correlation values for every log line emitted inside the block.

    Context variables are per thread, so worker threads that log on behalf of
    a job enter their own CorrelationContext. ``None`` keeps the outer value.
    """

    def __init__(self, job_id: Optional[str] = None,
                 playlist_id: Optional[str] = None,
                 stage: Optional[str] = None):
        self._values = {
            job_id_var: job_id,
            playlist_id_var: playlist_id,
            stage_var: stage,
        }
        self._tokens = []

    def __enter__(self):
        for var, value in self._values.items():
            if value is not None:
                self._tokens.append((var, var.set(value)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)


def setup_logging(level: str = 'INFO', log_file: Optional[str] = None) -> logging.Logger:
    """Route the ``app`` logger tree to stderr (and optionally a file) as JSON lines."""
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, level.upper()))
    logger.handlers.clear()

    formatter = StructuredFormatter()
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    return logging.getLogger(name)


def log_with_fields(logger: logging.Logger, level: str, message: str,
                    fields: Optional[Dict[str, Any]] = None, **kwargs):
    """Log ``message`` with ``fields`` and keyword arguments attached as structured data."""
    merged = dict(fields or {})
    merged.update(kwargs)
    logger.log(getattr(logging, level.upper()), message, extra={'fields': merged} if merged else None)


def log_job_start(logger: logging.Logger, job_id: str, source_provider: str,
                  target_provider: str, **kwargs):
    with CorrelationContext(job_id=job_id, stage='start'):
        log_with_fields(logger, 'INFO', 'Job started', {
            'source_provider': source_provider,
            'target_provider': target_provider,
            **kwargs
        })


def log_job_complete(logger: logging.Logger, job_id: str, total_tracks: int, **kwargs):
    with CorrelationContext(job_id=job_id, stage='complete'):
        log_with_fields(logger, 'INFO', 'Job completed', {
            'total_tracks': total_tracks,
            **kwargs
        })


def log_error(logger: logging.Logger, message: str, error: Exception, **kwargs):
    log_with_fields(logger, 'ERROR', message, {
        'error_type': type(error).__name__,
        'error_message': str(error),
        **kwargs
    })
