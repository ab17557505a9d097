"""Logging setup with credential and payload redaction."""

from __future__ import annotations

import logging
import re
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class LogRedactor:
    """Mask credentials and inline base64 payloads before records are written."""

    def __init__(self, extra_patterns: str = "", base64_min_chars: int = 200):
        self._regex_replacements: list[tuple[re.Pattern[str], str]] = [
            (
                re.compile(r"(?i)\b(authorization)\s*:\s*bearer\s+[a-z0-9._\-+/=]+"),
                r"\1: Bearer [REDACTED]",
            ),
            (
                re.compile(r"(?i)\bbearer\s+[a-z0-9._\-+/=]+"),
                "Bearer [REDACTED]",
            ),
            (
                re.compile(
                    r'(?i)("?(?:x-goog-api-key|api[-_]?key|credential|token|secret|password|passwd|cookie)"?'
                    r"\s*[:=]\s*)(\".*?\"|'.*?'|[^,\s;]+)"
                ),
                r"\1[REDACTED]",
            ),
        ]
        self._base64_run = re.compile(r"[A-Za-z0-9+/_\-]{%d,}={0,2}" % max(16, base64_min_chars))
        self._extra_regex: list[re.Pattern[str]] = []
        for raw in (extra_patterns or "").split("||"):
            pattern = raw.strip()
            if not pattern:
                continue
            try:
                self._extra_regex.append(re.compile(pattern))
            except re.error:
                continue

    def redact(self, text: str) -> str:
        out = text
        for regex, repl in self._regex_replacements:
            out = regex.sub(repl, out)
        out = self._base64_run.sub(lambda m: f"<base64 len={len(m.group(0))}>", out)
        for regex in self._extra_regex:
            out = regex.sub("[REDACTED]", out)
        return out


class RedactingFilter(logging.Filter):
    """Rewrites each record's rendered message through a LogRedactor."""

    def __init__(self, redactor: LogRedactor | None = None):
        super().__init__()
        self._redactor = redactor or LogRedactor()

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except Exception:
            return True
        record.msg = self._redactor.redact(message)
        record.args = None
        return True


def configure_logging(level: str, log_file: str = "") -> None:
    """Install root handlers: stderr always, plus an optional append-mode file."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, mode="a", encoding="utf-8"))

    redacting = RedactingFilter()
    for handler in handlers:
        handler.addFilter(redacting)

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
