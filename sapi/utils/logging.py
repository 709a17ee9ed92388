# Copyright 2024 D-Wave Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#   http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Logging helpers: log level registration, secret-masking and structured
formatters, and environment-driven configuration of the ``sapi`` logger."""

import datetime
import io
import logging
import orjson
import os
import re
import sys
from typing import Optional, Union

__all__ = ['configure_logging', 'configure_logging_from_env', 'set_loglevel']

#: Environment variables consulted by :func:`configure_logging_from_env`.
LOG_LEVEL_ENV = 'SAPI_LOG_LEVEL'
LOG_FORMAT_ENV = 'SAPI_LOG_FORMAT'

LOG_FORMAT = '%(asctime)s %(name)s %(levelname)s %(threadName)s [%(funcName)s] %(message)s'

_LEVEL_ALIASES = {
    'notset': logging.NOTSET,
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warn': logging.WARNING,
    'warning': logging.WARNING,
    'error': logging.ERROR,
    'fatal': logging.CRITICAL,
    'critical': logging.CRITICAL,
}


class ISOFormatter(logging.Formatter):
    """Formats ``asctime`` as ISO 8601, in ``as_tz`` (local time if ``None``)."""

    def __init__(self, *args, as_tz: Optional[datetime.timezone] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.as_tz = as_tz

    def formatTime(self, record: logging.LogRecord, datefmt: Optional[str] = None) -> str:
        created = datetime.datetime.fromtimestamp(record.created, tz=self.as_tz)
        return created.isoformat()


class FilteredSecretsFormatter(logging.Formatter):
    """Masks API tokens in formatted records.

    Recognized tokens: prefixed hex strings (``ABC-0123...``), long bare hex
    strings and UUIDs. The first and the last three hex digits are kept.
    """

    _SECRET_PATTERNS = [re.compile(pattern) for pattern in (
        # prefixed token
        r'\b([0-9A-Za-z]{2,4}-[0-9A-Fa-f]{3})[0-9A-Fa-f]{34,}([0-9A-Fa-f]{3})\b',
        # bare hex
        r'\b([0-9A-Fa-f]{3})[0-9A-Fa-f]{26,}([0-9A-Fa-f]{3})\b',
        # uuid
        r'\b([0-9A-Fa-f]{3})[0-9A-Fa-f]{5}-(?:[0-9A-Fa-f]{4}-){3}[0-9A-Fa-f]{9}([0-9A-Fa-f]{3})\b',
    )]

    def format(self, record: logging.LogRecord) -> str:
        output = super().format(record)
        for pattern in self._SECRET_PATTERNS:
            output = pattern.sub(r'\1...\2', output)
        return output


class JSONFormatter(logging.Formatter):
    """Formats the record's attributes as a JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        # populates `message` (and `asctime`, if used)
        super().format(record)
        fields = {k: v for k, v in vars(record).items() if k not in ('msg', 'args')}
        return orjson.dumps(fields, default=repr).decode('utf-8')


def parse_loglevel(level_name: Union[str, int],
                   default: int = logging.NOTSET) -> int:
    """Level number for a level name (case-insensitive) or number.
    Unrecognized names resolve to ``default``."""
    if isinstance(level_name, int):
        return level_name

    name = str(level_name or '').strip().lower()
    if name.isdigit():
        return int(name)

    if name == 'trace' and hasattr(logging, 'TRACE'):
        return logging.TRACE
    return _LEVEL_ALIASES.get(name, default)


def set_loglevel(logger: logging.Logger, level: Union[str, int]) -> None:
    level = parse_loglevel(level)
    logger.setLevel(level)
    logger.info("Log level for %r namespace set to %r", logger.name, level)


def add_loglevel(name: str, value: int) -> None:
    """Register level ``name`` globally (as ``logging.<NAME>``) and add a
    ``Logger.<name>()`` method for it."""
    name = name.upper()
    setattr(logging, name, value)
    logging.addLevelName(value, name)

    def log_at_level(logger, message, *args, **kwargs):
        if logger.isEnabledFor(value):
            logger._log(value, message, args, **kwargs)

    setattr(logging.Logger, name.lower(), log_at_level)


def _formatter_class(structured_output: bool, filter_secrets: bool) -> type:
    bases = []
    if filter_secrets:
        bases.append(FilteredSecretsFormatter)
    if structured_output:
        bases.append(JSONFormatter)
    bases.append(ISOFormatter)
    return type('Formatter', tuple(bases), {})


def configure_logging(logger: Optional[logging.Logger] = None,
                      *,
                      level: Union[str, int] = logging.WARNING,
                      filter_secrets: bool = True,
                      output_stream: Optional[io.TextIOBase] = None,
                      in_utc: bool = False,
                      structured_output: bool = False,
                      additive: bool = False,
                      ) -> logging.Logger:
    """Send ``logger`` output (the ``sapi`` logger by default) to
    ``output_stream`` (stderr by default).

    Library log output is suppressed until configured: a ``NullHandler`` is
    installed on package import. Unless ``additive``, existing handlers are
    removed first.
    """
    level = parse_loglevel(level)
    if logger is None:
        logger = logging.getLogger('sapi')

    Formatter = _formatter_class(structured_output, filter_secrets)
    formatter = Formatter(fmt=LOG_FORMAT,
                          as_tz=datetime.timezone.utc if in_utc else None)

    if not additive:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

    handler = logging.StreamHandler(stream=output_stream or sys.stderr)
    handler.setFormatter(formatter)
    handler.setLevel(level)
    logger.addHandler(handler)
    logger.setLevel(level)

    return logger


def configure_logging_from_env(logger: logging.Logger) -> bool:
    """Configure ``logger`` from ``SAPI_LOG_LEVEL`` (level name or number)
    and ``SAPI_LOG_FORMAT`` (``json`` for structured output).

    Returns ``False``, leaving ``logger`` untouched, if no level is set.
    """
    log_level = os.getenv(LOG_LEVEL_ENV)
    if not log_level:
        return False

    structured = os.getenv(LOG_FORMAT_ENV, '').strip().lower() == 'json'
    configure_logging(logger, level=log_level, structured_output=structured)
    return True
