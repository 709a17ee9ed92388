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

from __future__ import annotations

import ast
import logging
from collections import abc
from typing import Annotated, Literal, Optional, Union

import urllib3
from pydantic import BaseModel, BeforeValidator, NonNegativeInt, ValidationError

from sapi.exceptions import InvalidParameterError

__all__ = ['RequestRetryConfig', 'BackoffPollingSchedule', 'ClientConfig',
           'validate_config']

logger = logging.getLogger(__name__)


class RequestRetryConfig(BaseModel):
    """HTTP request retry policy, passed through to :class:`urllib3.Retry`.
    ``None`` leaves the urllib3 default in place."""

    total: Optional[Union[int, Literal[False]]] = 10
    connect: Optional[int] = None
    read: Optional[int] = None
    redirect: Optional[Union[int, Literal[False]]] = 10
    status: Optional[int] = None

    #: seconds; sleep before retry ``n`` is ``backoff_factor * 2 ** (n - 1)``
    backoff_factor: Optional[float] = 0.01
    backoff_max: Optional[float] = 60.0

    def to_urllib3_retry(self) -> urllib3.Retry:
        return urllib3.Retry(**self.model_dump(exclude_none=True))


class BackoffPollingSchedule(BaseModel):
    """Problem status polling exponential back-off schedule params.

    For poll ``i``, the back-off period (in seconds) is
    ``backoff_min * (backoff_base ** i)``, clipped to ``backoff_max``.
    """

    #: Duration of the first interval (between first and second poll), in seconds.
    backoff_min: float = 0.05

    #: Maximum back-off period, in seconds.
    backoff_max: float = 60.0

    #: Exponential function base.
    backoff_base: float = 1.3

    def delays(self) -> abc.Iterator[float]:
        """Infinite iterator of back-off periods."""
        delay = self.backoff_min
        while True:
            yield delay
            delay = max(self.backoff_min, min(delay * self.backoff_base, self.backoff_max))


def _literal_eval(obj):
    if isinstance(obj, str):
        return ast.literal_eval(obj)
    return obj


class ClientConfig(BaseModel):
    # remote backend; local backend is used when either is unset
    endpoint: Optional[str] = None
    token: Optional[str] = None

    # http proxy url; `None` for system proxy settings, `''` for no proxy
    proxy: Optional[str] = None

    # default solver name
    solver: Optional[str] = None

    # async job status polling
    polling_schedule: BackoffPollingSchedule = BackoffPollingSchedule()

    # automatic retries of transient faults, per asynchronous job
    max_retries: NonNegativeInt = 3

    # api request retry and timeout
    request_retry: RequestRetryConfig = RequestRetryConfig()
    request_timeout: Annotated[Optional[Union[float, tuple[float, float]]],
                               BeforeValidator(_literal_eval)] = (60.0, 120.0)


def validate_config(raw_config: abc.Mapping) -> ClientConfig:
    """Validate a flat config dict (as returned by
    :func:`~sapi.config.loaders.load_config`) into a :class:`ClientConfig`.

    ``poll_*`` and ``http_retry_*`` options are collected into the
    ``polling_schedule`` and ``request_retry`` sub-models. Unknown options
    are ignored.

    Raises:
        :exc:`~sapi.exceptions.InvalidParameterError`
    """

    config = dict(raw_config)

    prefix = 'poll_'
    config['polling_schedule'] = {k[len(prefix):]: v for k, v in raw_config.items()
                                  if k.startswith(prefix)}
    prefix = 'http_retry_'
    config['request_retry'] = {k[len(prefix):]: v for k, v in raw_config.items()
                               if k.startswith(prefix)}

    known = ClientConfig.model_fields
    unknown = set(config) - set(known)
    if unknown:
        logger.debug("Ignoring unknown config options: %r", sorted(unknown))
    config = {k: v for k, v in config.items() if k in known}

    try:
        return ClientConfig.model_validate(config)
    except ValidationError as exc:
        raise InvalidParameterError(f"invalid configuration: {exc}") from exc
