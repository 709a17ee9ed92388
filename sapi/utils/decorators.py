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

"""Memoization with expiry, used for solver metadata lookups."""

import logging
import math
import threading
from functools import wraps
from typing import Any, NamedTuple, Optional

from sapi.utils.time import epochnow

__all__ = ['cached']

logger = logging.getLogger(__name__)


class _Entry(NamedTuple):
    created: float
    value: Any


class cached:
    """Memoize a function per combination of arguments, for at most
    ``maxage`` seconds (indefinitely if ``None``).

    The decorated function accepts two extra keyword arguments:

    ``refresh_``
        Skip the lookup and store a fresh value.
    ``maxage_``
        Max-age for this call only.

    A stored value is returned while its age is strictly less than the
    max-age. Each decorated function gets its own store, reachable as
    ``fn.cached`` (see :meth:`clear`).

    Example::

        @cached(maxage=300)
        def fetch_solvers(endpoint):
            return session.get(f'{endpoint}/solvers/remote/').json()
    """

    def __init__(self, *, maxage: Optional[float] = None):
        self.default_maxage = maxage
        self.store = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(args, kwargs) -> str:
        return repr((args, sorted(kwargs.items(), key=lambda item: item[0])))

    def clear(self) -> None:
        with self._lock:
            self.store.clear()

    def __call__(self, fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            refresh = kwargs.pop('refresh_', False)
            maxage = kwargs.pop('maxage_', self.default_maxage)
            if maxage is None:
                maxage = math.inf

            key = self._key(args, kwargs)
            now = epochnow()
            with self._lock:
                entry = self.store.get(key)

            if not refresh and entry is not None and now - entry.created < maxage:
                logger.trace("%s(...) cache hit", fn.__name__)
                return entry.value

            logger.trace("%s(...) cache miss", fn.__name__)
            value = fn(*args, **kwargs)
            with self._lock:
                self.store[key] = _Entry(now, value)
            return value

        wrapper.cached = self
        return wrapper
