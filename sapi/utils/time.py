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

"""Date/time utilities."""

import time
from datetime import datetime
from typing import Optional

from dateutil.parser import parse as _parse_datetime
from dateutil.tz import UTC

__all__ = ['utcnow', 'epochnow', 'parse_timestamp', 'tictoc']


def utcnow() -> datetime:
    """Returns tz-aware now in UTC."""
    return datetime.now(tz=UTC)


def epochnow() -> float:
    """Returns now as UNIX timestamp."""
    return time.time()


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 3339 / ISO 8601 timestamp into a tz-aware `datetime`.

    Empty and missing values are returned as ``None``. Naive timestamps are
    assumed to be in UTC.
    """
    if not value:
        return None

    dt = _parse_datetime(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


class tictoc:
    """Timer as a context manager."""

    def __enter__(self):
        self.tick = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.dt = time.perf_counter() - self.tick
