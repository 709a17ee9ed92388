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

"""Helpers for tests of code that reads config files or the environment."""

import contextlib
import os
from unittest import mock

__all__ = ['mock', 'iterable_mock_open', 'isolated_environ']

# variables read by sapi.config and sapi.utils.logging
_SAPI_ENV_PREFIXES = ('SAPI_', 'DW_INTERNAL__')


def iterable_mock_open(read_data):
    """``mock.mock_open`` whose file handle can be iterated line by line,
    as ``configparser.read_file`` does."""
    m = mock.mock_open(read_data=read_data)
    handle = m.return_value
    handle.__iter__ = lambda self: iter(self.readline, '')
    return m


class isolated_environ(contextlib.ContextDecorator):
    """Patch ``os.environ`` for the duration of a ``with`` block or a
    decorated call. Also usable with explicit :meth:`start`/:meth:`stop`,
    e.g. from ``setUp``.

    Args:
        add (dict, optional):
            Variables to set.
        remove (iterable, optional):
            Variables to unset.
        remove_sapi (bool, default=False):
            Unset all variables that configure this package (``SAPI_*`` and
            legacy ``DW_INTERNAL__*``).
    """

    def __init__(self, add=None, remove=(), remove_sapi=False):
        self.add = dict(add or {})
        self.remove = set(remove)
        self.remove_sapi = remove_sapi
        self._patcher = None

    def start(self):
        self._patcher = mock.patch.dict(os.environ)
        self._patcher.start()

        doomed = set(self.remove)
        if self.remove_sapi:
            doomed.update(k for k in os.environ if k.startswith(_SAPI_ENV_PREFIXES))
        for key in doomed:
            os.environ.pop(key, None)

        os.environ.update(self.add)
        return self

    def stop(self):
        if self._patcher is not None:
            self._patcher.stop()
            self._patcher = None

    def __enter__(self):
        return self.start()

    def __exit__(self, *exc):
        self.stop()
        return False
