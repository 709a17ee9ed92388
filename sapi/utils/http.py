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

"""HTTP session utilities used by the remote backend."""

import platform
import sys
from typing import Optional
from urllib.parse import urljoin

import requests

from sapi.package_info import __packagename__, __version__

__all__ = ['PretimedHTTPAdapter', 'BaseUrlSession', 'user_agent']


class PretimedHTTPAdapter(requests.adapters.HTTPAdapter):
    """Sets a default timeout for all adapter (think session) requests.

    Usage::

        s = requests.Session()
        s.mount("https://", PretimedHTTPAdapter(timeout=5))
    """

    def __init__(self, timeout=None, *args, **kwargs):
        self.timeout = timeout
        super().__init__(*args, **kwargs)

    def send(self, *args, **kwargs):
        # caller always sets the timeout kwarg
        kwargs['timeout'] = self.timeout
        return super().send(*args, **kwargs)


class BaseUrlSession(requests.Session):
    """A Session with a URL that all requests will use as a base."""

    def __init__(self, base_url: str):
        # allow base path to not end with /
        # (see rfc3986, sec 5.2.3)
        if not base_url.endswith('/'):
            base_url += '/'
        self.base_url = base_url
        super().__init__()

    def request(self, method: str, url: str, *args, **kwargs) -> requests.Response:
        return super().request(method, urljoin(self.base_url, url), *args, **kwargs)


def user_agent(name: Optional[str] = __packagename__,
               version: Optional[str] = __version__) -> str:
    """Return User-Agent ~ "name/version python/version interpreter/version
    machine/version system/version"."""

    interpreter = platform.python_implementation()
    interpreter_version = platform.python_version()
    if interpreter == 'PyPy':
        interpreter_version = '.'.join(map(str, sys.pypy_version_info[:3]))

    tags = []
    if name and version:
        tags.append((name, version))
    tags.extend([
        ("python", platform.python_version()),
        (interpreter, interpreter_version),
        ("machine", platform.machine() or 'unknown'),
        ("system", platform.system() or 'unknown'),
    ])
    return ' '.join(f"{name}/{version}" for name, version in tags)
