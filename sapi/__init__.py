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

import logging
import importlib

from sapi.package_info import __version__
from sapi.utils.logging import add_loglevel, configure_logging_from_env

__all__ = [
    'Problem', 'ProblemEntry', 'Solver', 'SubmittedProblem', 'Connection',
    'initialize', 'teardown', 'is_initialized', 'local_connection', 'remote_connection',
    'new_solver', 'await_completion',
]


# prevent log output (from library) when logging not configured by user/app
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

# make sure TRACE level is available
add_loglevel('TRACE', 5)

# configure logger if SAPI_LOG_LEVEL present in environment
configure_logging_from_env(logger)


# lazily import public names -- only when actually asked for
_lazy_modules = {
    'Problem': 'problem',
    'ProblemEntry': 'problem',
    'Solver': 'solver',
    'SubmittedProblem': 'computation',
    'await_completion': 'computation',
    'Connection': 'connection',
    'initialize': 'connection',
    'teardown': 'connection',
    'is_initialized': 'connection',
    'local_connection': 'connection',
    'remote_connection': 'connection',
    'new_solver': 'connection',
}

def __getattr__(name):
    if name in _lazy_modules:
        mod = importlib.import_module(f'sapi.{_lazy_modules[name]}')
        return getattr(mod, name)

    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")

def __dir__():
    # dev note: make sure __all__ is limited to symbols we import lazily
    yield from __all__
    yield from globals()
