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

"""
Connections to solving backends, and the library runtime lifecycle.

The runtime must be initialized with :func:`initialize` before connections
are used; :func:`teardown` closes the process-wide local connection and
resets the runtime. Both are idempotent.

Example:
    >>> import sapi
    >>> sapi.initialize()
    >>> conn = sapi.local_connection()
    >>> conn.solvers()
    ['c4-sw_optimize', 'c4-sw_sample', 'ising-heuristic']
    >>> sapi.teardown()
"""

from __future__ import annotations

import logging
import threading
from typing import Optional, Union

from sapi.backends import Backend, LocalBackend, RemoteBackend
from sapi.config import ClientConfig, load_config, validate_config
from sapi.constants import DEFAULT_LOCAL_SOLVER
from sapi.events import dispatches_events
from sapi.exceptions import InvalidParameterError, NotInitializedError
from sapi.solver import Solver

__all__ = ['Connection', 'initialize', 'teardown', 'is_initialized',
           'local_connection', 'remote_connection', 'new_solver']

logger = logging.getLogger(__name__)


class _Runtime:
    lock = threading.Lock()
    initialized = False
    generation = 0
    local: Optional[Connection] = None


def initialize(**local_options) -> None:
    """Initialize the library runtime. Calling it again is a no-op.

    Args:
        **local_options:
            Options of the process-wide local backend, see
            :class:`~sapi.backends.local.LocalBackend`.
    """
    with _Runtime.lock:
        if _Runtime.initialized:
            return
        _Runtime.generation += 1
        _Runtime.initialized = True
        _Runtime.local = Connection(LocalBackend(**local_options), shared=True)
        logger.debug("Runtime initialized (generation %d)", _Runtime.generation)


def teardown() -> None:
    """Close the local connection and reset the runtime. Connections created
    before teardown can't be used afterwards. Calling it again is a no-op."""
    with _Runtime.lock:
        if not _Runtime.initialized:
            return
        local, _Runtime.local = _Runtime.local, None
        _Runtime.initialized = False
        local.backend.close()
        logger.debug("Runtime torn down (generation %d)", _Runtime.generation)


def is_initialized() -> bool:
    return _Runtime.initialized


def _ensure_initialized() -> None:
    if not _Runtime.initialized:
        raise NotInitializedError("sapi.initialize() has not been called")


class Connection:
    """Connection to a solving backend.

    Args:
        backend:
            Backend instance.
        default_solver:
            Solver returned by :meth:`get_solver` when called without a name.
        shared:
            Process-wide connection; :meth:`close` is a no-op, the connection
            is closed on :func:`teardown`.

    Raises:
        :exc:`~sapi.exceptions.NotInitializedError`: runtime not initialized.
    """

    @dispatches_events('connection_init')
    def __init__(self, backend: Backend, default_solver: Optional[str] = None,
                 shared: bool = False):
        _ensure_initialized()
        self.backend = backend
        self.default_solver = default_solver
        self.shared = shared
        self._generation = _Runtime.generation
        self._closed = False

    def __repr__(self):
        return f"<{type(self).__name__} backend={self.backend!r}>"

    @classmethod
    def from_config(cls, config: Union[ClientConfig, str, list, bool, None] = None, *,
                    profile: Optional[str] = None, **kwargs) -> Connection:
        """Connect using configuration from file, environment and keyword
        arguments (see :mod:`sapi.config`).

        A remote connection is made when both ``endpoint`` and ``token`` are
        configured. Otherwise the process-wide local connection is returned.

        Args:
            config:
                Validated config, or ``config_file`` as accepted by
                :func:`~sapi.config.loaders.load_config`.
            profile:
                Config file profile.
            **kwargs:
                Config option overrides.
        """
        if not isinstance(config, ClientConfig):
            config = validate_config(load_config(config_file=config, profile=profile, **kwargs))
        logger.debug("Connecting with config=%r", config)

        if config.endpoint and config.token:
            backend = RemoteBackend(
                config.endpoint, config.token,
                proxy=config.proxy,
                request_timeout=config.request_timeout,
                request_retry=config.request_retry,
                max_retries=config.max_retries,
                polling_schedule=config.polling_schedule)
            return cls(backend, default_solver=config.solver)

        connection = local_connection()
        if config.solver:
            connection = cls(connection.backend, default_solver=config.solver, shared=True)
        return connection

    @property
    def closed(self) -> bool:
        return (self._closed or self.backend.closed
                or not _Runtime.initialized or self._generation != _Runtime.generation)

    def ensure_open(self) -> None:
        """Raise :exc:`~sapi.exceptions.NotInitializedError` if the connection
        is closed or the runtime was torn down."""
        _ensure_initialized()
        if self.closed:
            raise NotInitializedError("connection closed")

    @dispatches_events('get_solvers')
    def solvers(self) -> list[str]:
        """Names of solvers available on this connection."""
        self.ensure_open()
        return self.backend.solver_names()

    def get_solver(self, name: Optional[str] = None) -> Solver:
        """Return solver ``name``, or the connection's default solver.

        Raises:
            :exc:`~sapi.exceptions.SolverNotFoundError`
        """
        self.ensure_open()
        if name is None:
            name = self.default_solver
        if name is None:
            if isinstance(self.backend, LocalBackend):
                name = DEFAULT_LOCAL_SOLVER
            else:
                raise InvalidParameterError("solver name required")

        return Solver(self, name, self.backend.solver_properties(name))

    def close(self) -> None:
        """Close the connection's backend. No-op for shared connections."""
        if self.shared or self._closed:
            return
        self._closed = True
        self.backend.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()


def local_connection() -> Connection:
    """Return the process-wide connection to local solvers.

    Raises:
        :exc:`~sapi.exceptions.NotInitializedError`: runtime not initialized.
    """
    with _Runtime.lock:
        _ensure_initialized()
        return _Runtime.local


def remote_connection(url: str, token: str, proxy: Optional[str] = None,
                      **kwargs) -> Connection:
    """Connect to a remote SAPI server.

    Args:
        url:
            Solver API URL.
        token:
            API token.
        proxy:
            Proxy URL. ``None`` uses the system proxy settings, an empty
            string disables proxies.
        **kwargs:
            Other :class:`~sapi.backends.remote.RemoteBackend` options.
    """
    _ensure_initialized()
    return Connection(RemoteBackend(url, token, proxy=proxy, **kwargs))


def new_solver(config_file: Optional[str] = None, profile: Optional[str] = None,
               **kwargs) -> Solver:
    """Return the configured solver, on a connection made from configuration
    (see :meth:`Connection.from_config`).

    Raises:
        :exc:`~sapi.exceptions.InvalidParameterError`: no solver configured.
    """
    config = validate_config(load_config(config_file=config_file, profile=profile, **kwargs))
    if not config.solver:
        raise InvalidParameterError("solver name not configured")

    return Connection.from_config(config).get_solver(config.solver)
