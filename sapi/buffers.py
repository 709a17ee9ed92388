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
Ownership of buffers exchanged with a backend.

Every buffer passed to or returned from a backend lives in the backend's
handle table. On the client side, a handle is wrapped in a
:class:`ForeignBuffer` that records who is responsible for freeing it:

* ``OWNED`` buffers are freed by the wrapper, exactly once, on
  :meth:`~ForeignBuffer.release`, on context exit, or (as a backstop) when
  the wrapper is garbage collected;
* ``BORROWED`` buffers are never freed by the wrapper.

Input buffers are created with the ``marshal_*`` functions, usually inside a
:class:`BufferScope` that releases them on every exit path::

    with BufferScope() as scope:
        problem = scope.enter(marshal_problem(backend, entries))
        params = scope.enter(marshal_parameters(backend, parameters))
        result_handle = backend.solve(name, 'ising', problem.handle, params.handle)

    result = unmarshal(backend, result_handle, 'result')

Backend-allocated output is copied into client containers and freed by
:func:`unmarshal`.
"""

from __future__ import annotations

import contextlib
import enum
import logging
import weakref
from collections import abc
from typing import TYPE_CHECKING, Any, Callable, Optional

from sapi.exceptions import InvalidParameterError
from sapi.models import FixVariablesResult, SolveResult
from sapi.parameters import SolverParameters
from sapi.problem import Problem, validate_problem

if TYPE_CHECKING:
    from sapi.backends.base import Backend

__all__ = [
    'Ownership', 'ForeignBuffer', 'BufferScope',
    'marshal_problem', 'marshal_parameters', 'marshal_embeddings', 'marshal_solutions',
    'unmarshal',
]

logger = logging.getLogger(__name__)


class Ownership(enum.Enum):
    OWNED = "owned"
    BORROWED = "borrowed"


def _free(backend: Backend, handle: int) -> None:
    # finalizer callback; must not reference the wrapper
    logger.debug("Releasing unreachable buffer %d", handle)
    backend.free(handle)


class ForeignBuffer:
    """Client-side wrapper of a backend buffer handle.

    Args:
        backend:
            Backend owning the handle table.
        handle:
            Buffer handle.
        ownership:
            Whether this wrapper is responsible for freeing the handle.
    """

    def __init__(self, backend: Backend, handle: int,
                 ownership: Ownership = Ownership.OWNED):
        self.backend = backend
        self.handle = handle
        self.ownership = Ownership(ownership)
        self._released = False

        if self.ownership is Ownership.OWNED:
            self._finalizer = weakref.finalize(self, _free, backend, handle)
        else:
            self._finalizer = None

    def __repr__(self):
        state = 'released' if self._released else self.ownership.value
        return f"<{type(self).__name__} handle={self.handle} {state}>"

    @property
    def released(self) -> bool:
        return self._released

    def read(self, kind: Optional[str] = None) -> Any:
        """Return the backend-side payload.

        Raises:
            :exc:`~sapi.exceptions.InvalidParameterError`: buffer released.
        """
        if self._released:
            raise InvalidParameterError(f"buffer {self.handle} already released")
        return self.backend.read(self.handle, kind)

    def release(self) -> None:
        """Free an owned handle. Idempotent; a no-op for borrowed buffers."""
        if self._released:
            return
        self._released = True
        if self._finalizer is not None:
            # runs `_free` at most once
            self._finalizer()

    def detach(self) -> int:
        """Give up ownership without freeing; return the handle."""
        if self._finalizer is not None:
            self._finalizer.detach()
            self._finalizer = None
        self.ownership = Ownership.BORROWED
        return self.handle

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.release()


class BufferScope(contextlib.ExitStack):
    """Scope releasing every buffer entered into it on exit."""

    def enter(self, buffer: ForeignBuffer) -> ForeignBuffer:
        return self.enter_context(buffer)


def _marshal(backend: Backend, kind: str, payload: Any) -> ForeignBuffer:
    handle = backend.allocate(kind, payload)
    return ForeignBuffer(backend, handle, Ownership.OWNED)


def marshal_problem(backend: Backend, problem: abc.Iterable) -> ForeignBuffer:
    """Validate and copy ``problem`` into a backend buffer.

    Raises:
        :exc:`~sapi.exceptions.InvalidParameterError`: invalid entries.
        :exc:`~sapi.exceptions.OutOfMemoryError`: handle table full.
    """
    return _marshal(backend, 'problem', validate_problem(problem))


def marshal_parameters(backend: Backend, parameters: SolverParameters) -> ForeignBuffer:
    """Copy solver parameters (including their ``kind``) into a backend
    buffer."""
    if not hasattr(parameters, 'to_dict'):
        raise InvalidParameterError(
            f"solver parameters expected, got {type(parameters).__name__}")
    data = parameters.to_dict()
    data['kind'] = parameters.kind
    return _marshal(backend, 'parameters', data)


def marshal_embeddings(backend: Backend, embeddings: abc.Sequence[int]) -> ForeignBuffer:
    """Copy embeddings (physical qubit to logical variable, ``-1`` for
    unused) into a backend buffer."""
    data = list(embeddings)
    for value in data:
        if isinstance(value, bool) or not isinstance(value, int) or value < -1:
            raise InvalidParameterError(
                f"embedding entries must be variable indices or -1, got {value!r}")
    return _marshal(backend, 'embeddings', data)


def marshal_solutions(backend: Backend,
                      solutions: abc.Sequence[abc.Sequence[int]]) -> ForeignBuffer:
    """Copy solutions (lists of spins, :data:`~sapi.constants.UNUSED_VARIABLE`
    for unused qubits) into a backend buffer."""
    try:
        data = [list(solution) for solution in solutions]
    except TypeError as exc:
        raise InvalidParameterError(f"solutions must be a list of lists: {exc}") from exc
    return _marshal(backend, 'solutions', data)


def _copy_problem(payload) -> Problem:
    return Problem(payload)


def _copy_embeddings(payload) -> list[int]:
    return list(payload)


def _copy_solutions(payload) -> list[list[int]]:
    return [list(solution) for solution in payload]


def _copy_result(payload) -> SolveResult:
    return SolveResult.model_validate(payload)


def _copy_fix_result(payload) -> FixVariablesResult:
    return FixVariablesResult(
        fixed_variables=dict(payload.fixed_variables),
        offset=payload.offset,
        new_problem=Problem(payload.new_problem))


_UNMARSHALERS: dict[str, Callable[[Any], Any]] = {
    'problem': _copy_problem,
    'embeddings': _copy_embeddings,
    'solutions': _copy_solutions,
    'result': _copy_result,
    'fix_result': _copy_fix_result,
}


def unmarshal(backend: Backend, handle: int, kind: str) -> Any:
    """Copy a backend-allocated buffer into a client container and free the
    handle, whether or not the copy succeeds."""
    convert = _UNMARSHALERS[kind]
    try:
        return convert(backend.read(handle, kind))
    finally:
        backend.free(handle)
