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

"""Fixing of QUBO variables whose value in a minimum can be inferred."""

from __future__ import annotations

from collections import abc
from typing import TYPE_CHECKING, Optional

from sapi.buffers import BufferScope, marshal_problem, unmarshal
from sapi.constants import FixVariablesMethod
from sapi.embedding import _backend
from sapi.models import FixVariablesResult

if TYPE_CHECKING:
    from sapi.connection import Connection

__all__ = ['fix_variables']


def fix_variables(problem: abc.Iterable,
                  method: FixVariablesMethod = FixVariablesMethod.OPTIMIZED, *,
                  connection: Optional[Connection] = None) -> FixVariablesResult:
    """Fix variables of a QUBO problem.

    For every solution ``x`` of the reduced problem,
    ``E(x + fixed) == E_new(x) + offset``.

    Example:
        >>> import sapi
        >>> from sapi.fix import fix_variables
        >>> sapi.initialize()
        >>> Q = [(1, 1, 1), (2, 2, 1), (3, 3, 1), (4, 4, 3),
        ...      (1, 2, 1), (1, 3, -2), (2, 3, -2), (1, 4, 4)]
        >>> fix_variables(Q).fixed_variables
        {4: 0}
    """
    backend = _backend(connection)
    with BufferScope() as scope:
        problem_buf = scope.enter(marshal_problem(backend, problem))
        handle = backend.fix_variables(problem_buf.handle, FixVariablesMethod(method))

    return unmarshal(backend, handle, 'fix_result')
