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
A :term:`solver` is a resource for solving Ising and QUBO problems, made
available by a :class:`~sapi.connection.Connection`.

Solvers are responsible for:

    - Marshaling problems and parameters into backend buffers
    - Synchronous solving
    - Asynchronous submission
    - Unmarshaling answers

Example:
    >>> import sapi
    >>> sapi.initialize()
    >>> with sapi.local_connection() as conn:
    ...     solver = conn.get_solver('c4-sw_optimize')
    ...     result = solver.solve_ising([(0, 0, -1), (0, 4, 0.5)])
    ...     result.energies[0]
    -1.5
"""

from __future__ import annotations

import logging
from collections import abc
from typing import TYPE_CHECKING, Optional

from sapi.buffers import (
    BufferScope, ForeignBuffer, Ownership,
    marshal_parameters, marshal_problem, unmarshal)
from sapi.computation import SubmittedProblem
from sapi.constants import ProblemType
from sapi.events import dispatches_events
from sapi.models import SolveResult, SolverProperties
from sapi.parameters import SolverParameters, new_solver_parameters
from sapi.problem import Problem

if TYPE_CHECKING:
    from sapi.connection import Connection

__all__ = ['Solver']

logger = logging.getLogger(__name__)


class Solver:
    """A solver available on a connection.

    Args:
        connection:
            Connection that manages access to this solver.
        name:
            Solver name.
        properties:
            Solver properties, as advertised by the backend.
    """

    def __init__(self, connection: Connection, name: str, properties: SolverProperties):
        self.connection = connection
        self.name = name
        self.properties = properties

    def __repr__(self):
        return f"<{type(self).__name__} name={self.name!r}>"

    @property
    def backend(self):
        self.connection.ensure_open()
        return self.connection.backend

    @property
    def structured(self) -> bool:
        return self.properties.structured

    def new_parameters(self) -> SolverParameters:
        """Default parameters of the variant accepted by this solver."""
        return new_solver_parameters(self)

    def _solve(self, problem_type: ProblemType, problem, params) -> SolveResult:
        if params is None:
            params = self.new_parameters()

        backend = self.backend
        with BufferScope() as scope:
            problem_buf = scope.enter(marshal_problem(backend, problem))
            params_buf = scope.enter(marshal_parameters(backend, params))
            result_handle = backend.solve(
                self.name, problem_type, problem_buf.handle, params_buf.handle)

        return unmarshal(backend, result_handle, 'result')

    def _submit(self, problem_type: ProblemType, problem, params) -> SubmittedProblem:
        if params is None:
            params = self.new_parameters()

        backend = self.backend
        with BufferScope() as scope:
            problem_buf = scope.enter(marshal_problem(backend, problem))
            params_buf = scope.enter(marshal_parameters(backend, params))
            job_handle = backend.solve_async(
                self.name, problem_type, problem_buf.handle, params_buf.handle)
            job = ForeignBuffer(backend, job_handle, Ownership.OWNED)

        return SubmittedProblem(self, job)

    @dispatches_events('solve')
    def solve_ising(self, problem: abc.Iterable,
                    params: Optional[SolverParameters] = None) -> SolveResult:
        """Solve an Ising problem, blocking until done.

        Args:
            problem:
                Problem entries ``(i, j, value)``, with spins ``s_i`` in
                ``{-1, +1}``.
            params:
                Solver parameters; :meth:`new_parameters` defaults if unset.

        Raises:
            :exc:`~sapi.exceptions.SAPIError` subclass matching the failure.
        """
        return self._solve(ProblemType.ISING, problem, params)

    @dispatches_events('solve')
    def solve_qubo(self, problem: abc.Iterable,
                   params: Optional[SolverParameters] = None) -> SolveResult:
        """Solve a QUBO problem (variables in ``{0, 1}``), blocking until
        done. See :meth:`solve_ising`."""
        return self._solve(ProblemType.QUBO, problem, params)

    @dispatches_events('submit')
    def submit_ising(self, problem: abc.Iterable,
                     params: Optional[SolverParameters] = None) -> SubmittedProblem:
        """Submit an Ising problem without waiting for it.

        Raises only on submission-time failures (invalid input, immediate
        rejection). Transient faults are retried on subsequent polls.
        """
        return self._submit(ProblemType.ISING, problem, params)

    @dispatches_events('submit')
    def submit_qubo(self, problem: abc.Iterable,
                    params: Optional[SolverParameters] = None) -> SubmittedProblem:
        """Submit a QUBO problem without waiting for it. See
        :meth:`submit_ising`."""
        return self._submit(ProblemType.QUBO, problem, params)

    def hardware_adjacency(self) -> Problem:
        """Couplers of a structured solver, listed in both directions.

        Raises:
            :exc:`~sapi.exceptions.InvalidParameterError`: unstructured solver.
        """
        backend = self.backend
        return unmarshal(backend, backend.hardware_adjacency(self.name), 'problem')
