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
Minor embedding of logical problems into a structured solver's hardware
graph, and mapping of the answers back.

Embeddings map each physical qubit (list index) to the logical variable it
represents, or ``-1`` for unused qubits. A logical variable is represented by
a connected chain of qubits.

Example:
    >>> import sapi
    >>> from sapi.embedding import find_embedding, embed_problem, unembed_answer
    >>> from sapi.constants import BrokenChains
    >>> sapi.initialize()
    >>> solver = sapi.local_connection().get_solver('c4-sw_optimize')
    >>> adjacency = solver.hardware_adjacency()
    >>> problem = [(0, 1, -1), (1, 2, -1), (0, 2, -1)]
    >>> embeddings = find_embedding(problem, adjacency)
    >>> embedded = embed_problem(problem, embeddings, adjacency)
    >>> result = solver.solve_ising(embedded.problem + embedded.chain_couplers)
    >>> unembed_answer(result.solutions, embedded.embeddings,
    ...                BrokenChains.MINIMIZE_ENERGY, problem)      # doctest: +SKIP
"""

from __future__ import annotations

from collections import abc
from typing import TYPE_CHECKING, Optional

from sapi.buffers import (
    BufferScope, marshal_embeddings, marshal_problem, marshal_solutions, unmarshal)
from sapi.constants import BrokenChains
from sapi.models import EmbedProblemResult, FindEmbeddingParameters, IsingRangeProperties

if TYPE_CHECKING:
    from sapi.connection import Connection

__all__ = ['find_embedding', 'embed_problem', 'unembed_answer']


def _backend(connection: Optional[Connection]):
    if connection is None:
        from sapi.connection import local_connection
        connection = local_connection()
    connection.ensure_open()
    return connection.backend


def find_embedding(problem: abc.Iterable, adjacency: abc.Iterable,
                   params: Optional[FindEmbeddingParameters] = None, *,
                   connection: Optional[Connection] = None) -> list[int]:
    """Heuristically find an embedding of the problem graph into the
    ``adjacency`` graph.

    Raises:
        :exc:`~sapi.exceptions.EmbeddingError`:
            No embedding found. One might still exist.
    """
    if params is None:
        params = FindEmbeddingParameters()

    backend = _backend(connection)
    with BufferScope() as scope:
        problem_buf = scope.enter(marshal_problem(backend, problem))
        adjacency_buf = scope.enter(marshal_problem(backend, adjacency))
        handle = backend.find_embedding(problem_buf.handle, adjacency_buf.handle, params)

    return unmarshal(backend, handle, 'embeddings')


def embed_problem(problem: abc.Iterable, embeddings: abc.Sequence[int],
                  adjacency: abc.Iterable, clean: bool = False, smear: bool = False,
                  ranges: Optional[IsingRangeProperties] = None, *,
                  connection: Optional[Connection] = None) -> EmbedProblemResult:
    """Map a logical Ising problem onto physical qubits.

    Args:
        clean:
            Drop chain qubits not needed for connectivity.
        smear:
            Grow chains with large fields into unused qubits, to fit
            ``ranges``.
        ranges:
            Solver coefficient ranges. Chain couplers get ``ranges.j_min``.

    Raises:
        :exc:`~sapi.exceptions.InvalidParameterError`: invalid embeddings.
    """
    if ranges is None:
        ranges = IsingRangeProperties()

    backend = _backend(connection)
    with BufferScope() as scope:
        problem_buf = scope.enter(marshal_problem(backend, problem))
        embeddings_buf = scope.enter(marshal_embeddings(backend, embeddings))
        adjacency_buf = scope.enter(marshal_problem(backend, adjacency))
        handles = backend.embed_problem(
            problem_buf.handle, embeddings_buf.handle, adjacency_buf.handle,
            clean, smear, ranges)

    problem_handle, chains_handle, embeddings_handle = handles
    try:
        embedded = unmarshal(backend, problem_handle, 'problem')
    finally:
        try:
            chain_couplers = unmarshal(backend, chains_handle, 'problem')
        finally:
            new_embeddings = unmarshal(backend, embeddings_handle, 'embeddings')

    return EmbedProblemResult(embedded, chain_couplers, new_embeddings)


def unembed_answer(solutions: abc.Sequence[abc.Sequence[int]],
                   embeddings: abc.Sequence[int],
                   broken_chains: BrokenChains,
                   problem: abc.Iterable, *,
                   connection: Optional[Connection] = None) -> list[list[int]]:
    """Map physical spin solutions back to the logical problem's variables,
    resolving broken chains per ``broken_chains``."""
    backend = _backend(connection)
    with BufferScope() as scope:
        solutions_buf = scope.enter(marshal_solutions(backend, solutions))
        embeddings_buf = scope.enter(marshal_embeddings(backend, embeddings))
        problem_buf = scope.enter(marshal_problem(backend, problem))
        handle = backend.unembed_answer(
            solutions_buf.handle, embeddings_buf.handle,
            BrokenChains(broken_chains), problem_buf.handle)

    return unmarshal(backend, handle, 'solutions')
