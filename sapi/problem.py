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
Sparse representation of Ising and QUBO problems.

A problem is a list of ``(i, j, value)`` entries. Entries with ``i == j`` are
linear terms (fields), entries with ``i != j`` are couplers. Couplers are
undirected: ``(i, j)`` and ``(j, i)`` refer to the same interaction.

The same container holds Ising problems (variables take values -1/+1) and
QUBO problems (variables take values 0/1). The encoding is implied by the
operation a problem is passed to, e.g. :meth:`~sapi.solver.Solver.solve_ising`
vs :meth:`~sapi.solver.Solver.solve_qubo`.

Ising and QUBO encodings are related by ``s = 2x - 1``. Conversion in either
direction returns the converted problem and an energy offset such that::

    energy(ising, s) + ising_offset == energy(qubo, x)

where ``ising, ising_offset = to_ising(qubo)``.
"""

import math
import numbers
from collections import abc, defaultdict
from typing import NamedTuple, Union

from sapi.exceptions import InvalidParameterError

__all__ = [
    'ProblemEntry', 'Problem',
    'canonicalize', 'to_ising', 'to_qubo', 'count_variables', 'energy',
    'validate_problem', 'fix', 'neighbors', 'chimera_adjacency',
]


class ProblemEntry(NamedTuple):
    i: int
    j: int
    value: float


class Problem(list):
    """List of :class:`ProblemEntry` items.

    Any iterable of ``(i, j, value)`` triples is accepted on construction.

    Example:
        >>> from sapi.problem import Problem
        >>> p = Problem([(3, 2, 1.0), (2, 3, 6.0), (2, 2, -1)])
        >>> p.canonicalize()
        Problem([ProblemEntry(i=2, j=2, value=-1), ProblemEntry(i=2, j=3, value=7.0)])
    """

    def __init__(self, entries: abc.Iterable = ()):
        super().__init__(_as_entry(entry) for entry in entries)

    def __repr__(self):
        return f"{type(self).__name__}({list.__repr__(self)})"

    @classmethod
    def from_ising(cls, h: Union[abc.Mapping, abc.Sequence],
                   J: abc.Mapping) -> 'Problem':
        """Construct a problem from linear biases ``h`` (dict or list) and
        couplings ``J`` (dict keyed by variable pairs)."""
        if isinstance(h, abc.Mapping):
            linear = h.items()
        else:
            linear = enumerate(h)
        entries = [(v, v, bias) for v, bias in linear]
        entries.extend((u, v, bias) for (u, v), bias in J.items())
        return cls(entries)

    @classmethod
    def from_qubo(cls, Q: abc.Mapping) -> 'Problem':
        """Construct a problem from a QUBO dict keyed by variable pairs."""
        return cls((u, v, bias) for (u, v), bias in Q.items())

    def as_ising(self) -> tuple[dict, dict]:
        """Split the canonical problem into linear and quadratic dicts."""
        linear, quadratic = {}, {}
        for i, j, value in canonicalize(self):
            if i == j:
                linear[i] = value
            else:
                quadratic[(i, j)] = value
        return linear, quadratic

    def variables(self) -> list[int]:
        """Sorted list of variable indices referenced by the problem."""
        return sorted({i for i, _, _ in self} | {j for _, j, _ in self})

    def canonicalize(self) -> 'Problem':
        return canonicalize(self)

    def to_ising(self) -> tuple['Problem', float]:
        return to_ising(self)

    def to_qubo(self) -> tuple['Problem', float]:
        return to_qubo(self)

    def count_variables(self) -> int:
        return count_variables(self)

    def energy(self, state) -> float:
        return energy(self, state)


def _as_entry(entry) -> ProblemEntry:
    if isinstance(entry, ProblemEntry):
        return entry
    i, j, value = entry
    return ProblemEntry(i, j, value)


def canonicalize(problem: abc.Iterable) -> Problem:
    """Return the canonical form of a problem.

    In canonical form every entry has ``i <= j``, no ``(i, j)`` pair occurs
    twice (duplicates, in either orientation, are merged by summing their
    values), and entries are sorted by ``(i, j)``.

    Canonicalization is idempotent and independent of the input order.
    """
    merged = {}
    for i, j, value in problem:
        if i > j:
            i, j = j, i
        key = (i, j)
        if key in merged:
            merged[key] += value
        else:
            merged[key] = value

    return Problem(ProblemEntry(i, j, merged[(i, j)]) for i, j in sorted(merged))


def _completed(problem: abc.Iterable) -> Problem:
    """Canonical problem with an explicit (zero) linear term for every
    coupled variable missing one."""
    canonical = canonicalize(problem)
    linear = {i for i, j, _ in canonical if i == j}
    missing = {v for i, j, _ in canonical if i != j for v in (i, j)} - linear
    if not missing:
        return canonical
    return canonicalize(list(canonical) + [ProblemEntry(v, v, 0.0) for v in missing])


def _coupler_sums(problem: Problem) -> dict[int, float]:
    """Sum of coupler values incident on each variable."""
    sums = defaultdict(float)
    for i, j, value in problem:
        if i != j:
            sums[i] += value
            sums[j] += value
    return sums


def _energy_offset(problem: Problem) -> float:
    linear = sum(value for i, j, value in problem if i == j)
    coupling = sum(value for i, j, value in problem if i != j)
    return linear / 2 + coupling / 4


def to_ising(problem: abc.Iterable) -> tuple[Problem, float]:
    """Convert a QUBO problem to an Ising problem.

    Returns:
        Tuple of the canonical Ising problem and the energy offset to add to
        Ising energies to obtain the QUBO energies.
    """
    qubo = _completed(problem)
    sums = _coupler_sums(qubo)

    ising = Problem()
    for i, j, value in qubo:
        if i == j:
            ising.append(ProblemEntry(i, j, value / 2 + sums[i] / 4))
        else:
            ising.append(ProblemEntry(i, j, value / 4))

    return ising, _energy_offset(qubo)


def to_qubo(problem: abc.Iterable) -> tuple[Problem, float]:
    """Convert an Ising problem to a QUBO problem.

    Returns:
        Tuple of the canonical QUBO problem and the energy offset to add to
        QUBO energies to obtain the Ising energies.
    """
    ising = _completed(problem)
    sums = _coupler_sums(ising)

    qubo = Problem()
    for i, j, value in ising:
        if i == j:
            qubo.append(ProblemEntry(i, j, 2 * value - 2 * sums[i]))
        else:
            qubo.append(ProblemEntry(i, j, 4 * value))

    return qubo, -_energy_offset(qubo)


def count_variables(problem: abc.Iterable) -> int:
    """Number of distinct variable indices referenced by the problem."""
    variables = set()
    for i, j, _ in problem:
        variables.add(i)
        variables.add(j)
    return len(variables)


def energy(problem: abc.Iterable, state: Union[abc.Sequence, abc.Mapping]) -> float:
    """Energy of ``state`` (spins for Ising, bits for QUBO problems).

    ``state`` is indexed by variable, either a sequence or a mapping.
    """
    total = 0.0
    for i, j, value in problem:
        if i == j:
            total += value * state[i]
        else:
            total += value * state[i] * state[j]
    return total


def validate_problem(problem: abc.Iterable) -> Problem:
    """Check entries are ``(int >= 0, int >= 0, finite real)`` triples.

    Raises:
        :exc:`~sapi.exceptions.InvalidParameterError`
    """
    try:
        entries = Problem(problem)
    except (TypeError, ValueError) as exc:
        raise InvalidParameterError(f"malformed problem entry: {exc}") from exc

    for i, j, value in entries:
        for index in (i, j):
            if (isinstance(index, bool) or not isinstance(index, numbers.Integral)
                    or index < 0):
                raise InvalidParameterError(
                    f"variable index must be a non-negative integer, got {index!r}")
        if (isinstance(value, bool) or not isinstance(value, numbers.Real)
                or not math.isfinite(value)):
            raise InvalidParameterError(
                f"coefficient of ({i}, {j}) must be a finite real number, got {value!r}")

    return entries


def fix(problem: abc.Iterable, assignments: abc.Mapping) -> tuple[Problem, float]:
    """Substitute fixed values for some variables of a QUBO problem.

    Returns:
        Tuple of the reduced canonical problem (over the remaining variables)
        and the constant energy contribution of the fixed variables.
    """
    offset = 0.0
    reduced = []
    for i, j, value in canonicalize(problem):
        fixed_i, fixed_j = i in assignments, j in assignments
        if i == j:
            if fixed_i:
                offset += value * assignments[i]
            else:
                reduced.append((i, i, value))
        elif fixed_i and fixed_j:
            offset += value * assignments[i] * assignments[j]
        elif fixed_i:
            reduced.append((j, j, value * assignments[i]))
        elif fixed_j:
            reduced.append((i, i, value * assignments[j]))
        else:
            reduced.append((i, j, value))

    return canonicalize(reduced), offset


def neighbors(problem: abc.Iterable) -> dict[int, set]:
    """Adjacency sets of the graph defined by the problem's couplers."""
    adj = defaultdict(set)
    for i, j, _ in problem:
        if i != j:
            adj[i].add(j)
            adj[j].add(i)
    return dict(adj)


def chimera_adjacency(m: int, n: int, l: int) -> Problem:
    """Couplers of an ``m`` x ``n`` Chimera graph of ``K(l, l)`` unit cells.

    Qubit ``k`` on side ``u`` of the cell in row ``i``, column ``j`` has
    index ``((i * n + j) * 2 + u) * l + k``. Side 0 qubits couple to the cell
    below, side 1 qubits to the cell to the right.

    Every coupler is listed in both directions, with value 1.0.
    """
    for name, size in (('m', m), ('n', n), ('l', l)):
        if isinstance(size, bool) or not isinstance(size, numbers.Integral) or size < 1:
            raise InvalidParameterError(f"{name!r} must be a positive integer, got {size!r}")

    def qubit(i, j, u, k):
        return ((i * n + j) * 2 + u) * l + k

    edges = []
    for i in range(m):
        for j in range(n):
            for k in range(l):
                for kk in range(l):
                    edges.append((qubit(i, j, 0, k), qubit(i, j, 1, kk)))
                if i + 1 < m:
                    edges.append((qubit(i, j, 0, k), qubit(i + 1, j, 0, k)))
                if j + 1 < n:
                    edges.append((qubit(i, j, 1, k), qubit(i, j + 1, 1, k)))

    adjacency = Problem()
    for u, v in edges:
        adjacency.append(ProblemEntry(u, v, 1.0))
        adjacency.append(ProblemEntry(v, u, 1.0))
    return adjacency
