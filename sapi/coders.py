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

"""Encoding of problems and decoding of answers in the Solver API ``qp``
format.

In ``qp`` format, linear coefficients are sent as a base64-encoded array of
little-endian doubles, one per solver qubit (``NaN`` for unused qubits), and
coupling coefficients as a similar array over the solver couplers joining
active qubits. Answers carry solutions as base64-encoded bit-packed arrays
over the active variables, and energies and occurrence counts as base64
encoded doubles and 32-bit integers.
"""

import base64
import math
import struct
from collections import abc
from typing import TypedDict

from sapi.constants import UNUSED_VARIABLE
from sapi.exceptions import CommunicationError, ProblemStructureError
from sapi.models import SolverProperties
from sapi.problem import Problem, canonicalize

__all__ = ['encode_problem_as_qp', 'decode_qp_problem', 'decode_qp']


class EncodedQP(TypedDict):
    format: str
    lin: str
    quad: str


def _encode_doubles(values: abc.Sequence[float]) -> str:
    return base64.b64encode(struct.pack('<' + 'd' * len(values), *values)).decode('utf-8')


def _decode_doubles(message: str) -> tuple:
    binary = base64.b64decode(message)
    return struct.unpack('<' + 'd' * (len(binary) // 8), binary)


def _decode_ints(message: str) -> tuple:
    binary = base64.b64decode(message)
    return struct.unpack('<' + 'i' * (len(binary) // 4), binary)


def encode_problem_as_qp(properties: SolverProperties, problem: Problem) -> EncodedQP:
    """Encode ``problem`` for submission to a structured solver with
    ``properties``.

    Raises:
        :exc:`~sapi.exceptions.ProblemStructureError`:
            Problem uses qubits or couplers not in the solver graph.
    """
    problem = canonicalize(problem)
    qubits = set(properties.qubits)
    couplers = {(min(u, v), max(u, v)) for u, v in properties.couplers}

    linear, quadratic, active = {}, {}, set()
    for i, j, value in problem:
        if i not in qubits or j not in qubits:
            raise ProblemStructureError(f"qubit {max(i, j)} not in solver graph")
        active.update((i, j))
        if i == j:
            linear[i] = value
        elif (i, j) in couplers:
            quadratic[(i, j)] = value
        else:
            raise ProblemStructureError(f"coupler ({i}, {j}) not in solver graph")

    lin = [linear.get(q, 0.0 if q in active else math.nan) for q in properties.qubits]
    quad = [quadratic.get((min(u, v), max(u, v)), 0.0)
            for u, v in properties.couplers
            if u in active and v in active]

    return EncodedQP(format='qp', lin=_encode_doubles(lin), quad=_encode_doubles(quad))


def decode_qp_problem(properties: SolverProperties, qp: abc.Mapping) -> Problem:
    """Decode a ``qp``-encoded problem back into canonical form."""
    lin = _decode_doubles(qp['lin'])
    quad = _decode_doubles(qp['quad'])

    entries = [(q, q, value) for q, value in zip(properties.qubits, lin)
               if not math.isnan(value)]
    active = {q for q, _, _ in entries}
    edges = [(u, v) for u, v in properties.couplers if u in active and v in active]
    entries.extend((u, v, value) for (u, v), value in zip(edges, quad) if value)

    return canonicalize(entries)


def decode_qp(msg: abc.Mapping) -> dict:
    """Decode a problem answer message in ``qp`` format into a result dict
    (see :class:`~sapi.models.SolveResult`).

    Raises:
        :exc:`~sapi.exceptions.CommunicationError`: malformed answer.
    """
    try:
        answer = msg['answer']
        problem_type = msg.get('type', 'ising')
        active_variables = _decode_ints(answer['active_variables'])
        energies = list(_decode_doubles(answer['energies']))
        num_variables = answer['num_variables']
        binary = base64.b64decode(answer['solutions'])
        if 'num_occurrences' in answer:
            num_occurrences = list(_decode_ints(answer['num_occurrences']))
        else:
            num_occurrences = [1] * len(energies)
    except (KeyError, TypeError, ValueError, struct.error) as exc:
        raise CommunicationError(f"malformed answer: {exc!r}") from exc

    solution_bytes = -(-len(active_variables) // 8)
    if len(binary) < solution_bytes * len(energies):
        raise CommunicationError("malformed answer: truncated solutions")
    spins = problem_type == 'ising'

    solutions = []
    for k in range(len(energies)):
        chunk = binary[k * solution_bytes:(k + 1) * solution_bytes]
        solution = [UNUSED_VARIABLE] * num_variables
        for index, variable in enumerate(active_variables):
            # bits are packed most significant first
            bit = (chunk[index // 8] >> (7 - index % 8)) & 1
            solution[variable] = (2 * bit - 1) if spins else bit
        solutions.append(solution)

    return dict(
        solutions=solutions,
        energies=energies,
        num_occurrences=num_occurrences,
        timing=dict(answer.get('timing') or {}),
        problem_type=problem_type,
    )
