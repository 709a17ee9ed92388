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
In-process backend with software solvers.

Solvers:

``c4-sw_optimize``
    Exhaustive search for the lowest-energy states, on a 4x4 Chimera graph
    of K(4,4) cells (128 qubits).

``c4-sw_sample``
    Metropolis sampling at fixed inverse temperature ``beta``, on the same
    graph.

``ising-heuristic``
    Randomized greedy descent on unstructured problems.

Asynchronously submitted problems are solved when polled: a problem becomes
``COMPLETED`` (or ``FAILED``) on its ``polls_to_complete``-th status poll,
and is ``IN_PROGRESS`` before that.
"""

import itertools
import logging
import random
import threading
import uuid
from collections import Counter
from typing import Optional

from sapi.backends.base import Backend
from sapi.backends import samplers
from sapi.constants import AnswerMode, ProblemType, RemoteStatus, UNUSED_VARIABLE
from sapi.exceptions import (
    InvalidParameterError, ProblemStructureError, SolveFailedError, SolverNotFoundError)
from sapi.models import SolverProperties, IsingRangeProperties
from sapi.parameters import PARAMETERS_BY_KIND, parse_solver_parameters
from sapi.problem import Problem, canonicalize, chimera_adjacency, to_ising
from sapi.utils.time import tictoc, utcnow

__all__ = ['LocalBackend', 'LOCAL_SOLVERS']

logger = logging.getLogger(__name__)


def _chimera_properties(kind: str) -> dict:
    couplers = sorted({(min(u, v), max(u, v)) for u, v, _ in chimera_adjacency(4, 4, 4)})
    fields = set(PARAMETERS_BY_KIND[kind].model_fields) - {'kind'}
    return dict(
        supported_problem_types=['ising', 'qubo'],
        num_qubits=128,
        qubits=list(range(128)),
        couplers=couplers,
        ising_ranges=IsingRangeProperties(h_min=-2.0, h_max=2.0, j_min=-1.0, j_max=1.0),
        category='software',
        parameters={name: f"{name} parameter" for name in sorted(fields)},
    )


def _heuristic_properties() -> dict:
    fields = set(PARAMETERS_BY_KIND['heuristic'].model_fields) - {'kind'}
    return dict(
        supported_problem_types=['ising', 'qubo'],
        category='software',
        parameters={name: f"{name} parameter" for name in sorted(fields)},
    )


#: Local solver name to (parameters kind, properties factory).
LOCAL_SOLVERS = {
    'c4-sw_optimize': ('sw_optimize', lambda: _chimera_properties('sw_optimize')),
    'c4-sw_sample': ('sw_sample', lambda: _chimera_properties('sw_sample')),
    'ising-heuristic': ('heuristic', _heuristic_properties),
}


class LocalBackend(Backend):
    """Backend running software solvers in the calling process.

    Args:
        polls_to_complete:
            Number of status polls an asynchronous problem takes to finish.
        **kwargs:
            See :class:`~sapi.backends.base.Backend`.
    """

    def __init__(self, *, polls_to_complete: int = 1, **kwargs):
        super().__init__(**kwargs)
        self.polls_to_complete = polls_to_complete
        self._properties = {name: SolverProperties(**factory())
                            for name, (_, factory) in LOCAL_SOLVERS.items()}
        self._problems = {}
        self._lock = threading.Lock()

    def solver_names(self) -> list[str]:
        return sorted(self._properties)

    def solver_properties(self, name: str) -> SolverProperties:
        try:
            return self._properties[name]
        except KeyError:
            raise SolverNotFoundError(f"solver {name!r} not found") from None

    # solving

    def _check_structure(self, properties: SolverProperties, problem: Problem) -> None:
        if not properties.structured:
            return
        qubits = set(properties.qubits)
        couplers = set(properties.couplers)
        for i, j, _ in problem:
            if i not in qubits or j not in qubits:
                raise ProblemStructureError(f"qubit {max(i, j)} not in solver graph")
            if i != j and (i, j) not in couplers:
                raise ProblemStructureError(f"coupler ({i}, {j}) not in solver graph")

    def _validated(self, solver: str, problem_type: ProblemType,
                   problem: Problem, params: dict):
        properties = self.solver_properties(solver)
        if problem_type.value not in properties.supported_problem_types:
            raise InvalidParameterError(
                f"solver {solver!r} doesn't support {problem_type.value} problems")

        kind, _ = LOCAL_SOLVERS[solver]
        parameters = parse_solver_parameters(params)
        if parameters.kind != kind:
            raise InvalidParameterError(
                f"solver {solver!r} requires {kind} parameters, got {parameters.kind}")

        problem = canonicalize(problem)
        self._check_structure(properties, problem)
        return properties, parameters, problem

    def _solve(self, solver: str, problem_type: ProblemType,
               problem: Problem, params: dict) -> dict:
        properties, parameters, problem = self._validated(solver, problem_type, problem, params)

        if problem_type is ProblemType.QUBO:
            ising, offset = to_ising(problem)
        else:
            ising, offset = problem, 0.0

        variables = ising.variables()
        h, J = ising.as_ising()

        with tictoc() as timer:
            samples = self._sample(parameters, h, J, variables)

        if properties.structured:
            size = properties.num_qubits
        else:
            size = max(variables, default=-1) + 1
            size = max(size, getattr(parameters, 'num_variables', 0))

        solutions, energies, counts = [], [], []
        for state, energy, count in samples:
            solution = [UNUSED_VARIABLE] * size
            for var, spin in zip(variables, state):
                solution[var] = spin if problem_type is ProblemType.ISING else (spin + 1) // 2
            solutions.append(solution)
            energies.append(energy + offset)
            counts.append(count)

        return dict(
            solutions=solutions,
            energies=energies,
            num_occurrences=counts,
            timing=dict(total_real_time=timer.dt * 1e6),
            problem_type=problem_type.value,
        )

    def _sample(self, parameters, h, J, variables) -> list[tuple[tuple, float, int]]:
        """Run the solver algorithm, returning ``(state, energy, count)``
        triples."""

        if parameters.kind == 'sw_optimize':
            num_answers = parameters.num_reads
            if parameters.max_answers is not None:
                num_answers = min(num_answers, parameters.max_answers)
            if len(variables) > samplers.MAX_EXHAUSTIVE_VARIABLES:
                raise SolveFailedError(
                    f"problem with {len(variables)} active variables is too large "
                    f"for exhaustive search (max {samplers.MAX_EXHAUSTIVE_VARIABLES})")
            return [(state, energy, 1)
                    for state, energy in samplers.exhaustive_search(h, J, variables, num_answers)]

        if parameters.kind == 'sw_sample':
            rng = random.Random(parameters.random_seed)
            states = samplers.metropolis_sample(
                h, J, variables, parameters.num_reads, parameters.beta, rng)
            if parameters.answer_mode == AnswerMode.RAW.value:
                samples = [(state, samplers.ising_energy(h, J, variables, state), 1)
                           for state in states]
            else:
                histogram = Counter(states)
                samples = sorted(
                    ((state, samplers.ising_energy(h, J, variables, state), count)
                     for state, count in histogram.items()),
                    key=lambda item: (item[1], item[0]))
            if parameters.max_answers is not None:
                samples = samples[:parameters.max_answers]
            return samples

        # heuristic
        rng = random.Random(parameters.random_seed)
        state = samplers.randomized_descent(
            h, J, variables, rng,
            iteration_limit=parameters.iteration_limit,
            min_flip=parameters.min_bit_flip_prob,
            max_flip=parameters.max_bit_flip_prob,
            time_limit=parameters.time_limit_seconds)
        return [(state, samplers.ising_energy(h, J, variables, state), 1)]

    # transport

    def _message(self, record: dict) -> dict:
        message = {key: record[key] for key in ('id', 'status', 'submitted_on', 'solved_on')}
        if record.get('error_message'):
            message['error_message'] = record['error_message']
        return message

    def _record(self, remote_id: str) -> dict:
        try:
            return self._problems[remote_id]
        except KeyError:
            raise InvalidParameterError(f"problem {remote_id!r} not found") from None

    def _submit_problem(self, solver: str, problem_type: ProblemType,
                        problem: Problem, params: dict) -> dict:
        self._validated(solver, problem_type, problem, params)

        record = dict(
            id=str(uuid.uuid4()),
            status=RemoteStatus.PENDING.value,
            submitted_on=utcnow().isoformat(),
            solved_on=None,
            solver=solver,
            problem_type=problem_type,
            problem=problem,
            params=params,
            polls_left=self.polls_to_complete,
            answer=None,
        )
        with self._lock:
            self._problems[record['id']] = record

        logger.debug("Local problem %s submitted to %r", record['id'], solver)
        return self._message(record)

    def _problem_status(self, remote_id: str) -> dict:
        with self._lock:
            record = self._record(remote_id)
            if RemoteStatus(record['status']).terminal:
                return self._message(record)

            record['polls_left'] -= 1
            if record['polls_left'] > 0:
                record['status'] = RemoteStatus.IN_PROGRESS.value
                return self._message(record)

        try:
            answer = self._solve(record['solver'], record['problem_type'],
                                 record['problem'], record['params'])
        except SolveFailedError as exc:
            record.update(status=RemoteStatus.FAILED.value, error_message=str(exc))
        else:
            record.update(status=RemoteStatus.COMPLETED.value, answer=answer)
        record['solved_on'] = utcnow().isoformat()

        return self._message(record)

    def _problem_answer(self, remote_id: str) -> dict:
        with self._lock:
            record = self._record(remote_id)
        if record['answer'] is None:
            raise SolveFailedError(f"problem {remote_id!r} has no answer")
        return record['answer']

    def _cancel_problem(self, remote_id: str) -> None:
        with self._lock:
            record = self._record(remote_id)
            if not RemoteStatus(record['status']).terminal:
                record['status'] = RemoteStatus.CANCELED.value
                record['solved_on'] = utcnow().isoformat()
