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

"""Simple Ising minimizers and samplers used by the local backend.

All functions work on a linear dict ``h`` and a coupling dict ``J`` keyed by
variable pairs, over an explicit, ordered list of ``variables``. States are
tuples of spins (-1/+1) aligned with ``variables``.
"""

import heapq
import math
import random
import time
from collections import defaultdict
from typing import Optional

__all__ = ['ising_energy', 'exhaustive_search', 'metropolis_sample',
           'greedy_descent', 'randomized_descent', 'MAX_EXHAUSTIVE_VARIABLES']

#: Largest problem (in active variables) solved by exhaustive search.
MAX_EXHAUSTIVE_VARIABLES = 20


def _index(variables, h, J):
    """Re-index the problem over positions in ``variables``."""
    position = {v: k for k, v in enumerate(variables)}
    fields = [h.get(v, 0.0) for v in variables]
    adjacency = defaultdict(list)
    for (u, v), coupling in J.items():
        adjacency[position[u]].append((position[v], coupling))
        adjacency[position[v]].append((position[u], coupling))
    return fields, adjacency


def ising_energy(h: dict, J: dict, variables: list, state: tuple) -> float:
    spins = dict(zip(variables, state))
    energy = sum(bias * spins[v] for v, bias in h.items())
    energy += sum(coupling * spins[u] * spins[v] for (u, v), coupling in J.items())
    return energy


def exhaustive_search(h: dict, J: dict, variables: list,
                      num_answers: int) -> list[tuple[tuple, float]]:
    """Return up to ``num_answers`` lowest-energy distinct states, sorted by
    energy, by enumerating all states in Gray code order."""
    n = len(variables)
    if n > MAX_EXHAUSTIVE_VARIABLES:
        raise ValueError(f"{n} variables exceed the exhaustive search limit")

    fields, adjacency = _index(variables, h, J)
    state = [-1] * n
    energy = ising_energy(h, J, variables, tuple(state))

    # max-heap (via negated energy) of the best states found so far
    best = [(-energy, tuple(state))]
    for k in range(1, 2 ** n):
        i = (k & -k).bit_length() - 1
        local = fields[i] + sum(c * state[j] for j, c in adjacency[i])
        energy -= 2 * state[i] * local
        state[i] = -state[i]

        item = (-energy, tuple(state))
        if len(best) < num_answers:
            heapq.heappush(best, item)
        elif item > best[0]:
            heapq.heapreplace(best, item)

    return sorted(((s, -e) for e, s in best), key=lambda item: (item[1], item[0]))


def greedy_descent(fields, adjacency, state: list) -> list:
    """Flip single spins while that lowers the energy."""
    improved = True
    while improved:
        improved = False
        for i in range(len(state)):
            local = fields[i] + sum(c * state[j] for j, c in adjacency[i])
            if state[i] * local > 0:
                state[i] = -state[i]
                improved = True
    return state


def metropolis_sample(h: dict, J: dict, variables: list, num_reads: int,
                      beta: float, rng: random.Random,
                      num_sweeps: int = 100) -> list[tuple]:
    """Return ``num_reads`` states, each after ``num_sweeps`` Metropolis
    sweeps at inverse temperature ``beta`` from a random start."""
    fields, adjacency = _index(variables, h, J)
    n = len(variables)

    samples = []
    for _ in range(num_reads):
        state = [rng.choice((-1, 1)) for _ in range(n)]
        for _ in range(num_sweeps):
            for i in range(n):
                local = fields[i] + sum(c * state[j] for j, c in adjacency[i])
                delta = -2 * state[i] * local
                if delta <= 0 or rng.random() < math.exp(-beta * delta):
                    state[i] = -state[i]
        samples.append(tuple(state))
    return samples


def randomized_descent(h: dict, J: dict, variables: list, rng: random.Random,
                       iteration_limit: int, min_flip: float, max_flip: float,
                       time_limit: Optional[float] = None) -> tuple:
    """Best state found by greedy descent from random perturbations of the
    incumbent solution."""
    fields, adjacency = _index(variables, h, J)
    n = len(variables)
    deadline = None if time_limit is None else time.monotonic() + time_limit

    best = greedy_descent(fields, adjacency, [rng.choice((-1, 1)) for _ in range(n)])
    best_energy = ising_energy(h, J, variables, tuple(best))

    for _ in range(iteration_limit):
        if deadline is not None and time.monotonic() > deadline:
            break
        flip = rng.uniform(min_flip, max_flip)
        state = [-s if rng.random() < flip else s for s in best]
        state = greedy_descent(fields, adjacency, state)
        energy = ising_energy(h, J, variables, tuple(state))
        if energy < best_energy:
            best, best_energy = state, energy

    return tuple(best)
