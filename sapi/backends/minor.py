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
Minor embedding of problems into a hardware graph.

Each logical variable is represented by a *chain*: a connected set of
physical qubits. Embeddings are given as a list indexed by qubit, holding the
logical variable represented by that qubit, or -1 for unused qubits.
"""

import collections
import logging
import random
import time
from typing import Optional

from sapi.constants import BrokenChains, UNUSED_VARIABLE
from sapi.exceptions import EmbeddingError, InvalidParameterError
from sapi.models import FindEmbeddingParameters, IsingRangeProperties
from sapi.problem import Problem, ProblemEntry, canonicalize, neighbors

__all__ = ['find_embedding', 'embed_problem', 'unembed_answer',
           'chains_from_embeddings', 'embeddings_from_chains']

logger = logging.getLogger(__name__)


def chains_from_embeddings(embeddings: list[int]) -> dict[int, list[int]]:
    chains = collections.defaultdict(list)
    for qubit, var in enumerate(embeddings):
        if var >= 0:
            chains[var].append(qubit)
    return dict(chains)


def embeddings_from_chains(chains: dict[int, set], size: int = 0) -> list[int]:
    qubits = [q for chain in chains.values() for q in chain]
    size = max([size] + [q + 1 for q in qubits])
    embeddings = [-1] * size
    for var, chain in chains.items():
        for qubit in chain:
            embeddings[qubit] = var
    return embeddings


def _is_connected(qubits: set, adj: dict[int, set]) -> bool:
    if not qubits:
        return False
    start = next(iter(qubits))
    seen = {start}
    stack = [start]
    while stack:
        q = stack.pop()
        for p in adj.get(q, ()):
            if p in qubits and p not in seen:
                seen.add(p)
                stack.append(p)
    return len(seen) == len(qubits)


def _chains_touch(a: set, b: set, adj: dict[int, set]) -> bool:
    return any(adj.get(q, set()) & b for q in a)


def _distances(sources: set, free: set, adj: dict[int, set]):
    """BFS from ``sources`` through ``free`` qubits.

    Returns distance and parent maps over the reached free qubits.
    """
    dist, parent = {}, {}
    frontier = collections.deque()
    for q in sources:
        for p in adj.get(q, ()):
            if p in free and p not in dist:
                dist[p] = 1
                parent[p] = q
                frontier.append(p)
    while frontier:
        q = frontier.popleft()
        for p in adj.get(q, ()):
            if p in free and p not in dist:
                dist[p] = dist[q] + 1
                parent[p] = q
                frontier.append(p)
    return dist, parent


def _place(var, graph, chains, adj, free, rng) -> Optional[set]:
    """Find a chain for ``var`` adjacent to the chains of its placed
    neighbors, using only ``free`` qubits."""
    placed = [u for u in graph.get(var, ()) if u in chains]

    if not placed:
        if not free:
            return None
        degree = max(len(adj.get(q, ())) for q in free)
        best = [q for q in free if len(adj.get(q, ())) == degree]
        return {rng.choice(sorted(best))}

    searches = [_distances(chains[u], free, adj) for u in placed]
    candidates = set(free)
    for dist, _ in searches:
        candidates &= dist.keys()
    if not candidates:
        return None

    cost = {q: sum(dist[q] for dist, _ in searches) for q in candidates}
    lowest = min(cost.values())
    root = rng.choice(sorted(q for q, c in cost.items() if c == lowest))

    chain = {root}
    for u, (_, parent) in zip(placed, searches):
        q = root
        while q not in chains[u]:
            chain.add(q)
            q = parent[q]
    return chain


def _embed_once(variables, graph, adj, rng, params, deadline) -> Optional[dict]:
    order = sorted(variables, key=lambda v: (-len(graph.get(v, ())), rng.random()))
    chains = {}
    free = set(adj)

    for var in order:
        chain = _place(var, graph, chains, adj, free, rng)
        if chain is None:
            return None
        chains[var] = chain
        free -= chain

    if params.fast_embedding:
        return chains

    # rip-up and reroute chains while their total length improves
    stale = 0
    while stale < params.max_no_improvement and time.monotonic() < deadline:
        improved = False
        for var in rng.sample(order, len(order)):
            old = chains.pop(var)
            free |= old
            new = _place(var, graph, chains, adj, free, rng)
            if new is not None and len(new) < len(old):
                chains[var] = new
                improved = True
            else:
                chains[var] = old
            free -= chains[var]
        stale = 0 if improved else stale + 1

    return chains


def find_embedding(problem: Problem, adjacency: Problem,
                   params: Optional[FindEmbeddingParameters] = None) -> list[int]:
    """Heuristically embed the graph of ``problem`` into ``adjacency``.

    Failure to find an embedding doesn't prove one doesn't exist.

    Raises:
        :exc:`~sapi.exceptions.EmbeddingError`
    """
    if params is None:
        params = FindEmbeddingParameters()

    graph = neighbors(problem)
    variables = sorted({i for i, _, _ in problem} | {j for _, j, _ in problem})
    adj = neighbors(adjacency)
    size = max(adj, default=-1) + 1

    if not variables:
        return [-1] * size

    deadline = time.monotonic() + params.timeout
    for attempt in range(params.tries):
        seed = None if params.random_seed is None else params.random_seed + attempt
        rng = random.Random(seed)
        chains = _embed_once(variables, graph, adj, rng, params, deadline)
        if chains is not None:
            if params.verbose:
                logger.info("Embedding found on try %d, total chain length %d",
                            attempt + 1, sum(map(len, chains.values())))
            return embeddings_from_chains(chains, size)

        if params.verbose:
            logger.info("Embedding try %d failed", attempt + 1)
        if time.monotonic() >= deadline:
            break

    raise EmbeddingError(
        f"failed to embed {len(variables)} variables after {attempt + 1} tries")


def _clean(chains: dict[int, set], graph: dict, adj: dict) -> None:
    """Drop chain qubits not needed for chain connectivity or for coupling
    to neighboring chains."""
    changed = True
    while changed:
        changed = False
        for var, chain in chains.items():
            if len(chain) < 2:
                continue
            for qubit in sorted(chain):
                rest = chain - {qubit}
                if not _is_connected(rest, adj):
                    continue
                if all(_chains_touch(rest, chains[u], adj) for u in graph.get(var, ())):
                    chain.discard(qubit)
                    changed = True
                    break


def _smear(chains: dict[int, set], linear: dict, adj: dict,
           ranges: IsingRangeProperties) -> None:
    """Grow chains into unused qubits until their per-qubit field fits the
    solver's h range."""
    used = {q for chain in chains.values() for q in chain}
    for var, chain in chains.items():
        h = linear.get(var, 0.0)
        limit = ranges.h_max if h > 0 else -ranges.h_min
        if limit <= 0:
            continue
        while abs(h) / len(chain) > limit:
            candidates = sorted({p for q in chain for p in adj.get(q, ())} - used)
            if not candidates:
                break
            chain.add(candidates[0])
            used.add(candidates[0])


def embed_problem(problem: Problem, embeddings: list[int], adjacency: Problem,
                  clean: bool = False, smear: bool = False,
                  ranges: Optional[IsingRangeProperties] = None):
    """Map a logical Ising problem onto physical qubits.

    Fields are spread evenly over chain qubits; each logical coupling is
    spread evenly over all physical couplers between the two chains.

    Returns:
        Tuple of the embedded problem, the chain couplers (valued
        ``ranges.j_min``) and the possibly modified embeddings.

    Raises:
        :exc:`~sapi.exceptions.InvalidParameterError`:
            Embeddings don't form a valid minor of ``adjacency`` for
            ``problem``.
    """
    if ranges is None:
        ranges = IsingRangeProperties()

    problem = canonicalize(problem)
    adj = neighbors(adjacency)
    graph = neighbors(problem)
    chains = {var: set(chain) for var, chain in chains_from_embeddings(embeddings).items()}

    linear = {i: v for i, j, v in problem if i == j}
    for var in sorted({i for i, _, _ in problem} | {j for _, j, _ in problem}):
        if var not in chains:
            raise InvalidParameterError(f"variable {var} is not embedded")

    for var, chain in chains.items():
        if len(chain) > 1 and not _is_connected(chain, adj):
            raise InvalidParameterError(f"chain of variable {var} is not connected")

    for u, v, _ in problem:
        if u != v and not _chains_touch(chains[u], chains[v], adj):
            raise InvalidParameterError(f"chains of variables {u} and {v} are not coupled")

    if clean:
        _clean(chains, graph, adj)
    if smear:
        _smear(chains, linear, adj, ranges)

    embedded = []
    for u, v, value in problem:
        if u == v:
            chain = chains[u]
            embedded.extend((q, q, value / len(chain)) for q in chain)
        else:
            edges = [(p, q) for p in chains[u] for q in adj.get(p, ()) if q in chains[v]]
            embedded.extend((p, q, value / len(edges)) for p, q in edges)

    chain_couplers = []
    for chain in chains.values():
        for p in chain:
            chain_couplers.extend(
                ProblemEntry(p, q, ranges.j_min) for q in adj.get(p, ()) if q in chain and p < q)

    return (canonicalize(embedded), canonicalize(chain_couplers),
            embeddings_from_chains(chains, len(embeddings)))


def _local_energy(var, value, assigned, linear, couplings) -> float:
    field = linear.get(var, 0.0)
    for other, coupling in couplings.get(var, ()):
        if other in assigned:
            field += coupling * assigned[other]
    return field * value


def unembed_answer(solutions: list[list[int]], embeddings: list[int],
                   broken_chains: BrokenChains, problem: Problem,
                   random_seed: Optional[int] = None) -> list[list[int]]:
    """Map physical spin solutions back to logical variables.

    Chains whose qubits disagree are resolved per ``broken_chains``. With
    :attr:`~sapi.constants.BrokenChains.DISCARD` solutions with broken chains
    are dropped; all other strategies return one logical solution per input
    solution, in order.
    """
    chains = chains_from_embeddings(embeddings)
    size = max(chains, default=-1) + 1
    rng = random.Random(random_seed)

    problem = canonicalize(problem)
    linear = {i: v for i, j, v in problem if i == j}
    couplings = collections.defaultdict(list)
    for i, j, v in problem:
        if i != j:
            couplings[i].append((j, v))
            couplings[j].append((i, v))

    unembedded = []
    for solution in solutions:
        logical = [UNUSED_VARIABLE] * size
        broken = {}
        for var, chain in chains.items():
            try:
                values = [solution[q] for q in chain if solution[q] != UNUSED_VARIABLE]
            except IndexError:
                raise InvalidParameterError("solution shorter than embeddings")
            if any(value not in (-1, 1) for value in values):
                raise InvalidParameterError("spin (-1/+1) solutions expected")
            if not values:
                continue
            if len(set(values)) == 1:
                logical[var] = values[0]
            else:
                broken[var] = values

        if broken and broken_chains is BrokenChains.DISCARD:
            continue

        for var, values in broken.items():
            total = sum(values)
            vote = values[0] if total == 0 else (1 if total > 0 else -1)
            if broken_chains is BrokenChains.VOTE:
                logical[var] = vote
            elif broken_chains is BrokenChains.WEIGHTED_RANDOM:
                up = values.count(1) / len(values)
                logical[var] = 1 if rng.random() < up else -1
            else:
                assigned = {v: s for v, s in enumerate(logical) if s in (-1, 1)}
                up = _local_energy(var, 1, assigned, linear, couplings)
                down = _local_energy(var, -1, assigned, linear, couplings)
                if up < down:
                    logical[var] = 1
                elif down < up:
                    logical[var] = -1
                else:
                    logical[var] = vote

        unembedded.append(logical)

    return unembedded
