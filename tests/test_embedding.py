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

import unittest

from parameterized import parameterized

import sapi
from sapi.constants import BrokenChains
from sapi.embedding import embed_problem, find_embedding, unembed_answer
from sapi.exceptions import EmbeddingError, InvalidParameterError, NotInitializedError
from sapi.models import FindEmbeddingParameters, IsingRangeProperties
from sapi.problem import Problem, chimera_adjacency, neighbors

# XOR gate y = a ^ b, with a, b, y on variables 0, 1, 2 and an ancilla on 3
XOR = Problem([
    (0, 0, 0.5), (1, 1, 0.5), (2, 2, 0.5), (3, 3, -1.0),
    (0, 1, 0.5), (0, 2, 0.5), (0, 3, -1.0),
    (1, 2, 0.5), (1, 3, -1.0), (2, 3, -1.0),
])

PATH = Problem([(0, 1, 1), (1, 2, 1), (2, 3, 1)])


class EmbeddingTestCase(unittest.TestCase):

    def setUp(self):
        sapi.initialize()

    def tearDown(self):
        sapi.teardown()


class TestFindEmbedding(EmbeddingTestCase):

    def check_embedding(self, problem, adjacency, embeddings):
        adj = neighbors(adjacency)
        chains = {}
        for qubit, var in enumerate(embeddings):
            if var >= 0:
                chains.setdefault(var, set()).add(qubit)

        self.assertEqual(set(chains), set(problem.variables()))
        for u, v, _ in problem:
            if u != v:
                self.assertTrue(any(adj.get(p, set()) & chains[v] for p in chains[u]),
                                f"chains of {u} and {v} not coupled")

    def test_clique_in_chimera(self):
        adjacency = chimera_adjacency(2, 2, 4)
        params = FindEmbeddingParameters(random_seed=11)
        embeddings = find_embedding(XOR, adjacency, params)
        self.check_embedding(XOR, adjacency, embeddings)

    def test_fast_embedding(self):
        adjacency = chimera_adjacency(2, 2, 4)
        params = FindEmbeddingParameters(fast_embedding=True, random_seed=3)
        embeddings = find_embedding(XOR, adjacency, params)
        self.check_embedding(XOR, adjacency, embeddings)

    def test_no_embedding(self):
        # a triangle doesn't fit a 3-qubit path
        triangle = [(0, 1, 1), (1, 2, 1), (0, 2, 1)]
        path = [(0, 1, 1), (1, 2, 1)]
        params = FindEmbeddingParameters(tries=2, timeout=1, random_seed=0)
        with self.assertRaises(EmbeddingError):
            find_embedding(triangle, path, params)

    def test_buffers_released(self):
        backend = sapi.local_connection().backend
        live = backend.handles.live
        with self.assertRaises(EmbeddingError):
            find_embedding([(0, 1, 1), (1, 2, 1), (0, 2, 1)], [(0, 1, 1)],
                           FindEmbeddingParameters(tries=1, timeout=1))
        self.assertEqual(backend.handles.live, live)

    def test_requires_runtime(self):
        sapi.teardown()
        with self.assertRaises(NotInitializedError):
            find_embedding(XOR, chimera_adjacency(1, 1, 4))


class TestEmbedProblem(EmbeddingTestCase):

    def test_split_fields_and_couplings(self):
        problem = [(0, 0, 1), (1, 1, -0.5), (0, 1, -1)]
        result = embed_problem(problem, [0, 0, 1], PATH)

        self.assertEqual(result.problem, [(0, 0, 0.5), (1, 1, 0.5), (1, 2, -1), (2, 2, -0.5)])
        self.assertEqual(result.chain_couplers, [(0, 1, -1.0)])
        self.assertEqual(result.embeddings, [0, 0, 1])

    def test_chain_strength_from_ranges(self):
        ranges = IsingRangeProperties(j_min=-2.0)
        result = embed_problem([(0, 1, -1)], [0, 0, 1], PATH, ranges=ranges)
        self.assertEqual(result.chain_couplers, [(0, 1, -2.0)])

    def test_clean(self):
        result = embed_problem([(0, 1, -1)], [0, 0, 0, 1], PATH, clean=True)
        self.assertEqual(result.embeddings, [-1, -1, 0, 1])
        self.assertEqual(result.chain_couplers, [])
        self.assertEqual(result.problem, [(2, 3, -1)])

    def test_smear(self):
        star = [(0, 1, 1), (0, 2, 1), (1, 3, 1)]
        ranges = IsingRangeProperties(h_min=-2, h_max=2)
        result = embed_problem([(0, 0, 3), (0, 1, -1)], [0, 1, -1, -1], star,
                               smear=True, ranges=ranges)
        self.assertEqual(result.embeddings, [0, 1, 0, -1])
        self.assertIn((0, 0, 1.5), result.problem)
        self.assertIn((2, 2, 1.5), result.problem)

    @parameterized.expand([
        ("variable not embedded", [(0, 1, 1), (2, 2, 1)], [0, 1, -1, -1]),
        ("chain not connected", [(0, 1, 1)], [0, 1, 0, -1]),
        ("chains not coupled", [(0, 1, 1)], [0, -1, 1, -1]),
        ("invalid embedding value", [(0, 1, 1)], [0, 1, -2, -1]),
    ])
    def test_invalid_embeddings(self, name, problem, embeddings):
        # path 0-1-2-3: qubits 0 and 2 aren't adjacent
        with self.assertRaises(InvalidParameterError):
            embed_problem(problem, embeddings, PATH)


class TestUnembedAnswer(EmbeddingTestCase):

    problem = [(0, 1, -1)]
    embeddings = [0, 0, 1]

    @parameterized.expand([
        (BrokenChains.VOTE, [[-1, 1]]),
        (BrokenChains.MINIMIZE_ENERGY, [[1, 1]]),
        (BrokenChains.DISCARD, []),
    ])
    def test_broken_chain(self, strategy, expected):
        # chain of variable 0 is broken (tie), variable 1 is +1
        solutions = unembed_answer([[-1, 1, 1]], self.embeddings, strategy, self.problem)
        self.assertEqual(solutions, expected)

    def test_weighted_random(self):
        solutions = unembed_answer([[-1, 1, 1]], self.embeddings,
                                   BrokenChains.WEIGHTED_RANDOM, self.problem)
        (var0, var1), = solutions
        self.assertIn(var0, (-1, 1))
        self.assertEqual(var1, 1)

    def test_vote_majority(self):
        solutions = unembed_answer([[1, 1, -1, -1]], [0, 0, 0, 1], BrokenChains.VOTE,
                                   self.problem)
        self.assertEqual(solutions, [[1, -1]])

    def test_intact_chains(self):
        solutions = unembed_answer([[1, 1, -1], [-1, -1, -1]], self.embeddings,
                                   BrokenChains.DISCARD, self.problem)
        self.assertEqual(solutions, [[1, -1], [-1, -1]])

    def test_spins_required(self):
        with self.assertRaises(InvalidParameterError):
            unembed_answer([[0, 1, 1]], self.embeddings, BrokenChains.VOTE, self.problem)

    def test_solution_too_short(self):
        with self.assertRaises(InvalidParameterError):
            unembed_answer([[1, 1]], self.embeddings, BrokenChains.VOTE, self.problem)


class TestXorEndToEnd(EmbeddingTestCase):

    def test_xor(self):
        solver = sapi.local_connection().get_solver('c4-sw_optimize')
        adjacency = solver.hardware_adjacency()
        ranges = solver.properties.ising_ranges

        embeddings = find_embedding(XOR, adjacency, FindEmbeddingParameters(random_seed=5))
        embedded = embed_problem(XOR, embeddings, adjacency, clean=True, smear=True,
                                 ranges=ranges)

        chain_strength = -2.0
        problem = embedded.problem + [(i, j, chain_strength) for i, j, _ in embedded.chain_couplers]

        params = solver.new_parameters()
        params.num_reads = 1000
        result = solver.solve_ising(problem, params)

        solutions = unembed_answer(result.solutions, embedded.embeddings,
                                   BrokenChains.MINIMIZE_ENERGY, XOR)
        self.assertEqual(len(solutions), len(result.solutions))

        # energy of a correct solution depends on the embedding, so check
        # all the lowest-energy solutions
        correct_energy = result.energies[0]
        valid = 0
        for solution, energy in zip(solutions, result.energies):
            if energy > correct_energy + 1e-9:
                continue
            a, b, y = ((s + 1) // 2 for s in solution[:3])
            self.assertEqual(a ^ b, y, f"{a} XOR {b} != {y}")
            valid += 1

        self.assertGreater(valid, 0)
