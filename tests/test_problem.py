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

import itertools
import math
import unittest

from parameterized import parameterized

from sapi.exceptions import InvalidParameterError
from sapi.problem import (
    Problem, ProblemEntry, canonicalize, chimera_adjacency, count_variables,
    energy, fix, neighbors, to_ising, to_qubo, validate_problem)

# AND gate y = a AND b on a chimera 4-cycle: a on qubits 0 and 4, b on 1, y on 5
Q0, Q1, Q2, Q3 = 0, 4, 1, 5

AND_ISING = Problem([
    (Q0, Q0, -0.125), (Q1, Q1, -0.125), (Q2, Q2, -0.25), (Q3, Q3, 0.5),
    (Q0, Q1, -1), (Q1, Q2, 0.25), (Q2, Q3, -0.5), (Q3, Q0, -0.5),
])

AND_QUBO = Problem([
    (Q0, Q0, 2.75), (Q1, Q1, 1.25), (Q2, Q2, 0), (Q3, Q3, 3),
    (Q0, Q1, -4), (Q1, Q2, 1), (Q2, Q3, -2), (Q3, Q0, -2),
])


CONVERSION_PROBLEMS = [
    ('and_gate', list(AND_ISING)),
    # variables 3 and 7 have fields only, 1 has a zero field
    ('isolated', [(0, 0, 1.5), (3, 3, -2), (0, 1, 0.75), (1, 1, 0), (7, 7, 0.25)]),
    ('duplicates', [(1, 0, 2), (0, 1, -0.5), (0, 0, 1), (0, 0, 0.5),
                    (2, 1, 1), (1, 2, 1), (2, 2, -3)]),
    ('couplers_only', [(0, 1, 4), (1, 2, -1)]),
]


class TestCanonicalize(unittest.TestCase):

    def test_merge_and_orientation(self):
        p = Problem([(3, 2, 1.0), (2, 3, 6.0), (2, 2, -1), (0, 0, 0.5)])
        self.assertEqual(canonicalize(p), [(0, 0, 0.5), (2, 2, -1), (2, 3, 7.0)])

    def test_idempotent(self):
        once = canonicalize(AND_ISING)
        self.assertEqual(canonicalize(once), once)

    def test_order_independent(self):
        self.assertEqual(canonicalize(reversed(AND_ISING)), canonicalize(AND_ISING))

    def test_entries(self):
        c = canonicalize([(1, 0, 2)])
        self.assertIsInstance(c, Problem)
        self.assertIsInstance(c[0], ProblemEntry)
        self.assertEqual((c[0].i, c[0].j, c[0].value), (0, 1, 2))

    def test_empty(self):
        self.assertEqual(canonicalize([]), [])


class TestConversions(unittest.TestCase):

    def test_ising_to_qubo(self):
        qubo, offset = to_qubo(AND_ISING)
        self.assertEqual(qubo, canonicalize(AND_QUBO))
        self.assertEqual(offset, -1.75)

    def test_qubo_to_ising(self):
        ising, offset = to_ising(AND_QUBO)
        self.assertEqual(ising, canonicalize(AND_ISING))
        self.assertEqual(offset, 1.75)

    def test_offsets_of_simple_ising(self):
        qubo, offset = to_qubo([(0, 0, 1), (1, 1, 1), (0, 1, -1)])
        self.assertEqual(qubo, [(0, 0, 4.0), (0, 1, -4.0), (1, 1, 4.0)])
        self.assertEqual(offset, -3.0)

        _, offset = to_ising(qubo)
        self.assertEqual(offset, 3.0)

    @parameterized.expand(CONVERSION_PROBLEMS)
    def test_ising_energy_preserved(self, name, problem):
        qubo, offset = to_qubo(problem)
        variables = Problem(problem).variables()

        for spins in itertools.product((-1, 1), repeat=len(variables)):
            s = dict(zip(variables, spins))
            x = {v: (spin + 1) // 2 for v, spin in s.items()}
            self.assertAlmostEqual(qubo.energy(x) + offset, energy(problem, s), delta=1e-9)

    @parameterized.expand(CONVERSION_PROBLEMS)
    def test_qubo_energy_preserved(self, name, problem):
        ising, offset = to_ising(problem)
        variables = Problem(problem).variables()

        for bits in itertools.product((0, 1), repeat=len(variables)):
            x = dict(zip(variables, bits))
            s = {v: 2 * b - 1 for v, b in x.items()}
            self.assertAlmostEqual(ising.energy(s) + offset, energy(problem, x), delta=1e-9)

    def test_missing_linear_terms(self):
        # variables with couplers only get explicit zero fields
        ising, offset = to_ising([(0, 1, 4)])
        self.assertEqual(ising, [(0, 0, 1.0), (0, 1, 1.0), (1, 1, 1.0)])
        self.assertEqual(offset, 1.0)

    @parameterized.expand(CONVERSION_PROBLEMS)
    def test_round_trip(self, name, problem):
        qubo, qubo_offset = to_qubo(problem)
        ising, ising_offset = to_ising(qubo)

        # zero fields are added for variables with couplers only
        self.assertEqual([e for e in ising if e.value],
                         [e for e in canonicalize(problem) if e.value])
        self.assertAlmostEqual(qubo_offset + ising_offset, 0.0, delta=1e-9)


class TestProblemUtils(unittest.TestCase):

    def test_count_variables(self):
        self.assertEqual(count_variables(AND_ISING), 4)
        self.assertEqual(count_variables([(0, 7, 1), (7, 0, 1)]), 2)
        self.assertEqual(count_variables([]), 0)

    def test_energy(self):
        ground = {Q0: 1, Q1: 1, Q2: 1, Q3: 1}
        self.assertEqual(energy(AND_ISING, ground), -1.75)
        self.assertEqual(energy(AND_QUBO, dict.fromkeys(ground, 0)), 0)

    def test_from_ising(self):
        p = Problem.from_ising([1, -1], {(0, 1): 0.5})
        self.assertEqual(p, [(0, 0, 1), (1, 1, -1), (0, 1, 0.5)])
        self.assertEqual(p.as_ising(), ({0: 1, 1: -1}, {(0, 1): 0.5}))

    def test_from_qubo(self):
        p = Problem.from_qubo({(0, 0): 1, (1, 0): 2})
        self.assertEqual(p.canonicalize(), [(0, 0, 1), (0, 1, 2)])

    def test_fix(self):
        reduced, offset = fix(AND_QUBO, {Q0: 1})
        # couplers of the fixed variable fold into its neighbors' fields
        self.assertEqual(offset, 2.75)
        self.assertEqual(reduced, [(Q2, Q2, 0), (Q2, Q1, 1), (Q2, Q3, -2),
                                   (Q1, Q1, -2.75), (Q3, Q3, 1)])

    def test_neighbors(self):
        adj = neighbors(AND_ISING)
        self.assertEqual(adj[Q0], {Q1, Q3})
        self.assertEqual(adj[Q2], {Q1, Q3})


class TestValidateProblem(unittest.TestCase):

    def test_valid(self):
        p = validate_problem([(0, 1, 1), (2, 2, -0.5)])
        self.assertIsInstance(p, Problem)
        self.assertEqual(len(p), 2)

    @parameterized.expand([
        ("negative index", [(-1, 0, 1.0)]),
        ("float index", [(0.5, 0, 1.0)]),
        ("bool index", [(True, 0, 1.0)]),
        ("nan value", [(0, 0, math.nan)]),
        ("inf value", [(0, 1, math.inf)]),
        ("string value", [(0, 1, "1")]),
        ("short entry", [(0, 1)]),
        ("not an entry", [None]),
    ])
    def test_invalid(self, name, problem):
        with self.assertRaises(InvalidParameterError):
            validate_problem(problem)


class TestChimeraAdjacency(unittest.TestCase):

    def test_single_cell(self):
        adj = chimera_adjacency(1, 1, 4)
        self.assertEqual(len(adj), 2 * 16)
        self.assertIn((0, 4, 1.0), adj)
        self.assertIn((4, 0, 1.0), adj)
        self.assertNotIn((0, 1, 1.0), adj)

    def test_c4(self):
        adj = chimera_adjacency(4, 4, 4)
        undirected = {(min(u, v), max(u, v)) for u, v, _ in adj}
        # 16 cells of K(4,4), plus 48 vertical and 48 horizontal inter-cell couplers
        self.assertEqual(len(undirected), 16 * 16 + 48 + 48)
        self.assertEqual(max(max(u, v) for u, v in undirected), 127)
        # vertical: side 0 of cell (0,0) to side 0 of cell (1,0)
        self.assertIn((0, 32), undirected)
        # horizontal: side 1 of cell (0,0) to side 1 of cell (0,1)
        self.assertIn((4, 12), undirected)

    @parameterized.expand([(0, 1, 1), (1, -1, 1), (1, 1, 1.5)])
    def test_invalid(self, m, n, l):
        with self.assertRaises(InvalidParameterError):
            chimera_adjacency(m, n, l)
