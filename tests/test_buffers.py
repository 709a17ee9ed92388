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

import gc
import unittest

from pydantic import ValidationError

from sapi.backends import HandleTable, LocalBackend
from sapi.buffers import (
    BufferScope, ForeignBuffer, Ownership, marshal_embeddings,
    marshal_parameters, marshal_problem, marshal_solutions, unmarshal)
from sapi.exceptions import InvalidParameterError, NotInitializedError, OutOfMemoryError
from sapi.models import SolveResult
from sapi.parameters import SwOptimizeSolverParameters


class TestHandleTable(unittest.TestCase):

    def test_allocate_read_free(self):
        table = HandleTable()
        a = table.allocate('problem', [1])
        b = table.allocate('problem', [2])
        self.assertNotEqual(a, b)
        self.assertEqual(table.read(a), [1])
        self.assertEqual(table.read(b, 'problem'), [2])
        self.assertEqual(table.live, 2)

        table.free(a)
        self.assertEqual(table.live, 1)
        self.assertEqual(table.allocations, 2)
        self.assertEqual(table.releases, 1)

    def test_double_free(self):
        table = HandleTable()
        h = table.allocate('problem', [])
        table.free(h)
        with self.assertRaises(InvalidParameterError):
            table.free(h)
        self.assertEqual(table.releases, 1)

    def test_use_after_free(self):
        table = HandleTable()
        h = table.allocate('problem', [])
        table.free(h)
        with self.assertRaises(InvalidParameterError):
            table.read(h)

    def test_unknown_handle(self):
        table = HandleTable()
        with self.assertRaises(InvalidParameterError):
            table.read(42)
        with self.assertRaises(InvalidParameterError):
            table.free(None)

    def test_kind_mismatch(self):
        table = HandleTable()
        h = table.allocate('embeddings', [0, -1])
        with self.assertRaises(InvalidParameterError):
            table.read(h, 'problem')

    def test_capacity(self):
        table = HandleTable(max_live=2)
        h = table.allocate('problem', [])
        table.allocate('problem', [])
        with self.assertRaises(OutOfMemoryError):
            table.allocate('problem', [])

        table.free(h)
        table.allocate('problem', [])
        self.assertEqual(table.live, 2)

    def test_live_by_kind(self):
        table = HandleTable()
        table.allocate('problem', [])
        table.allocate('problem', [])
        table.allocate('job', None)
        self.assertEqual(table.live_by_kind(), {'problem': 2, 'job': 1})


class TestForeignBuffer(unittest.TestCase):

    def setUp(self):
        self.backend = LocalBackend()

    def test_release(self):
        buf = marshal_problem(self.backend, [(0, 0, 1)])
        self.assertEqual(self.backend.handles.live, 1)
        self.assertEqual(buf.read('problem'), [(0, 0, 1)])

        buf.release()
        self.assertTrue(buf.released)
        self.assertEqual(self.backend.handles.live, 0)

        # idempotent
        buf.release()
        self.assertEqual(self.backend.handles.releases, 1)

    def test_read_after_release(self):
        buf = marshal_problem(self.backend, [])
        buf.release()
        with self.assertRaises(InvalidParameterError):
            buf.read()

    def test_context_manager(self):
        with marshal_problem(self.backend, []) as buf:
            self.assertFalse(buf.released)
        self.assertTrue(buf.released)
        self.assertEqual(self.backend.handles.live, 0)

    def test_borrowed(self):
        handle = self.backend.allocate('problem', [])
        buf = ForeignBuffer(self.backend, handle, Ownership.BORROWED)
        buf.release()
        self.assertEqual(self.backend.handles.live, 1)
        self.backend.free(handle)

    def test_detach(self):
        buf = marshal_problem(self.backend, [])
        handle = buf.detach()
        self.assertIs(buf.ownership, Ownership.BORROWED)

        buf.release()
        self.assertEqual(self.backend.handles.live, 1)
        self.backend.free(handle)

    def test_freed_when_unreachable(self):
        buf = marshal_problem(self.backend, [])
        self.assertEqual(self.backend.handles.live, 1)

        del buf
        gc.collect()
        self.assertEqual(self.backend.handles.live, 0)
        self.assertEqual(self.backend.handles.releases, 1)

    def test_closed_backend(self):
        self.backend.close()
        with self.assertRaises(NotInitializedError):
            marshal_problem(self.backend, [])


class TestBufferScope(unittest.TestCase):

    def test_released_on_exit(self):
        backend = LocalBackend()
        with BufferScope() as scope:
            a = scope.enter(marshal_problem(backend, []))
            b = scope.enter(marshal_embeddings(backend, [0, -1]))
            self.assertEqual(backend.handles.live, 2)

        self.assertTrue(a.released and b.released)
        self.assertEqual(backend.handles.live, 0)

    def test_released_on_error(self):
        backend = LocalBackend()
        with self.assertRaises(InvalidParameterError):
            with BufferScope() as scope:
                scope.enter(marshal_problem(backend, [(0, 1, 1)]))
                scope.enter(marshal_problem(backend, [(0, -1, 1)]))

        self.assertEqual(backend.handles.live, 0)
        self.assertEqual(backend.handles.allocations, 1)


class TestMarshal(unittest.TestCase):

    def setUp(self):
        self.backend = LocalBackend()

    def test_invalid_problem_not_allocated(self):
        with self.assertRaises(InvalidParameterError):
            marshal_problem(self.backend, [(0, 0, float('nan'))])
        self.assertEqual(self.backend.handles.allocations, 0)

    def test_parameters(self):
        params = SwOptimizeSolverParameters(num_reads=5)
        with marshal_parameters(self.backend, params) as buf:
            data = buf.read('parameters')
        self.assertEqual(data['kind'], 'sw_optimize')
        self.assertEqual(data['num_reads'], 5)

    def test_parameters_type(self):
        with self.assertRaises(InvalidParameterError):
            marshal_parameters(self.backend, {'num_reads': 5})

    def test_embeddings(self):
        with self.assertRaises(InvalidParameterError):
            marshal_embeddings(self.backend, [0, -2])
        with self.assertRaises(InvalidParameterError):
            marshal_embeddings(self.backend, [0, 1.0])

    def test_solutions(self):
        with marshal_solutions(self.backend, ((1, -1), (3, 1))) as buf:
            self.assertEqual(buf.read('solutions'), [[1, -1], [3, 1]])

        with self.assertRaises(InvalidParameterError):
            marshal_solutions(self.backend, [1, 2])


class TestUnmarshal(unittest.TestCase):

    def setUp(self):
        self.backend = LocalBackend()

    def test_copy_and_free(self):
        payload = [[1, -1]]
        handle = self.backend.allocate('solutions', payload)
        solutions = unmarshal(self.backend, handle, 'solutions')

        self.assertEqual(solutions, payload)
        self.assertIsNot(solutions[0], payload[0])
        self.assertEqual(self.backend.handles.live, 0)

    def test_result(self):
        handle = self.backend.allocate('result', dict(solutions=[[1]], energies=[-1.0],
                                                      num_occurrences=[1]))
        result = unmarshal(self.backend, handle, 'result')
        self.assertIsInstance(result, SolveResult)
        self.assertEqual(result.energies, [-1.0])

    def test_freed_on_conversion_failure(self):
        handle = self.backend.allocate('result', dict(energies='not a list'))
        with self.assertRaises(ValidationError):
            unmarshal(self.backend, handle, 'result')
        self.assertEqual(self.backend.handles.live, 0)

    def test_kind_mismatch_frees(self):
        handle = self.backend.allocate('problem', [])
        with self.assertRaises(InvalidParameterError):
            unmarshal(self.backend, handle, 'result')
        self.assertEqual(self.backend.handles.live, 0)
