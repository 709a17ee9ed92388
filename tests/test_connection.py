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
from unittest import mock

import sapi
from sapi.backends import LocalBackend, RemoteBackend
from sapi.config.models import ClientConfig
from sapi.connection import Connection, new_solver, remote_connection
from sapi.exceptions import InvalidParameterError, NotInitializedError
from sapi.testing import isolated_environ, iterable_mock_open, mocks


class TestRuntime(unittest.TestCase):

    def tearDown(self):
        sapi.teardown()

    def test_initialize_idempotent(self):
        sapi.initialize()
        local = sapi.local_connection()
        sapi.initialize()
        self.assertTrue(sapi.is_initialized())
        self.assertIs(sapi.local_connection(), local)
        self.assertIsInstance(local.backend, LocalBackend)
        self.assertTrue(local.shared)

    def test_teardown_idempotent(self):
        sapi.initialize()
        sapi.teardown()
        sapi.teardown()
        self.assertFalse(sapi.is_initialized())

    def test_not_initialized(self):
        sapi.teardown()
        with self.assertRaises(NotInitializedError):
            sapi.local_connection()
        with self.assertRaises(NotInitializedError):
            Connection(mocks.ScriptedBackend())
        with self.assertRaises(NotInitializedError):
            remote_connection('https://sapi.test/sapi', 'token')

    def test_local_options(self):
        sapi.initialize(polls_to_complete=5)
        self.assertEqual(sapi.local_connection().backend.polls_to_complete, 5)

    def test_teardown_closes_connections(self):
        sapi.initialize()
        local = sapi.local_connection()
        conn = Connection(mocks.ScriptedBackend())
        sapi.teardown()

        self.assertTrue(local.closed)
        self.assertTrue(local.backend.closed)
        self.assertTrue(conn.closed)
        with self.assertRaises(NotInitializedError):
            conn.solvers()

    def test_new_generation(self):
        sapi.initialize()
        old = sapi.local_connection()
        sapi.teardown()
        sapi.initialize()

        new = sapi.local_connection()
        self.assertIsNot(new, old)
        self.assertFalse(new.closed)
        self.assertTrue(old.closed)


class TestConnection(unittest.TestCase):

    def setUp(self):
        sapi.initialize()

    def tearDown(self):
        sapi.teardown()

    def test_shared_close_is_noop(self):
        local = sapi.local_connection()
        local.close()
        self.assertFalse(local.closed)
        self.assertIn('c4-sw_optimize', local.solvers())

    def test_context_manager(self):
        backend = mocks.ScriptedBackend()
        with Connection(backend) as conn:
            self.assertFalse(conn.closed)
        self.assertTrue(conn.closed)
        self.assertTrue(backend.closed)

    def test_remote_connection(self):
        conn = remote_connection('https://sapi.test/sapi', 'token', proxy='')
        self.assertIsInstance(conn.backend, RemoteBackend)
        self.assertFalse(conn.backend.session.trust_env)
        conn.close()


class TestFromConfig(unittest.TestCase):

    def setUp(self):
        sapi.initialize()
        self._env = isolated_environ(remove_sapi=True).start()

    def tearDown(self):
        self._env.stop()
        sapi.teardown()

    def test_local(self):
        conn = Connection.from_config(False)
        self.assertIs(conn, sapi.local_connection())

    def test_local_default_solver(self):
        conn = Connection.from_config(False, solver='c4-sw_sample')
        self.assertIsInstance(conn.backend, LocalBackend)
        self.assertEqual(conn.get_solver().name, 'c4-sw_sample')

        # shares the process-wide backend
        conn.close()
        self.assertFalse(sapi.local_connection().closed)

    def test_remote(self):
        config = ClientConfig(endpoint='https://sapi.test/sapi', token='token',
                              solver='mock-qpu', max_retries=7)
        with Connection.from_config(config) as conn:
            self.assertIsInstance(conn.backend, RemoteBackend)
            self.assertEqual(conn.backend.endpoint, 'https://sapi.test/sapi')
            self.assertEqual(conn.backend.max_retries, 7)
            self.assertEqual(conn.default_solver, 'mock-qpu')

    def test_remote_from_env(self):
        env = {'SAPI_API_ENDPOINT': 'https://sapi.test/sapi', 'SAPI_API_TOKEN': 'token'}
        with isolated_environ(add=env):
            with Connection.from_config(False) as conn:
                self.assertIsInstance(conn.backend, RemoteBackend)

    def test_token_required_for_remote(self):
        conn = Connection.from_config(False, endpoint='https://sapi.test/sapi')
        self.assertIsInstance(conn.backend, LocalBackend)

    def test_new_solver(self):
        solver = new_solver(config_file=False, solver='c4-sw_optimize')
        self.assertEqual(solver.name, 'c4-sw_optimize')
        self.assertTrue(solver.structured)

    def test_new_solver_unconfigured(self):
        with self.assertRaises(InvalidParameterError):
            new_solver(config_file=False)

    def test_config_file_loaded(self):
        body = """
            [defaults]
            solver = ising-heuristic
        """
        with mock.patch('sapi.config.loaders.open', iterable_mock_open(body), create=True):
            solver = new_solver(config_file='sapi.conf')
        self.assertEqual(solver.name, 'ising-heuristic')
        self.assertFalse(solver.structured)
