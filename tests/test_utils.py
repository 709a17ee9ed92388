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

import io
import logging
import unittest
from datetime import datetime, timezone
from unittest import mock

import orjson

from sapi.utils.decorators import cached
from sapi.utils.http import BaseUrlSession, user_agent
from sapi.utils.logging import (
    FilteredSecretsFormatter, configure_logging, configure_logging_from_env, parse_loglevel)
from sapi.utils.time import parse_timestamp, tictoc, utcnow
from sapi.testing import isolated_environ


class TestCachedDecorator(unittest.TestCase):

    def test_args_hashing(self):
        counter = 0

        @cached(maxage=300)
        def f(*a, **b):
            nonlocal counter
            counter += 1
            return counter

        with mock.patch('sapi.utils.decorators.epochnow', lambda: 0):
            self.assertEqual(f(), 1)
            self.assertEqual(f(1), 2)
            self.assertEqual(f(1, 2), 3)
            self.assertEqual(f(1), 2)
            self.assertEqual(f(1, refresh_=True), 4)
            self.assertEqual(f(a=1, b=2), 5)
            self.assertEqual(f(b=2, a=1), 5)

    def test_expiry(self):
        counter = 0

        @cached(maxage=300)
        def f():
            nonlocal counter
            counter += 1
            return counter

        with mock.patch('sapi.utils.decorators.epochnow', lambda: 0):
            self.assertEqual(f(), 1)
        with mock.patch('sapi.utils.decorators.epochnow', lambda: 299):
            self.assertEqual(f(), 1)
            self.assertEqual(f(maxage_=100), 2)
        with mock.patch('sapi.utils.decorators.epochnow', lambda: 600):
            self.assertEqual(f(), 3)

    def test_independent_caches(self):
        one = cached()(lambda: 1)
        two = cached()(lambda: 2)
        self.assertEqual((one(), two()), (1, 2))

        one.cached.clear()
        self.assertEqual(one.cached.store, {})


class TestTime(unittest.TestCase):

    def test_parse_timestamp(self):
        dt = parse_timestamp('2024-01-02T03:04:05.678Z')
        self.assertEqual(dt, datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc))

    def test_naive_as_utc(self):
        dt = parse_timestamp('2024-01-02T03:04:05')
        self.assertEqual(dt.utcoffset().total_seconds(), 0)

    def test_empty(self):
        self.assertIsNone(parse_timestamp(None))
        self.assertIsNone(parse_timestamp(''))

    def test_utcnow(self):
        self.assertEqual(utcnow().utcoffset().total_seconds(), 0)

    def test_tictoc(self):
        with tictoc() as timer:
            pass
        self.assertGreaterEqual(timer.dt, 0)


class TestHttp(unittest.TestCase):

    def test_user_agent(self):
        ua = user_agent('name', '1.2')
        self.assertTrue(ua.startswith('name/1.2 python/'))
        self.assertNotIn('name/', user_agent(None, None))

    def test_base_url(self):
        session = BaseUrlSession('https://sapi.test/sapi')
        self.assertEqual(session.base_url, 'https://sapi.test/sapi/')

        with mock.patch('requests.Session.request') as request:
            session.get('problems/')
        self.assertEqual(request.call_args.args, ('GET', 'https://sapi.test/sapi/problems/'))


class TestLogging(unittest.TestCase):

    def setUp(self):
        self.logger = logging.getLogger('sapi.tests.utils')
        self.addCleanup(self.reset_logger)

    def reset_logger(self):
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
        self.logger.setLevel(logging.NOTSET)

    def test_parse_loglevel(self):
        self.assertEqual(parse_loglevel('debug'), logging.DEBUG)
        self.assertEqual(parse_loglevel(' WARN '), logging.WARNING)
        self.assertEqual(parse_loglevel('trace'), logging.TRACE)
        self.assertEqual(parse_loglevel('15'), 15)
        self.assertEqual(parse_loglevel(logging.ERROR), logging.ERROR)
        self.assertEqual(parse_loglevel('unknown', default=1), 1)

    def test_trace_level(self):
        stream = io.StringIO()
        configure_logging(self.logger, level='trace', output_stream=stream)
        self.logger.trace("traced %d", 1)
        self.assertIn("TRACE", stream.getvalue())
        self.assertIn("traced 1", stream.getvalue())

    def test_secrets_filtered(self):
        token = 'ABC-' + '0123456789abcdef' * 2 + '0123456789'
        stream = io.StringIO()
        configure_logging(self.logger, level='info', output_stream=stream)
        self.logger.info("token=%s", token)

        output = stream.getvalue()
        self.assertNotIn(token, output)
        self.assertIn('ABC-012...789', output)

    def test_secrets_formatter(self):
        formatter = FilteredSecretsFormatter('%(message)s')
        record = logging.LogRecord('sapi', logging.INFO, __file__, 1,
                                   'id %s', ('123e4567-e89b-12d3-a456-426614174000', ), None)
        self.assertEqual(formatter.format(record), 'id 123...000')

    def test_structured_output(self):
        stream = io.StringIO()
        configure_logging(self.logger, level='debug', output_stream=stream,
                          structured_output=True, filter_secrets=False)
        self.logger.debug("json %s", "message")

        rec = orjson.loads(stream.getvalue())
        self.assertEqual(rec['message'], 'json message')
        self.assertEqual(rec['levelname'], 'DEBUG')

    def test_handlers_replaced(self):
        configure_logging(self.logger, output_stream=io.StringIO())
        configure_logging(self.logger, output_stream=io.StringIO())
        self.assertEqual(len(self.logger.handlers), 1)

        configure_logging(self.logger, output_stream=io.StringIO(), additive=True)
        self.assertEqual(len(self.logger.handlers), 2)

    def test_from_env(self):
        with isolated_environ(remove_sapi=True):
            self.assertFalse(configure_logging_from_env(self.logger))

        with isolated_environ(add={'SAPI_LOG_LEVEL': 'debug', 'SAPI_LOG_FORMAT': 'json'},
                              remove_sapi=True):
            self.assertTrue(configure_logging_from_env(self.logger))
        self.assertEqual(self.logger.level, logging.DEBUG)
        self.assertEqual(len(self.logger.handlers), 1)
