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
Backend talking to a remote Solver API (SAPI) server over HTTP.

Endpoints used (relative to the connection URL):

* ``GET solvers/remote/``: solver list with properties,
* ``POST problems/``: problem submission,
* ``GET problems/?id=<id>``: problem status,
* ``GET problems/<id>/``: problem status with answer,
* ``DELETE problems/``: problem cancellation.

Problems are sent in the ``qp`` format (see :mod:`sapi.coders`).
"""

import logging
from typing import Optional, Union

import orjson
import requests

from sapi.backends.base import Backend
from sapi.coders import decode_qp, encode_problem_as_qp
from sapi.config.models import RequestRetryConfig
from sapi.constants import ProblemType, RemoteStatus
from sapi.exceptions import (
    AuthenticationError, CommunicationError, InvalidParameterError,
    NetworkError, SolveFailedError, SolverNotFoundError)
from sapi.models import SolverProperties
from sapi.problem import Problem
from sapi.utils.decorators import cached
from sapi.utils.http import BaseUrlSession, PretimedHTTPAdapter, user_agent

__all__ = ['RemoteBackend']

logger = logging.getLogger(__name__)


class RemoteBackend(Backend):
    """Backend for a remote SAPI server.

    Args:
        endpoint:
            Solver API URL.
        token:
            Authentication token, sent in the ``X-Auth-Token`` header.
        proxy:
            Proxy URL. ``None`` uses the system proxy settings, an empty
            string disables proxies.
        request_timeout:
            Connect/read timeout of HTTP requests, in seconds.
        request_retry:
            Retry configuration of idempotent HTTP requests.
        **kwargs:
            See :class:`~sapi.backends.base.Backend`.
    """

    #: Solver list cache max-age, in seconds.
    solvers_maxage = 300

    def __init__(self, endpoint: str, token: str, *,
                 proxy: Optional[str] = None,
                 request_timeout: Union[float, tuple[float, float], None] = (60.0, 120.0),
                 request_retry: Optional[RequestRetryConfig] = None,
                 **kwargs):
        super().__init__(**kwargs)

        if not endpoint:
            raise InvalidParameterError("API endpoint undefined")

        self.endpoint = endpoint
        if request_retry is None:
            request_retry = RequestRetryConfig()

        self.session = self._create_session(
            endpoint, token, proxy, request_timeout, request_retry)

        # per-instance solver list cache
        self._fetch_solvers = cached(maxage=self.solvers_maxage)(self._load_solvers)

    def __repr__(self):
        return f"<{type(self).__name__} endpoint={self.endpoint!r} {self.handles!r}>"

    @staticmethod
    def _create_session(endpoint, token, proxy, timeout, retry) -> requests.Session:
        session = BaseUrlSession(endpoint)

        for prefix in ('http://', 'https://'):
            session.mount(prefix, PretimedHTTPAdapter(
                timeout=timeout, max_retries=retry.to_urllib3_retry()))

        session.headers.update({'User-Agent': user_agent()})
        if token:
            session.headers.update({'X-Auth-Token': token})

        if proxy is not None:
            if proxy:
                session.proxies = dict(http=proxy, https=proxy)
            else:
                session.trust_env = False

        logger.debug("Session created for endpoint=%r, proxy=%r", endpoint, proxy)
        return session

    def close(self) -> None:
        super().close()
        self.session.close()

    # http

    def _request(self, method: str, path: str, **kwargs):
        """Send a request, return the decoded JSON response body.

        Raises:
            :exc:`~sapi.exceptions.AuthenticationError`: HTTP 401/403.
            :exc:`~sapi.exceptions.InvalidParameterError`: other HTTP 4xx.
            :exc:`~sapi.exceptions.CommunicationError`:
                HTTP 5xx or a malformed response.
            :exc:`~sapi.exceptions.NetworkError`:
                connection failure or timeout.
        """
        logger.trace("%s %s", method, path)
        try:
            response = self.session.request(method, path, **kwargs)
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as exc:
            raise NetworkError(str(exc)) from exc
        except requests.exceptions.RequestException as exc:
            raise CommunicationError(str(exc)) from exc

        if response.ok:
            try:
                return orjson.loads(response.content)
            except orjson.JSONDecodeError as exc:
                raise CommunicationError("JSON response expected") from exc

        try:
            error_msg = orjson.loads(response.content)['error_msg']
        except (orjson.JSONDecodeError, KeyError, TypeError):
            error_msg = response.text or response.reason

        status = response.status_code
        logger.debug("%s %s failed with %d: %r", method, path, status, error_msg)
        if status in (401, 403):
            raise AuthenticationError(error_msg)
        if 400 <= status < 500:
            raise InvalidParameterError(error_msg)
        raise CommunicationError(f"HTTP {status}: {error_msg}")

    # solver discovery

    def _load_solvers(self) -> dict[str, SolverProperties]:
        data = self._request('GET', 'solvers/remote/')
        try:
            return {solver['id']: SolverProperties.from_solver_data(solver['properties'])
                    for solver in data}
        except (KeyError, TypeError, ValueError) as exc:
            raise CommunicationError(f"malformed solver list: {exc!r}") from exc

    def solver_names(self) -> list[str]:
        return sorted(self._fetch_solvers())

    def solver_properties(self, name: str) -> SolverProperties:
        solvers = self._fetch_solvers()
        try:
            return solvers[name]
        except KeyError:
            raise SolverNotFoundError(f"solver {name!r} not found") from None

    # transport

    def _message(self, message) -> dict:
        """Normalize a problem status message, decoding an inline answer."""
        if not isinstance(message, dict):
            raise CommunicationError("unexpected format of problem status response")

        if 'error_code' in message and 'error_msg' in message:
            raise SolveFailedError(message['error_msg'])

        message = dict(message)
        if message.get('answer') is not None:
            message['answer'] = decode_qp(message)
        return message

    def _submit_problem(self, solver: str, problem_type: ProblemType,
                        problem: Problem, params: dict) -> dict:
        properties = self.solver_properties(solver)
        if not properties.structured:
            raise InvalidParameterError(
                f"solver {solver!r} is unstructured; only structured solvers "
                "are supported by the remote backend")

        body = [{
            'solver': solver,
            'data': encode_problem_as_qp(properties, problem),
            'type': ProblemType(problem_type).value,
            'params': {k: v for k, v in params.items() if k != 'kind'},
        }]
        logger.trace("Encoded problem submission: %r", body)

        response = self._request('POST', 'problems/', data=orjson.dumps(body),
                                 headers={'Content-Type': 'application/json'})
        try:
            message, = response
        except (TypeError, ValueError) as exc:
            raise CommunicationError("unexpected format of submission response") from exc

        return self._message(message)

    def _problem_status(self, remote_id: str) -> dict:
        response = self._request('GET', 'problems/', params=dict(id=remote_id))
        try:
            message, = response
        except (TypeError, ValueError) as exc:
            raise CommunicationError("unexpected format of status response") from exc

        return self._message(message)

    def _problem_answer(self, remote_id: str) -> dict:
        message = self._message(self._request('GET', f'problems/{remote_id}/'))
        try:
            status = RemoteStatus(message.get('status'))
        except ValueError as exc:
            raise CommunicationError(f"unknown problem status: {message.get('status')!r}") from exc
        if status is not RemoteStatus.COMPLETED:
            raise SolveFailedError(f"problem {remote_id!r} has no answer")
        if message.get('answer') is None:
            raise CommunicationError("answer missing from completed problem response")
        return message['answer']

    def _cancel_problem(self, remote_id: str) -> None:
        self._request('DELETE', 'problems/', data=orjson.dumps([remote_id]),
                      headers={'Content-Type': 'application/json'})
