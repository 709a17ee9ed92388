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
Backend-side record of an asynchronously submitted problem, and the state
machine that drives it.

Every call to :meth:`JobRecord.advance` performs at most one backend round
trip: it submits the problem if it doesn't have a remote id yet, otherwise it
fetches the problem status. Transient communication faults don't propagate;
they are recorded on the job, which moves to ``RETRYING`` (and is re-tried on
the next advance) or, once automatic retries are exhausted, to ``FAILED``.
"""

from __future__ import annotations

import copy
import logging
import threading
from typing import TYPE_CHECKING, Optional

from sapi.constants import ProblemType, RemoteStatus, SubmittedState
from sapi.exceptions import (
    SAPIError, SolveFailedError, CommunicationError, TRANSIENT_ERRORS)
from sapi.models import ErrorInfo, ProblemStatus
from sapi.utils.time import parse_timestamp

if TYPE_CHECKING:
    from sapi.backends.base import Backend

__all__ = ['JobRecord']

logger = logging.getLogger(__name__)

_GOOD_STATES = frozenset((SubmittedState.SUBMITTING,
                          SubmittedState.SUBMITTED,
                          SubmittedState.DONE))


class JobRecord:
    """State of one asynchronously submitted problem.

    Status messages consumed by the job are dicts with keys ``id``,
    ``status`` (remote status name), and optionally ``submitted_on``,
    ``solved_on`` (RFC 3339 timestamps), ``error_message`` and ``answer``.
    """

    def __init__(self, solver: str, problem_type: ProblemType, problem, params: dict,
                 max_retries: int = 3):
        self.solver = solver
        self.problem_type = ProblemType(problem_type)
        self.problem = copy.copy(problem)
        self.params = dict(params)
        self.max_retries = max_retries

        self.lock = threading.RLock()

        self.remote_id: Optional[str] = None
        self.state = SubmittedState.SUBMITTING
        self.last_good_state = SubmittedState.SUBMITTING
        self.remote_status = RemoteStatus.UNKNOWN
        self.time_received = None
        self.time_solved = None
        self.error: Optional[SAPIError] = None
        self.answer: Optional[dict] = None

        self.retries_left = max_retries
        self.cancel_requested = False
        self.cancel_sent = False

    def __repr__(self):
        return (f"<{type(self).__name__} solver={self.solver!r} id={self.remote_id!r} "
                f"state={self.state.value} remote_status={self.remote_status.value}>")

    @property
    def done(self) -> bool:
        return self.state is SubmittedState.DONE

    def _set_state(self, state: SubmittedState) -> None:
        logger.trace("Job %r state: %s -> %s", self.remote_id, self.state.value, state.value)
        self.state = state
        if state in _GOOD_STATES:
            self.last_good_state = state

    def _update(self, message: dict) -> None:
        """Apply a status message received from the backend."""
        try:
            remote_id = message['id']
            status = RemoteStatus(message['status'])
        except (KeyError, TypeError, ValueError) as exc:
            raise CommunicationError(f"malformed status message: {message!r}") from exc

        self.remote_id = remote_id
        self.remote_status = status
        self.time_received = parse_timestamp(message.get('submitted_on')) or self.time_received
        self.time_solved = parse_timestamp(message.get('solved_on')) or self.time_solved
        if message.get('answer') is not None:
            self.answer = message['answer']

        if status is RemoteStatus.FAILED:
            self.error = SolveFailedError(message.get('error_message') or "Problem failed")
        elif status is RemoteStatus.CANCELED:
            self.error = None
        elif self.state in (SubmittedState.RETRYING, SubmittedState.FAILED):
            # recovered
            self.error = None

        if status.terminal:
            self._set_state(SubmittedState.DONE)
        else:
            self._set_state(SubmittedState.SUBMITTED)

    def _fault(self, exc: SAPIError) -> None:
        self.error = exc
        if self.retries_left > 0:
            self.retries_left -= 1
            logger.debug("Transient fault on job %r (%d retries left): %r",
                         self.remote_id, self.retries_left, exc)
            self._set_state(SubmittedState.RETRYING)
        else:
            logger.debug("Transient fault on job %r, retries exhausted: %r",
                         self.remote_id, exc)
            self._set_state(SubmittedState.FAILED)

    def _finish_canceled_locally(self) -> None:
        self.remote_status = RemoteStatus.CANCELED
        self.error = None
        self._set_state(SubmittedState.DONE)

    def _send_cancel(self, backend: Backend) -> None:
        try:
            backend._cancel_problem(self.remote_id)
        except TRANSIENT_ERRORS as exc:
            # resent on next advance
            logger.debug("Cancel request for %r failed: %r", self.remote_id, exc)
        else:
            self.cancel_sent = True

    def submit(self, backend: Backend) -> None:
        """First submission attempt.

        Non-transient errors (invalid input, immediate rejection) propagate.
        """
        with self.lock:
            try:
                message = backend._submit_problem(
                    self.solver, self.problem_type, self.problem, self.params)
                self._update(message)
            except TRANSIENT_ERRORS as exc:
                self._fault(exc)

    def advance(self, backend: Backend) -> None:
        """Perform one step of the state machine (at most one round trip)."""
        with self.lock:
            if self.state in (SubmittedState.DONE, SubmittedState.FAILED):
                return

            if self.remote_id is None and self.cancel_requested:
                self._finish_canceled_locally()
                return

            try:
                if self.remote_id is None:
                    message = backend._submit_problem(
                        self.solver, self.problem_type, self.problem, self.params)
                else:
                    if self.cancel_requested and not self.cancel_sent:
                        self._send_cancel(backend)
                    message = backend._problem_status(self.remote_id)
                self._update(message)

            except TRANSIENT_ERRORS as exc:
                self._fault(exc)

            except SAPIError as exc:
                logger.debug("Job %r failed: %r", self.remote_id, exc)
                self.error = exc
                self.remote_status = RemoteStatus.FAILED
                self._set_state(SubmittedState.DONE)

    def cancel(self, backend: Backend) -> None:
        with self.lock:
            if self.done or self.cancel_requested:
                return
            self.cancel_requested = True
            if self.remote_id is not None:
                self._send_cancel(backend)

    def retry(self) -> bool:
        """Restart automatic retries of a job parked in RETRYING or FAILED."""
        with self.lock:
            if self.state not in (SubmittedState.RETRYING, SubmittedState.FAILED):
                logger.debug("Retry of job %r in state %s ignored",
                             self.remote_id, self.state.value)
                return False
            self.retries_left = self.max_retries
            self._set_state(SubmittedState.RETRYING)
            return True

    def snapshot(self) -> ProblemStatus:
        with self.lock:
            return ProblemStatus(
                id=self.remote_id,
                time_received=self.time_received,
                time_solved=self.time_solved,
                state=self.state,
                last_good_state=self.last_good_state,
                remote_status=self.remote_status,
                error=ErrorInfo.from_exception(self.error) if self.error else None,
            )
