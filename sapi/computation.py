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
Handles of asynchronously submitted problems.

Problem submission (see :meth:`~sapi.solver.Solver.submit_ising` and
:meth:`~sapi.solver.Solver.submit_qubo`) returns a :class:`SubmittedProblem`
right away. Progress is made only when the problem is polled, with
:meth:`SubmittedProblem.status`, or by one of the blocking waits,
:meth:`SubmittedProblem.await_completion` and :func:`await_completion`. No
background threads are used.

Example:
    >>> import sapi
    >>> sapi.initialize()
    >>> with sapi.local_connection() as conn:
    ...     solver = conn.get_solver('c4-sw_optimize')
    ...     job = solver.submit_ising([(0, 0, -1), (0, 4, 0.5)], solver.new_parameters())
    ...     job.await_completion(timeout=10)
    ...     result = job.result()
    True
"""

from __future__ import annotations

import logging
import threading
import time
from collections import abc
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sapi.buffers import ForeignBuffer, unmarshal
from sapi.config.models import BackoffPollingSchedule
from sapi.exceptions import AsyncNotDoneError, InvalidParameterError
from sapi.constants import SubmittedState
from sapi.models import ProblemStatus, SolveResult

if TYPE_CHECKING:
    from sapi.solver import Solver

__all__ = ['SubmittedProblem', 'await_completion']

logger = logging.getLogger(__name__)


class SubmittedProblem:
    """Handle of an asynchronously submitted problem.

    Owns the backend job resource, released once the result is retrieved,
    on :meth:`close`, or when the handle is garbage collected.

    :meth:`status` and :meth:`done` are safe to call concurrently;
    :meth:`result`, :meth:`cancel` and :meth:`retry` are serialized.

    Warning:
        Not intended to be created directly; use the solver's ``submit_*``
        methods.
    """

    def __init__(self, solver: Solver, job: ForeignBuffer):
        self.solver = solver
        self.backend = job.backend
        self._job = job
        self._lock = threading.RLock()
        self._result_retrieved = False
        self._last_status: ProblemStatus = self.backend.status(job.handle)

    def __repr__(self):
        status = self._last_status
        return (f"<{type(self).__name__} id={status.id!r} state={status.state.value} "
                f"remote_status={status.remote_status.value}>")

    @property
    def id(self) -> Optional[str]:
        """Problem id assigned by the backend, ``None`` until acknowledged."""
        return self._last_status.id

    @property
    def time_received(self) -> Optional[datetime]:
        return self._last_status.time_received

    @property
    def time_solved(self) -> Optional[datetime]:
        return self._last_status.time_solved

    @property
    def released(self) -> bool:
        return self._job.released

    def status(self) -> ProblemStatus:
        """Poll the problem (at most one backend round trip) and return its
        status snapshot.

        Once the job resource is released, the last known status is returned.
        """
        with self._lock:
            if self._job.released:
                return self._last_status
            self._last_status = self.backend.poll_status(self._job.handle)
            return self._last_status

    def done(self) -> bool:
        """Poll once, without waiting, and check whether the problem is done
        (completed, failed or canceled)."""
        return self.status().done

    def cancel(self) -> None:
        """Request problem cancellation. Cancellation is asynchronous: the
        problem is done once a subsequent poll observes it."""
        with self._lock:
            if self._job.released:
                return
            self.backend.cancel(self._job.handle)
            self._last_status = self.backend.status(self._job.handle)

    def retry(self) -> bool:
        """Resume automatic retries of a problem in ``RETRYING`` or
        ``FAILED`` state, resetting its retry budget.

        Returns:
            ``True`` if the retry was scheduled, ``False`` (no-op) in any
            other state.
        """
        with self._lock:
            if self._job.released:
                return False
            scheduled = self.backend.retry(self._job.handle)
            self._last_status = self.backend.status(self._job.handle)
            return scheduled

    def await_completion(self, timeout: Optional[float] = None) -> bool:
        """Poll until the problem is done, or ``timeout`` seconds pass.

        Returns:
            ``True`` if the problem is done, ``False`` on timeout or if its
            automatic retries are exhausted.
        """
        return await_completion([self], 1, timeout=timeout)

    def result(self) -> SolveResult:
        """Retrieve the answer of a done problem and release the job resource.

        The answer can be retrieved only once.

        Raises:
            :exc:`~sapi.exceptions.AsyncNotDoneError`:
                Problem not done, or result already retrieved.
            :exc:`~sapi.exceptions.ProblemCanceledError`:
                Problem canceled.
            :exc:`~sapi.exceptions.SolveFailedError`:
                Problem failed.
        """
        with self._lock:
            if self._result_retrieved:
                raise AsyncNotDoneError("result already retrieved")
            if self._job.released:
                raise AsyncNotDoneError("problem handle closed")

            result_handle = self.backend.async_result(self._job.handle)
            result = unmarshal(self.backend, result_handle, 'result')

            self._last_status = self.backend.status(self._job.handle)
            self._result_retrieved = True
            self._job.release()
            return result

    def close(self) -> None:
        """Release the backend job resource. Idempotent."""
        with self._lock:
            self._job.release()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()


def await_completion(jobs: abc.Sequence[SubmittedProblem], min_done: int,
                     timeout: Optional[float] = None,
                     polling_schedule: Optional[BackoffPollingSchedule] = None) -> bool:
    """Poll ``jobs`` until at least ``min_done`` of them are done.

    Not-yet-done jobs are polled in the calling thread, with exponential
    back-off between polling rounds.

    Args:
        jobs:
            Submitted problems.
        min_done:
            Number of done problems to wait for, ``1 <= min_done <= len(jobs)``.
        timeout:
            Maximum wait in seconds. Wait indefinitely if ``None``.
        polling_schedule:
            Back-off schedule. Defaults to the first job backend's schedule.

    Returns:
        ``True`` if at least ``min_done`` problems are done. ``False`` on
        timeout, or as soon as ``min_done`` is out of reach because the
        remaining problems are ``FAILED`` (see :meth:`SubmittedProblem.retry`).

    Raises:
        :exc:`~sapi.exceptions.InvalidParameterError`: ``min_done`` out of range.
    """
    jobs = list(jobs)
    if isinstance(min_done, bool) or not isinstance(min_done, int) \
            or not 1 <= min_done <= len(jobs):
        raise InvalidParameterError(
            f"min_done must be in [1, {len(jobs)}], got {min_done!r}")

    if polling_schedule is None:
        polling_schedule = jobs[0].backend.polling_schedule
    delays = polling_schedule.delays()

    deadline = None if timeout is None else time.monotonic() + timeout

    while True:
        statuses = [job.status() for job in jobs]

        num_done = sum(status.done for status in statuses)
        num_parked = sum(status.state is SubmittedState.FAILED for status in statuses)
        logger.trace("await_completion: %d of %d done, %d failed (%d required)",
                     num_done, len(jobs), num_parked, min_done)
        if num_done >= min_done:
            return True

        # jobs with exhausted retries make no progress until retried
        if len(jobs) - num_parked < min_done:
            logger.debug("await_completion: %d jobs failed, %d done required",
                         num_parked, min_done)
            return False

        delay = next(delays)
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            delay = min(delay, remaining)
        time.sleep(delay)
