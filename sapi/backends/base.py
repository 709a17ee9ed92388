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
Backend interface.

A backend owns every buffer exchanged with it. Callers allocate input buffers
through the backend's :class:`HandleTable` (see :mod:`sapi.buffers`), pass
the handles to backend operations, and receive handles to backend-allocated
output they are responsible for freeing.

Concrete backends implement solver discovery and four transport hooks
(submit, status, answer and cancel). Synchronous solving, the asynchronous
job lifecycle, embedding and variable fixing are shared.
"""

from __future__ import annotations

import abc
import collections
import itertools
import logging
import threading
import time
from typing import Any, Optional

from sapi.backends import minor, persistency
from sapi.config.models import BackoffPollingSchedule
from sapi.constants import (
    BrokenChains, FixVariablesMethod, ProblemType, RemoteStatus)
from sapi.exceptions import (
    InvalidParameterError, NotInitializedError, OutOfMemoryError,
    AsyncNotDoneError, ProblemCanceledError, SolveFailedError)
from sapi.jobs import JobRecord
from sapi.models import (
    FindEmbeddingParameters, IsingRangeProperties, ProblemStatus, SolverProperties)
from sapi.problem import Problem, ProblemEntry

__all__ = ['HandleTable', 'Backend']

logger = logging.getLogger(__name__)


class HandleTable:
    """Thread-safe registry of backend-owned buffers.

    Allocation and release counters are kept for leak accounting.
    Releasing an unknown or already released handle, and reading a released
    handle, raise :exc:`~sapi.exceptions.InvalidParameterError`.

    Args:
        max_live:
            Maximum number of simultaneously allocated buffers. Allocation
            beyond it fails with :exc:`~sapi.exceptions.OutOfMemoryError`.
    """

    def __init__(self, max_live: Optional[int] = None):
        self.max_live = max_live
        self.allocations = 0
        self.releases = 0
        self._items = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def __repr__(self):
        return (f"<{type(self).__name__} live={self.live} "
                f"allocations={self.allocations} releases={self.releases}>")

    @property
    def live(self) -> int:
        return len(self._items)

    def live_by_kind(self) -> collections.Counter:
        with self._lock:
            return collections.Counter(kind for kind, _ in self._items.values())

    def allocate(self, kind: str, payload: Any) -> int:
        with self._lock:
            if self.max_live is not None and len(self._items) >= self.max_live:
                raise OutOfMemoryError(
                    f"cannot allocate {kind} buffer: {len(self._items)} "
                    f"of {self.max_live} buffers in use")
            handle = next(self._ids)
            self._items[handle] = (kind, payload)
            self.allocations += 1

        logger.trace("allocated %s buffer %d", kind, handle)
        return handle

    def read(self, handle: int, kind: Optional[str] = None) -> Any:
        with self._lock:
            try:
                item_kind, payload = self._items[handle]
            except (KeyError, TypeError):
                raise InvalidParameterError(f"invalid or released buffer handle {handle!r}")

        if kind is not None and item_kind != kind:
            raise InvalidParameterError(
                f"buffer {handle!r} holds {item_kind}, {kind} expected")
        return payload

    def free(self, handle: int) -> None:
        with self._lock:
            try:
                kind, _ = self._items.pop(handle)
            except (KeyError, TypeError):
                raise InvalidParameterError(
                    f"buffer handle {handle!r} is invalid or already released")
            self.releases += 1

        logger.trace("released %s buffer %d", kind, handle)


class Backend(abc.ABC):
    """Base class of solving backends.

    Args:
        max_retries:
            Automatic retries of transient faults per asynchronous job.
        polling_schedule:
            Back-off schedule of synchronous solve status polling.
        max_buffers:
            Capacity of the buffer handle table (unbounded by default).
    """

    def __init__(self, *, max_retries: int = 3,
                 polling_schedule: Optional[BackoffPollingSchedule] = None,
                 max_buffers: Optional[int] = None):
        self.max_retries = max_retries
        if polling_schedule is None:
            polling_schedule = BackoffPollingSchedule()
        self.polling_schedule = polling_schedule
        self.handles = HandleTable(max_live=max_buffers)
        self.closed = False

    def __repr__(self):
        return f"<{type(self).__name__} {self.handles!r}>"

    # buffers

    def allocate(self, kind: str, payload: Any) -> int:
        if self.closed:
            raise NotInitializedError(f"{type(self).__name__} is closed")
        return self.handles.allocate(kind, payload)

    def read(self, handle: int, kind: Optional[str] = None) -> Any:
        return self.handles.read(handle, kind)

    def free(self, handle: int) -> None:
        self.handles.free(handle)

    def close(self) -> None:
        """Reject new work. Outstanding buffers can still be released."""
        self.closed = True

    # solver discovery

    @abc.abstractmethod
    def solver_names(self) -> list[str]:
        """Names of solvers available on this backend."""

    @abc.abstractmethod
    def solver_properties(self, name: str) -> SolverProperties:
        """Properties of solver ``name``.

        Raises:
            :exc:`~sapi.exceptions.SolverNotFoundError`
        """

    # transport hooks

    @abc.abstractmethod
    def _submit_problem(self, solver: str, problem_type: ProblemType,
                        problem: Problem, params: dict) -> dict:
        """Submit a problem, return its status message."""

    @abc.abstractmethod
    def _problem_status(self, remote_id: str) -> dict:
        """Return the status message of a submitted problem."""

    @abc.abstractmethod
    def _problem_answer(self, remote_id: str) -> dict:
        """Return the answer of a completed problem as a result dict."""

    @abc.abstractmethod
    def _cancel_problem(self, remote_id: str) -> None:
        """Request cancellation of a submitted problem."""

    # synchronous solving

    def _solve(self, solver: str, problem_type: ProblemType,
               problem: Problem, params: dict) -> dict:
        """Submit and poll until done; every fault propagates."""
        message = self._submit_problem(solver, problem_type, problem, params)
        delays = self.polling_schedule.delays()

        while not RemoteStatus(message['status']).terminal:
            time.sleep(next(delays))
            message = self._problem_status(message['id'])

        status = RemoteStatus(message['status'])
        if status is RemoteStatus.CANCELED:
            raise ProblemCanceledError
        if status is RemoteStatus.FAILED:
            raise SolveFailedError(message.get('error_message') or "Problem failed")

        if message.get('answer') is not None:
            return message['answer']
        return self._problem_answer(message['id'])

    def solve(self, solver: str, problem_type: ProblemType,
              problem_handle: int, params_handle: int) -> int:
        """Solve a problem, blocking until done. Returns a result handle."""
        problem = self.read(problem_handle, 'problem')
        params = self.read(params_handle, 'parameters')
        answer = self._solve(solver, ProblemType(problem_type), problem, params)
        return self.allocate('result', answer)

    # asynchronous solving

    def solve_async(self, solver: str, problem_type: ProblemType,
                    problem_handle: int, params_handle: int) -> int:
        """Submit a problem without waiting for it. Returns a job handle."""
        problem = self.read(problem_handle, 'problem')
        params = self.read(params_handle, 'parameters')

        job = JobRecord(solver, problem_type, problem, params, max_retries=self.max_retries)
        handle = self.allocate('job', job)
        try:
            job.submit(self)
        except Exception:
            self.free(handle)
            raise

        logger.debug("Submitted %r", job)
        return handle

    def poll_status(self, job_handle: int) -> ProblemStatus:
        job: JobRecord = self.read(job_handle, 'job')
        job.advance(self)
        return job.snapshot()

    def status(self, job_handle: int) -> ProblemStatus:
        """Last known status, without contacting the backend."""
        job: JobRecord = self.read(job_handle, 'job')
        return job.snapshot()

    def async_done(self, job_handle: int) -> bool:
        job: JobRecord = self.read(job_handle, 'job')
        return job.done

    def cancel(self, job_handle: int) -> None:
        job: JobRecord = self.read(job_handle, 'job')
        job.cancel(self)

    def retry(self, job_handle: int) -> bool:
        job: JobRecord = self.read(job_handle, 'job')
        return job.retry()

    def async_result(self, job_handle: int) -> int:
        """Result of a done job. Returns a result handle.

        Raises:
            :exc:`~sapi.exceptions.AsyncNotDoneError`: job not done.
            :exc:`~sapi.exceptions.ProblemCanceledError`: job canceled.
            :exc:`~sapi.exceptions.SolveFailedError`: job failed.
        """
        job: JobRecord = self.read(job_handle, 'job')
        with job.lock:
            if not job.done:
                raise AsyncNotDoneError(f"problem in state {job.state.value}")
            if job.remote_status is RemoteStatus.CANCELED:
                raise ProblemCanceledError
            if job.remote_status is not RemoteStatus.COMPLETED:
                if job.error is not None:
                    raise job.error
                raise SolveFailedError

            if job.answer is None:
                job.answer = self._problem_answer(job.remote_id)

            return self.allocate('result', job.answer)

    # hardware graph

    def hardware_adjacency(self, solver: str) -> int:
        """Couplers of a structured solver, in both directions, as a problem
        handle."""
        properties = self.solver_properties(solver)
        if not properties.structured:
            raise InvalidParameterError(f"solver {solver!r} has no hardware graph")

        adjacency = Problem()
        for u, v in properties.couplers:
            adjacency.append(ProblemEntry(u, v, 1.0))
            adjacency.append(ProblemEntry(v, u, 1.0))
        return self.allocate('problem', adjacency)

    # embedding

    def find_embedding(self, problem_handle: int, adjacency_handle: int,
                       params: FindEmbeddingParameters) -> int:
        problem = self.read(problem_handle, 'problem')
        adjacency = self.read(adjacency_handle, 'problem')
        embeddings = minor.find_embedding(problem, adjacency, params)
        return self.allocate('embeddings', embeddings)

    def embed_problem(self, problem_handle: int, embeddings_handle: int,
                      adjacency_handle: int, clean: bool, smear: bool,
                      ranges: IsingRangeProperties) -> tuple[int, int, int]:
        problem = self.read(problem_handle, 'problem')
        embeddings = self.read(embeddings_handle, 'embeddings')
        adjacency = self.read(adjacency_handle, 'problem')

        embedded, chains, new_embeddings = minor.embed_problem(
            problem, embeddings, adjacency, clean=clean, smear=smear, ranges=ranges)

        handles = []
        try:
            handles.append(self.allocate('problem', embedded))
            handles.append(self.allocate('problem', chains))
            handles.append(self.allocate('embeddings', new_embeddings))
        except Exception:
            for handle in handles:
                self.free(handle)
            raise
        return tuple(handles)

    def unembed_answer(self, solutions_handle: int, embeddings_handle: int,
                       broken_chains: BrokenChains, problem_handle: int) -> int:
        solutions = self.read(solutions_handle, 'solutions')
        embeddings = self.read(embeddings_handle, 'embeddings')
        problem = self.read(problem_handle, 'problem')
        unembedded = minor.unembed_answer(
            solutions, embeddings, BrokenChains(broken_chains), problem)
        return self.allocate('solutions', unembedded)

    # variable fixing

    def fix_variables(self, problem_handle: int, method: FixVariablesMethod) -> int:
        problem = self.read(problem_handle, 'problem')
        result = persistency.fix_variables(problem, FixVariablesMethod(method))
        return self.allocate('fix_result', result)
