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

import enum

__all__ = [
    'ErrorCode', 'SubmittedState', 'RemoteStatus', 'ProblemType',
    'BrokenChains', 'FixVariablesMethod', 'AnswerMode',
    'DEFAULT_LOCAL_SOLVER', 'UNUSED_VARIABLE',
]

#: Solver picked by :func:`~sapi.connection.new_solver` when the connection
#: falls back to local solvers and no solver name is configured.
DEFAULT_LOCAL_SOLVER = 'c4-sw_optimize'

#: Solution value reported for qubits/variables not used by a problem.
UNUSED_VARIABLE = 3


class ErrorCode(enum.IntEnum):
    """Backend error codes. Every :class:`~sapi.exceptions.SAPIError` carries
    one of these as ``error_code``."""

    OK = 0
    INVALID_PARAMETER = 1
    SOLVE_FAILED = 2
    AUTHENTICATION = 3
    NETWORK = 4
    COMMUNICATION = 5
    ASYNC_NOT_DONE = 6
    PROBLEM_CANCELLED = 7
    NO_INIT = 8
    OUT_OF_MEMORY = 9


class SubmittedState(str, enum.Enum):
    """State of an asynchronously submitted problem, as seen by the client.

    A problem starts in SUBMITTING, moves to SUBMITTED once the backend
    acknowledged it, and to DONE when it reached a terminal remote status
    (completed, failed or canceled). Transient communication faults move the
    problem to RETRYING, and to FAILED once automatic retries are exhausted.
    DONE is terminal.
    """

    SUBMITTING = "SUBMITTING"
    SUBMITTED = "SUBMITTED"
    DONE = "DONE"
    RETRYING = "RETRYING"
    FAILED = "FAILED"


class RemoteStatus(str, enum.Enum):
    """Problem status as reported by the backend.

    UNKNOWN until the first backend response. COMPLETED, FAILED and CANCELED
    are terminal.
    """

    UNKNOWN = "UNKNOWN"
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELED = "CANCELLED"

    @classmethod
    def _missing_(cls, value):
        # accept both spellings of canceled
        if isinstance(value, str) and value.upper() == 'CANCELED':
            return cls.CANCELED
        return None

    @property
    def terminal(self) -> bool:
        return self in (RemoteStatus.COMPLETED, RemoteStatus.FAILED, RemoteStatus.CANCELED)


class ProblemType(str, enum.Enum):
    ISING = "ising"
    QUBO = "qubo"


class AnswerMode(str, enum.Enum):
    HISTOGRAM = "histogram"
    RAW = "raw"


class BrokenChains(str, enum.Enum):
    """Strategy for resolving chains whose qubits disagree when unembedding."""

    MINIMIZE_ENERGY = "minimize_energy"
    VOTE = "vote"
    DISCARD = "discard"
    WEIGHTED_RANDOM = "weighted_random"


class FixVariablesMethod(str, enum.Enum):
    """OPTIMIZED fixes variables that take a given value in at least one
    optimal solution; STANDARD only those that take it in every optimal
    solution."""

    OPTIMIZED = "optimized"
    STANDARD = "standard"
