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

"""Value types exchanged with callers: job status snapshots, solve results,
solver properties, and embedding/fixing results."""

from __future__ import annotations

from collections import abc
from datetime import datetime
from typing import NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field

from sapi.constants import ErrorCode, ProblemType, RemoteStatus, SubmittedState
from sapi.exceptions import SAPIError, error_from_code
from sapi.problem import Problem

__all__ = [
    'ErrorInfo', 'ProblemStatus', 'SolveResult',
    'IsingRangeProperties', 'SolverProperties', 'FindEmbeddingParameters',
    'EmbedProblemResult', 'FixVariablesResult',
]


class ErrorInfo(BaseModel):
    """Structured ``(code, message)`` error description."""
    model_config = ConfigDict(frozen=True)

    code: ErrorCode
    message: str

    @classmethod
    def from_exception(cls, exc: SAPIError) -> ErrorInfo:
        return cls(code=exc.error_code, message=exc.error_msg or str(exc))

    def as_exception(self) -> SAPIError:
        return error_from_code(self.code, self.message)


class ProblemStatus(BaseModel):
    """Immutable snapshot of an asynchronously submitted problem's status.

    Timestamps are ``None`` until reported by the backend.
    """
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    time_received: Optional[datetime] = None
    time_solved: Optional[datetime] = None
    state: SubmittedState = SubmittedState.SUBMITTING
    last_good_state: SubmittedState = SubmittedState.SUBMITTING
    remote_status: RemoteStatus = RemoteStatus.UNKNOWN
    error: Optional[ErrorInfo] = None

    @property
    def done(self) -> bool:
        return self.state is SubmittedState.DONE


class SolveResult(BaseModel):
    """Solutions returned by a solver.

    ``solutions[k]`` is indexed by variable (qubit); variables not used by
    the problem hold :data:`~sapi.constants.UNUSED_VARIABLE`.
    ``energies[k]`` and ``num_occurrences[k]`` describe ``solutions[k]``.
    """

    solutions: list[list[int]] = Field(default_factory=list)
    energies: list[float] = Field(default_factory=list)
    num_occurrences: list[int] = Field(default_factory=list)
    timing: dict[str, float] = Field(default_factory=dict)
    problem_type: ProblemType = ProblemType.ISING


class IsingRangeProperties(BaseModel):
    h_min: float = -1.0
    h_max: float = 1.0
    j_min: float = -1.0
    j_max: float = 1.0


class SolverProperties(BaseModel):
    """Solver properties, as advertised by the backend."""
    model_config = ConfigDict(extra='allow')

    supported_problem_types: list[str] = Field(default_factory=list)
    num_qubits: int = 0
    qubits: list[int] = Field(default_factory=list)
    couplers: list[tuple[int, int]] = Field(default_factory=list)
    ising_ranges: Optional[IsingRangeProperties] = None
    category: Optional[str] = None
    parameters: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_solver_data(cls, properties: abc.Mapping) -> SolverProperties:
        """Construct from a raw solver properties dict (``h_range`` and
        ``j_range`` given as ``[min, max]`` pairs)."""
        data = dict(properties)
        h_range = data.pop('h_range', None)
        j_range = data.pop('j_range', None)
        if h_range is not None and j_range is not None:
            data['ising_ranges'] = IsingRangeProperties(
                h_min=h_range[0], h_max=h_range[1],
                j_min=j_range[0], j_max=j_range[1])
        return cls.model_validate(data)

    @property
    def structured(self) -> bool:
        """Solver has a fixed qubit/coupler graph."""
        return bool(self.qubits)


class FindEmbeddingParameters(BaseModel):
    """Parameters of the embedding heuristic."""

    #: Try to get an embedding quickly, without worrying about chain length.
    fast_embedding: bool = False

    #: Number of rounds from the current solution with no improvement.
    max_no_improvement: int = 10

    #: Random seed; non-deterministic if ``None``.
    random_seed: Optional[int] = None

    #: Give up after this many seconds.
    timeout: float = 1000.0

    #: Give up after this many restarts.
    tries: int = 10

    #: Log progress at INFO level.
    verbose: bool = False


class EmbedProblemResult(NamedTuple):
    #: Embedded problem over physical qubits.
    problem: Problem
    #: Chain edges, couplers between qubits representing the same variable.
    chain_couplers: Problem
    #: Embeddings, possibly modified by cleaning or smearing.
    embeddings: list[int]


class FixVariablesResult(NamedTuple):
    #: Fixed variable to value (0 or 1).
    fixed_variables: dict[int, int]
    #: Energy offset: ``E(x) == E_new(x_free) + offset``.
    offset: float
    #: Reduced problem over the free variables.
    new_problem: Problem
