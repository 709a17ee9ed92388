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
Solver parameters.

Each solver kind accepts its own parameter set, modelled as one variant of the
:data:`SolverParameters` tagged union (discriminated on ``kind``). Use
:func:`new_solver_parameters` (or :meth:`~sapi.solver.Solver.new_parameters`)
to obtain defaults suitable for a given solver.

Example:
    >>> from sapi.parameters import SwSampleSolverParameters
    >>> params = SwSampleSolverParameters(num_reads=100, random_seed=1)
    >>> params.to_dict()
    {'answer_mode': 'histogram', 'beta': 3.0, 'num_reads': 100, 'random_seed': 1}
"""

from __future__ import annotations

import logging
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, TypeAdapter, ValidationError

from sapi.constants import AnswerMode
from sapi.exceptions import InvalidParameterError

__all__ = [
    'QuantumSolverParameters', 'SwOptimizeSolverParameters',
    'SwSampleSolverParameters', 'SwHeuristicSolverParameters',
    'SolverParameters', 'new_solver_parameters', 'parse_solver_parameters',
]

logger = logging.getLogger(__name__)


class _ParametersBase(BaseModel):
    model_config = ConfigDict(extra='forbid', validate_assignment=True,
                              validate_default=True, use_enum_values=True)

    def to_dict(self) -> dict:
        """Parameters as sent to the backend (unset optionals omitted)."""
        return self.model_dump(exclude={'kind'}, exclude_none=True)


class QuantumSolverParameters(_ParametersBase):
    kind: Literal['quantum'] = 'quantum'

    #: Annealing time in microseconds; solver default if unset.
    annealing_time: Optional[PositiveInt] = None
    answer_mode: AnswerMode = AnswerMode.HISTOGRAM
    auto_scale: bool = True
    beta: Optional[float] = None
    max_answers: Optional[PositiveInt] = None
    num_reads: PositiveInt = 1
    num_spin_reversal_transforms: int = Field(default=0, ge=0)
    postprocess: Optional[Literal['sampling', 'optimization']] = None
    programming_thermalization: Optional[PositiveInt] = None
    readout_thermalization: Optional[PositiveInt] = None


class SwOptimizeSolverParameters(_ParametersBase):
    kind: Literal['sw_optimize'] = 'sw_optimize'

    answer_mode: AnswerMode = AnswerMode.HISTOGRAM
    max_answers: Optional[PositiveInt] = None
    num_reads: PositiveInt = 1


class SwSampleSolverParameters(_ParametersBase):
    kind: Literal['sw_sample'] = 'sw_sample'

    answer_mode: AnswerMode = AnswerMode.HISTOGRAM
    beta: float = Field(default=3.0, gt=0)
    max_answers: Optional[PositiveInt] = None
    num_reads: PositiveInt = 1
    random_seed: Optional[int] = None


class SwHeuristicSolverParameters(_ParametersBase):
    kind: Literal['heuristic'] = 'heuristic'

    iteration_limit: PositiveInt = 10
    max_bit_flip_prob: float = Field(default=1/8, gt=0, le=1)
    max_local_complexity: PositiveInt = 9
    min_bit_flip_prob: float = Field(default=1/32, gt=0, le=1)
    local_stuck_limit: PositiveInt = 8
    num_perturbed_copies: PositiveInt = 4
    num_variables: int = Field(default=0, ge=0)
    random_seed: Optional[int] = None
    time_limit_seconds: float = Field(default=5.0, gt=0)


SolverParameters = Annotated[
    Union[QuantumSolverParameters, SwOptimizeSolverParameters,
          SwSampleSolverParameters, SwHeuristicSolverParameters],
    Field(discriminator='kind')]

_solver_parameters_adapter = TypeAdapter(SolverParameters)

#: Parameters variant by kind.
PARAMETERS_BY_KIND = {
    'quantum': QuantumSolverParameters,
    'sw_optimize': SwOptimizeSolverParameters,
    'sw_sample': SwSampleSolverParameters,
    'heuristic': SwHeuristicSolverParameters,
}

# solver name suffix to parameters kind, for solvers not advertising
# their parameters
_SUFFIX_KINDS = (
    ('-sw_optimize', 'sw_optimize'),
    ('-sw_sample', 'sw_sample'),
    ('-heuristic', 'heuristic'),
)


def parse_solver_parameters(data: dict) -> SolverParameters:
    """Validate a parameters dict (with ``kind``) into a parameters model."""
    try:
        return _solver_parameters_adapter.validate_python(data)
    except ValidationError as exc:
        raise InvalidParameterError(f"invalid solver parameters: {exc}") from exc


def _kind_from_capabilities(category: Optional[str], parameters: dict) -> Optional[str]:
    if category == 'qpu':
        return 'quantum'

    names = set(parameters)
    if not names:
        return None

    # pick the variant that accepts all the advertised parameters,
    # preferring the one with fewest fields
    candidates = []
    for kind, model in PARAMETERS_BY_KIND.items():
        fields = set(model.model_fields) - {'kind'}
        if names <= fields:
            candidates.append((len(fields), kind))

    if not candidates:
        return None
    return min(candidates)[1]


def _kind_from_name(name: str) -> str:
    for suffix, kind in _SUFFIX_KINDS:
        if name.endswith(suffix):
            return kind
    return 'quantum'


def new_solver_parameters(solver) -> SolverParameters:
    """Return default parameters for ``solver``.

    The parameters variant is selected by the solver's advertised
    capabilities (``category`` and ``parameters`` properties). For solvers
    that don't advertise them, the solver name suffix decides
    (``-sw_optimize``, ``-sw_sample``, ``-heuristic``), with quantum solver
    parameters as the default.
    """
    properties = solver.properties
    kind = _kind_from_capabilities(properties.category, properties.parameters)
    if kind is None:
        kind = _kind_from_name(solver.name)
        logger.debug("Parameters kind for %r inferred from name: %r", solver.name, kind)
    else:
        logger.debug("Parameters kind for %r inferred from capabilities: %r", solver.name, kind)

    return PARAMETERS_BY_KIND[kind]()
