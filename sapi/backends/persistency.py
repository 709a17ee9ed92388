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
Variable fixing for QUBO problems based on first-order persistency.

Flipping variable ``i`` from 0 to 1 changes the energy by
``Q_ii + sum_j Q_ij x_j``, which is bounded by the sums of the negative and
the positive couplings of ``i``. If the lower bound is positive, ``x_i = 0``
in every minimum; if the upper bound is negative, ``x_i = 1`` in every
minimum. Non-strict bounds guarantee the value in at least one minimum.

Variables are fixed one at a time, substituting each fixed value before
looking for the next one.
"""

import logging
from collections import defaultdict

from sapi.constants import FixVariablesMethod
from sapi.models import FixVariablesResult
from sapi.problem import Problem, canonicalize, fix

__all__ = ['fix_variables']

logger = logging.getLogger(__name__)


def _next_fixable(problem: Problem, strict: bool):
    linear = defaultdict(float)
    lower = defaultdict(float)
    upper = defaultdict(float)
    for i, j, value in problem:
        if i == j:
            linear[i] += value
        else:
            for v in (i, j):
                linear[v] += 0.0
                if value < 0:
                    lower[v] += value
                else:
                    upper[v] += value

    for var in sorted(linear):
        low = linear[var] + lower[var]
        high = linear[var] + upper[var]
        if low > 0 or (not strict and low >= 0):
            return var, 0
        if high < 0 or (not strict and high <= 0):
            return var, 1

    return None


def fix_variables(problem: Problem, method: FixVariablesMethod) -> FixVariablesResult:
    """Fix QUBO variables whose optimal value can be inferred.

    With :attr:`~sapi.constants.FixVariablesMethod.STANDARD` only variables
    that take the fixed value in every minimum are fixed; with
    :attr:`~sapi.constants.FixVariablesMethod.OPTIMIZED`, also those that take
    it in at least one minimum.
    """
    strict = FixVariablesMethod(method) is FixVariablesMethod.STANDARD

    current = canonicalize(problem)
    fixed = {}
    offset = 0.0

    while (found := _next_fixable(current, strict)) is not None:
        var, value = found
        fixed[var] = value
        current, contribution = fix(current, {var: value})
        offset += contribution

    logger.debug("Fixed %d of %d variables (%s)", len(fixed),
                 len(fixed) + len(current.variables()), method)

    return FixVariablesResult(fixed_variables=fixed, offset=offset, new_problem=current)
