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

__packagename__ = 'sapi-client'
__title__ = 'Solver API client'
__version__ = '0.1.0'
__author__ = 'D-Wave Inc.'
__authoremail__ = 'tools@dwavesys.com'
__description__ = 'Ising/QUBO problem submission and job tracking client for solver backends.'
__url__ = 'https://github.com/dwavesystems/sapi-client'
__license__ = 'Apache 2.0'
__copyright__ = '2024, D-Wave Inc.'
