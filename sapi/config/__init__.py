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
Configuration of the solving client.

Configuration values are ranked in the following order (highest first):

1. Values specified as keyword arguments.
2. Values specified as environment variables.
3. Values specified in the configuration file.
4. Defaults of :class:`~sapi.config.models.ClientConfig`.

Configuration files use the INI format, parsable with Python's
:mod:`configparser`. An optional ``defaults`` section provides default
key-value pairs for all other sections (profiles).

Options:

*   ``endpoint``, ``token``: remote Solver API URL and authentication token.
    A local connection is used when either is unset.
*   ``proxy``: proxy URL for remote connections.
*   ``solver``: default solver name.
*   ``max_retries``: automatic retries of transient faults per job.
*   ``poll_backoff_min``, ``poll_backoff_max``, ``poll_backoff_base``:
    job status polling back-off schedule.
*   ``request_timeout``, ``http_retry_*``: HTTP request timeout and retries.

Environment variables:

*   ``SAPI_CONFIG_FILE``: Configuration file path.
*   ``SAPI_PROFILE``: Name of profile (section).
*   ``SAPI_API_ENDPOINT``: Solver API endpoint URL.
*   ``SAPI_API_TOKEN``: Solver API authorization token.
*   ``SAPI_API_PROXY``: URL for proxy connections.
*   ``SAPI_API_SOLVER``: Default solver.
*   ``DW_INTERNAL__HTTPLINK``, ``DW_INTERNAL__TOKEN``,
    ``DW_INTERNAL__HTTPPROXY``, ``DW_INTERNAL__SOLVER``: legacy equivalents
    of the above, overridden by them.

Example:
    A configuration file, ``~/.config/sapi/sapi.conf``::

        [defaults]
        token = ABC-123456789123456789123456789

        [prod]
        endpoint = https://cloud.example.com/sapi
        solver = DW_2000Q

        [local]
        solver = c4-sw_sample

    >>> from sapi.connection import Connection
    >>> with Connection.from_config(profile='prod') as conn:    # doctest: +SKIP
    ...     solver = conn.get_solver()
"""

from sapi.config.loaders import *
from sapi.config.models import *
