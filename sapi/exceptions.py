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

from typing import Optional

from sapi.constants import ErrorCode

__all__ = [
    'SAPIError', 'InvalidParameterError', 'SolverNotFoundError',
    'ProblemStructureError', 'SolveFailedError', 'EmbeddingError',
    'AuthenticationError', 'NetworkError', 'CommunicationError',
    'AsyncNotDoneError', 'ProblemCanceledError', 'NotInitializedError',
    'OutOfMemoryError', 'TRANSIENT_ERRORS', 'error_from_code',
    'ConfigFileError', 'ConfigFileReadError', 'ConfigFileParseError',
]


class SAPIError(Exception):
    """Generic solver API error"""

    error_msg: Optional[str] = None
    error_code: ErrorCode = ErrorCode.SOLVE_FAILED

    def __init__(self, *args, **kwargs):
        # exception message populated from, in order of precedence: `args`,
        # `error_msg` kwarg, exception docstring
        self.error_msg = kwargs.pop('error_msg', self.error_msg)
        self.error_code = ErrorCode(kwargs.pop('error_code', self.error_code))
        if len(args) < 1 and self.error_msg is not None:
            args = (self.error_msg, )
        if len(args) < 1:
            args = (self.__doc__, )
        if self.error_msg is None:
            self.error_msg = str(args[0])
        super().__init__(*args, **kwargs)

    @property
    def kind(self) -> ErrorCode:
        return self.error_code


class InvalidParameterError(SAPIError):
    """Invalid parameter or malformed input"""
    error_code = ErrorCode.INVALID_PARAMETER

class SolverNotFoundError(InvalidParameterError):
    """Solver not found / not available"""

class ProblemStructureError(InvalidParameterError):
    """Problem structure incompatible with a structured solver graph"""


class SolveFailedError(SAPIError):
    """Solving failed"""
    error_code = ErrorCode.SOLVE_FAILED

class EmbeddingError(SolveFailedError):
    """Failed to find an embedding"""


class AuthenticationError(SAPIError):
    """Invalid token or access denied"""
    error_code = ErrorCode.AUTHENTICATION

class NetworkError(SAPIError):
    """Network error while communicating with the backend"""
    error_code = ErrorCode.NETWORK

class CommunicationError(SAPIError):
    """Unexpected response from the backend"""
    error_code = ErrorCode.COMMUNICATION


class AsyncNotDoneError(SAPIError):
    """Problem is not done, or its result was already retrieved"""
    error_code = ErrorCode.ASYNC_NOT_DONE

class ProblemCanceledError(SAPIError):
    """Problem was canceled"""
    error_code = ErrorCode.PROBLEM_CANCELLED


class NotInitializedError(SAPIError):
    """Runtime not initialized, call sapi.initialize() first"""
    error_code = ErrorCode.NO_INIT

class OutOfMemoryError(SAPIError):
    """Backend buffer allocation failed"""
    error_code = ErrorCode.OUT_OF_MEMORY


#: Faults absorbed by the asynchronous submission state machine and retried.
TRANSIENT_ERRORS = (AuthenticationError, NetworkError, CommunicationError)

_ERRORS_BY_CODE = {
    ErrorCode.INVALID_PARAMETER: InvalidParameterError,
    ErrorCode.SOLVE_FAILED: SolveFailedError,
    ErrorCode.AUTHENTICATION: AuthenticationError,
    ErrorCode.NETWORK: NetworkError,
    ErrorCode.COMMUNICATION: CommunicationError,
    ErrorCode.ASYNC_NOT_DONE: AsyncNotDoneError,
    ErrorCode.PROBLEM_CANCELLED: ProblemCanceledError,
    ErrorCode.NO_INIT: NotInitializedError,
    ErrorCode.OUT_OF_MEMORY: OutOfMemoryError,
}


def error_from_code(code: int, message: Optional[str] = None) -> SAPIError:
    """Construct the exception matching the backend error ``code``."""
    code = ErrorCode(code)
    if code is ErrorCode.OK:
        raise ValueError("no error for status code OK")
    cls = _ERRORS_BY_CODE[code]
    if message:
        return cls(message)
    return cls()


class ConfigFileError(Exception):
    """Base exception for all config file processing errors."""

class ConfigFileReadError(ConfigFileError):
    """Non-existing or unreadable config file specified or implied."""

class ConfigFileParseError(ConfigFileError):
    """Invalid format of config file."""
