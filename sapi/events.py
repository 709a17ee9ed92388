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
Event hooks for observing connections and problem submission.

Every hooked operation emits a ``before_<name>`` event on entry and an
``after_<name>`` event on exit. Hooked operations:

``connection_init``
    :class:`~sapi.connection.Connection` construction.
``get_solvers``
    :meth:`~sapi.connection.Connection.solvers`.
``solve``
    :meth:`~sapi.solver.Solver.solve_ising` and
    :meth:`~sapi.solver.Solver.solve_qubo`.
``submit``
    :meth:`~sapi.solver.Solver.submit_ising` and
    :meth:`~sapi.solver.Solver.submit_qubo`.

Handlers are called synchronously, in registration order. A failing handler
is logged and skipped; it never affects the hooked operation.

Example:
    >>> from sapi.events import add_handler
    >>> def log_submit(event, obj, args, **outcome):
    ...     print(event, obj.name, sorted(outcome))
    >>> add_handler('after_submit', log_submit)
"""

import inspect
import logging
from functools import wraps

__all__ = ['add_handler', 'remove_handler', 'EVENTS']

logger = logging.getLogger(__name__)

#: Names of hooked operations.
EVENTS = ('connection_init', 'get_solvers', 'solve', 'submit')

# event name -> handlers
_event_hooks_registry = {f'{when}_{name}': [] for name in EVENTS
                         for when in ('before', 'after')}


def add_handler(name, handler):
    """Call ``handler`` on every ``name`` event.

    ``before_*`` handlers are called as ``handler(event_name, obj=..., args=...)``,
    where ``obj`` is the instance whose method is called (or ``None``) and
    ``args`` maps argument names to values.

    ``after_*`` handlers additionally get either ``return_value`` or
    ``exception``. An exception is re-raised to the caller after all handlers
    ran.

    Raises:
        :exc:`ValueError`: unknown event name.
        :exc:`TypeError`: handler not callable.
    """
    if name not in _event_hooks_registry:
        raise ValueError(f'invalid event name: {name!r}')
    if not callable(handler):
        raise TypeError('callable handler required')

    _event_hooks_registry[name].append(handler)


def remove_handler(name, handler):
    """Unregister ``handler`` from event ``name``. Unknown handlers are
    ignored."""
    if name not in _event_hooks_registry:
        raise ValueError(f'invalid event name: {name!r}')

    handlers = _event_hooks_registry[name]
    if handler in handlers:
        handlers.remove(handler)


def dispatch_event(name, **data):
    """Call the handlers of event ``name`` with keyword arguments ``data``."""
    logger.trace("dispatch_event(%r, **%r)", name, data)

    try:
        handlers = list(_event_hooks_registry[name])
    except KeyError:
        raise ValueError(f'invalid event name: {name!r}') from None

    for handler in handlers:
        try:
            handler(name, **data)
        except Exception as exc:
            logger.debug("Exception in %r event handler %r: %r", name, handler, exc)


class dispatches_events:
    """Method decorator emitting ``before_<basename>`` and
    ``after_<basename>`` events around each call."""

    def __init__(self, basename):
        if basename not in EVENTS:
            raise ValueError(f'invalid event name: {basename!r}')
        self.basename = basename

    def __call__(self, fn):
        if not callable(fn):
            raise TypeError("decorated object must be callable")

        signature = inspect.signature(fn)
        before, after = f'before_{self.basename}', f'after_{self.basename}'

        @wraps(fn)
        def wrapped(*pargs, **kwargs):
            bound = signature.bind(*pargs, **kwargs)
            bound.apply_defaults()
            args = dict(bound.arguments)
            obj = args.pop('self', None)

            dispatch_event(before, obj=obj, args=args)
            try:
                rval = fn(*pargs, **kwargs)
            except Exception as exc:
                dispatch_event(after, obj=obj, args=args, exception=exc)
                raise

            dispatch_event(after, obj=obj, args=args, return_value=rval)
            return rval

        return wrapped
