# Copyright (c) 2026 cansession contributors
# This software is distributed under the terms of the MIT License.

import typing
import logging

R = typing.TypeVar("R")

_logger = logging.getLogger(__name__)


def broadcast(
    handlers: typing.Iterable[typing.Callable[..., R]]
) -> typing.Callable[..., typing.List[typing.Union[R, Exception]]]:
    """
    Returns a function that invokes each handler in the supplied order with the same arguments.
    The result of a handler, or the exception it raised, is added to the output list.
    Exceptions are logged and suppressed so that one faulty handler cannot starve the others.
    The handler collection is copied at invocation time, so handlers may unsubscribe themselves.

    ..  doctest::
        :hide:

        >>> _logger.setLevel(100)  # Suppress the error report from the following doctest.

    >>> def double(x):
    ...     return x * 2
    >>> def reject(x):
    ...     raise ValueError(f"Rejected: {x}")
    >>> broadcast([double, reject])(21)
    [42, ValueError('Rejected: 21')]
    >>> broadcast([])("ignored")
    []
    """

    def delegate(*args: typing.Any, **kwargs: typing.Any) -> typing.List[typing.Union[R, Exception]]:
        out: typing.List[typing.Union[R, Exception]] = []
        for fn in list(handlers):
            try:
                r: typing.Union[R, Exception] = fn(*args, **kwargs)
            except Exception as ex:
                r = ex
                _logger.exception("Unhandled exception in %s: %s", fn, ex)
            out.append(r)
        return out

    return delegate
