# Copyright (c) 2026 cansession contributors
# This software is distributed under the terms of the MIT License.


def repr_attributes(obj: object, *anonymous_elements: object, **named_elements: object) -> str:
    """
    Constructs the :func:`repr` form of an object from the supplied positional and named elements.
    Each element is rendered using :func:`str`, so wrap strings into :func:`repr` if quotes are needed.

    >>> class Session: pass
    >>> repr_attributes(Session())
    'Session()'
    >>> repr_attributes(Session(), repr("vcan0"), fd=True)
    "Session('vcan0', fd=True)"
    """
    fields = list(map(str, anonymous_elements)) + [f"{name}={value}" for name, value in named_elements.items()]
    return f"{type(obj).__name__}(" + ", ".join(fields) + ")"
