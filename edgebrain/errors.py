"""
Exception types raised by edgebrain.

Each error subclasses the builtin exception it most resembles, so callers can
catch either the specific type or the plain ``ValueError`` / ``RuntimeError``.
"""


class EdgeBrainError(Exception):
    """Base class for all edgebrain errors."""


class PreconditionViolation(EdgeBrainError, ValueError):
    """
    A caller passed arguments the operation cannot work with.

    Examples: a feature vector of the wrong width, an empty batch, a circuit
    without output nodes, or an empty count vector handed to the softmax.
    """


class ConfigurationExhausted(EdgeBrainError, RuntimeError):
    """
    A randomized edit was requested but no candidate edit exists.

    Raised when a circuit has too few nodes or edges to add or remove
    anything. This is fatal for the requesting operation.
    """
