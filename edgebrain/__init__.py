"""
edgebrain
=========
Classifiers built from gated directed graphs.

A circuit's only parameters are which edges exist and which node owns each
one. Training searches over edge edits instead of following gradients.

Subpackages:
  - circuits: BitSet, DirectedGraph, Circuit execution, mutations, random init
  - classifier: feature encoding, softmax predictions, greedy edge search
  - probes: linear read-out of hidden-node activity
  - training: configuration, data sampling and the outer training loop
"""

from .circuits import BitSet, Circuit, DirectedGraph, Edge, Mutation, NodeKind, RunResult
from .classifier import Classifier, GreedyResult, Prediction, SelectionRule
from .errors import ConfigurationExhausted, EdgeBrainError, PreconditionViolation

__version__ = "0.1.0"

__all__ = [
    "BitSet",
    "Circuit",
    "DirectedGraph",
    "Edge",
    "Mutation",
    "NodeKind",
    "RunResult",
    "Classifier",
    "GreedyResult",
    "Prediction",
    "SelectionRule",
    "ConfigurationExhausted",
    "EdgeBrainError",
    "PreconditionViolation",
]
