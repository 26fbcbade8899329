"""
edgebrain / probes
==================
Gradient-trained read-outs of circuit activity.

Provides:
  - LinearProbe: softmax regression over hidden-node activity bits
  - ProbeResult: loss/accuracy pair returned by evaluate()
"""

from .linear import LinearProbe, ProbeResult, hidden_features

__all__ = ["LinearProbe", "ProbeResult", "hidden_features"]
