"""
Training loop for circuit classifiers.

Key components:
- TrainingConfig: every knob of the loop, with validation
- BinarizedSampler: stochastically binarized image batches
- load_mnist: MNIST through Hugging Face ``datasets`` (``data`` extra)
- CircuitTrainer: mutation/selection loop with JSON checkpoints

Example usage:
    >>> from edgebrain.training import CircuitTrainer, TrainingConfig, load_mnist
    >>>
    >>> train, test = load_mnist(seed=0)
    >>> config = TrainingConfig(hidden_count=512, batch_size=2000, seed=0)
    >>> trainer = CircuitTrainer(config, train, test)
    >>> trainer.train(n_steps=50)
"""

from .config import TrainingConfig
from .data import BinarizedSampler, load_mnist
from .trainer import CHECKPOINT_VERSION, CircuitTrainer, TrainerState

__all__ = [
    "TrainingConfig",
    "BinarizedSampler",
    "load_mnist",
    "CircuitTrainer",
    "TrainerState",
    "CHECKPOINT_VERSION",
]
