"""
TrainingConfig: every knob of the mutation/selection training loop.
"""

from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Optional

from ..classifier.search import SelectionRule
from ..errors import PreconditionViolation


@dataclass
class TrainingConfig:
    """
    Configuration for :class:`edgebrain.training.trainer.CircuitTrainer`.

    Attributes:
        hidden_count: Number of hidden nodes in a fresh classifier.
        edge_weight: Softmax weight of each output edge.
        init_batch_size: Examples used for random initialization.
        init_reachable_frac: Target fraction of active hidden nodes after init.
        init_hidden_groups: Independent hidden buckets during init.
        batch_size: Examples per training step.
        mutation_count: Preliminary variants kept for the full-batch search.
        mutation_size: Random mutations applied to each preliminary variant.
        mutation_delete_prob: Probability that a random mutation is a deletion.
        preliminary_mutation_count: Variants tried on the small batch.
        preliminary_mutation_batch_size: Examples in the small batch.
        mutation_selection_confidence: If set, rank greedy candidates by a
            lower confidence bound at this level instead of the mean.
        exact_reranking: Re-rank greedy candidates after every attempt.
        evaluate_linear_loss: Fit a linear probe on hidden activity each step.
        model_path: JSON checkpoint path.
        save_interval: Steps between checkpoints.
        log_every: Steps between progress lines.
        num_workers: Worker threads (None = all cores).
        seed: Seed for every random source (None = unseeded).

    Example:
        >>> config = TrainingConfig(hidden_count=256, batch_size=1000)
        >>> TrainingConfig.from_dict(config.to_dict()) == config
        True
    """

    # Model
    hidden_count: int = 1024
    edge_weight: float = 1.0

    # Initialization
    init_batch_size: int = 100
    init_reachable_frac: float = 0.2
    init_hidden_groups: int = 1

    # Search
    batch_size: int = 10000
    mutation_count: int = 5
    mutation_size: int = 3
    mutation_delete_prob: float = 0.25
    preliminary_mutation_count: int = 5
    preliminary_mutation_batch_size: int = 100
    mutation_selection_confidence: Optional[float] = None
    exact_reranking: bool = False
    evaluate_linear_loss: bool = False

    # Saving and reporting
    model_path: str = "state.json"
    save_interval: int = 10
    log_every: int = 1

    # Execution
    num_workers: Optional[int] = None
    seed: Optional[int] = None

    def __post_init__(self):
        positive = [
            "hidden_count",
            "init_batch_size",
            "init_hidden_groups",
            "batch_size",
            "preliminary_mutation_batch_size",
            "save_interval",
            "log_every",
        ]
        for name in positive:
            if getattr(self, name) < 1:
                raise PreconditionViolation(f"{name} must be at least 1, got {getattr(self, name)}")

        for name in ["mutation_count", "mutation_size", "preliminary_mutation_count"]:
            if getattr(self, name) < 0:
                raise PreconditionViolation(f"{name} must be non-negative, got {getattr(self, name)}")

        if self.mutation_count > self.preliminary_mutation_count:
            raise PreconditionViolation(
                f"mutation_count ({self.mutation_count}) must be <= "
                f"preliminary_mutation_count ({self.preliminary_mutation_count})"
            )
        if self.preliminary_mutation_batch_size > self.batch_size:
            raise PreconditionViolation(
                "preliminary_mutation_batch_size must not exceed batch_size"
            )
        if not 0.0 <= self.init_reachable_frac <= 1.0:
            raise PreconditionViolation(
                f"init_reachable_frac must be in [0, 1], got {self.init_reachable_frac}"
            )
        if not 0.0 <= self.mutation_delete_prob <= 1.0:
            raise PreconditionViolation(
                f"mutation_delete_prob must be in [0, 1], got {self.mutation_delete_prob}"
            )
        if self.num_workers is not None and self.num_workers < 1:
            raise PreconditionViolation(f"num_workers must be at least 1, got {self.num_workers}")
        # Validates the confidence level.
        self.selection_rule()

    def selection_rule(self) -> SelectionRule:
        if self.mutation_selection_confidence is None:
            return SelectionRule.mean()
        return SelectionRule.lower_bound(self.mutation_selection_confidence)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrainingConfig":
        """
        Build a config from a dictionary, ignoring unknown keys.
        """
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})
