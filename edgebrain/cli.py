"""
Command-line entry point: train a circuit classifier on MNIST.
"""

import argparse
import sys
from typing import List, Optional

from .training.config import TrainingConfig


def build_parser() -> argparse.ArgumentParser:
    defaults = TrainingConfig()
    parser = argparse.ArgumentParser(
        prog="edgebrain-train",
        description="Train a gated-circuit classifier on binarized MNIST.",
    )

    model = parser.add_argument_group("model")
    model.add_argument("--hidden-count", type=int, default=defaults.hidden_count,
                       help="Number of hidden nodes.")
    model.add_argument("--edge-weight", type=float, default=defaults.edge_weight,
                       help="Softmax weight of each output edge.")

    init = parser.add_argument_group("initialization")
    init.add_argument("--init-batch-size", type=int, default=defaults.init_batch_size,
                      help="Examples for initial batch.")
    init.add_argument("--init-reachable-frac", type=float, default=defaults.init_reachable_frac,
                      help="Initial hidden reachability fraction.")
    init.add_argument("--init-hidden-groups", type=int, default=defaults.init_hidden_groups,
                      help="Independent hidden groups during initialization.")

    search = parser.add_argument_group("training")
    search.add_argument("--batch-size", type=int, default=defaults.batch_size,
                        help="Batch size per step.")
    search.add_argument("--mutation-count", type=int, default=defaults.mutation_count,
                        help="Number of mutations to try on the full batch.")
    search.add_argument("--mutation-size", type=int, default=defaults.mutation_size,
                        help="Changes per mutation.")
    search.add_argument("--mutation-delete-prob", type=float,
                        default=defaults.mutation_delete_prob,
                        help="Edge deletion probability.")
    search.add_argument("--preliminary-mutation-count", type=int,
                        default=defaults.preliminary_mutation_count,
                        help="Mutations to test at the smaller batch size.")
    search.add_argument("--preliminary-mutation-batch-size", type=int,
                        default=defaults.preliminary_mutation_batch_size,
                        help="Batch size for testing more mutations.")
    search.add_argument("--mutation-selection-confidence", type=float, default=None,
                        help="Rank greedy candidates by a lower confidence bound at this level.")
    search.add_argument("--exact-reranking", action="store_true",
                        help="Re-rank greedy candidates after every attempt.")
    search.add_argument("--evaluate-linear-loss", action="store_true",
                        help="Evaluate the hidden layer with a linear probe.")

    saving = parser.add_argument_group("saving")
    saving.add_argument("-m", "--model-path", default=defaults.model_path,
                        help="Path to save train state.")
    saving.add_argument("--save-interval", type=int, default=defaults.save_interval,
                        help="Save interval.")
    saving.add_argument("--log-every", type=int, default=defaults.log_every,
                        help="Steps between progress lines.")

    run = parser.add_argument_group("execution")
    run.add_argument("--num-workers", type=int, default=None,
                     help="Worker threads (default: all cores).")
    run.add_argument("--seed", type=int, default=None, help="Random seed.")
    run.add_argument("--steps", type=int, default=None,
                     help="Stop after this many steps (default: run forever).")
    run.add_argument("--cache-dir", default=None, help="Hugging Face datasets cache directory.")
    return parser


def config_from_args(args: argparse.Namespace) -> TrainingConfig:
    """Map parsed flags onto a TrainingConfig."""
    return TrainingConfig.from_dict(vars(args))


def main(argv: Optional[List[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    args = build_parser().parse_args(argv)
    print("Command:", " ".join(["edgebrain-train"] + list(argv)))

    config = config_from_args(args)

    from .training.data import load_mnist
    from .training.trainer import CircuitTrainer

    train, test = load_mnist(cache_dir=args.cache_dir, seed=config.seed)
    trainer = CircuitTrainer(config, train, test, label_count=10)
    try:
        trainer.train(n_steps=args.steps)
    except KeyboardInterrupt:
        print("\nTraining interrupted")
        trainer.save_checkpoint()
    return 0


if __name__ == "__main__":
    sys.exit(main())
