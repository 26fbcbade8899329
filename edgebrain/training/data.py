"""
Binarized image batches for circuit training.

Images are stored as uint8 intensities. Each time an image is sampled it is
binarized afresh by comparing every pixel against a uniformly random byte,
so a pixel of intensity ``p`` is on with probability about ``p / 255``.
"""

from typing import List, Optional, Tuple

import numpy as np

from ..errors import PreconditionViolation


class BinarizedSampler:
    """
    Draws stochastically binarized batches from a fixed image set.

    Args:
        images: ``(n, width)`` uint8 array of flattened images
        labels: ``(n,)`` integer labels
        seed: Seed for the sampler's random generator

    Example:
        >>> sampler = BinarizedSampler(train_images, train_labels, seed=0)
        >>> features, labels = sampler.sample(10000)
        >>> features.shape
        (10000, 784)
    """

    def __init__(self, images: np.ndarray, labels: np.ndarray, seed: Optional[int] = None):
        images = np.asarray(images, dtype=np.uint8)
        labels = np.asarray(labels, dtype=np.int64)
        if images.ndim != 2:
            images = images.reshape(len(images), -1)
        if len(images) == 0:
            raise PreconditionViolation("BinarizedSampler needs at least one image")
        if len(images) != len(labels):
            raise PreconditionViolation(
                f"got {len(labels)} labels for {len(images)} images"
            )
        self.images = images
        self.labels = labels
        self.rng = np.random.default_rng(seed)

    def __len__(self) -> int:
        return len(self.images)

    @property
    def width(self) -> int:
        return self.images.shape[1]

    def binarize(self, images: np.ndarray) -> np.ndarray:
        """Threshold every pixel against a fresh random byte."""
        thresholds = self.rng.integers(0, 0xFF, size=images.shape, dtype=np.uint8)
        return thresholds < images

    def sample(self, count: int) -> Tuple[np.ndarray, List[int]]:
        """
        Draw ``count`` binarized examples.

        The whole set is used in order as many times as fits, then the
        remainder is a random subset drawn without replacement.

        Returns:
            ``(features, labels)``: a ``(count, width)`` bool array and labels
        """
        if count < 0:
            raise PreconditionViolation(f"count must be non-negative, got {count}")
        n = len(self.images)
        full_passes, remainder = divmod(count, n)
        indices = np.concatenate(
            [np.tile(np.arange(n), full_passes), self.rng.choice(n, size=remainder, replace=False)]
        ).astype(np.int64)
        return self.binarize(self.images[indices]), self.labels[indices].tolist()

    def all(self) -> Tuple[np.ndarray, List[int]]:
        """Every image exactly once, in order."""
        return self.sample(len(self.images))


def load_mnist(
    cache_dir: Optional[str] = None, seed: Optional[int] = None
) -> Tuple[BinarizedSampler, BinarizedSampler]:
    """
    Load MNIST from the Hugging Face hub.

    Requires the ``data`` extra (``datasets`` and ``pillow``).

    Returns:
        ``(train, test)`` samplers over flattened 28x28 images
    """
    from datasets import load_dataset

    print("Loading mnist...")
    dataset = load_dataset("ylecun/mnist", cache_dir=cache_dir)

    samplers = []
    for i, split in enumerate(["train", "test"]):
        rows = dataset[split]
        images = np.stack([np.asarray(img, dtype=np.uint8).reshape(-1) for img in rows["image"]])
        labels = np.asarray(rows["label"], dtype=np.int64)
        print(f"  {split}: {len(images):,} images")
        split_seed = None if seed is None else seed + i
        samplers.append(BinarizedSampler(images, labels, seed=split_seed))
    return samplers[0], samplers[1]
