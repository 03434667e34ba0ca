"""Pairwise comparison and grouping of similar images."""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence

import numpy as np

from ..config import DEFAULT_SIMILARITY_THRESHOLD, MIN_GROUP_SIZE
from ..embedding.embedder import compute_similarity_matrix
from ..errors import DimensionMismatchError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SimilarPair:
    """Two batch positions (index_a < index_b) whose score passed the threshold."""

    index_a: int
    index_b: int
    score: float

    def to_dict(self) -> dict:
        return {"index_a": self.index_a, "index_b": self.index_b, "score": self.score}


@dataclass
class SimilarityResult:
    """Pairs above threshold and the groups they connect."""

    pairs: List[SimilarPair] = field(default_factory=list)
    groups: List[List[int]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "pairs": [pair.to_dict() for pair in self.pairs],
            "groups": [list(group) for group in self.groups],
        }


class DisjointSet:
    """Union-find over the dense index range [0, n) with path compression."""

    def __init__(self, n: int):
        self.parent = list(range(n))

    def find(self, x: int) -> int:
        root = x
        while self.parent[root] != root:
            root = self.parent[root]
        # Path compression
        while self.parent[x] != root:
            self.parent[x], x = root, self.parent[x]
        return root

    def union(self, x: int, y: int) -> int:
        """Merge the sets of x and y; the smaller root index becomes the root."""
        px, py = self.find(x), self.find(y)
        if px == py:
            return px
        if py < px:
            px, py = py, px
        self.parent[py] = px
        return px

    def groups(self, min_size: int = MIN_GROUP_SIZE) -> List[List[int]]:
        """Sets with at least min_size members, members ascending, ordered by smallest member."""
        members: Dict[int, List[int]] = defaultdict(list)
        for i in range(len(self.parent)):
            members[self.find(i)].append(i)
        # Roots are the smallest member of their set, and i ascends, so both orders hold already
        return [group for _, group in sorted(members.items()) if len(group) >= min_size]


def find_similar_pairs(scores: np.ndarray, threshold: float = DEFAULT_SIMILARITY_THRESHOLD) -> List[SimilarPair]:
    """
    Collect every pair i < j whose score meets the threshold.

    Args:
        scores: Square score matrix, shape (n, n)
        threshold: Inclusive lower bound on the score

    Returns:
        Pairs in row-major order of (i, j)
    """
    n = len(scores)
    pairs = []
    for i in range(n):
        for j in range(i + 1, n):
            score = float(scores[i][j])
            if score >= threshold:
                pairs.append(SimilarPair(i, j, score))
    return pairs


def find_similarity_groups(
    n: int,
    pairs: Iterable[SimilarPair],
    min_group_size: int = MIN_GROUP_SIZE,
) -> List[List[int]]:
    """
    Find groups of similar images using union-find clustering.

    Args:
        n: Number of images in the batch
        pairs: Pairs that passed the threshold
        min_group_size: Minimum size for a group to be returned

    Returns:
        List of groups, where each group is a sorted list of indices.
        Groups are ordered by their smallest index.
    """
    disjoint_set = DisjointSet(n)
    for pair in pairs:
        disjoint_set.union(pair.index_a, pair.index_b)

    result = disjoint_set.groups(min_group_size)

    logger.info(f"Found {len(result)} groups across {n} images")
    for i, group in enumerate(result):
        logger.debug(f"  Group {i+1}: {len(group)} images {group}")

    return result


def find_similar(
    embeddings: Sequence[np.ndarray],
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
) -> SimilarityResult:
    """
    Score every pair of embeddings and group the ones above threshold.

    Args:
        embeddings: One vector per image, in batch order
        threshold: Inclusive lower bound on the [0, 1] similarity score

    Returns:
        SimilarityResult with pairs and groups
    """
    n = len(embeddings)
    if n < 2:
        return SimilarityResult()

    lengths = {len(e) for e in embeddings}
    if len(lengths) > 1:
        raise DimensionMismatchError(f"Embeddings have differing lengths: {sorted(lengths)}")

    scores = compute_similarity_matrix(np.vstack(embeddings))
    pairs = find_similar_pairs(scores, threshold)
    groups = find_similarity_groups(n, pairs)

    logger.info(f"Compared {n * (n - 1) // 2} pairs: {len(pairs)} at or above {threshold}")
    return SimilarityResult(pairs=pairs, groups=groups)
