from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Optional

from .utils import getenv_float, getenv_int, getenv_optional_float

DEFAULT_SIMILARITY_PERCENTILE = 94
DEFAULT_MIN_CLUSTER_SIZE = 2
# Threshold used before any recluster has run, and for fewer than two nodes.
FALLBACK_THRESHOLD = 0.8


@dataclass(frozen=True)
class GroupingOptions:
    """Construction options for :class:`~embedgroup.grouper.EmbeddingsGrouper`.

    Attributes:
        similarity_percentile: percentile of the pairwise similarity
            distribution used as the clustering threshold (92-96 recommended).
        min_cluster_size: connected components smaller than this are split
            into singleton clusters.
        insert_threshold: similarity cutoff for ``add_node``. ``None`` means
            "use the threshold of the most recent recluster".
    """

    similarity_percentile: float = DEFAULT_SIMILARITY_PERCENTILE
    min_cluster_size: int = DEFAULT_MIN_CLUSTER_SIZE
    insert_threshold: Optional[float] = None

    def __post_init__(self) -> None:
        if not 0 <= self.similarity_percentile <= 100:
            raise ValueError(f"similarity_percentile must be within [0, 100], got {self.similarity_percentile}")
        if int(self.min_cluster_size) < 1:
            raise ValueError(f"min_cluster_size must be >= 1, got {self.min_cluster_size}")
        if self.insert_threshold is not None and not -1.0 <= self.insert_threshold <= 1.0:
            raise ValueError(f"insert_threshold must be within [-1, 1], got {self.insert_threshold}")

    def with_overrides(self, **overrides: Any) -> "GroupingOptions":
        """Return a copy with the given fields replaced.

        ``None`` is ignored for the required fields; an explicit
        ``insert_threshold=None`` clears a configured insert threshold.
        """
        changes = {k: v for k, v in overrides.items() if v is not None or k == "insert_threshold"}
        if not changes:
            return self
        return replace(self, **changes)

    @classmethod
    def from_env(cls, prefix: str = "EMBEDGROUP_") -> "GroupingOptions":
        return cls(
            similarity_percentile=getenv_float(f"{prefix}SIMILARITY_PERCENTILE", DEFAULT_SIMILARITY_PERCENTILE),
            min_cluster_size=getenv_int(f"{prefix}MIN_CLUSTER_SIZE", DEFAULT_MIN_CLUSTER_SIZE),
            insert_threshold=getenv_optional_float(f"{prefix}INSERT_THRESHOLD"),
        )
