from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Optional

import numpy as np
import pandas as pd

from .grouper import EmbeddingsGrouper
from .types import Cluster, Node
from .vectors import fit_dim, normalize_vector


def _similarities_to_centroid(cluster: Cluster) -> np.ndarray:
    if len(cluster) == 0 or cluster.centroid.size == 0:
        return np.zeros(len(cluster), dtype=np.float64)
    dim = int(cluster.centroid.shape[0])
    Xi = np.stack([normalize_vector(fit_dim(n.embedding.value, dim)) for n in cluster.nodes], axis=0)
    return Xi @ cluster.centroid


def representative_nodes(cluster: Cluster, topk: int = 5) -> List[Node]:
    """Members of ``cluster`` closest to its centroid, best first."""
    if topk <= 0 or len(cluster) == 0:
        return []
    sims = _similarities_to_centroid(cluster)
    # stable sort keeps insertion order among equally close members
    order = np.argsort(-sims, kind="stable")[:topk]
    return [cluster.nodes[int(i)] for i in order]


def cluster_sizes(clusters: Iterable[Cluster]) -> Dict[str, int]:
    return {c.id: len(c) for c in clusters}


def clusters_to_frame(
    grouper: EmbeddingsGrouper,
    value_fn: Optional[Callable[[Any], Any]] = None,
) -> pd.DataFrame:
    """One row per grouped node: payload, cluster id, cluster size, similarity to centroid.

    ``value_fn`` maps a node payload to what ends up in the ``value`` column
    (defaults to the payload itself). Rows follow cluster order, then member order.
    """
    rows: List[Dict[str, Any]] = []
    for cluster in grouper.get_clusters():
        sims = _similarities_to_centroid(cluster)
        for node, sim in zip(cluster.nodes, sims.tolist()):
            rows.append(
                {
                    "value": value_fn(node.value) if value_fn else node.value,
                    "cluster_id": cluster.id,
                    "cluster_size": len(cluster),
                    "similarity": float(sim),
                }
            )
    return pd.DataFrame(rows, columns=["value", "cluster_id", "cluster_size", "similarity"])
