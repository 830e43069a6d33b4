from __future__ import annotations

import copy
import logging
import math
from typing import Dict, Generic, Iterable, List, NamedTuple, Optional, Set

import numpy as np

from .config import FALLBACK_THRESHOLD, GroupingOptions
from .types import Cluster, Node, T
from .vectors import compute_centroid, dot_product, normalize_vector, similarity_matrix

logger = logging.getLogger(__name__)


class TuningResult(NamedTuple):
    percentile: float
    cluster_count: int
    threshold: float


class EmbeddingsGrouper(Generic[T]):
    """Groups embeddings using cosine similarity thresholding and connected components.

    Nodes above an adaptive similarity threshold are linked into a graph and
    every connected component becomes a cluster, so the number of clusters is
    never fixed up front and outliers stay on their own. The threshold is the
    ``similarity_percentile``-th value of all pairwise similarities.

    Between full reclusters, ``add_node`` places a new node into the closest
    existing cluster (by centroid) when it is similar enough, or opens a new
    singleton cluster.

    Not thread-safe: callers must serialise access to one instance.
    """

    def __init__(self, options: Optional[GroupingOptions] = None, **overrides) -> None:
        self.options = (options or GroupingOptions()).with_overrides(**overrides)

        self._nodes: List[Node[T]] = []
        self._members: Set[Node[T]] = set()
        self._clusters: List[Cluster[T]] = []
        self._node_to_cluster_id: Dict[Node[T], str] = {}
        self._cluster_counter = 0

        # per-node normalised vectors, filled lazily
        self._normalized: Dict[Node[T], np.ndarray] = {}
        # pairwise similarities; dropped whenever the node set changes
        self._similarity_matrix: Optional[np.ndarray] = None
        self._cached_similarities: Optional[np.ndarray] = None

        self._last_used_threshold = FALLBACK_THRESHOLD
        self._dim: Optional[int] = None
        self._warned_dims: Set[int] = set()

    # ------------------------------
    # Public API
    # ------------------------------
    def __len__(self) -> int:
        return len(self._nodes)

    @property
    def nodes(self) -> List[Node[T]]:
        return list(self._nodes)

    @property
    def last_used_threshold(self) -> float:
        return self._last_used_threshold

    def add_node(self, node: Node[T]) -> None:
        """Add a node, joining the best matching cluster or starting a singleton."""
        if node in self._members:
            logger.debug("Node %r is already grouped, ignoring", node.value)
            return
        normalized = normalize_vector(node.embedding.value)
        self._track(node)
        self._normalized[node] = normalized
        self._invalidate_similarities()

        if self._clusters:
            threshold = self.options.insert_threshold
            if threshold is None:
                threshold = self._last_used_threshold
            best = self._find_best_cluster_for_node(node, threshold)
            if best is not None:
                self._add_node_to_cluster(node, best)
                return

        self._create_cluster([node])

    def add_nodes(self, nodes: Iterable[Node[T]], recluster_after: bool = True) -> None:
        """Add many nodes at once.

        With ``recluster_after`` a full :meth:`recluster` runs afterwards and
        replaces any previous clustering. Without it every new node becomes a
        singleton cluster and no similarities are computed.
        """
        added = [n for n in nodes if self._track(n)]
        if not added:
            return
        self._invalidate_similarities()

        if recluster_after:
            self.recluster()
        else:
            for node in added:
                self._create_cluster([node])

    def remove_node(self, node: Node[T]) -> bool:
        """Remove a node. Returns ``False`` when it is not in the grouper."""
        if node not in self._members:
            return False

        self._members.discard(node)
        self._nodes.remove(node)
        self._normalized.pop(node, None)
        self._invalidate_similarities()
        if not self._nodes:
            self._dim = None

        cluster_id = self._node_to_cluster_id.pop(node, None)
        if cluster_id is not None:
            self._remove_node_from_cluster(node, cluster_id)
        return True

    def recluster(self) -> None:
        """Rebuild all clusters from scratch over the current node set."""
        self._clusters = []
        self._node_to_cluster_id.clear()
        if not self._nodes:
            return

        threshold = self.compute_threshold_for_percentile(self.options.similarity_percentile)
        if len(self._nodes) >= 2:
            self._last_used_threshold = threshold

        adjacency = self._build_similarity_graph(threshold)
        components = self._find_connected_components(adjacency)
        self._create_clusters_from_components(components)
        logger.debug(
            "Reclustered %d nodes at percentile %s (threshold %.4f): %d clusters",
            len(self._nodes),
            self.options.similarity_percentile,
            threshold,
            len(self._clusters),
        )

    def get_clusters(self) -> List[Cluster[T]]:
        return list(self._clusters)

    def get_cluster_for_node(self, node: Node[T]) -> Optional[Cluster[T]]:
        cluster_id = self._node_to_cluster_id.get(node)
        if cluster_id is None:
            return None
        for cluster in self._clusters:
            if cluster.id == cluster_id:
                return cluster
        return None

    def cosine_similarity(self, node_a: Node[T], node_b: Node[T]) -> float:
        return dot_product(self._get_normalized(node_a), self._get_normalized(node_b))

    def compute_threshold_for_percentile(self, percentile: float) -> float:
        """Similarity value at ``percentile`` of the sorted pairwise similarities."""
        if len(self._nodes) < 2:
            return FALLBACK_THRESHOLD
        similarities = self._get_similarities()
        if similarities.size == 0:
            return FALLBACK_THRESHOLD
        index = int(math.floor((percentile / 100.0) * similarities.size))
        return float(similarities[max(0, min(index, similarities.size - 1))])

    def count_clusters_for_threshold(self, threshold: float) -> int:
        """Number of connected components ``threshold`` would produce, without clustering."""
        if not self._nodes:
            return 0
        return len(self._find_connected_components(self._build_similarity_graph(threshold)))

    def tune_threshold_for_target_clusters(
        self,
        max_clusters: int,
        min_percentile: float = 80,
        max_percentile: float = 99,
        precision: float = 1,
    ) -> TuningResult:
        """Binary search the lowest percentile that yields at most ``max_clusters``.

        Advisory only: the grouper's clusters and thresholds are left untouched.
        Use :meth:`apply_percentile_and_recluster` to act on the result.
        """
        if not self._nodes:
            return TuningResult(94, 0, FALLBACK_THRESHOLD)

        if precision <= 0:
            precision = 1
        best = TuningResult(min_percentile, len(self._nodes), FALLBACK_THRESHOLD)
        low, high = min_percentile, max_percentile
        while high - low > precision:
            mid = math.floor((low + high) / 2)
            threshold = self.compute_threshold_for_percentile(mid)
            count = self.count_clusters_for_threshold(threshold)
            logger.debug("Tuning: percentile %s -> threshold %.4f, %d clusters", mid, threshold, count)
            if count <= max_clusters:
                best = TuningResult(mid, count, threshold)
                high = mid
            else:
                low = mid + precision
        return best

    def apply_percentile_and_recluster(self, percentile: float) -> None:
        """Recluster once with ``percentile``, keeping the configured default."""
        original = self.options
        # unvalidated; compute_threshold_for_percentile clamps out-of-range values
        overridden = copy.copy(original)
        object.__setattr__(overridden, "similarity_percentile", percentile)
        self.options = overridden
        try:
            self.recluster()
        finally:
            self.options = original

    # ------------------------------
    # Graph construction
    # ------------------------------
    def _build_similarity_graph(self, threshold: float) -> List[List[int]]:
        n = len(self._nodes)
        adjacency: List[List[int]] = [[] for _ in range(n)]
        S = self._get_similarity_matrix()
        rows, cols = np.nonzero(np.triu(S >= threshold, k=1))
        for i, j in zip(rows.tolist(), cols.tolist()):
            adjacency[i].append(j)
            adjacency[j].append(i)
        return adjacency

    @staticmethod
    def _find_connected_components(adjacency: List[List[int]]) -> List[List[int]]:
        visited: Set[int] = set()
        components: List[List[int]] = []
        for start in range(len(adjacency)):
            if start in visited:
                continue
            component: List[int] = []
            stack = [start]
            while stack:
                i = stack.pop()
                if i in visited:
                    continue
                visited.add(i)
                component.append(i)
                stack.extend(j for j in adjacency[i] if j not in visited)
            components.append(component)
        return components

    def _create_clusters_from_components(self, components: List[List[int]]) -> None:
        min_size = self.options.min_cluster_size
        for component in components:
            members = [self._nodes[i] for i in sorted(component)]
            if len(members) < min_size:
                for node in members:
                    self._create_cluster([node])
            else:
                self._create_cluster(members)

    # ------------------------------
    # Cluster bookkeeping
    # ------------------------------
    def _find_best_cluster_for_node(self, node: Node[T], threshold: float) -> Optional[Cluster[T]]:
        vec = self._get_normalized(node)
        best: Optional[Cluster[T]] = None
        best_similarity = -1.0
        for cluster in self._clusters:
            similarity = dot_product(vec, cluster.centroid)
            # strict '>' keeps the first cluster on exact ties
            if similarity >= threshold and similarity > best_similarity:
                best_similarity = similarity
                best = cluster
        return best

    def _add_node_to_cluster(self, node: Node[T], cluster: Cluster[T]) -> None:
        index = self._index_of_cluster(cluster.id)
        nodes = cluster.nodes + (node,)
        self._clusters[index] = self._snapshot(cluster.id, nodes)
        self._node_to_cluster_id[node] = cluster.id

    def _remove_node_from_cluster(self, node: Node[T], cluster_id: str) -> None:
        index = self._index_of_cluster(cluster_id)
        if index < 0:
            return
        remaining = tuple(n for n in self._clusters[index].nodes if n is not node)
        if not remaining:
            del self._clusters[index]
            return
        self._clusters[index] = self._snapshot(cluster_id, remaining)
        for member in remaining:
            self._node_to_cluster_id[member] = cluster_id

    def _create_cluster(self, nodes: List[Node[T]]) -> Cluster[T]:
        cluster_id = f"cluster_{self._cluster_counter}"
        self._cluster_counter += 1
        cluster = self._snapshot(cluster_id, tuple(nodes))
        self._clusters.append(cluster)
        for node in nodes:
            self._node_to_cluster_id[node] = cluster_id
        return cluster

    @staticmethod
    def _snapshot(cluster_id: str, nodes) -> Cluster[T]:
        centroid = compute_centroid([n.embedding.value for n in nodes])
        return Cluster(id=cluster_id, nodes=tuple(nodes), centroid=centroid)

    def _index_of_cluster(self, cluster_id: str) -> int:
        for i, cluster in enumerate(self._clusters):
            if cluster.id == cluster_id:
                return i
        return -1

    # ------------------------------
    # Caches
    # ------------------------------
    def _track(self, node: Node[T]) -> bool:
        if node in self._members:
            logger.debug("Node %r is already grouped, ignoring", node.value)
            return False
        dim = node.embedding.dim
        if self._dim is None:
            self._dim = dim
        elif dim != self._dim and dim not in self._warned_dims:
            self._warned_dims.add(dim)
            logger.warning(
                "Embedding dimension %d differs from %d; similarities use the shorter prefix",
                dim,
                self._dim,
            )
        self._nodes.append(node)
        self._members.add(node)
        return True

    def _invalidate_similarities(self) -> None:
        self._similarity_matrix = None
        self._cached_similarities = None

    def _get_normalized(self, node: Node[T]) -> np.ndarray:
        vec = self._normalized.get(node)
        if vec is None:
            vec = normalize_vector(node.embedding.value)
            if node in self._members:
                self._normalized[node] = vec
        return vec

    def _get_similarity_matrix(self) -> np.ndarray:
        if self._similarity_matrix is None:
            self._similarity_matrix = similarity_matrix([self._get_normalized(n) for n in self._nodes])
        return self._similarity_matrix

    def _get_similarities(self) -> np.ndarray:
        """Sorted upper-triangle similarities, in ascending order (not node order).

        NaN similarities (from non-finite embeddings) are left out.
        """
        if self._cached_similarities is None:
            S = self._get_similarity_matrix()
            upper = S[np.triu_indices(S.shape[0], k=1)]
            self._cached_similarities = np.sort(upper[np.isfinite(upper)])
        return self._cached_similarities
