"""
Incremental embedding clustering.

Modules:
- types: Embedding, Node and Cluster data model
- config: GroupingOptions
- vectors: Normalisation, dot product and centroid helpers
- grouper: EmbeddingsGrouper, the similarity-graph clustering engine
- analysis: Representatives and tabular reports over clusters
- data_processing: JSONL input of precomputed embeddings
- utils: Small shared utilities
"""

from .config import GroupingOptions
from .grouper import EmbeddingsGrouper, TuningResult
from .types import METIS_1024, TEXT3SMALL_512, Cluster, Embedding, EmbeddingType, Node

__all__ = [
    "Cluster",
    "Embedding",
    "EmbeddingType",
    "EmbeddingsGrouper",
    "GroupingOptions",
    "METIS_1024",
    "Node",
    "TEXT3SMALL_512",
    "TuningResult",
]
