from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Iterator, Sequence, Tuple, TypeVar, Union

import numpy as np

T = TypeVar("T")

VectorLike = Union[Sequence[float], np.ndarray]


# ------------------------------
# Embeddings
# ------------------------------
@dataclass(frozen=True)
class EmbeddingType:
    id: str

    def __str__(self) -> str:
        return self.id


TEXT3SMALL_512 = EmbeddingType("text-embedding-3-small-512")
METIS_1024 = EmbeddingType("metis-1024-I16-Binary")


def as_vector(value: VectorLike) -> np.ndarray:
    """Copy ``value`` into a read-only 1-D float64 array."""
    arr = np.array(value, dtype=np.float64)
    if arr.ndim != 1:
        raise ValueError("embedding must be a 1-D vector")
    arr.flags.writeable = False
    return arr


@dataclass(frozen=True, eq=False)
class Embedding:
    type: EmbeddingType
    value: np.ndarray

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", as_vector(self.value))

    @property
    def dim(self) -> int:
        return int(self.value.shape[0])


# ------------------------------
# Nodes and clusters
# ------------------------------
@dataclass(frozen=True, eq=False)
class Node(Generic[T]):
    """An opaque payload and its embedding.

    Nodes compare and hash by identity, so the same payload inserted twice
    yields two distinct nodes.
    """

    value: T
    embedding: Embedding


@dataclass(frozen=True, eq=False)
class Cluster(Generic[T]):
    """Immutable snapshot of a cluster.

    ``centroid`` is the L2-normalised mean of the members' raw vectors.
    Any membership change produces a new ``Cluster`` object.
    """

    id: str
    nodes: Tuple[Node[T], ...]
    centroid: np.ndarray

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self) -> Iterator[Node[T]]:
        return iter(self.nodes)

    def __contains__(self, node: object) -> bool:
        return any(n is node for n in self.nodes)
