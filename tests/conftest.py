from __future__ import annotations

from typing import Any, List, Optional

import numpy as np
import pytest

from embedgroup import TEXT3SMALL_512, Embedding, Node

BLOB_DIM = 7
BLOB_COUNT = 3
BLOB_SIZE = 4


def make_node(vec, value: Optional[Any] = None) -> Node:
    return Node(value=value, embedding=Embedding(type=TEXT3SMALL_512, value=vec))


def blob_vector(blob: int, k: int) -> List[float]:
    """Unit axis ``blob`` plus a small offset on axis ``3 + k``.

    Members of one blob have cosine ~0.990 with each other and at most ~0.0099
    with members of other blobs.
    """
    v = np.zeros(BLOB_DIM)
    v[blob] = 1.0
    v[BLOB_COUNT + k] = 0.1
    return v.tolist()


@pytest.fixture
def node_factory():
    return make_node


@pytest.fixture
def blob_nodes() -> List[Node]:
    return [
        make_node(blob_vector(b, k), value=f"b{b}k{k}")
        for b in range(BLOB_COUNT)
        for k in range(BLOB_SIZE)
    ]


def assert_partition(grouper, nodes) -> None:
    """Every node sits in exactly one cluster and the node map agrees."""
    seen = []
    for cluster in grouper.get_clusters():
        assert len(cluster) >= 1
        for node in cluster.nodes:
            seen.append(node)
            assert grouper.get_cluster_for_node(node).id == cluster.id
    assert len(seen) == len(nodes)
    assert {id(n) for n in seen} == {id(n) for n in nodes}


@pytest.fixture
def check_partition():
    return assert_partition
