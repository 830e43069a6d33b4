import pytest

from embedgroup import EmbeddingsGrouper
from embedgroup.analysis import cluster_sizes, clusters_to_frame, representative_nodes


def test_representatives_are_ordered_by_closeness(node_factory) -> None:
    grouper = EmbeddingsGrouper(insert_threshold=0.0)
    # centroid direction is ~21.8 degrees: mid ~10.5 off, flat ~21.8 off, far ~23.2 off
    far = node_factory([1.0, 1.0, 0.0], "far")
    flat = node_factory([1.0, 0.0, 0.0], "flat")
    mid = node_factory([1.0, 0.2, 0.0], "mid")
    for n in (far, flat, mid):
        grouper.add_node(n)
    (cluster,) = grouper.get_clusters()

    reps = representative_nodes(cluster, topk=2)
    assert [n.value for n in reps] == ["mid", "flat"]
    assert representative_nodes(cluster, topk=0) == []
    assert len(representative_nodes(cluster, topk=10)) == 3


def test_cluster_sizes(blob_nodes) -> None:
    grouper = EmbeddingsGrouper()
    grouper.add_nodes(blob_nodes)
    assert sorted(cluster_sizes(grouper.get_clusters()).values()) == [4, 4, 4]


def test_clusters_to_frame(blob_nodes) -> None:
    grouper = EmbeddingsGrouper()
    grouper.add_nodes(blob_nodes)

    df = clusters_to_frame(grouper, value_fn=str.upper)
    assert list(df.columns) == ["value", "cluster_id", "cluster_size", "similarity"]
    assert len(df) == 12
    assert df["value"].iloc[0] == "B0K0"
    assert (df["cluster_size"] == 4).all()
    assert df["similarity"].min() > 0.99
    assert df.groupby("cluster_id").size().tolist() == [4, 4, 4]


def test_clusters_to_frame_empty() -> None:
    df = clusters_to_frame(EmbeddingsGrouper())
    assert len(df) == 0
    assert "cluster_id" in df.columns


def test_frame_similarity_matches_grouper(node_factory) -> None:
    grouper = EmbeddingsGrouper()
    a = node_factory([3.0, 4.0], "a")
    grouper.add_node(a)
    df = clusters_to_frame(grouper)
    assert df["similarity"].iloc[0] == pytest.approx(1.0)
