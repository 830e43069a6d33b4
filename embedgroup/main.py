#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import argparse
import logging
import os
from typing import Any, Dict, List, Optional

import numpy as np
from dotenv import load_dotenv
from tqdm import tqdm

from .analysis import clusters_to_frame, representative_nodes
from .config import GroupingOptions
from .data_processing import read_nodes
from .grouper import EmbeddingsGrouper
from .utils import configure_logging, ensure_dir, write_json, write_jsonl

logger = logging.getLogger(__name__)


def build_grouper(
    options: GroupingOptions,
    input_path: str,
    target_clusters: Optional[int] = None,
    incremental: bool = False,
) -> EmbeddingsGrouper:
    """Read nodes from ``input_path`` and cluster them."""
    nodes = read_nodes(input_path)
    if not nodes:
        raise SystemExit(f"No embeddings read from {input_path}")
    for node in nodes:
        if not np.all(np.isfinite(node.embedding.value)):
            raise RuntimeError(f"Embedding of {node.value.get('id')} contains inf/nan")

    grouper: EmbeddingsGrouper = EmbeddingsGrouper(options)
    if incremental:
        logger.info("Adding %d nodes one by one…", len(nodes))
        for node in tqdm(nodes, desc="grouping", ncols=100):
            grouper.add_node(node)
    else:
        logger.info("Clustering %d nodes (percentile=%s)…", len(nodes), options.similarity_percentile)
        grouper.add_nodes(nodes)

    if target_clusters is not None:
        result = grouper.tune_threshold_for_target_clusters(target_clusters)
        logger.info(
            "Tuned percentile %s (threshold %.4f) -> %d clusters",
            result.percentile,
            result.threshold,
            result.cluster_count,
        )
        grouper.apply_percentile_and_recluster(result.percentile)
    return grouper


def summarize(grouper: EmbeddingsGrouper, topk: int = 5) -> List[Dict[str, Any]]:
    clusters: List[Dict[str, Any]] = []
    for cluster in grouper.get_clusters():
        clusters.append(
            {
                "cluster_id": cluster.id,
                "size": len(cluster),
                "node_ids": [n.value["id"] for n in cluster.nodes],
                "representative_ids": [n.value["id"] for n in representative_nodes(cluster, topk=topk)],
            }
        )
    clusters.sort(key=lambda c: c["size"], reverse=True)
    return clusters


def run(
    input_path: str,
    output_dir: str,
    options: GroupingOptions,
    target_clusters: Optional[int] = None,
    incremental: bool = False,
) -> List[Dict[str, Any]]:
    ensure_dir(output_dir)
    grouper = build_grouper(options, input_path, target_clusters=target_clusters, incremental=incremental)

    df = clusters_to_frame(grouper, value_fn=lambda v: v["id"]).rename(columns={"value": "id"})
    clusters = summarize(grouper)

    out_jsonl = os.path.join(output_dir, "nodes_with_clusters.jsonl")
    out_clusters = os.path.join(output_dir, "clusters.json")
    logger.info("Writing %s", out_jsonl)
    write_jsonl(out_jsonl, df.to_dict(orient="records"))
    logger.info("Writing %s", out_clusters)
    write_json(out_clusters, clusters)

    singletons = int((df["cluster_size"] == 1).sum()) if len(df) else 0
    logger.info(
        "Done. %d nodes | %d clusters | %d singletons | last threshold %.4f",
        len(df),
        len(clusters),
        singletons,
        grouper.last_used_threshold,
    )
    return clusters


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    defaults = GroupingOptions.from_env()
    p = argparse.ArgumentParser(
        description="Group embedding vectors into clusters",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    p.add_argument("--input", default=os.getenv("INPUT", "./embeddings.jsonl"), help="Input .jsonl file or directory of .jsonl files")
    p.add_argument("--output", default=os.getenv("OUTPUT", "./out"), help="Output directory")
    p.add_argument("--percentile", type=float, default=defaults.similarity_percentile, help="Similarity percentile for the threshold")
    p.add_argument("--min_cluster_size", type=int, default=defaults.min_cluster_size, help="Smaller components become singletons")
    p.add_argument("--insert_threshold", type=float, default=defaults.insert_threshold, help="Similarity cutoff for incremental inserts")
    p.add_argument("--target_clusters", type=int, default=None, help="Tune the percentile for at most this many clusters")
    p.add_argument("--incremental", action="store_true", help="Insert nodes one at a time instead of one recluster")
    p.add_argument("--log_level", default="INFO", help="DEBUG/INFO/WARN/ERROR")
    return p.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    load_dotenv()
    args = parse_args(argv)
    configure_logging(args.log_level)
    options = GroupingOptions(
        similarity_percentile=args.percentile,
        min_cluster_size=args.min_cluster_size,
        insert_threshold=args.insert_threshold,
    )
    run(
        input_path=args.input,
        output_dir=args.output,
        options=options,
        target_clusters=args.target_clusters,
        incremental=args.incremental,
    )


if __name__ == "__main__":
    main()
