from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, List

from .types import TEXT3SMALL_512, Embedding, EmbeddingType, Node

logger = logging.getLogger(__name__)


# ------------------------------
# IO helpers
# ------------------------------
def load_jsonl(path: str) -> List[Dict[str, Any]]:
    data: List[Dict[str, Any]] = []
    with open(path, "r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            s = line.strip()
            if not s:
                continue
            try:
                item = json.loads(s)
            except json.JSONDecodeError:
                logger.warning("%s:%d: skipping malformed line", path, lineno)
                continue
            if isinstance(item, dict):
                data.append(item)
    return data


def read_records(input_path: str) -> List[Dict[str, Any]]:
    """Read a ``.jsonl`` file, or every ``.jsonl`` file of a directory in name order."""
    items: List[Dict[str, Any]] = []
    if os.path.isdir(input_path):
        for fn in sorted(os.listdir(input_path)):
            if fn.lower().endswith(".jsonl"):
                items.extend(load_jsonl(os.path.join(input_path, fn)))
    else:
        items = load_jsonl(input_path)
    return items


# ------------------------------
# Records -> nodes
# ------------------------------
def record_to_node(item: Dict[str, Any], default_type: EmbeddingType = TEXT3SMALL_512) -> Node[Dict[str, Any]]:
    """Build a node from ``{"id": ..., "embedding": [...], "type": ...}``.

    The payload is the record without its ``embedding`` field.
    """
    vec = item["embedding"]
    etype = EmbeddingType(str(item["type"])) if item.get("type") else default_type
    payload = {k: v for k, v in item.items() if k != "embedding"}
    payload.setdefault("id", "")
    payload["id"] = str(payload["id"])
    return Node(value=payload, embedding=Embedding(type=etype, value=vec))


def read_nodes(input_path: str, default_type: EmbeddingType = TEXT3SMALL_512) -> List[Node[Dict[str, Any]]]:
    nodes: List[Node[Dict[str, Any]]] = []
    for i, item in enumerate(read_records(input_path)):
        if not isinstance(item.get("embedding"), list) or not item["embedding"]:
            logger.warning("Record %d (id=%s) has no embedding, skipping", i, item.get("id"))
            continue
        try:
            nodes.append(record_to_node(item, default_type=default_type))
        except (TypeError, ValueError) as e:
            logger.warning("Record %d (id=%s) has an unusable embedding: %s", i, item.get("id"), e)
    return nodes
