"""LRU/TTL cache for validation reports on the revalidate-on-edit path."""

import hashlib
import json
import time
from collections import OrderedDict
from typing import Callable, Dict, Iterable, Optional, Tuple

from ..models.core import Node, Edge, GraphModel, ValidationReport
from .graph_validator import ValidationEngine
from .logging import get_logger


logger = get_logger(__name__)


def graph_fingerprint(nodes: Iterable[Node], edges: Iterable[Edge]) -> str:
    """Deterministic hash of the graph content, ignoring canvas positions."""
    payload = {
        "nodes": [
            {"id": node.id, "kind": node.kind.value, "subtype": node.subtype,
             "label": node.label, "config": node.config}
            for node in nodes
        ],
        "edges": [[edge.id, edge.source, edge.target] for edge in edges],
    }
    encoded = json.dumps(payload, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


class ValidationCache:
    """Bounded cache of validation reports with per-entry expiry."""

    def __init__(
        self,
        max_size: int = 100,
        ttl: float = 600.0,
        clock: Callable[[], float] = time.monotonic
    ):
        if max_size < 1:
            raise ValueError("Cache size must be at least 1")
        self.max_size = max_size
        self.ttl = ttl
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, ValidationReport]]" = OrderedDict()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def get(self, key: str) -> Optional[ValidationReport]:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None

        stored_at, report = entry
        if self._clock() - stored_at > self.ttl:
            del self._entries[key]
            self.misses += 1
            return None

        self._entries.move_to_end(key)
        self.hits += 1
        return report

    def put(self, key: str, report: ValidationReport) -> None:
        self._entries[key] = (self._clock(), report)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)
            self.evictions += 1

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self) -> Dict[str, float]:
        lookups = self.hits + self.misses
        return {
            "size": len(self._entries),
            "max_size": self.max_size,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "hit_rate": self.hits / lookups if lookups else 0.0,
        }


class CachedValidator:
    """Validation engine front that reuses reports for unchanged graphs."""

    def __init__(self, engine: Optional[ValidationEngine] = None, cache: Optional[ValidationCache] = None):
        self.engine = engine or ValidationEngine()
        self.cache = cache or ValidationCache()

    def validate(self, nodes: Iterable[Node], edges: Iterable[Edge]) -> ValidationReport:
        graph = GraphModel.of(nodes, edges)
        key = graph_fingerprint(graph.nodes, graph.edges)

        report = self.cache.get(key)
        if report is not None:
            logger.debug(f"Validation cache hit for {key[:12]}")
            return report.model_copy(deep=True)

        report = self.engine.validate_graph(graph)
        self.cache.put(key, report)
        return report.model_copy(deep=True)
