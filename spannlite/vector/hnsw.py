"""
Hierarchical navigable small-world graph over a small point set (the centroids).

Builds a multi-layer proximity graph by sequential insertion and answers
approximate k-NN queries by greedy descent plus a beam search at layer 0.
Neighbor lists are fixed-capacity arrays with an explicit occupied count.
"""

import heapq
import math
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np

from ..core.errors import ConfigurationError
from .codec import VectorLike, as_vector, cosine_similarity, l2_normalize
from .types import Centroid, KNNResult

# Marks an unused neighbor slot. Never 0, which is a valid node id.
EMPTY = -1

# levelCount is a single byte in the snapshot format
MAX_LEVEL = 254
MAX_NODE_ID = 0xFFFFFFFF

SimilarityFunction = Callable[[np.ndarray, np.ndarray], float]

SIMILARITY_FUNCTIONS: Dict[str, SimilarityFunction] = {
    "cosine": cosine_similarity,
}


class NeighborList:
    """Fixed-capacity neighbor array for one node at one level."""

    __slots__ = ("slots", "count")

    def __init__(self, capacity: int):
        self.slots = np.full(capacity, EMPTY, dtype=np.int64)
        self.count = 0

    @property
    def capacity(self) -> int:
        return len(self.slots)

    @property
    def is_full(self) -> bool:
        return self.count >= self.capacity

    def ids(self) -> np.ndarray:
        """Occupied slots only."""
        return self.slots[:self.count]

    def add(self, node_id: int) -> bool:
        """Append a neighbor; False when the list is already full."""
        if self.is_full:
            return False
        self.slots[self.count] = node_id
        self.count += 1
        return True

    def replace(self, node_ids: Sequence[int]) -> None:
        """Overwrite the list, padding the tail with EMPTY."""
        if len(node_ids) > self.capacity:
            raise ConfigurationError(
                f"{len(node_ids)} neighbors exceed capacity {self.capacity}"
            )
        self.slots.fill(EMPTY)
        self.slots[:len(node_ids)] = node_ids
        self.count = len(node_ids)

    def __len__(self) -> int:
        return self.count

    def __iter__(self) -> Iterator[int]:
        for node_id in self.slots[:self.count]:
            yield int(node_id)

    def __contains__(self, node_id: int) -> bool:
        return bool(np.any(self.slots[:self.count] == node_id))


class Node:
    """A graph point with one neighbor list per level 0..level."""

    def __init__(self, node_id: int, vector: np.ndarray, level: int, m: int):
        self.id = node_id
        self.vector = vector
        self.level = level
        self.neighbors: List[NeighborList] = [NeighborList(m) for _ in range(level + 1)]

    def __repr__(self) -> str:
        return f"Node(id={self.id}, level={self.level})"


class HNSWIndex:
    """In-memory HNSW graph with cosine similarity over unit vectors."""

    def __init__(
        self,
        m: int = 16,
        ef_construction: int = 200,
        dimension: Optional[int] = None,
        similarity: Union[str, SimilarityFunction] = "cosine",
        ef_search: int = 50,
        seed: Optional[int] = None,
    ):
        if m < 2:
            raise ConfigurationError(f"M must be at least 2, got {m}")
        if ef_construction < 1:
            raise ConfigurationError(f"efConstruction must be positive, got {ef_construction}")
        if ef_search < 1:
            raise ConfigurationError(f"efSearch must be positive, got {ef_search}")
        if dimension is not None and dimension <= 0:
            raise ConfigurationError(f"Dimension must be positive, got {dimension}")

        if callable(similarity):
            self.similarity_function = similarity
        elif similarity in SIMILARITY_FUNCTIONS:
            self.similarity_function = SIMILARITY_FUNCTIONS[similarity]
        else:
            raise ConfigurationError(f"Unknown similarity function: {similarity}")

        self.m = m
        self.ef_construction = ef_construction
        self.ef_search = ef_search
        self.dimension = dimension

        self.nodes: Dict[int, Node] = {}
        self.entry_point_id: Optional[int] = None
        self.max_level = 0

        self._ml = 1.0 / math.log(m)
        self._rng = np.random.default_rng(seed)

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, node_id: int) -> bool:
        return node_id in self.nodes

    def similarity(self, a: np.ndarray, b: np.ndarray) -> float:
        return float(self.similarity_function(a, b))

    # --- Construction ---

    def build_index(self, points: Iterable[Union[Centroid, Dict[str, object], Tuple[int, VectorLike]]]) -> None:
        """Insert points one at a time, in input order."""
        for point in points:
            if isinstance(point, Centroid):
                self.insert(point.id, point.vector)
            elif isinstance(point, dict):
                self.insert(point["id"], point["vector"])
            else:
                node_id, vector = point
                self.insert(node_id, vector)

    def insert(self, node_id: int, vector: VectorLike) -> None:
        """Insert a single point and link it into every level it reaches."""
        node_id = int(node_id)
        if node_id < 0 or node_id > MAX_NODE_ID:
            raise ConfigurationError(f"Node id {node_id} out of range")
        if node_id in self.nodes:
            raise ConfigurationError(f"Node {node_id} already in index")

        vec = self._prepare(vector)
        level = self._random_level()
        node = Node(node_id, vec, level, self.m)

        if self.entry_point_id is None:
            self.nodes[node_id] = node
            self.entry_point_id = node_id
            self.max_level = level
            return

        current = self.entry_point_id
        current_score = self.similarity(vec, self.nodes[current].vector)

        for layer in range(self.max_level, level, -1):
            current, current_score = self._greedy_search(vec, current, current_score, layer)

        self.nodes[node_id] = node

        entry_points = [(current_score, current)]
        for layer in range(min(level, self.max_level), -1, -1):
            candidates = self._search_layer(vec, entry_points, self.ef_construction, layer)
            candidates = [(score, nid) for score, nid in candidates if nid != node_id]

            selected = candidates[:self.m]
            node.neighbors[layer].replace([nid for _, nid in selected])

            for _, neighbor_id in selected:
                self._connect(neighbor_id, node_id, layer)

            if candidates:
                entry_points = candidates

        if level > self.max_level:
            self.max_level = level
            self.entry_point_id = node_id

    def load_node(self, node: Node) -> None:
        """Attach an already-linked node, as restored from a snapshot."""
        if node.id in self.nodes:
            raise ConfigurationError(f"Node {node.id} already in index")
        if self.dimension is None:
            self.dimension = len(node.vector)
        elif len(node.vector) != self.dimension:
            raise ConfigurationError(
                f"Node {node.id} has dimension {len(node.vector)}, index expects {self.dimension}"
            )

        self.nodes[node.id] = node
        if self.entry_point_id is None:
            self.entry_point_id = node.id
        self.max_level = max(self.max_level, node.level)

    def set_entry_point(self, node_id: int) -> None:
        if node_id not in self.nodes:
            raise ConfigurationError(f"Entry point {node_id} is not in the index")
        self.entry_point_id = node_id

    # --- Query ---

    def search_knn(self, query: VectorLike, k: int, ef: Optional[int] = None) -> List[KNNResult]:
        """Return up to k nodes ordered by descending similarity to the query."""
        if k <= 0 or not self.nodes:
            return []

        q = self._prepare(query)

        current = self.entry_point_id
        current_score = self.similarity(q, self.nodes[current].vector)
        for layer in range(self.max_level, 0, -1):
            current, current_score = self._greedy_search(q, current, current_score, layer)

        width = max(ef or self.ef_search, k)
        results = self._search_layer(q, [(current_score, current)], width, 0)

        return [KNNResult(id=nid, score=float(score)) for score, nid in results[:k]]

    # --- Internals ---

    def _prepare(self, vector: VectorLike) -> np.ndarray:
        arr = as_vector(vector)
        if self.dimension is None:
            self.dimension = len(arr)
        elif len(arr) != self.dimension:
            raise ConfigurationError(
                f"Vector dimension {len(arr)} does not match expected dimension {self.dimension}"
            )
        return l2_normalize(arr)

    def _random_level(self) -> int:
        # 1 - U lies in (0, 1], so the log is always defined
        level = int(-math.log(1.0 - self._rng.random()) * self._ml)
        return min(level, MAX_LEVEL)

    def _neighbors_at(self, node_id: int, layer: int) -> NeighborList:
        node = self.nodes[node_id]
        if layer > node.level:
            return NeighborList(0)
        return node.neighbors[layer]

    def _greedy_search(self, query: np.ndarray, current: int, current_score: float, layer: int) -> Tuple[int, float]:
        changed = True
        while changed:
            changed = False
            for neighbor_id in self._neighbors_at(current, layer):
                neighbor = self.nodes.get(neighbor_id)
                if neighbor is None:
                    continue
                score = self.similarity(query, neighbor.vector)
                if score > current_score:
                    current, current_score = neighbor_id, score
                    changed = True
        return current, current_score

    def _search_layer(self, query: np.ndarray, entry_points: List[Tuple[float, int]], ef: int, layer: int) -> List[Tuple[float, int]]:
        """Beam search at one layer; returns (score, id) pairs best first."""
        visited = {nid for _, nid in entry_points}
        candidates = [(-score, nid) for score, nid in entry_points]
        heapq.heapify(candidates)
        results = list(entry_points)
        heapq.heapify(results)
        while len(results) > ef:
            heapq.heappop(results)

        while candidates:
            neg_score, candidate_id = heapq.heappop(candidates)
            if len(results) >= ef and -neg_score < results[0][0]:
                break

            for neighbor_id in self._neighbors_at(candidate_id, layer):
                if neighbor_id in visited:
                    continue
                visited.add(neighbor_id)

                neighbor = self.nodes.get(neighbor_id)
                if neighbor is None:
                    continue

                score = self.similarity(query, neighbor.vector)
                if len(results) < ef or score > results[0][0]:
                    heapq.heappush(candidates, (-score, neighbor_id))
                    heapq.heappush(results, (score, neighbor_id))
                    if len(results) > ef:
                        heapq.heappop(results)

        return sorted(results, key=lambda pair: pair[0], reverse=True)

    def _connect(self, owner_id: int, new_id: int, layer: int) -> None:
        """Add the reverse edge owner -> new, dropping the farthest edge when full."""
        owner = self.nodes[owner_id]
        if layer > owner.level:
            return

        neighbor_list = owner.neighbors[layer]
        if new_id in neighbor_list:
            return
        if neighbor_list.add(new_id):
            return

        pool = list(neighbor_list) + [new_id]
        pool.sort(key=lambda nid: self.similarity(owner.vector, self.nodes[nid].vector), reverse=True)
        neighbor_list.replace(pool[:self.m])

    def __repr__(self) -> str:
        return (
            f"HNSWIndex(nodes={len(self.nodes)}, m={self.m}, "
            f"ef_construction={self.ef_construction}, dimension={self.dimension}, "
            f"max_level={self.max_level})"
        )
