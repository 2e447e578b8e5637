"""
Binary codec for HNSW graph snapshots.

Layout (big-endian throughout):
    magic(4B) | dim(2B) | M(2B) | nodeCount(4B) | maxLevel(2B)
    per node: id(4B) | levelCount(1B) | vector(dim x 4B float)
              per level: neighborCount(2B) | neighborIds(4B each)
"""

import struct

import numpy as np

from ..core.errors import ConfigurationError, CorruptionError
from .codec import FLOAT_DTYPE
from .hnsw import HNSWIndex, Node

MAGIC = 0x48534E57  # b"HSNW" on disk

HEADER = struct.Struct(">IHHIH")
NODE_HEADER = struct.Struct(">IB")
NEIGHBOR_COUNT = struct.Struct(">H")
NEIGHBOR_ID = ">I"


def encode_graph(graph: HNSWIndex) -> bytes:
    """Serialize a graph; neighbor lists are compacted to their occupied slots."""
    dim = graph.dimension or 0
    if dim > 0xFFFF:
        raise ConfigurationError(f"Dimension {dim} does not fit the snapshot header")
    if graph.m > 0xFFFF:
        raise ConfigurationError(f"M={graph.m} does not fit the snapshot header")

    parts = [HEADER.pack(MAGIC, dim, graph.m, len(graph.nodes), graph.max_level)]

    for node_id, node in graph.nodes.items():
        parts.append(NODE_HEADER.pack(node_id, node.level + 1))
        parts.append(np.asarray(node.vector, dtype=np.float32).astype(FLOAT_DTYPE).tobytes())

        for level in range(node.level + 1):
            neighbors = node.neighbors[level].ids()
            parts.append(NEIGHBOR_COUNT.pack(len(neighbors)))
            parts.append(neighbors.astype(NEIGHBOR_ID).tobytes())

    return b"".join(parts)


class _Reader:
    """Bounds-checked cursor over a snapshot buffer."""

    def __init__(self, data: bytes):
        self.data = memoryview(data)
        self.offset = 0

    def take(self, size: int) -> memoryview:
        end = self.offset + size
        if end > len(self.data):
            raise CorruptionError(
                f"Snapshot truncated: needed {size} bytes at offset {self.offset}, "
                f"only {len(self.data) - self.offset} left"
            )
        chunk = self.data[self.offset:end]
        self.offset = end
        return chunk

    def unpack(self, fmt: struct.Struct):
        return fmt.unpack(self.take(fmt.size))

    @property
    def remaining(self) -> int:
        return len(self.data) - self.offset


def decode_graph(data: bytes, ef_construction: int = 200) -> HNSWIndex:
    """Rebuild a graph from its snapshot bytes, padding neighbor lists back to M."""
    reader = _Reader(data)

    magic, dim, m, node_count, max_level = reader.unpack(HEADER)
    if magic != MAGIC:
        raise CorruptionError(f"Invalid HNSW magic number: 0x{magic:08x}")
    if dim == 0 and node_count > 0:
        raise CorruptionError("Snapshot holds nodes but declares dimension 0")

    try:
        graph = HNSWIndex(m=m, ef_construction=ef_construction, dimension=dim or None)
    except ConfigurationError as e:
        raise CorruptionError(f"Invalid snapshot header: {e}")

    top_node = None
    for _ in range(node_count):
        node_id, level_count = reader.unpack(NODE_HEADER)
        if level_count == 0:
            raise CorruptionError(f"Node {node_id} declares zero levels")

        vector = np.frombuffer(reader.take(dim * FLOAT_DTYPE.itemsize), dtype=FLOAT_DTYPE).astype(np.float32)
        node = Node(node_id, vector, level_count - 1, m)

        for level in range(level_count):
            (neighbor_count,) = reader.unpack(NEIGHBOR_COUNT)
            if neighbor_count > m:
                raise CorruptionError(
                    f"Node {node_id} level {level} has {neighbor_count} neighbors, capacity is {m}"
                )
            raw = reader.take(neighbor_count * 4)
            neighbors = np.frombuffer(raw, dtype=NEIGHBOR_ID).astype(np.int64)
            node.neighbors[level].replace(neighbors.tolist())

        try:
            graph.load_node(node)
        except ConfigurationError as e:
            raise CorruptionError(str(e))

        if top_node is None and node.level == max_level:
            top_node = node_id

    if reader.remaining:
        raise CorruptionError(f"Snapshot has {reader.remaining} trailing bytes")

    if graph.max_level != max_level and node_count > 0:
        raise CorruptionError(
            f"Header max level {max_level} disagrees with node levels ({graph.max_level})"
        )

    if top_node is not None:
        graph.set_entry_point(top_node)

    return graph
