"""
Spatial index over a planar point set.

Wraps scipy's Delaunay triangulation (the dual graph of the Voronoi
partition) and answers the two questions the partitioning stages need:
which point owns the cell containing a coordinate, and which points are
geometric neighbours of a point.

Qhull leaves exact duplicates out of the triangulation, so a point seeded
directly on top of another ends up with a zero-area cell and no neighbours.
Such points are bridged to the nearest triangulated point so that no point
of a set of two or more is ever isolated.
"""

from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Tuple, Union

import numpy as np
import structlog
from scipy.spatial import Delaunay, QhullError, cKDTree

from ..config import settings

logger = structlog.get_logger()

Bounds = Tuple[float, float, float, float]


class ExpansionMode(str, Enum):
    """Output shape of a ring expansion."""
    INDIVIDUALS = "individuals"  # flat, deduplicated candidate list
    RINGS = "rings"              # one list per hop distance


def as_points(buffer) -> np.ndarray:
    """
    View a point buffer as an (n, 2) float64 array.

    A flat interleaved buffer ``[x0, y0, x1, y1, ...]`` is reshaped into a
    view, so in-place writes through the result are seen by the caller.
    """
    arr = np.asarray(buffer, dtype=np.float64)
    if arr.ndim == 1:
        if arr.size % 2:
            raise ValueError(f"Flat point buffer has odd length {arr.size}")
        return arr.reshape(-1, 2)
    if arr.ndim != 2 or arr.shape[1] != 2:
        raise ValueError(f"Expected an (n, 2) point array, got shape {arr.shape}")
    return arr


class SpatialIndex:
    """
    Nearest-point lookup and adjacency over a mutable point buffer.

    The buffer is held by reference. After moving points in place, call
    ``update()`` before the next query.
    """

    def __init__(self, points, bounds: Optional[Bounds] = None,
                 coincidence_offset: Optional[float] = None):
        """
        Args:
            points: Flat interleaved buffer or (n, 2) array
            bounds: (x0, y0, x1, y1) rectangle the points live in
            coincidence_offset: Offset used to re-resolve coincident points
        """
        self.points = as_points(points)
        if bounds is None:
            if len(self.points):
                lo = self.points.min(axis=0)
                hi = self.points.max(axis=0)
                bounds = (float(lo[0]), float(lo[1]), float(hi[0]), float(hi[1]))
            else:
                bounds = (0.0, 0.0, 0.0, 0.0)
        self.bounds = bounds
        self.coincidence_offset = (
            settings.coincidence_offset if coincidence_offset is None else coincidence_offset
        )

        self.delaunay: Optional[Delaunay] = None
        self.tree: Optional[cKDTree] = None
        self.cell_neighbors: List[List[int]] = []
        self._bridges: Dict[int, List[int]] = {}

        self._build()

    def __len__(self) -> int:
        return len(self.points)

    def _build(self):
        n = len(self.points)
        self.delaunay = None
        self.tree = cKDTree(self.points) if n else None

        if n >= 3:
            try:
                self.delaunay = Delaunay(self.points)
            except QhullError:
                # Flat input (collinear or fully coincident)
                logger.debug("Triangulation is degenerate, using chain adjacency", points=n)

        if self.delaunay is not None:
            indptr, indices = self.delaunay.vertex_neighbor_vertices
            self.cell_neighbors = [indices[indptr[i]:indptr[i + 1]].tolist() for i in range(n)]
        else:
            self.cell_neighbors = self._chain_neighbors()

        self._bridge_coincident()

    def _chain_neighbors(self) -> List[List[int]]:
        """Link points in order of their projection onto the axis of greatest spread."""
        n = len(self.points)
        neighbors = [[] for _ in range(n)]
        if n < 2:
            return neighbors

        offsets = self.points - self.points[0]
        far = int(np.argmax(np.einsum("ij,ij->i", offsets, offsets)))
        order = np.argsort(offsets @ offsets[far], kind="stable")

        for a, b in zip(order[:-1].tolist(), order[1:].tolist()):
            neighbors[a].append(b)
            neighbors[b].append(a)
        return neighbors

    def _bridge_coincident(self):
        """Link every neighbourless point to the triangulated point nearest to it."""
        self._bridges = {}
        isolated = [i for i, nbrs in enumerate(self.cell_neighbors) if not nbrs]
        connected = [i for i, nbrs in enumerate(self.cell_neighbors) if nbrs]
        if not isolated or not connected:
            return

        connected = np.asarray(connected, dtype=np.intp)
        probes = self.points[isolated] + self.coincidence_offset
        _, nearest = cKDTree(self.points[connected]).query(probes)

        for i, k in zip(isolated, nearest.tolist()):
            found = int(connected[k])
            self._add_bridge(found, i)
            self._add_bridge(i, found)

        logger.debug("Bridged coincident points", bridged=len(isolated))

    def _add_bridge(self, a: int, b: int):
        partners = self._bridges.setdefault(a, [])
        if b not in partners:
            partners.append(b)

    @property
    def bridges(self) -> Dict[int, List[int]]:
        """Coincidence bridges from the last build, keyed by point id."""
        return self._bridges

    def update(self):
        """Rebuild after point positions changed in the shared buffer."""
        self._build()

    def neighbors(self, i: int) -> Iterator[int]:
        """
        Yield the points adjacent to point ``i``.

        True partition neighbours come first, then coincidence bridge
        partners and the partners' own bridge partners.
        """
        yield from self.cell_neighbors[i]

        partners = self._bridges.get(i)
        if not partners:
            return

        seen = set(self.cell_neighbors[i])
        seen.add(i)
        for p in partners:
            if p not in seen:
                seen.add(p)
                yield p
            for q in self._bridges.get(p, ()):
                if q not in seen:
                    seen.add(q)
                    yield q

    def find(self, x: float, y: float, hint: Optional[int] = None) -> int:
        """
        Find the point nearest to (x, y).

        With a hint, walks the neighbour graph greedily from the hinted
        point, which is cheap when consecutive queries are close together
        (e.g. scanning a raster row). Without one, queries the kd-tree.

        Returns:
            Index of the nearest point
        """
        n = len(self.points)
        if n == 0:
            raise ValueError("Cannot search an empty spatial index")

        if hint is None or not 0 <= hint < n:
            _, idx = self.tree.query((x, y))
            return int(idx)

        current = int(hint)
        if not self.cell_neighbors[current]:
            # Dropped duplicates only reach their bridge partners, which sit at
            # the same distance from the query, so start from a connected one
            partners = [p for p in self._bridges.get(current, ()) if self.cell_neighbors[p]]
            if not partners:
                _, idx = self.tree.query((x, y))
                return int(idx)
            current = partners[0]

        pts = self.points
        best = (pts[current, 0] - x) ** 2 + (pts[current, 1] - y) ** 2
        while True:
            step = current
            for nb in self.cell_neighbors[current]:
                d = (pts[nb, 0] - x) ** 2 + (pts[nb, 1] - y) ** 2
                if d < best:
                    best = d
                    step = nb
            if step == current:
                break
            current = step

        for partner in self._bridges.get(current, ()):
            d = (pts[partner, 0] - x) ** 2 + (pts[partner, 1] - y) ** 2
            if d < best:
                best = d
                current = partner
        return current

    def find_many(self, coords) -> np.ndarray:
        """Nearest point for each row of an (m, 2) coordinate array."""
        if len(self.points) == 0:
            raise ValueError("Cannot search an empty spatial index")
        coords = as_points(coords)
        if len(coords) == 0:
            return np.zeros(0, dtype=np.intp)
        _, idx = self.tree.query(coords)
        return np.asarray(idx, dtype=np.intp)

    def iter_rings(self, origin: int) -> Iterator[List[int]]:
        """
        Breadth-first rings around ``origin``, produced lazily.

        Each ring holds the points first reached at that hop distance, in
        discovery order. Stops when a ring finds nothing new.
        """
        visited = {origin}
        ring = [origin]
        while ring:
            next_ring = []
            for src in ring:
                for nb in self.neighbors(src):
                    if nb not in visited:
                        visited.add(nb)
                        next_ring.append(nb)
            if not next_ring:
                return
            yield next_ring
            ring = next_ring

    def neighbors_and_neighbors(
        self,
        origin: int,
        depth: Optional[int] = None,
        target_count: Optional[int] = None,
        accept: Optional[Callable[[int], bool]] = None,
        mode: Union[ExpansionMode, str] = ExpansionMode.INDIVIDUALS,
    ) -> Union[List[int], List[List[int]]]:
        """
        Expand ring by ring from ``origin`` and collect candidates.

        Expansion stops at ``depth`` rings, or once the candidates gathered
        reach ``target_count`` plus the number rejected by ``accept`` so
        far, or when the graph is exhausted. ``accept`` never prunes the
        traversal; it is applied as a final filter, and only when something
        was rejected.

        Args:
            origin: Point to expand from (never part of the output)
            depth: Maximum number of rings, None for unbounded
            target_count: Accepted candidates wanted, None for unbounded
            accept: Predicate a candidate must satisfy
            mode: INDIVIDUALS for a flat list, RINGS for one list per ring

        Returns:
            Flat candidate list, or a list of per-ring lists
        """
        mode = ExpansionMode(mode)
        rings: List[List[int]] = []
        flags: List[List[bool]] = []
        found = 0
        rejected = 0

        if depth is None or depth > 0:
            for level, ring in enumerate(self.iter_rings(origin), start=1):
                rings.append(ring)
                found += len(ring)
                if accept is not None:
                    ring_flags = [bool(accept(c)) for c in ring]
                    flags.append(ring_flags)
                    rejected += ring_flags.count(False)

                if depth is not None and level >= depth:
                    break
                if target_count is not None and found >= target_count + rejected:
                    break

        if rejected:
            rings = [
                [c for c, ok in zip(ring, ring_flags) if ok]
                for ring, ring_flags in zip(rings, flags)
            ]

        if mode is ExpansionMode.RINGS:
            return rings
        return [c for ring in rings for c in ring]
