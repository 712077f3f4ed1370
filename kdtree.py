from dataclasses import dataclass
from math import sqrt
import weakref

import PIL.ImageDraw

from log import logger

# Points are expected in [0, MAX) on both axes; the root rect spans all of it.
MAX = 1000

LEFT, RIGHT = 0, 1

Point = tuple[int, int]


class KDTreeError(Exception):
    pass


class AllocationError(KDTreeError, MemoryError):
    """Storage for a tree or a node could not be obtained."""


class EmptyTreeError(KDTreeError, LookupError):
    """A query was issued against a tree with no points."""


def as_point(point) -> Point:
    p = tuple(point)
    if len(p) != 2:
        raise ValueError(f"expected a 2-d point, got {point!r}")
    return p


def distance_squared(p1, p2):
    dx = p1[0] - p2[0]
    dy = p1[1] - p2[1]
    return dx * dx + dy * dy


def distance(p1, p2):
    # Euclidean distance
    return sqrt(distance_squared(p1, p2))


@dataclass(frozen=True)
class Rect:
    min_x: float
    max_x: float
    min_y: float
    max_y: float

    def contains(self, point) -> bool:
        return (self.min_x <= point[0] <= self.max_x
                and self.min_y <= point[1] <= self.max_y)

    def contains_rect(self, other: "Rect") -> bool:
        return (self.min_x <= other.min_x and other.max_x <= self.max_x
                and self.min_y <= other.min_y and other.max_y <= self.max_y)

    def split(self, dimension: int, value, side: int) -> "Rect":
        """
        The part of this rect on one side of the line point[dimension] == value.
        Only the bound facing the split moves, everything else is inherited.
        """
        if dimension == 0:
            if side == LEFT:
                return Rect(self.min_x, value, self.min_y, self.max_y)
            return Rect(value, self.max_x, self.min_y, self.max_y)
        if side == LEFT:
            return Rect(self.min_x, self.max_x, self.min_y, value)
        return Rect(self.min_x, self.max_x, value, self.max_y)

    def distance_squared(self, point):
        dx = dy = 0
        if self.min_x > point[0]:
            dx = point[0] - self.min_x
        elif point[0] > self.max_x:
            dx = point[0] - self.max_x
        if self.min_y > point[1]:
            dy = point[1] - self.min_y
        elif point[1] > self.max_y:
            dy = point[1] - self.max_y
        return dx * dx + dy * dy

    def distance(self, point):
        return sqrt(self.distance_squared(point))


class Node:
    __slots__ = ("point", "dimension", "rect", "left", "right", "_parent",
                 "__weakref__")

    def __init__(self, point, dimension, rect, parent=None):
        self.point = point
        self.dimension = dimension
        self.rect = rect
        self.left = None
        self.right = None
        # weak, never owning
        self._parent = weakref.ref(parent) if parent is not None else None

    @property
    def parent(self):
        if self._parent is None:
            return None
        return self._parent()

    def child(self, side):
        return self.left if side == LEFT else self.right

    def __str__(self):
        return f"Node(point={self.point}, dimension={self.dimension}, rect={self.rect})"


def _new_node(point, dimension, rect, parent=None):
    try:
        return Node(point, dimension, rect, parent)
    except MemoryError as e:
        raise AllocationError(f"could not allocate a node for {point}") from e


def _release(node):
    node.left = node.right = None
    node._parent = None


class KDTree:
    def __init__(self, bound=MAX):
        self.root = None
        self.bound = bound

    @staticmethod
    def from_points(points, bound=MAX):
        kd = create_tree(bound)
        insert_batch(kd, points)
        return kd

    def universe(self) -> Rect:
        return Rect(0, self.bound, 0, self.bound)

    def insert(self, point):
        point = as_point(point)
        if self.root is None:
            self.root = _new_node(point, 0, self.universe())
            logger.debug("root %s", self.root)
            return

        node = self.root
        while True:
            axis = node.dimension
            side = LEFT if node.point[axis] > point[axis] else RIGHT
            child = node.child(side)
            if child is None:
                break
            node = child

        new_node = _new_node(point, 1 - node.dimension,
                             node.rect.split(node.dimension, node.point[node.dimension], side),
                             node)
        if side == LEFT:
            node.left = new_node
        else:
            node.right = new_node

    def nearest(self, point):
        """
        Find the stored point closest to point, returning it together with
        its Euclidean distance.

        Subtrees whose bounding rect is further away than the best match so
        far are skipped. The child on the query's side of the split is visited
        first so the best distance tightens before the far side is tested.
        Raises EmptyTreeError if nothing has been inserted.
        """
        if self.root is None:
            raise EmptyTreeError("nearest neighbor query on an empty tree")
        point = as_point(point)

        best_distance = float('inf')
        best_point = None
        visited = pruned = 0
        stack = [self.root]
        while stack:
            node = stack.pop()
            if node.rect.distance_squared(point) > best_distance:
                pruned += 1
                continue
            visited += 1
            d = distance_squared(node.point, point)
            if d < best_distance:
                best_distance, best_point = d, node.point

            axis = node.dimension
            if node.point[axis] > point[axis]:
                near, far = node.left, node.right
            else:
                near, far = node.right, node.left
            # Last pushed is visited first
            if far is not None:
                stack.append(far)
            if near is not None:
                stack.append(near)

        logger.debug("query %s: visited %d nodes, pruned %d subtrees",
                     point, visited, pruned)
        return best_point, sqrt(best_distance)

    def nodes(self):
        if self.root is None:
            return
        stack = [self.root]
        while stack:
            node = stack.pop()
            yield node
            if node.right is not None:
                stack.append(node.right)
            if node.left is not None:
                stack.append(node.left)

    def __iter__(self):
        for node in self.nodes():
            yield node.point

    def __len__(self):
        return sum(1 for _ in self.nodes())

    def validate(self):
        """Raise KDTreeError at the first node breaking axis alternation or rect containment."""
        if self.root is not None and self.root.rect != self.universe():
            raise KDTreeError(f"root rect {self.root.rect} is not the universe")
        for node in self.nodes():
            if not node.rect.contains(node.point):
                raise KDTreeError(f"{node} lies outside its own rect")
            for child in (node.left, node.right):
                if child is None:
                    continue
                if child.dimension != 1 - node.dimension:
                    raise KDTreeError(f"{child} splits on the same axis as its parent")
                if not node.rect.contains_rect(child.rect):
                    raise KDTreeError(f"{child} rect is not inside {node.rect}")
        logger.debug("tree of %d nodes is valid", len(self))

    def destroy(self):
        """Release every node, children before their parent. Returns the count."""
        released = 0
        if self.root is None:
            return released
        stack = [(self.root, False)]
        while stack:
            node, expanded = stack.pop()
            if not expanded:
                stack.append((node, True))
                if node.right is not None:
                    stack.append((node.right, False))
                if node.left is not None:
                    stack.append((node.left, False))
                continue
            _release(node)
            released += 1
        self.root = None
        logger.debug("released %d nodes", released)
        return released

    def draw(self, image, point_radius=2):
        draw = PIL.ImageDraw.Draw(image)
        for node in self.nodes():
            x, y = node.point
            r = node.rect
            if node.dimension == 0:
                draw.line(((x, r.min_y), (x, r.max_y)), fill='red')
            else:
                draw.line(((r.min_x, y), (r.max_x, y)), fill='green')
        for x, y in self:
            draw.chord([(x - point_radius, y - point_radius),
                        (x + point_radius, y + point_radius)], 0, 360, fill='white')


def create_tree(bound=MAX) -> KDTree:
    try:
        return KDTree(bound)
    except MemoryError as e:
        raise AllocationError("could not allocate a tree") from e


def destroy_tree(tree: KDTree):
    return tree.destroy()


def insert(tree: KDTree, point):
    tree.insert(point)


def insert_batch(tree: KDTree, points):
    count = 0
    for point in points:
        tree.insert(point)
        count += 1
    return count


def nearest_neighbor(tree: KDTree, point) -> Point:
    return tree.nearest(point)[0]
