import argparse
import logging
import random

import PIL.Image
import PIL.ImageDraw

import kdtree as kd
from log import logger, set_debug

NO_SCIPY = False
try:
    import scipy.spatial
except ImportError:
    NO_SCIPY = True

DEFAULT_POINTS = 100


def random_points(count, bound=kd.MAX, rng=random):
    return [(rng.randrange(bound), rng.randrange(bound)) for _ in range(count)]


def check_with_scipy(points, query, found):
    """Compare a result with scipy's KD-tree, which must agree on the distance."""
    idx = scipy.spatial.KDTree(points)
    expected, _ = idx.query(list(query))
    actual = kd.distance(query, found)
    if abs(expected - actual) > 1e-9:
        logger.error("scipy found a neighbor at distance %f, tree found %f",
                     expected, actual)
        return False
    logger.info("scipy agrees, distance %f", actual)
    return True


def render(tree, query, found, output):
    image = PIL.Image.new('RGB', (tree.bound, tree.bound))
    tree.draw(image)
    draw = PIL.ImageDraw.Draw(image)
    draw.chord([(query[0]-5, query[1]-5), (query[0]+5, query[1]+5)],
               0, 360, fill='purple')
    draw.chord([(found[0]-5, found[1]-5), (found[0]+5, found[1]+5)],
               0, 360, fill='pink')
    image.save(output)
    logger.info("wrote %s", output)


def build_parser():
    parser = argparse.ArgumentParser(
        description="Nearest neighbor of a point among random points, using a 2-d k-d tree")
    parser.add_argument("--points", dest="points", type=int,
                        default=DEFAULT_POINTS)
    parser.add_argument("--max", dest="bound", type=int, default=kd.MAX)
    parser.add_argument("--seed", dest="seed", type=int, default=None)
    parser.add_argument("--query", dest="query", type=int, nargs=2,
                        metavar=("X", "Y"))
    parser.add_argument("--check", dest="check", action='store_const',
                        const=True, default=False,
                        help="cross-check the result against scipy")
    parser.add_argument("-o", dest="output")
    parser.add_argument("--debug", dest="debug", action='store_const',
                        const=True, default=False)
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    set_debug(args.debug)
    if args.points < 0:
        parser.error("--points must not be negative")
    if args.bound <= 0:
        parser.error("--max must be positive")
    if args.check and NO_SCIPY:
        parser.error("--check needs scipy installed")

    rng = random.Random(args.seed)
    points = random_points(args.points, args.bound, rng)
    if logger.isEnabledFor(logging.DEBUG):
        for i, (x, y) in enumerate(points):
            logger.debug("Point %d: (%d, %d)", i, x, y)

    tree = kd.create_tree(args.bound)
    try:
        kd.insert_batch(tree, points)
        if args.debug:
            tree.validate()
        query = tuple(args.query) if args.query else (rng.randrange(args.bound),
                                                      rng.randrange(args.bound))
        try:
            found = kd.nearest_neighbor(tree, query)
        except kd.EmptyTreeError:
            parser.error("no points to search, use --points with a positive count")

        print(f"Point: ({query[0]}, {query[1]}) closest tree neighbor is "
              f"Point: ({found[0]}, {found[1]})")

        if args.output:
            render(tree, query, found, args.output)
        if args.check and not check_with_scipy(points, query, found):
            return 1
    finally:
        kd.destroy_tree(tree)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
