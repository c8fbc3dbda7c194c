# wd/tiles/spiral.py

"""
Outward square spiral over integer grid offsets.
"""

from __future__ import annotations

from typing import Iterator, List, Tuple


class Spiral:
    """
    Restartable, infinite square spiral around an origin.

    The first call to `next` returns the origin, then the eight neighbours of
    ring one, then the sixteen of ring two, and so on. The caller decides when
    to stop.
    """

    def __init__(self, offset_x: int = 0, offset_y: int = 0) -> None:
        self.offset_x = offset_x
        self.offset_y = offset_y
        self.reset()

    def reset(self) -> None:
        self.x = 0
        self.y = 0
        self.dx = 0
        self.dy = -1

    def next(self) -> Tuple[int, int]:
        cur_x, cur_y = self.x, self.y
        # turn at the corners of the current ring
        if (
            self.x == self.y
            or (self.x < 0 and self.x == -self.y)
            or (self.x > 0 and self.x == 1 - self.y)
        ):
            self.dx, self.dy = -self.dy, self.dx
        self.x += self.dx
        self.y += self.dy
        return cur_x + self.offset_x, cur_y + self.offset_y

    def __iter__(self) -> Iterator[Tuple[int, int]]:
        while True:
            yield self.next()


def neighborhood(x: int, y: int) -> List[Tuple[int, int]]:
    """
    Fixed 3x3 block: centre first, then NW, N, NE, W, E, SW, S, SE.
    """
    return [
        (x, y),
        (x - 1, y - 1),
        (x, y - 1),
        (x + 1, y - 1),
        (x - 1, y),
        (x + 1, y),
        (x - 1, y + 1),
        (x, y + 1),
        (x + 1, y + 1),
    ]
