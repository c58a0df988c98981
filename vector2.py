# vector2.py

import math
from collections import namedtuple

from constants import ZERO_LENGTH


class Vector2(namedtuple('Vector2', ['x', 'y'])):
    """
    Immutable 2D vector with value semantics.

    Every operation returns a new Vector2; the receiver is never modified.
    Arithmetic operators replace the tuple ones (no concatenation or repetition).
    """
    __slots__ = ()

    def __new__(cls, x=0.0, y=0.0):
        return super().__new__(cls, float(x), float(y))

    def __add__(self, other):
        return Vector2(self.x + other.x, self.y + other.y)

    def __sub__(self, other):
        return Vector2(self.x - other.x, self.y - other.y)

    def __mul__(self, scalar):
        return Vector2(self.x * scalar, self.y * scalar)

    __rmul__ = __mul__

    def __neg__(self):
        return Vector2(-self.x, -self.y)

    def scale(self, scalar: float) -> "Vector2":
        return self * scalar

    def dot(self, other) -> float:
        return self.x * other.x + self.y * other.y

    def length_sq(self) -> float:
        return self.x * self.x + self.y * self.y

    def length(self) -> float:
        return math.hypot(self.x, self.y)

    def distance_to(self, other) -> float:
        return math.hypot(self.x - other.x, self.y - other.y)

    def normalize(self) -> "Vector2":
        """Unit vector in the same direction; the zero vector for (near) zero lengths."""
        length = self.length()
        if not length > ZERO_LENGTH:
            return Vector2(0.0, 0.0)
        return Vector2(self.x / length, self.y / length)
