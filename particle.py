# particle.py

from vector2 import Vector2


class Particle:
    """
    Represents a single particle in the simulation.

    Data Contract:
    - Inputs:
        - position (Vector2): Location in world units.
        - velocity (Vector2): World units per second.
    - Invariants: position and velocity are replaced, never mutated, since
      Vector2 is immutable. Only the World's integration step calls update()
      and check_boundary_collision().
    """
    __slots__ = ('position', 'velocity')

    def __init__(self, position: Vector2, velocity: Vector2 = Vector2(0.0, 0.0)):
        self.position = position
        self.velocity = velocity

    def __repr__(self):
        return f"Particle(position={tuple(self.position)}, velocity={tuple(self.velocity)})"

    def copy(self):
        return Particle(self.position, self.velocity)

    @property
    def speed(self):
        return self.velocity.length()

    def update(self, acceleration: Vector2, dt: float):
        """
        Advances the particle by one time step (semi-implicit Euler).
        v_new = v_old + a * dt
        p_new = p_old + v_new * dt
        """
        self.velocity = self.velocity + acceleration * dt
        self.position = self.position + self.velocity * dt

    def check_boundary_collision(self, width: float, height: float):
        """
        Reflects the particle off the domain [0, width] x [0, height].
        Each axis is handled independently: the position is clamped to the wall
        and that velocity component is negated.

        - Inputs:
            - width (float): The width of the simulation area.
            - height (float): The height of the simulation area.
        """
        x, y = self.position
        vx, vy = self.velocity

        # Left / right walls
        if x < 0.0:
            x = 0.0
            vx = -vx
        elif x > width:
            x = width
            vx = -vx

        # Top / bottom walls
        if y < 0.0:
            y = 0.0
            vy = -vy
        elif y > height:
            y = height
            vy = -vy

        self.position = Vector2(x, y)
        self.velocity = Vector2(vx, vy)
