# constants.py

"""
Application Constants

This module defines static configuration values for the application's framework.
These are not expected to change between simulation runs. Tunable physics
parameters live in the 'simulation' section of config.json.

Data Contract:
- All values are immutable constants.
- Units are specified in comments where applicable.
"""

# Screen dimensions
WIDTH = 800  # Pixels
HEIGHT = 600  # Pixels

# World units are pixels divided by this factor.
SCALING = 2.0

# Framerate
FPS = 60  # Frames per second

# Ticks advanced per rendered frame
TICKS_PER_FRAME = 4

# Colors (RGB)
BLACK = (0, 0, 0)
RED = (255, 0, 0)
OVERLAY = (255, 255, 0)  # Index debug geometry

# Window Title
TITLE = "Particle Index Simulator"

# Particle speed that maps to full brightness when drawing.
BRIGHT_SPEED = 50.0  # World units per second

# Quadtree degeneracy handling
COINCIDENT_EPSILON = 1e-4  # Two points closer than this are treated as coincident.
COINCIDENT_OFFSET = 1e-3   # Per-axis nudge applied to the incoming point.

# Vectors at or below this length normalize to zero.
ZERO_LENGTH = 1e-4

# Morton key width (total bits across both axes)
ZORDER_BITS = 32

# Maximum children per RectTree node
RECT_TREE_CAPACITY = 8
