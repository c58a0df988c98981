# main.py

import json
import logging
import time

import numpy as np
import pygame

import constants
import logger_setup
from vector2 import Vector2
from world import World
from zorder_index import ZOrderIndex

# Get the application's dedicated logger
logger = logging.getLogger("particle_sim")

# Keys that switch the active spatial index
INDEX_KEYS = {
    pygame.K_1: 'quadtree',
    pygame.K_2: 'zorder',
    pygame.K_3: 'recttree',
}

def to_screen(point):
    return (int(point[0] * constants.SCALING), int(point[1] * constants.SCALING))

def draw_index_overlay(screen, world, mouse_pos):
    """
    Draws the index's debug geometry and highlights the neighbors of the mouse.
    ZOrderIndex has no node bounds, so its curve is drawn instead.
    """
    index = world.index
    if isinstance(index, ZOrderIndex):
        points = [to_screen(p.position) for p in index.values()]
        if len(points) > 1:
            pygame.draw.lines(screen, constants.OVERLAY, False, points, 1)
    else:
        for rect in index.bounding_rects():
            x0, y0 = to_screen((rect.x0, rect.y0))
            x1, y1 = to_screen((rect.x1, rect.y1))
            pygame.draw.rect(screen, constants.OVERLAY, pygame.Rect(x0, y0, max(x1 - x0, 1), max(y1 - y0, 1)), 1)

    radius = world.interaction_radius
    pygame.draw.circle(screen, constants.RED, to_screen(mouse_pos), int(radius * constants.SCALING), 1)
    for particle in world.query_neighbors(mouse_pos, radius):
        pygame.draw.circle(screen, constants.RED, to_screen(particle.position), 2)

def draw_world(screen, world):
    """Draws particles with brightness proportional to speed."""
    for particle in world.particles:
        brightness = min(max(particle.speed / constants.BRIGHT_SPEED, 0.3), 1.0)
        level = int(255 * brightness)
        pygame.draw.circle(screen, (level, level, level), to_screen(particle.position), 2)

def run_simulation_loop(world, screen, clock):
    """The main event/simulate/draw loop. Logs timing every 100 ticks."""
    running = True
    show_index = False
    tick = 0
    evolve_seconds = 0.0

    while running:
        # Event handling
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                running = False
            elif event.type == pygame.KEYUP:
                if event.key == pygame.K_w:
                    show_index = not show_index
                elif event.key in INDEX_KEYS:
                    world.use_index(INDEX_KEYS[event.key])
                    logger.info(f"Switched spatial index to {world.index_name}.")

        mx, my = pygame.mouse.get_pos()
        mouse_pos = Vector2(mx / constants.SCALING, my / constants.SCALING)
        world.set_pointer(mouse_pos, pygame.mouse.get_pressed()[0])

        # --- Physics Update ---
        start = time.perf_counter()
        world.evolve(constants.TICKS_PER_FRAME)
        evolve_seconds += time.perf_counter() - start

        # --- Logging (throttled) ---
        if tick % 100 == 0:
            logger.debug(
                f"Tick={tick}, "
                f"Index={world.index_name}, "
                f"EvolveMs={evolve_seconds * 1000 / max(tick, 1):.2f}, "
                f"MeanSpeed={world.get_mean_speed():.2f}, "
                f"Kinetic={world.get_total_kinetic_energy():.2f}"
            )

        # --- Drawing ---
        screen.fill(constants.BLACK)
        draw_world(screen, world)
        if show_index:
            draw_index_overlay(screen, world, mouse_pos)
        pygame.display.flip()
        clock.tick(constants.FPS)
        tick += 1

def main():
    """
    Main function to initialize and run the particle simulation.
    """
    # --- Setup ---
    logger_setup.setup_logging()

    with open('config.json', 'r') as f:
        config = json.load(f)
    sim_config = config['simulation']

    logger.info("Application starting...")
    logger.info(f"Loaded configuration: {config}")

    # Initialize the master random number generator (RNG)
    rng = np.random.default_rng(config['master_seed'])
    logger.info(f"Master RNG initialized with seed: {config['master_seed']}")

    # --- Initialization ---
    pygame.init()
    screen = pygame.display.set_mode((constants.WIDTH, constants.HEIGHT))
    pygame.display.set_caption(constants.TITLE)
    clock = pygame.time.Clock()

    world = World(
        dimensions=Vector2(constants.WIDTH / constants.SCALING, constants.HEIGHT / constants.SCALING),
        gravity=Vector2(*sim_config.get('gravity', (0.0, 100.0))),
        config=sim_config
    )
    world.add_random_particles(sim_config['particle_count'], rng.random)

    run_simulation_loop(world, screen, clock)

    logger.info("Application shutting down.")
    pygame.quit()

if __name__ == "__main__":
    main()
