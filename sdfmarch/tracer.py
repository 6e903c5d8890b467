"""Sphere tracing and surface normal estimation.

A scene here is any function `point (3,) -> DistanceSample`, typically
`scene.scene_function(tree)`. Every loop is bounded by a step counter so a
misbehaving distance field can only cost time, never hang a frame.
"""
import jax
import jax.numpy as jnp
from jax import lax

from .types import MarchState, MarchResult, HIT, MISS, EXHAUSTED, DEFAULT_UP

# Tetrahedron vertices for the 4-tap gradient
TETRAHEDRAL_TAPS = jnp.array([
    [1.0, -1.0, -1.0],
    [-1.0, -1.0, 1.0],
    [-1.0, 1.0, -1.0],
    [1.0, 1.0, 1.0],
])


def march(scene_fn, origin, direction, max_steps=128, surface_threshold=1e-3,
          max_distance=20.0, step_scale=1.0, t_min=0.0) -> MarchResult:
    """Sphere-trace one ray.

    Each step samples the field at origin + direction * traveled and advances
    by the sampled distance (times step_scale, < 1 for fractals whose estimate
    overshoots). The loop stops on a hit (d < surface_threshold), on leaving
    max_distance (miss) or when max_steps is used up (exhausted). A negative
    distance means the sample point is inside a solid, so a ray starting inside
    hits at t_min and never steps backwards. A non-finite distance sends the
    ray to infinity, so it ends as a miss.
    """
    max_steps = jnp.asarray(max_steps, dtype=jnp.int32)
    surface_threshold = jnp.asarray(surface_threshold, dtype=jnp.float32)
    max_distance = jnp.asarray(max_distance, dtype=jnp.float32)

    def cond_fun(state: MarchState):
        return (~state.hit) & (state.steps < max_steps) & (state.traveled <= max_distance)

    def body_fun(state: MarchState) -> MarchState:
        sample = scene_fn(origin + direction * state.traveled)
        d = jnp.asarray(sample.distance, dtype=jnp.float32)
        finite = jnp.isfinite(d)
        hit = finite & (d < surface_threshold)

        traveled = jnp.where(hit, state.traveled, state.traveled + d * step_scale)
        traveled = jnp.where(finite, traveled, jnp.inf)
        return MarchState(
            traveled=traveled.astype(jnp.float32),
            steps=state.steps + 1,
            distance=d,
            material=jnp.asarray(sample.material, dtype=jnp.int32),
            hit=hit,
        )

    init_state = MarchState(
        traveled=jnp.asarray(t_min, dtype=jnp.float32),
        steps=jnp.int32(0),
        distance=jnp.float32(jnp.inf),
        material=jnp.int32(0),
        hit=jnp.array(False),
    )
    final = lax.while_loop(cond_fun, body_fun, init_state)

    status = jnp.where(
        final.hit,
        HIT,
        jnp.where((final.steps >= max_steps) & (final.traveled <= max_distance), EXHAUSTED, MISS),
    ).astype(jnp.int32)
    # Keep the reported position finite even for rays that blew up
    t_safe = jnp.where(jnp.isfinite(final.traveled), final.traveled, max_distance)
    return MarchResult(
        traveled=final.traveled,
        steps=final.steps,
        material=final.material,
        status=status,
        position=origin + direction * t_safe,
    )


def _safe_direction(gradient):
    norm = jnp.linalg.norm(gradient)
    valid = jnp.isfinite(norm) & (norm > 1e-8)
    return jnp.where(valid, gradient / jnp.where(valid, norm, 1.0), DEFAULT_UP)


def estimate_normal(scene_fn, p, epsilon=1e-3):
    """Central-difference gradient of the distance field, normalised; (0, 1, 0) if flat."""
    offsets = jnp.eye(3, dtype=jnp.float32) * epsilon
    distance = lambda q: scene_fn(q).distance
    d_pos = jax.vmap(lambda o: distance(p + o))(offsets)
    d_neg = jax.vmap(lambda o: distance(p - o))(offsets)
    return _safe_direction(d_pos - d_neg)


def estimate_normal_tetrahedral(scene_fn, p, epsilon=1e-3):
    """Four-tap gradient: sum of k_i * d(p + k_i * h) over the tetrahedron vertices."""
    distance = lambda q: scene_fn(q).distance
    d = jax.vmap(lambda k: distance(p + k * epsilon))(TETRAHEDRAL_TAPS)
    return _safe_direction(jnp.sum(TETRAHEDRAL_TAPS * d[:, None], axis=0))


NORMAL_ESTIMATORS = {
    "central": estimate_normal,
    "tetrahedral": estimate_normal_tetrahedral,
}
