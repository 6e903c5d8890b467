"""Closed-form signed distance functions and boolean combinators.

Every primitive takes a point already expressed in object space, shape (..., 3),
and returns the signed distance (negative inside) with shape (...,). All of them
are exact or conservative, i.e. 1-Lipschitz, so the sphere tracer never steps
through a surface.
"""
import jax.numpy as jnp

from .types import DistanceSample
from .utils import dot, length, clamp

# --- Primitives ---

def sd_sphere(p, radius):
    """Sphere of the given radius centred at the origin."""
    return length(p) - radius

def sd_box(p, half_extents):
    """Axis-aligned box: |max(q, 0)| + min(max(qx, qy, qz), 0) with q = |p| - b."""
    q = jnp.abs(p) - half_extents
    return length(jnp.maximum(q, 0.0)) + jnp.minimum(jnp.max(q, axis=-1), 0.0)

def sd_round_box(p, half_extents, radius):
    q = jnp.abs(p) - half_extents + radius
    return length(jnp.maximum(q, 0.0)) + jnp.minimum(jnp.max(q, axis=-1), 0.0) - radius

def sd_torus(p, radii):
    """Torus lying in the XZ plane; radii = (major, minor)."""
    q = jnp.stack([length(p[..., jnp.array([0, 2])]) - radii[0], p[..., 1]], axis=-1)
    return length(q) - radii[1]

def sd_cylinder(p, radius, half_height):
    """Capped cylinder along Y."""
    d = jnp.abs(jnp.stack([length(p[..., jnp.array([0, 2])]), p[..., 1]], axis=-1)) \
        - jnp.stack([jnp.asarray(radius), jnp.asarray(half_height)])
    return jnp.minimum(jnp.maximum(d[..., 0], d[..., 1]), 0.0) + length(jnp.maximum(d, 0.0))

def sd_capsule(p, a, b, radius):
    """Capsule around the segment a-b."""
    pa = p - a
    ba = b - a
    h = clamp(dot(pa, ba) / jnp.maximum(dot(ba, ba), 1e-12), 0.0, 1.0)
    return length(pa - ba * h[..., None]) - radius

def sd_vertical_capsule(p, half_height, radius):
    """Capsule along Y, centred at the origin, spanning [-half_height, half_height]."""
    y = p[..., 1] - clamp(p[..., 1], -half_height, half_height)
    return length(jnp.stack([p[..., 0], y, p[..., 2]], axis=-1)) - radius

def sd_octahedron(p, size):
    """Exact octahedron with the given vertex distance."""
    p = jnp.abs(p)
    m = p[..., 0] + p[..., 1] + p[..., 2] - size
    x_case = 3.0 * p[..., 0] < m
    y_case = ~x_case & (3.0 * p[..., 1] < m)
    z_case = ~x_case & ~y_case & (3.0 * p[..., 2] < m)

    q = jnp.where(x_case[..., None], p, p[..., jnp.array([2, 0, 1])])
    q = jnp.where(y_case[..., None], p[..., jnp.array([1, 2, 0])], q)

    k = clamp(0.5 * (q[..., 2] - q[..., 1] + size), 0.0, size)
    exact = length(jnp.stack([q[..., 0], q[..., 1] - size + k, q[..., 2] - k], axis=-1))
    return jnp.where(x_case | y_case | z_case, exact, m * 0.57735027)

def sd_plane(p, normal, offset):
    """Infinite plane dot(p, n) + offset; normal must be unit length."""
    return dot(p, normal) + offset

# --- Boolean Combinators ---

def op_union(d1, d2):
    return jnp.minimum(d1, d2)

def op_subtraction(d1, d2):
    """Carve d1 out of d2."""
    return jnp.maximum(-d1, d2)

def op_intersection(d1, d2):
    return jnp.maximum(d1, d2)

def op_smooth_union(d1, d2, k):
    """Polynomial smooth minimum; k is the blend width and k = 0 gives the hard union."""
    k_safe = jnp.maximum(k, 1e-8)
    h = jnp.maximum(k_safe - jnp.abs(d1 - d2), 0.0) / k_safe
    blended = jnp.minimum(d1, d2) - h * h * k_safe * 0.25
    return jnp.where(k > 0.0, blended, jnp.minimum(d1, d2))

def op_smooth_subtraction(d1, d2, k):
    return -op_smooth_union(d1, -d2, k)

def op_smooth_intersection(d1, d2, k):
    return -op_smooth_union(-d1, -d2, k)

BOOLEAN_OPS = ("union", "subtraction", "intersection")

def combine(op: str, a: DistanceSample, b: DistanceSample, k=0.0) -> DistanceSample:
    """Combine two tagged samples; the material follows the operand that wins the hard op."""
    if op == "union":
        distance = op_smooth_union(a.distance, b.distance, k)
        take_a = a.distance <= b.distance
    elif op == "subtraction":
        distance = op_smooth_subtraction(a.distance, b.distance, k)
        take_a = -a.distance > b.distance
    elif op == "intersection":
        distance = op_smooth_intersection(a.distance, b.distance, k)
        take_a = a.distance >= b.distance
    else:
        raise ValueError(f"Unknown boolean op: {op}")
    return DistanceSample(distance, jnp.where(take_a, a.material, b.material))
