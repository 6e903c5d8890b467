"""Distance estimators for escape-time and folding fractals.

These return lower bounds on the distance to the set rather than exact
distances. Every loop is a `lax.while_loop` capped at MAX_FRACTAL_ITERATIONS,
and escaping past the bailout radius simply ends the loop early. A point that
never escapes keeps the last estimate.
"""
import jax.numpy as jnp
from jax import lax

from .types import MAX_FRACTAL_ITERATIONS
from .utils import dot, length, clamp


def _iteration_cap(iterations):
    return jnp.clip(jnp.asarray(iterations, dtype=jnp.int32), 0, MAX_FRACTAL_ITERATIONS)


def _escape_estimate(r, dr):
    """0.5 * log(r) * r / dr, with r and dr kept away from zero."""
    r_safe = jnp.maximum(r, 1e-6)
    return 0.5 * jnp.log(r_safe) * r_safe / jnp.maximum(dr, 1e-6)


# --- Escape-time estimators ---

def de_mandelbulb(p, power=8.0, iterations=12, bailout=2.0):
    """Power-n Mandelbulb using the spherical-coordinate power formula."""
    n_iter = _iteration_cap(iterations)

    def cond_fun(carry):
        i, z, dr, r = carry
        return (i < n_iter) & (r <= bailout)

    def body_fun(carry):
        i, z, dr, r = carry
        r_safe = jnp.maximum(r, 1e-6)
        theta = jnp.arccos(clamp(z[2] / r_safe, -1.0, 1.0))
        phi = jnp.arctan2(z[1], z[0])
        dr = jnp.power(r_safe, power - 1.0) * power * dr + 1.0

        zr = jnp.power(r_safe, power)
        theta = theta * power
        phi = phi * power
        z = zr * jnp.array([
            jnp.sin(theta) * jnp.cos(phi),
            jnp.sin(phi) * jnp.sin(theta),
            jnp.cos(theta),
        ]) + p
        return i + 1, z, dr, length(z)

    init = (jnp.int32(0), p, jnp.float32(1.0), length(p))
    _, _, dr, r = lax.while_loop(cond_fun, body_fun, init)
    return _escape_estimate(r, dr)


def _quaternion_square(q):
    """Square of a quaternion stored as (real, i, j, k)."""
    return jnp.array([
        q[0] * q[0] - q[1] * q[1] - q[2] * q[2] - q[3] * q[3],
        2.0 * q[0] * q[1],
        2.0 * q[0] * q[2],
        2.0 * q[0] * q[3],
    ])


def de_julia(p, c=(-0.2, 0.6, 0.2, 0.0), iterations=11, bailout=4.0):
    """Quaternion Julia set z -> z^2 + c, sliced at k = 0."""
    n_iter = _iteration_cap(iterations)
    c = jnp.asarray(c, dtype=jnp.float32)

    def cond_fun(carry):
        i, z, dr, r = carry
        return (i < n_iter) & (r <= bailout)

    def body_fun(carry):
        i, z, dr, r = carry
        dr = 2.0 * r * dr
        z = _quaternion_square(z) + c
        return i + 1, z, dr, length(z)

    z0 = jnp.concatenate([p, jnp.zeros(1, dtype=p.dtype)])
    init = (jnp.int32(0), z0, jnp.float32(1.0), length(z0))
    _, _, dr, r = lax.while_loop(cond_fun, body_fun, init)
    return _escape_estimate(r, dr)


# --- Folding estimators ---

def _fold_tetrahedral(z):
    # Reflect across the planes x+y=0, x+z=0, y+z=0
    x, y, w = z[0], z[1], z[2]
    flip = x + y < 0.0
    x, y = jnp.where(flip, -y, x), jnp.where(flip, -x, y)
    flip = x + w < 0.0
    x, w = jnp.where(flip, -w, x), jnp.where(flip, -x, w)
    flip = y + w < 0.0
    y, w = jnp.where(flip, -w, y), jnp.where(flip, -y, w)
    return jnp.array([x, y, w])


def _fold_cube(z):
    # Mirror into the positive octant, then sort components descending
    z = jnp.abs(z)
    x, y, w = z[0], z[1], z[2]
    x, y = jnp.maximum(x, y), jnp.minimum(x, y)
    x, w = jnp.maximum(x, w), jnp.minimum(x, w)
    y, w = jnp.maximum(y, w), jnp.minimum(y, w)
    return jnp.array([x, y, w])


def _folding_estimate(p, fold, scale, offset, iterations, bailout, post_fold=None):
    n_iter = _iteration_cap(iterations)
    shift = offset * (scale - 1.0)

    def cond_fun(carry):
        i, z = carry
        return (i < n_iter) & (length(z) <= bailout)

    def body_fun(carry):
        i, z = carry
        z = fold(z) * scale - shift
        if post_fold is not None:
            z = post_fold(z, shift)
        return i + 1, z

    i, z = lax.while_loop(cond_fun, body_fun, (jnp.int32(0), p))
    return (length(z) - offset) * jnp.power(scale, -i.astype(jnp.float32))


def de_sierpinski(p, scale=2.0, offset=1.0, iterations=10, bailout=1e3):
    """Sierpinski tetrahedron by repeated tetrahedral folding."""
    return _folding_estimate(p, _fold_tetrahedral, scale, offset, iterations, bailout)


def de_menger(p, scale=3.0, offset=1.0, iterations=5, bailout=1e3):
    """Menger-style sponge by repeated cube folding."""
    def recentre(z, shift):
        # Keep the middle slab of each subdivided cube
        return z.at[2].set(jnp.where(z[2] < -0.5 * shift, z[2] + shift, z[2]))
    return _folding_estimate(p, _fold_cube, scale, offset, iterations, bailout, post_fold=recentre)


def de_kleinian(p, box_size=(0.9009688679, 1.1, 0.7071), sphere_size=1.0,
                julia_c=(0.0, 0.0, 0.0), iterations=10, offset=0.05, shape_size=2.0):
    """Pseudo-Kleinian limit set: a scale-1 Mandelbox-Julia with a geometric orbit trap."""
    n_iter = _iteration_cap(iterations)
    box_size = jnp.asarray(box_size, dtype=jnp.float32)
    julia_c = jnp.asarray(julia_c, dtype=jnp.float32)
    ceiling = p[1] - 1.0

    def cond_fun(carry):
        i, _, _ = carry
        return i < n_iter

    def body_fun(carry):
        i, z, factor = carry
        # Box fold
        z = 2.0 * clamp(z, -box_size, box_size) - z
        # Sphere fold
        k = jnp.maximum(sphere_size / jnp.maximum(dot(z, z), 1e-12), 1.0)
        return i + 1, z * k + julia_c, factor * k

    _, z, factor = lax.while_loop(cond_fun, body_fun, (jnp.int32(0), p, jnp.float32(2.0)))

    # Orbit-trap base shape
    z = z - jnp.array([0.0, offset, 0.0])
    radial = jnp.sqrt(z[0] * z[0] + z[2] * z[2])
    e = 0.1
    d_ring = radial - shape_size
    d_sheet = (radial * jnp.abs(z[1]) - e) / jnp.sqrt(dot(z, z) + jnp.abs(e))
    d_fractal = jnp.maximum(d_ring, d_sheet) / jnp.abs(factor)
    return jnp.maximum(ceiling, d_fractal)
