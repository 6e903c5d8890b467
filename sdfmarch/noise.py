import jax.numpy as jnp
from jax import lax

from .utils import fract, mix

# Classic shader hash constants
HASH_DOT = jnp.array([127.1, 311.7, 74.7])
HASH_SCALE = 43758.5453123


def hash3(p):
    """Pseudo-random value in [0, 1) for a lattice point, shape (..., 3) -> (...)."""
    return fract(jnp.sin(jnp.sum(p * HASH_DOT, axis=-1)) * HASH_SCALE)


def value_noise(p):
    """Trilinearly interpolated lattice noise in [0, 1] with a smoothstep fade."""
    i = jnp.floor(p)
    f = p - i
    u = f * f * (3.0 - 2.0 * f)

    def corner(dx, dy, dz):
        return hash3(i + jnp.array([dx, dy, dz], dtype=p.dtype))

    x00 = mix(corner(0.0, 0.0, 0.0), corner(1.0, 0.0, 0.0), u[..., 0])
    x10 = mix(corner(0.0, 1.0, 0.0), corner(1.0, 1.0, 0.0), u[..., 0])
    x01 = mix(corner(0.0, 0.0, 1.0), corner(1.0, 0.0, 1.0), u[..., 0])
    x11 = mix(corner(0.0, 1.0, 1.0), corner(1.0, 1.0, 1.0), u[..., 0])
    y0 = mix(x00, x10, u[..., 1])
    y1 = mix(x01, x11, u[..., 1])
    return mix(y0, y1, u[..., 2])


def fbm(p, octaves=5, lacunarity=2.0, gain=0.5):
    """Fractal Brownian motion: each octave doubles frequency and halves amplitude.

    The result is normalised by the total amplitude so it stays in [0, 1].
    `octaves` must be a static Python int.
    """
    def body_fun(_, carry):
        value, amplitude, total, q = carry
        value = value + amplitude * value_noise(q)
        total = total + amplitude
        return value, amplitude * gain, total, q * lacunarity

    zero = jnp.zeros(p.shape[:-1], dtype=p.dtype)
    init = (zero, zero + 0.5, zero, p)
    value, _, total, _ = lax.fori_loop(0, octaves, body_fun, init)
    return value / jnp.maximum(total, 1e-6)
