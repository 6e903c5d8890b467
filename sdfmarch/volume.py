"""Fixed-step volumetric integration for clouds and fog.

The view ray is split into `volume_steps` equal segments up to the solid hit
(or the far distance). Each segment with density above DENSITY_EPSILON fires
a short march toward the key light to estimate how much light reaches it,
weights that by a Henyey-Greenstein phase function and composites front to
back. Accumulation stops once the ray is effectively opaque.
"""
import jax.numpy as jnp
from jax import lax
from typing import NamedTuple

from .types import VolumeSample, LightArray
from .noise import fbm
from .utils import dot, normalize, smoothstep, mix

DENSITY_EPSILON = 1e-4
OPAQUE_ALPHA = 0.99


def cloud_density(p, time, params):
    """Wind-advected fbm, thresholded by coverage, inside a height band."""
    q = p * params.cloud_scale + params.wind * time
    noise = fbm(q, octaves=params.noise_octaves)
    base = jnp.maximum(noise - (1.0 - params.cloud_coverage), 0.0) * params.cloud_density

    # Fade in above the bottom and out below the top of the layer
    fade = jnp.maximum(0.25 * (params.cloud_top - params.cloud_bottom), 1e-6)
    y = p[1]
    window = smoothstep(params.cloud_bottom, params.cloud_bottom + fade, y) \
        * (1.0 - smoothstep(params.cloud_top - fade, params.cloud_top, y))
    return base * window


def henyey_greenstein(cos_theta, g):
    """Normalised HG phase function; g > 0 scatters forward."""
    g2 = g * g
    denom = jnp.maximum(1.0 + g2 - 2.0 * g * cos_theta, 1e-6)
    return (1.0 - g2) / (4.0 * jnp.pi * jnp.power(denom, 1.5))


class VolumeState(NamedTuple):
    color: jnp.ndarray
    alpha: jnp.ndarray
    active: jnp.ndarray


def integrate_volume(origin, direction, t_max, time, params, lights: LightArray, density_fn=cloud_density):
    """March the participating medium along one ray.

    Only the first (key) light scatters into the medium. Returns the
    accumulated VolumeSample and the alpha after every step, which never
    decreases.
    """
    n_steps = params.volume_steps
    ds = jnp.maximum(jnp.asarray(t_max, dtype=jnp.float32), 0.0) / n_steps
    ambient = params.cloud_ambient * mix(params.sky_horizon, params.sky_zenith, 0.5)
    light_vector = lights.vector[0]
    light_directional = lights.directional[0]
    light_radiance = lights.color[0] * lights.intensity[0]

    def density_at(q):
        rho = density_fn(q, time, params)
        return jnp.where(jnp.isfinite(rho), jnp.maximum(rho, 0.0), 0.0)

    def scattered_light(p):
        l = normalize(jnp.where(light_directional, light_vector, light_vector - p))

        def light_body(j, optical_depth):
            q = p + l * (j + 0.5) * params.light_step_size
            return optical_depth + density_at(q) * params.light_step_size

        optical_depth = lax.fori_loop(0, params.light_steps, light_body, jnp.float32(0.0))
        transmittance = jnp.exp(-params.light_absorption * optical_depth)
        phase = henyey_greenstein(dot(direction, l), params.phase_g)
        return light_radiance * transmittance * phase * params.scattering_coefficient

    def scan_body(state: VolumeState, i):

        def active_step_logic(current: VolumeState) -> VolumeState:
            p = origin + direction * (i + 0.5) * ds
            rho = density_at(p)
            lit = lax.cond(rho > DENSITY_EPSILON, scattered_light, lambda _: jnp.zeros(3), p)
            sample_color = ambient + lit
            step_alpha = 1.0 - jnp.exp(-rho * ds)

            color = current.color + sample_color * step_alpha * (1.0 - current.alpha)
            alpha = jnp.minimum(current.alpha + step_alpha * (1.0 - current.alpha), 1.0)
            return VolumeState(color=color, alpha=alpha, active=alpha < OPAQUE_ALPHA)

        next_state = lax.cond(state.active, active_step_logic, lambda s: s, state)
        return next_state, next_state.alpha

    init_state = VolumeState(color=jnp.zeros(3), alpha=jnp.float32(0.0), active=jnp.array(True))
    final_state, alpha_history = lax.scan(
        scan_body, init_state, xs=jnp.arange(n_steps, dtype=jnp.float32)
    )
    return VolumeSample(color=final_state.color, alpha=final_state.alpha), alpha_history


def composite(solid_color, volume: VolumeSample):
    """Lay the (premultiplied) volume over the solid color behind it."""
    return solid_color * (1.0 - volume.alpha) + volume.color
