import jax
import jax.numpy as jnp
from jax import lax

from .types import LightArray, Material
from .utils import dot, length, normalize, clamp, mix

# Shadow-ray marching constants
SHADOW_T_START = 0.02
SHADOW_MIN_STEP = 0.005
SHADOW_MAX_STEP = 0.5
SUN_GLOW_EXPONENT = 64.0


# --- Shadows ---

def _shadow_march(scene_fn, p, normal, light_dir, max_t, k, steps, bias, threshold, soft):
    """Shared shadow-ray loop; returns visibility in [0, 1]."""
    origin = p + normal * bias

    def cond_fun(carry):
        i, t, res, done = carry
        return (~done) & (i < steps)

    def body_fun(carry):
        i, t, res, done = carry
        d = scene_fn(origin + light_dir * t).distance
        # A non-finite sample occludes nothing
        d = jnp.where(jnp.isfinite(d), d, SHADOW_MAX_STEP)
        blocked = d < threshold
        if soft:
            res = jnp.minimum(res, k * d / t)
        res = jnp.where(blocked, 0.0, res)
        t = t + clamp(d, SHADOW_MIN_STEP, SHADOW_MAX_STEP)
        return i + 1, t, res, done | blocked | (t >= max_t)

    init = (jnp.int32(0), jnp.float32(SHADOW_T_START), jnp.float32(1.0), jnp.array(False))
    _, _, res, _ = lax.while_loop(cond_fun, body_fun, init)
    return clamp(res, 0.0, 1.0)


def hard_shadow(scene_fn, p, normal, light_dir, max_t, steps=64, bias=0.01, threshold=1e-3):
    """1 if nothing lies between p and the light within max_t, else 0."""
    return _shadow_march(scene_fn, p, normal, light_dir, max_t, 0.0, steps, bias, threshold, soft=False)


def soft_shadow(scene_fn, p, normal, light_dir, max_t, k=16.0, steps=64, bias=0.01, threshold=1e-3):
    """Penumbra estimate res = min(k * d / t) along the shadow ray; larger k is sharper."""
    return _shadow_march(scene_fn, p, normal, light_dir, max_t, k, steps, bias, threshold, soft=True)


def ambient_occlusion(scene_fn, p, normal, samples=5):
    """Five-tap AO along the normal: 1 for open surfaces, darker in creases."""
    denom = float(max(samples - 1, 1))

    def body_fun(i, carry):
        occ, weight = carry
        h = 0.01 + 0.12 * i.astype(jnp.float32) / denom
        d = scene_fn(p + normal * h).distance
        return occ - (d - h) * weight, weight * 0.95

    occ, _ = lax.fori_loop(0, samples, body_fun, (jnp.float32(0.0), jnp.float32(1.0)))
    return clamp(1.0 - 3.0 * occ, 0.0, 1.0)


# --- Shading Model ---

def apply_fog(color, distance, fog_color, density):
    """Blend toward fog_color by 1 - exp(-density * distance)."""
    amount = 1.0 - jnp.exp(-density * distance)
    return mix(color, fog_color, amount)


def shade(scene_fn, position, normal, view_dir, material: Material, lights: LightArray, params, distance):
    """Lit linear color of a surface point.

    ambient + sum over lights of (Lambert diffuse + Blinn-Phong specular)
    scaled by light color, intensity, falloff and shadow; the sum is then
    darkened by AO and fogged by the travelled distance.
    """

    def calculate_light_contribution(vector, color, intensity, attenuation, directional):
        to_light = jnp.where(directional, vector, vector - position)
        light_dist = jnp.where(directional, params.max_distance, length(to_light))
        l = normalize(to_light)

        cos_term = jnp.maximum(dot(normal, l), 0.0)
        half_vec = normalize(l - view_dir)
        spec_term = jnp.power(jnp.maximum(dot(normal, half_vec), 0.0), material.shininess)
        diffuse = material.albedo * cos_term
        specular = material.specular * spec_term * (cos_term > 0.0)

        # Point lights: 1 / (1 + linear*d + quadratic*d^2)
        falloff = jnp.where(
            directional, 1.0,
            1.0 / (1.0 + attenuation[0] * light_dist + attenuation[1] * light_dist * light_dist),
        )

        def check_visibility():
            if params.enable_soft_shadows:
                return soft_shadow(scene_fn, position, normal, l, light_dist, params.shadow_sharpness,
                                   params.shadow_steps, params.shadow_bias, params.surface_threshold)
            return hard_shadow(scene_fn, position, normal, l, light_dist,
                               params.shadow_steps, params.shadow_bias, params.surface_threshold)

        if params.enable_shadows:
            shadow = lax.cond(cos_term > 1e-6, check_visibility, lambda: jnp.float32(0.0))
        else:
            shadow = 1.0

        return (diffuse + specular) * color * intensity * falloff * shadow

    # --- Iterate through lights using vmap ---
    contributions = jax.vmap(calculate_light_contribution)(
        lights.vector, lights.color, lights.intensity, lights.attenuation, lights.directional
    )
    ambient = params.ambient_strength * material.ambient * material.albedo
    color = ambient + jnp.sum(contributions, axis=0)

    if params.enable_ao:
        ao = ambient_occlusion(scene_fn, position, normal, params.ao_samples)
        color = color * mix(1.0, ao, params.ao_intensity)

    return apply_fog(color, distance, params.fog_color, params.fog_density)


def sky_color(direction, params, lights: LightArray):
    """Background for rays that hit nothing: horizon-to-zenith gradient plus sun glow."""
    t = clamp(direction[1] * 0.5 + 0.5, 0.0, 1.0)
    sky = mix(params.sky_horizon, params.sky_zenith, t)

    def sun_glow(vector, color, intensity, directional):
        cos_angle = jnp.maximum(dot(direction, vector), 0.0)
        glow = color * intensity * jnp.power(cos_angle, SUN_GLOW_EXPONENT)
        return jnp.where(directional, glow, jnp.zeros_like(glow))

    glows = jax.vmap(sun_glow)(lights.vector, lights.color, lights.intensity, lights.directional)
    return sky + jnp.sum(glows, axis=0)
