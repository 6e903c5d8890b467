import jax
import jax.numpy as jnp
import numpy as np
import pytest
import sys
import os

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from sdfmarch.types import DistanceSample, Material, PointLight, DirectionalLight, stack_lights
from sdfmarch.geometry import sd_sphere, sd_plane
from sdfmarch.lighting import (
    hard_shadow, soft_shadow, ambient_occlusion, shade, sky_color, apply_fog,
)
from sdfmarch.params import RenderParams
from sdfmarch.utils import normalize

UP = jnp.array([0.0, 1.0, 0.0])

@pytest.fixture
def sphere_scene():
    return lambda p: DistanceSample(sd_sphere(p, 1.0), jnp.int32(0))

@pytest.fixture
def floor_scene():
    return lambda p: DistanceSample(sd_plane(p, UP, 0.0), jnp.int32(0))

# --- Tests for shadows ---

@pytest.mark.parametrize("shadow_fn", [hard_shadow, soft_shadow])
def test_blocked_light_is_dark(sphere_scene, shadow_fn):
    """A point behind a sphere, lit from the far side, is fully shadowed."""
    p = jnp.array([3.0, 0.0, 0.0])
    normal = jnp.array([1.0, 0.0, 0.0])
    light_dir = jnp.array([-1.0, 0.0, 0.0])
    assert shadow_fn(sphere_scene, p, normal, light_dir, 13.0) < 1e-3

@pytest.mark.parametrize("shadow_fn", [hard_shadow, soft_shadow])
def test_unobstructed_light_is_full(sphere_scene, shadow_fn):
    p = jnp.array([3.0, 0.0, 0.0])
    normal = jnp.array([1.0, 0.0, 0.0])
    light_dir = jnp.array([1.0, 0.0, 0.0])
    assert jnp.allclose(shadow_fn(sphere_scene, p, normal, light_dir, 10.0), 1.0)

def test_soft_shadow_in_unit_range_and_sharpness(sphere_scene):
    """Grazing rays give a partial shadow; a larger k makes it lighter (sharper edge)."""
    p = jnp.array([3.0, 1.15, 0.0])
    normal = UP
    light_dir = jnp.array([-1.0, 0.0, 0.0])
    soft = soft_shadow(sphere_scene, p, normal, light_dir, 13.0, k=4.0)
    sharp = soft_shadow(sphere_scene, p, normal, light_dir, 13.0, k=64.0)
    assert 0.0 <= soft <= 1.0
    assert 0.0 <= sharp <= 1.0
    assert soft < 1.0
    assert sharp >= soft

# --- Tests for ambient occlusion ---

def test_ao_open_plane_is_one(floor_scene):
    ao = ambient_occlusion(floor_scene, jnp.zeros(3), UP)
    assert jnp.allclose(ao, 1.0, atol=1e-5)

def test_ao_crease_is_darker():
    wall_normal = jnp.array([1.0, 0.0, 0.0])
    crease = lambda p: DistanceSample(
        jnp.minimum(sd_plane(p, UP, 0.0), sd_plane(p, wall_normal, 0.0)), jnp.int32(0))
    ao = ambient_occlusion(crease, jnp.array([0.05, 0.0, 0.0]), UP)
    assert 0.0 <= ao < 0.9

# --- Tests for the shading model ---

def test_fog_blend():
    color = jnp.array([1.0, 0.0, 0.0])
    fog = jnp.array([0.5, 0.5, 0.5])
    assert jnp.allclose(apply_fog(color, 0.0, fog, 0.1), color)
    assert jnp.allclose(apply_fog(color, 1e4, fog, 0.1), fog, atol=1e-5)

def test_shade_head_on_point_light(sphere_scene):
    """Normal facing a point light dead on: ambient + albedo + specular."""
    params = RenderParams(enable_shadows=False, enable_ao=False, fog_density=0.0, ambient_strength=0.1)
    material = Material(albedo=jnp.array([0.5, 0.25, 0.1]), specular=0.4, shininess=16.0, ambient=1.0)
    lights = stack_lights([PointLight(position=jnp.array([5.0, 0.0, 0.0]))])
    position = jnp.array([1.0, 0.0, 0.0])
    normal = jnp.array([1.0, 0.0, 0.0])
    view_dir = jnp.array([-1.0, 0.0, 0.0])
    color = shade(sphere_scene, position, normal, view_dir, material, lights, params, 4.0)
    expected = 0.1 * np.array([0.5, 0.25, 0.1]) + np.array([0.5, 0.25, 0.1]) + 0.4
    assert jnp.allclose(color, expected, atol=1e-5)

def test_shade_attenuation_and_backface(sphere_scene):
    params = RenderParams(enable_shadows=False, enable_ao=False, fog_density=0.0, ambient_strength=0.0)
    material = Material(albedo=jnp.ones(3), specular=0.0)
    position = jnp.array([1.0, 0.0, 0.0])
    normal = jnp.array([1.0, 0.0, 0.0])
    view_dir = jnp.array([-1.0, 0.0, 0.0])

    # Light 4 units away with linear falloff 0.25 -> 1 / (1 + 1) = 0.5
    lights = stack_lights([PointLight(position=jnp.array([5.0, 0.0, 0.0]), attenuation=jnp.array([0.25, 0.0]))])
    color = shade(sphere_scene, position, normal, view_dir, material, lights, params, 0.0)
    assert jnp.allclose(color, 0.5, atol=1e-5)

    # Light behind the surface contributes nothing
    behind = stack_lights([DirectionalLight(direction=jnp.array([-1.0, 0.0, 0.0]))])
    color = shade(sphere_scene, position, normal, view_dir, material, behind, params, 0.0)
    assert jnp.allclose(color, 0.0, atol=1e-6)

@pytest.mark.parametrize("soft", [True, False])
def test_shade_blocked_point_light_is_black(soft):
    """A sphere between a floor point and the only light leaves the point unlit."""
    scene_fn = lambda p: DistanceSample(
        jnp.minimum(sd_plane(p, UP, 0.0), sd_sphere(p - jnp.array([0.0, 1.0, 0.0]), 0.5)), jnp.int32(0))
    material = Material(albedo=jnp.ones(3), specular=0.5)
    lights = stack_lights([PointLight(position=jnp.array([0.0, 3.0, 0.0]))])
    position = jnp.zeros(3)
    view_dir = normalize(jnp.array([1.0, -1.0, 0.0]))

    unshadowed = RenderParams(enable_shadows=False, enable_ao=False, fog_density=0.0, ambient_strength=0.0)
    lit = shade(scene_fn, position, UP, view_dir, material, lights, unshadowed, 3.0)
    assert jnp.all(lit > 0.1)

    shadowed = unshadowed.replace(enable_shadows=True, enable_soft_shadows=soft)
    color = shade(scene_fn, position, UP, view_dir, material, lights, shadowed, 3.0)
    assert jnp.allclose(color, 0.0, atol=1e-6)

def test_shade_with_shadows_and_ao_stays_finite(sphere_scene):
    params = RenderParams()
    material = Material(albedo=jnp.array([0.8, 0.8, 0.8]))
    lights = stack_lights(params.lights())
    position = jnp.array([0.0, 1.0, 0.0])
    color = shade(sphere_scene, position, UP, -UP, material, lights, params, 3.0)
    assert jnp.all(jnp.isfinite(color))
    assert jnp.all(color >= 0.0)

# --- Tests for the sky ---

def test_sky_gradient_endpoints():
    params = RenderParams()
    lights = stack_lights([PointLight(position=jnp.array([0.0, 5.0, 0.0]))])
    assert jnp.allclose(sky_color(UP, params, lights), params.sky_zenith, atol=1e-6)
    assert jnp.allclose(sky_color(-UP, params, lights), params.sky_horizon, atol=1e-6)

def test_sky_sun_glow_from_directional_light():
    params = RenderParams()
    sun_dir = jnp.array([0.0, 0.0, 1.0])
    lights = stack_lights([DirectionalLight(direction=sun_dir, intensity=2.0)])
    toward_sun = sky_color(sun_dir, params, lights)
    away = sky_color(-sun_dir, params, lights)
    assert jnp.all(toward_sun > away)
