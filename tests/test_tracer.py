import jax
import jax.numpy as jnp
import pytest
import sys
import os

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from sdfmarch.types import DistanceSample, HIT, MISS, EXHAUSTED
from sdfmarch.geometry import sd_sphere
from sdfmarch.scene import scene_function, sphere
from sdfmarch.tracer import march, estimate_normal, estimate_normal_tetrahedral
from sdfmarch.utils import normalize

MAX_STEPS = 64

@pytest.fixture
def unit_sphere_scene():
    return scene_function(sphere(0.5, material=3))

# --- Tests for march ---

@pytest.mark.parametrize("start", [1.5, 3.0, 7.5])
def test_hits_sphere_at_expected_distance(unit_sphere_scene, start):
    """A ray from (D, 0, 0) toward the origin stops at D - r."""
    result = march(unit_sphere_scene, jnp.array([start, 0.0, 0.0]), jnp.array([-1.0, 0.0, 0.0]),
                   max_steps=MAX_STEPS)
    assert result.status == HIT
    assert result.hit
    assert jnp.allclose(result.traveled, start - 0.5, atol=1e-3)
    assert result.material == 3
    assert jnp.allclose(result.position, jnp.array([0.5, 0.0, 0.0]), atol=1e-3)

def test_backward_ray_misses(unit_sphere_scene):
    result = march(unit_sphere_scene, jnp.array([3.0, 0.0, 0.0]), jnp.array([1.0, 0.0, 0.0]),
                   max_steps=MAX_STEPS, max_distance=20.0)
    assert result.status == MISS
    assert result.steps <= MAX_STEPS

def test_zero_direction_terminates(unit_sphere_scene):
    """A degenerate ray never moves but the step counter still ends the loop."""
    result = march(unit_sphere_scene, jnp.array([3.0, 0.0, 0.0]), jnp.zeros(3), max_steps=MAX_STEPS)
    assert result.steps <= MAX_STEPS
    assert not result.hit

def test_ray_starting_inside_hits_at_origin(unit_sphere_scene):
    """Inside a solid the ray stops where it starts instead of stepping backwards."""
    result = march(unit_sphere_scene, jnp.zeros(3), jnp.array([0.0, 0.0, 1.0]), max_steps=MAX_STEPS)
    assert result.status == HIT
    assert result.steps == 1
    assert result.traveled == 0.0
    assert jnp.allclose(result.position, jnp.zeros(3))

def test_step_limit_exhaustion():
    # A field that never reaches the threshold but advances very slowly
    scene_fn = lambda p: DistanceSample(jnp.float32(1e-2), jnp.int32(0))
    result = march(scene_fn, jnp.zeros(3), jnp.array([0.0, 0.0, 1.0]), max_steps=MAX_STEPS, max_distance=100.0)
    assert result.status == EXHAUSTED
    assert result.steps == MAX_STEPS
    assert not result.hit

@pytest.mark.parametrize("bad_value", [jnp.nan, jnp.inf, -jnp.inf])
def test_non_finite_scene_is_a_miss(bad_value):
    scene_fn = lambda p: DistanceSample(jnp.float32(bad_value), jnp.int32(0))
    result = march(scene_fn, jnp.zeros(3), jnp.array([0.0, 0.0, 1.0]), max_steps=MAX_STEPS)
    assert result.status == MISS
    assert result.steps == 1
    assert jnp.all(jnp.isfinite(result.position))

def test_every_ray_terminates_within_max_steps(unit_sphere_scene):
    random_dirs = normalize(jax.random.normal(jax.random.PRNGKey(1), (128, 3)))
    directions = jnp.concatenate([jnp.array([[0.0, 0.0, -1.0]]), random_dirs])
    origin = jnp.array([0.0, 0.0, 2.0])
    results = jax.vmap(lambda d: march(unit_sphere_scene, origin, d, max_steps=MAX_STEPS))(directions)
    assert jnp.all(results.steps <= MAX_STEPS)
    assert jnp.all(jnp.isin(results.status, jnp.array([HIT, MISS, EXHAUSTED])))
    # The ray aimed straight at the sphere hits
    assert results.hit[0]

def test_march_under_jit(unit_sphere_scene):
    jitted = jax.jit(lambda o, d: march(unit_sphere_scene, o, d, max_steps=MAX_STEPS))
    result = jitted(jnp.array([0.0, 0.0, 2.0]), jnp.array([0.0, 0.0, -1.0]))
    assert result.hit
    assert jnp.allclose(result.traveled, 1.5, atol=1e-3)

# --- Tests for normal estimation ---

@pytest.mark.parametrize("estimator", [estimate_normal, estimate_normal_tetrahedral])
def test_sphere_normal_points_away_from_centre(estimator):
    centre = jnp.array([0.3, -0.2, 0.1])
    scene_fn = lambda p: DistanceSample(sd_sphere(p - centre, 1.0), jnp.int32(0))
    direction = normalize(jnp.array([1.0, 1.0, -0.5]))
    p = centre + direction
    assert jnp.allclose(estimator(scene_fn, p, 1e-3), direction, atol=1e-3)

@pytest.mark.parametrize("estimator", [estimate_normal, estimate_normal_tetrahedral])
def test_flat_field_gives_default_up(estimator):
    scene_fn = lambda p: DistanceSample(jnp.float32(0.25), jnp.int32(0))
    normal = estimator(scene_fn, jnp.array([1.0, 2.0, 3.0]), 1e-3)
    assert jnp.allclose(normal, jnp.array([0.0, 1.0, 0.0]))

def test_normal_is_unit_length():
    scene_fn = lambda p: DistanceSample(sd_sphere(p, 0.5), jnp.int32(0))
    n = estimate_normal(scene_fn, jnp.array([0.2, 0.4, -0.1]), 1e-3)
    assert jnp.allclose(jnp.linalg.norm(n), 1.0, atol=1e-5)
