import jax
import jax.numpy as jnp
import pytest
import sys
import os

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from sdfmarch.params import RenderParams
from sdfmarch import palette
from sdfmarch.scene import (
    Primitive, Boolean, Fractal, Transform, Checker,
    sphere, box, torus, plane, union, evaluate, scene_function,
    build_scene, make_primitive, PRIMITIVE_KINDS, SCENE_BUILDERS,
)

# --- Tests for node evaluation ---

def test_primitive_sample_carries_material():
    sample = evaluate(sphere(1.0, material=palette.ACCENT), jnp.array([2.0, 0.0, 0.0]))
    assert jnp.allclose(sample.distance, 1.0)
    assert sample.material == palette.ACCENT
    assert sample.material.dtype == jnp.int32

def test_transform_translation_and_scale():
    moved = Transform(sphere(1.0), offset=jnp.array([2.0, 0.0, 0.0]))
    assert jnp.allclose(evaluate(moved, jnp.array([2.0, 0.0, 0.0])).distance, -1.0)

    scaled = Transform(sphere(1.0), scale=2.0)
    assert jnp.allclose(evaluate(scaled, jnp.array([4.0, 0.0, 0.0])).distance, 2.0)

def test_transform_rotation():
    """A long thin box rotated 90 degrees about Z points along Y."""
    thin = box(jnp.array([1.0, 0.1, 0.1]))
    rotated = Transform(thin, rotation=jnp.array([0.0, 0.0, jnp.pi / 2]))
    p = jnp.array([0.0, 0.5, 0.0])
    assert evaluate(thin, p).distance > 0.0
    assert jnp.allclose(evaluate(rotated, p).distance, -0.1, atol=1e-5)

def test_boolean_node_material():
    node = Boolean("union", sphere(0.5, material=2), Transform(sphere(0.5, material=3), offset=jnp.array([3.0, 0.0, 0.0])))
    assert evaluate(node, jnp.array([-1.0, 0.0, 0.0])).material == 2
    assert evaluate(node, jnp.array([4.0, 0.0, 0.0])).material == 3

def test_subtraction_carves_left_from_right():
    carved = Boolean("subtraction", sphere(0.5), box(1.0))
    # Centre is inside the carved-out sphere, so outside the result
    assert evaluate(carved, jnp.zeros(3)).distance > 0.0
    assert evaluate(carved, jnp.array([0.8, 0.8, 0.0])).distance < 0.0

def test_checker_alternates_materials():
    floor = Checker(plane(material=palette.FLOOR_LIGHT), palette.FLOOR_DARK, 1.0)
    assert evaluate(floor, jnp.array([0.5, 0.0, 0.5])).material == palette.FLOOR_LIGHT
    assert evaluate(floor, jnp.array([1.5, 0.0, 0.5])).material == palette.FLOOR_DARK
    assert evaluate(floor, jnp.array([-0.5, 0.0, 0.5])).material == palette.FLOOR_DARK

def test_fractal_node_evaluates():
    node = Fractal("sierpinski", iterations=8)
    assert jnp.isfinite(evaluate(node, jnp.array([0.2, 0.1, -0.3])).distance)

def test_union_helper_folds_nodes():
    node = union(sphere(0.5), torus(1.0, 0.1), box(0.2))
    assert isinstance(node, Boolean)
    assert jnp.allclose(evaluate(node, jnp.zeros(3)).distance, -0.5)

def test_scene_function_is_jittable():
    scene_fn = scene_function(union(sphere(0.5), plane(offset=1.0)))
    d = jax.jit(lambda p: scene_fn(p).distance)(jnp.array([0.0, 0.0, 2.0]))
    assert jnp.allclose(d, 1.0)

# --- Tests for builders ---

@pytest.mark.parametrize("kind", PRIMITIVE_KINDS)
def test_every_primitive_kind_builds(kind):
    node = make_primitive(kind, 1.0)
    assert jnp.isfinite(evaluate(node, jnp.array([0.3, 0.2, 0.1])).distance)

@pytest.mark.parametrize("scene_type", sorted(SCENE_BUILDERS))
def test_every_scene_type_builds(scene_type):
    params = RenderParams(scene_type=scene_type)
    node = build_scene(params, 1.25)
    sample = evaluate(node, jnp.array([0.0, 2.0, 3.0]))
    assert jnp.isfinite(sample.distance)

def test_scene_rebuild_keeps_structure():
    """Time only moves leaves, so a rebuilt scene reuses the compiled function."""
    params = RenderParams()
    first = jax.tree_util.tree_structure(build_scene(params, 0.0))
    second = jax.tree_util.tree_structure(build_scene(params, 3.0))
    assert first == second

def test_primitives_scene_has_floor():
    node = build_scene(RenderParams(), 0.0)
    assert jnp.allclose(evaluate(node, jnp.array([10.0, -1.0, 10.0])).distance, 0.0, atol=1e-5)

@pytest.mark.parametrize("overrides", [
    dict(scene_type="terrain"),
    dict(sdf_type="blob"),
    dict(secondary_type="teapot"),
    dict(boolean_op="xor"),
    dict(scene_type="fractal", fractal_type="buddhabrot"),
])
def test_builders_reject_unknown_names(overrides):
    with pytest.raises(ValueError):
        build_scene(RenderParams(**overrides), 0.0)

def test_nodes_reject_unknown_kinds():
    with pytest.raises(ValueError):
        Primitive("blob", jnp.zeros(1))
    with pytest.raises(ValueError):
        Boolean("xor", sphere(1.0), sphere(1.0))
    with pytest.raises(ValueError):
        Fractal("buddhabrot")
    with pytest.raises(ValueError):
        union(sphere(1.0))
