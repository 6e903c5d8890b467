import jax.numpy as jnp
from flax import struct
from dataclasses import field
from typing import Union

from .types import DistanceSample
from .geometry import (
    sd_sphere, sd_box, sd_round_box, sd_torus, sd_cylinder, sd_capsule,
    sd_octahedron, sd_plane, combine, BOOLEAN_OPS,
)
from .fractals import de_mandelbulb, de_julia, de_sierpinski, de_menger, de_kleinian
from .utils import rotate_xyz
from . import palette

PRIMITIVE_KINDS = ("sphere", "box", "round_box", "torus", "cylinder", "capsule", "octahedron", "plane")
FRACTAL_KINDS = ("mandelbulb", "julia", "sierpinski", "menger", "kleinian")

# --- Scene Nodes ---
# Node kinds, ops and material tags are static (part of the tree structure);
# numeric parameters are leaves so a rebuilt scene reuses the compiled frame.

@struct.dataclass
class Primitive:
    kind: str = struct.field(pytree_node=False)
    params: jnp.ndarray # Layout depends on kind, see the constructors below
    material: int = struct.field(pytree_node=False, default=0)

    def __post_init__(self):
        if self.kind not in PRIMITIVE_KINDS:
            raise ValueError(f"Unknown primitive kind: {self.kind}")

@struct.dataclass
class Boolean:
    op: str = struct.field(pytree_node=False)
    left: "Node"
    right: "Node"
    smooth: float = 0.0

    def __post_init__(self):
        if self.op not in BOOLEAN_OPS:
            raise ValueError(f"Unknown boolean op: {self.op}")

@struct.dataclass
class Fractal:
    kind: str = struct.field(pytree_node=False)
    power: float = 8.0
    iterations: int = 12
    bailout: float = 2.0
    scale: float = 2.0
    offset: float = 1.0
    julia_c: jnp.ndarray = field(default_factory=lambda: jnp.array([-0.2, 0.6, 0.2, 0.0]))
    material: int = struct.field(pytree_node=False, default=palette.FRACTAL)

    def __post_init__(self):
        if self.kind not in FRACTAL_KINDS:
            raise ValueError(f"Unknown fractal kind: {self.kind}")

@struct.dataclass
class Transform:
    child: "Node"
    offset: jnp.ndarray = field(default_factory=lambda: jnp.zeros(3))
    rotation: jnp.ndarray = field(default_factory=lambda: jnp.zeros(3)) # Euler XYZ, radians
    scale: float = 1.0 # Uniform, so the distance bound survives

@struct.dataclass
class Checker:
    child: "Node"
    alt_material: int = struct.field(pytree_node=False, default=palette.FLOOR_DARK)
    scale: float = 1.0

Node = Union[Primitive, Boolean, Fractal, Transform, Checker]


# --- Node Constructors ---

def sphere(radius, material=palette.OBJECT):
    return Primitive("sphere", jnp.array([radius], dtype=jnp.float32), material)

def box(half_extents, material=palette.OBJECT):
    return Primitive("box", jnp.broadcast_to(jnp.asarray(half_extents, dtype=jnp.float32), (3,)), material)

def round_box(half_extents, radius, material=palette.OBJECT):
    b = jnp.broadcast_to(jnp.asarray(half_extents, dtype=jnp.float32), (3,))
    return Primitive("round_box", jnp.concatenate([b, jnp.array([radius], dtype=jnp.float32)]), material)

def torus(major, minor, material=palette.OBJECT):
    return Primitive("torus", jnp.array([major, minor], dtype=jnp.float32), material)

def cylinder(radius, half_height, material=palette.OBJECT):
    return Primitive("cylinder", jnp.array([radius, half_height], dtype=jnp.float32), material)

def capsule(a, b, radius, material=palette.OBJECT):
    return Primitive("capsule", jnp.concatenate([
        jnp.asarray(a, dtype=jnp.float32), jnp.asarray(b, dtype=jnp.float32),
        jnp.array([radius], dtype=jnp.float32),
    ]), material)

def octahedron(size, material=palette.OBJECT):
    return Primitive("octahedron", jnp.array([size], dtype=jnp.float32), material)

def plane(normal=(0.0, 1.0, 0.0), offset=0.0, material=palette.FLOOR_LIGHT):
    n = jnp.asarray(normal, dtype=jnp.float32)
    n = n / jnp.maximum(jnp.linalg.norm(n), 1e-6)
    return Primitive("plane", jnp.concatenate([n, jnp.array([offset], dtype=jnp.float32)]), material)

def union(*nodes, smooth=0.0):
    """Left fold of two or more nodes under (smooth) union."""
    if len(nodes) < 2:
        raise ValueError("union needs at least two nodes")
    result = nodes[0]
    for node in nodes[1:]:
        result = Boolean("union", result, node, smooth)
    return result


# --- Evaluation ---

def _evaluate_primitive(node: Primitive, p) -> jnp.ndarray:
    q = node.params
    if node.kind == "sphere":
        return sd_sphere(p, q[0])
    elif node.kind == "box":
        return sd_box(p, q)
    elif node.kind == "round_box":
        return sd_round_box(p, q[:3], q[3])
    elif node.kind == "torus":
        return sd_torus(p, q)
    elif node.kind == "cylinder":
        return sd_cylinder(p, q[0], q[1])
    elif node.kind == "capsule":
        return sd_capsule(p, q[0:3], q[3:6], q[6])
    elif node.kind == "octahedron":
        return sd_octahedron(p, q[0])
    elif node.kind == "plane":
        return sd_plane(p, q[:3], q[3])
    raise ValueError(f"Unknown primitive kind: {node.kind}")

def _evaluate_fractal(node: Fractal, p) -> jnp.ndarray:
    if node.kind == "mandelbulb":
        return de_mandelbulb(p, node.power, node.iterations, node.bailout)
    elif node.kind == "julia":
        return de_julia(p, node.julia_c, node.iterations, node.bailout)
    elif node.kind == "sierpinski":
        return de_sierpinski(p, node.scale, node.offset, node.iterations)
    elif node.kind == "menger":
        return de_menger(p, node.scale, node.offset, node.iterations)
    elif node.kind == "kleinian":
        return de_kleinian(p, iterations=node.iterations, julia_c=node.julia_c[:3])
    raise ValueError(f"Unknown fractal kind: {node.kind}")

def evaluate(node: Node, p) -> DistanceSample:
    """Recursive scene distance: point (3,) -> DistanceSample."""
    if isinstance(node, Primitive):
        return DistanceSample(_evaluate_primitive(node, p), jnp.int32(node.material))
    elif isinstance(node, Fractal):
        return DistanceSample(_evaluate_fractal(node, p), jnp.int32(node.material))
    elif isinstance(node, Boolean):
        return combine(node.op, evaluate(node.left, p), evaluate(node.right, p), node.smooth)
    elif isinstance(node, Transform):
        local = rotate_xyz(p - node.offset, node.rotation) / node.scale
        sample = evaluate(node.child, local)
        return DistanceSample(sample.distance * node.scale, sample.material)
    elif isinstance(node, Checker):
        sample = evaluate(node.child, p)
        checker_val = jnp.floor(p[0] * node.scale) + jnp.floor(p[2] * node.scale)
        checker_idx = jnp.mod(jnp.abs(checker_val).astype(jnp.int32), 2)
        material = jnp.where(checker_idx == 0, sample.material, jnp.int32(node.alt_material))
        return DistanceSample(sample.distance, material)
    raise ValueError(f"Unknown scene node: {type(node).__name__}")

def scene_function(node: Node):
    """Close over a scene tree, giving the `point -> DistanceSample` function the tracer consumes."""
    return lambda p: evaluate(node, p)


# --- Scene Builders ---

def make_primitive(kind: str, size: float = 1.0, material=palette.OBJECT) -> Primitive:
    """Primitive of the given kind with the demo pages' default proportions."""
    if kind == "sphere":
        return sphere(0.5 * size, material)
    elif kind == "box":
        return box(0.4 * size, material)
    elif kind == "round_box":
        return round_box(0.35 * size, 0.08 * size, material)
    elif kind == "torus":
        return torus(0.5 * size, 0.15 * size, material)
    elif kind == "cylinder":
        return cylinder(0.35 * size, 0.5 * size, material)
    elif kind == "capsule":
        return capsule((0.0, -0.4 * size, 0.0), (0.0, 0.4 * size, 0.0), 0.25 * size, material)
    elif kind == "octahedron":
        return octahedron(0.6 * size, material)
    elif kind == "plane":
        return plane(material=material)
    raise ValueError(f"Unknown primitive kind: {kind}")

def checker_floor(height=-1.0, scale=1.0) -> Checker:
    return Checker(plane(offset=-height), palette.FLOOR_DARK, scale)

def _spin(params, elapsed_time):
    return jnp.array([0.0, params.spin_speed * elapsed_time, 0.0], dtype=jnp.float32)

def build_primitives_scene(params, elapsed_time):
    """Selected primitive combined with a second, bobbing shape, over a checker floor."""
    size = params.object_scale
    primary = make_primitive(params.sdf_type, size, palette.OBJECT)
    secondary = Transform(
        make_primitive(params.secondary_type, 0.8 * size, palette.SECONDARY),
        offset=jnp.array([0.35, 0.25 * jnp.sin(elapsed_time), 0.2], dtype=jnp.float32) * size,
    )
    # secondary is the left operand so subtraction carves it out of the primary
    shape = Boolean(params.boolean_op, secondary, primary, params.smooth_factor)
    shape = Transform(shape, offset=jnp.asarray(params.object_offset, dtype=jnp.float32),
                      rotation=_spin(params, elapsed_time))
    return union(checker_floor(-1.0), shape)

def build_spheres_scene(params, elapsed_time):
    """One large sphere flanked by two small ones."""
    return union(
        sphere(1.0, palette.SECONDARY),
        Transform(sphere(0.5, palette.SECONDARY), offset=jnp.array([2.0, 0.0, 0.0])),
        Transform(sphere(0.5, palette.SECONDARY), offset=jnp.array([-2.0, 0.0, 0.0])),
    )

def build_shadows_scene(params, elapsed_time):
    """Objects resting on a floor, for soft-shadow and AO demos."""
    size = params.object_scale
    return union(
        checker_floor(-1.0),
        Transform(sphere(0.6 * size, palette.OBJECT), offset=jnp.array([0.0, -0.4, 0.0])),
        Transform(round_box(0.35 * size, 0.05, palette.SECONDARY), offset=jnp.array([1.4, -0.65, 0.6]),
                  rotation=_spin(params, elapsed_time)),
        Transform(torus(0.45 * size, 0.12 * size, palette.ACCENT), offset=jnp.array([-1.4, -0.88, 0.4])),
        Transform(capsule((0.0, -0.5, 0.0), (0.0, 0.5, 0.0), 0.2 * size, palette.SECONDARY),
                  offset=jnp.array([0.3, -0.3, -1.5])),
    )

def build_fractal_scene(params, elapsed_time):
    """Selected fractal, slowly turning, with no floor."""
    fractal = Fractal(
        params.fractal_type,
        power=params.power,
        iterations=params.iterations,
        bailout=params.bailout_radius,
        scale=params.fractal_scale,
        offset=params.fractal_offset,
        julia_c=jnp.asarray(params.julia_c, dtype=jnp.float32),
    )
    return Transform(fractal, offset=jnp.asarray(params.object_offset, dtype=jnp.float32),
                     rotation=_spin(params, elapsed_time), scale=params.object_scale)

def build_clouds_scene(params, elapsed_time):
    """Ground plane with a landmark under the cloud layer."""
    return union(
        checker_floor(-1.0, scale=0.5),
        Transform(octahedron(0.7 * params.object_scale, palette.ACCENT), offset=jnp.array([0.0, -0.3, 0.0]),
                  rotation=_spin(params, elapsed_time)),
    )

SCENE_BUILDERS = {
    "primitives": build_primitives_scene,
    "spheres": build_spheres_scene,
    "shadows": build_shadows_scene,
    "fractal": build_fractal_scene,
    "clouds": build_clouds_scene,
}

def build_scene(params, elapsed_time: float = 0.0) -> Node:
    """Rebuild the scene tree for the current parameters and time."""
    builder = SCENE_BUILDERS.get(params.scene_type)
    if builder is None:
        raise ValueError(f"Unknown scene type: {params.scene_type}")
    return builder(params, elapsed_time)
