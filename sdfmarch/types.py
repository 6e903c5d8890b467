import jax.numpy as jnp
from flax import struct
from dataclasses import field
from typing import NamedTuple, Sequence, Union

# --- Marching Configuration (Centralized) ---
MAX_FRACTAL_ITERATIONS = 50 # Hard cap for every escape-time / folding loop
DEFAULT_UP = jnp.array([0.0, 1.0, 0.0])

# March status codes carried as int32 through the jitted pipeline
HIT = 0
MISS = 1
EXHAUSTED = 2 # Step limit reached; rendered like a miss

# --- Type Aliases for Clarity ---
Point = jnp.ndarray # Shape (3,)
Color = jnp.ndarray # Linear RGB, shape (3,)


@struct.dataclass
class Ray:
    origin: jnp.ndarray          # Shape (..., 3)
    direction: jnp.ndarray       # Shape (..., 3), unit length


class DistanceSample(NamedTuple):
    """Signed distance to the nearest surface plus the material tag of that surface."""
    distance: jnp.ndarray # Scalar, negative inside
    material: jnp.ndarray # Scalar int32


# --- Sphere Tracing Loop State ---
class MarchState(NamedTuple):
    traveled: jnp.ndarray
    steps: jnp.ndarray
    distance: jnp.ndarray
    material: jnp.ndarray
    hit: jnp.ndarray


class MarchResult(NamedTuple):
    traveled: jnp.ndarray
    steps: jnp.ndarray
    material: jnp.ndarray
    status: jnp.ndarray # HIT, MISS or EXHAUSTED
    position: jnp.ndarray

    @property
    def hit(self):
        return self.status == HIT


class VolumeSample(NamedTuple):
    color: jnp.ndarray # Premultiplied accumulated color (3,)
    alpha: jnp.ndarray # Accumulated opacity in [0, 1]


# --- Light Data Structures ---
# Using flax.struct for automatic JAX PyTree registration

@struct.dataclass
class DirectionalLight:
    direction: jnp.ndarray # Direction vector *TO* the light source (normalized)
    color: jnp.ndarray = field(default_factory=lambda: jnp.ones(3))
    intensity: float = 1.0

@struct.dataclass
class PointLight:
    position: jnp.ndarray # Position in 3D space
    color: jnp.ndarray = field(default_factory=lambda: jnp.ones(3))
    intensity: float = 1.0
    # Falloff 1 / (1 + linear*d + quadratic*d^2)
    attenuation: jnp.ndarray = field(default_factory=lambda: jnp.array([0.0, 0.0]))

@struct.dataclass
class LightArray:
    """All lights stacked along axis 0 so the shading model can vmap over them."""
    vector: jnp.ndarray       # (L, 3) position for point lights, direction for directional ones
    color: jnp.ndarray        # (L, 3)
    intensity: jnp.ndarray    # (L,)
    attenuation: jnp.ndarray  # (L, 2)
    directional: jnp.ndarray  # (L,) bool

    @property
    def count(self) -> int:
        return self.vector.shape[0]


def stack_lights(lights: Sequence[Union[DirectionalLight, PointLight]]) -> LightArray:
    """Stack a heterogeneous list of lights into one LightArray."""
    if not lights:
        raise ValueError("At least one light is required")

    vectors, colors, intensities, attenuations, flags = [], [], [], [], []
    for light in lights:
        if isinstance(light, DirectionalLight):
            direction = jnp.asarray(light.direction, dtype=jnp.float32)
            vectors.append(direction / jnp.maximum(jnp.linalg.norm(direction), 1e-6))
            attenuations.append(jnp.zeros(2))
            flags.append(True)
        elif isinstance(light, PointLight):
            vectors.append(jnp.asarray(light.position, dtype=jnp.float32))
            attenuations.append(jnp.asarray(light.attenuation, dtype=jnp.float32))
            flags.append(False)
        else:
            raise ValueError(f"Unsupported light type: {type(light).__name__}")
        colors.append(jnp.asarray(light.color, dtype=jnp.float32))
        intensities.append(jnp.asarray(light.intensity, dtype=jnp.float32))

    return LightArray(
        vector=jnp.stack(vectors),
        color=jnp.stack(colors),
        intensity=jnp.stack(intensities),
        attenuation=jnp.stack(attenuations),
        directional=jnp.array(flags),
    )


# --- Material Data Structures ---

@struct.dataclass
class Material:
    albedo: jnp.ndarray     # Linear RGB reflectance (3,)
    specular: float = 0.3   # Specular strength
    shininess: float = 32.0 # Blinn-Phong exponent
    ambient: float = 1.0    # Multiplier on the global ambient term

@struct.dataclass
class MaterialTable:
    albedo: jnp.ndarray     # (M, 3)
    specular: jnp.ndarray   # (M,)
    shininess: jnp.ndarray  # (M,)
    ambient: jnp.ndarray    # (M,)

    def lookup(self, material_id) -> Material:
        """Resolve a material tag, clamping out-of-range tags into the table."""
        idx = jnp.clip(jnp.asarray(material_id, dtype=jnp.int32), 0, self.albedo.shape[0] - 1)
        return Material(
            albedo=self.albedo[idx],
            specular=self.specular[idx],
            shininess=self.shininess[idx],
            ambient=self.ambient[idx],
        )


def stack_materials(materials: Sequence[Material]) -> MaterialTable:
    if not materials:
        raise ValueError("At least one material is required")
    return MaterialTable(
        albedo=jnp.stack([jnp.asarray(m.albedo, dtype=jnp.float32) for m in materials]),
        specular=jnp.array([m.specular for m in materials], dtype=jnp.float32),
        shininess=jnp.array([m.shininess for m in materials], dtype=jnp.float32),
        ambient=jnp.array([m.ambient for m in materials], dtype=jnp.float32),
    )
