import jax.numpy as jnp
from jax import jit
import numpy as np

# --- Vector Utilities ---
def dot(v1, v2):
    return jnp.sum(v1 * v2, axis=-1)

def length(v):
    return jnp.sqrt(jnp.sum(v * v, axis=-1))

def normalize(v):
    """Normalize a vector."""
    # Add epsilon to avoid division by zero for zero-length vectors
    norm = jnp.linalg.norm(v, axis=-1, keepdims=True)
    return v / jnp.maximum(norm, 1e-6)

def reflect(v, n):
    """Reflect vector v around normal n."""
    return v - 2 * dot(v, n)[..., None] * n

# --- Scalar Helpers (GLSL-style) ---
def clamp(x, lo, hi):
    return jnp.minimum(jnp.maximum(x, lo), hi)

def mix(a, b, t):
    return a * (1.0 - t) + b * t

def smoothstep(edge0, edge1, x):
    t = clamp((x - edge0) / (edge1 - edge0), 0.0, 1.0)
    return t * t * (3.0 - 2.0 * t)

def fract(x):
    return x - jnp.floor(x)

# --- Rotation ---
def rotation_matrix_xyz(angles: jnp.ndarray) -> jnp.ndarray:
    """Rotation matrix for Euler angles applied about X, then Y, then Z (radians)."""
    cx, cy, cz = jnp.cos(angles[0]), jnp.cos(angles[1]), jnp.cos(angles[2])
    sx, sy, sz = jnp.sin(angles[0]), jnp.sin(angles[1]), jnp.sin(angles[2])
    rot_x = jnp.array([[1.0, 0.0, 0.0], [0.0, cx, -sx], [0.0, sx, cx]])
    rot_y = jnp.array([[cy, 0.0, sy], [0.0, 1.0, 0.0], [-sy, 0.0, cy]])
    rot_z = jnp.array([[cz, -sz, 0.0], [sz, cz, 0.0], [0.0, 0.0, 1.0]])
    return rot_z @ rot_y @ rot_x

def rotate_xyz(p: jnp.ndarray, angles: jnp.ndarray) -> jnp.ndarray:
    """Rotate point p into an object frame rotated by `angles` (inverse rotation)."""
    return rotation_matrix_xyz(angles).T @ p

# --- Color Conversion Utilities ---

@jit
def tonemap_reinhard(rgb_linear: jnp.ndarray) -> jnp.ndarray:
    """Map HDR linear color into [0, 1) with c / (c + 1)."""
    rgb = jnp.maximum(rgb_linear, 0.0)
    return rgb / (rgb + 1.0)

@jit
def linear_rgb_to_srgb(rgb_linear: jnp.ndarray) -> jnp.ndarray:
    """Apply sRGB gamma correction."""
    a = 0.055
    return jnp.where(
        rgb_linear <= 0.0031308,
        12.92 * rgb_linear,
        (1.0 + a) * jnp.power(jnp.maximum(rgb_linear, 1e-9), 1.0 / 2.4) - a # Increased epsilon slightly
    )

def to_uint8(image: jnp.ndarray) -> np.ndarray:
    """Convert a display-ready [0, 1] float buffer into an 8-bit numpy image."""
    image_np = np.asarray(image)
    return (np.clip(image_np, 0.0, 1.0) * 255.0 + 0.5).astype(np.uint8)
