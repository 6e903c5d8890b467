import jax
import jax.numpy as jnp
from flax import struct
from dataclasses import field
from functools import partial

from .types import Ray, DEFAULT_UP
from .utils import normalize

@struct.dataclass
class Camera:
    # Extrinsics (Position & Orientation)
    eye: jnp.ndarray = field(default_factory=lambda: jnp.array([0.0, 1.5, 4.5]))
    center: jnp.ndarray = field(default_factory=lambda: jnp.array([0.0, 0.0, 0.0]))
    up: jnp.ndarray = field(default_factory=lambda: jnp.array([0.0, 1.0, 0.0]))

    # Distance from eye to the image plane, in units of half the image height
    fov_scale: float = 1.5

    def basis(self):
        """Orthonormal (right, up, forward) frame looking from eye towards center."""
        forward = normalize(self.center - self.eye)
        right = jnp.cross(forward, self.up)
        # Looking straight along `up` leaves the cross product degenerate
        fallback = jnp.cross(forward, jnp.array([0.0, 0.0, 1.0]))
        right = normalize(jnp.where(jnp.linalg.norm(right) < 1e-6, fallback, right))
        up = jnp.cross(right, forward)
        return right, up, forward

    def ray_for_pixel(self, x, y, width: int, height: int) -> Ray:
        """Primary ray through the centre of pixel (x, y), origin at the top-left.

        Image-plane coordinates are normalised by the height, so the vertical
        field of view is fixed by fov_scale and wide images see more sideways.
        """
        right, up, forward = self.basis()
        x_ndc = (2.0 * (x + 0.5) - width) / height
        y_ndc = (height - 2.0 * (y + 0.5)) / height
        direction = normalize(x_ndc * right + y_ndc * up + self.fov_scale * forward)
        return Ray(origin=self.eye, direction=direction)

    @partial(jax.jit, static_argnames=['width', 'height'])
    def generate_rays(self, width: int, height: int) -> Ray:
        """Generate one ray per pixel centre; no jitter, so frames are reproducible."""
        x, y = jnp.meshgrid(jnp.arange(width, dtype=jnp.float32), jnp.arange(height, dtype=jnp.float32))
        right, up, forward = self.basis()

        x_ndc = (2.0 * (x + 0.5) - width) / height
        y_ndc = (height - 2.0 * (y + 0.5)) / height
        ray_dir = (x_ndc[..., None] * right + y_ndc[..., None] * up + self.fov_scale * forward)

        # Origin is the camera eye position for all rays
        ray_origin = jnp.tile(self.eye[None, None, :], (height, width, 1))

        return Ray(
            origin=ray_origin,
            direction=normalize(ray_dir),
        )

    @classmethod
    def orbit(cls, angle, distance=4.5, height=1.5, target=(0.0, 0.0, 0.0), fov_scale=1.5) -> "Camera":
        """Camera circling `target` in the XZ plane, as driven by pointer drag or time."""
        target = jnp.asarray(target, dtype=jnp.float32)
        eye = target + jnp.array([
            distance * jnp.sin(angle),
            height,
            distance * jnp.cos(angle),
        ], dtype=jnp.float32)
        return cls(eye=eye, center=target, up=DEFAULT_UP, fov_scale=fov_scale)


def camera_from_params(params, elapsed_time: float = 0.0) -> Camera:
    """Orbit camera from RenderParams, advanced by orbit_speed over time."""
    angle = params.camera_angle + params.orbit_speed * elapsed_time
    return Camera.orbit(
        angle,
        distance=params.camera_distance,
        height=params.camera_height,
        target=params.object_offset,
        fov_scale=params.fov_scale,
    )
