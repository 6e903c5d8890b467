import time
import jax
import jax.numpy as jnp
from jax import lax
from functools import partial
from typing import NamedTuple, Optional

from .types import Ray, LightArray, MaterialTable, stack_lights
from .camera import Camera
from .scene import Node, build_scene, scene_function
from .tracer import march, NORMAL_ESTIMATORS
from .lighting import shade, sky_color
from .volume import integrate_volume, composite
from .palette import default_materials
from .utils import tonemap_reinhard, linear_rgb_to_srgb, to_uint8


class FrameStats(NamedTuple):
    frame_time: float   # Seconds, compile time included on the first frame
    fps: float
    mean_steps: float
    max_steps: int
    hit_fraction: float


# --- Per-Pixel Pipeline ---
def render_pixel(
    scene: Node,
    materials: MaterialTable,
    lights: LightArray,
    params,
    elapsed_time: float,
    ray: Ray,
):
    """Render a single pixel: march, shade or sky, optional volume, tonemap.

    Returns (display color in [0, 1], steps taken, hit flag).
    """
    scene_fn = scene_function(scene)
    result = march(
        scene_fn, ray.origin, ray.direction,
        max_steps=params.max_steps,
        surface_threshold=params.surface_threshold,
        max_distance=params.max_distance,
        step_scale=params.step_scale,
    )

    def handle_hit():
        normal = NORMAL_ESTIMATORS[params.normal_method](scene_fn, result.position, params.normal_epsilon)
        material = materials.lookup(result.material)
        return shade(scene_fn, result.position, normal, ray.direction, material, lights, params, result.traveled)

    def handle_miss():
        return sky_color(ray.direction, params, lights)

    # Exhausted rays fall through to the background like misses
    color = lax.cond(result.hit, handle_hit, handle_miss)

    if params.enable_volume:
        t_max = jnp.where(result.hit, result.traveled, params.max_distance)
        volume, _ = integrate_volume(ray.origin, ray.direction, t_max, elapsed_time, params, lights)
        color = composite(color, volume)

    color = linear_rgb_to_srgb(tonemap_reinhard(color))
    return jnp.clip(color, 0.0, 1.0), result.steps, result.hit


# --- Vmap Definitions ---
ray_in_axes = Ray(origin=0, direction=0)

# Axes for mapping render_pixel across pixels
pixel_axes = (
    None,  # scene
    None,  # materials
    None,  # lights
    None,  # params
    None,  # elapsed_time
    ray_in_axes,  # Ray (map axis 0 of row data)
)

# Vmap render_pixel over a row (width), then the row renderer over the height
render_row = jax.vmap(render_pixel, in_axes=pixel_axes)
render_image_pixels = jax.vmap(render_row, in_axes=pixel_axes)


@partial(jax.jit, static_argnames=('width', 'height'))
def render_image(
    camera: Camera,
    scene: Node,
    materials: MaterialTable,
    lights: LightArray,
    params,
    elapsed_time: float,
    width: int,
    height: int,
):
    """Render every pixel. Returns (image (H, W, 3), steps (H, W), hits (H, W))."""
    rays = camera.generate_rays(width, height)
    return render_image_pixels(scene, materials, lights, params, elapsed_time, rays)


# --- Frame Assembly ---
def render_frame(
    camera: Camera,
    elapsed_time: float,
    params,
    width: int,
    height: int,
    scene: Optional[Node] = None,
    materials: Optional[MaterialTable] = None,
    lights=None,
):
    """Produce one display-ready frame and its statistics.

    The scene, material table and lights are built from `params` unless
    given. Scene kinds and feature switches are static, so changing them
    recompiles; numeric parameters and time do not.
    """
    if width < 1 or height < 1:
        raise ValueError(f"Frame size must be positive, got {width}x{height}")

    if scene is None:
        scene = build_scene(params, elapsed_time)
    if materials is None:
        materials = default_materials(params.object_color)
    if lights is None:
        lights = params.lights()
    if not isinstance(lights, LightArray):
        lights = stack_lights(lights)

    start_time = time.perf_counter()
    image, steps, hits = render_image(
        camera, scene, materials, lights, params,
        jnp.float32(elapsed_time), width=width, height=height,
    )
    image.block_until_ready()
    frame_time = time.perf_counter() - start_time

    stats = FrameStats(
        frame_time=frame_time,
        fps=1.0 / max(frame_time, 1e-9),
        mean_steps=float(jnp.mean(steps)),
        max_steps=int(jnp.max(steps)),
        hit_fraction=float(jnp.mean(hits)),
    )
    return image, stats


__all__ = ["FrameStats", "render_pixel", "render_image", "render_frame", "to_uint8"]
