import dataclasses
from dataclasses import field

import jax.numpy as jnp
from flax import struct

from .types import DirectionalLight, PointLight


@struct.dataclass
class RenderParams:
    """Every knob the demo pages expose, with their default slider values.

    Fields that change the *shape* of the computation (scene/shape/op names,
    feature switches, loop lengths) are static and trigger a recompile when
    changed; everything else is a traced leaf and can be animated freely.
    """
    # --- Scene selection (static) ---
    scene_type: str = struct.field(pytree_node=False, default="primitives")
    sdf_type: str = struct.field(pytree_node=False, default="sphere")
    secondary_type: str = struct.field(pytree_node=False, default="box")
    boolean_op: str = struct.field(pytree_node=False, default="union")
    fractal_type: str = struct.field(pytree_node=False, default="mandelbulb")
    smooth_factor: float = 0.0

    # --- Fractal ---
    power: float = 8.0
    iterations: int = 12
    bailout_radius: float = 2.0
    fractal_scale: float = 2.0
    fractal_offset: float = 1.0
    julia_c: jnp.ndarray = field(default_factory=lambda: jnp.array([-0.2, 0.6, 0.2, 0.0]))

    # --- Object ---
    object_scale: float = 1.0
    object_offset: jnp.ndarray = field(default_factory=lambda: jnp.array([0.0, 0.0, 0.0]))
    object_color: jnp.ndarray = field(default_factory=lambda: jnp.array([0.8, 0.35, 0.2]))
    spin_speed: float = 0.5 # Radians per second applied to animated objects

    # --- Lights ---
    light_position: jnp.ndarray = field(default_factory=lambda: jnp.array([3.0, 5.0, 4.0]))
    light_color: jnp.ndarray = field(default_factory=lambda: jnp.array([1.0, 0.95, 0.85]))
    light_intensity: float = 1.2
    light_attenuation: jnp.ndarray = field(default_factory=lambda: jnp.array([0.0, 0.0]))
    fill_light_direction: jnp.ndarray = field(default_factory=lambda: jnp.array([-0.6, 0.4, -0.5]))
    fill_light_color: jnp.ndarray = field(default_factory=lambda: jnp.array([0.4, 0.5, 0.7]))
    fill_light_intensity: float = 0.0

    # --- Shadows & ambient occlusion ---
    enable_shadows: bool = struct.field(pytree_node=False, default=True)
    enable_soft_shadows: bool = struct.field(pytree_node=False, default=True)
    shadow_sharpness: float = 16.0
    shadow_steps: int = struct.field(pytree_node=False, default=64)
    shadow_bias: float = 0.01
    enable_ao: bool = struct.field(pytree_node=False, default=True)
    ao_intensity: float = 1.0
    ao_samples: int = struct.field(pytree_node=False, default=5)

    # --- Volume ---
    enable_volume: bool = struct.field(pytree_node=False, default=False)
    cloud_density: float = 2.0
    cloud_coverage: float = 0.5
    cloud_scale: float = 0.6
    cloud_bottom: float = 1.0
    cloud_top: float = 3.0
    cloud_ambient: float = 0.35
    wind: jnp.ndarray = field(default_factory=lambda: jnp.array([0.3, 0.0, 0.1]))
    volume_steps: int = struct.field(pytree_node=False, default=24)
    light_steps: int = struct.field(pytree_node=False, default=4)
    light_step_size: float = 0.25
    light_absorption: float = 1.5
    scattering_coefficient: float = 0.8
    phase_g: float = 0.6
    noise_octaves: int = struct.field(pytree_node=False, default=5)

    # --- Sphere tracer ---
    max_steps: int = 128
    surface_threshold: float = 1e-3
    max_distance: float = 20.0
    step_scale: float = 1.0
    normal_epsilon: float = 1e-3
    normal_method: str = struct.field(pytree_node=False, default="central")

    # --- Camera ---
    camera_angle: float = 0.6
    camera_distance: float = 4.5
    camera_height: float = 1.5
    fov_scale: float = 1.5
    orbit_speed: float = 0.2

    # --- Background ---
    sky_zenith: jnp.ndarray = field(default_factory=lambda: jnp.array([0.25, 0.45, 0.85]))
    sky_horizon: jnp.ndarray = field(default_factory=lambda: jnp.array([0.85, 0.78, 0.62]))
    fog_color: jnp.ndarray = field(default_factory=lambda: jnp.array([0.7, 0.72, 0.75]))
    fog_density: float = 0.04
    ambient_strength: float = 0.12

    def lights(self):
        """Key point light plus an optional directional fill light."""
        lights = [PointLight(
            position=jnp.asarray(self.light_position, dtype=jnp.float32),
            color=jnp.asarray(self.light_color, dtype=jnp.float32),
            intensity=self.light_intensity,
            attenuation=jnp.asarray(self.light_attenuation, dtype=jnp.float32),
        )]
        if float(self.fill_light_intensity) > 0.0:
            lights.append(DirectionalLight(
                direction=jnp.asarray(self.fill_light_direction, dtype=jnp.float32),
                color=jnp.asarray(self.fill_light_color, dtype=jnp.float32),
                intensity=self.fill_light_intensity,
            ))
        return lights

    @classmethod
    def from_dict(cls, values: dict) -> "RenderParams":
        """Build params from a widget/CLI mapping, rejecting unknown keys."""
        fields = {f.name: f for f in dataclasses.fields(cls)}
        unknown = sorted(set(values) - set(fields))
        if unknown:
            raise ValueError(f"Unknown render parameter(s): {', '.join(unknown)}")

        converted = {}
        for name, value in values.items():
            if isinstance(value, (list, tuple)):
                value = jnp.asarray(value, dtype=jnp.float32)
            converted[name] = value
        params = cls(**converted)
        params.validate()
        return params

    def validate(self) -> None:
        if float(self.max_distance) <= 0.0:
            raise ValueError(f"max_distance must be positive, got {self.max_distance}")
        if float(self.surface_threshold) <= 0.0:
            raise ValueError(f"surface_threshold must be positive, got {self.surface_threshold}")
        if int(self.max_steps) < 1:
            raise ValueError(f"max_steps must be at least 1, got {self.max_steps}")
        if self.volume_steps < 1:
            raise ValueError(f"volume_steps must be at least 1, got {self.volume_steps}")
        if self.normal_method not in ("central", "tetrahedral"):
            raise ValueError(f"Unknown normal method: {self.normal_method}")
