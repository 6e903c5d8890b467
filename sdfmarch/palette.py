import jax.numpy as jnp

from .types import Material, MaterialTable, stack_materials

# Material tags used by the scene builders; they index the default table below
FLOOR_LIGHT = 0
FLOOR_DARK = 1
OBJECT = 2
SECONDARY = 3
FRACTAL = 4
ACCENT = 5


# --- Material Definition Helper ---
def create_material(profile_type: str, value: float = None) -> Material:
    """Helper to create simple named materials; `value` scales the albedo."""
    scale = value if value is not None else 1.0

    if profile_type == "flat":
        # Neutral grey diffuse
        return Material(albedo=jnp.full((3,), 0.8 * scale), specular=0.1, shininess=16.0)

    elif profile_type == "floor_light":
        return Material(albedo=jnp.array([0.75, 0.75, 0.72]) * scale, specular=0.05, shininess=8.0)

    elif profile_type == "floor_dark":
        return Material(albedo=jnp.array([0.28, 0.28, 0.3]) * scale, specular=0.05, shininess=8.0)

    elif profile_type == "red":
        return Material(albedo=jnp.array([0.8, 0.12, 0.1]) * scale, specular=0.4, shininess=48.0)

    elif profile_type == "green":
        return Material(albedo=jnp.array([0.15, 0.7, 0.2]) * scale, specular=0.4, shininess=48.0)

    elif profile_type == "blue":
        # Matches the tint of the basic sphere-march demo
        return Material(albedo=jnp.array([0.4, 0.7, 1.0]) * scale, specular=0.4, shininess=48.0)

    elif profile_type == "gold":
        # Metals: coloured specular approximated by a strong, tight highlight
        return Material(albedo=jnp.array([0.9, 0.65, 0.2]) * scale, specular=0.9, shininess=96.0, ambient=0.6)

    elif profile_type == "copper":
        return Material(albedo=jnp.array([0.85, 0.45, 0.3]) * scale, specular=0.8, shininess=64.0, ambient=0.6)

    elif profile_type == "silver":
        return Material(albedo=jnp.array([0.85, 0.87, 0.9]) * scale, specular=0.9, shininess=128.0, ambient=0.6)

    elif profile_type == "rubber":
        return Material(albedo=jnp.array([0.1, 0.1, 0.11]) * scale, specular=0.05, shininess=4.0)

    elif profile_type == "bone":
        # Soft off-white used for fractals, where AO carries most of the shape
        return Material(albedo=jnp.array([0.9, 0.85, 0.75]) * scale, specular=0.2, shininess=24.0)

    else:
        raise ValueError(f"Unknown material profile type: {profile_type}")


def default_materials(object_color=None) -> MaterialTable:
    """Material table in tag order; the OBJECT slot takes the user-picked colour."""
    obj = create_material("flat")
    if object_color is not None:
        obj = obj.replace(albedo=jnp.asarray(object_color, dtype=jnp.float32), specular=0.4, shininess=48.0)
    return stack_materials([
        create_material("floor_light"),
        create_material("floor_dark"),
        obj,
        create_material("blue"),
        create_material("bone"),
        create_material("gold"),
    ])
