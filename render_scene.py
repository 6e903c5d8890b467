import jax
import numpy as np
from PIL import Image
import imageio.v3 as iio
from tqdm import tqdm
import os
import argparse

from sdfmarch.params import RenderParams
from sdfmarch.camera import camera_from_params
from sdfmarch.integrator import render_frame
from sdfmarch.palette import default_materials
from sdfmarch.types import stack_lights
from sdfmarch.utils import to_uint8


def build_params(args) -> RenderParams:
    """Map command-line flags onto RenderParams; anything not given keeps its default."""
    values = {
        "scene_type": args.scene,
        "sdf_type": args.sdf,
        "secondary_type": args.secondary,
        "boolean_op": args.op,
        "smooth_factor": args.smooth,
        "fractal_type": args.fractal,
        "power": args.power,
        "iterations": args.iterations,
        "max_steps": args.max_steps,
        "surface_threshold": args.threshold,
        "max_distance": args.max_distance,
        "step_scale": args.step_scale,
        "normal_method": args.normals,
        "enable_shadows": not args.no_shadows,
        "enable_soft_shadows": not args.hard_shadows,
        "shadow_sharpness": args.shadow_sharpness,
        "enable_ao": not args.no_ao,
        "fill_light_intensity": args.fill_light,
        "enable_volume": args.clouds or args.scene == "clouds",
        "cloud_density": args.cloud_density,
        "cloud_coverage": args.cloud_coverage,
        "volume_steps": args.volume_steps,
        "orbit_speed": args.orbit_speed,
        "fog_density": args.fog,
    }
    if args.light_position is not None:
        values["light_position"] = args.light_position
    return RenderParams.from_dict(values)


def save_png(image, path):
    img = Image.fromarray(to_uint8(image), 'RGB')
    img.save(path)
    print(f"PNG saved to {path}")


def format_stats(stats) -> str:
    return (f"{stats.frame_time * 1000.0:.1f} ms ({stats.fps:.1f} fps), "
            f"steps mean {stats.mean_steps:.1f} / max {stats.max_steps}, "
            f"hit {stats.hit_fraction * 100.0:.1f}%")


def main():
    # --- Argument Parsing ---
    parser = argparse.ArgumentParser(description="JAX SDF Ray Marcher")
    parser.add_argument('--width', type=int, default=640, help='Image width')
    parser.add_argument('--height', type=int, default=480, help='Image height')
    parser.add_argument('--scene', type=str, default="primitives",
                        choices=["primitives", "spheres", "shadows", "fractal", "clouds"], help='Scene to render')
    parser.add_argument('--sdf', type=str, default="sphere", help='Primary primitive (primitives scene)')
    parser.add_argument('--secondary', type=str, default="box", help='Second primitive (primitives scene)')
    parser.add_argument('--op', type=str, default="union", help='Boolean op: union, subtraction, intersection')
    parser.add_argument('--smooth', type=float, default=0.0, help='Smooth blend factor (0 = hard)')
    parser.add_argument('--fractal', type=str, default="mandelbulb",
                        help='Fractal: mandelbulb, julia, sierpinski, menger, kleinian')
    parser.add_argument('--power', type=float, default=8.0, help='Mandelbulb power')
    parser.add_argument('--iterations', type=int, default=12, help='Fractal iterations (capped at 50)')
    parser.add_argument('--max-steps', type=int, default=128, help='Maximum march steps per ray')
    parser.add_argument('--threshold', type=float, default=1e-3, help='Surface hit threshold')
    parser.add_argument('--max-distance', type=float, default=20.0, help='Far distance')
    parser.add_argument('--step-scale', type=float, default=1.0, help='Step multiplier (<1 for fractals)')
    parser.add_argument('--normals', type=str, default="central", choices=["central", "tetrahedral"],
                        help='Normal estimator')
    parser.add_argument('--no-shadows', action='store_true', help='Disable shadows')
    parser.add_argument('--hard-shadows', action='store_true', help='Use hard instead of soft shadows')
    parser.add_argument('--shadow-sharpness', type=float, default=16.0, help='Soft shadow k')
    parser.add_argument('--no-ao', action='store_true', help='Disable ambient occlusion')
    parser.add_argument('--light-position', type=float, nargs=3, default=None, help='Key light position')
    parser.add_argument('--fill-light', type=float, default=0.0, help='Directional fill light intensity')
    parser.add_argument('--clouds', action='store_true', help='Enable the volumetric cloud layer')
    parser.add_argument('--cloud-density', type=float, default=2.0, help='Cloud density')
    parser.add_argument('--cloud-coverage', type=float, default=0.5, help='Cloud coverage in [0, 1]')
    parser.add_argument('--volume-steps', type=int, default=24, help='Volume integration steps')
    parser.add_argument('--fog', type=float, default=0.04, help='Distance fog density')
    parser.add_argument('--frames', type=int, default=1, help='Number of frames (>1 renders an orbit animation)')
    parser.add_argument('--fps', type=float, default=24.0, help='Animation frame rate')
    parser.add_argument('--orbit-speed', type=float, default=0.2, help='Camera orbit speed (rad/s)')
    parser.add_argument('--output', type=str, default="output_render.png", help='Output image or animation path')
    args = parser.parse_args()

    print("JAX Devices:", jax.devices())

    try:
        params = build_params(args)
    except ValueError as e:
        parser.error(str(e))

    width, height = args.width, args.height
    materials = default_materials(params.object_color)
    lights = stack_lights(params.lights())

    if args.frames <= 1:
        print(f"Rendering {width}x{height} '{params.scene_type}' scene...")
        print("Compiling ray marcher (JIT)...")
        camera = camera_from_params(params, 0.0)
        image, stats = render_frame(camera, 0.0, params, width, height, materials=materials, lights=lights)
        print(f"Rendering finished: {format_stats(stats)}")
        save_png(image, args.output)
        return

    # --- Orbit Animation ---
    print(f"Rendering {args.frames} frames at {width}x{height} ('{params.scene_type}' scene)...")
    frames = []
    for frame_index in tqdm(range(args.frames), desc="Frames"):
        elapsed_time = frame_index / args.fps
        camera = camera_from_params(params, elapsed_time)
        image, stats = render_frame(camera, elapsed_time, params, width, height, materials=materials, lights=lights)
        frames.append(to_uint8(image))
        if frame_index == 0:
            tqdm.write(f"Frame 0 (includes compile): {format_stats(stats)}")

    tqdm.write(f"Last frame: {format_stats(stats)}")
    output_dir = os.path.dirname(args.output)
    if output_dir:
        os.makedirs(output_dir, exist_ok=True)
    iio.imwrite(args.output, np.stack(frames), duration=1000.0 / args.fps, loop=0)
    print(f"Animation saved to {args.output}")


if __name__ == "__main__":
    main()
