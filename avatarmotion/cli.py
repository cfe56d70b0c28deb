import os
import sys
import argparse

from .pipeline import prepare_animations
from .utils.diagnostics import Diagnostics
from .utils.errors import RigPairError, SkeletonNotFoundError
from .utils.npz_io import load_clip_asset, load_skeleton_json, save_clip_npz
from .utils.presets import load_rig_pair


def parse_source(value: str):
    name, sep, location = value.partition("=")
    if not sep or not name or not location:
        raise argparse.ArgumentTypeError(f"Expected NAME=PATH, got '{value}'")
    return name, location


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="avatarmotion",
        description="Retarget Mixamo-style animation clips onto an avatar skeleton",
    )
    parser.add_argument("--target", "-t", required=True, help="Target skeleton JSON")
    parser.add_argument(
        "--source",
        "-s",
        action="append",
        required=True,
        type=parse_source,
        help="Source clip as NAME=PATH_OR_URL (.npz); repeatable",
    )
    parser.add_argument("--output", "-o", required=True, help="Output directory for retargeted clips")
    parser.add_argument(
        "--rig-pair",
        "-r",
        default="",
        help="Rig pair preset name or JSON file (default: Mixamo -> Ready Player Me)",
    )
    parser.add_argument("--workers", "-w", type=int, default=4, help="Parallel clip loads")
    parser.add_argument("--quiet", "-q", action="store_true", help="Only print the summary")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    diagnostics = Diagnostics(echo=not args.quiet)

    try:
        rig_pair = load_rig_pair(args.rig_pair, diagnostics)
    except RigPairError as e:
        print(f"[Retarget] ERROR: {e}", file=sys.stderr)
        return 2

    try:
        target_root = load_skeleton_json(args.target)
    except (OSError, ValueError, KeyError, TypeError) as e:
        print(f"[Retarget] ERROR: Could not load target skeleton {args.target}: {e}", file=sys.stderr)
        return 1
    sources = dict(args.source)

    try:
        result = prepare_animations(
            target_root,
            sources,
            load_clip_asset,
            rig_pair=rig_pair,
            diagnostics=diagnostics,
            max_workers=args.workers,
            progress=not args.quiet,
        )
    except SkeletonNotFoundError as e:
        print(f"[Retarget] ERROR: {e}", file=sys.stderr)
        return 1

    for name, clip in result.registry:
        path = save_clip_npz(clip, os.path.join(args.output, f"{name}.npz"))
        print(f"[Retarget] Saved {name} ({len(clip.tracks)} tracks) -> {path}")

    print(f"[Retarget] Done: {result.loaded_count} retargeted, {result.failed_count} failed")
    for name, reason in result.failures.items():
        print(f"  [FAILED] {name}: {reason}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
