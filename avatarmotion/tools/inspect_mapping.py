"""
Show which source bones map onto a target skeleton.
Usage: python -m avatarmotion.tools.inspect_mapping <target_skeleton.json> <clip.npz> [rig_pair.json]
"""
import sys

from avatarmotion.utils.diagnostics import Diagnostics
from avatarmotion.utils.npz_io import load_clip_npz, load_skeleton_json
from avatarmotion.utils.presets import load_rig_pair
from avatarmotion.utils.retarget_clip import (
    bone_names_from_clip,
    build_bone_name_map,
    find_skeleton,
    hand_bone_report,
    strip_source_prefix,
)


def main():
    if len(sys.argv) < 3:
        print("Usage: python -m avatarmotion.tools.inspect_mapping <target_skeleton.json> <clip.npz> [rig_pair.json]")
        sys.exit(1)

    rig_pair = load_rig_pair(sys.argv[3] if len(sys.argv) > 3 else "", Diagnostics())
    target = find_skeleton(load_skeleton_json(sys.argv[1]))
    if target is None:
        print("No skeleton found in target")
        sys.exit(1)
    clip = load_clip_npz(sys.argv[2])

    source_names = bone_names_from_clip(clip)
    target_names = target.bone_names()
    print(f"Target bones: {len(target_names)}")
    print(f"Source bones (from clip '{clip.name}'): {len(source_names)}")

    mapping = build_bone_name_map(source_names, target_names, rig_pair, Diagnostics(echo=False))

    print("\n" + "=" * 60)
    print("MAPPING RESULTS")
    print("=" * 60)
    for name in source_names:
        if name in mapping:
            print(f"  ✅ {name} -> {mapping[name]}")
        else:
            candidate = strip_source_prefix(name, rig_pair.source_prefix, rig_pair.prefix_separator)
            print(f"  ❌ {name} -> {candidate} (NOT FOUND)")

    unanimated = [n for n in target_names if n not in set(mapping.values())]
    print(f"\nTarget bones without animation ({len(unanimated)}): {unanimated}")

    print("\nHand bone check:")
    for name, info in hand_bone_report(mapping, target_names).items():
        in_target = "✅" if info["in_target"] else "❌"
        mapped = f'✅ from "{info["mapped_from"]}"' if info["mapped_from"] else "❌ NOT MAPPED"
        print(f"  {name}: Target={in_target}, Mapped={mapped}")


if __name__ == "__main__":
    main()
