import sys
import os
import threading
import unittest
import numpy as np

# Add the project root to sys.path
script_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(script_dir)
sys.path.insert(0, project_root)

from avatarmotion.pipeline import prepare_animations
from avatarmotion.utils.data_types import (
    AnimationClip,
    Bone,
    KeyframeTrack,
    LoadedAsset,
    SceneNode,
    Skeleton,
    SkinnedMesh,
)
from avatarmotion.utils.diagnostics import Diagnostics
from avatarmotion.utils.errors import ClipLoadError, SkeletonNotFoundError
from avatarmotion.utils.loader import load_sources
from avatarmotion.utils.registry import AnimationRegistry

TARGET_BONES = ["Hips", "Spine", "LeftShoulder", "LeftUpperArm", "LeftHand", "RightUpperArm", "RightHand"]


def build_avatar():
    skel = Skeleton(name="RPM")
    parent = None
    for name in TARGET_BONES:
        skel.add_bone(Bone(name, quaternion=[0.0, 0.0, 0.3826834, 0.9238795]), parent if name != "RightUpperArm" else "Spine")
        parent = name
    skel.update_world_matrices()
    root = SceneNode("Scene", [SceneNode("Armature", [SkinnedMesh("Wolf3D_Body", skel)])])
    return root, skel


def quat_track(bone, keys=3):
    return KeyframeTrack(f"{bone}.quaternion", np.linspace(0.0, 1.0, keys), np.tile([0.0, 0.0, 0.0, 1.0], keys))


def mixamo_asset(clip_name, bones, with_skeleton=True):
    tracks = [quat_track(b) for b in bones]
    tracks.append(KeyframeTrack(f"{bones[0]}.position", [0.0, 1.0], np.zeros(6)))
    scene = SceneNode(clip_name)
    if with_skeleton:
        scene.add(SkinnedMesh("Alpha_Surface", Skeleton([Bone(b) for b in bones])))
    return LoadedAsset(scene, [AnimationClip(clip_name, 1.0, tracks)])


class FakeLoader:
    """location -> asset, or an exception to raise"""
    def __init__(self, assets):
        self.assets = assets
        self.calls = []
        self.lock = threading.Lock()

    def __call__(self, location):
        with self.lock:
            self.calls.append(location)
        outcome = self.assets[location]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class TestPipeline(unittest.TestCase):
    def setUp(self):
        self.root, self.skel = build_avatar()
        self.rest = {b.name: b.quaternion.copy() for b in self.skel.bones}
        self.diagnostics = Diagnostics(echo=False)

    def test_best_effort_then_report(self):
        loader = FakeLoader({
            "walk.fbx": mixamo_asset("mixamo.com", ["mixamorigHips", "mixamorigLeftHand", "mixamorigSpine"]),
            "sit.fbx": ClipLoadError("404 Not Found"),
            "talk.fbx": LoadedAsset(SceneNode("talk"), []),
            "wave.fbx": mixamo_asset("", ["mixamorigHips", "mixamorigRightHand"], with_skeleton=False),
            "junk.fbx": mixamo_asset("junk", ["mixamorigTail"], with_skeleton=False),
        })
        sources = {
            "walking": "walk.fbx",
            "sitting": "sit.fbx",
            "talking": "talk.fbx",
            "greeting": "wave.fbx",
            "happy": "junk.fbx",
        }
        result = prepare_animations(self.root, sources, loader, diagnostics=self.diagnostics, max_workers=3)

        self.assertEqual(sorted(loader.calls), sorted(sources.values()))
        self.assertEqual(result.registry.names(), ["walking", "greeting"])
        self.assertEqual(sorted(result.failures), ["happy", "sitting", "talking"])
        self.assertEqual(result.loaded_count, 2)
        self.assertEqual(result.failed_count, 3)
        self.assertEqual(result.registry.current, "walking")

        # Map built once from walking's skeleton, so greeting's RightHand stays unmapped
        self.assertEqual(
            result.bone_map,
            {"mixamorigHips": "Hips", "mixamorigLeftHand": "LeftHand", "mixamorigSpine": "Spine"},
        )
        greeting = result.registry.get("greeting")
        self.assertEqual(greeting.name, "greeting")
        self.assertEqual([t.name for t in greeting.tracks], ["Hips.quaternion"])
        self.assertEqual(len(self.diagnostics.of_kind("bone_map_built")), 1)
        self.assertEqual(len(self.diagnostics.of_kind("clip_load_failed")), 1)
        self.assertEqual(len(self.diagnostics.of_kind("missing_animation")), 1)
        self.assertEqual(len(self.diagnostics.of_kind("empty_clip")), 1)

        walking = result.registry.get("walking")
        self.assertEqual(walking.name, "mixamo.com")
        for track in walking.tracks:
            self.assertIn(track.bone_name, TARGET_BONES)
            self.assertEqual(track.property_name, "quaternion")

    def test_unnamed_clip_takes_animation_name(self):
        loader = FakeLoader({"w.fbx": mixamo_asset("", ["mixamorigHips"])})
        result = prepare_animations(self.root, {"walking": "w.fbx"}, loader)
        self.assertEqual(result.registry.get("walking").name, "walking")

    def test_map_from_first_available_source(self):
        loader = FakeLoader({
            "a.fbx": ClipLoadError("boom"),
            "b.fbx": mixamo_asset("b", ["mixamorig:Hips", "mixamorig:RightHand"]),
        })
        result = prepare_animations(self.root, {"first": "a.fbx", "second": "b.fbx"}, loader)
        self.assertEqual(result.bone_map, {"mixamorig:Hips": "Hips", "mixamorig:RightHand": "RightHand"})
        self.assertEqual(result.registry.names(), ["second"])
        # walking is absent, so the first registered clip plays
        self.assertEqual(result.registry.current, "second")

    def test_malformed_asset_does_not_abort_siblings(self):
        loader = FakeLoader({
            "broken.fbx": None,
            "w.fbx": mixamo_asset("w", ["mixamorigHips"]),
        })
        result = prepare_animations(
            self.root, {"broken": "broken.fbx", "walking": "w.fbx"}, loader, diagnostics=self.diagnostics
        )
        self.assertEqual(result.registry.names(), ["walking"])
        self.assertEqual(list(result.failures), ["broken"])
        self.assertEqual(result.registry.current, "walking")
        self.assertEqual(self.diagnostics.of_kind("clip_error")[0].data["animation"], "broken")
        self.assertEqual(len(self.diagnostics.of_kind("load_summary")), 1)
        # The map comes from the first asset that could actually be processed
        self.assertEqual(result.bone_map, {"mixamorigHips": "Hips"})
        for bone in self.skel.bones:
            np.testing.assert_array_equal(bone.quaternion, self.rest[bone.name])

    def test_rest_pose_restored_after_session(self):
        loader = FakeLoader({"w.fbx": mixamo_asset("w", ["mixamorigHips"])})
        prepare_animations(self.root, {"walking": "w.fbx"}, loader, diagnostics=self.diagnostics)
        for bone in self.skel.bones:
            np.testing.assert_array_equal(bone.quaternion, self.rest[bone.name])
        self.assertEqual(len(self.diagnostics.of_kind("rest_pose_restored")), 1)

    def test_missing_skeleton_is_fatal(self):
        loader = FakeLoader({})
        with self.assertRaises(SkeletonNotFoundError):
            prepare_animations(SceneNode("empty"), {"walking": "w.fbx"}, loader, diagnostics=self.diagnostics)
        self.assertEqual(loader.calls, [])
        self.assertEqual(len(self.diagnostics.of_kind("skeleton_not_found")), 1)

    def test_no_sources(self):
        result = prepare_animations(self.root, {}, FakeLoader({}))
        self.assertEqual(len(result.registry), 0)
        self.assertIsNone(result.bone_map)


class TestLoader(unittest.TestCase):
    def test_failures_do_not_cancel_siblings(self):
        asset = mixamo_asset("c", ["mixamorigHips"])
        loader = FakeLoader({"1": asset, "2": RuntimeError("decode error"), "3": asset})
        diagnostics = Diagnostics(echo=False)
        result = load_sources({"one": "1", "two": "2", "three": "3"}, loader, max_workers=2, diagnostics=diagnostics)
        self.assertEqual(list(result.successes), ["one", "three"])
        self.assertEqual(result.failures, {"two": "decode error"})
        self.assertEqual(diagnostics.of_kind("clip_load_failed")[0].data["location"], "2")

    def test_empty(self):
        result = load_sources({}, FakeLoader({}))
        self.assertEqual(result.successes, {})
        self.assertEqual(result.failures, {})


class TestAnimationRegistry(unittest.TestCase):
    def setUp(self):
        self.diagnostics = Diagnostics(echo=False)
        self.registry = AnimationRegistry(TARGET_BONES, self.diagnostics)
        self.registry.add("sitting", AnimationClip("sit", 1.0, [quat_track("Hips")]))
        self.registry.add("walking", AnimationClip("walk", 1.0, [quat_track("Spine")]))

    def test_lookup(self):
        self.assertIn("walking", self.registry)
        self.assertNotIn("happy", self.registry)
        self.assertEqual(self.registry.names(), ["sitting", "walking"])
        self.assertEqual(self.registry.get("sitting").name, "sit")
        self.assertIsNone(self.registry.get("happy"))

    def test_rejects_foreign_bones(self):
        with self.assertRaises(ValueError):
            self.registry.add("bad", AnimationClip("bad", 1.0, [quat_track("mixamorigHips")]))
        self.assertNotIn("bad", self.registry)

    def test_stop_current_play_new(self):
        self.registry.play("sitting")
        self.assertEqual(self.registry.current, "sitting")
        self.registry.play("walking")
        self.assertEqual(self.registry.current, "walking")
        with self.assertRaises(KeyError):
            self.registry.play("happy")
        self.assertEqual(self.registry.current, "walking")
        self.registry.stop()
        self.assertIsNone(self.registry.current)

    def test_play_default(self):
        self.assertEqual(self.registry.play_default("walking").name, "walk")
        self.assertEqual(self.registry.play_default("happy").name, "sit")
        empty = AnimationRegistry(diagnostics=self.diagnostics)
        self.assertIsNone(empty.play_default("walking"))
        self.assertEqual(len(self.diagnostics.of_kind("no_animations")), 1)


if __name__ == "__main__":
    unittest.main()
