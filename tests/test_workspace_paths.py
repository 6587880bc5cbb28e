"""Tests for workspace path cleaning and confinement."""

import os
import tempfile
import unittest
from pathlib import Path

from codecraft.errors import PathEscapeError
from codecraft.workspace.paths import clean_relative_path, relative_to_workspace, resolve_workspace_path


class CleanRelativePathTests(unittest.TestCase):
    def test_strips_leading_slashes_and_workspace_prefix(self) -> None:
        self.assertEqual(clean_relative_path("/workspace/src/App.js"), "src/App.js")
        self.assertEqual(clean_relative_path("///src"), "src")
        self.assertEqual(clean_relative_path("workspace"), "")
        self.assertEqual(clean_relative_path(None), "")

    def test_keeps_names_that_only_start_with_workspace(self) -> None:
        self.assertEqual(clean_relative_path("workspaces/a.txt"), "workspaces/a.txt")

    def test_normalizes_backslashes(self) -> None:
        self.assertEqual(clean_relative_path("src\\index.js"), "src/index.js")


class ResolveWorkspacePathTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name).resolve()

    def test_resolves_inside_root(self) -> None:
        self.assertEqual(resolve_workspace_path(self.root, "a/b.txt"), self.root / "a" / "b.txt")
        self.assertEqual(resolve_workspace_path(self.root, ""), self.root)

    def test_rejects_parent_escape(self) -> None:
        for raw in ("../etc", "a/../../etc", "/../../etc/passwd"):
            with self.subTest(raw=raw):
                with self.assertRaises(PathEscapeError):
                    resolve_workspace_path(self.root, raw)

    def test_rejects_sibling_with_shared_prefix(self) -> None:
        with self.assertRaises(PathEscapeError):
            resolve_workspace_path(self.root, f"../{self.root.name}-other/x")

    @unittest.skipUnless(hasattr(os, "symlink") and os.name == "posix", "symlinks required")
    def test_link_kept_unless_following(self) -> None:
        (self.root / "real").mkdir()
        (self.root / "link").symlink_to(self.root / "real", target_is_directory=True)

        self.assertEqual(resolve_workspace_path(self.root, "link"), self.root / "real")
        self.assertEqual(resolve_workspace_path(self.root, "link", follow_symlinks=False), self.root / "link")
        self.assertEqual(resolve_workspace_path(self.root, "a/../link", follow_symlinks=False), self.root / "link")

    @unittest.skipUnless(os.name == "posix", "symlinks required")
    def test_rejects_link_leaving_root_in_both_modes(self) -> None:
        with tempfile.TemporaryDirectory() as outside:
            (self.root / "out").symlink_to(outside, target_is_directory=True)
            for follow in (True, False):
                with self.subTest(follow_symlinks=follow):
                    with self.assertRaises(PathEscapeError):
                        resolve_workspace_path(self.root, "out", follow_symlinks=follow)

    def test_relative_rendering(self) -> None:
        self.assertEqual(relative_to_workspace(self.root, self.root / "a" / "b"), "a/b")
        self.assertEqual(relative_to_workspace(self.root, self.root), "")


if __name__ == "__main__":
    unittest.main()
