"""Pytest configuration and shared fixtures for turbodelete tests."""

import os
import sys
import tempfile
from pathlib import Path

import pytest

# Add src directory to Python path to ensure tests use local source code
# instead of installed package
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

# Permission bits do not stop root, so read-only failures cannot be provoked
IS_ROOT = hasattr(os, "geteuid") and os.geteuid() == 0


def restore_permissions(root: Path) -> None:
    """Make a tree writable again so the temporary directory can be cleaned up."""
    if not root.exists():
        return
    os.chmod(root, 0o755)
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames:
            os.chmod(os.path.join(dirpath, name), 0o755)
        for name in filenames:
            path = os.path.join(dirpath, name)
            if not os.path.islink(path):
                os.chmod(path, 0o644)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_tree(temp_dir):
    """
    A small tree with entries at depths 1-3::

        tree/a.txt
        tree/.hidden
        tree/d1/b.txt
        tree/d1/d2/c.txt
        tree/d1/d2/d.txt
    """
    root = temp_dir / "tree"
    (root / "d1" / "d2").mkdir(parents=True)
    (root / "a.txt").write_text("a")
    (root / ".hidden").write_text("hidden")
    (root / "d1" / "b.txt").write_text("b")
    (root / "d1" / "d2" / "c.txt").write_text("c")
    (root / "d1" / "d2" / "d.txt").write_text("d")
    return root
