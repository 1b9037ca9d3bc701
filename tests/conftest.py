import random
import sys
from pathlib import Path

import pytest

# Ensure repo's src/ is importable during tests and
# by linters that invoke pytest
_REPO_ROOT = Path(__file__).resolve().parents[1]
_SRC = str(_REPO_ROOT / "src")
if _SRC not in sys.path:
    sys.path.insert(0, _SRC)


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def zero_bytes():
    """Byte source producing NULs so content changes are easy to spot."""
    return lambda n: b"\x00" * n
