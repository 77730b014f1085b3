import sys
from pathlib import Path

# 确保项目根目录在 sys.path，便于测试内直接以顶层包名导入
ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

import pytest  # noqa: E402

from shared.utils.logging import set_global_level  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_log_level():
    yield
    set_global_level("INFO")
