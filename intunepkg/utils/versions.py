"""
版本号工具

提供数值版本比较键。
"""

import re
from typing import Iterable, List, Tuple


def version_key(version: str) -> Tuple:
    """数值版本排序键

    按整数分段比较，非数字分段排在数字之后并按字典序比较。
    """
    parts = []
    for piece in re.split(r"[.\-_ ]", version.strip()):
        if piece.isdigit():
            parts.append((0, int(piece), ""))
        elif piece:
            parts.append((1, 0, piece))
    return tuple(parts)


def sort_versions_desc(versions: Iterable[str]) -> List[str]:
    """数值降序排序："9", "10", "2" -> "10", "9", "2" """
    return sorted(versions, key=version_key, reverse=True)

