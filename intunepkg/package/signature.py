"""
代码签名校验模块

通过 spctl 评估安装包或应用包的签名，并核对开发者 Team ID。
签名被拒或 Team ID 不符属于安全闸门，不做重试。
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from ..utils.logging import info, error, success, LogStage
from ..utils.process import CommandError, run_command


class SignatureError(Exception):
    """签名检查错误（工具失败或输出无法解析）"""
    pass


class SignatureRejectedError(SignatureError):
    """签名未被系统接受"""
    pass


class TeamIdMismatchError(SignatureError):
    """签名 Team ID 与期望值不一致"""

    def __init__(self, path: Path, expected: str, actual: Optional[str]):
        self.path = path
        self.expected = expected
        self.actual = actual
        super().__init__(f"Team ID 不匹配 {path.name}: 期望 {expected}, 实际 {actual or '无'}")


@dataclass
class SignatureInfo:
    """签名检查结果"""
    accepted: bool
    developer_id: Optional[str] = None
    team_id: Optional[str] = None
    source: Optional[str] = None


_ORIGIN_RE = re.compile(r"^origin=(.*)$", re.MULTILINE)
_SOURCE_RE = re.compile(r"^source=(.*)$", re.MULTILINE)
_TEAM_RE = re.compile(r"\(([^()]*)\)\s*$")


def parse_spctl_output(output: str) -> SignatureInfo:
    """解析 spctl -a -vv 的合并输出

    Raises:
        SignatureError: 输出中既没有 accepted 也没有 rejected
    """
    if "accepted" in output:
        accepted = True
    elif "rejected" in output:
        accepted = False
    else:
        raise SignatureError(f"无法解析 spctl 输出: {output.strip()[:200]}")

    result = SignatureInfo(accepted=accepted)

    source_match = _SOURCE_RE.search(output)
    if source_match:
        result.source = source_match.group(1).strip()

    origin_match = _ORIGIN_RE.search(output)
    if origin_match:
        origin = origin_match.group(1).strip()
        team_match = _TEAM_RE.search(origin)
        if team_match:
            result.team_id = team_match.group(1).strip()
            origin = origin[:team_match.start()].strip()
        # "Developer ID Installer: Example Corp"
        result.developer_id = origin.split(":", 1)[1].strip() if ":" in origin else origin

    return result


class SignatureVerifier:
    """签名校验器"""

    def inspect(self, path: Union[str, Path], is_installer: bool) -> SignatureInfo:
        """执行 spctl 评估（不做策略判断）"""
        path = Path(path)
        assess_type = "install" if is_installer else "execute"
        try:
            # spctl 对被拒绝的包返回非零，输出依然有效
            result = run_command(
                ["spctl", "-a", "-vv", "-t", assess_type, path],
                check=False,
                merge_stderr=True,
            )
        except CommandError as e:
            raise SignatureError(f"无法执行 spctl: {e}") from e

        return parse_spctl_output(result.stdout or "")

    def verify(self, path: Union[str, Path], expected_team_id: str, is_installer: bool) -> SignatureInfo:
        """校验签名被接受且 Team ID 匹配

        Raises:
            SignatureRejectedError: 签名未被接受
            TeamIdMismatchError: Team ID 不符
            SignatureError: 工具或解析失败
        """
        path = Path(path)
        kind = "pkg" if is_installer else "app"
        info(f"检查 {kind} 签名: {path.name}", stage=LogStage.VERIFY)

        signature = self.inspect(path, is_installer)

        if not signature.accepted:
            error(f"签名被拒绝: {path.name}", stage=LogStage.VERIFY)
            raise SignatureRejectedError(f"签名被拒绝: {path}")

        info(f"  下载文件 Team ID: {signature.team_id}", stage=LogStage.VERIFY)
        info(f"  期望 Team ID: {expected_team_id}", stage=LogStage.VERIFY)
        if signature.team_id != expected_team_id:
            error(f"Team ID 不匹配: {path.name}", stage=LogStage.VERIFY)
            raise TeamIdMismatchError(path, expected_team_id, signature.team_id)

        success(f"签名校验通过: {signature.developer_id} ({signature.team_id})", stage=LogStage.VERIFY)
        return signature
