"""
通知模块

通过 Teams Incoming Webhook 发送 MessageCard。通知失败只记录日志，不影响运行结果。
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

import httpx

from .utils.logging import debug, warning, LogStage


@dataclass
class PublishReport:
    """一次运行的通知内容"""
    label: str
    display_name: str
    version: str
    success: bool
    message: str = ""
    app_id: Optional[str] = None
    warnings: List[str] = field(default_factory=list)


class Notifier(Protocol):
    """通知器接口"""

    def notify(self, report: PublishReport) -> None:
        ...


class NullNotifier:
    """通知关闭时使用"""

    def notify(self, report: PublishReport) -> None:
        debug(f"通知已关闭，跳过 {report.label}", stage=LogStage.NOTIFY)


class TeamsNotifier:
    """Teams Webhook 通知器"""

    def __init__(self, webhook_url: str, client: Optional[httpx.Client] = None,
                 on_success: bool = True, on_failure: bool = True, timeout: float = 30.0):
        self.webhook_url = webhook_url
        self.on_success = on_success
        self.on_failure = on_failure
        self._client = client or httpx.Client(timeout=timeout)

    def build_card(self, report: PublishReport) -> Dict[str, Any]:
        """构造 MessageCard"""
        status = "成功" if report.success else "失败"
        facts = [
            {"name": "标签", "value": report.label},
            {"name": "版本", "value": report.version or "-"},
            {"name": "结果", "value": status},
        ]
        if report.app_id:
            facts.append({"name": "应用 ID", "value": report.app_id})
        if report.message:
            facts.append({"name": "说明", "value": report.message})
        for item in report.warnings:
            facts.append({"name": "警告", "value": item})

        return {
            "@type": "MessageCard",
            "@context": "https://schema.org/extensions",
            "summary": f"{report.display_name} {report.version} 发布{status}",
            "themeColor": "2EB886" if report.success else "D00000",
            "title": f"{report.display_name} {report.version} 发布{status}",
            "sections": [{"facts": facts}],
        }

    def notify(self, report: PublishReport) -> None:
        if report.success and not self.on_success:
            return
        if not report.success and not self.on_failure:
            return

        try:
            response = self._client.post(self.webhook_url, json=self.build_card(report))
            if not response.is_success:
                warning(f"Teams 通知失败: HTTP {response.status_code}", stage=LogStage.NOTIFY)
                return
            debug(f"已发送 Teams 通知: {report.label}", stage=LogStage.NOTIFY)
        except httpx.HTTPError as e:
            warning(f"Teams 通知失败: {e}", stage=LogStage.NOTIFY)


def create_notifier(notification_config, client: Optional[httpx.Client] = None) -> Notifier:
    """根据配置选择通知器"""
    if notification_config.enabled and notification_config.teams_webhook_url:
        return TeamsNotifier(
            notification_config.teams_webhook_url,
            client=client,
            on_success=notification_config.on_success,
            on_failure=notification_config.on_failure,
        )
    return NullNotifier()
