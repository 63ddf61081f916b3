"""
Graph 客户端

对 deviceAppManagement/mobileApps 端点的薄封装：只做请求/响应，不重试（分块上传除外）。
非 2xx 响应统一抛出 GraphError。
"""

import os
from typing import Any, Dict, List, Mapping, Optional

import httpx

from ..config.schema import GRAPH_BETA_URL, GroupAssignment
from ..utils.logging import debug, info, LogStage
from .records import (
    AppMetadata,
    AssignmentRecord,
    ContentFileRequest,
    ContentFileStatus,
    CreatedResource,
    VersionRecord,
    assign_request,
)

MAC_APP_TYPES = ("macOSDmgApp", "macOSPkgApp", "macOSLobApp")


class GraphError(Exception):
    """Graph 请求失败"""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code is not None:
            return f"{base} (HTTP {self.status_code})"
        return base


def tracking_filter(tracking_id: str) -> str:
    """按 notes 末尾追踪 ID 查找 macOS 应用的 $filter"""
    types = " or ".join(f"isof('microsoft.graph.{t}')" for t in MAC_APP_TYPES)
    escaped = tracking_id.replace("'", "''")
    return f"({types}) and endswith(notes,'{escaped}')"


class GraphClient:
    """mobileApps 端点客户端"""

    def __init__(
        self,
        token: str,
        base_url: str = GRAPH_BETA_URL,
        client: Optional[httpx.Client] = None,
        timeout: float = 60.0,
    ):
        self.base_url = base_url.rstrip("/")
        self._token = token
        self._client = client or httpx.Client(timeout=timeout)

    @classmethod
    def from_config(cls, graph_config, client: Optional[httpx.Client] = None,
                    environ: Optional[Mapping[str, str]] = None) -> "GraphClient":
        """从配置创建，访问令牌取自 graph.token_env 指定的环境变量

        Raises:
            GraphError: 环境变量未设置
        """
        environ = os.environ if environ is None else environ
        token = environ.get(graph_config.token_env, "").strip()
        if not token:
            raise GraphError(f"未设置访问令牌环境变量 {graph_config.token_env}")
        return cls(token, base_url=graph_config.base_url, client=client, timeout=graph_config.timeout_sec)

    def close(self) -> None:
        self._client.close()

    @property
    def categories_url(self) -> str:
        return self.base_url.rsplit("/", 1)[0] + "/mobileAppCategories"

    def _request(self, method: str, url: str, *, json: Any = None,
                 params: Optional[Dict[str, str]] = None,
                 expected: Optional[int] = None) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self._token}", "Accept": "application/json"}
        try:
            response = self._client.request(method, url, json=json, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise GraphError(f"{method} {url} 请求失败: {e}") from e

        ok = response.status_code == expected if expected is not None else response.is_success
        if not ok:
            raise GraphError(f"{method} {url} 失败", response.status_code, response.text)
        debug(f"{method} {url} -> {response.status_code}")
        return response

    def _app_url(self, app_id: str, app_type: Optional[str] = None) -> str:
        url = f"{self.base_url}/{app_id}"
        return f"{url}/microsoft.graph.{app_type}" if app_type else url

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    def find_apps_by_tracking_id(self, tracking_id: str) -> List[VersionRecord]:
        """查找 notes 以追踪 ID 结尾的所有 macOS 应用（跟随分页）"""
        records: List[VersionRecord] = []
        url: Optional[str] = self.base_url
        params: Optional[Dict[str, str]] = {"$filter": tracking_filter(tracking_id)}

        while url:
            payload = self._request("GET", url, params=params).json()
            records.extend(VersionRecord.model_validate(item) for item in payload.get("value", []))
            url = payload.get("@odata.nextLink")
            params = None

        debug(f"追踪 ID {tracking_id} 匹配到 {len(records)} 个应用", stage=LogStage.CHECK)
        return records

    # ------------------------------------------------------------------
    # 应用与内容
    # ------------------------------------------------------------------

    def create_app(self, metadata: AppMetadata) -> str:
        """创建应用，返回应用 ID"""
        response = self._request("POST", self.base_url, json=metadata.to_graph())
        app_id = CreatedResource.model_validate(response.json()).id
        info(f"已创建应用 {metadata.display_name} ({app_id})", stage=LogStage.UPLOAD)
        return app_id

    def open_content_version(self, app_id: str, app_type: str) -> str:
        """打开新的内容版本，返回版本 ID"""
        url = f"{self._app_url(app_id, app_type)}/contentVersions"
        return CreatedResource.model_validate(self._request("POST", url, json={}).json()).id

    def _file_url(self, app_id: str, app_type: str, version_id: str, file_id: Optional[str] = None) -> str:
        url = f"{self._app_url(app_id, app_type)}/contentVersions/{version_id}/files"
        return f"{url}/{file_id}" if file_id else url

    def register_file(self, app_id: str, app_type: str, version_id: str,
                      request: ContentFileRequest) -> ContentFileStatus:
        """注册内容文件（明文与密文大小）"""
        url = self._file_url(app_id, app_type, version_id)
        status = ContentFileStatus.model_validate(self._request("POST", url, json=request.to_graph()).json())
        if not status.id:
            raise GraphError("注册文件的响应中没有 id")
        return status

    def get_file_status(self, app_id: str, app_type: str, version_id: str, file_id: str) -> ContentFileStatus:
        url = self._file_url(app_id, app_type, version_id, file_id)
        return ContentFileStatus.model_validate(self._request("GET", url).json())

    def commit_file(self, app_id: str, app_type: str, version_id: str, file_id: str,
                    encryption_info: Dict[str, Any]) -> None:
        """提交加密描述，服务端开始解密校验"""
        url = f"{self._file_url(app_id, app_type, version_id, file_id)}/commit"
        self._request("POST", url, json={"fileEncryptionInfo": encryption_info})

    def set_committed_version(self, app_id: str, app_type: str, version_id: str) -> None:
        """把应用指向已提交的内容版本，必须返回 204"""
        body = {"@odata.type": f"#microsoft.graph.{app_type}", "committedContentVersion": version_id}
        self._request("PATCH", self._app_url(app_id), json=body, expected=204)

    def delete_app(self, app_id: str) -> None:
        self._request("DELETE", self._app_url(app_id))
        info(f"已删除应用 {app_id}", stage=LogStage.CLEANUP)

    # ------------------------------------------------------------------
    # 分配与分类
    # ------------------------------------------------------------------

    def list_assignments(self, app_id: str) -> List[AssignmentRecord]:
        payload = self._request("GET", f"{self._app_url(app_id)}/assignments").json()
        return [AssignmentRecord.model_validate(item) for item in payload.get("value", [])]

    def remove_assignment(self, app_id: str, assignment_id: str) -> None:
        self._request("DELETE", f"{self._app_url(app_id)}/assignments/{assignment_id}")

    def remove_all_assignments(self, app_id: str) -> int:
        """删除应用的全部分配，返回删除数量"""
        assignments = self.list_assignments(app_id)
        for assignment in assignments:
            self.remove_assignment(app_id, assignment.id)
        return len(assignments)

    def assign_groups(self, app_id: str, app_type: str, assignments: List[GroupAssignment]) -> None:
        if not assignments:
            return
        url = f"{self._app_url(app_id)}/microsoft.graph.assign"
        self._request("POST", url, json=assign_request(assignments, app_type))

    def add_category(self, app_id: str, category_id: str) -> None:
        url = f"{self._app_url(app_id)}/categories/$ref"
        self._request("POST", url, json={"@odata.id": f"{self.categories_url}/{category_id}"})
