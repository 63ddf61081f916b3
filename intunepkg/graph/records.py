"""
Graph 请求/响应记录

用类型化的记录代替松散字典：响应在构造时校验必需字段，请求体由 ``to_graph()`` 生成。
"""

import base64
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from ..config.schema import DeploymentDescriptor, DeploymentKind, GroupAssignment

UPLOAD_STATE_SUCCESS = "commitFileSuccess"
UPLOAD_STATE_FAILED = "commitFileFailed"


class GraphRecord(BaseModel):
    """Graph 响应记录基类，忽略未知字段"""

    model_config = {
        "extra": "ignore",
        "populate_by_name": True,
    }


class VersionRecord(GraphRecord):
    """按追踪 ID 匹配到的远端应用条目"""
    id: str = Field(..., min_length=1)
    display_name: str = Field("", alias="displayName")
    is_assigned: bool = Field(False, alias="isAssigned")
    bundle_id: str = Field("", alias="primaryBundleId")
    version: str = Field("", alias="primaryBundleVersion")

    @model_validator(mode="before")
    @classmethod
    def _lob_fallbacks(cls, data: Any) -> Any:
        """LOB 应用可能只有 bundleId / buildNumber"""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if not data.get("primaryBundleId") and "bundle_id" not in data:
            data["primaryBundleId"] = data.get("bundleId") or ""
        if not data.get("primaryBundleVersion") and "version" not in data:
            data["primaryBundleVersion"] = data.get("buildNumber") or ""
        if data.get("displayName") is None and "display_name" not in data:
            data["displayName"] = ""
        return data


class CreatedResource(GraphRecord):
    """只关心 id 的创建响应（应用、内容版本）"""
    id: str = Field(..., min_length=1)


class ContentFileStatus(GraphRecord):
    """内容文件状态"""
    id: str = ""
    upload_state: str = Field("", alias="uploadState")
    azure_storage_uri: Optional[str] = Field(None, alias="azureStorageUri")
    error_code: Optional[str] = Field(None, alias="errorCode")
    error_description: Optional[str] = Field(None, alias="errorDescription")

    @property
    def is_committed(self) -> bool:
        return self.upload_state == UPLOAD_STATE_SUCCESS

    @property
    def is_failed(self) -> bool:
        return self.upload_state == UPLOAD_STATE_FAILED


class AssignmentRecord(GraphRecord):
    """应用分配条目"""
    id: str = Field(..., min_length=1)
    intent: Optional[str] = None


class ContentFileRequest(BaseModel):
    """注册内容文件的请求"""
    name: str = Field(..., min_length=1)
    size: int = Field(..., ge=0)
    size_encrypted: int = Field(..., ge=0)

    def to_graph(self) -> Dict[str, Any]:
        return {
            "@odata.type": "#microsoft.graph.mobileAppContentFile",
            "name": self.name,
            "size": self.size,
            "sizeEncrypted": self.size_encrypted,
        }


def _script(body: Optional[str]) -> Dict[str, str]:
    content = base64.b64encode(body.encode("utf-8")).decode("ascii") if body else ""
    return {"@odata.type": "#microsoft.graph.macOSAppScript", "scriptContent": content}


class AppMetadata(BaseModel):
    """创建应用的请求体，由部署描述和上传文件名生成"""
    app_type: str
    display_name: str
    file_name: str
    bundle_id: str
    version: str
    notes: str
    description: str = ""
    developer: str = ""
    publisher: str = ""
    owner: str = ""
    information_url: str = ""
    privacy_url: str = ""
    minimum_os: str = "v11_0"
    ignore_version_detection: bool = False
    preinstall_script: Optional[str] = None
    postinstall_script: Optional[str] = None

    @classmethod
    def from_descriptor(cls, descriptor: DeploymentDescriptor, file_name: str) -> "AppMetadata":
        return cls(
            app_type=descriptor.deployment_kind.graph_app_type,
            display_name=descriptor.app_display_name(),
            file_name=file_name,
            bundle_id=descriptor.bundle_id_actual or descriptor.bundle_id_expected,
            version=descriptor.effective_version(),
            notes=descriptor.tracking_note(),
            description=descriptor.description or descriptor.display_name,
            developer=descriptor.developer or "",
            publisher=descriptor.publisher or descriptor.developer or "",
            owner=descriptor.owner or "",
            information_url=descriptor.information_url or "",
            privacy_url=descriptor.privacy_url or "",
            minimum_os=descriptor.minimum_os,
            ignore_version_detection=descriptor.ignore_version_detection,
            preinstall_script=descriptor.preinstall_script,
            postinstall_script=descriptor.postinstall_script,
        )

    @property
    def odata_type(self) -> str:
        return f"#microsoft.graph.{self.app_type}"

    def to_graph(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "@odata.type": self.odata_type,
            "displayName": self.display_name,
            "description": self.description,
            "developer": self.developer,
            "publisher": self.publisher,
            "owner": self.owner,
            "notes": self.notes,
            "fileName": self.file_name,
            "informationUrl": self.information_url,
            "privacyInformationUrl": self.privacy_url,
            "primaryBundleId": self.bundle_id,
            "primaryBundleVersion": self.version,
            "ignoreVersionDetection": self.ignore_version_detection,
            "minimumSupportedOperatingSystem": {
                "@odata.type": "#microsoft.graph.macOSMinimumOperatingSystem",
                self.minimum_os: True,
            },
        }

        if self.app_type == DeploymentKind.LOB.graph_app_type:
            body.update({
                "bundleId": self.bundle_id,
                "buildNumber": self.version,
                "installAsManaged": False,
                "childApps": [{
                    "@odata.type": "#microsoft.graph.macOSLobChildApp",
                    "bundleId": self.bundle_id,
                    "buildNumber": self.version,
                    "versionNumber": "0.0",
                }],
            })
        else:
            body["includedApps"] = [{
                "@odata.type": "#microsoft.graph.macOSIncludedApp",
                "bundleId": self.bundle_id,
                "bundleVersion": self.version,
            }]

        if self.app_type == DeploymentKind.PKG.graph_app_type:
            body["preInstallScript"] = _script(self.preinstall_script)
            body["postInstallScript"] = _script(self.postinstall_script)

        return body


def group_assignment_body(assignment: GroupAssignment, app_type: str) -> Dict[str, Any]:
    """单个分组分配"""
    body: Dict[str, Any] = {
        "@odata.type": "#microsoft.graph.mobileAppAssignment",
        "intent": assignment.intent.value,
        "target": {
            "@odata.type": "#microsoft.graph.groupAssignmentTarget",
            "groupId": assignment.group_id,
        },
    }
    if app_type == DeploymentKind.LOB.graph_app_type:
        body["settings"] = {"@odata.type": "#microsoft.graph.macOsLobAppAssignmentSettings"}
    return body


def assign_request(assignments: List[GroupAssignment], app_type: str) -> Dict[str, Any]:
    """microsoft.graph.assign 请求体"""
    return {"mobileAppAssignments": [group_assignment_body(a, app_type) for a in assignments]}
