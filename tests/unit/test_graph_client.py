"""
Graph 客户端与请求记录单元测试
"""

import base64
import json

import httpx
import pytest

from intunepkg.config.schema import AssignmentIntent, GraphModel, GroupAssignment
from intunepkg.graph.client import GraphClient, GraphError, tracking_filter
from intunepkg.graph.records import (
    AppMetadata,
    ContentFileRequest,
    ContentFileStatus,
    VersionRecord,
    assign_request,
)

BASE = "https://graph.test/beta/deviceAppManagement/mobileApps"


class Recorder:
    """按 (方法, 路径) 返回预设响应并记录请求"""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        if key not in self.routes:
            return httpx.Response(404, json={"error": {"code": "NotFound"}})
        result = self.routes[key]
        if callable(result):
            return result(request)
        status, body = result
        return httpx.Response(status, json=body) if body is not None else httpx.Response(status)

    def bodies(self, method):
        return [json.loads(r.content) for r in self.requests if r.method == method and r.content]


def make_client(routes):
    recorder = Recorder(routes)
    client = GraphClient("token-123", base_url=BASE, client=httpx.Client(transport=httpx.MockTransport(recorder)))
    return client, recorder


APPS_PATH = "/beta/deviceAppManagement/mobileApps"


class TestRecords:
    """请求/响应记录测试"""

    def test_version_record_aliases(self):
        """测试 DMG/PKG 应用字段"""
        record = VersionRecord.model_validate({
            "id": "a1", "displayName": "Firefox 120.0", "isAssigned": True,
            "primaryBundleId": "org.mozilla.firefox", "primaryBundleVersion": "120.0", "extra": 1,
        })
        assert record.is_assigned
        assert record.version == "120.0"

    def test_version_record_lob_fallback(self):
        """测试 LOB 应用回退到 bundleId / buildNumber"""
        record = VersionRecord.model_validate({
            "id": "a1", "displayName": None, "bundleId": "org.mozilla.firefox", "buildNumber": "119.0",
        })
        assert record.bundle_id == "org.mozilla.firefox"
        assert record.version == "119.0"
        assert record.display_name == ""
        assert not record.is_assigned

    def test_version_record_requires_id(self):
        """测试缺少 id 时校验失败"""
        with pytest.raises(ValueError):
            VersionRecord.model_validate({"displayName": "x"})

    def test_content_file_status(self):
        """测试文件状态"""
        status = ContentFileStatus.model_validate({"id": "f", "uploadState": "commitFileSuccess"})
        assert status.is_committed and not status.is_failed
        assert status.azure_storage_uri is None

    def test_content_file_request(self):
        """测试注册文件请求体"""
        body = ContentFileRequest(name="a.pkg", size=10, size_encrypted=64).to_graph()
        assert body == {
            "@odata.type": "#microsoft.graph.mobileAppContentFile",
            "name": "a.pkg", "size": 10, "sizeEncrypted": 64,
        }

    def test_metadata_pkg(self, make_descriptor):
        """测试 PKG 应用请求体带脚本与 includedApps"""
        descriptor = make_descriptor(deployment_kind="pkg", postinstall_script="echo hi")
        descriptor.version_actual = "120.1"
        body = AppMetadata.from_descriptor(descriptor, "Firefox-120.1-universal.pkg").to_graph()

        assert body["@odata.type"] == "#microsoft.graph.macOSPkgApp"
        assert body["primaryBundleVersion"] == "120.1"
        assert body["notes"].endswith("3F2A")
        assert body["includedApps"][0]["bundleId"] == "org.mozilla.firefox"
        assert base64.b64decode(body["postInstallScript"]["scriptContent"]) == b"echo hi"
        assert body["preInstallScript"]["scriptContent"] == ""
        assert body["minimumSupportedOperatingSystem"]["v11_0"] is True
        assert "childApps" not in body

    def test_metadata_lob(self, make_descriptor):
        """测试 LOB 应用请求体带 childApps"""
        body = AppMetadata.from_descriptor(make_descriptor(), "Firefox-120.0-universal.pkg").to_graph()

        assert body["@odata.type"] == "#microsoft.graph.macOSLobApp"
        assert body["buildNumber"] == "120.0"
        assert body["childApps"][0]["buildNumber"] == "120.0"
        assert "includedApps" not in body
        assert "preInstallScript" not in body

    def test_assign_request(self):
        """测试分组分配请求体"""
        body = assign_request(
            [GroupAssignment(group_id="g1"), GroupAssignment(group_id="g2", intent=AssignmentIntent.AVAILABLE)],
            "macOSDmgApp",
        )
        assignments = body["mobileAppAssignments"]
        assert [a["intent"] for a in assignments] == ["required", "available"]
        assert assignments[1]["target"]["groupId"] == "g2"
        assert "settings" not in assignments[0]


class TestGraphClient:
    """GraphClient 测试"""

    def test_from_config_requires_token(self):
        """测试访问令牌来自环境变量"""
        with pytest.raises(GraphError):
            GraphClient.from_config(GraphModel(), environ={})

        client = GraphClient.from_config(GraphModel(token_env="TOKEN"), environ={"TOKEN": "abc"})
        assert client.base_url.endswith("/mobileApps")
        client.close()

    def test_tracking_filter(self):
        """测试过滤条件"""
        text = tracking_filter("3F2A")
        assert "isof('microsoft.graph.macOSPkgApp')" in text
        assert text.endswith("endswith(notes,'3F2A')")
        assert tracking_filter("a'b").endswith("'a''b')")

    def test_find_apps_follows_next_link(self):
        """测试跟随分页链接"""
        def first_page(request):
            if "skiptoken" in str(request.url):
                return httpx.Response(200, json={"value": [{"id": "b", "primaryBundleVersion": "2"}]})
            return httpx.Response(200, json={
                "value": [{"id": "a", "primaryBundleVersion": "1"}],
                "@odata.nextLink": f"{BASE}?$skiptoken=xyz",
            })

        client, recorder = make_client({("GET", APPS_PATH): first_page})

        records = client.find_apps_by_tracking_id("3F2A")

        assert [r.id for r in records] == ["a", "b"]
        assert "endswith" in recorder.requests[0].url.params["$filter"]
        assert recorder.requests[0].headers["authorization"] == "Bearer token-123"

    def test_upload_calls(self):
        """测试创建应用、内容版本、注册文件、提交与设置版本"""
        app = f"{APPS_PATH}/app1"
        typed = f"{app}/microsoft.graph.macOSPkgApp"
        files = f"{typed}/contentVersions/1/files"
        client, recorder = make_client({
            ("POST", APPS_PATH): (201, {"id": "app1"}),
            ("POST", f"{typed}/contentVersions"): (201, {"id": "1"}),
            ("POST", files): (201, {"id": "file1", "uploadState": "azureStorageUriRequestPending"}),
            ("GET", f"{files}/file1"): (200, {"id": "file1", "azureStorageUri": "https://s/b?sig=1"}),
            ("POST", f"{files}/file1/commit"): (200, None),
            ("PATCH", app): (204, None),
        })

        assert client.open_content_version("app1", "macOSPkgApp") == "1"
        status = client.register_file("app1", "macOSPkgApp", "1", ContentFileRequest(name="a", size=1, size_encrypted=2))
        assert status.id == "file1"
        assert client.get_file_status("app1", "macOSPkgApp", "1", "file1").azure_storage_uri == "https://s/b?sig=1"

        client.commit_file("app1", "macOSPkgApp", "1", "file1", {"mac": "x"})
        client.set_committed_version("app1", "macOSPkgApp", "1")

        posts = recorder.bodies("POST")
        assert posts[-1] == {"fileEncryptionInfo": {"mac": "x"}}
        assert recorder.bodies("PATCH")[0] == {
            "@odata.type": "#microsoft.graph.macOSPkgApp",
            "committedContentVersion": "1",
        }

    def test_create_app(self, make_descriptor):
        """测试创建应用返回 ID"""
        client, recorder = make_client({("POST", APPS_PATH): (201, {"id": "app1"})})
        metadata = AppMetadata.from_descriptor(make_descriptor(), "Firefox.pkg")

        assert client.create_app(metadata) == "app1"
        assert recorder.bodies("POST")[0]["fileName"] == "Firefox.pkg"

    def test_set_committed_version_requires_204(self):
        """测试设置版本必须返回 204"""
        client, _ = make_client({("PATCH", f"{APPS_PATH}/app1"): (200, {})})
        with pytest.raises(GraphError) as exc_info:
            client.set_committed_version("app1", "macOSPkgApp", "1")
        assert exc_info.value.status_code == 200

    def test_error_response(self):
        """测试非 2xx 响应"""
        client, _ = make_client({("DELETE", f"{APPS_PATH}/app1"): (403, {"error": {"code": "Forbidden"}})})
        with pytest.raises(GraphError) as exc_info:
            client.delete_app("app1")
        assert exc_info.value.status_code == 403
        assert "Forbidden" in exc_info.value.body
        assert "HTTP 403" in str(exc_info.value)

    def test_transport_error(self):
        """测试网络错误"""
        def fail(request):
            raise httpx.ConnectError("down", request=request)

        client = GraphClient("t", base_url=BASE, client=httpx.Client(transport=httpx.MockTransport(fail)))
        with pytest.raises(GraphError):
            client.delete_app("app1")

    def test_remove_all_assignments(self):
        """测试删除全部分配"""
        assignments = f"{APPS_PATH}/app1/assignments"
        client, recorder = make_client({
            ("GET", assignments): (200, {"value": [{"id": "x1"}, {"id": "x2"}]}),
            ("DELETE", f"{assignments}/x1"): (204, None),
            ("DELETE", f"{assignments}/x2"): (204, None),
        })

        assert client.remove_all_assignments("app1") == 2
        assert [r.url.path for r in recorder.requests if r.method == "DELETE"] == [
            f"{assignments}/x1", f"{assignments}/x2",
        ]

    def test_categories_and_groups(self):
        """测试分类与分组分配"""
        client, recorder = make_client({
            ("POST", f"{APPS_PATH}/app1/categories/$ref"): (204, None),
            ("POST", f"{APPS_PATH}/app1/microsoft.graph.assign"): (200, None),
        })

        client.add_category("app1", "cat1")
        client.assign_groups("app1", "macOSLobApp", [GroupAssignment(group_id="g1")])
        client.assign_groups("app1", "macOSLobApp", [])

        ref, assign = recorder.bodies("POST")
        assert ref["@odata.id"] == "https://graph.test/beta/deviceAppManagement/mobileAppCategories/cat1"
        assert assign["mobileAppAssignments"][0]["settings"]["@odata.type"].endswith("AssignmentSettings")
        assert len(recorder.requests) == 2
