"""持久化后端 HTTP 客户端。

本模块负责：

1. 将会话/消息/编辑的创建请求转换为后端 REST 调用。
2. 处理网络错误、限流与服务端错误，统一包装为领域异常。
3. 将后端返回的会话 JSON 映射为统一的 Message / Edit 结构。

后端分配所有持久化标识（thread_id、message_id、edit_id），
客户端只透传，不生成任何服务端 ID。
"""

from typing import Any, Dict, List, Optional

import httpx

from chat_core.domain.exceptions import ApiError, NetworkError, RateLimitError
from chat_core.domain.models import Edit, Message


class BackendClient:
    """后端服务客户端实现。

    - name: 客户端名称（供日志使用）。
    - 每次调用独立创建 AsyncClient，避免跨事件循环复用连接。
    """

    name = "backend"

    def __init__(self, settings):
        self._settings = settings

    @property
    def base_url(self) -> str:
        return self._settings.backend_base_url.rstrip("/")

    async def create_thread(self) -> Dict[str, Any]:
        data = await self._request("POST", "/threads", json={})
        if not data or not data.get("thread_id"):
            raise ApiError(code="API_ERROR", message="create_thread returned no thread_id", http_status=502)
        return data

    async def create_message(self, thread_id: str, question: str, answer: str, model_name: str) -> None:
        await self._request(
            "POST",
            f"/threads/{thread_id}/messages",
            json={"question": question, "answer": answer, "model_name": model_name},
        )

    async def create_message_edit(self, message_id: str, question: str, answer: str, model_name: str) -> None:
        await self._request(
            "POST",
            f"/messages/{message_id}/edits",
            json={"question": question, "answer": answer, "model_name": model_name},
        )

    async def get_conversation(self, thread_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/threads/{thread_id}/conversation") or {}

    def transform_conversation(self, conversation: Dict[str, Any]) -> Dict[str, List[Message]]:
        """将后端会话 JSON 解析为 {"messages": [...]}。

        带 edits 的消息映射为分支形态；只有 question/answer 的旧数据
        映射为 legacy 形态，保持向后兼容。
        """

        messages: List[Message] = []
        for raw in conversation.get("messages") or []:
            message_id = str(raw.get("message_id") or raw.get("id") or "")
            edits_raw = raw.get("edits")
            if edits_raw:
                edits = tuple(self._to_edit(e) for e in edits_raw)
                messages.append(Message(id=message_id, edits=edits))
            else:
                messages.append(
                    Message(
                        id=message_id,
                        question=raw.get("question") or "",
                        answer=raw.get("answer") or "",
                        model_name=raw.get("model_name"),
                    )
                )
        return {"messages": messages}

    async def _request(self, method: str, path: str, json: Optional[dict] = None) -> Any:
        try:
            async with httpx.AsyncClient(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = await client.request(
                    method,
                    f"{self.base_url}{path}",
                    json=json,
                    headers={"Content-Type": "application/json"},
                )
        except httpx.RequestError as e:
            # 网络错误：DNS 失败、连接超时等
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message="Backend rate limit", http_status=429)
        if resp.status_code >= 400:
            raise ApiError(code="API_ERROR", message=resp.text, http_status=resp.status_code)
        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    @staticmethod
    def _to_edit(raw: Dict[str, Any]) -> Edit:
        return Edit(
            edit_id=str(raw.get("edit_id") or ""),
            model_name=raw.get("model_name"),
            timestamp=str(raw.get("timestamp") or ""),
            question=raw.get("question") or "",
            answer=raw.get("answer") or "",
        )
