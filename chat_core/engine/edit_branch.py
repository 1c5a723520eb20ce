"""单条消息的编辑分支管理。

分支历史只追加：顺序是“最新”语义的唯一来源。
唯一例外是发送时插入的未回答占位 edit，由 answer_latest 原位补上回答。
所有操作返回新的 Message，原对象保持不变，
由调用方通过 SessionStore.replace_message 替换进会话。
"""

from dataclasses import replace
from typing import Optional

from chat_core.domain.exceptions import EmptyHistory, UnsupportedVariant
from chat_core.domain.models import Edit, Message, utc_timestamp


class EditBranchManager:
    def append_edit(self, message: Message, edit: Edit) -> Message:
        if not message.is_branching:
            raise UnsupportedVariant(
                code="UNSUPPORTED_VARIANT",
                message="append_edit requires an edit-branching message",
                message_id=message.id,
            )
        return replace(message, edits=message.edits + (edit,))

    def latest_edit(self, message: Message) -> Edit:
        if not message.is_branching:
            raise UnsupportedVariant(
                code="UNSUPPORTED_VARIANT",
                message="legacy messages have no edit history",
                message_id=message.id,
            )
        if not message.edits:
            raise EmptyHistory(code="EMPTY_HISTORY", message="message has no edits", message_id=message.id)
        return message.edits[-1]

    def answer_latest(self, message: Message, answer: str, model_name: Optional[str]) -> Message:
        """为最后一条尚未回答的 edit 补上回答；已有回答时按新 edit 追加。"""

        latest = self.latest_edit(message)
        if latest.answer:
            return self.append_edit(message, self.new_edit(message, latest.question, answer, model_name))
        answered = replace(latest, answer=answer, model_name=model_name, timestamp=utc_timestamp())
        return replace(message, edits=message.edits[:-1] + (answered,))

    def new_edit(
        self,
        message: Optional[Message],
        question: str,
        answer: str,
        model_name: Optional[str],
    ) -> Edit:
        """为 message 合成下一条本地 Edit（message 为 None 时视为首条）。"""

        count = len(message.edits or ()) if message is not None else 0
        return Edit(
            edit_id=f"mock_edit_{count + 1}",
            model_name=model_name,
            timestamp=utc_timestamp(),
            question=question,
            answer=answer,
        )

    def current_question(self, message: Message) -> str:
        if message.is_branching:
            return self.latest_edit(message).question
        return message.question or ""
