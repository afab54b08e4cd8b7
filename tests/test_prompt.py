"""
提示词构建单元测试

测试 app/services/prompt.py：
- 系统消息各部分的顺序与分隔
- 已存在文件列表与防冲突提示
- 历史消息转换（跳过本轮 user 消息、过滤未知角色）
- 插件数据拼接
"""

from app.models import ChatMessage
from app.services.prompt import (
    DEFAULT_SYSTEM_PROMPT,
    EXISTING_FILES_ADMONITION,
    EXISTING_FILES_HEADER,
    build_messages,
    build_system_prompt,
    history_messages,
    user_content,
)


def _msg(role: str, content: str) -> ChatMessage:
    return ChatMessage(session_id="s", agent_id=1, role=role, content=content)


class TestBuildSystemPrompt:
    """测试系统消息组装"""

    def test_empty_template_uses_default(self):
        assert build_system_prompt("") == DEFAULT_SYSTEM_PROMPT
        assert build_system_prompt(None) == DEFAULT_SYSTEM_PROMPT

    def test_sections_in_order(self):
        prompt = build_system_prompt(
            "You code.",
            knowledge="\n## rules\nuse tabs\n",
            package="crm",
            existing_files=["a", "b"],
            file_ext="py",
        )
        expected = "\n\n".join([
            "You code.",
            "## rules\nuse tabs",
            "Current package context: crm",
            "\n".join([
                EXISTING_FILES_HEADER,
                "- a.py",
                "- b.py",
                "",
                EXISTING_FILES_ADMONITION,
            ]),
        ])
        assert prompt == expected

    def test_admonition_only_with_existing_files(self):
        assert EXISTING_FILES_ADMONITION not in build_system_prompt("T", existing_files=[])
        assert EXISTING_FILES_ADMONITION in build_system_prompt("T", existing_files=["x"])

    def test_custom_extension(self):
        prompt = build_system_prompt("T", existing_files=["main"], file_ext="go")
        assert "- main.go" in prompt

    def test_package_omitted_when_empty(self):
        assert "Current package context" not in build_system_prompt("T", knowledge="k")


class TestHistoryMessages:
    """测试历史消息转换"""

    def test_trailing_user_message_dropped(self):
        history = [_msg("user", "q1"), _msg("assistant", "a1"), _msg("user", "q2")]
        result = history_messages(history)
        assert [(m.role, m.content) for m in result] == [("user", "q1"), ("assistant", "a1")]

    def test_trailing_assistant_kept(self):
        history = [_msg("user", "q1"), _msg("assistant", "a1")]
        assert len(history_messages(history)) == 2

    def test_unknown_roles_skipped(self):
        history = [_msg("tool", "x"), _msg("assistant", "a1")]
        assert [m.role for m in history_messages(history)] == ["assistant"]

    def test_empty_history(self):
        assert history_messages([]) == []


class TestBuildMessages:
    """测试完整消息列表"""

    def test_plugin_data_appended_to_user_content(self):
        assert user_content("base", "EXTRA") == "base\n\nEXTRA"
        assert user_content("base", "") == "base"
        assert user_content("base", None) == "base"

    def test_full_message_list(self):
        history = [_msg("user", "old"), _msg("assistant", "reply"), _msg("user", "base")]
        messages = build_messages(
            template="You code.",
            knowledge="",
            history=history,
            content="base",
            plugin_data="EXTRA",
        )
        assert [m.role for m in messages] == ["system", "user", "assistant", "user"]
        assert messages[0].content == "You code."
        assert messages[-1].content == "base\n\nEXTRA"

    def test_plugin_data_does_not_touch_system_message(self):
        with_plugin = build_messages(
            template="T", knowledge="", history=[], content="c", plugin_data="P"
        )
        without_plugin = build_messages(template="T", knowledge="", history=[], content="c")
        assert with_plugin[0] == without_plugin[0]
