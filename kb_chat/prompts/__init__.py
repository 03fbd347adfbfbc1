"""系统提示词加载工具。

按语言(locale) 从 prompts/<locale> 目录读取知识库问答的 system prompt 模板，
模板中的 {knowledge_base} 占位符会被替换为拼接好的知识库文本。
"""

from pathlib import Path
from typing import Optional


PROMPTS_DIR = Path(__file__).resolve().parent
KNOWLEDGE_PLACEHOLDER = "{knowledge_base}"


def load_system_prompt(locale: str = "en") -> str:
    """加载指定语言的系统提示词模板。"""

    fname = PROMPTS_DIR / locale / "knowledge_chat_system.md"
    return fname.read_text(encoding="utf-8")


def build_system_prompt(knowledge_text: str, template: Optional[str] = None) -> str:
    """把知识库文本嵌入模板。

    使用字符串替换而不是 str.format，知识库里的花括号会原样保留。
    """

    tpl = template if template is not None else load_system_prompt()
    if KNOWLEDGE_PLACEHOLDER not in tpl:
        return f"{tpl.rstrip()}\n\nKnowledge Base:\n{knowledge_text}"
    return tpl.replace(KNOWLEDGE_PLACEHOLDER, knowledge_text)
