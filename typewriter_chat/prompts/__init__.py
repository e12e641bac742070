"""系统提示词加载工具。

按语言(locale) 从 prompts/<locale> 目录读取对应的 system prompt 文本，
作为固定前导消息拼在每次请求的 messages 最前面。
"""

from pathlib import Path


PROMPTS_DIR = Path(__file__).resolve().parent


def load_system_prompt(agent_type: str, locale: str = "zh") -> str:
    """根据场景和语言加载系统提示词文本。

    目前 agent_type 仅支持 "chat"，如需支持更多场景可以
    在该函数中按需分发到不同的文件路径。
    """

    fname = PROMPTS_DIR / locale / f"{agent_type}_system.md"
    return fname.read_text(encoding="utf-8").strip()
