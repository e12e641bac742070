"""终端打字机效果演示。

从环境变量 / .env / config.yaml 读取 OPENROUTER_API_KEY，
把节奏化的显示片段直接写到标准输出。Ctrl+C 中止当前回答。
"""

import sys

from typewriter_chat.api.service import get_conversation_turns, run_chat


def _print_chunk(chunk: str, delay_ms: int) -> None:
    sys.stdout.write(chunk)
    sys.stdout.flush()


def _print_error(kind: str, message: str) -> None:
    sys.stdout.write(f"[{kind}] {message}")
    sys.stdout.flush()


if __name__ == "__main__":
    print("输入消息后回车发送，空行退出。")
    while True:
        question = input("\nUser: ").strip()
        if not question:
            break
        sys.stdout.write("Assistant: ")
        try:
            run_chat(question, on_reveal=_print_chunk, on_error=_print_error)
        except KeyboardInterrupt:
            # 中断发生在显示等待期间，Agent 的 finally 已通知读取线程关闭连接
            sys.stdout.write(" [已中断]")
        print()
    print(f"共 {len(get_conversation_turns())} 条消息。")
