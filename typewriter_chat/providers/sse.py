"""Server-Sent Events 增量解码。

OpenRouter 的流式响应是按行分隔的 SSE 记录：

    data: {"choices": [{"delta": {"content": "He"}}]}
    data: [DONE]

网络层拿到的 chunk 边界与记录边界无关，一条记录可能被拆在两个 chunk 里。
SSELineBuffer 维护一个跨 chunk 的滚动缓冲区，只把完整的行交给 parse_record。
"""

import json
from typing import Iterable, Iterator, List, Optional

from typewriter_chat.domain.exceptions import MalformedStreamError
from typewriter_chat.infrastructure.logging.logger import logger

DATA_PREFIX = "data: "
DONE_MARKER = "[DONE]"

# _decode_line 的返回哨兵：该行格式错误，已记录并跳过
_MALFORMED = object()


class SSELineBuffer:
    """跨 chunk 的行缓冲区。

    每次 feed 先追加文本，再按换行切分：完整的行全部返回，
    末尾不完整的片段留在缓冲区等待下一个 chunk。
    """

    def __init__(self) -> None:
        self._buffer = ""

    def feed(self, text: str) -> List[str]:
        self._buffer += text
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> List[str]:
        """流结束时取出残留片段（服务端最后一行可能没有换行符）。"""

        rest, self._buffer = self._buffer.rstrip("\r"), ""
        return [rest] if rest else []

    @property
    def pending(self) -> str:
        return self._buffer


def parse_record(line: str) -> Optional[str]:
    """解析一行 SSE 文本，返回其中的 delta 内容。

    - 不以 "data: " 开头的行、结束标记 [DONE]、空 content：返回 None。
    - JSON 非法或缺少 choices[0].delta：抛出 MalformedStreamError，由调用方记录并跳过。
    """

    if not line.startswith(DATA_PREFIX):
        return None
    data = line[len(DATA_PREFIX):]
    if data.strip() == DONE_MARKER:
        return None
    try:
        parsed = json.loads(data)
    except json.JSONDecodeError as e:
        raise MalformedStreamError(f"invalid JSON in SSE record: {e}", raw=data)

    choices = parsed.get("choices") if isinstance(parsed, dict) else None
    if not isinstance(choices, list) or not choices:
        raise MalformedStreamError("SSE record has no choices", raw=data)
    choice = choices[0]
    delta = choice.get("delta") if isinstance(choice, dict) else None
    if not isinstance(delta, dict):
        raise MalformedStreamError("SSE choice has no delta", raw=data)

    content = delta.get("content")
    if content is None or content == "":
        return None
    if not isinstance(content, str):
        raise MalformedStreamError("SSE delta content is not a string", raw=data)
    return content


def iter_deltas(chunks: Iterable[str]) -> Iterator[str]:
    """把任意切分的文本 chunk 序列转换为按到达顺序排列的 delta 序列。

    单条记录格式错误只记录日志并跳过，不会中断整个流。
    """

    buffer = SSELineBuffer()
    malformed = 0
    for chunk in chunks:
        for line in buffer.feed(chunk):
            delta = _decode_line(line)
            if delta is _MALFORMED:
                malformed += 1
            elif delta is not None:
                yield delta
    for line in buffer.flush():
        delta = _decode_line(line)
        if delta is _MALFORMED:
            malformed += 1
        elif delta is not None:
            yield delta
    if malformed:
        logger.info("SSE stream finished with skipped records", extra={"extra": {"malformed_records": malformed}})


def _decode_line(line: str):
    if line.startswith(DATA_PREFIX) and line[len(DATA_PREFIX):].strip() == DONE_MARKER:
        logger.info("Received SSE done marker")
        return None
    try:
        return parse_record(line)
    except MalformedStreamError as e:
        logger.warning(
            "Skipping malformed SSE record",
            extra={"extra": {"code": e.code, "error": e.message, "raw": e.extra.get("raw", "")[:200]}},
        )
        return _MALFORMED
