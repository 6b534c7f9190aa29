"""インメモリ EventBus。

単一プロセス前提の軽量 pub/sub。
スキャン結果が Store にコミットされたときに publish し、
/api/events (SSE) が subscribe して描画側へ中継する。
"""

import asyncio
import json
from contextlib import asynccontextmanager

RECORDS_UPDATED = "records-updated"


def format_sse(message: dict) -> str:
    """1件のメッセージを Server-Sent Events の1フレームに変換する。"""
    data = json.dumps(message["data"], ensure_ascii=False)
    return f"event: {message['event']}\ndata: {data}\n\n"


class EventBus:
    """asyncio.Queue ベースのインメモリ pub/sub バス。"""

    def __init__(self) -> None:
        self._subscribers: list[asyncio.Queue[dict]] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: str, data: dict | None = None) -> None:
        """全 subscriber にイベントを配信する。"""
        message = {"event": event, "data": data}
        for queue in self._subscribers:
            queue.put_nowait(message)

    @asynccontextmanager
    async def subscribe(self):
        """コンテキスト内で Queue を受け取り、イベントを待ち受ける。"""
        queue: asyncio.Queue[dict] = asyncio.Queue()
        self._subscribers.append(queue)
        try:
            yield queue
        finally:
            self._subscribers.remove(queue)
