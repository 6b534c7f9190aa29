"""フォルダスキャン。ファイルごとの並列パースと世代管理。

1回のスキャンで N ファイル分のパースを並列に実行し、全て完了してから
レコードとエラーを確定する。新しいスキャンが始まった後に完了した
古いスキャンの結果は破棄し、新しい結果を上書きさせない。
"""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from timetrack.analysis.parser import parse_record
from timetrack.ingestion.event_bus import RECORDS_UPDATED, EventBus
from timetrack.interfaces.record import ParseError, SourceDocument, TimeRecord
from timetrack.interfaces.record_store import RecordStoreInterface
from timetrack.interfaces.source import RecordSourceInterface

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 8


@dataclass(frozen=True)
class ScanSummary:
    """1回のスキャン結果の概要。"""

    generation: int
    record_count: int
    error_count: int
    committed: bool


class ScanCoordinator:
    """スキャンのバッチ世代を管理し、最新世代の結果だけを Store に書き込む。"""

    def __init__(
        self,
        store: RecordStoreInterface,
        event_bus: EventBus | None = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ) -> None:
        self._store = store
        self._event_bus = event_bus
        self._max_workers = max(1, max_workers)
        self._generation = store.generation()

    @property
    def generation(self) -> int:
        """最後に開始したスキャンの世代番号。"""
        return self._generation

    async def scan(self, documents: Sequence[SourceDocument]) -> ScanSummary:
        """文書群をパースし、最新世代であれば Store にコミットする。

        Args:
            documents: 1回のフォルダスキャン分の文書

        Returns:
            ScanSummary。古い世代として破棄された場合 committed は False
        """
        return await self._run(self._begin(), documents)

    async def scan_source(self, source: RecordSourceInterface) -> ScanSummary:
        """ファイル列挙コラボレータから文書を取得してスキャンする。

        世代番号は列挙の開始時点で確定する。
        """
        generation = self._begin()
        documents = await asyncio.to_thread(source.list_documents)
        return await self._run(generation, documents)

    def _begin(self) -> int:
        self._generation += 1
        return self._generation

    async def _run(
        self, generation: int, documents: Sequence[SourceDocument]
    ) -> ScanSummary:
        semaphore = asyncio.Semaphore(self._max_workers)

        async def _parse(document: SourceDocument) -> TimeRecord | ParseError:
            async with semaphore:
                return await asyncio.to_thread(
                    parse_record, document.path, document.content
                )

        results = await asyncio.gather(*(_parse(d) for d in documents))
        records = [r for r in results if isinstance(r, TimeRecord)]
        errors = [r for r in results if isinstance(r, ParseError)]

        if generation != self._generation:
            logger.info(
                "Discarded stale scan generation %d (latest %d)",
                generation,
                self._generation,
            )
            return ScanSummary(generation, len(records), len(errors), committed=False)

        committed = self._store.commit(generation, records, errors)
        logger.info(
            "Scan generation %d: %d records, %d errors",
            generation,
            len(records),
            len(errors),
        )
        if committed and self._event_bus is not None:
            self._event_bus.publish(
                RECORDS_UPDATED,
                {
                    "generation": generation,
                    "records": len(records),
                    "errors": len(errors),
                },
            )
        return ScanSummary(generation, len(records), len(errors), committed=committed)
