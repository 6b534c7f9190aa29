"""Store層のインメモリ実装。

RecordStoreInterface に準拠し、最新世代のスキャン結果だけを保持する。
プロセスをまたいだ永続化は行わない。
"""

import logging
import threading

from timetrack.interfaces.record import (
    FIELD_ACCESSORS,
    ParseError,
    RecordField,
    TimeRecord,
)
from timetrack.interfaces.record_store import RecordStoreInterface

logger = logging.getLogger(__name__)


class InMemoryRecordStore(RecordStoreInterface):
    """インメモリによるStore層実装。"""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._generation = 0
        self._records: list[TimeRecord] = []
        self._errors: list[ParseError] = []

    def commit(
        self,
        generation: int,
        records: list[TimeRecord],
        errors: list[ParseError],
    ) -> bool:
        """バッチ結果を置き換え保存する。

        Args:
            generation: バッチ世代番号
            records: パースに成功したレコード
            errors: パースエラー

        Returns:
            保存した場合 True。コミット済み世代以下なら False
        """
        with self._lock:
            if generation <= self._generation:
                logger.info(
                    "Rejected stale batch generation %d (current %d)",
                    generation,
                    self._generation,
                )
                return False
            self._generation = generation
            self._records = list(records)
            self._errors = list(errors)
            return True

    def generation(self) -> int:
        with self._lock:
            return self._generation

    def get_records(self) -> list[TimeRecord]:
        with self._lock:
            return list(self._records)

    def get_errors(self) -> list[ParseError]:
        with self._lock:
            return list(self._errors)

    def known_values(self, record_field: RecordField) -> list[str]:
        accessor = FIELD_ACCESSORS[record_field]
        casing: dict[str, str] = {}
        for record in self.get_records():
            value = accessor(record)
            if value:
                casing.setdefault(value.casefold(), value)
        return sorted(casing.values())

    def clear(self) -> None:
        """レコードとエラーを削除する。世代番号は維持する。"""
        with self._lock:
            self._records = []
            self._errors = []
