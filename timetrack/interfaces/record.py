"""作業記録のドメインモデル（境界①）。

1ファイル = 1レコード。ファイル名から分類を、フロントマターから
スケジュールを読み取った結果をここで定義する型で表現する。
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import StrEnum
from typing import Any

RECURRING_TYPE = "recurring"


@dataclass(frozen=True)
class SourceDocument:
    """解析対象の1ファイル（パスと本文）。"""

    path: str
    content: str


@dataclass(frozen=True)
class RecordMetadata:
    """フロントマターの型付き表現。

    既知のキーは型付きフィールドに、それ以外は extra にそのまま残す。
    days_of_week はパース時に曜日番号（日曜 = 0）の集合へ正規化済み。
    start_recur / end_recur は解釈できなかった場合 None。
    """

    type: str | None = None
    start_time: Any = None
    end_time: Any = None
    days: Any = None
    date: Any = None
    start_recur: date | None = None
    end_recur: date | None = None
    days_of_week: frozenset[int] = frozenset()
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_recurring(self) -> bool:
        return self.type == RECURRING_TYPE


@dataclass(frozen=True)
class TimeRecord:
    """作業記録（ドメインモデル）。

    duration は1回あたりの時間（h）。
    date は単発レコードのみ UTC 0時で保持し、繰り返しレコードは None。
    """

    path: str
    file: str
    hierarchy: str
    project: str
    subproject: str
    subproject_full: str
    duration: float
    date: datetime | None
    metadata: RecordMetadata

    @property
    def is_recurring(self) -> bool:
        return self.metadata.is_recurring


@dataclass(frozen=True)
class ParseError:
    """1ファイル分のパース失敗。バッチ処理は中断しない。"""

    file: str
    path: str
    reason: str


class RecordField(StrEnum):
    """集計キーとして選択できるレコード項目。"""

    HIERARCHY = "hierarchy"
    PROJECT = "project"
    SUBPROJECT = "subproject"
    SUBPROJECT_FULL = "subproject_full"
    FILE = "file"
    PATH = "path"


FIELD_ACCESSORS: dict[RecordField, Callable[[TimeRecord], str]] = {
    RecordField.HIERARCHY: lambda r: r.hierarchy,
    RecordField.PROJECT: lambda r: r.project,
    RecordField.SUBPROJECT: lambda r: r.subproject,
    RecordField.SUBPROJECT_FULL: lambda r: r.subproject_full,
    RecordField.FILE: lambda r: r.file,
    RecordField.PATH: lambda r: r.path,
}
"""RecordField → 値の取り出し関数。属性名の文字列参照は使わない。"""


def field_value(record: TimeRecord, record_field: RecordField) -> str:
    """集計用の項目値を返す。空値は "(No <field>)" に置き換える。"""
    value = FIELD_ACCESSORS[record_field](record)
    value = value.strip() if value else ""
    return value or f"(No {record_field.value})"
