"""集計結果の定義（境界③）。

分析層が生成し、描画側コラボレータが読み取る。
どの結果も寄与したレコードを保持し、ドリルダウンに使える。
結果は毎回作り直す派生ビューで、永続化もキャッシュもしない。
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import date
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import numpy as np

    from timetrack.interfaces.analysis import (
        ActivityPattern,
        FilteredRecord,
        Granularity,
        HierarchyLevel,
    )
    from timetrack.interfaces.record import ParseError, RecordField


class EmptyReason(StrEnum):
    """結果が空になった理由。

    NO_RECORDS: 入力レコードが1件もない
    NO_MATCH: 入力はあるが正規表現等で全て除外された
    INVALID_PATTERN: 正規表現が不正
    """

    NO_RECORDS = "no_records"
    NO_MATCH = "no_match"
    INVALID_PATTERN = "invalid_pattern"


@dataclass(frozen=True)
class HierarchyNode:
    """階層集計のノード（ルート・内側・葉）。"""

    id: str
    label: str
    parent: str
    value: float
    records: list[FilteredRecord]
    children: list[HierarchyNode] = field(default_factory=list)


@dataclass(frozen=True)
class HierarchyReport:
    """階層集計結果。root は合計、子は内側項目、孫は (内側, 外側) の葉。"""

    level: HierarchyLevel
    root: HierarchyNode | None
    empty_reason: EmptyReason | None = None
    error_message: str | None = None

    def iter_nodes(self) -> Iterator[HierarchyNode]:
        """ルートから幅優先でノードを返す。"""
        if self.root is None:
            return
        queue = [self.root]
        while queue:
            node = queue.pop(0)
            yield node
            queue.extend(node.children)

    def leaves(self) -> list[HierarchyNode]:
        """葉ノードのみを返す。"""
        if self.root is None:
            return []
        return [leaf for inner in self.root.children for leaf in inner.children]


@dataclass(frozen=True)
class CategoryReport:
    """フラットなカテゴリ別集計結果。"""

    breakdown: RecordField
    hours: dict[str, float]
    records_by_category: dict[str, list[FilteredRecord]]
    error: bool = False
    error_message: str | None = None
    empty_reason: EmptyReason | None = None


@dataclass(frozen=True)
class TrendResult:
    """時系列のトレンド分析結果。"""

    slope: float
    intercept: float
    is_rising: bool


@dataclass(frozen=True)
class TimeBucket:
    """時系列の1期間。categories は積み上げ指定時のみ埋まる。"""

    start: date
    total: float
    categories: dict[str, float]
    records: list[FilteredRecord]


@dataclass(frozen=True)
class TimeSeriesReport:
    """時系列集計結果。buckets は start 昇順。"""

    granularity: Granularity
    stack_field: RecordField | None
    buckets: list[TimeBucket]
    trend: TrendResult | None = None
    empty_reason: EmptyReason | None = None


@dataclass(frozen=True)
class ActivityPatternReport:
    """活動パターン集計結果。

    values の shape は weekday: (7,), hour: (24,), heatmap: (7, 24)。
    曜日は日曜 = 0。heatmap では寄与のないセルを NaN とし、
    合計がちょうど 0 のセルと区別する。
    """

    pattern: ActivityPattern
    values: np.ndarray
    records_by_cell: dict[tuple[int, ...], list[FilteredRecord]]
    empty_reason: EmptyReason | None = None


Report = HierarchyReport | CategoryReport | TimeSeriesReport | ActivityPatternReport


@dataclass(frozen=True)
class AnalysisOutcome:
    """1回の分析呼び出しの出力。"""

    report: Report
    total_hours: float
    file_count: int
    errors: list[ParseError]


@dataclass(frozen=True)
class InsightGroup:
    """インサイト用のグループ定義。いずれかのルールに一致したら所属。"""

    hierarchies: list[str] = field(default_factory=list)
    projects: list[str] = field(default_factory=list)
    subproject_keywords: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class InsightItem:
    """インサイトの明細行。"""

    label: str
    details: str
    hours: float | None = None
    sub_items: list[InsightItem] = field(default_factory=list)


@dataclass(frozen=True)
class Insight:
    """自動生成されたインサイト1件。sentiment は neutral / warning。"""

    category: str
    text: str
    sentiment: str
    items: list[InsightItem] = field(default_factory=list)
