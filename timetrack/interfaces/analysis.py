"""絞り込み条件と分析リクエストの定義。

UI 側の状態はここで定義する不変の値として毎回渡す。
"""

from dataclasses import dataclass, field
from datetime import date
from enum import StrEnum

from timetrack.interfaces.record import RecordField, TimeRecord


class AnalysisMode(StrEnum):
    """集計モード。"""

    HIERARCHY = "hierarchy"
    CATEGORY = "category"
    TIME_SERIES = "time_series"
    ACTIVITY = "activity"


class HierarchyLevel(StrEnum):
    """階層集計の (内側, 外側) 項目ペア。"""

    PROJECT = "project"
    SUBPROJECT = "subproject"


HIERARCHY_LEVEL_FIELDS: dict[HierarchyLevel, tuple[RecordField, RecordField]] = {
    HierarchyLevel.PROJECT: (RecordField.HIERARCHY, RecordField.PROJECT),
    HierarchyLevel.SUBPROJECT: (RecordField.PROJECT, RecordField.SUBPROJECT),
}


class Granularity(StrEnum):
    """時系列集計のバケット粒度。"""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class ActivityPattern(StrEnum):
    """活動パターン集計のサブモード。"""

    WEEKDAY = "weekday"
    HOUR = "hour"
    HEATMAP = "heatmap"


@dataclass(frozen=True)
class FilterCriteria:
    """レコードの絞り込み条件。

    hierarchy / project は大文字小文字を区別しない完全一致。
    start / end は両端を含む日付範囲で、省略した側は無制限。
    """

    hierarchy: str | None = None
    project: str | None = None
    start: date | None = None
    end: date | None = None


@dataclass(frozen=True)
class FilteredRecord:
    """絞り込み期間内での実効時間付きレコード。"""

    record: TimeRecord
    effective_hours: float


@dataclass(frozen=True)
class FilterResult:
    """絞り込み結果と集計値。"""

    records: list[FilteredRecord]
    total_hours: float
    file_count: int


@dataclass(frozen=True)
class AnalysisRequest:
    """1回の分析呼び出しに必要な全パラメータ。

    mode 以外の項目は該当するモードでのみ参照される。
    """

    mode: AnalysisMode
    criteria: FilterCriteria = field(default_factory=FilterCriteria)
    level: HierarchyLevel = HierarchyLevel.PROJECT
    breakdown: RecordField = RecordField.PROJECT
    granularity: Granularity = Granularity.DAY
    stack_field: RecordField | None = None
    activity_pattern: ActivityPattern = ActivityPattern.WEEKDAY
    pattern: str | None = None
    with_trend: bool = False
