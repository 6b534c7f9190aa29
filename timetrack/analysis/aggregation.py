"""集計エンジン.

絞り込み済みレコードを4種類のレポートに変換する。
- 階層集計（ルート → 内側項目 → (内側, 外側) の葉）
- フラットなカテゴリ別集計
- 時系列バケット集計
- 曜日・開始時刻の活動パターン集計

どのモードも入力が空なら EmptyReason.NO_RECORDS を持つ結果を返し、
例外は投げない。各バケット・葉・カテゴリは寄与したレコードを保持する。
"""

import re

import numpy as np
import pandas as pd

from timetrack.analysis.timemath import (
    bucket_starts,
    dates_from_numbers,
    day_number,
    recurring_day_numbers,
    start_hour,
    weekday_numbers,
)
from timetrack.analysis.trend import RISING_THRESHOLD, trend_for_totals
from timetrack.interfaces.analysis import (
    HIERARCHY_LEVEL_FIELDS,
    ActivityPattern,
    FilterCriteria,
    FilteredRecord,
    Granularity,
    HierarchyLevel,
)
from timetrack.interfaces.record import RecordField, field_value
from timetrack.interfaces.report import (
    ActivityPatternReport,
    CategoryReport,
    EmptyReason,
    HierarchyNode,
    HierarchyReport,
    TimeBucket,
    TimeSeriesReport,
)

ROOT_ID = "Total"

ACTIVITY_SHAPES: dict[ActivityPattern, tuple[int, ...]] = {
    ActivityPattern.WEEKDAY: (7,),
    ActivityPattern.HOUR: (24,),
    ActivityPattern.HEATMAP: (7, 24),
}


def compile_pattern(pattern: str | None) -> tuple[re.Pattern | None, str | None]:
    """大文字小文字を区別しない正規表現をコンパイルする.

    Returns:
        (コンパイル済みパターン, エラーメッセージ)。空パターンは (None, None)
    """
    if pattern is None or not pattern.strip():
        return None, None
    try:
        return re.compile(pattern.strip(), re.IGNORECASE), None
    except re.error as exc:
        return None, str(exc)


def _matching(frame: pd.DataFrame, column: str, regex: re.Pattern | None) -> pd.DataFrame:
    if regex is None:
        return frame
    return frame[frame[column].map(lambda value: regex.search(value) is not None)]


def _pick(records: list[FilteredRecord], labels) -> list[FilteredRecord]:
    return [records[int(i)] for i in labels]


def expand_by_day(
    records: list[FilteredRecord], criteria: FilterCriteria
) -> pd.DataFrame:
    """レコードを日別の行に展開する.

    列は day（1970-01-01 からの日数）, hours, pos（レコード位置）。
    単発レコードは日付1行（実効時間）。繰り返しレコードは
    絞り込み期間内の該当日ごとに1回分の時間を1行ずつ出す。
    """
    days = [np.empty(0, dtype=np.int64)]
    hours = [np.empty(0, dtype=float)]
    positions = [np.empty(0, dtype=np.int64)]
    for pos, item in enumerate(records):
        record = item.record
        if record.is_recurring:
            metadata = record.metadata
            numbers = recurring_day_numbers(
                metadata.start_recur,
                metadata.end_recur,
                metadata.days_of_week,
                criteria.start,
                criteria.end,
            )
            days.append(numbers)
            hours.append(np.full(len(numbers), record.duration or 0.0))
            positions.append(np.full(len(numbers), pos, dtype=np.int64))
        elif record.date is not None:
            days.append(np.array([day_number(record.date.date())], dtype=np.int64))
            hours.append(np.array([item.effective_hours]))
            positions.append(np.array([pos], dtype=np.int64))
    frame = pd.DataFrame(
        {
            "day": np.concatenate(days),
            "hours": np.concatenate(hours),
            "pos": np.concatenate(positions),
        }
    )
    return frame[frame["hours"] > 0].reset_index(drop=True)


def aggregate_hierarchy(
    records: list[FilteredRecord],
    level: HierarchyLevel,
    pattern: str | None = None,
) -> HierarchyReport:
    """階層集計.

    正規表現は集計前に外側項目へ適用する。

    Args:
        records: 絞り込み済みレコード
        level: PROJECT (階層 → プロジェクト) / SUBPROJECT (プロジェクト → サブ)
        pattern: 外側項目に対する正規表現（省略可）

    Returns:
        HierarchyReport。root.value は全ての葉の合計に等しい
    """
    regex, error = compile_pattern(pattern)
    if error is not None:
        return HierarchyReport(
            level=level,
            root=None,
            empty_reason=EmptyReason.INVALID_PATTERN,
            error_message=error,
        )
    if not records:
        return HierarchyReport(level=level, root=None, empty_reason=EmptyReason.NO_RECORDS)

    inner_field, outer_field = HIERARCHY_LEVEL_FIELDS[level]
    frame = pd.DataFrame(
        {
            "inner": [field_value(r.record, inner_field) for r in records],
            "outer": [field_value(r.record, outer_field) for r in records],
            "hours": [r.effective_hours for r in records],
        }
    )
    frame = _matching(frame, "outer", regex)
    frame = frame[frame["hours"] > 0]
    if frame.empty:
        return HierarchyReport(level=level, root=None, empty_reason=EmptyReason.NO_MATCH)

    children: list[HierarchyNode] = []
    for inner, inner_frame in frame.groupby("inner", sort=False):
        leaves = [
            HierarchyNode(
                id=f"{inner} - {outer}",
                label=outer,
                parent=inner,
                value=float(leaf_frame["hours"].sum()),
                records=_pick(records, leaf_frame.index),
            )
            for outer, leaf_frame in inner_frame.groupby("outer", sort=False)
        ]
        children.append(
            HierarchyNode(
                id=inner,
                label=inner,
                parent=ROOT_ID,
                value=sum(leaf.value for leaf in leaves),
                records=_pick(records, inner_frame.index),
                children=leaves,
            )
        )

    root = HierarchyNode(
        id=ROOT_ID,
        label=ROOT_ID,
        parent="",
        value=sum(child.value for child in children),
        records=_pick(records, frame.index),
        children=children,
    )
    return HierarchyReport(level=level, root=root)


def aggregate_categories(
    records: list[FilteredRecord],
    breakdown: RecordField,
    pattern: str | None = None,
) -> CategoryReport:
    """フラットなカテゴリ別集計.

    不正な正規表現は例外にせず error=True の空結果を返す。
    """
    regex, error = compile_pattern(pattern)
    if error is not None:
        return CategoryReport(
            breakdown=breakdown,
            hours={},
            records_by_category={},
            error=True,
            error_message=error,
            empty_reason=EmptyReason.INVALID_PATTERN,
        )
    if not records:
        return CategoryReport(
            breakdown=breakdown,
            hours={},
            records_by_category={},
            empty_reason=EmptyReason.NO_RECORDS,
        )

    frame = pd.DataFrame(
        {
            "key": [field_value(r.record, breakdown) for r in records],
            "hours": [r.effective_hours for r in records],
        }
    )
    frame = _matching(frame, "key", regex)
    frame = frame[frame["hours"] > 0]
    if frame.empty:
        return CategoryReport(
            breakdown=breakdown,
            hours={},
            records_by_category={},
            empty_reason=EmptyReason.NO_MATCH,
        )

    grouped = frame.groupby("key", sort=False)
    hours = {str(key): float(total) for key, total in grouped["hours"].sum().items()}
    groups = grouped.groups
    return CategoryReport(
        breakdown=breakdown,
        hours=hours,
        records_by_category={key: _pick(records, groups[key]) for key in hours},
    )


def aggregate_time_series(
    records: list[FilteredRecord],
    granularity: Granularity,
    criteria: FilterCriteria | None = None,
    stack_field: RecordField | None = None,
    with_trend: bool = False,
    trend_threshold: float = RISING_THRESHOLD,
) -> TimeSeriesReport:
    """時系列バケット集計.

    繰り返しレコードは該当日ごとに分配してからバケットに入れる。

    Args:
        records: 絞り込み済みレコード
        granularity: day / week（月曜始まり）/ month
        criteria: 絞り込みに使った条件（繰り返しの展開範囲）
        stack_field: 積み上げ表示用のカテゴリ項目（省略可）
        with_trend: バケット合計の線形トレンドを付けるか
        trend_threshold: 増加傾向と判定する slope の閾値

    Returns:
        TimeSeriesReport。buckets はバケット開始日の昇順
    """
    if not records:
        return TimeSeriesReport(
            granularity=granularity,
            stack_field=stack_field,
            buckets=[],
            empty_reason=EmptyReason.NO_RECORDS,
        )

    frame = expand_by_day(records, criteria or FilterCriteria())
    if frame.empty:
        return TimeSeriesReport(
            granularity=granularity,
            stack_field=stack_field,
            buckets=[],
            empty_reason=EmptyReason.NO_MATCH,
        )

    frame = frame.assign(bucket=bucket_starts(frame["day"].to_numpy(), granularity))
    totals = frame.groupby("bucket", sort=True)["hours"].sum()
    contributors = (
        frame.drop_duplicates(["bucket", "pos"]).groupby("bucket", sort=True)["pos"].agg(list)
    )
    categories: dict[int, dict[str, float]] = {}
    if stack_field is not None:
        labels = {pos: field_value(item.record, stack_field) for pos, item in enumerate(records)}
        sums = (
            frame.assign(category=frame["pos"].map(labels))
            .groupby(["bucket", "category"], sort=True)["hours"]
            .sum()
        )
        for (bucket, category), total in sums.items():
            categories.setdefault(int(bucket), {})[str(category)] = float(total)

    buckets = [
        TimeBucket(
            start=start,
            total=float(total),
            categories=categories.get(int(key), {}),
            records=[records[int(pos)] for pos in positions],
        )
        for key, start, total, positions in zip(
            totals.index,
            dates_from_numbers(totals.index.to_numpy()),
            totals.to_numpy(),
            contributors.to_numpy(),
        )
    ]

    trend = None
    if with_trend:
        trend = trend_for_totals([b.total for b in buckets], trend_threshold)
    return TimeSeriesReport(
        granularity=granularity,
        stack_field=stack_field,
        buckets=buckets,
        trend=trend,
    )


def _empty_values(pattern: ActivityPattern) -> np.ndarray:
    if pattern == ActivityPattern.HEATMAP:
        return np.full(ACTIVITY_SHAPES[pattern], np.nan)
    return np.zeros(ACTIVITY_SHAPES[pattern])


def aggregate_activity(
    records: list[FilteredRecord],
    pattern: ActivityPattern,
    criteria: FilterCriteria | None = None,
) -> ActivityPatternReport:
    """曜日・開始時刻の活動パターン集計.

    weekday: 曜日ごとの合計（繰り返しは日ごとに展開）
    hour: 開始時刻の「時」ごとの合計（1レコード1回、展開しない）
    heatmap: 曜日 × 開始時刻。寄与のないセルは NaN
    """
    values = _empty_values(pattern)
    if not records:
        return ActivityPatternReport(
            pattern=pattern,
            values=values,
            records_by_cell={},
            empty_reason=EmptyReason.NO_RECORDS,
        )

    cells: dict[tuple[int, ...], list[FilteredRecord]] = {}
    seen: set[tuple[tuple[int, ...], int]] = set()

    def _add(cell: tuple[int, ...], pos: int, hours: float) -> None:
        if np.isnan(values[cell]):
            values[cell] = 0.0
        values[cell] += hours
        if (cell, pos) not in seen:
            seen.add((cell, pos))
            cells.setdefault(cell, []).append(records[pos])

    if pattern == ActivityPattern.HOUR:
        for pos, item in enumerate(records):
            hour = start_hour(item.record.metadata.start_time)
            if hour is not None:
                _add((hour,), pos, item.effective_hours)
    else:
        frame = expand_by_day(records, criteria or FilterCriteria())
        frame = frame.assign(weekday=weekday_numbers(frame["day"].to_numpy()))
        keys = ["weekday"]
        if pattern == ActivityPattern.HEATMAP:
            start_hours = {
                pos: start_hour(item.record.metadata.start_time)
                for pos, item in enumerate(records)
            }
            frame = frame.assign(hour=frame["pos"].map(start_hours)).dropna(subset=["hour"])
            keys.append("hour")
        sums = frame.groupby([*keys, "pos"], sort=True)["hours"].sum()
        for key, hours in sums.items():
            *cell, pos = (int(k) for k in key)
            _add(tuple(cell), pos, float(hours))

    return ActivityPatternReport(
        pattern=pattern,
        values=values,
        records_by_cell=cells,
        empty_reason=None if cells else EmptyReason.NO_MATCH,
    )
