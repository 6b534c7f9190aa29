"""絞り込みと実効時間の算出.

単発レコードは日付が期間内なら duration をそのまま、
繰り返しレコードは期間内の発生回数 × duration を実効時間とする。
同じ入力には常に同じ結果を返す純関数。
"""

import math
from collections.abc import Iterable

from timetrack.analysis.timemath import count_recurring_instances
from timetrack.interfaces.analysis import (
    FilterCriteria,
    FilteredRecord,
    FilterResult,
)
from timetrack.interfaces.record import TimeRecord


def _normalise(text: str | None) -> str | None:
    if text is None or not text.strip():
        return None
    return text.strip().casefold()


def _matches_text(value: str | None, wanted: str | None) -> bool:
    if wanted is None:
        return True
    if not value:
        return False
    return value.casefold() == wanted


def _within_range(record: TimeRecord, criteria: FilterCriteria) -> bool:
    # 日付のない単発レコードは日別の集計に載らないため常に対象外
    if record.date is None:
        return False
    day = record.date.date()
    if criteria.start is not None and day < criteria.start:
        return False
    if criteria.end is not None and day > criteria.end:
        return False
    return True


def effective_hours(record: TimeRecord, criteria: FilterCriteria) -> float:
    """期間内での実効時間を返す. 対象外なら 0."""
    if record.is_recurring:
        metadata = record.metadata
        instances = count_recurring_instances(
            metadata.start_recur,
            metadata.end_recur,
            metadata.days_of_week,
            criteria.start,
            criteria.end,
        )
        hours = (record.duration or 0.0) * instances
    elif _within_range(record, criteria):
        hours = record.duration
    else:
        return 0.0
    if not math.isfinite(hours) or hours <= 0:
        return 0.0
    return hours


def filter_records(
    records: Iterable[TimeRecord], criteria: FilterCriteria
) -> FilterResult:
    """条件に合うレコードを実効時間付きで返す.

    Args:
        records: 全レコード
        criteria: 絞り込み条件

    Returns:
        実効時間が正のレコード、合計時間、ファイル数
    """
    hierarchy = _normalise(criteria.hierarchy)
    project = _normalise(criteria.project)

    filtered: list[FilteredRecord] = []
    total = 0.0
    paths: set[str] = set()
    for record in records:
        if not _matches_text(record.hierarchy, hierarchy):
            continue
        if not _matches_text(record.project, project):
            continue
        hours = effective_hours(record, criteria)
        if hours <= 0:
            continue
        filtered.append(FilteredRecord(record=record, effective_hours=hours))
        total += hours
        paths.add(record.path)

    return FilterResult(records=filtered, total_hours=total, file_count=len(paths))
