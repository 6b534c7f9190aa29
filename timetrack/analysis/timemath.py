"""時刻・期間・繰り返し回数の計算.

日付は全て UTC の暦日として扱い、タイムゾーンによる日付ずれを避ける。
曜日番号は日曜 = 0 〜 土曜 = 6。
"""

import math
import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, date, datetime, time
from typing import Any

import numpy as np
from dateutil.parser import parse as dateutil_parse

from timetrack.interfaces.analysis import Granularity

MINUTES_PER_DAY = 24 * 60

OPEN_END = date(9999, 12, 31)
"""終了日のない繰り返しの上限として扱う日付."""

DAY_CODES: dict[str, int] = {"U": 0, "M": 1, "T": 2, "W": 3, "R": 4, "F": 5, "S": 6}
"""曜日コード → 曜日番号（日曜 = 0）."""

_HHMM_RE = re.compile(r"^(\d{1,2}):(\d{2})")
_ISO_DATE_PREFIX_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")


@dataclass(frozen=True)
class TimeOfDay:
    """時刻（時・分）."""

    hour: int
    minute: int

    @property
    def total_minutes(self) -> int:
        return self.hour * 60 + self.minute


def _checked(hour: int, minute: int) -> TimeOfDay | None:
    if minute == 60:
        hour, minute = hour + 1, 0
    # 24:00 は終了時刻としてのみ意味を持つ
    if not (0 <= hour <= 24 and 0 <= minute <= 59):
        return None
    if hour == 24 and minute != 0:
        return None
    return TimeOfDay(hour, minute)


def parse_time_of_day(value: Any) -> TimeOfDay | None:
    """時刻表現を解釈する.

    受け付ける形式:
        - 小数付きの時間数（例: 9.5 → 9:30）
        - 先頭が "H:MM" / "HH:MM" の文字列
        - datetime / time オブジェクト
        - dateutil で解釈できる日時文字列（UTC の時・分を使う）

    Returns:
        TimeOfDay。解釈できない場合は None
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        hours = math.floor(value)
        return _checked(hours, round((value - hours) * 60))
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(UTC)
        return TimeOfDay(value.hour, value.minute)
    if isinstance(value, time):
        return TimeOfDay(value.hour, value.minute)

    text = str(value).strip()
    if not text:
        return None
    match = _HHMM_RE.match(text)
    if match:
        return _checked(int(match.group(1)), int(match.group(2)))
    try:
        parsed = dateutil_parse(text)
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(UTC)
    return TimeOfDay(parsed.hour, parsed.minute)


def start_hour(value: Any) -> int | None:
    """開始時刻の「時」を返す. 0〜23 の範囲外や解釈不能なら None."""
    parsed = parse_time_of_day(value)
    if parsed is None or parsed.hour > 23:
        return None
    return parsed.hour


def _day_multiplier(days: Any) -> float:
    if days is None:
        return 1.0
    try:
        multiplier = float(days)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(multiplier):
        return 0.0
    return max(0.0, multiplier)


def span_hours(start: Any, end: Any, days: Any = 1) -> float:
    """開始〜終了時刻の時間数に日数を掛けて返す.

    終了が開始より前なら日付をまたいだとみなし 24 時間を1回だけ足す。
    2回以上の日付またぎは扱わない。

    Args:
        start: 開始時刻
        end: 終了時刻
        days: 日数の乗数（None は 1、数値でなければ 0、負は 0）

    Returns:
        0 以上の時間数。時刻が欠けている・不正な場合は 0
    """
    start_tod = parse_time_of_day(start)
    end_tod = parse_time_of_day(end)
    if start_tod is None or end_tod is None:
        return 0.0

    minutes = end_tod.total_minutes - start_tod.total_minutes
    if minutes < 0:
        minutes += MINUTES_PER_DAY
    hours = minutes / 60 * _day_multiplier(days)
    if not math.isfinite(hours) or hours <= 0:
        return 0.0
    return hours


def weekday_number(day: date) -> int:
    """曜日番号（日曜 = 0）を返す."""
    return day.isoweekday() % 7


def parse_days_of_week(value: Any) -> frozenset[int]:
    """曜日コードの配列または区切り文字列を曜日番号の集合にする.

    "[M,W]" や "M, W" のようなカンマ区切り文字列も受け付ける。
    未知のコードは無視する。
    """
    if value is None:
        return frozenset()
    if isinstance(value, (list, tuple, set, frozenset)):
        codes: Iterable[Any] = value
    else:
        codes = re.sub(r"[\[\]\s]", "", str(value)).split(",")
    numbers = {DAY_CODES.get(str(code).strip().upper()) for code in codes}
    numbers.discard(None)
    return frozenset(numbers)


def coerce_date(value: Any) -> date | None:
    """日付らしき値を暦日にする. 解釈できなければ None.

    ISO 形式の先頭一致、date / datetime、dateutil による解釈の順に試す。
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    match = _ISO_DATE_PREFIX_RE.match(text)
    try:
        if match:
            year, month, day = (int(g) for g in match.groups())
            return date(year, month, day)
        return dateutil_parse(text).date()
    except (ValueError, OverflowError):
        return None


def to_utc_midnight(day: date) -> datetime:
    """暦日を UTC 0時の datetime にする."""
    return datetime(day.year, day.month, day.day, tzinfo=UTC)


def _recurrence_window(
    start_recur: date | None,
    end_recur: date | None,
    days_of_week: frozenset[int],
    filter_start: date | None,
    filter_end: date | None,
) -> tuple[date, date] | None:
    if start_recur is None or not days_of_week:
        return None
    effective_start = max(start_recur, filter_start or start_recur)
    effective_end = min(end_recur or OPEN_END, filter_end or OPEN_END)
    if effective_start > effective_end:
        return None
    return effective_start, effective_end


def count_recurring_instances(
    start_recur: date | None,
    end_recur: date | None,
    days_of_week: frozenset[int],
    filter_start: date | None = None,
    filter_end: date | None = None,
) -> int:
    """繰り返し期間と絞り込み期間の共通部分に含まれる該当曜日の日数.

    両端を含む。1日ずつ数えた場合と同じ結果を、週単位の計算で求める。

    Args:
        start_recur: 繰り返し開始日
        end_recur: 繰り返し終了日（None は無期限）
        days_of_week: 対象の曜日番号の集合
        filter_start: 絞り込み開始日（None は無制限）
        filter_end: 絞り込み終了日（None は無制限）

    Returns:
        該当日数。共通部分が空・曜日指定が空なら 0
    """
    window = _recurrence_window(
        start_recur, end_recur, days_of_week, filter_start, filter_end
    )
    if window is None:
        return 0
    first, last = window
    total_days = (last - first).days + 1
    full_weeks, remainder = divmod(total_days, 7)
    first_weekday = weekday_number(first)
    count = full_weeks * len(days_of_week)
    count += sum(
        1 for i in range(remainder) if (first_weekday + i) % 7 in days_of_week
    )
    return count


def day_number(day: date) -> int:
    """暦日を 1970-01-01 からの日数にする."""
    return int(np.datetime64(day, "D").astype(np.int64))


def dates_from_numbers(day_numbers: np.ndarray) -> list[date]:
    """日数の配列を暦日のリストに戻す."""
    return np.asarray(day_numbers, dtype=np.int64).astype("datetime64[D]").tolist()


def weekday_numbers(day_numbers: np.ndarray) -> np.ndarray:
    """日数の配列から曜日番号（日曜 = 0）の配列を求める."""
    # 1970-01-01 は木曜
    return (np.asarray(day_numbers, dtype=np.int64) + 4) % 7


def recurring_day_numbers(
    start_recur: date | None,
    end_recur: date | None,
    days_of_week: frozenset[int],
    filter_start: date | None = None,
    filter_end: date | None = None,
) -> np.ndarray:
    """count_recurring_instances と同じ範囲の該当日を日数の昇順配列で返す.

    pandas の Timestamp は 2262 年までしか表せないため、
    OPEN_END まで届く範囲は numpy の日単位の整数で扱う。
    """
    window = _recurrence_window(
        start_recur, end_recur, days_of_week, filter_start, filter_end
    )
    if window is None:
        return np.empty(0, dtype=np.int64)
    first, last = (day_number(day) for day in window)
    days = np.arange(first, last + 1, dtype=np.int64)
    return days[np.isin(weekday_numbers(days), sorted(days_of_week))]


def bucket_starts(day_numbers: np.ndarray, granularity: Granularity) -> np.ndarray:
    """各日が属するバケットの開始日を日数の配列で返す.

    week は月曜始まりの ISO 週、month は月初。
    """
    days = np.asarray(day_numbers, dtype=np.int64)
    if granularity == Granularity.DAY:
        return days
    if granularity == Granularity.WEEK:
        return days - (weekday_numbers(days) + 6) % 7
    if granularity == Granularity.MONTH:
        months = days.astype("datetime64[D]").astype("datetime64[M]")
        return months.astype("datetime64[D]").astype(np.int64)
    raise ValueError(f"Unknown granularity: {granularity}")
