"""時刻・期間・繰り返し計算のユニットテスト."""

from datetime import UTC, date, datetime, time, timedelta

import pytest

from timetrack.analysis.timemath import (
    OPEN_END,
    bucket_starts,
    coerce_date,
    count_recurring_instances,
    dates_from_numbers,
    day_number,
    parse_days_of_week,
    parse_time_of_day,
    recurring_day_numbers,
    span_hours,
    start_hour,
    to_utc_midnight,
    weekday_number,
    weekday_numbers,
)
from timetrack.interfaces.analysis import Granularity

MON_WED_FRI = frozenset({1, 3, 5})


def _enumerate(start: date, end: date, days: frozenset[int]) -> int:
    """1日ずつ数える参照実装."""
    count = 0
    current = start
    while current <= end:
        if current.isoweekday() % 7 in days:
            count += 1
        if current == end:
            break
        current += timedelta(days=1)
    return count


class TestParseTimeOfDay:
    """parse_time_of_day の入力形式テスト."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("9:00", (9, 0)),
            ("09:30", (9, 30)),
            ("13:05:00", (13, 5)),
            (9.5, (9, 30)),
            (14, (14, 0)),
            (time(7, 45), (7, 45)),
            (datetime(2024, 1, 1, 8, 15, tzinfo=UTC), (8, 15)),
        ],
    )
    def test_accepted_forms(self, value, expected):
        """既知の形式を (時, 分) に変換する."""
        parsed = parse_time_of_day(value)
        assert parsed is not None
        assert (parsed.hour, parsed.minute) == expected

    @pytest.mark.parametrize("value", [None, "", "not a time", float("nan"), True, "25:00"])
    def test_rejected_values(self, value):
        """解釈できない値は None."""
        assert parse_time_of_day(value) is None

    def test_24_00_is_end_of_day(self):
        """24:00 は1440分として扱う."""
        parsed = parse_time_of_day("24:00")
        assert parsed is not None
        assert parsed.total_minutes == 24 * 60

    def test_start_hour_rejects_24(self):
        """開始時刻としての 24 時は範囲外."""
        assert start_hour("24:00") is None
        assert start_hour("23:59") == 23
        assert start_hour(None) is None


class TestSpanHours:
    """span_hours の計算テスト."""

    def test_simple_span(self):
        """9:00 → 11:30 は 2.5 時間."""
        assert span_hours("9:00", "11:30") == 2.5

    def test_overnight_span(self):
        """22:00 → 02:00 は日付またぎで 4 時間."""
        assert span_hours("22:00", "02:00") == 4.0

    def test_days_multiplier(self):
        """days で乗算する."""
        assert span_hours("9:00", "10:00", 3) == 3.0

    @pytest.mark.parametrize("days", [-2, "abc", float("nan")])
    def test_invalid_days_clamped_to_zero(self, days):
        """負数・非数値・NaN の days は 0 時間."""
        assert span_hours("9:00", "10:00", days) == 0.0

    def test_none_days_defaults_to_one(self):
        """days=None は 1 日扱い."""
        assert span_hours("9:00", "10:00", None) == 1.0

    def test_missing_time_is_zero(self):
        """開始・終了のどちらかが欠けたら 0."""
        assert span_hours(None, "10:00") == 0.0
        assert span_hours("9:00", "garbage") == 0.0

    def test_same_time_is_zero(self):
        """開始 = 終了なら 0."""
        assert span_hours("9:00", "9:00") == 0.0


class TestDaysOfWeek:
    """曜日コードの正規化テスト."""

    def test_list_of_codes(self):
        assert parse_days_of_week(["M", "W", "F"]) == MON_WED_FRI

    def test_bracketed_string(self):
        """"[M,W]" 形式の文字列."""
        assert parse_days_of_week("[M,W]") == frozenset({1, 3})

    def test_spaced_string(self):
        assert parse_days_of_week("U, R, S") == frozenset({0, 4, 6})

    def test_unknown_codes_dropped(self):
        """未知のコードは無視する."""
        assert parse_days_of_week(["M", "X", "w"]) == frozenset({1, 3})

    def test_none(self):
        assert parse_days_of_week(None) == frozenset()

    def test_weekday_number_sunday_is_zero(self):
        """2024-01-07 は日曜."""
        assert weekday_number(date(2024, 1, 7)) == 0
        assert weekday_number(date(2024, 1, 6)) == 6


class TestCountRecurringInstances:
    """繰り返し回数の計算テスト."""

    def test_mon_wed_fri_january_2024(self):
        """2024年1月の月水金は14回（31日の水曜を含む）."""
        count = count_recurring_instances(
            date(2024, 1, 1), date(2024, 1, 31), MON_WED_FRI
        )
        assert count == 14

    def test_filter_window_intersection(self):
        """絞り込み期間との共通部分だけを数える."""
        count = count_recurring_instances(
            date(2024, 1, 1),
            None,
            frozenset({1, 3}),
            filter_start=date(2024, 1, 1),
            filter_end=date(2024, 1, 14),
        )
        assert count == 4

    def test_disjoint_windows(self):
        """共通部分がなければ 0."""
        count = count_recurring_instances(
            date(2024, 1, 1),
            date(2024, 1, 31),
            MON_WED_FRI,
            filter_start=date(2024, 3, 1),
        )
        assert count == 0

    def test_empty_days_of_week(self):
        assert count_recurring_instances(date(2024, 1, 1), date(2024, 1, 31), frozenset()) == 0

    def test_missing_start(self):
        assert count_recurring_instances(None, date(2024, 1, 31), MON_WED_FRI) == 0

    @pytest.mark.parametrize(
        "start, end, days",
        [
            (date(2024, 1, 1), date(2024, 1, 1), frozenset({1})),
            (date(2024, 1, 3), date(2024, 2, 29), frozenset({0, 6})),
            (date(2023, 12, 30), date(2024, 3, 17), frozenset({2, 4})),
            (date(2024, 2, 1), date(2024, 12, 31), frozenset(range(7))),
            (date(2024, 5, 5), date(2024, 5, 18), frozenset({5})),
        ],
    )
    def test_matches_day_by_day_enumeration(self, start, end, days):
        """週単位の計算・日数配列の展開は1日ずつ数えた結果と一致する."""
        expected = _enumerate(start, end, days)
        assert count_recurring_instances(start, end, days) == expected
        assert len(recurring_day_numbers(start, end, days)) == expected

    def test_open_ended_counts_to_open_end(self):
        """終了日なし・絞り込みなしは OPEN_END まで数える."""
        start = date(9999, 12, 1)
        expected = _enumerate(start, OPEN_END, MON_WED_FRI)
        assert count_recurring_instances(start, None, MON_WED_FRI) == expected
        days = dates_from_numbers(recurring_day_numbers(start, None, MON_WED_FRI))
        assert len(days) == expected
        assert days[-1] == date(9999, 12, 31)


class TestRecurringDayNumbers:
    """該当日の日数配列への展開テスト."""

    def test_days_in_window(self):
        """2024-01-01 〜 01-14 の月水は 4 日."""
        numbers = recurring_day_numbers(
            date(2024, 1, 1), date(2024, 1, 14), frozenset({1, 3})
        )
        assert dates_from_numbers(numbers) == [
            date(2024, 1, 1),
            date(2024, 1, 3),
            date(2024, 1, 8),
            date(2024, 1, 10),
        ]

    def test_filter_window_clips(self):
        numbers = recurring_day_numbers(
            date(2024, 1, 1),
            None,
            MON_WED_FRI,
            filter_start=date(2024, 1, 10),
            filter_end=date(2024, 1, 12),
        )
        assert dates_from_numbers(numbers) == [date(2024, 1, 10), date(2024, 1, 12)]

    def test_empty_window(self):
        numbers = recurring_day_numbers(date(2024, 1, 1), date(2024, 1, 31), frozenset())
        assert numbers.size == 0
        assert dates_from_numbers(numbers) == []

    def test_open_ended_from_today_reaches_open_end(self):
        """数千年分でも日数配列として一括で展開する."""
        numbers = recurring_day_numbers(date(2024, 1, 1), None, frozenset({1}))
        assert len(numbers) == count_recurring_instances(date(2024, 1, 1), None, frozenset({1}))
        assert dates_from_numbers(numbers[-1:]) == [date(9999, 12, 27)]

    def test_weekday_numbers_match_scalar(self):
        """1970-01-01 (木) 起点の日数から日曜 = 0 の曜日番号を求める."""
        days = [date(1970, 1, 1), date(2024, 1, 7), date(2024, 1, 6), OPEN_END]
        numbers = [day_number(d) for d in days]
        assert weekday_numbers(numbers).tolist() == [weekday_number(d) for d in days]
        assert day_number(date(1970, 1, 2)) == 1


class TestDatesAndBuckets:
    """日付の正規化とバケット開始日のテスト."""

    def test_coerce_iso_prefix(self):
        assert coerce_date("2024-03-04T10:00:00") == date(2024, 3, 4)

    def test_coerce_invalid_iso(self):
        """存在しない日付は None."""
        assert coerce_date("2024-02-30") is None

    def test_coerce_free_form(self):
        """dateutil で解釈できる形式."""
        assert coerce_date("March 4, 2024") == date(2024, 3, 4)

    def test_to_utc_midnight(self):
        result = to_utc_midnight(date(2024, 3, 4))
        assert result == datetime(2024, 3, 4, tzinfo=UTC)

    def test_bucket_starts(self):
        """2024-03-06 (水) と 03-10 (日) の day / week / month バケット."""
        numbers = [day_number(date(2024, 3, 6)), day_number(date(2024, 3, 10))]
        assert dates_from_numbers(bucket_starts(numbers, Granularity.DAY)) == [
            date(2024, 3, 6),
            date(2024, 3, 10),
        ]
        assert dates_from_numbers(bucket_starts(numbers, Granularity.WEEK)) == [
            date(2024, 3, 4),
            date(2024, 3, 4),
        ]
        assert dates_from_numbers(bucket_starts(numbers, Granularity.MONTH)) == [
            date(2024, 3, 1),
            date(2024, 3, 1),
        ]

    def test_bucket_starts_near_open_end(self):
        """pandas の Timestamp の範囲外でも月初を求められる."""
        numbers = [day_number(OPEN_END)]
        assert dates_from_numbers(bucket_starts(numbers, Granularity.MONTH)) == [
            date(9999, 12, 1)
        ]
        assert dates_from_numbers(bucket_starts(numbers, Granularity.WEEK)) == [
            date(9999, 12, 27)
        ]

    def test_bucket_starts_unknown_granularity(self):
        with pytest.raises(ValueError, match="Unknown granularity"):
            bucket_starts([day_number(date(2024, 3, 6))], "year")
