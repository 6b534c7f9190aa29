"""絞り込みエンジンのユニットテスト."""

from datetime import UTC, date, datetime

from timetrack.analysis.filtering import effective_hours, filter_records
from timetrack.interfaces.analysis import FilterCriteria
from timetrack.interfaces.record import RecordMetadata, TimeRecord


def _dated(
    day: date | None,
    duration: float = 1.0,
    hierarchy: str = "Work",
    project: str = "Alpha",
    path: str | None = None,
) -> TimeRecord:
    return TimeRecord(
        path=path or f"{hierarchy}/{project}-{day}.md",
        file=f"{project}-{day}.md",
        hierarchy=hierarchy,
        project=project,
        subproject="none",
        subproject_full="none",
        duration=duration,
        date=datetime(day.year, day.month, day.day, tzinfo=UTC) if day else None,
        metadata=RecordMetadata(),
    )


def _recurring(
    start: date,
    end: date | None,
    days: set[int],
    duration: float = 1.0,
    hierarchy: str = "Work",
) -> TimeRecord:
    return TimeRecord(
        path=f"{hierarchy}/(Work) ProjectX.md",
        file="(Work) ProjectX.md",
        hierarchy=hierarchy,
        project="ProjectX",
        subproject="none",
        subproject_full="none",
        duration=duration,
        date=None,
        metadata=RecordMetadata(
            type="recurring",
            start_recur=start,
            end_recur=end,
            days_of_week=frozenset(days),
        ),
    )


class TestDateRange:
    """単発レコードの期間判定."""

    def test_inclusive_bounds(self):
        """開始日・終了日ちょうどのレコードも含む."""
        records = [
            _dated(date(2024, 1, 1)),
            _dated(date(2024, 1, 15)),
            _dated(date(2024, 1, 31)),
            _dated(date(2024, 2, 1)),
        ]
        result = filter_records(
            records, FilterCriteria(start=date(2024, 1, 1), end=date(2024, 1, 31))
        )
        assert [r.record.date.date() for r in result.records] == [
            date(2024, 1, 1),
            date(2024, 1, 15),
            date(2024, 1, 31),
        ]
        assert result.total_hours == 3.0

    def test_open_bounds(self):
        """片側だけの指定."""
        records = [_dated(date(2024, 1, 1)), _dated(date(2024, 3, 1))]
        after = filter_records(records, FilterCriteria(start=date(2024, 2, 1)))
        before = filter_records(records, FilterCriteria(end=date(2024, 2, 1)))
        assert len(after.records) == 1
        assert len(before.records) == 1

    def test_undated_record_excluded(self):
        """日付のない単発レコードは期間指定の有無にかかわらず含まない."""
        records = [_dated(None), _dated(date(2024, 1, 1), duration=2.0)]
        unbounded = filter_records(records, FilterCriteria())
        assert [r.record.date.date() for r in unbounded.records] == [date(2024, 1, 1)]
        assert unbounded.total_hours == 2.0
        assert filter_records(records, FilterCriteria(end=date(2024, 1, 1))).total_hours == 2.0


class TestTextCriteria:
    """階層・プロジェクトの一致判定."""

    def test_hierarchy_excludes_root(self):
        """階層 "Work" 指定は階層 "root" のレコードを除外する."""
        records = [
            _dated(date(2024, 1, 1), hierarchy="Work"),
            _dated(date(2024, 1, 1), hierarchy="root"),
        ]
        result = filter_records(records, FilterCriteria(hierarchy="Work"))
        assert [r.record.hierarchy for r in result.records] == ["Work"]

    def test_case_insensitive(self):
        records = [_dated(date(2024, 1, 1), project="Alpha")]
        result = filter_records(records, FilterCriteria(project="  aLPHA "))
        assert len(result.records) == 1

    def test_exact_match_only(self):
        """部分一致は対象外."""
        records = [_dated(date(2024, 1, 1), project="Alphabet")]
        assert filter_records(records, FilterCriteria(project="Alpha")).records == []

    def test_blank_criteria_ignored(self):
        records = [_dated(date(2024, 1, 1))]
        result = filter_records(records, FilterCriteria(hierarchy=" ", project=""))
        assert len(result.records) == 1


class TestEffectiveHours:
    """実効時間の算出."""

    def test_recurring_within_window(self):
        """月水 2024-01-01〜01-14 は4回 × 1時間."""
        record = _recurring(date(2024, 1, 1), date(2024, 1, 14), {1, 3})
        assert effective_hours(record, FilterCriteria()) == 4.0

    def test_recurring_clipped_by_filter(self):
        record = _recurring(date(2024, 1, 1), date(2024, 1, 31), {1, 3, 5})
        criteria = FilterCriteria(start=date(2024, 1, 8), end=date(2024, 1, 12))
        assert effective_hours(record, criteria) == 3.0

    def test_recurring_outside_window_dropped(self):
        record = _recurring(date(2024, 1, 1), date(2024, 1, 31), {1})
        result = filter_records([record], FilterCriteria(start=date(2024, 6, 1)))
        assert result.records == []
        assert result.total_hours == 0.0

    def test_zero_duration_dropped(self):
        records = [_dated(date(2024, 1, 1), duration=0.0)]
        assert filter_records(records, FilterCriteria()).records == []

    def test_nan_duration_clamped(self):
        record = _dated(date(2024, 1, 1), duration=float("nan"))
        assert effective_hours(record, FilterCriteria()) == 0.0


class TestFilterResult:
    """集計値と純関数性."""

    def test_file_count_counts_distinct_paths(self):
        records = [
            _dated(date(2024, 1, 1), path="a.md"),
            _dated(date(2024, 1, 2), path="a.md"),
            _dated(date(2024, 1, 3), path="b.md"),
        ]
        result = filter_records(records, FilterCriteria())
        assert result.file_count == 2
        assert result.total_hours == 3.0

    def test_idempotent(self):
        """同じ入力には同じ結果を返す."""
        records = [
            _dated(date(2024, 1, 1)),
            _recurring(date(2024, 1, 1), date(2024, 1, 14), {1, 3}),
        ]
        criteria = FilterCriteria(start=date(2024, 1, 1), end=date(2024, 1, 10))
        assert filter_records(records, criteria) == filter_records(records, criteria)
