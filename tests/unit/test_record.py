"""レコードのドメインモデルのユニットテスト."""

import dataclasses
from datetime import date

from timetrack.interfaces.record import (
    RecordField,
    RecordMetadata,
    TimeRecord,
    field_value,
)


def _record(project: str = "Alpha", **metadata) -> TimeRecord:
    return TimeRecord(
        path=f"Work/(Work) {project}.md",
        file=f"(Work) {project}.md",
        hierarchy="Work",
        project=project,
        subproject="none",
        subproject_full="none",
        duration=1.0,
        date=None,
        metadata=RecordMetadata(**metadata),
    )


class TestRecordMetadata:
    """フロントマターの型付き表現."""

    def test_defaults(self):
        metadata = RecordMetadata()
        assert metadata.date is None
        assert metadata.start_recur is None
        assert metadata.end_recur is None
        assert metadata.days_of_week == frozenset()
        assert metadata.extra == {}
        assert not metadata.is_recurring

    def test_date_field_and_recurrence_dates_coexist(self):
        """date という名前のフィールドがあっても開始・終了日の型は暦日."""
        metadata = RecordMetadata(
            type="recurring",
            date="2024-01-01",
            start_recur=date(2024, 1, 1),
            end_recur=date(2024, 1, 31),
        )
        assert metadata.is_recurring
        assert metadata.date == "2024-01-01"
        assert metadata.start_recur == date(2024, 1, 1)
        names = [f.name for f in dataclasses.fields(RecordMetadata)]
        assert names.index("date") < names.index("start_recur")


class TestFieldValue:
    """集計キーの取り出し."""

    def test_value(self):
        assert field_value(_record(), RecordField.PROJECT) == "Alpha"

    def test_blank_value_placeholder(self):
        """空白だけの値は "(No <field>)"."""
        assert field_value(_record("  "), RecordField.PROJECT) == "(No project)"

    def test_recurring_record(self):
        record = _record(type="recurring", start_recur=date(2024, 1, 1))
        assert record.is_recurring
        assert record.date is None
