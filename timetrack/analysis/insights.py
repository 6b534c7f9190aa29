"""記録全体から定型のインサイトを生成する.

基準日 today を引数で受け取る純関数。日付を持つ単発レコードのみを対象とする。
"""

from collections import Counter, defaultdict
from datetime import date, timedelta

from timetrack.interfaces.record import TimeRecord
from timetrack.interfaces.report import Insight, InsightGroup, InsightItem

WEEK_DAYS = 7
BASELINE_DAYS = 30
LAPSED_MIN_COUNT = 2
TOP_N = 3


def _dated(records: list[TimeRecord]) -> list[tuple[date, TimeRecord]]:
    return [(r.date.date(), r) for r in records if r.date is not None]


def _percent(part: float, whole: float) -> float:
    return part / whole * 100 if whole > 0 else 0.0


def tag_record(record: TimeRecord, groups: dict[str, InsightGroup]) -> set[str]:
    """レコードが属するグループ名を返す.

    階層名・プロジェクト名は大文字小文字を区別しない完全一致、
    サブプロジェクトはキーワードの部分一致。
    """
    tags: set[str] = set()
    hierarchy = record.hierarchy.casefold()
    project = record.project.casefold()
    subproject = record.subproject.casefold()
    for name, group in groups.items():
        if any(h.casefold() == hierarchy for h in group.hierarchies):
            tags.add(name)
        elif any(p.casefold() == project for p in group.projects):
            tags.add(name)
        elif any(kw.casefold() in subproject for kw in group.subproject_keywords):
            tags.add(name)
    return tags


def weekly_snapshot(records: list[TimeRecord], today: date) -> Insight | None:
    """直近1週間で最も多い階層と最も少ない階層を比較する.

    その前の30日間のデータがあれば比率を併記する。
    """
    week_start = today - timedelta(days=WEEK_DAYS)
    baseline_start = week_start - timedelta(days=BASELINE_DAYS)

    weekly: dict[str, float] = defaultdict(float)
    baseline: dict[str, float] = defaultdict(float)
    projects: dict[str, dict[str, float]] = defaultdict(lambda: defaultdict(float))
    for day, record in _dated(records):
        if week_start <= day <= today:
            weekly[record.hierarchy] += record.duration
            projects[record.hierarchy][record.project] += record.duration
        elif baseline_start <= day < week_start:
            baseline[record.hierarchy] += record.duration

    weekly_total = sum(weekly.values())
    if len(weekly) < 2 or weekly_total <= 0:
        return None

    ranked = sorted(weekly.items(), key=lambda item: item[1])
    least, most = ranked[0], ranked[-1]
    if least[0] == most[0] or most[1] <= 0:
        return None

    most_pct = _percent(most[1], weekly_total)
    least_pct = _percent(least[1], weekly_total)
    text = (
        f"Last week, your main focus was '{most[0]}' for {most_pct:.0f}%, "
        f"while '{least[0]}' for {least_pct:.0f}% took a backseat."
    )
    baseline_total = sum(baseline.values())
    if baseline_total > 0 and (baseline.get(most[0]) or baseline.get(least[0])):
        text += (
            f" This compares to last month's "
            f"{_percent(baseline.get(most[0], 0.0), baseline_total):.0f}% on '{most[0]}' "
            f"and {_percent(baseline.get(least[0], 0.0), baseline_total):.0f}% "
            f"on '{least[0]}'."
        )

    def _item(name: str, hours: float, pct: float) -> InsightItem:
        top_projects = sorted(projects[name].items(), key=lambda kv: -kv[1])[:TOP_N]
        return InsightItem(
            label=name,
            details=f"{pct:.0f}% ({hours:.1f} hours last week)",
            hours=hours,
            sub_items=[
                InsightItem(label=p, details=f"{h:.1f} hours", hours=h)
                for p, h in top_projects
            ],
        )

    return Insight(
        category="Weekly Snapshot",
        text=text,
        sentiment="neutral",
        items=[_item(*most, most_pct), _item(*least, least_pct)],
    )


def group_distribution(
    records: list[TimeRecord], groups: dict[str, InsightGroup], today: date
) -> Insight | None:
    """直近30日間でグループ別の時間が多い上位3件を示す."""
    if not groups:
        return None
    since = today - timedelta(days=BASELINE_DAYS)
    distribution: dict[str, float] = defaultdict(float)
    grand_total = 0.0
    for day, record in _dated(records):
        if not since <= day <= today:
            continue
        grand_total += record.duration
        for tag in tag_record(record, groups):
            distribution[tag] += record.duration

    if grand_total <= 0 or not distribution:
        return None

    top = sorted(distribution.items(), key=lambda kv: -kv[1])[:TOP_N]
    names = [f"'{name}'" for name, _ in top]
    if len(names) == 1:
        joined = names[0]
    elif len(names) == 2:
        joined = " and ".join(names)
    else:
        joined = f"{', '.join(names[:-1])}, and {names[-1]}"
    share = _percent(sum(hours for _, hours in top), grand_total)
    verb = "activity was" if len(top) == 1 else "activities were"

    return Insight(
        category="Activity Overview",
        text=(
            f"Your top {verb} {joined}, accounting for {share:.0f}% "
            "of your total logged time."
        ),
        sentiment="neutral",
        items=[
            InsightItem(
                label=name,
                details=f"{hours:.1f} hours ({_percent(hours, grand_total):.0f}% of total)",
                hours=hours,
            )
            for name, hours in top
        ],
    )


def lapsed_habits(records: list[TimeRecord], today: date) -> Insight | None:
    """以前は継続していたが直近1週間記録のないプロジェクトを挙げる."""
    week_start = today - timedelta(days=WEEK_DAYS)
    baseline_start = week_start - timedelta(days=BASELINE_DAYS)

    recent: set[str] = set()
    baseline: Counter[str] = Counter()
    for day, record in _dated(records):
        if day >= week_start:
            recent.add(record.project)
        elif day >= baseline_start:
            baseline[record.project] += 1

    lapsed = [
        (project, count)
        for project, count in baseline.most_common()
        if count >= LAPSED_MIN_COUNT and project not in recent
    ]
    if not lapsed:
        return None
    return Insight(
        category="Habit Consistency",
        text=(
            f"You have {len(lapsed)} activities that you haven't logged in over "
            "a week, but were previously consistent."
        ),
        sentiment="warning",
        items=[
            InsightItem(label=project, details=f"(logged {count} times in the month prior)")
            for project, count in lapsed
        ],
    )


def generate_insights(
    records: list[TimeRecord],
    groups: dict[str, InsightGroup],
    today: date,
) -> list[Insight]:
    """全ての計算器を実行し、成立したインサイトのみを返す."""
    candidates = [
        weekly_snapshot(records, today),
        group_distribution(records, groups, today),
        lapsed_habits(records, today),
    ]
    return [insight for insight in candidates if insight is not None]
