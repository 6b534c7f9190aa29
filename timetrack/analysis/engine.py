"""分析エンジン — 絞り込みと集計のオーケストレーター."""

import logging
from collections.abc import Callable
from datetime import date

from timetrack.analysis.aggregation import (
    aggregate_activity,
    aggregate_categories,
    aggregate_hierarchy,
    aggregate_time_series,
)
from timetrack.analysis.filtering import filter_records
from timetrack.analysis.insights import generate_insights
from timetrack.analysis.trend import RISING_THRESHOLD
from timetrack.interfaces.analysis import (
    AnalysisMode,
    AnalysisRequest,
    FilteredRecord,
)
from timetrack.interfaces.record_store import RecordStoreInterface
from timetrack.interfaces.report import (
    AnalysisOutcome,
    Insight,
    InsightGroup,
    Report,
)

logger = logging.getLogger(__name__)

Aggregator = Callable[[list[FilteredRecord], AnalysisRequest, float], Report]

AGGREGATORS: dict[AnalysisMode, Aggregator] = {
    AnalysisMode.HIERARCHY: lambda records, req, _: aggregate_hierarchy(
        records, req.level, req.pattern
    ),
    AnalysisMode.CATEGORY: lambda records, req, _: aggregate_categories(
        records, req.breakdown, req.pattern
    ),
    AnalysisMode.TIME_SERIES: lambda records, req, threshold: aggregate_time_series(
        records,
        req.granularity,
        req.criteria,
        stack_field=req.stack_field,
        with_trend=req.with_trend,
        trend_threshold=threshold,
    ),
    AnalysisMode.ACTIVITY: lambda records, req, _: aggregate_activity(
        records, req.activity_pattern, req.criteria
    ),
}
"""集計モード → 集計関数。新しいモードはここに登録する。"""


class AnalysisEngine:
    """分析エンジン.

    Store から最新のレコードを取得し、絞り込みと集計を実行する。
    結果は保存せず、呼び出しごとに作り直す。
    """

    def __init__(
        self,
        store: RecordStoreInterface,
        trend_threshold: float = RISING_THRESHOLD,
        insight_groups: dict[str, InsightGroup] | None = None,
    ) -> None:
        self._store = store
        self._trend_threshold = trend_threshold
        self._insight_groups = insight_groups or {}

    def run(self, request: AnalysisRequest) -> AnalysisOutcome:
        """分析リクエストを実行する.

        1. Store から全レコードとパースエラーを取得
        2. 条件で絞り込み、実効時間を算出
        3. モードに対応する集計関数で結果を生成

        Raises:
            ValueError: 未知の集計モードが指定された場合
        """
        aggregator = AGGREGATORS.get(request.mode)
        if aggregator is None:
            raise ValueError(f"Unknown analysis mode: {request.mode}")

        filtered = filter_records(self._store.get_records(), request.criteria)
        report = aggregator(filtered.records, request, self._trend_threshold)
        logger.debug(
            "Analysis %s: %d records, %.2f hours",
            request.mode,
            len(filtered.records),
            filtered.total_hours,
        )
        return AnalysisOutcome(
            report=report,
            total_hours=filtered.total_hours,
            file_count=filtered.file_count,
            errors=self._store.get_errors(),
        )

    def insights(self, today: date) -> list[Insight]:
        """全レコードからインサイトを生成する."""
        return generate_insights(self._store.get_records(), self._insight_groups, today)
