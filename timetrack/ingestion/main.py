"""FastAPIアプリケーション。

スキャンAPI + 分析API + インサイトAPI + イベント通知(SSE)を統合。
"""

import math
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException, UploadFile
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from timetrack.analysis.engine import AnalysisEngine
from timetrack.dependencies import (
    get_analysis_engine,
    get_config,
    get_event_bus,
    get_record_store,
    get_scan_coordinator,
)
from timetrack.ingestion.event_bus import EventBus, format_sse
from timetrack.ingestion.scanner import ScanCoordinator, ScanSummary
from timetrack.interfaces.analysis import (
    ActivityPattern,
    AnalysisMode,
    AnalysisRequest,
    FilterCriteria,
    FilteredRecord,
    Granularity,
    HierarchyLevel,
)
from timetrack.interfaces.record import RecordField, SourceDocument
from timetrack.interfaces.record_store import RecordStoreInterface
from timetrack.interfaces.report import (
    ActivityPatternReport,
    CategoryReport,
    EmptyReason,
    HierarchyNode,
    HierarchyReport,
    Insight,
    InsightItem,
    Report,
    TimeSeriesReport,
)
from timetrack.logging_setup import configure_logging

StoreDep = Annotated[RecordStoreInterface, Depends(get_record_store)]
ScannerDep = Annotated[ScanCoordinator, Depends(get_scan_coordinator)]
EngineDep = Annotated[AnalysisEngine, Depends(get_analysis_engine)]
EventBusDep = Annotated[EventBus, Depends(get_event_bus)]


@asynccontextmanager
async def lifespan(_app: FastAPI):
    configure_logging(get_config())
    yield


app = FastAPI(
    title="作業時間分析 API",
    version="0.1.0",
    lifespan=lifespan,
)


# ---------- Pydantic モデル ----------


class DocumentItem(BaseModel):
    """スキャンリクエスト内の1ファイル。"""

    path: str
    content: str


class ScanRequest(BaseModel):
    """POST /api/scan のリクエストボディ。"""

    documents: list[DocumentItem]


class ScanResponse(BaseModel):
    """スキャン結果の概要。"""

    generation: int
    records: int
    errors: int
    committed: bool


class ParseErrorResponse(BaseModel):
    """1件のパースエラー。"""

    file: str
    path: str
    reason: str


class CriteriaModel(BaseModel):
    """絞り込み条件。"""

    hierarchy: str | None = None
    project: str | None = None
    start: date | None = None
    end: date | None = None


class AnalysisRequestModel(BaseModel):
    """POST /api/analysis のリクエストボディ。"""

    mode: AnalysisMode
    criteria: CriteriaModel = CriteriaModel()
    level: HierarchyLevel = HierarchyLevel.PROJECT
    breakdown: RecordField = RecordField.PROJECT
    granularity: Granularity = Granularity.DAY
    stack_field: RecordField | None = None
    activity_pattern: ActivityPattern = ActivityPattern.WEEKDAY
    pattern: str | None = None
    with_trend: bool = False

    def to_request(self) -> AnalysisRequest:
        return AnalysisRequest(
            mode=self.mode,
            criteria=FilterCriteria(**self.criteria.model_dump()),
            level=self.level,
            breakdown=self.breakdown,
            granularity=self.granularity,
            stack_field=self.stack_field,
            activity_pattern=self.activity_pattern,
            pattern=self.pattern,
            with_trend=self.with_trend,
        )


class RecordResponse(BaseModel):
    """集計に寄与した1レコード。"""

    path: str
    file: str
    hierarchy: str
    project: str
    subproject: str
    subproject_full: str
    duration: float
    effective_hours: float
    date: datetime | None
    recurring: bool


class HierarchyNodeResponse(BaseModel):
    """階層ノードのレスポンス（再帰構造）。"""

    id: str
    label: str
    parent: str
    value: float
    records: list[RecordResponse]
    children: list["HierarchyNodeResponse"]


class HierarchyReportResponse(BaseModel):
    level: HierarchyLevel
    root: HierarchyNodeResponse | None
    empty_reason: EmptyReason | None
    error_message: str | None


class CategoryReportResponse(BaseModel):
    breakdown: RecordField
    hours: dict[str, float]
    records: dict[str, list[RecordResponse]]
    error: bool
    error_message: str | None
    empty_reason: EmptyReason | None


class TrendResultResponse(BaseModel):
    """トレンド分析結果のレスポンス。"""

    slope: float
    intercept: float
    is_rising: bool


class TimeBucketResponse(BaseModel):
    start: date
    total: float
    categories: dict[str, float]
    records: list[RecordResponse]


class TimeSeriesReportResponse(BaseModel):
    granularity: Granularity
    stack_field: RecordField | None
    buckets: list[TimeBucketResponse]
    trend: TrendResultResponse | None
    empty_reason: EmptyReason | None


class ActivityCellResponse(BaseModel):
    cell: list[int]
    records: list[RecordResponse]


class ActivityReportResponse(BaseModel):
    """活動パターン。heatmap の寄与のないセルは null。"""

    pattern: ActivityPattern
    values: list[float | None] | list[list[float | None]]
    cells: list[ActivityCellResponse]
    empty_reason: EmptyReason | None


class InsightItemResponse(BaseModel):
    label: str
    details: str
    hours: float | None
    sub_items: list["InsightItemResponse"]


class InsightResponse(BaseModel):
    category: str
    text: str
    sentiment: str
    items: list[InsightItemResponse]


# ---------- ヘルパー ----------


def _to_scan_response(summary: ScanSummary) -> ScanResponse:
    return ScanResponse(
        generation=summary.generation,
        records=summary.record_count,
        errors=summary.error_count,
        committed=summary.committed,
    )


def _to_record_response(item: FilteredRecord) -> RecordResponse:
    record = item.record
    return RecordResponse(
        path=record.path,
        file=record.file,
        hierarchy=record.hierarchy,
        project=record.project,
        subproject=record.subproject,
        subproject_full=record.subproject_full,
        duration=record.duration,
        effective_hours=item.effective_hours,
        date=record.date,
        recurring=record.is_recurring,
    )


def _to_node_response(node: HierarchyNode) -> HierarchyNodeResponse:
    """HierarchyNode → HierarchyNodeResponse の再帰変換。"""
    return HierarchyNodeResponse(
        id=node.id,
        label=node.label,
        parent=node.parent,
        value=node.value,
        records=[_to_record_response(r) for r in node.records],
        children=[_to_node_response(c) for c in node.children],
    )


def _nan_to_none(value: float) -> float | None:
    return None if math.isnan(value) else float(value)


def _to_report_response(report: Report) -> BaseModel:
    """集計結果をモードごとのレスポンスに変換する。"""
    if isinstance(report, HierarchyReport):
        return HierarchyReportResponse(
            level=report.level,
            root=_to_node_response(report.root) if report.root else None,
            empty_reason=report.empty_reason,
            error_message=report.error_message,
        )
    if isinstance(report, CategoryReport):
        return CategoryReportResponse(
            breakdown=report.breakdown,
            hours=report.hours,
            records={
                key: [_to_record_response(r) for r in records]
                for key, records in report.records_by_category.items()
            },
            error=report.error,
            error_message=report.error_message,
            empty_reason=report.empty_reason,
        )
    if isinstance(report, TimeSeriesReport):
        trend = report.trend
        return TimeSeriesReportResponse(
            granularity=report.granularity,
            stack_field=report.stack_field,
            buckets=[
                TimeBucketResponse(
                    start=b.start,
                    total=b.total,
                    categories=b.categories,
                    records=[_to_record_response(r) for r in b.records],
                )
                for b in report.buckets
            ],
            trend=TrendResultResponse(
                slope=trend.slope,
                intercept=trend.intercept,
                is_rising=trend.is_rising,
            )
            if trend
            else None,
            empty_reason=report.empty_reason,
        )
    if isinstance(report, ActivityPatternReport):
        if report.values.ndim == 2:
            values = [[_nan_to_none(v) for v in row] for row in report.values]
        else:
            values = [_nan_to_none(v) for v in report.values]
        return ActivityReportResponse(
            pattern=report.pattern,
            values=values,
            cells=[
                ActivityCellResponse(
                    cell=list(cell),
                    records=[_to_record_response(r) for r in records],
                )
                for cell, records in sorted(report.records_by_cell.items())
            ],
            empty_reason=report.empty_reason,
        )
    raise TypeError(f"Unsupported report type: {type(report).__name__}")


def _to_insight_item_response(item: InsightItem) -> InsightItemResponse:
    return InsightItemResponse(
        label=item.label,
        details=item.details,
        hours=item.hours,
        sub_items=[_to_insight_item_response(s) for s in item.sub_items],
    )


def _to_insight_response(insight: Insight) -> InsightResponse:
    return InsightResponse(
        category=insight.category,
        text=insight.text,
        sentiment=insight.sentiment,
        items=[_to_insight_item_response(i) for i in insight.items],
    )


# ---------- エンドポイント ----------


@app.get("/api/health")
async def health_check():
    """ヘルスチェック。"""
    return {"status": "ok"}


@app.post("/api/scan")
async def post_scan(body: ScanRequest, scanner: ScannerDep):
    """1回のフォルダスキャン分の文書をパースし、最新世代なら確定する。"""
    documents = [SourceDocument(path=d.path, content=d.content) for d in body.documents]
    summary = await scanner.scan(documents)
    return _to_scan_response(summary)


@app.post("/api/scan/files")
async def post_scan_files(files: list[UploadFile], scanner: ScannerDep):
    """アップロードされた .md ファイル群をスキャンする（デバッグ用）。

    パスはアップロード時のファイル名をそのまま使う。
    """
    documents: list[SourceDocument] = []
    for upload in files:
        content = await upload.read()
        documents.append(
            SourceDocument(
                path=upload.filename or "",
                content=content.decode("utf-8", errors="replace"),
            )
        )
    summary = await scanner.scan(documents)
    return _to_scan_response(summary)


@app.get("/api/errors")
async def get_errors(store: StoreDep):
    """最新スキャンのパースエラー一覧を取得する。"""
    return {
        "errors": [
            ParseErrorResponse(file=e.file, path=e.path, reason=e.reason)
            for e in store.get_errors()
        ]
    }


@app.get("/api/filters")
async def get_filters(store: StoreDep):
    """絞り込み候補となる既知の階層・プロジェクトを取得する。"""
    return {
        "hierarchies": store.known_values(RecordField.HIERARCHY),
        "projects": store.known_values(RecordField.PROJECT),
    }


@app.post("/api/analysis")
def run_analysis(body: AnalysisRequestModel, engine: EngineDep):
    """絞り込みと集計を実行する。結果は保存しない。"""
    try:
        outcome = engine.run(body.to_request())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {
        "mode": body.mode,
        "total_hours": outcome.total_hours,
        "file_count": outcome.file_count,
        "error_count": len(outcome.errors),
        "report": _to_report_response(outcome.report),
    }


@app.get("/api/insights")
def get_insights(engine: EngineDep, today: date | None = None):
    """インサイトを生成する。today 省略時は当日を基準にする。"""
    insights = engine.insights(today or date.today())
    return {"insights": [_to_insight_response(i) for i in insights]}


@app.get("/api/events")
async def stream_events(bus: EventBusDep):
    """EventBus のイベントを Server-Sent Events で中継する。"""

    async def _stream():
        async with bus.subscribe() as queue:
            while True:
                message = await queue.get()
                yield format_sse(message)

    return StreamingResponse(_stream(), media_type="text/event-stream")


# ---------- デバッグ用エンドポイント ----------


@app.delete("/api/debug/records", tags=["debug"])
async def delete_all_records(store: StoreDep):
    """【デバッグ用】レコード・パースエラーを全削除する。"""
    store.clear()
    return {"deleted": "records"}
