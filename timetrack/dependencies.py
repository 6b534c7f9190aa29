"""DI用ファクトリ関数。

timetrack/ 直下に配置することで、ingestion/ から store/ への
直接依存を避けつつ、FastAPI の Depends() で注入できる。
"""

from timetrack.analysis.engine import AnalysisEngine
from timetrack.config import AppConfig
from timetrack.ingestion.event_bus import EventBus
from timetrack.ingestion.scanner import ScanCoordinator
from timetrack.interfaces.record_store import RecordStoreInterface

_config: AppConfig | None = None
_record_store: RecordStoreInterface | None = None
_event_bus: EventBus | None = None
_scan_coordinator: ScanCoordinator | None = None
_analysis_engine: AnalysisEngine | None = None


def get_config() -> AppConfig:
    """環境変数から読み込んだ設定のシングルトンを返す。"""
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def get_record_store() -> RecordStoreInterface:
    """RecordStoreのシングルトンインスタンスを返す。"""
    global _record_store
    if _record_store is None:
        from timetrack.store.memory import InMemoryRecordStore

        _record_store = InMemoryRecordStore()
    return _record_store


def get_event_bus() -> EventBus:
    """EventBusのシングルトンインスタンスを返す。"""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


def get_scan_coordinator() -> ScanCoordinator:
    """ScanCoordinatorのシングルトンインスタンスを返す。"""
    global _scan_coordinator
    if _scan_coordinator is None:
        _scan_coordinator = ScanCoordinator(
            get_record_store(),
            get_event_bus(),
            max_workers=get_config().max_parse_workers,
        )
    return _scan_coordinator


def get_analysis_engine() -> AnalysisEngine:
    """AnalysisEngineのシングルトンインスタンスを返す。"""
    global _analysis_engine
    if _analysis_engine is None:
        config = get_config()
        _analysis_engine = AnalysisEngine(
            get_record_store(),
            trend_threshold=config.rising_threshold,
            insight_groups=config.groups(),
        )
    return _analysis_engine


def _reset_all() -> None:
    """全シングルトンをリセットする（テスト用）。"""
    global _config, _record_store, _event_bus, _scan_coordinator, _analysis_engine
    _config = None
    _record_store = None
    _event_bus = None
    _scan_coordinator = None
    _analysis_engine = None
