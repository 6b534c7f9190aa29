"""アプリケーション設定。

pydantic モデルで値を検証し、環境変数 TIMETRACK_* で上書きできる。
設定値は不変として扱い、各層には必要な値だけを渡す。
"""

import os

from pydantic import BaseModel, Field, TypeAdapter

from timetrack.analysis.trend import RISING_THRESHOLD
from timetrack.ingestion.scanner import DEFAULT_MAX_WORKERS
from timetrack.interfaces.report import InsightGroup

ENV_PREFIX = "TIMETRACK_"


class InsightGroupConfig(BaseModel):
    """インサイト用グループの定義。"""

    hierarchies: list[str] = Field(
        default_factory=list, description="Hierarchy names (exact, case-insensitive)"
    )
    projects: list[str] = Field(
        default_factory=list, description="Project names (exact, case-insensitive)"
    )
    subproject_keywords: list[str] = Field(
        default_factory=list, description="Keywords matched inside subproject names"
    )

    def to_group(self) -> InsightGroup:
        return InsightGroup(
            hierarchies=list(self.hierarchies),
            projects=list(self.projects),
            subproject_keywords=list(self.subproject_keywords),
        )


_GROUPS_ADAPTER = TypeAdapter(dict[str, InsightGroupConfig])


class AppConfig(BaseModel):
    """アプリケーション設定値。"""

    # Scan Config
    max_parse_workers: int = Field(
        default=DEFAULT_MAX_WORKERS,
        ge=1,
        description="Maximum number of files parsed concurrently per scan",
    )

    # Analysis Config
    rising_threshold: float = Field(
        default=RISING_THRESHOLD,
        description="Slope (hours per bucket) above which a time series is rising",
    )
    insight_groups: dict[str, InsightGroupConfig] = Field(
        default_factory=dict, description="Named groups used by the insights view"
    )

    # Logging Config
    log_level: str = Field(default="info", description="Logging level")
    log_file: str | None = Field(default=None, description="Path to log file")

    def groups(self) -> dict[str, InsightGroup]:
        """insight_groups を分析層の InsightGroup に変換する。"""
        return {name: group.to_group() for name, group in self.insight_groups.items()}

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "AppConfig":
        """環境変数から設定を生成する。

        TIMETRACK_INSIGHT_GROUPS は JSON オブジェクトで指定する。
        未設定の項目はデフォルト値のまま。

        Raises:
            pydantic.ValidationError: 値が不正な場合
        """
        environ = os.environ if environ is None else environ
        values: dict[str, object] = {}
        for name in cls.model_fields:
            raw = environ.get(ENV_PREFIX + name.upper())
            if raw is None or raw == "":
                continue
            if name == "insight_groups":
                values[name] = _GROUPS_ADAPTER.validate_json(raw)
            else:
                values[name] = raw
        return cls.model_validate(values)
