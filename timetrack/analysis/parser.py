"""1ファイルを TimeRecord に変換するパーサ.

ファイル名から日付・プロジェクト・サブプロジェクトを、
先頭の YAML フロントマターから時刻や繰り返し定義を読み取る。
失敗は例外ではなく ParseError として返し、バッチ処理を止めない。
"""

import logging
import re
from datetime import date, datetime
from typing import Any

import yaml

from timetrack.analysis.timemath import (
    coerce_date,
    parse_days_of_week,
    span_hours,
    to_utc_midnight,
)
from timetrack.interfaces.record import (
    ParseError,
    RecordMetadata,
    TimeRecord,
)

logger = logging.getLogger(__name__)

ROOT_HIERARCHY = "root"
UNKNOWN_PROJECT = "Unknown Project"
NO_SUBPROJECT = "none"

FILENAME_MISMATCH = "Filename pattern mismatch."
NO_FRONT_MATTER = "No YAML front matter found."
FRONT_MATTER_NOT_OBJECT = "YAML front matter empty or not an object."
INVALID_DATE = "Invalid date parsed"
MISSING_DATE = "No date in file name or front matter."

_SERIAL = r"[IVXLCDM\d]+"

# (a) "<日付> <プロジェクト> - <サブプロジェクト>[ <連番>].md"
# (b) "(<階層>) <プロジェクト>[ - <サブプロジェクト>][ <連番>].md"
FILENAME_RE = re.compile(
    rf"""^(?:
        (?P<date>\d{{4}}-\d{{2}}-\d{{2}})\s+(?P<dated_project>.+?)\s+-\s+
        (?P<dated_sub>.+?)(?:\s+(?P<dated_serial>{_SERIAL}))?
      |
        \((?P<label>[^)]+)\)\s*(?P<project>.+?)(?:\s*-\s*(?P<sub>.+?))?
        (?:\s+(?P<serial>{_SERIAL}))?
    )\.md$""",
    re.IGNORECASE | re.VERBOSE,
)

_FRONT_MATTER_RE = re.compile(r"\A---\s*\n(.*?)\n---", re.DOTALL)
_SUBPROJECT_SERIAL_RE = re.compile(rf"^(.*?)\s+({_SERIAL})$", re.IGNORECASE)

_KNOWN_KEYS = {
    "type",
    "startTime",
    "endTime",
    "days",
    "date",
    "startRecur",
    "endRecur",
    "daysOfWeek",
}


class _FrontMatterLoader(yaml.SafeLoader):
    """YAML 1.1 の60進数整数を無効化した SafeLoader.

    "9:00" のような時刻を 540 ではなく文字列のまま読む。
    """


_INT_TAG = "tag:yaml.org,2002:int"
_FrontMatterLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != _INT_TAG]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}
_FrontMatterLoader.add_implicit_resolver(
    _INT_TAG,
    re.compile(r"^(?:[-+]?(?:0|[1-9][0-9_]*)|0x[0-9a-fA-F_]+)$"),
    list("-+0123456789"),
)


class _RecordParseFailure(Exception):
    """パース失敗（理由文字列のみを運ぶ内部例外）."""


def derive_hierarchy(path: str) -> str:
    """パスのフォルダ構成から階層ラベルを決める.

    フォルダが2段以上なら上から2番目、1段ならそのフォルダ、
    フォルダがなければ "root"。
    """
    folders = [part for part in path.split("/")[:-1] if part]
    if len(folders) >= 2:
        return folders[1]
    if folders:
        return folders[0]
    return ROOT_HIERARCHY


def _load_front_matter(content: str) -> dict[str, Any]:
    match = _FRONT_MATTER_RE.match(content)
    if not match:
        raise _RecordParseFailure(NO_FRONT_MATTER)
    try:
        loaded = yaml.load(match.group(1), Loader=_FrontMatterLoader)
    except yaml.YAMLError as exc:
        raise _RecordParseFailure(f"Invalid YAML front matter: {exc}") from exc
    if not isinstance(loaded, dict) or not loaded:
        raise _RecordParseFailure(FRONT_MATTER_NOT_OBJECT)
    return {str(key): value for key, value in loaded.items()}


def _build_metadata(raw: dict[str, Any]) -> RecordMetadata:
    record_type = raw.get("type")
    return RecordMetadata(
        type=str(record_type) if record_type is not None else None,
        start_time=raw.get("startTime"),
        end_time=raw.get("endTime"),
        days=raw.get("days"),
        date=raw.get("date"),
        start_recur=coerce_date(raw.get("startRecur")),
        end_recur=coerce_date(raw.get("endRecur")),
        days_of_week=parse_days_of_week(raw.get("daysOfWeek")),
        extra={k: v for k, v in raw.items() if k not in _KNOWN_KEYS},
    )


def _instance_duration(metadata: RecordMetadata) -> float:
    if metadata.is_recurring:
        if metadata.start_time is None or metadata.end_time is None:
            return 0.0
        return span_hours(metadata.start_time, metadata.end_time, 1)
    return span_hours(metadata.start_time, metadata.end_time, metadata.days)


def _resolve_date(filename_date: str | None, metadata_date: Any) -> datetime:
    """ファイル名の日付を優先し、なければメタデータの date を使う.

    どちらにも日付がない単発レコードは集計できないため失敗にする。
    """
    if filename_date:
        try:
            parsed = datetime.strptime(filename_date, "%Y-%m-%d").date()
        except ValueError as exc:
            raise _RecordParseFailure(f"{INVALID_DATE}: {filename_date}") from exc
        return to_utc_midnight(parsed)

    if metadata_date is None or metadata_date == "":
        raise _RecordParseFailure(MISSING_DATE)
    if isinstance(metadata_date, (date, datetime)):
        return to_utc_midnight(coerce_date(metadata_date))

    text = str(metadata_date).strip()
    resolved = coerce_date(text)
    if resolved is None:
        raise _RecordParseFailure(f"{INVALID_DATE}: {metadata_date}")
    return to_utc_midnight(resolved)


def _split_subproject(
    raw: str | None, serial: str | None
) -> tuple[str, str]:
    """サブプロジェクトを (基本名, 連番付きの完全名) に分ける."""
    if not raw or not raw.strip():
        return NO_SUBPROJECT, NO_SUBPROJECT
    raw = raw.strip()
    embedded = _SUBPROJECT_SERIAL_RE.match(raw)
    if embedded:
        base = embedded.group(1).strip()
        serial = serial or embedded.group(2)
    else:
        base = raw
    full = base
    if serial:
        full = f"{base} {serial.strip()}"
    return base or NO_SUBPROJECT, full.strip() or NO_SUBPROJECT


def _parse(path: str, file_name: str, content: str) -> TimeRecord:
    match = FILENAME_RE.match(file_name)
    if not match:
        raise _RecordParseFailure(FILENAME_MISMATCH)

    if match.group("date"):
        filename_date = match.group("date")
        project_raw = match.group("dated_project")
        subproject_raw = match.group("dated_sub")
        serial = match.group("dated_serial")
    else:
        filename_date = None
        project_raw = match.group("project")
        subproject_raw = match.group("sub")
        serial = match.group("serial")

    metadata = _build_metadata(_load_front_matter(content))
    duration = _instance_duration(metadata)
    record_date = (
        None if metadata.is_recurring else _resolve_date(filename_date, metadata.date)
    )

    project = project_raw.strip() if project_raw and project_raw.strip() else UNKNOWN_PROJECT
    subproject, subproject_full = _split_subproject(subproject_raw, serial)

    return TimeRecord(
        path=path,
        file=file_name,
        hierarchy=derive_hierarchy(path),
        project=project,
        subproject=subproject,
        subproject_full=subproject_full,
        duration=duration,
        date=record_date,
        metadata=metadata,
    )


def parse_record(path: str, content: str) -> TimeRecord | ParseError:
    """1ファイルをパースする.

    Args:
        path: "/" 区切りのファイルパス（末尾がファイル名）
        content: ファイル本文

    Returns:
        成功時は TimeRecord、失敗時は理由付きの ParseError
    """
    file_name = path.rsplit("/", 1)[-1]
    try:
        return _parse(path, file_name, content)
    except _RecordParseFailure as exc:
        logger.debug("Parse failed for %s: %s", path, exc)
        return ParseError(file=file_name, path=path, reason=str(exc))
    except Exception as exc:
        logger.warning("Unexpected error while parsing %s", path, exc_info=True)
        return ParseError(file=file_name, path=path, reason=str(exc) or type(exc).__name__)
