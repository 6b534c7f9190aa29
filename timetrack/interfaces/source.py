"""ファイル列挙の抽象インターフェース（境界⓪）。

ストレージからのファイル列挙はこのパッケージの外側の責務。
スキャナはこのインターフェースを介して本文を受け取る。
"""

from abc import ABC, abstractmethod

from timetrack.interfaces.record import SourceDocument


class RecordSourceInterface(ABC):
    """1回のフォルダスキャン分の文書を提供するコラボレータ。"""

    @abstractmethod
    def list_documents(self) -> list[SourceDocument]:
        """スキャン対象の (パス, 本文) を返す。順序は問わない。"""
        ...
