"""Store層の抽象インターフェース（境界②）。

Store層は最新のスキャン結果（レコードとパースエラー）を保持する。
書き込みはバッチ世代ごとに1回だけ行われる。
"""

from abc import ABC, abstractmethod

from timetrack.interfaces.record import ParseError, RecordField, TimeRecord


class RecordStoreInterface(ABC):
    """Store層の抽象インターフェース。

    分析層・取り込み層はこのインターフェースを介してデータにアクセスする。
    """

    @abstractmethod
    def commit(
        self,
        generation: int,
        records: list[TimeRecord],
        errors: list[ParseError],
    ) -> bool:
        """バッチ結果を置き換え保存する。

        既にコミット済みの世代以下の generation は拒否する。

        Returns:
            保存した場合 True、古い世代として破棄した場合 False
        """
        ...

    @abstractmethod
    def generation(self) -> int:
        """最後にコミットされた世代番号を返す。未コミットなら 0。"""
        ...

    @abstractmethod
    def get_records(self) -> list[TimeRecord]:
        """コミット済みの全レコードを返す。"""
        ...

    @abstractmethod
    def get_errors(self) -> list[ParseError]:
        """コミット済みのパースエラーを返す。"""
        ...

    @abstractmethod
    def known_values(self, record_field: RecordField) -> list[str]:
        """指定項目の既知の値を返す。

        大文字小文字を区別せず重複を除き、最初に現れた表記で昇順に並べる。
        """
        ...

    @abstractmethod
    def clear(self) -> None:
        """保持しているレコードとエラーを全て削除する（デバッグ用）。"""
        ...
