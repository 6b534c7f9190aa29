"""層間インターフェース定義。

全ての層はこのパッケージのデータ型と抽象クラスにのみ依存する。
timetrack/store/ の実装に直接依存してはならない。
"""
