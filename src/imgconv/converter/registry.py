"""ConversionRegistry モジュール

MIMEタイプとConverterの対応を管理するRegistryを提供する。
"""

from __future__ import annotations

import logging
from threading import Lock

from imgconv.converter.base import BaseConverter

logger = logging.getLogger(__name__)


class ConversionRegistry:
    """MIMEタイプからConverterを引くRegistry

    1つのConverterは対応フォーマットの数だけエントリを持つ。
    同じMIMEタイプへの登録は後勝ちで上書きされるため、
    実行時に組み込みConverterを差し替えられる。

    変更操作はロックで排他し、参照はロック無しで行う。
    """

    def __init__(self, converters: list[BaseConverter] | None = None) -> None:
        """ConversionRegistryを初期化する

        Args:
            converters: 初期登録するConverterのリスト
        """
        self._entries: dict[str, BaseConverter] = {}
        self._lock = Lock()
        for converter in converters or []:
            self.register(converter)

    def register(self, converter: BaseConverter) -> None:
        """Converterを登録する

        対応フォーマットごとにエントリを追加し、既存のエントリは上書きする。

        Args:
            converter: 登録するConverter
        """
        with self._lock:
            entries = dict(self._entries)
            for fmt in converter.supported_formats:
                entries[fmt.mime_type.lower()] = converter
            self._entries = entries
        logger.info(f"Converterを登録しました: {converter.name} ({', '.join(converter.mime_types)})")

    def remove(self, name: str) -> bool:
        """指定名のConverterのエントリをすべて削除する

        Args:
            name: Converterの識別名

        Returns:
            1件以上削除した場合True、該当が無い場合False
        """
        with self._lock:
            remaining = {
                mime: converter
                for mime, converter in self._entries.items()
                if converter.name != name
            }
            removed = len(remaining) != len(self._entries)
            if removed:
                self._entries = remaining

        if removed:
            logger.info(f"Converterを削除しました: {name}")
        return removed

    def list(self) -> list[BaseConverter]:
        """登録済みConverterを重複なしで返す

        Returns:
            Converterのリスト（登録順、同一インスタンスは1回のみ）
        """
        unique: dict[int, BaseConverter] = {}
        for converter in self._entries.values():
            unique.setdefault(id(converter), converter)
        return list(unique.values())

    def lookup(self, mime_type: str) -> BaseConverter | None:
        """MIMEタイプに対応するConverterを返す

        Args:
            mime_type: MIMEタイプ（完全一致）

        Returns:
            対応するConverter、未登録の場合はNone
        """
        return self._entries.get(mime_type.lower())

    def supported_formats(self) -> set[str]:
        """登録済みのMIMEタイプの集合を返す"""
        return set(self._entries)

    def __contains__(self, mime_type: object) -> bool:
        return isinstance(mime_type, str) and mime_type.lower() in self._entries

    def __len__(self) -> int:
        return len(self._entries)
