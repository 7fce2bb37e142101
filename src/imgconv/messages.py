"""進捗メッセージの多言語化"""

from __future__ import annotations

from typing import Protocol

CATALOGS: dict[str, dict[str, str]] = {
    "ja": {
        "loading.heic.converting": "HEIC画像を変換しています...",
        "loading.tiff.converting": "TIFF画像を変換しています...",
        "loading.tiff.decoded": "TIFF画像をデコードしました",
        "loading.tiff.encoding": "{format}にエンコードしています...",
    },
    "en": {
        "loading.heic.converting": "Converting HEIC image...",
        "loading.tiff.converting": "Converting TIFF image...",
        "loading.tiff.decoded": "TIFF image decoded",
        "loading.tiff.encoding": "Encoding to {format}...",
    },
}

DEFAULT_LOCALE = "ja"


class MessageProvider(Protocol):
    """メッセージ提供インターフェース"""

    def translate(self, key: str, **params: object) -> str:
        """キーに対応する表示用文字列を返す"""
        ...


class IdentityMessages:
    """キーをそのまま返すメッセージ提供クラス"""

    def translate(self, key: str, **params: object) -> str:
        return key


class CatalogMessages:
    """組み込みカタログによるメッセージ提供クラス

    未知のロケールは既定ロケールに、未知のキーはキー自体にフォールバックする。
    """

    def __init__(self, locale: str = DEFAULT_LOCALE) -> None:
        self._locale = locale if locale in CATALOGS else DEFAULT_LOCALE
        self._catalog = CATALOGS[self._locale]

    @property
    def locale(self) -> str:
        return self._locale

    def translate(self, key: str, **params: object) -> str:
        template = self._catalog.get(key)
        if template is None:
            return key
        try:
            return template.format(**params)
        except (KeyError, IndexError):
            return template
