"""画像形式判定モジュール

バイト列先頭のマジックナンバーから画像の実際の形式を判定する。
呼び出し元が申告したMIMEタイプや拡張子は使用しない。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class SniffResult:
    """形式判定結果

    Attributes:
        extension: 拡張子（ドット無し小文字）
        mime_type: MIMEタイプ
    """

    extension: str
    mime_type: str


class FormatSniffer(Protocol):
    """形式判定インターフェース"""

    def sniff(self, data: bytes) -> SniffResult | None:
        """バイト列から形式を判定する（判定できない場合はNone）"""
        ...


class MagicSniffer:
    """マジックナンバーによる形式判定クラス

    先頭一致で判定できる形式はテーブルで、ISO-BMFF（HEIC/AVIF）は
    ftypボックスのブランドで判定する。
    """

    # (マジックバイト, 結果) の先頭一致テーブル
    _PREFIX_TABLE: tuple[tuple[bytes, SniffResult], ...] = (
        (b"\xff\xd8\xff", SniffResult("jpg", "image/jpeg")),
        (b"\x89PNG\r\n\x1a\n", SniffResult("png", "image/png")),
        (b"GIF87a", SniffResult("gif", "image/gif")),
        (b"GIF89a", SniffResult("gif", "image/gif")),
        (b"II*\x00", SniffResult("tif", "image/tiff")),
        (b"MM\x00*", SniffResult("tif", "image/tiff")),
        (b"II+\x00", SniffResult("tif", "image/tiff")),
        (b"MM\x00+", SniffResult("tif", "image/tiff")),
        (b"\x00\x00\x00\x0cJXL \r\n\x87\n", SniffResult("jxl", "image/jxl")),
        (b"\xff\x0a", SniffResult("jxl", "image/jxl")),
        (b"\x00\x00\x01\x00", SniffResult("ico", "image/x-icon")),
        (b"BM", SniffResult("bmp", "image/bmp")),
    )

    _HEIC_BRANDS = frozenset({b"heic", b"heix", b"hevc", b"hevx", b"heim", b"heis"})
    _HEIF_BRANDS = frozenset({b"mif1", b"msf1"})
    _AVIF_BRANDS = frozenset({b"avif", b"avis"})

    def sniff(self, data: bytes) -> SniffResult | None:
        """バイト列から形式を判定する

        Args:
            data: 判定対象のバイト列

        Returns:
            判定結果。空データや未知の形式の場合はNone
        """
        if not data:
            return None

        if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
            return SniffResult("webp", "image/webp")

        if data[4:8] == b"ftyp":
            return self._sniff_ftyp(data)

        for magic, result in self._PREFIX_TABLE:
            if data.startswith(magic):
                return result

        return None

    def _sniff_ftyp(self, data: bytes) -> SniffResult | None:
        """ISO-BMFFのftypボックスから形式を判定する"""
        box_size = int.from_bytes(data[0:4], "big")
        major_brand = data[8:12]
        # 互換ブランドは16バイト目からボックス終端まで4バイトずつ並ぶ
        box_end = min(box_size, len(data)) if box_size >= 16 else 16
        compatible = {data[i : i + 4] for i in range(16, box_end - 3, 4)}

        if major_brand in self._AVIF_BRANDS:
            return SniffResult("avif", "image/avif")
        if major_brand in self._HEIC_BRANDS:
            return SniffResult("heic", "image/heic")
        if major_brand in self._HEIF_BRANDS:
            if compatible & self._AVIF_BRANDS:
                return SniffResult("avif", "image/avif")
            return SniffResult("heic", "image/heif")
        return None


_default_sniffer = MagicSniffer()


def sniff(data: bytes) -> SniffResult | None:
    """既定の判定器でバイト列の形式を判定する

    Args:
        data: 判定対象のバイト列

    Returns:
        判定結果。判定できない場合はNone
    """
    return _default_sniffer.sniff(data)
