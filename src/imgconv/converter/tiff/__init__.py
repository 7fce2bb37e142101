"""TIFF画像デコーダーパッケージ

tifffileによるTIFFコンテナの読み込みとサンプル列への変換を提供する。
"""

from imgconv.converter.tiff.decoder import TiffDecoder

__all__ = [
    "TiffDecoder",
]
