"""形式判定のテスト"""

import pytest

from imgconv.sniffer import MagicSniffer, SniffResult, sniff


def _ftyp(major: bytes, *compatible: bytes) -> bytes:
    body = major + b"\x00\x00\x00\x00" + b"".join(compatible)
    return (len(body) + 8).to_bytes(4, "big") + b"ftyp" + body


class TestSniff:
    """sniff関数のテスト"""

    @pytest.mark.parametrize(
        "data, expected",
        [
            pytest.param(b"\xff\xd8\xff\xe0", SniffResult("jpg", "image/jpeg"), id="正常系: JPEG"),
            pytest.param(b"\x89PNG\r\n\x1a\n", SniffResult("png", "image/png"), id="正常系: PNG"),
            pytest.param(b"GIF89a", SniffResult("gif", "image/gif"), id="正常系: GIF"),
            pytest.param(
                b"RIFF\x00\x00\x00\x00WEBPVP8 ", SniffResult("webp", "image/webp"), id="正常系: WebP"
            ),
            pytest.param(b"BM\x00\x00", SniffResult("bmp", "image/bmp"), id="正常系: BMP"),
            pytest.param(b"\x00\x00\x01\x00", SniffResult("ico", "image/x-icon"), id="正常系: ICO"),
            pytest.param(b"II*\x00", SniffResult("tif", "image/tiff"), id="正常系: TIFF II"),
            pytest.param(b"MM\x00*", SniffResult("tif", "image/tiff"), id="正常系: TIFF MM"),
            pytest.param(b"II+\x00", SniffResult("tif", "image/tiff"), id="正常系: BigTIFF"),
            pytest.param(b"\xff\x0a", SniffResult("jxl", "image/jxl"), id="正常系: JPEG XL"),
            pytest.param(_ftyp(b"heic"), SniffResult("heic", "image/heic"), id="正常系: HEIC"),
            pytest.param(
                _ftyp(b"mif1", b"heic"), SniffResult("heic", "image/heif"), id="正常系: HEIF"
            ),
            pytest.param(_ftyp(b"avif"), SniffResult("avif", "image/avif"), id="正常系: AVIF"),
            pytest.param(
                _ftyp(b"mif1", b"avif"), SniffResult("avif", "image/avif"), id="正常系: mif1+avif互換"
            ),
        ],
    )
    def test_known_formats(self, data: bytes, expected: SniffResult) -> None:
        """マジックナンバーから形式を判定できることを確認"""
        assert sniff(data) == expected

    @pytest.mark.parametrize(
        "data",
        [
            pytest.param(b"", id="境界値: 空データ"),
            pytest.param(b"hello world", id="異常系: テキスト"),
            pytest.param(_ftyp(b"isom"), id="異常系: 画像以外のISO-BMFF"),
            pytest.param(b"RIFF\x00\x00\x00\x00WAVE", id="異常系: WebP以外のRIFF"),
        ],
    )
    def test_unknown(self, data: bytes) -> None:
        """判定できないデータではNoneを返すことを確認"""
        assert sniff(data) is None

    def test_sniffer_instance(self) -> None:
        """MagicSnifferインスタンスでも同じ結果になることを確認"""
        assert MagicSniffer().sniff(b"II*\x00") == sniff(b"II*\x00")
