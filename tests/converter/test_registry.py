"""ConversionRegistryのテスト"""

import threading

from imgconv.converter.base import BaseConverter, FormatDescriptor, RawImageBlob
from imgconv.converter.registry import ConversionRegistry


class StubConverter(BaseConverter):
    """テスト用のConverter"""

    def __init__(self, name: str, *mime_types: str) -> None:
        self._name = name
        self._formats = frozenset(
            FormatDescriptor(mime, mime.rsplit("/", 1)[-1]) for mime in mime_types
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def supported_formats(self) -> frozenset[FormatDescriptor]:
        return self._formats

    async def should_convert(self, blob: RawImageBlob) -> bool:
        return True

    async def convert(self, blob, source_locator, progress=None):  # type: ignore[override]
        raise NotImplementedError


class TestConversionRegistry:
    """ConversionRegistryのテスト"""

    def test_register_all_formats(self) -> None:
        """対応フォーマットごとにエントリが追加されることを確認"""
        converter = StubConverter("HEIC", "image/heic", "image/heif")
        registry = ConversionRegistry([converter])

        assert registry.lookup("image/heic") is converter
        assert registry.lookup("image/heif") is converter
        assert len(registry) == 2

    def test_lookup_case_insensitive(self) -> None:
        """MIMEタイプの大文字小文字を区別しないことを確認"""
        converter = StubConverter("TIFF", "image/tiff")
        registry = ConversionRegistry([converter])

        assert registry.lookup("IMAGE/TIFF") is converter
        assert "Image/Tiff" in registry

    def test_lookup_unknown(self) -> None:
        """未登録のMIMEタイプではNoneを返すことを確認"""
        registry = ConversionRegistry([StubConverter("TIFF", "image/tiff")])
        assert registry.lookup("image/png") is None
        assert "image/png" not in registry

    def test_last_write_wins(self) -> None:
        """同じMIMEタイプへの登録は後勝ちになることを確認"""
        first = StubConverter("TIFF", "image/tiff")
        second = StubConverter("CUSTOM_TIFF", "image/tiff")
        registry = ConversionRegistry([first, second])

        assert registry.lookup("image/tiff") is second
        assert registry.list() == [second]

    def test_remove(self) -> None:
        """指定名のエントリがすべて削除されることを確認"""
        heic = StubConverter("HEIC", "image/heic", "image/heif")
        tiff = StubConverter("TIFF", "image/tiff")
        registry = ConversionRegistry([heic, tiff])

        assert registry.remove("HEIC") is True
        assert registry.lookup("image/heic") is None
        assert registry.lookup("image/heif") is None
        assert registry.supported_formats() == {"image/tiff"}

    def test_remove_unknown_returns_false(self) -> None:
        """該当が無い名前の削除はFalseを返し、状態を変えないことを確認"""
        registry = ConversionRegistry([StubConverter("TIFF", "image/tiff")])

        assert registry.remove("NOPE") is False
        assert registry.supported_formats() == {"image/tiff"}

    def test_list_distinct(self) -> None:
        """複数フォーマットを持つConverterも1回だけ列挙されることを確認"""
        heic = StubConverter("HEIC", "image/heic", "image/heif")
        tiff = StubConverter("TIFF", "image/tiff", "image/tif")
        registry = ConversionRegistry([heic, tiff])

        assert registry.list() == [heic, tiff]

    def test_concurrent_register(self) -> None:
        """並行して登録してもエントリが失われないことを確認"""
        registry = ConversionRegistry()
        converters = [StubConverter(f"C{i}", f"image/x-{i}") for i in range(50)]

        threads = [threading.Thread(target=registry.register, args=(c,)) for c in converters]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(registry) == 50
