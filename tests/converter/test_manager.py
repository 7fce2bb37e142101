"""ConversionManagerのテスト"""

import asyncio
import io
from collections.abc import Callable
from unittest.mock import MagicMock

import pytest
from PIL import Image

from imgconv.capabilities import get_environment
from imgconv.config import (
    ConfigError,
    HeicConfig,
    ImgconvConfig,
    TiffConfig,
    TimeoutConfig,
)
from imgconv.converter.base import (
    JPEG_FORMAT,
    BaseConverter,
    ConversionResult,
    FormatDescriptor,
    OutputHandle,
    RawImageBlob,
)
from imgconv.converter.errors import ConversionFailedError, ConversionTimeoutError, DecodeError
from imgconv.converter.image import TiffConverter
from imgconv.converter.manager import (
    ConversionManager,
    ConversionStatus,
    ConversionTask,
    DetectionOutcome,
    create_manager,
    get_default_manager,
    reset_default_manager,
)
from imgconv.converter.registry import ConversionRegistry

TIFF_HEADER = b"II*\x00\x08\x00\x00\x00"
PNG_HEADER = b"\x89PNG\r\n\x1a\n"


class FakeTiffConverter(BaseConverter):
    """テスト用のTIFF Converter"""

    def __init__(
        self,
        needs_conversion: bool = True,
        error: Exception | None = None,
        delay: float = 0.0,
        name: str = "TIFF",
    ) -> None:
        self._needs_conversion = needs_conversion
        self._error = error
        self._delay = delay
        self._name = name
        self.convert_calls = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def supported_formats(self) -> frozenset[FormatDescriptor]:
        return frozenset({FormatDescriptor("image/tiff", "tiff")})

    async def should_convert(self, blob: RawImageBlob) -> bool:
        return self._needs_conversion

    async def convert(self, blob, source_locator, progress=None):  # type: ignore[override]
        self.convert_calls += 1
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        return ConversionResult(
            output_handle=OutputHandle(b"jpeg", JPEG_FORMAT),
            converted_size_bytes=4,
            original_size_bytes=blob.size,
            output_format=JPEG_FORMAT,
        )


def _manager(converter: BaseConverter | None = None, **kwargs) -> ConversionManager:
    registry = ConversionRegistry([converter] if converter else None)
    return ConversionManager(registry=registry, **kwargs)


class TestConversionManagerInspect:
    """inspectメソッドのテスト"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "data, needs_conversion, expected",
        [
            pytest.param(b"plain text", True, DetectionOutcome.UNKNOWN_FORMAT, id="正常系: 形式不明"),
            pytest.param(b"", True, DetectionOutcome.UNKNOWN_FORMAT, id="境界値: 空データ"),
            pytest.param(PNG_HEADER, True, DetectionOutcome.NO_CONVERTER, id="正常系: Converter未登録"),
            pytest.param(TIFF_HEADER, False, DetectionOutcome.NOT_NEEDED, id="正常系: 変換不要"),
            pytest.param(TIFF_HEADER, True, DetectionOutcome.CONVERTIBLE, id="正常系: 変換対象"),
        ],
    )
    async def test_outcomes(
        self, data: bytes, needs_conversion: bool, expected: DetectionOutcome
    ) -> None:
        """3種類の「変換しない」結果と変換対象を区別できることを確認"""
        converter = FakeTiffConverter(needs_conversion=needs_conversion)
        detection = await _manager(converter).inspect(RawImageBlob(data))

        assert detection.outcome is expected
        if expected is DetectionOutcome.CONVERTIBLE:
            assert detection.converter is converter
        else:
            assert detection.converter is None

    @pytest.mark.asyncio
    async def test_declared_mime_ignored(self) -> None:
        """申告されたMIMEタイプではなく実際のバイト列で判定することを確認"""
        manager = _manager(FakeTiffConverter())
        blob = RawImageBlob(PNG_HEADER, declared_mime_type="image/tiff")

        detection = await manager.inspect(blob)

        assert detection.outcome is DetectionOutcome.NO_CONVERTER
        assert detection.sniffed is not None
        assert detection.sniffed.mime_type == "image/png"

    @pytest.mark.asyncio
    async def test_sniffer_failure_is_unknown(self) -> None:
        """形式判定の失敗は形式不明として扱われることを確認"""
        sniffer = MagicMock()
        sniffer.sniff.side_effect = RuntimeError("broken sniffer")
        manager = _manager(FakeTiffConverter(), sniffer=sniffer)

        detection = await manager.inspect(RawImageBlob(TIFF_HEADER))

        assert detection.outcome is DetectionOutcome.UNKNOWN_FORMAT

    @pytest.mark.asyncio
    async def test_find_suitable_strategy(self) -> None:
        """変換対象の場合のみConverterを返すことを確認"""
        converter = FakeTiffConverter()
        manager = _manager(converter)

        assert await manager.find_suitable_strategy(RawImageBlob(TIFF_HEADER)) is converter
        assert await manager.find_suitable_strategy(RawImageBlob(PNG_HEADER)) is None


class TestConversionManagerConvertImage:
    """convert_imageメソッドのテスト"""

    @pytest.mark.asyncio
    async def test_no_conversion_returns_none(self) -> None:
        """変換不要の場合はNoneを返し、convertを呼ばないことを確認"""
        converter = FakeTiffConverter(needs_conversion=False)
        result = await _manager(converter).convert_image(RawImageBlob(TIFF_HEADER), "a.tiff")

        assert result is None
        assert converter.convert_calls == 0

    @pytest.mark.asyncio
    async def test_png_returns_none(self) -> None:
        """PNGは変換されないことを確認"""
        manager = create_manager()
        assert await manager.convert_image(RawImageBlob(PNG_HEADER), "a.png") is None

    @pytest.mark.asyncio
    async def test_tiff_converted_to_jpeg(self, rgb_tiff: bytes) -> None:
        """TIFFを描画できない環境ではJPEGに変換されることを確認"""
        manager = create_manager(ImgconvConfig(environment="chrome"))

        result = await manager.convert_image(RawImageBlob(rgb_tiff), "https://example.com/a.tiff")

        assert result is not None
        assert result.output_format == JPEG_FORMAT
        assert result.output_handle.read().startswith(b"\xff\xd8\xff")
        assert result.original_size_bytes == len(rgb_tiff)

    @pytest.mark.asyncio
    async def test_heic_converted_to_jpeg(self) -> None:
        """実際のHEICがバイト列から判定されJPEGに変換されることを確認"""
        pillow_heif = pytest.importorskip("pillow_heif")
        buffer = io.BytesIO()
        pillow_heif.from_pillow(Image.new("RGB", (8, 8), (0, 0, 255))).save(buffer)
        manager = create_manager(ImgconvConfig(environment="chrome"))

        result = await manager.convert_image(RawImageBlob(buffer.getvalue()), "photo.heic")

        assert result is not None
        assert result.output_format == JPEG_FORMAT
        assert result.output_handle.read().startswith(b"\xff\xd8\xff")

    @pytest.mark.asyncio
    async def test_tiff_native_environment_returns_none(self, rgb_tiff: bytes) -> None:
        """TIFFを描画できる環境では変換しないことを確認"""
        manager = create_manager(ImgconvConfig(environment="safari"))
        assert await manager.convert_image(RawImageBlob(rgb_tiff), "a.tiff") is None

    @pytest.mark.asyncio
    async def test_failure_propagates(self) -> None:
        """Converterの例外がそのまま伝わり、リトライしないことを確認"""
        error = DecodeError("Failed to decode TIFF image", format_name="TIFF")
        converter = FakeTiffConverter(error=error)

        with pytest.raises(DecodeError) as exc:
            await _manager(converter).convert_image(RawImageBlob(TIFF_HEADER), "a.tiff")

        assert exc.value is error
        assert converter.convert_calls == 1

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        """タイムアウトでConversionTimeoutErrorが発生することを確認"""
        converter = FakeTiffConverter(delay=1.0)
        manager = _manager(converter, timeout=0.01)

        with pytest.raises(ConversionTimeoutError, match="タイムアウト") as exc:
            await manager.convert_image(RawImageBlob(TIFF_HEADER), "slow.tiff")

        assert exc.value.format_name == "TIFF"


class TestConversionManagerConvertMany:
    """convert_manyメソッドのテスト"""

    @pytest.mark.asyncio
    async def test_summary(self) -> None:
        """成功・スキップ・失敗が集計され、入力順に結果が並ぶことを確認"""
        manager = _manager(FakeTiffConverter())
        tasks = [
            ConversionTask(RawImageBlob(TIFF_HEADER), "a.tiff"),
            ConversionTask(RawImageBlob(PNG_HEADER), "b.png"),
            ConversionTask(RawImageBlob(b"???"), "c.bin"),
        ]

        summary = await manager.convert_many(tasks)

        assert summary.total == 3
        assert summary.success == 1
        assert summary.skipped == 2
        assert summary.failed == 0
        assert [o.task.source_locator for o in summary.outcomes] == ["a.tiff", "b.png", "c.bin"]
        assert summary.outcomes[0].status is ConversionStatus.SUCCESS
        assert summary.outcomes[0].result is not None

    @pytest.mark.asyncio
    async def test_failure_isolated(self) -> None:
        """1件の失敗が他のタスクに影響しないことを確認"""
        failing = FakeTiffConverter(error=DecodeError("broken", format_name="TIFF"))
        manager = _manager(failing)
        tasks = [
            ConversionTask(RawImageBlob(TIFF_HEADER), "broken.tiff"),
            ConversionTask(RawImageBlob(PNG_HEADER), "ok.png"),
        ]

        summary = await manager.convert_many(tasks)

        assert summary.failed == 1
        assert summary.skipped == 1
        assert summary.outcomes[0].status is ConversionStatus.FAILED
        assert isinstance(summary.outcomes[0].error, DecodeError)

    @pytest.mark.asyncio
    async def test_unexpected_exception_isolated(self) -> None:
        """ConversionError以外の例外も失敗として記録され、他の結果が残ることを確認"""

        class PartiallyBrokenConverter(FakeTiffConverter):
            async def convert(self, blob, source_locator, progress=None):  # type: ignore[override]
                if source_locator == "bad.tiff":
                    raise TypeError("slice indices must be integers")
                return await super().convert(blob, source_locator, progress)

        manager = _manager(PartiallyBrokenConverter())
        tasks = [
            ConversionTask(RawImageBlob(TIFF_HEADER), "good.tiff"),
            ConversionTask(RawImageBlob(TIFF_HEADER), "bad.tiff"),
        ]
        calls: list[tuple[int, int]] = []

        summary = await manager.convert_many(
            tasks, progress_callback=lambda c, t: calls.append((c, t))
        )

        assert summary.success == 1
        assert summary.failed == 1
        assert summary.outcomes[0].status is ConversionStatus.SUCCESS
        assert summary.outcomes[0].result is not None
        failed = summary.outcomes[1]
        assert failed.status is ConversionStatus.FAILED
        assert isinstance(failed.error, ConversionFailedError)
        assert isinstance(failed.error.cause, TypeError)
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_malformed_tiff_in_batch(
        self, rgb_tiff: bytes, tiff_builder: Callable[..., bytes]
    ) -> None:
        """不正なTIFFを含む一括変換でも正常なTIFFの結果が得られることを確認"""
        malformed = tiff_builder(
            2,
            1,
            bytes([255, 0, 0, 0, 255, 0]),
            samples_per_pixel=3,
            photometric=2,
            field_types={273: 11},
        )
        manager = _manager(TiffConverter(get_environment("generic")))
        tasks = [
            ConversionTask(RawImageBlob(rgb_tiff), "good.tiff"),
            ConversionTask(RawImageBlob(malformed), "malformed.tiff"),
        ]

        summary = await manager.convert_many(tasks)

        assert summary.success == 1
        assert summary.failed == 1
        assert isinstance(summary.outcomes[1].error, DecodeError)

    @pytest.mark.asyncio
    async def test_progress_callback(self) -> None:
        """完了ごとに進捗コールバックが呼ばれることを確認"""
        manager = _manager(FakeTiffConverter(), max_concurrency=2)
        tasks = [ConversionTask(RawImageBlob(TIFF_HEADER), f"{i}.tiff") for i in range(4)]
        calls: list[tuple[int, int]] = []

        await manager.convert_many(tasks, progress_callback=lambda c, t: calls.append((c, t)))

        assert len(calls) == 4
        assert calls[-1] == (4, 4)
        assert sorted(c for c, _ in calls) == [1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_empty(self) -> None:
        """空のタスクリストでは空のサマリーを返すことを確認"""
        summary = await _manager().convert_many([])
        assert summary.total == 0
        assert summary.outcomes == []


class TestConversionManagerRegistry:
    """Converter管理メソッドのテスト"""

    def test_register_and_remove(self) -> None:
        """Converterの登録と削除を確認"""
        manager = _manager()
        manager.register_converter(FakeTiffConverter())

        assert manager.list_supported_formats() == {"image/tiff"}
        assert manager.remove_converter("TIFF") is True
        assert manager.list_supported_formats() == set()

    def test_remove_unknown(self) -> None:
        """存在しない名前の削除はFalseを返すことを確認"""
        assert _manager().remove_converter("NOPE") is False

    @pytest.mark.asyncio
    async def test_replace_builtin(self) -> None:
        """同じMIMEタイプへの登録で組み込みConverterを差し替えられることを確認"""
        manager = create_manager()
        custom = FakeTiffConverter(name="CUSTOM")
        manager.register_converter(custom)

        assert await manager.find_suitable_strategy(RawImageBlob(TIFF_HEADER)) is custom


class TestCreateManager:
    """create_manager関数のテスト"""

    def test_builtin_converters(self) -> None:
        """HEICとTIFFのConverterが登録されることを確認"""
        manager = create_manager()

        assert manager.list_supported_formats() == {
            "image/heic",
            "image/heif",
            "image/tiff",
            "image/tif",
        }
        assert [c.name for c in manager.list_converters()] == ["HEIC", "TIFF"]

    def test_disabled_converters(self) -> None:
        """設定で無効化したConverterが登録されないことを確認"""
        manager = create_manager(ImgconvConfig(disabled_converters=["HEIC"]))
        assert manager.list_supported_formats() == {"image/tiff", "image/tif"}

    def test_settings_applied(self) -> None:
        """タイムアウト・同時実行数・品質が反映されることを確認"""
        config = ImgconvConfig(
            max_concurrency=2,
            tiff=TiffConfig(quality="medium"),
            timeouts=TimeoutConfig(convert=None),
        )
        manager = create_manager(config)
        tiff = manager.registry.lookup("image/tiff")

        assert manager.timeout is None
        assert manager.max_concurrency == 2
        assert isinstance(tiff, TiffConverter)
        assert tiff.quality == 85

    @pytest.mark.parametrize(
        "config, message",
        [
            pytest.param(ImgconvConfig(environment="netscape"), "未知の環境", id="異常系: 未知の環境"),
            pytest.param(ImgconvConfig(tiff=TiffConfig(output_format="gif")), "出力形式", id="異常系: 未対応の出力形式"),
            pytest.param(ImgconvConfig(tiff=TiffConfig(quality="ultra")), "品質プリセット", id="異常系: 未知の品質プリセット"),
            pytest.param(ImgconvConfig(heic=HeicConfig(quality=0)), "1〜100", id="異常系: 範囲外の品質値"),
        ],
    )
    def test_invalid_config(self, config: ImgconvConfig, message: str) -> None:
        """不正な設定でConfigErrorが発生することを確認"""
        with pytest.raises(ConfigError, match=message):
            create_manager(config)


class TestDefaultManager:
    """既定のConversionManagerのテスト"""

    def test_singleton(self) -> None:
        """同じインスタンスが返され、リセット後は再生成されることを確認"""
        reset_default_manager()
        first = get_default_manager()

        assert get_default_manager() is first

        reset_default_manager()
        assert get_default_manager() is not first
        reset_default_manager()
