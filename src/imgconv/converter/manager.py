"""ConversionManager モジュール

形式判定・Converter選択・変換実行を行うConversionManagerを提供する。
複数画像の並行変換と進捗管理もここで扱う。
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from threading import Lock

from imgconv.capabilities import PlatformCapabilities, get_environment
from imgconv.config import ConfigError, ImgconvConfig, get_default_config
from imgconv.converter.base import (
    BaseConverter,
    ConversionResult,
    ProgressSink,
    RawImageBlob,
)
from imgconv.converter.errors import (
    ConversionError,
    ConversionFailedError,
    ConversionTimeoutError,
)
from imgconv.converter.heic import HeicConverter, PillowHeifDecoder
from imgconv.converter.image import OutputFormat, QualityPreset, TiffConverter
from imgconv.converter.registry import ConversionRegistry
from imgconv.messages import CatalogMessages, MessageProvider
from imgconv.sniffer import FormatSniffer, MagicSniffer, SniffResult

logger = logging.getLogger(__name__)


class DetectionOutcome(Enum):
    """形式判定段階の結果

    UNKNOWN_FORMAT / NO_CONVERTER / NOT_NEEDED はいずれも
    「変換を行わない」正常系の結果であり、エラーではない。
    """

    UNKNOWN_FORMAT = "unknown_format"
    NO_CONVERTER = "no_converter"
    NOT_NEEDED = "not_needed"
    CONVERTIBLE = "convertible"


@dataclass(frozen=True)
class Detection:
    """形式判定結果

    Attributes:
        outcome: 判定段階の結果
        sniffed: バイト列から判定した形式（判定できない場合はNone）
        converter: 使用するConverter（CONVERTIBLEの場合のみ）
    """

    outcome: DetectionOutcome
    sniffed: SniffResult | None = None
    converter: BaseConverter | None = None


class ConversionStatus(Enum):
    """一括変換における各画像の処理結果"""

    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ConversionTask:
    """変換タスク

    Attributes:
        blob: 変換元のBlob
        source_locator: 変換元の所在
    """

    blob: RawImageBlob
    source_locator: str


@dataclass(frozen=True)
class TaskOutcome:
    """変換タスクの結果

    Attributes:
        task: 対象のタスク
        status: 処理結果
        result: 変換結果（成功時のみ）
        error: 発生した例外（失敗時のみ）
    """

    task: ConversionTask
    status: ConversionStatus
    result: ConversionResult | None = None
    error: ConversionError | None = None


@dataclass
class ConversionSummary:
    """変換サマリー

    複数画像の変換結果のサマリーを保持するデータクラス。

    Attributes:
        total: 変換対象の総数
        success: 変換成功数
        failed: 変換失敗数
        skipped: 変換不要・対象外の数
        outcomes: 個々のタスク結果のリスト（入力順）
    """

    total: int = 0
    success: int = 0
    failed: int = 0
    skipped: int = 0
    outcomes: list[TaskOutcome] = field(default_factory=list)


# 一括変換の進捗コールバックの型エイリアス（完了数, 総数）
ProgressCallback = Callable[[int, int], None]


class ConversionManager:
    """変換マネージャー

    バイト列から形式を判定し、Registryから対応するConverterを選択して変換する。
    呼び出し元が申告したMIMEタイプは判定に使用しない。
    変換の失敗はそのまま呼び出し元に伝え、リトライは行わない。

    Attributes:
        registry: Converterの登録先
        timeout: 1件あたりの変換タイムアウト秒数（Noneは無制限）
        max_concurrency: 一括変換時の最大同時実行数
    """

    def __init__(
        self,
        registry: ConversionRegistry | None = None,
        sniffer: FormatSniffer | None = None,
        timeout: float | None = None,
        max_concurrency: int = 4,
    ) -> None:
        """ConversionManagerを初期化する

        Args:
            registry: Converterの登録先（Noneの場合は空のRegistry）
            sniffer: 形式判定器（Noneの場合はマジックナンバー判定）
            timeout: 1件あたりの変換タイムアウト秒数
            max_concurrency: 一括変換時の最大同時実行数
        """
        self.registry = registry if registry is not None else ConversionRegistry()
        self.timeout = timeout
        self.max_concurrency = max(1, max_concurrency)
        self._sniffer = sniffer or MagicSniffer()

    def register_converter(self, converter: BaseConverter) -> None:
        """Converterを登録する（同一フォーマットは後勝ち）"""
        self.registry.register(converter)

    def remove_converter(self, name: str) -> bool:
        """指定名のConverterを削除する

        Returns:
            1件以上削除した場合True
        """
        return self.registry.remove(name)

    def list_supported_formats(self) -> set[str]:
        """変換対象として登録済みのMIMEタイプを返す"""
        return self.registry.supported_formats()

    def list_converters(self) -> list[BaseConverter]:
        """登録済みConverterを重複なしで返す"""
        return self.registry.list()

    async def inspect(self, blob: RawImageBlob) -> Detection:
        """Blobの形式を判定し、変換の要否を調べる

        Args:
            blob: 判定対象のBlob

        Returns:
            判定結果
        """
        try:
            sniffed = self._sniffer.sniff(blob.data)
        except Exception as e:
            logger.error(f"形式判定に失敗しました: {e}")
            return Detection(outcome=DetectionOutcome.UNKNOWN_FORMAT)

        if sniffed is None:
            logger.info("形式を判定できませんでした")
            return Detection(outcome=DetectionOutcome.UNKNOWN_FORMAT)

        logger.info(f"形式を判定しました: {sniffed.extension} ({sniffed.mime_type})")

        converter = self.registry.lookup(sniffed.mime_type)
        if converter is None:
            logger.info(f"対応するConverterがありません: {sniffed.mime_type}")
            return Detection(outcome=DetectionOutcome.NO_CONVERTER, sniffed=sniffed)

        if not await converter.should_convert(blob):
            logger.info(f"{converter.name} は変換不要と判定しました")
            return Detection(outcome=DetectionOutcome.NOT_NEEDED, sniffed=sniffed)

        logger.info(f"変換に使用するConverter: {converter.name}")
        return Detection(
            outcome=DetectionOutcome.CONVERTIBLE,
            sniffed=sniffed,
            converter=converter,
        )

    async def find_suitable_strategy(self, blob: RawImageBlob) -> BaseConverter | None:
        """Blobの変換に使用するConverterを返す

        Args:
            blob: 判定対象のBlob

        Returns:
            変換に使用するConverter。判定不可・未登録・変換不要の場合はNone
        """
        detection = await self.inspect(blob)
        return detection.converter

    async def convert_image(
        self,
        blob: RawImageBlob,
        source_locator: str,
        progress: ProgressSink | None = None,
    ) -> ConversionResult | None:
        """Blobを必要に応じて変換する

        戻り値がNoneの場合、呼び出し元は元のBlobをそのまま表示する。
        変換に失敗した場合も元のBlobは変更されない。

        Args:
            blob: 変換元のBlob
            source_locator: 変換元の所在（URLやファイルパス）
            progress: 進捗通知先

        Returns:
            変換結果。変換を行わなかった場合はNone

        Raises:
            ConversionError: 変換に失敗した場合
        """
        converter = await self.find_suitable_strategy(blob)
        if converter is None:
            logger.info("この画像は変換不要です")
            return None

        logger.info(f"{converter.name} で変換します: {source_locator}")
        if self.timeout is None:
            return await converter.convert(blob, source_locator, progress)

        try:
            return await asyncio.wait_for(
                converter.convert(blob, source_locator, progress),
                timeout=self.timeout,
            )
        except TimeoutError as e:
            raise ConversionTimeoutError(
                f"変換がタイムアウトしました（{self.timeout}秒）: {source_locator}",
                format_name=converter.name,
                cause=e,
            ) from e

    async def convert_many(
        self,
        tasks: Sequence[ConversionTask],
        progress_callback: ProgressCallback | None = None,
    ) -> ConversionSummary:
        """複数のBlobを並行して変換する

        1件の失敗は他のタスクに影響しない。ConversionError以外の例外は
        ConversionFailedErrorに包んで失敗として記録する。

        Args:
            tasks: 変換タスクのリスト
            progress_callback: 完了数と総数を受け取るコールバック

        Returns:
            変換結果のサマリー（outcomesは入力順）
        """
        summary = ConversionSummary(total=len(tasks))
        semaphore = asyncio.Semaphore(self.max_concurrency)
        completed_count = 0

        async def process(task: ConversionTask) -> TaskOutcome:
            nonlocal completed_count
            async with semaphore:
                try:
                    result = await self.convert_image(task.blob, task.source_locator)
                except ConversionError as e:
                    outcome = TaskOutcome(task=task, status=ConversionStatus.FAILED, error=e)
                except Exception as e:
                    logger.exception(f"予期しないエラーで変換に失敗しました: {task.source_locator}")
                    error = ConversionFailedError(
                        f"予期しないエラーが発生しました: {e}", cause=e
                    )
                    outcome = TaskOutcome(task=task, status=ConversionStatus.FAILED, error=error)
                else:
                    if result is None:
                        outcome = TaskOutcome(task=task, status=ConversionStatus.SKIPPED)
                    else:
                        outcome = TaskOutcome(
                            task=task, status=ConversionStatus.SUCCESS, result=result
                        )

            completed_count += 1
            if progress_callback:
                progress_callback(completed_count, summary.total)
            return outcome

        outcomes = await asyncio.gather(*(process(task) for task in tasks))

        for outcome in outcomes:
            summary.outcomes.append(outcome)
            if outcome.status == ConversionStatus.SUCCESS:
                summary.success += 1
            elif outcome.status == ConversionStatus.SKIPPED:
                summary.skipped += 1
            else:
                summary.failed += 1

        return summary


def _resolve_quality(value: int | str) -> int:
    """品質設定（プリセット名または整数）を整数値に変換する

    Raises:
        ConfigError: 不正な値の場合
    """
    if isinstance(value, bool):
        raise ConfigError(f"不正な品質値です: {value}")
    if isinstance(value, int):
        if not 1 <= value <= 100:
            raise ConfigError(f"品質値は1〜100の範囲で指定してください: {value}")
        return value
    try:
        return QualityPreset[str(value).upper()].value
    except KeyError as e:
        raise ConfigError(f"未知の品質プリセットです: {value}") from e


def build_builtin_converters(
    config: ImgconvConfig,
    capabilities: PlatformCapabilities,
    messages: MessageProvider,
) -> list[BaseConverter]:
    """組み込みConverterを設定に従って生成する

    Args:
        config: 設定
        capabilities: 実行環境の描画能力
        messages: 進捗メッセージ提供元

    Returns:
        組み込みConverterのリスト

    Raises:
        ConfigError: 設定値が不正な場合
    """
    try:
        output_format = OutputFormat(config.tiff.output_format.lower())
    except ValueError as e:
        raise ConfigError(f"未対応の出力形式です: {config.tiff.output_format}") from e

    heic = HeicConverter(
        PillowHeifDecoder(capabilities, quality=_resolve_quality(config.heic.quality)),
        messages=messages,
    )
    tiff = TiffConverter(
        capabilities,
        native_environments=config.tiff.native_environments,
        output_format=output_format,
        quality=_resolve_quality(config.tiff.quality),
        messages=messages,
    )
    return [heic, tiff]


def create_manager(
    config: ImgconvConfig | None = None,
    capabilities: PlatformCapabilities | None = None,
    messages: MessageProvider | None = None,
) -> ConversionManager:
    """組み込みConverterを登録したConversionManagerを生成する

    Args:
        config: 設定（Noneの場合はデフォルト設定）
        capabilities: 実行環境の描画能力（Noneの場合は設定の環境名から決定）
        messages: 進捗メッセージ提供元（Noneの場合は設定のロケール）

    Returns:
        生成したConversionManager

    Raises:
        ConfigError: 設定値が不正な場合
    """
    config = config or get_default_config()
    if capabilities is None:
        try:
            capabilities = get_environment(config.environment)
        except KeyError as e:
            raise ConfigError(str(e.args[0])) from e
    messages = messages or CatalogMessages(config.locale)

    registry = ConversionRegistry()
    for converter in build_builtin_converters(config, capabilities, messages):
        if converter.name in config.disabled_converters:
            logger.info(f"設定により無効化されたConverter: {converter.name}")
            continue
        registry.register(converter)

    return ConversionManager(
        registry=registry,
        timeout=config.timeouts.convert,
        max_concurrency=config.max_concurrency,
    )


_default_manager: ConversionManager | None = None
_default_manager_lock = Lock()


def get_default_manager() -> ConversionManager:
    """プロセス全体で共有する既定のConversionManagerを返す

    初回呼び出し時にデフォルト設定で生成する。
    """
    global _default_manager
    with _default_manager_lock:
        if _default_manager is None:
            _default_manager = create_manager()
        return _default_manager


def reset_default_manager() -> None:
    """既定のConversionManagerを破棄する（次回呼び出し時に再生成される）"""
    global _default_manager
    with _default_manager_lock:
        _default_manager = None
