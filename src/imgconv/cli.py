"""CLI entry point for imgconv."""

import asyncio
import dataclasses
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from imgconv import __version__
from imgconv.capabilities import KNOWN_ENVIRONMENTS
from imgconv.config import ConfigError, ImgconvConfig, get_default_config, load_config
from imgconv.converter.base import RawImageBlob
from imgconv.converter.errors import ConversionError
from imgconv.converter.manager import (
    ConversionManager,
    ConversionStatus,
    ConversionTask,
    DetectionOutcome,
    create_manager,
)
from imgconv.doctor import check_all_dependencies
from imgconv.logger import ConversionLogger, LogConfig, VerboseLevel
from imgconv.types import ExitCode

app = typer.Typer(help="ブラウザで表示できない画像（HEIC/TIFF）を表示可能な形式に変換するCLIツール")
console = Console()

DETECTION_LABEL: dict[DetectionOutcome, str] = {
    DetectionOutcome.UNKNOWN_FORMAT: "[dim]形式不明[/dim]",
    DetectionOutcome.NO_CONVERTER: "[dim]対象外[/dim]",
    DetectionOutcome.NOT_NEEDED: "[green]変換不要[/green]",
    DetectionOutcome.CONVERTIBLE: "[yellow]変換対象[/yellow]",
}


def _format_size(size_bytes: int) -> str:
    """バイト数を人間が読みやすい形式に変換する"""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.1f} MB"
    else:
        return f"{size_bytes / (1024 * 1024 * 1024):.1f} GB"


def _load_settings(
    config_path: Path | None,
    environment: str | None,
    output_format: str | None,
    quality: str | None,
) -> ImgconvConfig:
    """設定ファイルとコマンドラインオプションから設定を組み立てる

    Raises:
        ConfigError: 設定ファイルが不正な場合
    """
    config = load_config(config_path) if config_path else get_default_config()
    if environment:
        config = dataclasses.replace(config, environment=environment)
    tiff = config.tiff
    if output_format:
        tiff = dataclasses.replace(tiff, output_format=output_format)
    if quality:
        tiff = dataclasses.replace(tiff, quality=int(quality) if quality.isdigit() else quality)
    return dataclasses.replace(config, tiff=tiff)


def _build_manager(
    config_path: Path | None,
    environment: str | None,
    output_format: str | None = None,
    quality: str | None = None,
) -> ConversionManager:
    """設定からConversionManagerを生成する（設定エラー時は終了する）"""
    try:
        config = _load_settings(config_path, environment, output_format, quality)
        return create_manager(config)
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(ExitCode.INVALID_INPUT) from e


def _destination(source: Path, output_dir: Path | None, extension: str) -> Path:
    """変換結果の保存先パスを決定する"""
    directory = output_dir if output_dir is not None else source.parent
    return directory / f"{source.stem}.{extension}"


@app.command()
def convert(
    input_paths: Annotated[list[Path], typer.Argument(help="変換する画像ファイル")],
    output_dir: Annotated[
        Path | None, typer.Option("-o", "--output-dir", help="出力ディレクトリ")
    ] = None,
    environment: Annotated[
        str | None, typer.Option("-e", "--environment", help="表示先の実行環境名")
    ] = None,
    config_path: Annotated[Path | None, typer.Option("--config", help="設定ファイル")] = None,
    output_format: Annotated[
        str | None, typer.Option("--format", help="TIFFの出力形式（jpeg/png）")
    ] = None,
    quality: Annotated[
        str | None, typer.Option(help="TIFFの品質（プリセット名または1-100）")
    ] = None,
    verbose: Annotated[int, typer.Option("-v", "--verbose", count=True, help="詳細ログ出力")] = 0,
    quiet: Annotated[bool, typer.Option("-q", "--quiet", help="エラーのみ出力")] = False,
    log_file: Annotated[Path | None, typer.Option(help="ログファイル出力先")] = None,
) -> None:
    """画像を必要に応じて表示可能な形式に変換する"""
    missing = [path for path in input_paths if not path.is_file()]
    if missing:
        for path in missing:
            console.print(f"[red]Error: ファイルが見つかりません: {path}[/red]")
        raise typer.Exit(ExitCode.INVALID_INPUT)

    manager = _build_manager(config_path, environment, output_format, quality)
    if output_dir is not None:
        output_dir.mkdir(parents=True, exist_ok=True)

    level = VerboseLevel.QUIET if quiet else VerboseLevel(min(verbose, VerboseLevel.DEBUG))
    with ConversionLogger(LogConfig(verbose_level=level, log_file=log_file)) as logger:
        logger.configure_library_logging()
        if len(input_paths) == 1:
            failed = _convert_single(manager, logger, input_paths[0], output_dir)
        else:
            failed = _convert_batch(manager, logger, input_paths, output_dir)

    if failed:
        raise typer.Exit(ExitCode.CONVERSION_FAILED)
    raise typer.Exit(ExitCode.SUCCESS)


def _convert_single(
    manager: ConversionManager,
    logger: ConversionLogger,
    source: Path,
    output_dir: Path | None,
) -> int:
    """1件の画像を進捗表示付きで変換する

    Returns:
        失敗件数（0または1）
    """
    progress = logger.create_progress()
    blob = RawImageBlob.from_path(source)
    try:
        result = asyncio.run(manager.convert_image(blob, str(source), progress))
    except ConversionError as e:
        progress.finish(False, str(e))
        logger.error(f"{source}: {e}")
        logger.log_summary(success=0, skipped=0, failed=1)
        return 1

    if result is None:
        logger.log_conversion(source, None, "skipped")
        logger.info(f"変換不要: {source}")
        logger.log_summary(success=0, skipped=1, failed=0)
        return 0

    progress.finish(True)
    with result.output_handle as handle:
        dest = handle.save(_destination(source, output_dir, result.output_format.extension))
    logger.log_conversion(source, dest, "converted")
    logger.info(
        f"変換完了: {dest} ({_format_size(result.original_size_bytes)} -> "
        f"{_format_size(result.converted_size_bytes)})"
    )
    logger.log_summary(success=1, skipped=0, failed=0)
    return 0


def _convert_batch(
    manager: ConversionManager,
    logger: ConversionLogger,
    sources: list[Path],
    output_dir: Path | None,
) -> int:
    """複数の画像を並行して変換する

    Returns:
        失敗件数
    """
    tasks = [ConversionTask(RawImageBlob.from_path(path), str(path)) for path in sources]

    def progress_callback(completed: int, total: int) -> None:
        logger.verbose(f"進捗: {completed}/{total}")

    summary = asyncio.run(manager.convert_many(tasks, progress_callback=progress_callback))

    for source, outcome in zip(sources, summary.outcomes, strict=True):
        if outcome.status == ConversionStatus.SUCCESS and outcome.result is not None:
            result = outcome.result
            with result.output_handle as handle:
                dest = handle.save(_destination(source, output_dir, result.output_format.extension))
            logger.log_conversion(source, dest, "converted")
        elif outcome.status == ConversionStatus.SKIPPED:
            logger.log_conversion(source, None, "skipped")
        else:
            logger.error(f"{source}: {outcome.error}")

    logger.log_summary(success=summary.success, skipped=summary.skipped, failed=summary.failed)
    return summary.failed


@app.command()
def sniff(
    input_paths: Annotated[list[Path], typer.Argument(help="判定する画像ファイル")],
    environment: Annotated[
        str | None, typer.Option("-e", "--environment", help="表示先の実行環境名")
    ] = None,
    config_path: Annotated[Path | None, typer.Option("--config", help="設定ファイル")] = None,
) -> None:
    """画像の形式と変換の要否を判定する"""
    manager = _build_manager(config_path, environment)

    table = Table(title="形式判定結果")
    table.add_column("ファイル", style="cyan")
    table.add_column("形式", justify="left")
    table.add_column("MIMEタイプ", justify="left")
    table.add_column("サイズ", justify="right")
    table.add_column("判定", justify="center")

    has_missing = False
    for path in input_paths:
        if not path.is_file():
            table.add_row(str(path), "-", "-", "-", "[red]見つかりません[/red]")
            has_missing = True
            continue

        blob = RawImageBlob.from_path(path)
        detection = asyncio.run(manager.inspect(blob))
        sniffed = detection.sniffed
        table.add_row(
            str(path),
            sniffed.extension if sniffed else "-",
            sniffed.mime_type if sniffed else "-",
            _format_size(blob.size),
            DETECTION_LABEL[detection.outcome],
        )

    console.print(table)
    raise typer.Exit(ExitCode.INVALID_INPUT if has_missing else ExitCode.SUCCESS)


@app.command()
def formats(
    environment: Annotated[
        str | None, typer.Option("-e", "--environment", help="表示先の実行環境名")
    ] = None,
    config_path: Annotated[Path | None, typer.Option("--config", help="設定ファイル")] = None,
) -> None:
    """登録済みのConverterと対応形式を表示する"""
    manager = _build_manager(config_path, environment)

    table = Table(title="対応形式", show_header=True)
    table.add_column("Converter", style="cyan")
    table.add_column("MIMEタイプ", style="white")
    table.add_column("拡張子", style="white")

    for converter in manager.list_converters():
        extensions = sorted(fmt.extension for fmt in converter.supported_formats)
        table.add_row(converter.name, ", ".join(converter.mime_types), ", ".join(extensions))

    envs = ", ".join(sorted(KNOWN_ENVIRONMENTS))
    console.print(Panel(table, border_style="blue", subtitle=f"環境: {envs}"))
    raise typer.Exit(ExitCode.SUCCESS)


@app.command()
def doctor() -> None:
    """変換バックエンドをチェックする"""
    console = Console()
    results = check_all_dependencies()

    table = Table(title="変換バックエンドチェック結果")
    table.add_column("ステータス", justify="center")
    table.add_column("ライブラリ", justify="left")
    table.add_column("バージョン", justify="left")
    table.add_column("必須", justify="center")
    table.add_column("メッセージ", justify="left")

    has_missing_required = False

    for result in results:
        if result.found:
            status = "[green]✓[/green]"
        else:
            status = "[red]✗[/red]"
            if result.required:
                has_missing_required = True

        required_str = "[yellow]必須[/yellow]" if result.required else "オプション"
        version_str = result.version or "-"
        message_str = result.message or ""

        table.add_row(status, result.name, version_str, required_str, message_str)

    console.print(table)

    if has_missing_required:
        console.print("\n[red]エラー: 必須ライブラリが不足しています[/red]")
        raise typer.Exit(ExitCode.DEPENDENCY_ERROR)
    else:
        console.print("\n[green]すべての必須ライブラリが利用可能です[/green]")
        raise typer.Exit(ExitCode.SUCCESS)


def version_callback(value: bool) -> None:
    """バージョン表示コールバック"""
    if value:
        typer.echo(f"imgconv {__version__}")
        raise typer.Exit(0)


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="バージョンを表示する",
        ),
    ] = False,
) -> None:
    """imgconv CLI - HEIC/TIFF画像を表示可能な形式に変換"""
    pass
