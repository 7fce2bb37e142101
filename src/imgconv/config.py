"""Configuration module for imgconv."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

import yaml


class ConfigError(Exception):
    """設定ファイル読み込みエラー"""

    pass


@dataclass(frozen=True)
class TiffConfig:
    """TIFF変換設定"""

    output_format: str = "jpeg"
    quality: int | str = "maximum"
    native_environments: tuple[str, ...] = ("safari",)


@dataclass(frozen=True)
class HeicConfig:
    """HEIC変換設定"""

    quality: int | str = "high"


@dataclass(frozen=True)
class TimeoutConfig:
    """タイムアウト設定（秒、Noneは無制限）"""

    convert: float | None = 120.0


@dataclass(frozen=True)
class ImgconvConfig:
    """ルート設定"""

    environment: str = "generic"
    locale: str = "ja"
    max_concurrency: int = 4
    tiff: TiffConfig = field(default_factory=TiffConfig)
    heic: HeicConfig = field(default_factory=HeicConfig)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    disabled_converters: list[str] = field(default_factory=list)


class ConfigLoader(Protocol):
    """設定読み込みインターフェース"""

    def load_config(self, path: Path) -> ImgconvConfig:
        """設定ファイルを読み込む"""
        ...

    def get_default_config(self) -> ImgconvConfig:
        """デフォルト設定を取得する"""
        ...


def load_config(path: Path) -> ImgconvConfig:
    """設定ファイルを読み込む

    Args:
        path: 設定ファイルパス

    Returns:
        ImgconvConfig: 読み込んだ設定（デフォルトとマージ済み）

    Raises:
        ConfigError: ファイル読み込みまたはパースエラー
    """
    if not path.exists():
        raise ConfigError(f"設定ファイルが見つかりません: {path}")

    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"YAML解析エラー: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError("設定ファイルはYAMLのマッピング形式である必要があります")

    default = get_default_config()

    max_concurrency = data.get("max_concurrency", default.max_concurrency)
    if not isinstance(max_concurrency, int) or max_concurrency < 1:
        raise ConfigError(f"max_concurrencyは1以上の整数である必要があります: {max_concurrency}")

    disabled = data.get("disabled_converters", default.disabled_converters)
    if not isinstance(disabled, list):
        raise ConfigError("disabled_convertersはリスト形式である必要があります")

    return ImgconvConfig(
        environment=str(data.get("environment", default.environment)),
        locale=str(data.get("locale", default.locale)),
        max_concurrency=max_concurrency,
        tiff=_merge_tiff_config(data.get("tiff", {}), default.tiff),
        heic=_merge_heic_config(data.get("heic", {}), default.heic),
        timeouts=_merge_timeout_config(data.get("timeouts", {}), default.timeouts),
        disabled_converters=[str(name) for name in disabled],
    )


def get_default_config() -> ImgconvConfig:
    """デフォルト設定を取得する"""
    return ImgconvConfig()


def _merge_tiff_config(data: dict[str, Any], default: TiffConfig) -> TiffConfig:
    """TIFF設定をマージする"""
    if not isinstance(data, dict):
        return default
    environments = data.get("native_environments", default.native_environments)
    if isinstance(environments, str):
        environments = [environments]
    return TiffConfig(
        output_format=data.get("output_format", default.output_format),
        quality=data.get("quality", default.quality),
        native_environments=tuple(str(env) for env in environments),
    )


def _merge_heic_config(data: dict[str, Any], default: HeicConfig) -> HeicConfig:
    """HEIC設定をマージする"""
    if not isinstance(data, dict):
        return default
    return HeicConfig(quality=data.get("quality", default.quality))


def _merge_timeout_config(data: dict[str, Any], default: TimeoutConfig) -> TimeoutConfig:
    """タイムアウト設定をマージする"""
    if not isinstance(data, dict):
        return default
    return TimeoutConfig(convert=data.get("convert", default.convert))
