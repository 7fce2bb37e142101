"""変換バックエンドチェッカー"""

from __future__ import annotations

import importlib
from dataclasses import dataclass
from importlib import metadata
from typing import Protocol


@dataclass(frozen=True)
class CheckResult:
    """チェック結果"""

    name: str
    required: bool
    found: bool
    version: str | None
    message: str | None


@dataclass(frozen=True)
class DependencyInfo:
    """依存ライブラリ情報

    Attributes:
        name: 表示名
        module: インポートするモジュール名
        distribution: バージョン取得に使う配布パッケージ名
        required: 必須かどうか
        feature: Pillowの機能名（指定時は機能の有効性も確認する）
    """

    name: str
    module: str
    distribution: str
    required: bool
    feature: str | None = None


DEPENDENCIES: list[DependencyInfo] = [
    DependencyInfo(
        name="Pillow",
        module="PIL",
        distribution="Pillow",
        required=True,
    ),
    DependencyInfo(
        name="JPEG encoder (libjpeg)",
        module="PIL",
        distribution="Pillow",
        required=True,
        feature="jpg",
    ),
    DependencyInfo(
        name="pillow-heif",
        module="pillow_heif",
        distribution="pillow-heif",
        required=False,
    ),
    DependencyInfo(
        name="tifffile",
        module="tifffile",
        distribution="tifffile",
        required=True,
    ),
    DependencyInfo(
        name="imagecodecs",
        module="imagecodecs",
        distribution="imagecodecs",
        required=False,
    ),
]


class DependencyChecker(Protocol):
    """依存ライブラリチェッカーインターフェース"""

    def check_all(self) -> list[CheckResult]:
        """全ての依存ライブラリをチェックする"""
        ...

    def check_one(self, info: DependencyInfo) -> CheckResult:
        """単一の依存ライブラリをチェックする"""
        ...


def _distribution_version(distribution: str) -> str | None:
    try:
        return metadata.version(distribution)
    except metadata.PackageNotFoundError:
        return None


def _check_feature(feature: str) -> bool:
    """Pillowの機能（コーデック）が有効かを返す"""
    from PIL import features

    return bool(features.check(feature))


def check_dependency(info: DependencyInfo) -> CheckResult:
    """単一の依存ライブラリをチェックする"""
    try:
        importlib.import_module(info.module)
    except ImportError as e:
        return CheckResult(
            name=info.name,
            required=info.required,
            found=False,
            version=None,
            message=f"モジュール '{info.module}' が見つかりません: {e}",
        )

    version = _distribution_version(info.distribution)

    if info.feature is not None and not _check_feature(info.feature):
        return CheckResult(
            name=info.name,
            required=info.required,
            found=False,
            version=version,
            message=f"Pillowの機能 '{info.feature}' が無効です",
        )

    return CheckResult(
        name=info.name,
        required=info.required,
        found=True,
        version=version,
        message=None,
    )


def check_all_dependencies() -> list[CheckResult]:
    """全ての依存ライブラリをチェックする"""
    return [check_dependency(info) for info in DEPENDENCIES]
