"""
Compression formats supported for backup artifacts.

Supports two formats:
- zstd: tar container piped through the zstd codec (.tar.zst)
- zip: self-compressing container, deflate per entry (.zip)

Each format carries its own valid compression level range. Levels are
validated once, when the configuration is built, never at backup time.
"""

from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple


class ConfigurationError(ValueError):
    """Raised when a configured value is out of range or unknown."""
    pass


class FormatSpec(NamedTuple):
    """Static description of one compression format."""
    name: str
    suffix: str
    min_level: int
    max_level: int
    default_level: int
    self_compressing: bool


class CompressType(Enum):
    """Closed set of artifact formats."""

    ZSTD = 'zstd'
    ZIP = 'zip'

    @property
    def spec(self) -> FormatSpec:
        return FORMAT_SPECS[self]

    @property
    def suffix(self) -> str:
        return self.spec.suffix

    @property
    def self_compressing(self) -> bool:
        return self.spec.self_compressing

    @classmethod
    def names(cls) -> list:
        """Format names as accepted on the command line and in config."""
        return [member.value for member in cls]

    @classmethod
    def from_name(cls, name: str) -> 'CompressType':
        """
        Parse a format name case-insensitively.

        Raises:
            ConfigurationError: If the name is not a known format
        """
        try:
            return cls(str(name).strip().lower())
        except ValueError:
            raise ConfigurationError(
                f"Invalid compression format: {name}. "
                f"Valid options: {cls.names()}"
            )


FORMAT_SPECS = {
    CompressType.ZSTD: FormatSpec(
        name='zstd',
        suffix='.tar.zst',
        min_level=1,
        max_level=22,
        default_level=10,
        self_compressing=False
    ),
    CompressType.ZIP: FormatSpec(
        name='zip',
        suffix='.zip',
        min_level=0,
        max_level=9,
        default_level=6,
        self_compressing=True
    ),
}


def validate_level(compress_type: CompressType, level) -> int:
    """
    Check a compression level against the format's inclusive bound.

    Args:
        compress_type: Format the level applies to
        level: Candidate level

    Returns:
        The level as an int

    Raises:
        ConfigurationError: If the level is not an integer or is out of range
    """
    spec = compress_type.spec

    if isinstance(level, bool) or not isinstance(level, int):
        raise ConfigurationError(
            f"{spec.name} compression level must be an integer, got {level!r}"
        )

    if not spec.min_level <= level <= spec.max_level:
        raise ConfigurationError(
            f"{spec.name} compression level must be between "
            f"{spec.min_level} and {spec.max_level}, inclusive (got {level})"
        )

    return level


@dataclass(frozen=True)
class CompressionLevels:
    """
    Immutable compression levels for every format.

    Both levels are validated on construction; an out-of-range level raises
    ConfigurationError instead of being clamped.
    """
    zstd_level: int = FORMAT_SPECS[CompressType.ZSTD].default_level
    zip_level: int = FORMAT_SPECS[CompressType.ZIP].default_level

    def __post_init__(self):
        validate_level(CompressType.ZSTD, self.zstd_level)
        validate_level(CompressType.ZIP, self.zip_level)

    def for_type(self, compress_type: CompressType) -> int:
        if compress_type is CompressType.ZSTD:
            return self.zstd_level
        elif compress_type is CompressType.ZIP:
            return self.zip_level
        raise ValueError(f"Unsupported compression format: {compress_type}")
