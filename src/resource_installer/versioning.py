"""Version strings and version ranges.

Versions follow NuGet: one to four numeric parts, an optional SemVer 2.0
prerelease label and optional build metadata (``1.0``, ``2.0.1.3``,
``1.0.0-ci.5``, ``1.0.0-nightly+abc``). Prerelease labels compare by
SemVer precedence (``semantic_version``), case-insensitively; build
metadata is ignored.

Ranges use NuGet interval notation:

- ``None``, ``""`` or ``"*"``: any version
- ``"1.0"``: minimum version, inclusive
- ``"[1.0]"``: exactly 1.0
- ``"[1.0,2.0)"``, ``"(1.0,)"``, ``"(,2.0]"``: intervals
"""

import re
from dataclasses import dataclass
from dataclasses import field

import semantic_version
from pydantic import BaseModel
from pydantic import ConfigDict

from .exceptions import VersionParseError

_VERSION_PATTERN = re.compile(
    r"^(?P<release>\d+(?:\.\d+){0,3})"
    r"(?:-(?P<prerelease>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)


@dataclass(frozen=True, order=True)
class NuGetVersion:
    """Parsed version, ordered by release parts then prerelease precedence."""

    release: tuple[int, int, int, int]
    # Stable versions carry an empty prerelease, which sorts above any label
    label: semantic_version.Version = field(repr=False)
    text: str = field(compare=False)

    @property
    def is_prerelease(self) -> bool:
        return bool(self.label.prerelease)

    def __str__(self) -> str:
        return self.text


def parse_version(text: str) -> NuGetVersion:
    """Parse a version string.

    Raises:
        VersionParseError: If the string is not a valid version
    """
    match = _VERSION_PATTERN.match(text.strip()) if text else None
    if match is None:
        raise VersionParseError(f"Cannot parse version '{text}'", context={"version": text})

    parts = [int(part) for part in match.group("release").split(".")]
    parts.extend([0] * (4 - len(parts)))
    prerelease = match.group("prerelease")
    try:
        label = semantic_version.Version(
            major=0,
            minor=0,
            patch=0,
            prerelease=tuple(prerelease.casefold().split(".")) if prerelease else (),
        )
    except ValueError as e:
        raise VersionParseError(f"Cannot parse version '{text}': {e}", context={"version": text}) from e
    return NuGetVersion(release=tuple(parts), label=label, text=text.strip())


def full_version(version: str, prerelease_label: str | None = None) -> str:
    """Append the prerelease label to a version, e.g. ``2.0.2`` + ``beta1`` -> ``2.0.2-beta1``."""
    if prerelease_label:
        return f"{version}-{prerelease_label}"
    return version


def strip_prerelease(version: str) -> str:
    """Drop the prerelease label and build metadata, e.g. ``2.0.2-beta1`` -> ``2.0.2``."""
    return version.split("+", 1)[0].split("-", 1)[0]


class VersionRange(BaseModel):
    """Version range parsed from interval notation."""

    model_config = ConfigDict(frozen=True)

    original: str = ""
    min_version: str | None = None
    min_inclusive: bool = True
    max_version: str | None = None
    max_inclusive: bool = False

    @classmethod
    def any(cls) -> "VersionRange":
        return cls()

    @classmethod
    def parse(cls, value: "str | VersionRange | None") -> "VersionRange":
        """Parse a range specification.

        Args:
            value: Range text, an existing VersionRange, or None for any version

        Returns:
            VersionRange

        Raises:
            VersionParseError: If the text is not valid interval notation

        Example:
            >>> VersionRange.parse("[1.0,2.0)").contains("1.5")
            True
        """
        if isinstance(value, VersionRange):
            return value
        text = (value or "").strip()
        if text in ("", "*"):
            return cls(original=text)

        # Bare version means minimum inclusive
        if text[0] not in "[(":
            parse_version(text)
            return cls(original=text, min_version=text, min_inclusive=True)

        if text[-1] not in "])" or len(text) < 3:
            raise VersionParseError(f"Invalid version range '{text}'", context={"version_range": text})

        lower_inclusive = text.startswith("[")
        upper_inclusive = text.endswith("]")
        inner = text[1:-1].strip()

        # Single element: [1.2] is an exact version
        if "," not in inner:
            if not (lower_inclusive and upper_inclusive) or not inner:
                raise VersionParseError(f"Invalid version range '{text}'", context={"version_range": text})
            parse_version(inner)
            return cls(
                original=text,
                min_version=inner,
                min_inclusive=True,
                max_version=inner,
                max_inclusive=True,
            )

        parts = inner.split(",")
        if len(parts) != 2:
            raise VersionParseError(f"Invalid version range '{text}'", context={"version_range": text})
        lower_str, upper_str = parts[0].strip(), parts[1].strip()
        if not lower_str and not upper_str:
            raise VersionParseError(f"Invalid version range '{text}'", context={"version_range": text})

        if lower_str:
            lower = parse_version(lower_str)
        if upper_str:
            upper = parse_version(upper_str)
        if lower_str and upper_str and lower > upper:
            raise VersionParseError(
                f"Invalid version range '{text}': lower bound is above upper bound",
                context={"version_range": text},
            )

        return cls(
            original=text,
            min_version=lower_str or None,
            min_inclusive=lower_inclusive,
            max_version=upper_str or None,
            max_inclusive=upper_inclusive,
        )

    @property
    def is_any(self) -> bool:
        return self.min_version is None and self.max_version is None

    def contains(self, version: "str | NuGetVersion") -> bool:
        """Check whether a version falls inside this range.

        Unparsable version strings are never contained.
        """
        if isinstance(version, str):
            try:
                version = parse_version(version)
            except VersionParseError:
                return False

        if self.min_version is not None:
            lower = parse_version(self.min_version)
            if self.min_inclusive and version < lower:
                return False
            if not self.min_inclusive and version <= lower:
                return False

        if self.max_version is not None:
            upper = parse_version(self.max_version)
            if self.max_inclusive and version > upper:
                return False
            if not self.max_inclusive and version >= upper:
                return False

        return True

    def __str__(self) -> str:
        return self.original
