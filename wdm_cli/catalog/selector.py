"""
Picks one entry from a parsed catalog given an optional version request.

Selection policy:
- no request: the greatest release. A prerelease is only chosen when the
  catalog holds nothing but prereleases, so "2.39", "2.40" and "2.41-beta"
  resolve to "2.40".
- exact request: the entry whose raw version equals the request.
- partial request ("2.3"): the greatest entry whose raw version starts with
  the request on a component boundary, under the same release-first rule.
- several platform tokens: entries tagged with any of them are candidates,
  so a renamed platform ("mac64_m1" became "mac_arm64") still resolves to
  the greatest version across both names.
- equal versions: the entry whose platform tag equals a filter token exactly,
  earlier tokens first, otherwise the first one in catalog order.
"""

import logging
import re
from collections.abc import Sequence

from wdm_cli.exceptions import VersionNotFoundError
from wdm_cli.models.catalog import CatalogEntry

log = logging.getLogger(__name__)


def _normalize_platform(value: str) -> str:
    return re.sub(r"[\s_\-]", "", value).lower()


def _strip_v(version: str) -> str:
    if version[:1] in ("v", "V") and version[1:2].isdigit():
        return version[1:]
    return version


PlatformFilter = str | Sequence[str] | None


def _platform_tokens(platform: PlatformFilter) -> tuple[str, ...]:
    if platform is None:
        return ()
    if isinstance(platform, str):
        return (platform,)
    return tuple(platform)


def _filter_platform(
    entries: Sequence[CatalogEntry], platform: PlatformFilter
) -> list[CatalogEntry]:
    tokens = _platform_tokens(platform)
    if not tokens:
        return list(entries)
    wanted = {_normalize_platform(token) for token in tokens}
    return [
        entry
        for entry in entries
        if entry.platform is None or _normalize_platform(entry.platform) in wanted
    ]


def _break_tie(ties: Sequence[CatalogEntry], platform: PlatformFilter) -> CatalogEntry:
    for token in _platform_tokens(platform):
        for entry in ties:
            if entry.platform == token:
                return entry
    return ties[0]


def _pick_greatest(
    candidates: Sequence[CatalogEntry], platform: PlatformFilter
) -> CatalogEntry:
    releases = [entry for entry in candidates if not entry.version.is_prerelease]
    pool = releases or list(candidates)
    best = max(entry.version for entry in pool)
    return _break_tie([entry for entry in pool if entry.version == best], platform)


def _matches_prefix(raw_version: str, prefix: str) -> bool:
    raw = _strip_v(raw_version)
    if not raw.startswith(prefix):
        return False
    rest = raw[len(prefix) :]
    return not rest or rest[0] in ".-+_" or not prefix[-1].isdigit()


def describe_range(entries: Sequence[CatalogEntry]) -> str:
    """Formats the available versions as ``"min .. max"`` for error messages."""
    if not entries:
        return "none"
    lowest = min(entries, key=lambda entry: entry.version)
    highest = max(entries, key=lambda entry: entry.version)
    if lowest.version == highest.version:
        return lowest.raw_version
    return f"{lowest.raw_version} .. {highest.raw_version}"


def select_entry(
    entries: Sequence[CatalogEntry],
    requested: str | None = None,
    platform: PlatformFilter = None,
) -> CatalogEntry:
    """
    Selects one catalog entry.

    Args:
        entries: Parsed catalog entries.
        requested: An exact version, a numeric prefix, or None for the latest.
        platform: The provider's platform token, a sequence of accepted
            tokens in order of preference, or None to accept any.

    Returns:
        The selected entry. The same inputs always produce the same entry.

    Raises:
        VersionNotFoundError: If no entry satisfies the request.
    """
    candidates = _filter_platform(entries, platform)
    requested = requested.strip() if requested else None

    if not requested:
        if not candidates:
            raise VersionNotFoundError(None, describe_range(entries))
        selected = _pick_greatest(candidates, platform)
        log.debug(f"Selected latest version {selected.raw_version}.")
        return selected

    wanted = _strip_v(requested)
    exact = [entry for entry in candidates if _strip_v(entry.raw_version) == wanted]
    if exact:
        return _break_tie(exact, platform)

    prefixed = [entry for entry in candidates if _matches_prefix(entry.raw_version, wanted)]
    if prefixed:
        selected = _pick_greatest(prefixed, platform)
        log.debug(f"Resolved version prefix '{requested}' to {selected.raw_version}.")
        return selected

    raise VersionNotFoundError(requested, describe_range(candidates))
