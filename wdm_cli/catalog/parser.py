"""
Turns raw remote listings into ordered lists of catalog entries.

Three listing formats are understood:
- bucket-style XML (Google Cloud Storage / S3 ``ListBucketResult``),
- registry-style JSON (the npm registry document of a package),
- GitHub release JSON (a list of releases with their assets).
"""

import json
import logging
import re
from collections.abc import Iterable, Sequence
from xml.etree import ElementTree

from jsonschema import Draft7Validator

from wdm_cli.exceptions import ParseError
from wdm_cli.models.catalog import CatalogEntry
from wdm_cli.models.version import SemanticVersion

log = logging.getLogger(__name__)

_TOKEN_REGEX = re.compile(r"\{(version|platform|dir)\}")
_VERSION_GROUP = r"(?P<version>[vV]?\d[0-9A-Za-z.\-]*?)"
_DIR_GROUP = r"[^/]+"

REGISTRY_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "Package registry document",
    "type": "object",
    "properties": {
        "versions": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "properties": {
                    "dist": {
                        "type": "object",
                        "properties": {
                            "tarball": {"type": "string"},
                            "unpackedSize": {"type": "integer", "minimum": 0},
                        },
                    },
                },
            },
        },
    },
    "required": ["versions"],
}

RELEASES_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "GitHub release list",
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "tag_name": {"type": "string"},
            "assets": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "name": {"type": "string"},
                        "size": {"type": "integer", "minimum": 0},
                        "browser_download_url": {"type": "string"},
                    },
                    "required": ["name", "browser_download_url"],
                },
            },
        },
        "required": ["assets"],
    },
}


class FilenamePattern:
    """
    A catalog key template made of fixed text and three tokens.

    ``{version}`` captures the version substring, ``{platform}`` captures one of
    the provider's platform tokens and ``{dir}`` skips a single path segment.
    For example ``{version}/chromedriver_{platform}.zip`` matches
    ``2.41/chromedriver_linux64.zip``.
    """

    def __init__(self, template: str, platforms: Sequence[str] = ()):
        if "{version}" not in template:
            raise ValueError(f"Template '{template}' has no {{version}} token.")
        self.template = template
        self.platforms = tuple(platforms)
        self._regex = self._compile()

    def _compile(self) -> re.Pattern:
        parts = []
        position = 0
        for match in _TOKEN_REGEX.finditer(self.template):
            parts.append(re.escape(self.template[position : match.start()]))
            token = match.group(1)
            if token == "version":
                parts.append(_VERSION_GROUP)
            elif token == "platform":
                # Longest first so "mac64_m1" is not shadowed by "mac64"
                tokens = sorted(self.platforms, key=len, reverse=True)
                alternatives = "|".join(re.escape(t) for t in tokens) or r"\w+?"
                parts.append(f"(?P<platform>{alternatives})")
            else:
                parts.append(_DIR_GROUP)
            position = match.end()
        parts.append(re.escape(self.template[position:]))
        return re.compile("^" + "".join(parts) + "$")

    def match(self, key: str) -> tuple[str, str | None] | None:
        """Returns ``(raw_version, platform)`` for a matching key, else None."""
        found = self._regex.match(key)
        if not found:
            return None
        return found.group("version"), found.groupdict().get("platform")

    def __repr__(self) -> str:
        return f"FilenamePattern({self.template!r}, platforms={self.platforms!r})"


def _local_name(tag: str) -> str:
    """Strips an XML namespace from a tag name."""
    return tag.rsplit("}", 1)[-1]


def _ensure_payload(payload: str | bytes, kind: str) -> None:
    if payload is None or not payload.strip():
        raise ParseError(f"The {kind} catalog payload is empty.")


def _validate(document, schema: dict, kind: str) -> None:
    validator = Draft7Validator(schema)
    errors = sorted(validator.iter_errors(document), key=lambda e: list(e.path))
    if errors:
        first = errors[0]
        path = ".".join(str(p) for p in first.path) if first.path else "root"
        raise ParseError(f"Invalid {kind} catalog at {path}: {first.message}")


def _build_entry(
    key: str,
    pattern: FilenamePattern,
    url: str,
    size: int,
    last_modified: str = "",
) -> CatalogEntry | None:
    matched = pattern.match(key)
    if not matched:
        return None
    raw_version, platform = matched
    try:
        version = SemanticVersion.parse(raw_version)
    except ValueError:
        log.debug(f"Skipping catalog key with unparseable version: {key}")
        return None
    return CatalogEntry(
        raw_version=raw_version,
        version=version,
        platform=platform,
        url=url,
        size=size,
        key=key,
        last_modified=last_modified,
    )


def _ordered(entries: Iterable[CatalogEntry]) -> list[CatalogEntry]:
    # sorted() is stable, so catalog order survives among equal versions
    return sorted(entries, key=lambda entry: entry.version)


def parse_bucket_xml(
    payload: str | bytes, pattern: FilenamePattern, base_url: str
) -> list[CatalogEntry]:
    """
    Parses a bucket listing (``ListBucketResult``) into catalog entries.

    Args:
        payload: The raw XML document.
        pattern: The provider's key template.
        base_url: The bucket URL that keys are relative to.

    Returns:
        Matching entries, ascending by semantic version.

    Raises:
        ParseError: If the payload is empty, malformed or not a bucket listing.
    """
    _ensure_payload(payload, "XML")
    try:
        root = ElementTree.fromstring(payload)
    except ElementTree.ParseError as e:
        raise ParseError(f"Malformed catalog XML: {e}") from e

    if _local_name(root.tag) != "ListBucketResult":
        raise ParseError(
            f"Unexpected catalog XML root '{_local_name(root.tag)}', "
            "expected 'ListBucketResult'."
        )

    if not base_url.endswith("/"):
        base_url += "/"

    entries = []
    for contents in root:
        if _local_name(contents.tag) != "Contents":
            continue
        fields = {_local_name(child.tag): (child.text or "") for child in contents}
        key = fields.get("Key")
        if not key:
            raise ParseError("Catalog XML has a 'Contents' element without a 'Key'.")
        try:
            size = int(fields.get("Size") or 0)
        except ValueError as e:
            raise ParseError(f"Invalid size for catalog key '{key}': {e}") from e

        entry = _build_entry(
            key, pattern, base_url + key, size, fields.get("LastModified", "")
        )
        if entry:
            entries.append(entry)

    log.debug(f"Parsed {len(entries)} matching entries from bucket listing.")
    return _ordered(entries)


def _load_json(payload: str | bytes, kind: str):
    _ensure_payload(payload, kind)
    try:
        return json.loads(payload)
    except json.JSONDecodeError as e:
        raise ParseError(f"Malformed {kind} catalog JSON: {e}") from e


def parse_registry_json(
    payload: str | bytes, pattern: FilenamePattern
) -> list[CatalogEntry]:
    """
    Parses a registry document (a mapping of version strings to metadata).

    Raises:
        ParseError: If the payload is empty, malformed or lacks a ``versions`` map.
    """
    document = _load_json(payload, "registry")
    _validate(document, REGISTRY_SCHEMA, "registry")

    entries = []
    for raw_version, metadata in document["versions"].items():
        dist = metadata.get("dist", {})
        entry = _build_entry(
            raw_version,
            pattern,
            dist.get("tarball", ""),
            dist.get("unpackedSize", 0),
            document.get("time", {}).get(raw_version, ""),
        )
        if entry:
            entries.append(entry)

    log.debug(f"Parsed {len(entries)} matching versions from registry document.")
    return _ordered(entries)


def parse_release_json(
    payload: str | bytes, pattern: FilenamePattern
) -> list[CatalogEntry]:
    """
    Parses a GitHub release list; each release asset is a candidate key.

    Raises:
        ParseError: If the payload is empty, malformed or not a release list.
    """
    document = _load_json(payload, "release")
    _validate(document, RELEASES_SCHEMA, "release")

    entries = []
    for release in document:
        for asset in release["assets"]:
            entry = _build_entry(
                asset["name"],
                pattern,
                asset["browser_download_url"],
                asset.get("size", 0),
                asset.get("updated_at", ""),
            )
            if entry:
                entries.append(entry)

    log.debug(f"Parsed {len(entries)} matching assets from release list.")
    return _ordered(entries)
