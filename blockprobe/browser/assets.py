"""Point-in-time snapshots of loaded scripts/styles and their differences."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger("blockprobe.browser.assets")

ASSET_KIND_SCRIPT = "script"
ASSET_KIND_STYLE = "style"
ASSET_KINDS = {ASSET_KIND_SCRIPT, ASSET_KIND_STYLE}


@dataclass(frozen=True)
class AssetDescriptor:
    """One loaded script or stylesheet, identified by ``id``."""

    id: str
    url: str | None = None

    @classmethod
    def from_record(cls, record: Any) -> AssetDescriptor:
        if isinstance(record, AssetDescriptor):
            return record
        if not isinstance(record, dict):
            raise ValueError("asset record must be object")
        asset_id = str(record.get("id") or "").strip()
        if not asset_id:
            raise ValueError("asset record missing 'id'")
        url = record.get("url")
        return cls(id=asset_id, url=str(url) if url else None)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "url": self.url}


@dataclass(frozen=True)
class AssetSnapshot:
    kind: str
    assets: tuple[AssetDescriptor, ...] = ()

    def __post_init__(self) -> None:
        if self.kind not in ASSET_KINDS:
            raise ValueError(f"unsupported asset kind: {self.kind}")
        ids = [asset.id for asset in self.assets]
        if len(ids) != len(set(ids)):
            raise ValueError(f"duplicate asset id in {self.kind} snapshot")

    @classmethod
    def from_records(cls, kind: str, records: Iterable[Any]) -> AssetSnapshot:
        """Build a snapshot from page records, keeping the first of any repeated id."""
        seen: set[str] = set()
        assets: list[AssetDescriptor] = []
        for record in records:
            asset = AssetDescriptor.from_record(record)
            if asset.id in seen:
                logger.debug("Skipping repeated %s id %s", kind, asset.id)
                continue
            seen.add(asset.id)
            assets.append(asset)
        return cls(kind=kind, assets=tuple(assets))

    @property
    def ids(self) -> set[str]:
        return {asset.id for asset in self.assets}

    def __len__(self) -> int:
        return len(self.assets)

    def __iter__(self) -> Iterator[AssetDescriptor]:
        return iter(self.assets)


def diff_assets(before: AssetSnapshot, after: AssetSnapshot) -> list[AssetDescriptor]:
    """Return assets in ``after`` whose id is absent from ``before``, in ``after`` order."""
    if before.kind != after.kind:
        raise ValueError(f"cannot diff {before.kind} snapshot against {after.kind} snapshot")
    known = before.ids
    return [asset for asset in after.assets if asset.id not in known]
