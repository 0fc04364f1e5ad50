"""Asset selection for wineport release catalogs."""

import logging
from typing import Iterable, Iterator, Optional

from .common import AssetRecord, MatchCriteria, ReleaseRecord

logger = logging.getLogger(__name__)


def asset_matches(asset: AssetRecord, criteria: MatchCriteria) -> bool:
    """Check whether an asset filename satisfies every token of the criteria."""
    name = asset.name
    if criteria.arch not in name:
        return False
    if criteria.variant and criteria.variant not in name:
        return False
    return name.endswith(criteria.suffix)


def select_asset(
    release: ReleaseRecord, criteria: MatchCriteria
) -> Optional[AssetRecord]:
    """
    Select the asset of a release that matches the given criteria.

    Assets are scanned in catalog order and the first qualifying one wins;
    catalogs list their canonical build before debug or alternate builds.

    Args:
        release: Release whose assets are scanned
        criteria: Architecture token, optional variant token, filename suffix

    Returns:
        The first matching asset, or None when the release has no
        compatible asset (the release is skipped, not substituted)
    """
    for asset in release.assets:
        if asset_matches(asset, criteria):
            logger.debug(f"Selected asset {asset.name} for {release.tag}")
            return asset

    logger.debug(f"No asset in {release.tag} matches {criteria}")
    return None


def match_releases(
    releases: Iterable[ReleaseRecord], criteria: MatchCriteria
) -> Iterator[tuple[ReleaseRecord, Optional[AssetRecord]]]:
    """Pair each release with its selected asset (None when incompatible)."""
    for release in releases:
        yield release, select_asset(release, criteria)
