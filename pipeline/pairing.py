"""Pairing: match front photos with back photos by grid position.

Rules:

  - A front and a back pair when they sit at the same grid position.
  - A front without a back still yields a pair (back=None). Skipping the
    back scan is a supported workflow, so this alone is not a warning.
  - Backs without a matching front are dropped, reported in one warning.
  - Duplicate positions keep the first occurrence in input order, with a
    warning naming the position and how many photos were found there.
  - Pairs come out in canonical order (top-left, top-right, bottom-left,
    bottom-right), never in input order.

Pure function, no I/O.
"""
import logging

from models.photos import POSITION_ORDER, DetectedPhoto, GridPosition, PairingResult, PhotoPair

logger = logging.getLogger(__name__)


def pair_photos(fronts: list[DetectedPhoto], backs: list[DetectedPhoto]) -> PairingResult:
    """Pair fronts with backs. Raises ValueError if `fronts` is empty."""
    if not fronts:
        raise ValueError("Cannot pair photos: fronts must not be empty")

    warnings: list[str] = []

    fronts_by_position = _group_by_position(fronts)
    backs_by_position = _group_by_position(backs)

    warnings.extend(_duplicate_warnings("front", fronts_by_position))
    warnings.extend(_duplicate_warnings("back", backs_by_position))

    if len(fronts) != len(backs):
        warnings.append(f"Photo count mismatch: {len(fronts)} fronts vs {len(backs)} backs")

    pairs: list[PhotoPair] = []
    for position in POSITION_ORDER:
        fronts_here = fronts_by_position.get(position)
        if not fronts_here:
            continue
        backs_here = backs_by_position.get(position)
        pairs.append(PhotoPair(
            position=position,
            front=fronts_here[0],
            back=backs_here[0] if backs_here else None,
        ))

    extra_back_positions = [p for p in backs_by_position if p not in fronts_by_position]
    if extra_back_positions:
        warnings.append(
            "Extra back photos without matching fronts at positions: "
            + ", ".join(extra_back_positions)
        )

    matched = sum(1 for p in pairs if p.back is not None)
    logger.debug(
        "Pairing: %d pairs, %d with back, %d front only, %d extra backs ignored",
        len(pairs), matched, len(pairs) - matched, len(extra_back_positions),
    )

    return PairingResult(pairs=pairs, warnings=warnings)


def _group_by_position(photos: list[DetectedPhoto]) -> dict[GridPosition, list[DetectedPhoto]]:
    grouped: dict[GridPosition, list[DetectedPhoto]] = {}
    for photo in photos:
        grouped.setdefault(photo.position, []).append(photo)
    return grouped


def _duplicate_warnings(side: str, grouped: dict[GridPosition, list[DetectedPhoto]]) -> list[str]:
    return [
        f"Duplicate {side} photos found at position {position} "
        f"({len(photos)} photos). Using first occurrence."
        for position, photos in grouped.items()
        if len(photos) > 1
    ]
