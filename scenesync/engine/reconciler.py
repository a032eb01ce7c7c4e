"""
Reconciler — merge freshly fetched placeholders with the persisted slots.

merge() is a pure function of its inputs:

  1. not hydrated          → existing slots unchanged (the store has not
                              delivered its persisted state yet; a default
                              merge written back now would erase it)
  2. no fresh placeholders → existing slots unchanged (a transient empty
                              fetch never destroys slots)
  3. placeholders sorted by (y, x), numbered from 1
  4. per number: selection, genericType, mediaData, fit and unknown keys are
     carried over; placeholder rect and base size are always overwritten
  5. slots whose number has no placeholder any more are dropped
"""
from __future__ import annotations

import logging

from scenesync.schemas.layout import Placeholder
from scenesync.schemas.slot import FitMode, Slot, SourceProps

logger = logging.getLogger(__name__)


def order_placeholders(placeholders: list[Placeholder]) -> list[Placeholder]:
    """Top-to-bottom, then left-to-right.  Stable for equal positions."""
    return sorted(placeholders, key=lambda p: (p.rect.y, p.rect.x))


def default_slots(placeholders: list[Placeholder]) -> list[Slot]:
    """One unset slot per placeholder, numbered in display order."""
    return merge([], placeholders, hydrated=True)


def merge(
    existing: list[Slot],
    fresh: list[Placeholder],
    hydrated: bool,
) -> list[Slot]:
    if not hydrated:
        logger.debug("Deferring scene merge until persisted slots are loaded")
        return existing
    if not fresh:
        logger.debug("No placeholders to merge, keeping %d existing slot(s)", len(existing))
        return existing

    by_number = {slot.slot_number: slot for slot in existing}
    merged: list[Slot] = []
    for number, placeholder in enumerate(order_placeholders(fresh), start=1):
        merged.append(_merge_one(number, placeholder, by_number.get(number)))

    dropped = sorted(set(by_number) - {s.slot_number for s in merged})
    if dropped:
        logger.info("Scene no longer has placeholder(s) for slot(s) %s; dropping", dropped)
    return merged


def _merge_one(number: int, placeholder: Placeholder, previous: Slot | None) -> Slot:
    geometry = {
        "placeholder": placeholder.rect.model_copy(),
        "base": placeholder.base_resolution.model_copy(),
    }

    if previous is None:
        return Slot(
            slot_number=number,
            replaceable=placeholder.is_placeholder,
            source_props=SourceProps(fit=FitMode.CONTAIN, **geometry),
        )

    # model_copy keeps selected_source, generic_type, media_data and any
    # extra keys exactly as they were.
    return previous.model_copy(
        update={
            "slot_number": number,
            "replaceable": placeholder.is_placeholder,
            "source_props": previous.source_props.model_copy(update=geometry),
        },
        deep=True,
    )


def slots_equal(a: list[Slot], b: list[Slot]) -> bool:
    return [s.to_wire() for s in a] == [s.to_wire() for s in b]
