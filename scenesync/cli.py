#!/usr/bin/env python3
"""
scenesync — command-line access to the scene slot engine.

Subcommands
-----------
  scenesync layout SCENE        Fetch and print a scene's placeholder layout
  scenesync plan ITEM_ID        Reconcile an item's slots and print the plan (no mixer changes)
  scenesync apply ITEM_ID       Reconcile and push the item's slots to the live mixer
  scenesync validate ITEM_ID    Clear selections of inputs that no longer exist
  scenesync overlay ITEM_ID     Write the scene preview with slot labels as PNG

Every command talks to the rundown backend at --api-url (or
$SCENESYNC_API_URL, or the config file).  Results are printed as JSON.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from scenesync.engine.coords import RenderedSize, label_positions
from scenesync.engine.overlay import render_overlay
from scenesync.engine.session import SceneEditorSession
from scenesync.schemas.config import SyncConfig, load_config
from scenesync.schemas.plan import ScenePlan

logger = logging.getLogger(__name__)


# =============================================================================
# Commands
# =============================================================================

def cmd_layout(
    config: SyncConfig,
    scene_name: str,
    retries: int,
    silent: bool = False,
) -> int:
    """Print the scene layout; exit 1 when only a stale layout could be returned."""
    session = SceneEditorSession.from_config(config)
    layout = session.fetcher.fetch_layout(
        scene_name, silent=silent, retries=retries, preview_width=config.preview_width,
    )
    # The preview data URL is large and not useful on a terminal.
    print(layout.model_dump_json(indent=2, exclude={"preview": {"data_url"}}))
    return 1 if layout.stale else 0


def cmd_plan(config: SyncConfig, item_id: int) -> int:
    session = SceneEditorSession.from_config(config)
    try:
        session.open(item_id)
    finally:
        session.close()
    plan = ScenePlan(
        item_id=item_id,
        scene_name=session.scene_name,
        placeholders=session.layout.placeholders,
        slots=session.store.slots,
    )
    print(plan.model_dump_json(indent=2, by_alias=True))
    return 0


def cmd_apply(config: SyncConfig, item_id: int) -> int:
    session = SceneEditorSession.from_config(config)
    try:
        session.open(item_id)
        report = session.arm(item_id)
    finally:
        session.close()
    if report is None:
        print(f"ERROR: item {item_id} could not be armed", file=sys.stderr)
        return 1
    print(report.model_dump_json(indent=2))
    return 1 if report.failed else 0


def cmd_validate(config: SyncConfig, item_id: int) -> int:
    session = SceneEditorSession.from_config(config)
    try:
        session.open(item_id)
        missing = session.validate_sources()
    finally:
        session.close()
    print(json.dumps(
        [{"slot": e.slot_number, "source": e.source_name} for e in missing],
        indent=2,
    ))
    return 0


def cmd_overlay(
    config: SyncConfig,
    item_id: int,
    out_path: Path,
    font_path: Optional[str] = None,
) -> int:
    session = SceneEditorSession.from_config(config)
    try:
        session.open(item_id)
    finally:
        session.close()

    preview = session.layout.preview
    if preview is None or not preview.width:
        print(f"ERROR: no preview available for scene {session.scene_name!r}", file=sys.stderr)
        return 1

    labels = label_positions(
        session.layout.placeholders,
        session.store.slots,
        session.layout.base_resolution,
        RenderedSize(preview.width, preview.height),
    )
    render_overlay(preview, labels, out_path, font_path=font_path)
    print(str(out_path))
    return 0


# =============================================================================
# CLI entry point
# =============================================================================

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="scenesync",
        description="scenesync — keep rundown slots in step with live mixer scenes",
    )
    parser.add_argument(
        "--config", type=Path, default=None, metavar="PATH",
        help="JSON file with SyncConfig overrides",
    )
    parser.add_argument(
        "--api-url", default=None, metavar="URL",
        help="Rundown backend base URL (overrides config and $SCENESYNC_API_URL)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    # ── scenesync layout ─────────────────────────────────────────────────────
    layout_parser = sub.add_parser("layout", help="Fetch a scene's placeholder layout")
    layout_parser.add_argument("scene", help="Scene name")
    layout_parser.add_argument(
        "--retries", type=int, default=3,
        help="Additional attempts after the first failure (default: 3)",
    )
    layout_parser.add_argument(
        "--silent", action="store_true",
        help="Do not report a failure after retries are exhausted",
    )

    # ── scenesync plan / apply / validate ────────────────────────────────────
    for name, help_text in (
        ("plan", "Reconcile slots and print the plan without touching the mixer"),
        ("apply", "Reconcile slots and push them to the live mixer"),
        ("validate", "Clear selections of inputs that no longer exist"),
    ):
        cmd_parser = sub.add_parser(name, help=help_text)
        cmd_parser.add_argument("item_id", type=int, help="Rundown item id")

    # ── scenesync overlay ────────────────────────────────────────────────────
    overlay_parser = sub.add_parser("overlay", help="Write the preview with slot labels as PNG")
    overlay_parser.add_argument("item_id", type=int, help="Rundown item id")
    overlay_parser.add_argument(
        "--out", type=Path, required=True, metavar="PATH",
        help="Output PNG path",
    )
    overlay_parser.add_argument(
        "--font", default=None, metavar="PATH",
        help="TrueType font for the labels (default: Pillow built-in)",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> None:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(args.config)
        if args.api_url:
            config = config.model_copy(update={"api_url": args.api_url})

        if args.command == "layout":
            code = cmd_layout(config, args.scene, args.retries, silent=args.silent)
        elif args.command == "plan":
            code = cmd_plan(config, args.item_id)
        elif args.command == "apply":
            code = cmd_apply(config, args.item_id)
        elif args.command == "validate":
            code = cmd_validate(config, args.item_id)
        else:
            code = cmd_overlay(config, args.item_id, args.out, font_path=args.font)
    except Exception as exc:  # noqa: BLE001
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"ERROR: {exc}", file=sys.stderr)
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
