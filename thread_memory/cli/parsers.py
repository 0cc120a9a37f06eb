from __future__ import annotations

import argparse


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Thread memory (conversation log + topic threads)")
    ap.add_argument("--dir", required=False, help="Storage directory; defaults to $MEMORY_DIR")
    ap.add_argument("--log-level", required=False, help="Override TM_LOG_LEVEL (DEBUG, INFO, WARNING, ...)")
    sub = ap.add_subparsers(dest="cmd", required=True)

    # Record one dialogue turn (log + thread routing)
    rt = sub.add_parser("record")
    rt.add_argument("--role", required=True, choices=["user", "assistant", "system"], help="Message role")
    rt.add_argument("--text", required=True, help="Full message text")
    rt.add_argument("--topic", required=False, help="Optional topic label, usually the speaker name")

    # Build generator context for a pending user utterance
    cx = sub.add_parser("context")
    cx.add_argument("--q", required=True, help="Pending user text")
    cx.add_argument("--max-recent", type=int, default=None)
    cx.add_argument("--max-from-thread", type=int, default=None)

    rc = sub.add_parser("recent")
    rc.add_argument("--n", type=int, default=8)

    se = sub.add_parser("search")
    se.add_argument("--q", default="", help="Case-insensitive substring")
    se.add_argument("--role", required=False)
    se.add_argument("--topic", required=False)
    se.add_argument("--limit", type=int, default=50)

    sub.add_parser("threads")

    ex = sub.add_parser("export")
    ex.add_argument("--out", required=False, help="Target file; defaults to memories_<timestamp>.jsonl in the storage dir")

    im = sub.add_parser("import")
    im.add_argument("--input", required=True, help="JSONL or JSON transcript")
    im.add_argument("--replace", action="store_true", help="Replace the current window instead of appending")

    cl = sub.add_parser("clear")
    cl.add_argument("--yes", action="store_true", help="Confirm wiping the log and all threads")

    sub.add_parser("flush")
    sub.add_parser("prune")

    return ap
