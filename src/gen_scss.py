#!/usr/bin/env python3
"""
RDS Theme Variable Generator
Turns the JSON theme token files in an input directory into one SCSS file
($themes map + helpers), keeps a JSON snapshot for change tracking and
writes a per-run log.
"""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from theme_fs import (
    append_file, ensure_dir, list_files_with_extension, read_file, rename, write_file,
)
from theme_tokens import (
    InvalidInputError, StylesheetMeta, ThemeError, Themes,
    assemble, diff_themes, extract_generated_date, extract_last_updated_date,
    extract_preserved_fallback, format_diff, format_first_run_summary,
    iso_filename_timestamp, merge_theme_sets, parse_themes, render_map,
    totals_from_diff,
)

log = logging.getLogger(__name__)

# ── Constants ─────────────────────────────────────────────────────────────────
OUTFILE_BASE = "rds-theme-variables"
LOG_NAME = "RDS-GenScss-Log"
_TRUTHY = ("1", "true", "yes", "on")


# ── Configuration ─────────────────────────────────────────────────────────────
@dataclass
class GeneratorConfig:
    input_dir: Path = Path("json")
    output_dir: Path = Path("dist")
    log_dir: Path = Path("logs")
    outfile_base: str = OUTFILE_BASE
    enable_fallback_default: bool = False

    @property
    def theme_source_root(self) -> Path:
        return self.output_dir / "MRDS_ThemeSource"

    @property
    def scss_dir(self) -> Path:
        return self.theme_source_root / "mrds" / "web" / "rds-scss"

    @property
    def scss_file(self) -> Path:
        return self.scss_dir / f"_{self.outfile_base}.scss"

    @property
    def snapshot_file(self) -> Path:
        return self.scss_dir / f"{self.outfile_base}.json"

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "GeneratorConfig":
        env = os.environ if environ is None else environ
        cfg = cls()
        return cfg.with_overrides(
            input_dir=env.get("THEME_INPUT_DIR"),
            output_dir=env.get("THEME_OUTPUT_DIR"),
            log_dir=env.get("THEME_LOG_DIR"),
            enable_fallback_default=(
                env["THEME_ENABLE_FALLBACK"].strip().lower() in _TRUTHY
                if env.get("THEME_ENABLE_FALLBACK") else None
            ),
        )

    def with_overrides(self, **overrides: Any) -> "GeneratorConfig":
        """Copy with every non-None override applied; directory values become Paths."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        for key in ("input_dir", "output_dir", "log_dir"):
            if key in changes:
                changes[key] = Path(changes[key])
        return replace(self, **changes)


# ── Run log ───────────────────────────────────────────────────────────────────
class RunLog:
    """Buffers the messages of one generator run and writes them to a log file."""

    def __init__(self, log_dir: Path, name: str = LOG_NAME):
        self.log_dir = ensure_dir(log_dir)
        self.file_name = f"{name}-{iso_filename_timestamp()}.log"
        self._buffer: List[str] = []
        self._file_log = logging.getLogger(f"{__name__}.run.{self.path}")
        self._file_log.setLevel(logging.INFO)
        self._file_log.propagate = False
        if not self._file_log.handlers:
            handler = logging.FileHandler(self.path, encoding="utf-8", delay=True)
            handler.setFormatter(logging.Formatter("%(message)s"))
            self._file_log.addHandler(handler)

    @property
    def path(self) -> Path:
        return self.log_dir / self.file_name

    @property
    def lines(self) -> List[str]:
        return list(self._buffer)

    def push(self, message: str) -> None:
        self._buffer.append(message)
        log.debug(message)

    def log(self, message: str) -> None:
        """Write a single message to the log file right away."""
        self._file_log.info(message)

    def write(self) -> Path:
        """Flush the buffer to the log file and clear it."""
        path = append_file(self.path, "\n".join(self._buffer))
        self._buffer = []
        return path

    def close(self) -> None:
        for handler in list(self._file_log.handlers):
            handler.close()
            self._file_log.removeHandler(handler)


def run_with_error_logging(fn: Callable[[], Any], run_log: RunLog, console: bool = True) -> Any:
    """Run `fn`; on any error record it, flush the log and exit with status 1."""
    try:
        return fn()
    except Exception as e:
        message = f"❌ Fatal error: {e}"
        run_log.push(message)
        if console:
            print(message, file=sys.stderr)
        run_log.write()
        sys.exit(1)


# ── Generation ────────────────────────────────────────────────────────────────
@dataclass
class GenerationResult:
    scss_file: Path
    snapshot_file: Path
    first_run: bool
    has_changes: bool
    totals: Dict[str, int] = field(default_factory=dict)
    diff_text: str = ""


def load_and_merge_jsons(directory: Path) -> Themes:
    """Parse every .json file in `directory` and merge them into one Themes object."""
    files = list_files_with_extension(directory, ".json")
    if not files:
        raise InvalidInputError(f"No JSON files found in: {directory}")
    objects = []
    for name in files:
        text = read_file(Path(directory) / name)
        if text and text.strip():
            objects.append(parse_themes(text))
    return merge_theme_sets(objects)


def _backup_snapshot(config: GeneratorConfig, run_log: RunLog) -> None:
    if not config.snapshot_file.exists():
        return
    backup = config.snapshot_file.with_name(config.snapshot_file.name + ".old")
    try:
        rename(config.snapshot_file, backup)
        run_log.push(f"🗂️ Previous snapshot backed up as: {backup}")
    except OSError as e:
        log.warning("snapshot backup failed: %s", e)
        run_log.log(f"❌ Failed to backup previous snapshot: {e}")


def generate(config: GeneratorConfig, run_log: RunLog) -> GenerationResult:
    ensure_dir(config.scss_dir)

    run_log.push("🛠️  RDS Theme Variable Generator")
    run_log.push(f"   Input JSON dir  : {config.input_dir}")
    run_log.push(f"   Output SCSS file: {config.scss_file}")
    run_log.push(f"   Log dir         : {config.log_dir}")

    themes = load_and_merge_jsons(config.input_dir)

    previous_text = read_file(config.snapshot_file, allow_missing=True)
    previous = parse_themes(previous_text) if previous_text else None
    if previous is not None:
        run_log.push(f"   Previous snapshot: {config.snapshot_file}")
    else:
        run_log.push("   No previous snapshot found.")

    existing_scss = read_file(config.scss_file, allow_missing=True)
    first_run = previous is None or existing_scss is None
    if first_run:
        run_log.push(f"   First run       : {first_run}")

    diffs = diff_themes(previous, themes) if previous is not None else []
    totals = totals_from_diff(diffs)
    if first_run:
        change_log_text = format_first_run_summary(themes)
        has_changes = True
    else:
        change_log_text = ""
        has_changes = sum(totals.values()) > 0

    diff_text = format_diff(diffs)
    run_log.push("\nDetailed diff:")
    run_log.push(diff_text)

    generated_date = extract_generated_date(existing_scss)
    last_updated_date = (
        generated_date if existing_scss is None
        else extract_last_updated_date(existing_scss, has_changes)
    )
    enable_fallback = extract_preserved_fallback(existing_scss, config.enable_fallback_default)

    _backup_snapshot(config, run_log)
    write_file(config.snapshot_file, json.dumps(themes, indent=2, ensure_ascii=False))

    meta = StylesheetMeta(
        enable_fallback=enable_fallback,
        generated_date=generated_date,
        last_updated_date=last_updated_date,
        change_log_text=change_log_text,
        diff_text=diff_text,
        scss_map=render_map(themes),
    )
    write_file(config.scss_file, assemble(themes, meta))
    run_log.push(f"✅ Generated: {config.scss_file}")
    run_log.write()

    return GenerationResult(
        scss_file=config.scss_file,
        snapshot_file=config.snapshot_file,
        first_run=first_run,
        has_changes=has_changes,
        totals=totals,
        diff_text=diff_text,
    )


# ── CLI ───────────────────────────────────────────────────────────────────────
def _load_themes_file(path: str) -> Themes:
    text = read_file(path)
    return parse_themes(text)


def main(argv: Optional[List[str]] = None) -> None:
    ap = argparse.ArgumentParser(
        prog="theme-scss",
        description="RDS Theme Variable Generator – JSON theme tokens to SCSS",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
examples:
  theme-scss generate
  theme-scss generate --input tokens/ --output build/ --enable-fallback
  theme-scss generate --quiet
  theme-scss diff old-snapshot.json new-snapshot.json
  theme-scss diff old-snapshot.json new-snapshot.json --json
  theme-scss map json/components.json json/colors.json
""",
    )
    ap.add_argument("-v", "--verbose", action="store_true", help="Echo the run log to the console")
    sub = ap.add_subparsers(dest="cmd", required=True)

    p_gen = sub.add_parser("generate", help="Generate the SCSS file from the JSON input dir")
    p_gen.add_argument("--input",   default=None, dest="input_dir")
    p_gen.add_argument("--output",  default=None, dest="output_dir")
    p_gen.add_argument("--log-dir", default=None, dest="log_dir")
    p_gen.add_argument("--enable-fallback", action="store_true", default=None,
                       dest="enable_fallback_default",
                       help="$enableFallback for a new SCSS file (an existing file keeps its value)")
    p_gen.add_argument("--no-fallback", action="store_false",
                       dest="enable_fallback_default")
    p_gen.add_argument("-q", "--quiet", action="store_true",
                       help="No console output; errors still go to the run log")

    p_diff = sub.add_parser("diff", help="Diff two Themes JSON files")
    p_diff.add_argument("previous")
    p_diff.add_argument("next")
    p_diff.add_argument("--json", action="store_true", help="Print the diff as JSON")

    p_map = sub.add_parser("map", help="Merge Themes JSON files and print the SCSS map")
    p_map.add_argument("paths", nargs="+")

    args = ap.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(message)s",
    )

    if args.cmd == "generate":
        config = GeneratorConfig.from_env().with_overrides(
            input_dir=args.input_dir,
            output_dir=args.output_dir,
            log_dir=args.log_dir,
            enable_fallback_default=args.enable_fallback_default,
        )
        run_log = RunLog(config.log_dir)
        try:
            result = run_with_error_logging(
                lambda: generate(config, run_log), run_log, console=not args.quiet,
            )
        finally:
            run_log.close()
        if not args.quiet:
            t = result.totals
            state = "first run" if result.first_run else f"+{t['added']} -{t['removed']} ~{t['changed']}"
            print(f"✅ generated {result.scss_file} ({state})")

    elif args.cmd == "diff":
        try:
            diffs = diff_themes(_load_themes_file(args.previous), _load_themes_file(args.next))
        except (ThemeError, OSError) as e:
            sys.exit(f"❌ {e}")
        if args.json:
            print(json.dumps({
                "summary": totals_from_diff(diffs),
                "themes": [asdict(d) for d in diffs],
            }, indent=2))
        else:
            print(format_diff(diffs))

    elif args.cmd == "map":
        try:
            themes = merge_theme_sets([_load_themes_file(p) for p in args.paths])
        except (ThemeError, OSError) as e:
            sys.exit(f"❌ {e}")
        print(render_map(themes))


if __name__ == "__main__":
    main()
