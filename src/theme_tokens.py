"""
RDS Theme Tokens – normalize, merge, diff and render theme variables.
Pure functions over Themes objects ({theme: {--css-var: value}}):
JSON parsing, conflict-checked merging, snapshot diffs and SCSS output.
"""
from __future__ import annotations

import datetime
import json
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

# ── Types ─────────────────────────────────────────────────────────────────────
ThemeVariables = Dict[str, str]
Themes = Dict[str, ThemeVariables]

VAR_PREFIX = "--"
UNQUOTE = "unquote("

_FLOAT_RE = re.compile(r"(-?)(\d+)(?:\.(\d+))?(?:e([+-]?\d+))?$")
_IMPORTANT_RE = re.compile(r"\s*!important\s*", re.IGNORECASE)
_TRAILING_COMMAS_RE = re.compile(r",+\s*$")
_GENERATED_RE = re.compile(r"Generated:\s*(.*)")
_LAST_UPDATED_RE = re.compile(r"Last Updated:\s*(.*)")
_FALLBACK_RE = re.compile(r"\$enableFallback:\s*(true|false)\s*!default;")


# ── Errors ────────────────────────────────────────────────────────────────────
class ThemeError(ValueError):
    """Base class for everything the token engine raises."""


class InvalidInputError(ThemeError):
    pass


class ThemeParseError(ThemeError):
    pass


class ThemeValidationError(ThemeError):
    pass


class TokenConflictError(ThemeError):
    def __init__(self, name: str, existing: str, incoming: str):
        self.name = name
        self.existing = existing
        self.incoming = incoming
        super().__init__(
            f"Duplicate CSS variable name with different values detected: "
            f"{name} ({existing} vs {incoming})"
        )


# ── Data models ───────────────────────────────────────────────────────────────
@dataclass
class TokenChange:
    name: str
    old_value: str
    new_value: str


@dataclass
class ThemeDiff:
    """Added/removed/changed variables of one theme between two snapshots."""
    theme: str
    added: ThemeVariables = field(default_factory=dict)
    removed: ThemeVariables = field(default_factory=dict)
    changed: List[TokenChange] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.changed)


@dataclass
class StylesheetMeta:
    enable_fallback: bool = False
    generated_date: str = ""
    last_updated_date: str = ""
    change_log_text: str = ""
    diff_text: str = ""
    scss_map: str = ""


# ── Utility helpers ───────────────────────────────────────────────────────────
def now_iso() -> str:
    """Current UTC time, millisecond precision, e.g. 2025-01-31T09:15:02.123Z"""
    now = datetime.datetime.now(datetime.timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def now_iso_seconds() -> str:
    return re.sub(r"\..*Z$", "Z", now_iso())


def iso_filename_timestamp() -> str:
    """Seconds-precision timestamp safe for file names (no colons or dots)."""
    return re.sub(r"Z$", "", re.sub(r"[:.]", "-", now_iso_seconds()))


def _is_themes_like(themes: Any) -> bool:
    return isinstance(themes, dict) and len(themes) > 0


def _number_to_str(x: float) -> str:
    """
    Format a float per the ECMAScript Number::toString rules: shortest round-trip
    digits, no `.0` on integral values, plain notation for magnitudes in
    [1e-6, 1e21) and `1e+21` / `1e-7` style outside that range.
    """
    if math.isnan(x):
        return "NaN"
    if math.isinf(x):
        return "Infinity" if x > 0 else "-Infinity"
    sign, int_part, frac_part, exp = _FLOAT_RE.match(repr(x)).groups()
    digits = int_part + (frac_part or "")
    point = len(int_part) + int(exp or 0)
    stripped = digits.lstrip("0")
    point -= len(digits) - len(stripped)
    digits = stripped.rstrip("0")
    if not digits:
        return "0"
    k, n = len(digits), point
    if k <= n <= 21:
        out = digits + "0" * (n - k)
    elif 0 < n <= 21:
        out = f"{digits[:n]}.{digits[n:]}"
    elif -6 < n <= 0:
        out = "0." + "0" * -n + digits
    else:
        e = n - 1
        mantissa = digits[0] + (f".{digits[1:]}" if k > 1 else "")
        out = f"{mantissa}e{'+' if e >= 0 else '-'}{abs(e)}"
    return sign + out


def _indent(text: str, prefix: str = "  ") -> str:
    if not text:
        return ""
    return "\n".join(f"{prefix}{line}" for line in text.split("\n"))


# ── Normalizer ────────────────────────────────────────────────────────────────
def normalize_name(name: Any) -> str:
    """Ensure a CSS variable name starts with `--`."""
    if name is None or name == "" or not isinstance(name, str):
        raise InvalidInputError("CSS variable name must not be empty or null")
    return name if name.startswith(VAR_PREFIX) else f"{VAR_PREFIX}{name}"


def normalize_value(raw: Any) -> str:
    """
    Clean a CSS value: drop `!important`, trim, strip trailing commas and
    wrap comma-separated values in unquote("...") so Sass keeps them whole.
    Already-wrapped values are returned as they are.
    """
    if raw is None or (isinstance(raw, str) and raw == ""):
        raise InvalidInputError("CSS variable value must not be empty or null")

    if isinstance(raw, str):
        value = raw
    elif isinstance(raw, float):
        value = _number_to_str(raw)
    else:
        value = str(raw)

    value = _IMPORTANT_RE.sub("", value)
    value = _TRAILING_COMMAS_RE.sub("", value.strip())
    if "," in value and not value.startswith(UNQUOTE):
        escaped = value.replace('"', '\\"')
        value = f'{UNQUOTE}"{escaped}")'
    return value


# ── Merger ────────────────────────────────────────────────────────────────────
def merge_into(target: ThemeVariables, source: Dict[str, Any]) -> None:
    """
    Merge `source` into `target` in place.

    Names and values are normalized on the way in. A name that is already
    present with the same value is a no-op; with a different value it raises
    TokenConflictError. A raw (un-prefixed) name left in `target` is replaced
    by its canonical form when the values agree.
    """
    for key, raw_value in source.items():
        name = normalize_name(key)
        value = normalize_value(raw_value)

        if name in target:
            if target[name] != value:
                raise TokenConflictError(name, target[name], value)
            continue

        if key in target:
            if target[key] != value:
                raise TokenConflictError(name, target[key], value)
            del target[key]
            target[name] = value
            continue

        target[name] = value


def merge_theme_sets(objects: Sequence[Dict[str, Any]]) -> Themes:
    """Merge several Themes objects into one; tokens sorted per theme."""
    if not objects:
        raise InvalidInputError("No theme objects provided for merging.")
    for obj in objects:
        if not _is_themes_like(obj):
            raise InvalidInputError("Theme object in merge_theme_sets is empty or invalid.")

    out: Themes = {}
    for obj in objects:
        for theme, variables in obj.items():
            merge_into(out.setdefault(theme, {}), variables)

    for theme in out:
        out[theme] = dict(sorted(out[theme].items()))
    return out


# ── Parser ────────────────────────────────────────────────────────────────────
def _reject_constant(name: str) -> Any:
    # NaN/Infinity are accepted by the json module but are not JSON
    raise ThemeParseError(f"Themes JSON could not be parsed: invalid constant {name}")


def parse_themes(text: str) -> Themes:
    """Parse a Themes JSON document, validating shape and normalizing entries."""
    try:
        data = json.loads(text, parse_constant=_reject_constant)
    except (json.JSONDecodeError, TypeError) as e:
        raise ThemeParseError(f"Themes JSON could not be parsed: {e}") from e

    if not isinstance(data, dict):
        raise ThemeValidationError("Themes JSON must be an object.")

    out: Themes = {}
    for theme, variables in data.items():
        if not isinstance(variables, dict):
            raise ThemeValidationError(f'Theme "{theme}" must be an object.')
        parsed: ThemeVariables = {}
        for key, value in variables.items():
            if not isinstance(key, str) or key == "":
                raise ThemeValidationError(
                    f'Theme variable key in theme "{theme}" must be a non-empty string.'
                )
            # bool is an int subclass, but JSON true/false are not numbers
            if isinstance(value, bool) or not isinstance(value, (str, int, float)):
                raise ThemeValidationError(
                    f'Theme variable value for key "{key}" in theme "{theme}" '
                    f"must be a string or number."
                )
            parsed[normalize_name(key)] = normalize_value(value)
        out[theme] = parsed
    return out


# ── Differ ────────────────────────────────────────────────────────────────────
def diff_themes(previous: Optional[Themes] = None, next: Optional[Themes] = None) -> List[ThemeDiff]:
    """Per-theme added/removed/changed variables, sorted by theme name."""
    previous = previous or {}
    next = next or {}

    result: List[ThemeDiff] = []
    for theme in sorted(set(previous) | set(next)):
        before = previous.get(theme) or {}
        after = next.get(theme) or {}
        entry = ThemeDiff(theme=theme)
        for name in sorted(set(before) | set(after)):
            if name not in before:
                entry.added[name] = after[name]
            elif name not in after:
                entry.removed[name] = before[name]
            elif before[name] != after[name]:
                entry.changed.append(TokenChange(name, before[name], after[name]))
        result.append(entry)
    return result


def totals_from_diff(diffs: Sequence[ThemeDiff]) -> Dict[str, int]:
    if not isinstance(diffs, (list, tuple)):
        raise InvalidInputError("Input to totals_from_diff must be a list of ThemeDiffs.")
    totals = {"added": 0, "removed": 0, "changed": 0}
    for d in diffs:
        totals["added"] += len(d.added)
        totals["removed"] += len(d.removed)
        totals["changed"] += len(d.changed)
    return totals


# ── Renderer ──────────────────────────────────────────────────────────────────
def format_diff(diffs: Sequence[ThemeDiff]) -> str:
    """Human-readable report of theme diffs with a closing summary line."""
    sep = ", \n"
    lines: List[str] = []
    for d in diffs:
        added, removed = list(d.added), list(d.removed)
        lines.append(f"[{d.theme}] +{len(added)}  -{len(removed)}  ~{len(d.changed)}")
        if added:
            lines.append("  Added   : " + sep.join(added))
        if removed:
            lines.append("  Removed : " + sep.join(removed))
        if d.changed:
            lines.append("  Changed :")
            for ch in d.changed:
                lines.append(f"    {ch.name} : {ch.old_value} -> {ch.new_value}")
        lines.append("")

    totals = totals_from_diff(list(diffs))
    if not any(totals.values()):
        lines.append("No token changes detected.")
    else:
        lines.append(f"Summary: +{totals['added']}  -{totals['removed']}  ~{totals['changed']}")
    return "\n".join(lines)


def format_first_run_summary(themes: Themes) -> str:
    """Variable counts per theme, for the change log of a first generation."""
    if not _is_themes_like(themes):
        raise InvalidInputError("No themes provided for initial count summary.")
    pad = max(len(name) for name in themes)
    lines = ["Initial creation - theme variables detected:"]
    total = 0
    for name, variables in themes.items():
        total += len(variables)
        lines.append(f"  {name:<{pad}} : {len(variables)} variables")
    lines.append(f"Total: {total} variables initialised")
    return "\n".join(lines)


def render_map(themes: Themes) -> str:
    """
    Build the SCSS `$themes` map, themes and variables sorted by name:

        $themes: (
          dark: (
            --color-primary: #123456,
            --color-secondary: #abcdef
          )
        ) !default;
    """
    if not _is_themes_like(themes):
        raise InvalidInputError("No themes provided for SCSS map generation.")
    blocks = []
    for theme in sorted(themes):
        entries = ",\n    ".join(f"{name}: {value}" for name, value in sorted(themes[theme].items()))
        blocks.append(f"{theme}: (\n    {entries}\n  )")
    return "$themes: (\n  " + ",\n  ".join(blocks) + "\n) !default;"


# ── Stylesheet assembler ──────────────────────────────────────────────────────
SCSS_HELPERS = """\
// Compile-time: return a token's value from a theme
@function theme-var($theme, $token) {
    @return map-get(map-get($themes, $theme), $token);
}

// Compile-time: apply a theme token to a property
@mixin theme-prop($property, $theme, $token) {
    #{$property}: theme-var($theme, $token);
}

/* Runtime: function returning var(--token, fallback)
     - If $enableFallback is false, returns var(--token) with no fallback
     - If true, auto-picks fallback from $themes[$theme][$token] (default "default")
     - If token not found and $fallback provided, uses that
*/
@function applyvar($token, $theme: default, $fallback: null) {
    @if $enableFallback == false {
        @return var(#{$token});
    }
    @if map-has-key($themes, $theme) and map-has-key(map-get($themes, $theme), $token) {
        @return var(#{$token}, #{map-get(map-get($themes, $theme), $token)});
    } @else if $fallback != null {
        @return var(#{$token}, #{$fallback});
    } @else {
        @return var(#{$token});
    }
}

// Emit CSS variables for all themes under [data-theme="..."]
@each $theme, $vars in $themes {
    :root[data-theme="#{$theme}"] {
        @each $name, $value in $vars {
            #{$name}: #{$value};
        }
    }
}"""


def assemble(themes: Themes, meta: StylesheetMeta) -> str:
    """Complete SCSS document: header comment, fallback flag, map and helpers."""
    scss_map = meta.scss_map or render_map(themes)
    fallback = "true" if meta.enable_fallback else "false"
    body = f"""/*
    AUTO-GENERATED BY SCRIPT - DO NOT EDIT.
    Generated: {meta.generated_date}
    Last Updated: {meta.last_updated_date}

    Change Log:
{_indent(meta.change_log_text)}

    Diff:
{_indent(meta.diff_text)}
*/

$enableFallback: {fallback} !default;

// SCSS Map with all RDS Css Variables
{scss_map}

{SCSS_HELPERS}"""
    return body.strip() + "\n"


# ── Snapshot extractor ────────────────────────────────────────────────────────
def extract_generated_date(scss_content: Optional[str]) -> str:
    if not scss_content:
        return now_iso()
    match = _GENERATED_RE.search(scss_content)
    return match.group(1).strip() if match else now_iso()


def extract_last_updated_date(scss_content: Optional[str], has_changes: bool) -> str:
    """Keep the previous `Last Updated:` stamp unless something changed."""
    if has_changes or not scss_content:
        return now_iso()
    match = _LAST_UPDATED_RE.search(scss_content)
    return match.group(1).strip() if match else now_iso()


def extract_preserved_fallback(scss_content: Optional[str], default: bool) -> bool:
    if not scss_content:
        return default
    match = _FALLBACK_RE.search(scss_content)
    return match.group(1) == "true" if match else default
