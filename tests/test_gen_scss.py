"""Tests for gen_scss.py and theme_fs.py"""
import sys, os, json
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))
import pytest
from gen_scss import (
    GeneratorConfig, RunLog, GenerationResult,
    generate, load_and_merge_jsons, run_with_error_logging, main,
)
from theme_fs import list_files_with_extension, read_file, write_file, rename, ensure_dir
from theme_tokens import InvalidInputError, TokenConflictError, parse_themes


COMPONENTS = {
    "default": {"action-bar-row-gap": "24px", "badge-color": "hsl(13, 100%, 44%)"},
    "dark":    {"action-bar-row-gap": "24px", "badge-color": "hsl(13, 80%, 30%)"},
}
COLORS = {
    "default": {"--color-primary": "#123456"},
    "dark":    {"--color-primary": "#abcdef"},
}


@pytest.fixture
def config(tmp_path):
    input_dir = tmp_path / "json"
    input_dir.mkdir()
    (input_dir / "components.json").write_text(json.dumps(COMPONENTS))
    (input_dir / "colors.json").write_text(json.dumps(COLORS))
    return GeneratorConfig(
        input_dir=input_dir,
        output_dir=tmp_path / "dist",
        log_dir=tmp_path / "logs",
    )

@pytest.fixture
def run_log(config):
    return RunLog(config.log_dir)


# ── File-system helpers ───────────────────────────────────────────────────────
def test_list_files_with_extension(tmp_path):
    for name in ("b.json", "a.JSON", "c.txt"):
        (tmp_path / name).write_text("{}")
    (tmp_path / "sub.json").mkdir()
    assert list_files_with_extension(tmp_path, ".json") == ["a.JSON", "b.json"]

def test_list_files_missing_dir_raises(tmp_path):
    with pytest.raises(OSError):
        list_files_with_extension(tmp_path / "nope", ".json")

def test_read_file_missing(tmp_path):
    assert read_file(tmp_path / "nope.txt", allow_missing=True) is None
    with pytest.raises(FileNotFoundError):
        read_file(tmp_path / "nope.txt")

def test_write_file_creates_parents(tmp_path):
    p = write_file(tmp_path / "a" / "b" / "c.txt", "hello")
    assert p.read_text() == "hello"

def test_rename_overwrites(tmp_path):
    src, dst = tmp_path / "s.json", tmp_path / "s.json.old"
    src.write_text("new"); dst.write_text("old")
    rename(src, dst)
    assert dst.read_text() == "new" and not src.exists()


# ── Configuration ─────────────────────────────────────────────────────────────
def test_config_paths():
    cfg = GeneratorConfig(output_dir="out")
    cfg = cfg.with_overrides(output_dir="out")
    assert cfg.scss_file.as_posix() == "out/MRDS_ThemeSource/mrds/web/rds-scss/_rds-theme-variables.scss"
    assert cfg.snapshot_file.name == "rds-theme-variables.json"

def test_config_from_env():
    cfg = GeneratorConfig.from_env({
        "THEME_INPUT_DIR": "tokens", "THEME_ENABLE_FALLBACK": "yes",
    })
    assert cfg.input_dir.as_posix() == "tokens"
    assert cfg.enable_fallback_default is True
    assert cfg.log_dir.as_posix() == "logs"

def test_config_overrides_skip_none():
    cfg = GeneratorConfig(enable_fallback_default=True).with_overrides(
        input_dir=None, enable_fallback_default=None,
    )
    assert cfg.enable_fallback_default is True
    assert cfg.input_dir.as_posix() == "json"


# ── Run log ───────────────────────────────────────────────────────────────────
def test_run_log_write_and_clear(tmp_path):
    rl = RunLog(tmp_path / "logs", name="test-log")
    assert rl.file_name.startswith("test-log-") and rl.file_name.endswith(".log")
    rl.push("one"); rl.push("two")
    path = rl.write()
    assert path.read_text() == "one\ntwo"
    assert rl.lines == []

def test_run_log_log_writes_to_file(tmp_path):
    rl = RunLog(tmp_path / "logs", name="test-log")
    rl.log("immediate message")
    assert rl.path.exists()
    assert rl.path.read_text() == "immediate message\n"
    rl.push("buffered")
    rl.write()
    assert rl.path.read_text() == "immediate message\nbuffered"
    rl.close()

def test_run_with_error_logging_exits(tmp_path, capsys):
    rl = RunLog(tmp_path / "logs")
    def boom():
        raise TokenConflictError("--gap", "1px", "2px")
    with pytest.raises(SystemExit) as exc:
        run_with_error_logging(boom, rl, console=True)
    assert exc.value.code == 1
    assert "Fatal error" in capsys.readouterr().err
    assert "--gap (1px vs 2px)" in rl.path.read_text()

def test_run_with_error_logging_returns_value(tmp_path):
    assert run_with_error_logging(lambda: 42, RunLog(tmp_path / "logs")) == 42


# ── Loading ───────────────────────────────────────────────────────────────────
def test_load_and_merge_jsons(config):
    themes = load_and_merge_jsons(config.input_dir)
    assert themes["dark"] == {
        "--action-bar-row-gap": "24px",
        "--badge-color": 'unquote("hsl(13, 80%, 30%)")',
        "--color-primary": "#abcdef",
    }

def test_load_and_merge_jsons_empty_dir(tmp_path):
    with pytest.raises(InvalidInputError, match="No JSON files"):
        load_and_merge_jsons(tmp_path)

def test_load_and_merge_jsons_skips_blank_files(config):
    (config.input_dir / "empty.json").write_text("  \n")
    assert "dark" in load_and_merge_jsons(config.input_dir)

def test_load_and_merge_jsons_conflict(config):
    (config.input_dir / "zz.json").write_text(json.dumps({"dark": {"color-primary": "red"}}))
    with pytest.raises(TokenConflictError):
        load_and_merge_jsons(config.input_dir)


# ── Generation ────────────────────────────────────────────────────────────────
def test_generate_first_run(config, run_log):
    result = generate(config, run_log)
    assert isinstance(result, GenerationResult)
    assert result.first_run and result.has_changes
    scss = config.scss_file.read_text()
    assert "Initial creation" in scss
    assert "Total: 6 variables initialised" in scss
    assert "$enableFallback: false !default;" in scss
    assert scss.rstrip().endswith("}")
    snapshot = json.loads(config.snapshot_file.read_text())
    assert snapshot == load_and_merge_jsons(config.input_dir)
    assert not config.snapshot_file.with_name(config.snapshot_file.name + ".old").exists()
    assert "Generated:" in run_log.path.read_text()

def test_generate_second_run_without_changes_preserves_dates(config, tmp_path):
    generate(config, RunLog(config.log_dir))
    first = config.scss_file.read_text()
    second_result = generate(config, RunLog(tmp_path / "logs2"))
    second = config.scss_file.read_text()
    assert not second_result.first_run
    assert not second_result.has_changes
    assert second_result.totals == {"added": 0, "removed": 0, "changed": 0}
    for marker in ("Generated:", "Last Updated:"):
        line = next(l for l in first.splitlines() if marker in l)
        assert line in second
    assert "No token changes detected." in second
    assert config.snapshot_file.with_name(config.snapshot_file.name + ".old").exists()

def test_generate_reports_changes(config, tmp_path):
    generate(config, RunLog(config.log_dir))
    (config.input_dir / "colors.json").write_text(json.dumps({
        "default": {"--color-primary": "#000000"},
        "dark":    {"--color-primary": "#abcdef", "--color-accent": "#ff0"},
    }))
    result = generate(config, RunLog(tmp_path / "logs2"))
    assert result.has_changes
    assert result.totals == {"added": 1, "removed": 0, "changed": 1}
    scss = config.scss_file.read_text()
    assert "--color-primary : #123456 -> #000000" in scss
    old = parse_themes(config.snapshot_file.with_name(config.snapshot_file.name + ".old").read_text())
    assert old["default"]["--color-primary"] == "#123456"

def test_generate_preserves_user_fallback(config, tmp_path):
    generate(config, RunLog(config.log_dir))
    text = config.scss_file.read_text().replace(
        "$enableFallback: false !default;", "$enableFallback: true !default;")
    config.scss_file.write_text(text)
    generate(config, RunLog(tmp_path / "logs2"))
    assert "$enableFallback: true !default;" in config.scss_file.read_text()

def test_generate_fallback_default_for_new_file(config, run_log):
    generate(config.with_overrides(enable_fallback_default=True), run_log)
    assert "$enableFallback: true !default;" in config.scss_file.read_text()

def test_generate_missing_scss_is_first_run(config, tmp_path):
    generate(config, RunLog(config.log_dir))
    config.scss_file.unlink()
    result = generate(config, RunLog(tmp_path / "logs2"))
    assert result.first_run


# ── CLI ───────────────────────────────────────────────────────────────────────
def test_cli_generate(config, capsys):
    main([
        "generate",
        "--input", str(config.input_dir),
        "--output", str(config.output_dir),
        "--log-dir", str(config.log_dir),
    ])
    assert "generated" in capsys.readouterr().out
    assert config.scss_file.exists()

def test_cli_generate_failure_exits(config, tmp_path):
    empty = ensure_dir(tmp_path / "empty")
    with pytest.raises(SystemExit) as exc:
        main(["generate", "--input", str(empty), "--output", str(config.output_dir),
              "--log-dir", str(config.log_dir)])
    assert exc.value.code == 1

def test_cli_generate_quiet_failure(config, tmp_path, capsys):
    empty = ensure_dir(tmp_path / "empty")
    with pytest.raises(SystemExit) as exc:
        main(["generate", "--quiet", "--input", str(empty),
              "--output", str(config.output_dir), "--log-dir", str(config.log_dir)])
    assert exc.value.code == 1
    captured = capsys.readouterr()
    assert captured.out == "" and captured.err == ""
    logs = list(config.log_dir.iterdir())
    assert len(logs) == 1
    assert "Fatal error: No JSON files found" in logs[0].read_text()

def test_cli_generate_quiet_success(config, capsys):
    main(["generate", "-q", "--input", str(config.input_dir),
          "--output", str(config.output_dir), "--log-dir", str(config.log_dir)])
    assert capsys.readouterr().out == ""
    assert config.scss_file.exists()

@pytest.mark.parametrize("flag,expected", [
    ("--enable-fallback", "$enableFallback: true !default;"),
    ("--no-fallback",     "$enableFallback: false !default;"),
])
def test_cli_generate_fallback_flags(config, flag, expected):
    main(["generate", flag, "--input", str(config.input_dir),
          "--output", str(config.output_dir), "--log-dir", str(config.log_dir)])
    assert expected in config.scss_file.read_text()

def test_cli_diff(tmp_path, capsys):
    a, b = tmp_path / "a.json", tmp_path / "b.json"
    a.write_text(json.dumps({"default": {"a": "1"}}))
    b.write_text(json.dumps({"default": {"a": "2"}}))
    main(["diff", str(a), str(b)])
    assert "--a : 1 -> 2" in capsys.readouterr().out
    main(["diff", str(a), str(b), "--json"])
    data = json.loads(capsys.readouterr().out)
    assert data["summary"]["changed"] == 1
    assert data["themes"][0]["changed"][0]["new_value"] == "2"

def test_cli_map(tmp_path, capsys):
    a = tmp_path / "a.json"
    a.write_text(json.dumps(COLORS))
    main(["map", str(a)])
    out = capsys.readouterr().out
    assert out.startswith("$themes: (") and "dark: (" in out

def test_cli_map_invalid_file(tmp_path):
    a = tmp_path / "a.json"
    a.write_text("[]")
    with pytest.raises(SystemExit) as exc:
        main(["map", str(a)])
    assert "must be an object" in str(exc.value.code)
