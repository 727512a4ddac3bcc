#!/usr/bin/env python3
"""
clipdecode.py - Base64 clipboard decoder with transform chaining and a decode log.

Decodes base64 text (plain, data-URI, or wrapped across lines) to UTF-8, either
one-shot from an argument / stdin / the clipboard, or continuously by watching
the clipboard and passing each new value through a chain of transform scripts.

Usage:
    python clipdecode.py decode [TEXT|-] [--strict-utf8] [--urlsafe]
                                [--format text|json|yaml] [--copy]
    python clipdecode.py encode [TEXT|-] [--urlsafe] [--copy]
    python clipdecode.py watch  [--step base64_decode] [--hotkey ctrl+shift+d]
                                [--poll 0.5] [--dry-run]
    python clipdecode.py history [--session ID] [--tag err] [--limit 50] [--gui]

Transform script API:
    def transform(text: str) -> str: ...
    Module-level docstring shown as description.

transforms.ini format:
    [clipdecode]                   # tool settings, overridden by flags
    poll = 0.5
    strict_utf8 = no               # default for every STRICT_UTF8 constant
    steps = base64_decode

    [transform:base64_decode]      # matches filename stem; wins over [clipdecode]
    strict_utf8 = yes

    [chain:double_decode]
    description = Decode a payload that was base64-encoded twice
    steps = base64_decode, base64_decode
"""

import argparse
import configparser
import importlib.util
import json
import sys
import time
import traceback
from datetime import datetime
from pathlib import Path

import yaml

try:
    import pyperclip
except ImportError:
    print("Missing dependency: pip install pyperclip")
    sys.exit(1)

try:
    import keyboard
    KEYBOARD_AVAILABLE = True
except ImportError:
    KEYBOARD_AVAILABLE = False

from db_logger import DBLogger, result_entry
from text_decoder import decode_result, encode

PROJECT_ROOT = Path(__file__).parent
BOOLEAN_WORDS = configparser.ConfigParser.BOOLEAN_STATES


# ─── Settings ─────────────────────────────────────────────────────────────────

class Settings:
    """Tool settings from the [clipdecode] ini section, overridable by flags."""

    SECTION = "clipdecode"

    def __init__(self, poll: float = 0.5, hotkey: str = None, dry_run: bool = False,
                 strict_utf8: bool = False, urlsafe: bool = False,
                 steps: list = None, db_dir: str = None):
        self.poll        = poll
        self.hotkey      = hotkey
        self.dry_run     = dry_run
        self.strict_utf8 = strict_utf8
        self.urlsafe     = urlsafe
        self.steps       = steps or ["base64_decode"]
        self.db_dir      = db_dir or str(PROJECT_ROOT)

    @classmethod
    def from_ini(cls, cfg: configparser.ConfigParser) -> "Settings":
        if not cfg.has_section(cls.SECTION):
            return cls()
        sec = cfg[cls.SECTION]
        try:
            raw_steps = sec.get("steps", "")
            return cls(
                poll=sec.getfloat("poll", fallback=0.5),
                hotkey=sec.get("hotkey") or None,
                dry_run=sec.getboolean("dry_run", fallback=False),
                strict_utf8=sec.getboolean("strict_utf8", fallback=False),
                urlsafe=sec.getboolean("urlsafe", fallback=False),
                steps=[s.strip() for s in raw_steps.split(",") if s.strip()],
                db_dir=sec.get("db_dir") or None,
            )
        except ValueError as exc:
            raise ValueError(f"[{cls.SECTION}] {exc}") from exc

    def apply_args(self, args: argparse.Namespace) -> "Settings":
        """Overlay command-line flags that were given explicitly."""
        for name in ("poll", "hotkey", "db_dir"):
            value = getattr(args, name, None)
            if value is not None:
                setattr(self, name, value)
        for name in ("dry_run", "strict_utf8", "urlsafe"):
            if getattr(args, name, False):
                setattr(self, name, True)
        if getattr(args, "step", None):
            self.steps = list(args.step)
        return self

    def transform_defaults(self) -> dict:
        """Decode options handed to every transform that declares them."""
        return {"strict_utf8": self.strict_utf8, "urlsafe": self.urlsafe}


# ─── INI loader ──────────────────────────────────────────────────────────────

def load_ini(folder: str) -> configparser.ConfigParser:
    """Load transforms.ini from the transforms folder if it exists."""
    cfg = configparser.ConfigParser()
    ini_path = Path(folder) / "transforms.ini"
    if ini_path.exists():
        cfg.read(ini_path, encoding="utf-8")
    return cfg


def get_transform_overrides(cfg: configparser.ConfigParser, stem: str) -> dict:
    """Return key/value overrides for a transform script from transforms.ini."""
    section = f"transform:{stem}"
    if cfg.has_section(section):
        return dict(cfg[section])
    return {}


def get_chains(cfg: configparser.ConfigParser) -> list:
    """
    Return chain definitions from transforms.ini.
    Each item: {name, label, description, steps: [str]}
    """
    chains = []
    for section in cfg.sections():
        if section.startswith("chain:"):
            name  = section[len("chain:"):]
            label = f"⛓ {name.replace('_', ' ').title()}"
            desc  = cfg.get(section, "description", fallback="")
            raw   = cfg.get(section, "steps", fallback="")
            steps = [s.strip() for s in raw.split(",") if s.strip()]
            chains.append({
                "name":        name,
                "label":       label,
                "description": desc,
                "steps":       steps,
                "is_chain":    True,
                "fn":          None,
            })
    return chains


# ─── Transform loader ─────────────────────────────────────────────────────────

def coerce_value(value):
    """ini string -> int, float, bool (yes/no/true/false/on/off/1/0) or str."""
    if not isinstance(value, str):
        return value
    for cast in (int, float):
        try:
            return cast(value)
        except ValueError:
            pass
    return BOOLEAN_WORDS.get(value.lower(), value)


def _load_module(script_path: str, overrides: dict = None, defaults: dict = None):
    path = Path(script_path).resolve()
    if not path.exists():
        raise FileNotFoundError(f"Script not found: {path}")

    spec   = importlib.util.spec_from_file_location(f"clipdecode_transform_{path.stem}", path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    if not hasattr(module, "transform"):
        raise AttributeError("Script must define a 'transform(text) -> str' function")

    # defaults only touch constants the script declares; overrides may add attributes
    for key, value in (defaults or {}).items():
        if hasattr(module, key.upper()):
            setattr(module, key.upper(), coerce_value(value))
    for key, value in (overrides or {}).items():
        attr = key.upper() if hasattr(module, key.upper()) else key
        setattr(module, attr, coerce_value(value))
    return module, path


def _short_description(module) -> str:
    description = (
        (module.__doc__ or "").strip()
        or (module.transform.__doc__ or "").strip()
        or "No description."
    )
    return next(
        (ln.strip() for ln in description.splitlines() if ln.strip()), description
    )


def load_transform(script_path: str, overrides: dict = None, defaults: dict = None):
    """
    Dynamically load a transform script.
    Returns (transform_fn, resolved_path, description_str).

    `defaults` (tool-wide settings such as strict_utf8) set matching UPPER_CASE
    constants first; `overrides` from [transform:<stem>] are applied after and
    win. An override key matching an UPPER_CASE constant sets that constant.
    """
    module, path = _load_module(script_path, overrides, defaults)
    return module.transform, str(path), _short_description(module)


# ─── Transform folder scanner ─────────────────────────────────────────────────

def scan_transforms(folder: str, cfg: configparser.ConfigParser,
                    defaults: dict = None) -> list:
    """
    Scan folder for .py transform scripts and merge in chain definitions from ini.
    Returns list of registry dicts sorted alphabetically (scripts first, chains appended).
    Scripts that also define transform_result(text) -> DecodeResult get it as
    "result_fn", so callers can log the decode outcome.
    """
    results = []
    p = Path(folder)
    if not p.is_dir():
        return results

    for pyfile in sorted(p.glob("*.py")):
        if pyfile.name.startswith("_"):
            continue
        overrides = get_transform_overrides(cfg, pyfile.stem)
        try:
            module, path = _load_module(str(pyfile), overrides, defaults)
            results.append({
                "name":        pyfile.stem,
                "label":       pyfile.stem.replace("_", " ").title(),
                "path":        str(path),
                "description": _short_description(module),
                "fn":          module.transform,
                "result_fn":   getattr(module, "transform_result", None),
                "is_chain":    False,
                "steps":       [],
            })
        except Exception as exc:
            results.append({
                "name":        pyfile.stem,
                "label":       f"⚠ {pyfile.stem}",
                "path":        str(pyfile),
                "description": f"Load error: {exc}",
                "fn":          None,
                "result_fn":   None,
                "is_chain":    False,
                "steps":       [],
            })

    results.extend(get_chains(cfg))
    return results


def resolve_steps(registry: list, names: list) -> list:
    """Expand script and chain names into an ordered list of script entries."""
    by_name = {}
    for entry in registry:
        by_name.setdefault(entry["name"], entry)

    steps = []
    for name in names:
        if name not in by_name:
            raise KeyError(f"Unknown transform or chain: {name}")
        entry = by_name[name]
        if entry["is_chain"]:
            for step_name in entry["steps"]:
                step = by_name.get(step_name)
                if step is None or step["is_chain"]:
                    raise KeyError(f"Chain '{name}' has unknown step: {step_name}")
                steps.append(step)
        else:
            steps.append(entry)
    return steps


# ─── Clipboard watcher ────────────────────────────────────────────────────────

class ClipWatcher:
    def __init__(self, steps: list, db: DBLogger = None, poll_interval: float = 0.5,
                 hotkey: str = None, dry_run: bool = False, out=None):
        self.steps           = steps
        self.db              = db
        self.poll_interval   = poll_interval
        self.hotkey          = hotkey
        self.dry_run         = dry_run
        self.out             = out or sys.stdout
        self.last_clip       = ""
        self.running         = False
        self.transform_count = 0
        self.error_count     = 0
        self.decode_failures = 0

    # ── Logging ───────────────────────────────────────────────────────────────

    def _log(self, message: str, tag: str = "info", transform_name: str = ""):
        ts = datetime.now().strftime("%H:%M:%S")
        print(f"[{ts}] {message}", file=self.out)
        if self.db is not None:
            self.db.log(message, tag, transform_name)

    # ── Chain execution ───────────────────────────────────────────────────────

    def run_chain(self, clip_text: str, source: str = "clipboard"):
        """Run every step over clip_text. Returns the final text, or None on error."""
        if not self.steps:
            self._log("No transforms active — add steps with --step", "warn")
            return None

        is_chain = len(self.steps) > 1
        chain_label = " → ".join(s["name"] for s in self.steps)

        if is_chain:
            self._log(f"▶ Chain [{chain_label}] via {source}", "chain")
        else:
            self._log(f"▶ [{self.steps[0]['name']}] via {source}", "info")

        current = clip_text
        failed = False
        for i, step in enumerate(self.steps):
            if step["fn"] is None:
                self._log(f"  ✗ Step {i+1} [{step['name']}] has no function (load error)",
                          "err", step["name"])
                self.error_count += 1
                return None

            preview_in = current[:80].replace("\n", "↵")
            if is_chain:
                self._log(f"  [{i+1}/{len(self.steps)}] {step['name']}", "chain", step["name"])
            self._log(f"   In:  {preview_in!r}{'…' if len(current) > 80 else ''}",
                      "preview", step["name"])

            out_tag = "ok"
            try:
                if step.get("result_fn") is not None:
                    decoded = step["result_fn"](current)
                    out_tag, summary = result_entry(decoded)
                    self._log(f"   {summary}", out_tag, step["name"])
                    if not decoded.ok:
                        self.decode_failures += 1
                        failed = True
                    result = decoded.output
                else:
                    result = step["fn"](current)
                if not isinstance(result, str):
                    result = str(result)
            except Exception as exc:
                self._log(f"  ✗ Error in [{step['name']}]: {exc}", "err", step["name"])
                self._log(traceback.format_exc(), "err", step["name"])
                self.error_count += 1
                return None

            preview_out = result[:80].replace("\n", "↵")
            self._log(f"   Out: {preview_out!r}{'…' if len(result) > 80 else ''}",
                      out_tag, step["name"])
            current = result

        done_tag = "warn" if failed else "ok"
        if self.dry_run:
            self._log(f"  🔍 Dry run — {len(current)} chars, clipboard untouched", "warn")
            print(current, file=self.out)
        else:
            try:
                pyperclip.copy(current)
            except pyperclip.PyperclipException as exc:
                self._log(f"  ✗ Clipboard write error: {exc}", "err")
                self.error_count += 1
                return None
            self.last_clip = current
            self._log(f"  ✓ {len(current)} chars written to clipboard", done_tag)

        self.transform_count += 1
        return current

    # ── Polling ───────────────────────────────────────────────────────────────

    def _reseed_clipboard(self):
        try:
            self.last_clip = pyperclip.paste()
        except pyperclip.PyperclipException as exc:
            self._log(f"Clipboard read error: {exc}", "warn")

    def poll_once(self):
        try:
            current = pyperclip.paste()
        except pyperclip.PyperclipException as exc:
            self._log(f"Clipboard read error: {exc}", "warn")
            return None
        if current and current != self.last_clip:
            self.last_clip = current
            return self.run_chain(current, source="clipboard change")
        return None

    # ── Hotkey ────────────────────────────────────────────────────────────────

    def _register_hotkey(self) -> bool:
        if not KEYBOARD_AVAILABLE:
            self._log("'keyboard' not installed — hotkey disabled, polling instead. "
                      "pip install keyboard", "warn")
            self.hotkey = None
            return False

        def _on_hotkey():
            try:
                clip = pyperclip.paste()
            except pyperclip.PyperclipException as exc:
                self._log(f"Hotkey error: {exc}", "err")
                return
            if clip:
                self.run_chain(clip, source=f"hotkey ({self.hotkey})")
            else:
                self._log("Hotkey pressed but clipboard is empty", "warn")

        keyboard.add_hotkey(self.hotkey, _on_hotkey)
        self._log(f"Hotkey registered: {self.hotkey}", "ok")
        return True

    # ── Controls ──────────────────────────────────────────────────────────────

    def start(self):
        """Block until Ctrl+C, running the chain on each trigger."""
        self.running = True
        use_hotkey = bool(self.hotkey) and self._register_hotkey()
        if use_hotkey:
            self._log(f"Waiting for hotkey {self.hotkey} (Ctrl+C to stop)", "info")
        else:
            self._log(f"Polling clipboard every {self.poll_interval}s (Ctrl+C to stop)", "info")
            self._reseed_clipboard()

        try:
            while self.running:
                if not use_hotkey:
                    self.poll_once()
                time.sleep(self.poll_interval)
        except KeyboardInterrupt:
            pass
        finally:
            self.stop()

    def stop(self):
        if not self.running:
            return
        self.running = False
        if KEYBOARD_AVAILABLE and self.hotkey:
            keyboard.remove_hotkey(self.hotkey)
        self._log(f"Stopped. Transforms: {self.transform_count}  |  "
                  f"Errors: {self.error_count}  |  "
                  f"Failed decodes: {self.decode_failures}", "info")


# ─── Commands ─────────────────────────────────────────────────────────────────

def read_input(text: str = None) -> str:
    """TEXT argument, '-' for stdin, or the clipboard when omitted."""
    if text == "-":
        return sys.stdin.read()
    if text is None:
        return pyperclip.paste()
    return text


def format_result(result, fmt: str) -> str:
    if fmt == "json":
        return json.dumps(result.to_dict(), indent=2, ensure_ascii=False)
    if fmt == "yaml":
        return yaml.safe_dump(result.to_dict(), allow_unicode=True, sort_keys=False).rstrip()
    return result.output


def cmd_decode(args, settings: Settings) -> int:
    result = decode_result(
        read_input(args.text),
        strict_utf8=settings.strict_utf8,
        urlsafe=settings.urlsafe,
    )
    print(format_result(result, args.format))
    db = DBLogger(settings.db_dir, transforms_folder=str(args.transforms))
    try:
        db.log_result(result, "decode")
    finally:
        db.stop()
    if args.copy and result.ok:
        pyperclip.copy(result.text)
    return 0 if result.ok else 1


def cmd_encode(args, settings: Settings) -> int:
    encoded = encode(read_input(args.text), urlsafe=settings.urlsafe)
    print(encoded)
    if args.copy:
        pyperclip.copy(encoded)
    return 0


def cmd_watch(args, settings: Settings, cfg: configparser.ConfigParser) -> int:
    registry = scan_transforms(args.transforms, cfg, defaults=settings.transform_defaults())
    steps = resolve_steps(registry, settings.steps)
    db = DBLogger(settings.db_dir, transforms_folder=str(args.transforms))
    watcher = ClipWatcher(
        steps,
        db=db,
        poll_interval=settings.poll,
        hotkey=settings.hotkey,
        dry_run=settings.dry_run,
    )
    try:
        watcher.start()
    finally:
        db.stop()
    return 0


def cmd_history(args, settings: Settings) -> int:
    db = DBLogger(settings.db_dir, start_session=False)
    if args.gui:
        from PySide6.QtWidgets import QApplication
        from log_browser import LogBrowserDialog

        app = QApplication.instance() or QApplication(sys.argv[:1])
        dialog = LogBrowserDialog(db, args.session or db.latest_session_id())
        dialog.show()
        return app.exec()

    entries = db.get_entries(session_id=args.session, tag=args.tag, limit=args.limit)
    for entry in entries:
        ts = entry["timestamp"][:19].replace("T", " ")
        name = f" [{entry['transform_name']}]" if entry["transform_name"] else ""
        print(f"{ts}  {entry['tag']:<7}{name} {entry['message']}")
    counts = db.get_counts(args.session)
    print(f"{len(entries)} entries  |  ok: {counts.get('ok', 0)}  "
          f"err: {counts.get('err', 0)}  warn: {counts.get('warn', 0)}")
    return 0


# ─── Entry point ──────────────────────────────────────────────────────────────

def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Base64 clipboard decoder with chaining, dry run, and ini config."
    )
    parser.add_argument("--transforms", "-t",
                        default=str(PROJECT_ROOT / "transforms"),
                        help="Folder with transform scripts and transforms.ini "
                             "(default: <script dir>/transforms).")
    parser.add_argument("--db-dir", default=None,
                        help="Directory holding clipdecode.db (default: <script dir>).")
    sub = parser.add_subparsers(dest="command", required=True)

    p_decode = sub.add_parser("decode", help="Decode base64 text to UTF-8.")
    p_decode.add_argument("text", nargs="?", default=None,
                          help="Encoded text, '-' for stdin (default: clipboard).")
    p_decode.add_argument("--strict-utf8", action="store_true",
                          help="Fail on invalid UTF-8 instead of substituting U+FFFD.")
    p_decode.add_argument("--urlsafe", action="store_true",
                          help="Accept the URL-safe alphabet (-_).")
    p_decode.add_argument("--format", "-f", choices=["text", "json", "yaml"],
                          default="text", help="Output format (default: text).")
    p_decode.add_argument("--copy", "-c", action="store_true",
                          help="Also copy the decoded text to the clipboard.")

    p_encode = sub.add_parser("encode", help="Encode UTF-8 text as base64.")
    p_encode.add_argument("text", nargs="?", default=None,
                          help="Plain text, '-' for stdin (default: clipboard).")
    p_encode.add_argument("--urlsafe", action="store_true",
                          help="Use the URL-safe alphabet (-_).")
    p_encode.add_argument("--copy", "-c", action="store_true",
                          help="Also copy the encoded text to the clipboard.")

    p_watch = sub.add_parser("watch", help="Watch the clipboard and run a transform chain.")
    p_watch.add_argument("--step", "-s", action="append", default=None,
                         help="Transform or chain name; repeat to chain "
                              "(default: [clipdecode] steps).")
    p_watch.add_argument("--hotkey", "-k", default=None,
                         help="Hotkey to trigger manually (e.g. ctrl+shift+d). "
                              "Requires: pip install keyboard")
    p_watch.add_argument("--poll", "-p", type=float, default=None,
                         help="Poll interval in seconds (default: 0.5).")
    p_watch.add_argument("--dry-run", action="store_true",
                         help="Print results instead of writing the clipboard.")

    p_history = sub.add_parser("history", help="Show the decode log.")
    p_history.add_argument("--session", default=None, help="Session id filter.")
    p_history.add_argument("--tag", choices=["ok", "err", "warn", "info", "chain", "preview"],
                           default=None, help="Tag filter.")
    p_history.add_argument("--limit", "-n", type=int, default=50,
                           help="Maximum entries (default: 50).")
    p_history.add_argument("--gui", action="store_true",
                           help="Open the log browser window (requires PySide6).")

    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    cfg = load_ini(args.transforms)
    try:
        settings = Settings.from_ini(cfg).apply_args(args)
        if args.command == "decode":
            return cmd_decode(args, settings)
        if args.command == "encode":
            return cmd_encode(args, settings)
        if args.command == "watch":
            return cmd_watch(args, settings, cfg)
        return cmd_history(args, settings)
    except (ValueError, KeyError, FileNotFoundError, pyperclip.PyperclipException) as exc:
        print(f"clipdecode: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
