# /replica_sync.py
"""
Replica Sync
- One-way mirror of a source folder into a replica folder.
- Runs a full synchronization pass every N seconds until Ctrl+C.
- Change detection by MD5 content hash (timestamps are never trusted).
- Extra entries in the replica are deleted (files and whole folders).
- Optional gitignore-style exclude rules; excluded source entries are
  treated as absent from the source.
- Configuration from positional arguments, a JSON config file
  (--config or ./config.json) or interactive prompts. The last effective
  config is remembered in ~/.replica_sync/config.json and offered as the
  prompt defaults on the next run.
- Styled console output:
  - COPY green
  - DELETE / RMDIR orange
  - MKDIR light brown
  - errors red
  - file paths white
  - folder paths light brown
- Log file is always plain (no color codes) and appended to.

Usage
  pip install pathspec colorama
  python replica_sync.py
  python replica_sync.py /src /dst 30 sync.log
  python replica_sync.py config.json
  python replica_sync.py --config config.json --exclude "*.tmp" --exclude "cache/"
"""

from __future__ import annotations

import argparse
import hashlib
import json
import logging
import shutil
import sys
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional

from colorama import just_fix_windows_console
from pathspec import PathSpec

APP_DIR = Path.home() / ".replica_sync"
CONFIG_PATH = APP_DIR / "config.json"
DEFAULT_CONFIG_NAME = "config.json"

# keys written by the earlier FolderSyncro config files
LEGACY_CONFIG_KEYS = {
    "source": "SourceFolder",
    "replica": "ReplicaFolder",
    "interval": "Interval",
    "log_file": "LogFilePath",
}

MD5_CHUNK_SIZE = 1024 * 1024

MKDIR = "MKDIR"
COPY = "COPY"
DELETE = "DELETE"
RMDIR = "RMDIR"
IN_SYNC = "IN_SYNC"

MUTATING_ACTIONS = frozenset({MKDIR, COPY, DELETE, RMDIR})


# -------------------------
# Console styling
# -------------------------

class Ansi:
    RESET = "\x1b[0m"
    RED = "\x1b[31m"
    GREEN = "\x1b[32m"
    ORANGE = "\x1b[38;5;208m"
    WHITE = "\x1b[97m"
    LIGHT_BROWN = "\x1b[33m"


ACTION_COLORS = {
    COPY: Ansi.GREEN,
    DELETE: Ansi.ORANGE,
    RMDIR: Ansi.ORANGE,
    MKDIR: Ansi.LIGHT_BROWN,
    IN_SYNC: Ansi.WHITE,
}


def _supports_color(stream) -> bool:
    try:
        return hasattr(stream, "isatty") and stream.isatty()
    except ValueError:
        # closed stream
        return False


class ColorizingFormatter(logging.Formatter):
    def __init__(self, use_color: bool, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        if not self.use_color:
            return base

        if record.levelno >= logging.ERROR:
            return f"{Ansi.RED}{base}{Ansi.RESET}"

        action = getattr(record, "action", None)
        is_dir = getattr(record, "is_dir", None)
        path_text = getattr(record, "path_text", None)

        if action:
            action_color = ACTION_COLORS.get(action, "")
            if action_color and action in base:
                base = base.replace(action, f"{action_color}{action}{Ansi.RESET}", 1)

        if path_text and path_text in base:
            pcolor = Ansi.LIGHT_BROWN if is_dir else Ansi.WHITE
            base = base.replace(path_text, f"{pcolor}{path_text}{Ansi.RESET}")

        return base


def setup_logger(log_file: Path, name: str = "replica_sync") -> logging.Logger:
    """
    Log to stdout and append to log_file, both lines prefixed with a timestamp.

    A failing write to the log file goes through logging.Handler.handleError:
    it is reported on stderr and does not interrupt the caller.
    """
    log_file = Path(log_file).expanduser()
    log_file.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    logger.propagate = False

    if logger.handlers:
        return logger

    just_fix_windows_console()

    fmt = "%(asctime)s | %(levelname)s | %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"

    fh = logging.FileHandler(log_file, encoding="utf-8")
    fh.setFormatter(logging.Formatter(fmt=fmt, datefmt=datefmt))
    fh.setLevel(logging.INFO)

    ch = logging.StreamHandler(sys.stdout)
    ch.setLevel(logging.INFO)
    ch.setFormatter(ColorizingFormatter(use_color=_supports_color(sys.stdout), fmt=fmt, datefmt=datefmt))

    logger.addHandler(fh)
    logger.addHandler(ch)

    logger.info("Logging to: %s", log_file)
    return logger


# -------------------------
# Sync events
# -------------------------

@dataclass(frozen=True)
class SyncEvent:
    action: str
    message: str
    path: Optional[Path] = None
    is_dir: bool = False


@dataclass
class SyncOutcome:
    """Ordered record of what one pass did. Has no effect on the pass itself."""

    events: list[SyncEvent] = field(default_factory=list)

    def add(self, event: SyncEvent) -> None:
        self.events.append(event)

    def extend(self, events: list[SyncEvent]) -> None:
        self.events.extend(events)

    def count(self, action: str) -> int:
        return sum(1 for e in self.events if e.action == action)

    @property
    def changed(self) -> bool:
        return any(e.action in MUTATING_ACTIONS for e in self.events)

    def __iter__(self) -> Iterator[SyncEvent]:
        return iter(self.events)

    def __len__(self) -> int:
        return len(self.events)


def log_event(logger: logging.Logger, event: SyncEvent, level: int = logging.INFO) -> None:
    extra = {"action": event.action, "is_dir": event.is_dir}
    if event.path is not None:
        extra["path_text"] = str(event.path)
    logger.log(level, f"{event.action} | {event.message}", extra=extra)


class SyncCancelled(Exception):
    """The stop event was set while a pass was running."""


def _check_cancelled(stop_event: threading.Event) -> None:
    if stop_event.is_set():
        raise SyncCancelled("synchronization canceled")


# -------------------------
# Config / CLI
# -------------------------

@dataclass(frozen=True)
class AppConfig:
    source_dir: Path
    replica_dir: Path
    interval_sec: int
    log_file: Path
    exclude: tuple[str, ...] = ()


def parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Keep a replica folder identical to a source folder.")
    p.add_argument("source", nargs="?", default=None, help="Folder to mirror from.")
    p.add_argument("replica", nargs="?", default=None, help="Folder to keep in sync (created if missing).")
    p.add_argument("interval", nargs="?", type=int, default=None, help="Seconds between sync passes.")
    p.add_argument("log_file", nargs="?", default=None, help="File the log is appended to.")
    p.add_argument("--config", type=str, default=None, help="JSON config file (default: ./config.json if present).")
    p.add_argument(
        "--exclude",
        action="append",
        default=None,
        metavar="PATTERN",
        help="gitignore-style pattern to leave out of the replica (repeatable).",
    )
    p.add_argument("--once", action="store_true", help="Run a single pass and exit.")
    return p.parse_args(argv)


def prompt_for_path(label: str, default: Optional[Path] = None) -> Path:
    while True:
        hint = f" [{default}]" if default else ""
        raw = input(f"{label}{hint}: ").strip().strip('"')
        if not raw and default:
            return default
        if raw:
            return Path(raw)
        print("Please enter a non-empty path.")


def prompt_for_interval(default: Optional[int] = None) -> int:
    while True:
        hint = f" [{default}]" if default else ""
        raw = input(f"Interval in seconds{hint}: ").strip()
        if not raw and default:
            return default
        try:
            return positive_int(raw)
        except ValueError:
            print("Please enter a positive whole number of seconds.")


def positive_int(value) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Interval must be a positive integer, got {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Interval must be a positive integer, got {value!r}") from None
    if number <= 0 or (isinstance(value, float) and number != value):
        raise ValueError(f"Interval must be a positive integer, got {value!r}")
    return number


def load_config_file(path: Path) -> dict:
    """Read an explicit JSON config file. Errors propagate."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Config file must hold a JSON object: {path}")
    return data


def load_saved_config() -> dict:
    try:
        if CONFIG_PATH.exists():
            data = json.loads(CONFIG_PATH.read_text(encoding="utf-8"))
            if isinstance(data, dict):
                return data
    except (OSError, ValueError):
        pass
    return {}


def save_config_file(cfg: AppConfig) -> None:
    APP_DIR.mkdir(parents=True, exist_ok=True)
    payload = {
        "source": str(cfg.source_dir),
        "replica": str(cfg.replica_dir),
        "interval": cfg.interval_sec,
        "log_file": str(cfg.log_file),
        "exclude": list(cfg.exclude),
    }
    CONFIG_PATH.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def _is_subpath(child: Path, parent: Path) -> bool:
    try:
        child.resolve().relative_to(parent.resolve())
        return True
    except ValueError:
        return False


def validate_paths(source: Path, replica: Path) -> tuple[Path, Path]:
    source = Path(source).expanduser().resolve()
    replica = Path(replica).expanduser().resolve()

    if not source.exists() or not source.is_dir():
        raise ValueError(f"Source folder does not exist or is not a folder: {source}")
    if source == replica:
        raise ValueError("Source and replica folders must be different.")
    if _is_subpath(replica, source):
        raise ValueError("Replica folder must NOT be inside source folder (would mirror itself).")
    if _is_subpath(source, replica):
        raise ValueError("Source folder must NOT be inside replica folder (would be deleted as extra).")
    if replica.exists() and not replica.is_dir():
        raise ValueError(f"Replica path exists and is not a folder: {replica}")

    return source, replica


def build_effective_config(args: argparse.Namespace) -> AppConfig:
    saved = load_saved_config()

    config_arg = args.config
    source_arg = args.source
    if config_arg is None and source_arg is not None and args.replica is None and Path(source_arg).is_file():
        # a lone positional naming a file is the config file
        config_arg, source_arg = source_arg, None

    if config_arg:
        file_cfg = load_config_file(Path(config_arg))
    elif Path(DEFAULT_CONFIG_NAME).is_file():
        file_cfg = load_config_file(Path(DEFAULT_CONFIG_NAME))
    else:
        file_cfg = {}

    def pick(cli_value, key: str):
        if cli_value is not None:
            return cli_value
        if key in file_cfg:
            return file_cfg[key]
        return file_cfg.get(LEGACY_CONFIG_KEYS.get(key, key))

    source = pick(source_arg, "source")
    replica = pick(args.replica, "replica")
    interval = pick(args.interval, "interval")
    log_file = pick(args.log_file, "log_file")

    saved_source = Path(saved["source"]) if "source" in saved else None
    saved_replica = Path(saved["replica"]) if "replica" in saved else None
    saved_log = Path(saved["log_file"]) if "log_file" in saved else None
    try:
        saved_interval = positive_int(saved["interval"]) if "interval" in saved else None
    except ValueError:
        saved_interval = None

    source = Path(source) if source is not None else prompt_for_path("Source folder", saved_source)
    replica = Path(replica) if replica is not None else prompt_for_path("Replica folder", saved_replica)
    interval = positive_int(interval) if interval is not None else prompt_for_interval(saved_interval)
    log_file = Path(log_file) if log_file is not None else prompt_for_path("Log file", saved_log)

    if args.exclude:
        exclude = tuple(args.exclude)
    else:
        patterns = file_cfg.get("exclude") or []
        if isinstance(patterns, str):
            patterns = [patterns]
        exclude = tuple(str(p) for p in patterns)

    return AppConfig(
        source_dir=source,
        replica_dir=replica,
        interval_sec=interval,
        log_file=log_file,
        exclude=exclude,
    )


# -------------------------
# Ignore + change detection
# -------------------------

class IgnoreMatcher:
    def __init__(self, source_root: Path, patterns: list[str]):
        self.source_root = Path(source_root)
        self.spec = PathSpec.from_lines("gitwildmatch", patterns)

    def is_ignored(self, path: Path, is_dir: Optional[bool] = None) -> bool:
        path = Path(path)
        try:
            rel = path.relative_to(self.source_root)
        except ValueError:
            return True
        rel_posix = rel.as_posix()
        if is_dir is None:
            is_dir = path.is_dir()
        if is_dir and not rel_posix.endswith("/"):
            rel_posix += "/"
        return self.spec.match_file(rel_posix)


def md5_file(path: Path, chunk_size: int = MD5_CHUNK_SIZE) -> str:
    h = hashlib.md5()
    with Path(path).open("rb") as f:
        while True:
            b = f.read(chunk_size)
            if not b:
                break
            h.update(b)
    return h.hexdigest()


def files_are_equal(a: Path, b: Path) -> bool:
    """
    True when both files hold the same bytes.

    Different sizes settle it without reading; otherwise both files are
    hashed in full. Modification times are ignored. An OSError while reading
    (file vanished, permission denied) propagates.
    """
    if Path(a).stat().st_size != Path(b).stat().st_size:
        return False
    return md5_file(a) == md5_file(b)


# -------------------------
# Tree synchronization
# -------------------------

def remove_entry(path: Path) -> SyncEvent:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
        return SyncEvent(RMDIR, f"{path}", path=path, is_dir=True)
    path.unlink()
    return SyncEvent(DELETE, f"{path}", path=path, is_dir=False)


def copy_file(src: Path, dst: Path) -> SyncEvent:
    # copy2 carries over read-only modes, so never open an existing replica file for writing
    if dst.exists() or dst.is_symlink():
        dst.unlink()
    shutil.copy2(src, dst)
    return SyncEvent(COPY, f"{src} -> {dst}", path=dst, is_dir=False)


def sync_folders(
    source_dir: Path,
    replica_dir: Path,
    stop_event: threading.Event,
    ignore: Optional[IgnoreMatcher] = None,
    outcome: Optional[SyncOutcome] = None,
) -> SyncOutcome:
    """
    Make replica_dir an exact copy of source_dir, recursively.

    Files are copied when missing from the replica or when their MD5 differs,
    replica entries with no source counterpart are deleted, and an entry that
    changed kind (file <-> folder) is deleted and recreated. stop_event is
    checked before every entry; once set, SyncCancelled is raised and nothing
    further is touched. Work already done stays done.

    Events are appended to ``outcome`` (a new one if not given) as each
    directory level finishes, also when it finishes with an exception, so a
    caller passing its own outcome can still log the actions of an aborted
    pass. When the pass copies nothing, a single IN_SYNC event is recorded.
    """
    if outcome is None:
        outcome = SyncOutcome()
    _check_cancelled(stop_event)
    _sync_level(Path(source_dir), Path(replica_dir), stop_event, ignore, outcome, top_level=True)
    return outcome


def _sync_level(
    source_dir: Path,
    replica_dir: Path,
    stop_event: threading.Event,
    ignore: Optional[IgnoreMatcher],
    outcome: SyncOutcome,
    top_level: bool = False,
) -> bool:
    """Sync one directory level and everything below it. Returns True if any file was copied."""
    if not replica_dir.exists():
        replica_dir.mkdir(parents=top_level)
        outcome.add(SyncEvent(MKDIR, f"{replica_dir}", path=replica_dir, is_dir=True))

    batch: list[SyncEvent] = []
    copied = False
    try:
        for src in sorted(source_dir.iterdir()):
            _check_cancelled(stop_event)

            is_dir = src.is_dir()
            if ignore is not None and ignore.is_ignored(src, is_dir=is_dir):
                continue

            dst = replica_dir / src.name

            if is_dir:
                if dst.is_symlink() or (dst.exists() and not dst.is_dir()):
                    # recorded right away so it is logged before the nested MKDIR
                    outcome.add(remove_entry(dst))
                if _sync_level(src, dst, stop_event, ignore, outcome):
                    copied = True
                continue

            if dst.is_symlink() or dst.is_dir():
                batch.append(remove_entry(dst))

            if not dst.exists() or not files_are_equal(src, dst):
                batch.append(copy_file(src, dst))
                copied = True

        if top_level and not copied:
            batch.append(SyncEvent(IN_SYNC, "All files are synchronized, job is running."))

        for dst in sorted(replica_dir.iterdir()):
            _check_cancelled(stop_event)

            src = source_dir / dst.name
            if src.exists():
                if ignore is None or not ignore.is_ignored(src, is_dir=src.is_dir()):
                    continue

            batch.append(remove_entry(dst))
    finally:
        outcome.extend(batch)

    return copied


# -------------------------
# Scheduler thread
# -------------------------

class SyncScheduler(threading.Thread):
    """
    Runs a sync pass, logs what it did, then waits interval_sec on stop_event.

    Passes never overlap. A filesystem error aborts only the current pass;
    the next one starts after the usual wait. Setting stop_event ends a
    running pass at its next entry and wakes the wait immediately.
    """

    def __init__(
        self,
        source_root: Path,
        replica_root: Path,
        interval_sec: int,
        logger: logging.Logger,
        stop_event: threading.Event,
        ignore: Optional[IgnoreMatcher] = None,
    ):
        super().__init__(daemon=True)
        self.source_root = source_root
        self.replica_root = replica_root
        self.interval_sec = interval_sec
        self.logger = logger
        self.stop_event = stop_event
        self.ignore = ignore
        self.passes = 0
        self.last_error: Optional[BaseException] = None

    def run(self) -> None:
        self.logger.info("SYNC: started (interval=%ds)", self.interval_sec)
        while not self.stop_event.is_set():
            if not self.run_pass():
                break
            self.stop_event.wait(self.interval_sec)
        self.logger.info("SYNC: stopped")

    def run_pass(self) -> bool:
        """Run one pass. Returns False when the pass was cancelled."""
        outcome = SyncOutcome()
        self.passes += 1
        self.last_error = None
        try:
            try:
                sync_folders(self.source_root, self.replica_root, self.stop_event, ignore=self.ignore, outcome=outcome)
            finally:
                for event in outcome:
                    log_event(self.logger, event)
        except SyncCancelled:
            self.logger.info("Synchronization canceled.")
            return False
        except OSError as e:
            self.last_error = e
            self.logger.error("Sync pass failed: %s", e)
        except Exception as e:
            self.last_error = e
            self.logger.exception("Unexpected error during sync pass: %s", e)
        return True


# -------------------------
# Main
# -------------------------

def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])

    try:
        cfg = build_effective_config(args)
    except (OSError, ValueError) as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 2

    try:
        logger = setup_logger(cfg.log_file)
    except OSError as e:
        print(f"Config error: cannot open log file {cfg.log_file}: {e}", file=sys.stderr)
        return 2

    try:
        source, replica = validate_paths(cfg.source_dir, cfg.replica_dir)
        logger.info("Source : %s", source)
        logger.info("Replica: %s", replica)
    except ValueError as e:
        logger.error("Config error: %s", e)
        return 2

    try:
        save_config_file(
            AppConfig(
                source_dir=source,
                replica_dir=replica,
                interval_sec=cfg.interval_sec,
                log_file=cfg.log_file.expanduser().resolve(),
                exclude=cfg.exclude,
            )
        )
        logger.info("Saved config: %s", CONFIG_PATH)
    except OSError as e:
        logger.error("Could not save config: %s", e)

    ignore = IgnoreMatcher(source_root=source, patterns=list(cfg.exclude)) if cfg.exclude else None
    if ignore is not None:
        logger.info("Excluding: %s", ", ".join(cfg.exclude))

    stop_event = threading.Event()
    scheduler = SyncScheduler(
        source_root=source,
        replica_root=replica,
        interval_sec=cfg.interval_sec,
        logger=logger,
        stop_event=stop_event,
        ignore=ignore,
    )

    if args.once:
        scheduler.run_pass()
        return 1 if scheduler.last_error is not None else 0

    logger.info("Starting sync loop... (Ctrl+C to stop)")
    scheduler.start()

    try:
        while scheduler.is_alive():
            time.sleep(0.5)
    except KeyboardInterrupt:
        logger.info("Stopping...")
    finally:
        stop_event.set()
        scheduler.join(timeout=10)
        logger.info("Stopped.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
