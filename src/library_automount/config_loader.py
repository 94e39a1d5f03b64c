import json
import logging
import os
from pathlib import Path

DEFAULT_SETTINGS_FILE = "/etc/library-automount/settings.json"

# (env var, section, key, cast)
ENV_OVERRIDES = [
    ("LIBRARY_UID", "library_user", "uid", int),
    ("LIBRARY_GID", "library_user", "gid", int),
    ("LIBRARY_AUTOMOUNT_LOCK_DIR", "lock", "directory", str),
]


def _merge_defaults(settings: dict, section: str, defaults: dict) -> dict:
    cfg = settings.get(section)
    if not isinstance(cfg, dict):
        cfg = {}
    for k, v in defaults.items():
        cfg.setdefault(k, v)
    settings[section] = cfg
    return cfg


def load_settings(filename: str | Path | None = None) -> dict:
    """
    Load the JSON configuration *and* guarantee that every section the
    code relies on is present with safe defaults.

    Return an always-valid settings dict – never None. A missing file is
    normal (the defaults match a stock install); a broken one is logged
    and ignored so a typo cannot stop drives from mounting.
    """
    if filename is None:
        filename = os.getenv("LIBRARY_AUTOMOUNT_CONFIG", DEFAULT_SETTINGS_FILE)
    filename = Path(filename)
    try:
        with filename.open("r", encoding="utf-8") as fp:
            settings = json.load(fp)
    except FileNotFoundError:
        logging.debug("Settings file %s not found – using built-in defaults", filename)
        settings = {}
    except (OSError, ValueError) as e:
        logging.error("Failed to load settings %s: %s – using built-in defaults", filename, e)
        settings = {}
    if not isinstance(settings, dict):
        logging.error("Settings file %s is not a JSON object – using built-in defaults", filename)
        settings = {}

    # ── desktop user that owns the library ───────────────────────────────
    _merge_defaults(settings, "library_user", {"uid": 1000, "gid": 1000})

    # ── lock file shared with the formatting tool ────────────────────────
    _merge_defaults(settings, "lock", {
        "directory": "/var/run",
        "prefix":    "jupiter-automount-",
    })

    # ── udisks mount ─────────────────────────────────────────────────────
    _merge_defaults(settings, "mount", {
        "options":        "rw,noatime",
        "fstab":          "/etc/fstab",
        "settle_timeout": None,
    })

    # ── steam client ─────────────────────────────────────────────────────
    _merge_defaults(settings, "peer", {
        "process":        "steam",
        "helper_process": "steamwebhelper",
        "client":         "./.steam/root/ubuntu12_32/steam",
        "scheme":         "steam",
    })

    _merge_defaults(settings, "retrigger", {
        "wait_timeout":  10,
        "poll_interval": 1.0,
        "settle_delay":  6.0,
    })

    settings.setdefault("log_level", "INFO")

    # ── environment wins over the file ───────────────────────────────────
    for env, section, key, cast in ENV_OVERRIDES:
        val = os.getenv(env)
        if not val:
            continue
        try:
            settings[section][key] = cast(val)
        except ValueError:
            logging.warning("Ignoring %s=%r: not a valid %s", env, val, cast.__name__)

    log_level = os.getenv("LIBRARY_AUTOMOUNT_LOG")
    if log_level:
        settings["log_level"] = log_level

    settings["log_level"] = str(settings["log_level"]).upper()
    return settings
