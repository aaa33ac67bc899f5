# config.py
import os
import json

# --- Protocol Constants ---
SSDP_ADDR = "239.255.255.250"
SSDP_PORT = 1900
SERVER_FIELD = "Linux/3.4 UPnP/1.1 DMS/1.0"
CACHE_CONTROL = "max-age = 30"
NTS_ALIVE = "ssdp:alive"
ROOT_DEVICE_TARGET = "upnp:rootdevice"

# --- Device Description Constants ---
DEVICE_NAMESPACE = "urn:schemas-upnp-org:device-1-0"
XML_DECLARATION = '<?xml version="1.0"?>'
ROOT_DESC_PATH = "/rootDesc.xml"
ROOT_DEVICE_TYPE = "urn:schemas-upnp-org:device:MediaServer:1"
ROOT_DEVICE_MODEL_NAME = "dms 1.0"
ROOT_DEVICE_MANUFACTURER = "dms"
CONFIG_ID = 0
SPEC_VERSION = (1, 0)

# --- Tunables ---
DEFAULT_SETTINGS = {
    "announce_interval": 1.0, "watch_interval": 1.0, "multicast_ttl": 4,
    "http_threads": 4, "ssdp_log_file": "ssdp.log",
}
SETTINGS_FILE = "settings.json"


def _same_type(value, default):
    # JSON has no int/float split for whole numbers; bool is never a number here.
    if isinstance(value, bool) != isinstance(default, bool):
        return False
    if isinstance(default, float):
        return isinstance(value, (int, float))
    return isinstance(value, type(default))


def load_settings(path=SETTINGS_FILE):
    """Loads optional overrides from a JSON file, using defaults for missing keys.

    The file is only read, never created.
    """
    if not os.path.exists(path):
        return DEFAULT_SETTINGS.copy()
    with open(path, 'r') as f:
        try:
            s = json.load(f)
        except json.JSONDecodeError:
            print(f"ERROR: Could not read {path}. Using default settings.")
            return DEFAULT_SETTINGS.copy()
    if not isinstance(s, dict):
        print(f"ERROR: {path} must contain a JSON object. Using default settings.")
        return DEFAULT_SETTINGS.copy()
    for key in set(s) - set(DEFAULT_SETTINGS):
        print(f"Warning: Ignoring unknown setting '{key}' in {path}.")
        del s[key]
    for key in [k for k in s if not _same_type(s[k], DEFAULT_SETTINGS[k])]:
        expected = type(DEFAULT_SETTINGS[key]).__name__
        print(f"Warning: Ignoring setting '{key}' in {path}: expected {expected}, got {s[key]!r}.")
        del s[key]
    for key, value in DEFAULT_SETTINGS.items():
        s.setdefault(key, value)
    return s
