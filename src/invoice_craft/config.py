from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import platformdirs
import yaml
from dotenv import load_dotenv

APP_NAME = "invoice-craft"

CONFIG_DIR_ENV = "INVOICE_CRAFT_CONFIG_DIR"
DATA_DIR_ENV = "INVOICE_CRAFT_DATA_DIR"

KEYRING_SERVICE = "invoice-craft"
KEYRING_USERNAME = "email-public-key"


def get_config_dir() -> Path:
    """Home of ``dispatch.yaml`` and ``.env``; $INVOICE_CRAFT_CONFIG_DIR overrides."""
    override = os.environ.get(CONFIG_DIR_ENV)
    return Path(override) if override else Path(platformdirs.user_config_dir(APP_NAME))


def get_data_dir() -> Path:
    """Home of the invoice store file. Read on every call so tests can redirect it."""
    override = os.environ.get(DATA_DIR_ENV)
    return Path(override) if override else Path(platformdirs.user_data_dir(APP_NAME))


# A .env in the working directory wins; the config dir one only fills gaps
load_dotenv()
load_dotenv(get_config_dir() / ".env")


STORAGE_KEY = "invoice-craft-invoices"

# A4 portrait, millimetres
PAGE_WIDTH_MM = 210.0
PAGE_HEIGHT_MM = 297.0

CAPTURE_SCALE = 2
CAPTURE_BACKGROUND = "#ffffff"

EMAILJS_SEND_URL = "https://api.emailjs.com/api/v1.0/email/send"
REMOVE_BG_URL = "https://api.remove.bg/v1.0/removebg"

DISPATCH_TIMEOUT = 30
BACKGROUND_REMOVAL_TIMEOUT = 60
LOGO_FETCH_TIMEOUT = 15

_PLACEHOLDERS = frozenset({"your_service_id", "your_template_id", "your_public_key"})


@dataclass(frozen=True)
class DispatchConfig:
    service_id: str | None = None
    template_id: str | None = None
    public_key: str | None = None

    @property
    def is_configured(self) -> bool:
        """True when every value is present and not a template placeholder."""
        values = (self.service_id, self.template_id, self.public_key)
        return all(v and v.strip() and v not in _PLACEHOLDERS for v in values)


# --- Keyring helpers ---


def _get_keyring_public_key() -> str | None:
    """Try to get the email service public key from the OS keyring.

    Returns None on any failure (no backend, not stored, dbus errors, etc.).
    """
    try:
        import keyring

        return keyring.get_password(KEYRING_SERVICE, KEYRING_USERNAME)
    except Exception:
        return None


def _set_keyring_public_key(public_key: str) -> bool:
    """Store the email service public key in the OS keyring. Returns True on success."""
    try:
        import keyring

        keyring.set_password(KEYRING_SERVICE, KEYRING_USERNAME, public_key)
        return True
    except Exception:
        return False


# --- YAML config ---


def load_yaml(path: Path) -> dict:
    """Load and parse a YAML file, returning the top-level dict."""
    return yaml.safe_load(path.read_text()) or {}


def load_dispatch_config() -> DispatchConfig:
    """Resolve the remote dispatch configuration.

    Priority per value: 1) env var, 2) config/dispatch.yaml, and for the
    public key only, 3) the OS keyring.
    """
    path = get_config_dir() / "dispatch.yaml"
    file_cfg = load_yaml(path) if path.is_file() else {}

    public_key = os.environ.get("EMAIL_PUBLIC_KEY") or file_cfg.get("public_key")
    if not public_key:
        public_key = _get_keyring_public_key()

    return DispatchConfig(
        service_id=os.environ.get("EMAIL_SERVICE_ID") or file_cfg.get("service_id"),
        template_id=os.environ.get("EMAIL_TEMPLATE_ID") or file_cfg.get("template_id"),
        public_key=public_key,
    )


def get_remove_bg_api_key() -> str:
    """Return the background-removal API key from REMOVE_BG_API_KEY.

    Raises KeyError if the variable is not set.
    """
    return os.environ["REMOVE_BG_API_KEY"]
