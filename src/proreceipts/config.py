from __future__ import annotations

import getpass
import os
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path

import platformdirs
import yaml
from dotenv import load_dotenv

from proreceipts.utils.validators import parse_percent

APP_NAME = "pro-receipts"

KEYRING_SERVICE = "pro-receipts"
KEYRING_USERNAME = "remote-api-key"

STORE_TIMEOUT = 30

RECEIPTS_TABLE = "finance_receipts"
AUDIT_TABLE = "actions_log"


def _resolve_config_dir_for_dotenv() -> Path | None:
    """Resolve config dir for .env loading without depending on env vars from .env itself.

    Only checks sources available before .env is loaded (env var set in the
    shell, dev layout, an existing platformdirs directory).
    """
    from_env = os.environ.get("PRO_RECEIPTS_CONFIG_DIR")
    if from_env:
        return Path(from_env)
    project_root = Path(__file__).resolve().parent.parent.parent
    candidate = project_root / "config"
    if candidate.is_dir():
        return candidate
    pd = Path(platformdirs.user_config_dir(APP_NAME))
    if pd.is_dir():
        return pd
    return None


# Load .env: cwd first (highest priority), then config dir (won't override)
load_dotenv()
_cfg_dir = _resolve_config_dir_for_dotenv()
if _cfg_dir is not None:
    load_dotenv(_cfg_dir / ".env")


def _resolve_dir(env_var: str, default_subdir: str, kind: str) -> Path:
    """Resolve a directory from env var, repo layout, or platform default.

    Priority: 1) env var, 2) dev repo layout, 3) platformdirs user directory.
    """
    from_env = os.environ.get(env_var)
    if from_env:
        return Path(from_env)
    # Development layout: src/proreceipts/config.py -> ../../.. = project root
    project_root = Path(__file__).resolve().parent.parent.parent
    candidate = project_root / default_subdir
    if candidate.is_dir():
        return candidate
    if kind == "config":
        return Path(platformdirs.user_config_dir(APP_NAME))
    return Path(platformdirs.user_data_dir(APP_NAME))


def get_config_dir() -> Path:
    """Resolve config directory. Re-evaluated on each call to pick up env changes."""
    return _resolve_dir("PRO_RECEIPTS_CONFIG_DIR", "config", kind="config")


def get_data_dir() -> Path:
    """Resolve data directory. Re-evaluated on each call to pick up env changes."""
    return _resolve_dir("PRO_RECEIPTS_DATA_DIR", "data", kind="data")


def get_receipts_path() -> Path:
    return get_data_dir() / "receipts.json"


def get_audit_log_path() -> Path:
    return get_data_dir() / "audit_log.jsonl"


def get_exports_dir() -> Path:
    return get_data_dir() / "exports"


def get_log_path() -> Path:
    return get_data_dir() / f"{APP_NAME}.log"


# --- Keyring helpers ---


def _get_keyring_api_key() -> str | None:
    """Try to get the remote API key from the OS keyring.

    Returns None on any failure (no backend, not stored, dbus errors, etc.).
    """
    try:
        import keyring

        return keyring.get_password(KEYRING_SERVICE, KEYRING_USERNAME)
    except Exception:
        return None


def _set_keyring_api_key(api_key: str) -> bool:
    """Store the remote API key in the OS keyring. Returns True on success."""
    try:
        import keyring

        keyring.set_password(KEYRING_SERVICE, KEYRING_USERNAME, api_key)
        return True
    except Exception:
        return False


def _delete_keyring_api_key() -> bool:
    """Remove the remote API key from the OS keyring. Returns True on success."""
    try:
        import keyring

        keyring.delete_password(KEYRING_SERVICE, KEYRING_USERNAME)
        return True
    except Exception:
        return False


def get_api_key() -> str:
    """Return the remote store API key.

    Priority: 1) PRO_RECEIPTS_API_KEY env var, 2) OS keyring.
    Raises KeyError if neither source has the key.
    """
    key = os.environ.get("PRO_RECEIPTS_API_KEY")
    if key:
        return key
    key = _get_keyring_api_key()
    if key:
        return key
    raise KeyError("PRO_RECEIPTS_API_KEY")


# --- YAML config ---


def load_yaml(path: Path) -> dict:
    """Load and parse a YAML file, returning the top-level dict."""
    return yaml.safe_load(path.read_text(encoding="utf-8")) or {}


def _os_user() -> str:
    try:
        return getpass.getuser()
    except (OSError, KeyError):
        return "unknown"


@dataclass(frozen=True)
class Settings:
    actor: str
    actor_id: str
    store: str = "local"
    remote_url: str = ""
    vat_percent: Decimal = Decimal("12")
    currency_symbol: str = "₱"

    @classmethod
    def from_dict(cls, d: dict) -> Settings:
        """Create Settings from settings.yaml, applying defaults for missing keys."""
        os_user = _os_user()
        remote = d.get("remote") or {}
        store = str(d.get("store", "local")).lower()
        if store not in ("local", "remote"):
            raise ValueError(f"settings.yaml: store must be 'local' or 'remote', got '{store}'")
        return cls(
            actor=os.environ.get("PRO_RECEIPTS_ACTOR") or d.get("actor") or os_user,
            actor_id=str(d.get("actor_id") or os_user),
            store=store,
            remote_url=str(remote.get("url", "")).rstrip("/"),
            vat_percent=parse_percent(d.get("vat_percent", 12)),
            currency_symbol=str(d.get("currency_symbol", "₱")),
        )


def get_settings_path() -> Path:
    return get_config_dir() / "settings.yaml"


def load_settings() -> Settings:
    """Load settings.yaml from the config dir; a missing file means all defaults."""
    path = get_settings_path()
    data = load_yaml(path) if path.is_file() else {}
    return Settings.from_dict(data)


def get_templates_path() -> Path:
    return get_config_dir() / "receipt_templates.yaml"


def build_service(settings: Settings | None = None):
    """Wire the configured store, audit log and actor into a ReceiptService."""
    from proreceipts.services.audit import LocalAuditLog, RestAuditLog
    from proreceipts.services.receipts import Actor, ReceiptService
    from proreceipts.services.rest_store import RestDocumentStore
    from proreceipts.services.store import LocalDocumentStore

    settings = settings or load_settings()
    actor = Actor(id=settings.actor_id, name=settings.actor)

    if settings.store == "remote":
        if not settings.remote_url:
            raise ValueError("settings.yaml: remote.url is required when store is 'remote'")
        api_key = get_api_key()
        store = RestDocumentStore(settings.remote_url, api_key)
        audit = RestAuditLog(settings.remote_url, api_key)
    else:
        store = LocalDocumentStore(get_receipts_path())
        audit = LocalAuditLog(get_audit_log_path())

    return ReceiptService(store, audit, actor)
