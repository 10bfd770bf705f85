from __future__ import annotations

import getpass
import logging
import stat
import sys
from importlib.resources import files
from pathlib import Path

USAGE = """\
usage: pro-receipts [PRO]                 open the receipts screen (optionally for a PRO)
       pro-receipts init                  create config files and store the API key
       pro-receipts export <receipt-id>   export a stored receipt to a .doc file
"""

API_KEY_VAR = "PRO_RECEIPTS_API_KEY"


def _check_keyring_available() -> bool:
    """Check if keyring is installed with a usable backend."""
    try:
        import keyring
        from keyring.backends.fail import Keyring as FailKeyring

        return not isinstance(keyring.get_keyring(), FailKeyring)
    except Exception:
        return False


def _upsert_env_var(env_file: Path, key: str, value: str) -> None:
    """Set or update a key=value pair in a .env file, creating it if needed."""
    from dotenv import set_key

    env_file.parent.mkdir(parents=True, exist_ok=True)
    if not env_file.exists():
        env_file.touch()
    set_key(str(env_file), key, value)


def _remove_env_var(env_file: Path, key: str) -> None:
    from dotenv import unset_key

    if env_file.exists():
        unset_key(str(env_file), key)


def _warn_open_permissions(env_file: Path) -> None:
    """Warn if .env file has group/other read permissions (Unix only)."""
    try:
        mode = env_file.stat().st_mode
        if mode & (stat.S_IRGRP | stat.S_IROTH):
            print(f"\n  WARNING: {env_file} is readable by other users.")
            print("  Recommended: chmod 600", env_file)
    except OSError:
        pass


def _setup_api_key(config_dir: Path) -> bool:
    """Interactive remote API key setup. Returns True if a key was stored."""
    print()
    print("Remote store API key")
    print("────────────────────")
    print()

    api_key = getpass.getpass("API key (empty to skip): ").strip()
    if not api_key:
        print("  API key setup skipped.")
        return False

    env_file = config_dir / ".env"
    print()
    print("Where should the key be stored?")

    keyring_ok = _check_keyring_available()
    options: list[tuple[str, str]] = []
    if keyring_ok:
        options.append(("1", "System keychain (recommended)"))
    options.append(("2", ".env file in the config directory"))
    options.append(("3", f"Do not store (set {API_KEY_VAR} yourself)"))

    for num, label in options:
        print(f"  {num}. {label}")
    if not keyring_ok:
        print()
        print("  Note: no usable system keychain backend found.")

    print()
    valid_choices = [num for num, _ in options]
    choice = ""
    while choice not in valid_choices:
        choice = input(f"Choose [{'/'.join(valid_choices)}]: ").strip()

    from proreceipts.config import _delete_keyring_api_key, _set_keyring_api_key

    match choice:
        case "1":
            if _set_keyring_api_key(api_key):
                print("  API key stored in the system keychain.")
                _remove_env_var(env_file, API_KEY_VAR)
                return True
            print("  ERROR: keychain write failed, saving to .env instead.")
            _upsert_env_var(env_file, API_KEY_VAR, api_key)
            _warn_open_permissions(env_file)
        case "2":
            _upsert_env_var(env_file, API_KEY_VAR, api_key)
            print(f"  API key saved to {env_file}")
            _warn_open_permissions(env_file)
            _delete_keyring_api_key()
        case _:
            _remove_env_var(env_file, API_KEY_VAR)
            _delete_keyring_api_key()
            print("  API key not stored.")
            print(f"  Set {API_KEY_VAR} in your shell or .env before using the remote store.")
            return False
    return True


def _init_config() -> None:
    """Copy bundled config templates to the user's config/data directories."""
    from proreceipts.config import get_config_dir, get_data_dir

    config_dir = get_config_dir()
    data_dir = get_data_dir()
    templates = files("proreceipts") / "templates"

    config_dir.mkdir(parents=True, exist_ok=True)
    data_dir.mkdir(parents=True, exist_ok=True)

    copied = 0
    for name in ["settings.yaml.example", "receipt_templates.yaml.example"]:
        dest = config_dir / name
        if dest.exists():
            print(f"  exists:  {dest}")
            continue
        with (templates / name).open("rb") as f:
            dest.write_bytes(f.read())
        print(f"  created: {dest}")
        copied += 1

    print()
    print(f"Config: {config_dir}")
    print(f"Data:   {data_dir}")

    print()
    try:
        answer = input("Configure a remote store API key now? [y/N]: ").strip().lower()
        if answer in ("y", "yes"):
            _setup_api_key(config_dir)
    except (EOFError, KeyboardInterrupt):
        print()

    print()
    if copied:
        print("Next steps:")
        print(f"  1. cp {config_dir / 'settings.yaml.example'} {config_dir / 'settings.yaml'}")
        print("  2. Edit settings.yaml (your name, local or remote store)")
        print("  3. Run: pro-receipts <PRO>")
    else:
        print("No new files created (all already existed).")


def _preflight() -> bool:
    """Verify settings before launching the TUI.

    Auto-creates the data directory. Returns False with a helpful message
    when settings.yaml is invalid or the remote store is not configured.
    """
    import yaml

    from proreceipts.config import get_api_key, get_data_dir, get_settings_path, load_settings

    data_dir = get_data_dir()
    data_dir.mkdir(parents=True, exist_ok=True)

    try:
        settings = load_settings()
    except (yaml.YAMLError, ValueError) as e:
        print(f"Error: invalid {get_settings_path()}: {e}")
        return False

    if settings.store == "remote":
        if not settings.remote_url:
            print(f"Error: remote.url is not set in {get_settings_path()}")
            return False
        try:
            get_api_key()
        except KeyError:
            print(f"Error: remote store selected but {API_KEY_VAR} is not set.")
            print("Run 'pro-receipts init' to store the API key.")
            return False
    return True


def _configure_logging() -> None:
    """Send library logs to the data dir log file so they stay off the TUI."""
    from proreceipts.config import get_log_path

    log_path = get_log_path()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root = logging.getLogger("proreceipts")
    root.setLevel(logging.INFO)
    root.addHandler(handler)


def _export(receipt_id: str) -> int:
    from proreceipts.config import build_service, load_settings
    from proreceipts.services.exceptions import NotFoundError, ReceiptError
    from proreceipts.services.export import export_receipt

    settings = load_settings()
    service = build_service(settings)
    try:
        document = service.get(receipt_id)
    except NotFoundError:
        print(f"Error: receipt {receipt_id} not found")
        return 1
    except ReceiptError as e:
        print(f"Error: {e}")
        return 1
    path = export_receipt(document, symbol=settings.currency_symbol)
    print(path)
    return 0


def main() -> None:
    """Entry point for the pro-receipts CLI/TUI."""
    args = sys.argv[1:]
    if args and args[0] in ("-h", "--help"):
        print(USAGE, end="")
        return
    if args and args[0] == "init":
        _init_config()
        return

    if not _preflight():
        sys.exit(1)
    _configure_logging()

    if args and args[0] == "export":
        if len(args) != 2:
            print(USAGE, end="")
            sys.exit(2)
        sys.exit(_export(args[1]))

    from proreceipts.tui.app import ReceiptsApp

    app = ReceiptsApp(pro_number=args[0] if args else "")
    app.run()


if __name__ == "__main__":
    main()
