"""
Command-line interface for cardsafe.

Provides commands to initialize the record store, create, verify, restore,
list, rotate and export encrypted backups, and manage the auto-backup
schedule.

Uses Python's argparse module (no external CLI libraries).
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, NoReturn

from cardsafe import __version__
from cardsafe.backup import BackupError, BackupManager
from cardsafe.config.settings import (
    ConfigurationError,
    Settings,
    get_config_path,
    load_config,
    save_config,
)
from cardsafe.scheduler import Scheduler, SchedulerError
from cardsafe.storage import (
    Credential,
    PasswordHasher,
    RecordStore,
    StorageError,
    check_strength,
    validate_password,
)

logger = logging.getLogger(__name__)

PASSWORD_ENV_VAR = "CARDSAFE_BACKUP_PASSWORD"

# Global verbosity settings (set during main() based on args)
_quiet_mode = False


def set_output_mode(quiet: bool = False) -> None:
    """Set whether non-essential output is suppressed."""
    global _quiet_mode
    _quiet_mode = quiet


def output(message: str = "", force: bool = False) -> None:
    """
    Print a message to stdout, respecting quiet mode.

    Args:
        message: The message to print.
        force: If True, print even in quiet mode (for essential output like JSON).
    """
    if force or not _quiet_mode:
        print(message)


def output_error(message: str) -> None:
    """Print an error message (always shown, even in quiet mode)."""
    print(message, file=sys.stderr)


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for the cardsafe CLI."""
    parser = argparse.ArgumentParser(
        prog="cardsafe",
        description="Encrypted backup and restore for ID-card records",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"cardsafe {__version__}",
    )

    parser.add_argument(
        "--config",
        metavar="PATH",
        help="Override config file location (default: ~/.cardsafe/config.yaml)",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase output verbosity (can be repeated)",
    )

    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress non-essential output",
    )

    subparsers = parser.add_subparsers(
        title="commands",
        dest="command",
        metavar="<command>",
    )

    # info command
    info_parser = subparsers.add_parser(
        "info",
        help="Show configuration and storage information",
        description="Display version, paths, record counts and backup status.",
    )
    info_parser.add_argument("--json", action="store_true", help="Output as JSON")
    info_parser.set_defaults(func=cmd_info)

    # init command
    init_parser = subparsers.add_parser(
        "init",
        help="Initialize configuration and the record database",
        description="Write a default config file, create the database and seed default fields.",
    )
    init_parser.add_argument(
        "--admin",
        metavar="USER",
        help="Also create a login credential for USER",
    )
    init_parser.set_defaults(func=cmd_init)

    # backup command
    backup_parser = subparsers.add_parser(
        "backup",
        help="Create an encrypted backup",
        description="Snapshot all records into an encrypted .bak file.",
    )
    backup_parser.add_argument(
        "--auto",
        action="store_true",
        help="Unattended mode: read the password from the environment or "
        "password file, rotate old backups, never prompt",
    )
    backup_parser.add_argument(
        "--keep",
        type=int,
        metavar="N",
        help="Delete all but the N newest backups afterwards (default for --auto: from config)",
    )
    backup_parser.set_defaults(func=cmd_backup)

    # restore command
    restore_parser = subparsers.add_parser(
        "restore",
        help="Restore records from a backup",
        description="Decrypt a backup and merge its records into the database. "
        "Existing records not in the backup are kept.",
    )
    restore_parser.add_argument("backup_file", metavar="FILE", help="Path to .bak file")
    restore_parser.add_argument(
        "--force",
        action="store_true",
        help="Skip confirmation prompt",
    )
    restore_parser.set_defaults(func=cmd_restore)

    # verify command
    verify_parser = subparsers.add_parser(
        "verify",
        help="Check that a backup can be decrypted",
        description="Decrypt a backup and report its contents without restoring.",
    )
    verify_parser.add_argument("backup_file", metavar="FILE", help="Path to .bak file")
    verify_parser.add_argument("--json", action="store_true", help="Output as JSON")
    verify_parser.set_defaults(func=cmd_verify)

    # list command
    list_parser = subparsers.add_parser(
        "list",
        help="List backups, newest first",
        description="List backup files in the backup directory.",
    )
    list_parser.add_argument("--json", action="store_true", help="Output as JSON")
    list_parser.set_defaults(func=cmd_list)

    # cleanup command
    cleanup_parser = subparsers.add_parser(
        "cleanup",
        help="Delete old backups",
        description="Keep only the N most recent backups.",
    )
    cleanup_parser.add_argument(
        "--keep",
        type=int,
        metavar="N",
        help="Number of backups to keep (default: from config)",
    )
    cleanup_parser.add_argument(
        "--force",
        action="store_true",
        help="Skip confirmation prompt",
    )
    cleanup_parser.set_defaults(func=cmd_cleanup)

    # export command
    export_parser = subparsers.add_parser(
        "export",
        help="Copy a backup file elsewhere",
        description="Copy a backup file byte for byte to another location.",
    )
    export_parser.add_argument("source", metavar="SOURCE", help="Backup file to copy")
    export_parser.add_argument("destination", metavar="DEST", help="Destination path")
    export_parser.set_defaults(func=cmd_export)

    # schedule command
    schedule_parser = subparsers.add_parser(
        "schedule",
        help="Configure scheduled auto-backup",
        description="Install or remove a crontab entry running 'cardsafe backup --auto'.",
    )
    schedule_group = schedule_parser.add_mutually_exclusive_group()
    schedule_group.add_argument(
        "--enable",
        choices=["hourly", "daily", "weekly"],
        metavar="INTERVAL",
        help="Enable auto-backup (hourly, daily or weekly)",
    )
    schedule_group.add_argument(
        "--disable",
        action="store_true",
        help="Disable auto-backup",
    )
    schedule_group.add_argument(
        "--status",
        action="store_true",
        help="Show schedule status (default)",
    )
    schedule_parser.set_defaults(func=cmd_schedule)

    return parser


def setup_logging(verbose: int, quiet: bool) -> None:
    """Configure logging based on verbosity level."""
    if quiet:
        level = logging.ERROR
    elif verbose == 0:
        level = logging.WARNING
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _load_settings(args: argparse.Namespace) -> Settings:
    config_path = Path(args.config) if args.config else None
    settings = load_config(config_path)
    # -v and -q take precedence over the configured level
    if not args.verbose and not args.quiet:
        logging.getLogger("cardsafe").setLevel(settings.log_level)
    return settings


def _config_dir(args: argparse.Namespace) -> Path:
    config_path = Path(args.config) if args.config else get_config_path()
    return config_path.parent


def _open_manager(settings: Settings) -> tuple[RecordStore, BackupManager]:
    hasher = PasswordHasher(settings.security.password_hash_iterations)
    store = RecordStore(Path(settings.data_dir).expanduser(), hasher=hasher)
    return store, BackupManager(store, settings.backup_dir)


def get_unattended_password(settings: Settings) -> str | None:
    """
    Backup password for non-interactive use.

    Checks CARDSAFE_BACKUP_PASSWORD first, then the configured password file.

    Raises:
        ConfigurationError: If the password file is set but cannot be read.
    """
    password = os.environ.get(PASSWORD_ENV_VAR)
    if password:
        return password

    if settings.backup.password_file:
        path = Path(settings.backup.password_file).expanduser()
        try:
            password = path.read_text(encoding="utf-8").rstrip("\r\n")
        except OSError as e:
            raise ConfigurationError(f"Cannot read backup password file: {e}") from e
        return password or None

    return None


def prompt_backup_password(settings: Settings, confirm: bool = False) -> str:
    """Backup password from the environment, password file or an interactive prompt."""
    password = get_unattended_password(settings)
    if password:
        return password

    while True:
        password = getpass.getpass("Backup password: ")
        if not password:
            output_error("Error: Password is required.")
            continue
        if not confirm:
            return password

        strength = check_strength(password)
        if strength["strength"] == "weak":
            output("Warning: this password is weak. Consider mixing upper and lower "
                   "case, digits and symbols.")

        if getpass.getpass("Confirm password: ") != password:
            output_error("Error: Passwords do not match.")
            continue
        return password


def cmd_info(args: argparse.Namespace) -> int:
    """Show configuration and storage information."""
    import platform as platform_module

    settings = _load_settings(args)
    info: dict[str, Any] = {
        "version": __version__,
        "python_version": platform_module.python_version(),
        "config_file": str(Path(args.config) if args.config else get_config_path()),
        "data_dir": settings.data_dir,
        "backup_dir": str(settings.backup_dir),
        "keep_count": settings.backup.keep_count,
        "records": None,
        "backups": 0,
        "latest_backup": None,
        "schedule": Scheduler(_config_dir(args)).get_schedule_status().to_dict(),
    }

    try:
        store, manager = _open_manager(settings)
        info["records"] = store.counts()
        backups = manager.list_backups()
        info["backups"] = len(backups)
        if backups:
            info["latest_backup"] = backups[0].filename
    except StorageError as e:
        info["records"] = {"error": str(e)}

    if args.json:
        output(json.dumps(info, indent=2, default=str), force=True)
        return 0

    output("cardsafe System Information")
    output("=" * 60)
    output()
    output(f"Version: {info['version']}")
    output(f"Python: {info['python_version']}")
    output()
    output("Paths:")
    output(f"  Config file: {info['config_file']}")
    output(f"  Data directory: {info['data_dir']}")
    output(f"  Backup directory: {info['backup_dir']}")
    output()
    records = info["records"] or {}
    if "error" in records:
        output(f"Records: unavailable ({records['error']})")
    else:
        output("Records:")
        for name, count in records.items():
            output(f"  {name}: {count:,}")
    output()
    output(f"Backups: {info['backups']} (keeping {info['keep_count']})")
    if info["latest_backup"]:
        output(f"  Latest: {info['latest_backup']}")
    schedule = info["schedule"]
    if schedule["enabled"]:
        output(f"Auto-backup: {schedule['interval']}, next run {schedule['next_run']}")
    else:
        output("Auto-backup: disabled")

    return 0


def cmd_init(args: argparse.Namespace) -> int:
    """Initialize configuration and the record database."""
    output("cardsafe Initialization")
    output("=" * 50)
    output()

    config_path = Path(args.config) if args.config else get_config_path()
    if config_path.exists():
        output(f"Configuration file exists: {config_path}")
    else:
        save_config(Settings(), config_path)
        output(f"Configuration file created: {config_path}")

    settings = load_config(config_path)
    store, manager = _open_manager(settings)
    output(f"Database: {store.db_path}")

    created = store.seed_default_fields()
    if created:
        output(f"Created {created} default field(s)")

    backup_dir = manager.get_backup_directory()
    output(f"Backup directory: {backup_dir}")

    if args.admin:
        output()
        output(f"Creating login for '{args.admin}'")
        while True:
            password = getpass.getpass("Enter password: ")
            try:
                validate_password(password)
            except ValueError as e:
                output_error(f"Error: {e}")
                continue
            if getpass.getpass("Confirm password: ") != password:
                output_error("Error: Passwords do not match.")
                continue
            break

        asyncio.run(store.upsert_credential(Credential(username=args.admin, password=password)))
        output(f"Login '{args.admin}' saved.")

    output()
    output("Initialization complete.")
    return 0


def cmd_backup(args: argparse.Namespace) -> int:
    """Create an encrypted backup."""
    settings = _load_settings(args)
    _, manager = _open_manager(settings)

    if args.keep is not None and args.keep < 0:
        output_error("Error: --keep must not be negative.")
        return 1

    if args.auto:
        return _run_auto_backup(args, settings, manager)

    password = prompt_backup_password(settings, confirm=True)

    output("Creating backup...")
    result = manager.create_backup(password)

    output()
    output("Backup created successfully!")
    output()
    output(f"  File: {result.path}")
    output(f"  Size: {result.size_bytes:,} bytes")
    output(f"  Timestamp: {result.timestamp}")

    if args.keep is not None:
        cleanup = manager.cleanup_old_backups(args.keep)
        if cleanup.deleted:
            output(f"  Deleted {cleanup.deleted} old backup(s)")

    output()
    output("To restore from this backup, run:")
    output(f"  cardsafe restore {result.path}")
    return 0


def _run_auto_backup(
    args: argparse.Namespace,
    settings: Settings,
    manager: BackupManager,
) -> int:
    scheduler = Scheduler(_config_dir(args))

    if not settings.backup.auto_backup:
        output("Auto-backup is disabled in configuration.")
        return 0

    password = get_unattended_password(settings)
    if not password:
        message = (
            f"No backup password available. Set {PASSWORD_ENV_VAR} "
            "or backup.password_file in the configuration."
        )
        scheduler.record_run(False, message)
        output_error(f"Error: {message}")
        return 1

    keep = args.keep if args.keep is not None else settings.backup.keep_count
    result = manager.auto_backup(password, keep_count=keep)
    scheduler.record_run(result.success, result.error)

    if not result.success:
        output_error(f"Auto backup failed: {result.error}")
        return 1

    output(f"Backup created: {result.path}")
    return 0


def cmd_restore(args: argparse.Namespace) -> int:
    """Restore records from a backup."""
    backup_path = Path(args.backup_file)

    if not backup_path.is_file():
        output_error(f"Error: Backup file not found: {backup_path}")
        return 1

    settings = _load_settings(args)
    _, manager = _open_manager(settings)

    output("cardsafe Restore")
    output("=" * 50)
    output()
    output(f"Backup file: {backup_path}")
    output()

    password = prompt_backup_password(settings)

    # Check the password before asking for confirmation
    check = manager.verify_backup(backup_path, password)
    if not check.valid:
        output_error(f"Error: {check.error}")
        return 1

    output("Backup information:")
    output(f"  Created: {check.timestamp}")
    output(f"  Version: {check.version}")
    for name, count in check.data_count.items():
        output(f"  {name}: {count}")
    output()

    if not args.force:
        output("Records in the backup will be merged into the current database.")
        output("Existing records with the same id, name, username or label are overwritten.")
        response = input("Proceed with restore? [y/N]: ").strip().lower()
        if response not in ("y", "yes"):
            output("Restore cancelled.")
            return 0

    output()
    output("Restoring...")
    result = asyncio.run(manager.restore_backup(backup_path, password))

    output()
    output("Restore completed successfully!")
    output()
    for name, count in result.restored.to_dict().items():
        output(f"  {name}: {count}")

    if result.restored.failures:
        output()
        output(f"{len(result.restored.failures)} record(s) could not be restored:")
        for failure in result.restored.failures:
            key = f" ({failure.key})" if failure.key else ""
            output(f"  - {failure.entity} #{failure.index}{key}: {failure.error}")

    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    """Check that a backup can be decrypted."""
    settings = _load_settings(args)
    _, manager = _open_manager(settings)

    password = prompt_backup_password(settings)
    result = manager.verify_backup(Path(args.backup_file), password)

    if args.json:
        output(json.dumps(result.to_dict(), indent=2), force=True)
        return 0 if result.valid else 1

    if not result.valid:
        output_error(f"Backup is not valid: {result.error}")
        return 1

    output("Backup is valid.")
    output(f"  Version: {result.version}")
    output(f"  Created: {result.timestamp}")
    for name, count in result.data_count.items():
        output(f"  {name}: {count}")
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    """List backups, newest first."""
    settings = _load_settings(args)
    _, manager = _open_manager(settings)
    backups = manager.list_backups()

    if args.json:
        output(json.dumps([info.to_dict() for info in backups], indent=2), force=True)
        return 0

    if not backups:
        output(f"No backups found in {settings.backup_dir}")
        return 0

    output(f"Backups in {settings.backup_dir}:")
    output()
    for info in backups:
        modified = info.modified.strftime("%Y-%m-%d %H:%M:%S")
        output(f"  {info.filename}  {info.size:>10,} bytes  {modified}")
    output()
    output(f"Total: {len(backups)}")
    return 0


def cmd_cleanup(args: argparse.Namespace) -> int:
    """Delete old backups."""
    settings = _load_settings(args)
    _, manager = _open_manager(settings)

    keep = args.keep if args.keep is not None else settings.backup.keep_count
    if keep < 0:
        output_error("Error: --keep must not be negative.")
        return 1

    to_delete = manager.list_backups()[keep:]
    if not to_delete:
        output(f"Nothing to clean up (keeping {keep} most recent).")
        return 0

    output(f"The following {len(to_delete)} backup(s) will be deleted:")
    for info in to_delete:
        output(f"  - {info.filename}")
    output()

    if not args.force:
        response = input("Proceed? [y/N]: ").strip().lower()
        if response not in ("y", "yes"):
            output("Cleanup cancelled.")
            return 0

    result = manager.cleanup_old_backups(keep)
    output(f"Deleted {result.deleted} backup(s).")
    if result.failed:
        output_error(f"Could not delete {len(result.failed)} backup(s):")
        for path in result.failed:
            output_error(f"  - {path}")
        return 1
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    """Copy a backup file elsewhere."""
    settings = _load_settings(args)
    _, manager = _open_manager(settings)

    source = Path(args.source)
    destination = Path(args.destination)
    if destination.is_dir():
        destination = destination / source.name

    manager.export_backup(source, destination)
    output(f"Backup exported to {destination}")
    return 0


def cmd_schedule(args: argparse.Namespace) -> int:
    """Configure scheduled auto-backup."""
    settings = _load_settings(args)
    scheduler = Scheduler(_config_dir(args))

    if args.enable:
        if not get_unattended_password(settings):
            output(f"Warning: scheduled runs need {PASSWORD_ENV_VAR} in the cron "
                   "environment or backup.password_file in the configuration.")
        status = scheduler.install_schedule(args.enable)
        output(f"Auto-backup enabled ({status.interval}).")
        if status.next_run:
            output(f"Next run: {status.next_run.isoformat()}")
        return 0

    if args.disable:
        scheduler.uninstall_schedule()
        output("Auto-backup disabled.")
        return 0

    status = scheduler.get_schedule_status()
    output("Auto-backup Schedule")
    output("=" * 50)
    output(f"  Enabled: {'Yes' if status.enabled else 'No'}")
    output(f"  Interval: {status.interval}")
    if status.next_run:
        output(f"  Next run: {status.next_run.isoformat()}")
    if status.last_run:
        result = "succeeded" if status.last_run_success else "failed"
        output(f"  Last run: {status.last_run.isoformat()} ({result})")
        if status.last_run_error:
            output(f"  Last error: {status.last_run_error}")
    return 0


def main() -> NoReturn:
    """Main entry point for the cardsafe CLI."""
    parser = create_parser()
    args = parser.parse_args()

    setup_logging(args.verbose, args.quiet)
    set_output_mode(args.quiet)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    try:
        exit_code = args.func(args)
        sys.exit(exit_code)
    except KeyboardInterrupt:
        output("\nOperation cancelled.")
        sys.exit(130)
    except ConfigurationError as e:
        output_error(f"Configuration error: {e}")
        sys.exit(2)
    except (BackupError, StorageError, SchedulerError) as e:
        output_error(f"Error: {e}")
        sys.exit(1)
    except Exception as e:
        if args.verbose > 0:
            raise
        output_error(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
