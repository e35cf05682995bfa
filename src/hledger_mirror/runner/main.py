"""
CLI main entry point.
"""

import argparse
import logging
import sys
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path

from ..balance import calculate_amount_hints, calculate_balance
from ..config import Config, ConfigValidationError, create_default_config, load_config
from ..fetchers import ApiNotSupportedError
from ..hledger_client import HledgerClient, HledgerError
from ..schemas import Posting, Profile, Transaction
from ..services import (
    SendError,
    SyncException,
    SyncIndeterminate,
    SyncOrchestrator,
    SyncResult,
    SyncRunning,
    TransactionSender,
)
from ..state_store import StateStore
from ..templates import TemplateFileError, TemplateMatcher, load_templates, validate_pattern

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_cli() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="hledger-mirror",
        description="Mirror an hledger-web server into a local cache",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # init-config command
    subparsers.add_parser("init-config", help="Write a default config file")

    # sync command
    subparsers.add_parser("sync", help="Fetch accounts and transactions from the server")

    # status command
    subparsers.add_parser("status", help="Show cache statistics and the last sync")

    # accounts command
    subparsers.add_parser("accounts", help="List cached accounts with balances")

    # import-templates command
    templates_parser = subparsers.add_parser(
        "import-templates", help="Store transaction templates from a YAML file"
    )
    templates_parser.add_argument("file", type=Path, help="YAML file with a 'templates' list")

    # match command
    match_parser = subparsers.add_parser(
        "match", help="Run stored templates against text and show the extracted transaction"
    )
    match_parser.add_argument(
        "--text",
        type=str,
        required=True,
        help="Text to match (e.g. an OCR'd receipt line)",
    )

    # balance command
    balance_parser = subparsers.add_parser(
        "balance", help="Fill in the missing amount of a transaction"
    )
    balance_parser.add_argument(
        "entries",
        nargs="+",
        metavar="ACCOUNT[=AMOUNT][@CUR]",
        help="Postings; leave out the amount of the posting that balances the rest",
    )

    # add command
    add_parser = subparsers.add_parser(
        "add", help="Balance a transaction, send it to the server and cache it"
    )
    add_parser.add_argument("--description", type=str, required=True)
    add_parser.add_argument("--comment", type=str, default=None)
    add_parser.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="Transaction date, YYYY-MM-DD (default: today)",
    )
    add_parser.add_argument(
        "entries",
        nargs="+",
        metavar="ACCOUNT[=AMOUNT][@CUR]",
    )

    return parser


def parse_entry(text: str, default_currency: str = "") -> Posting:
    """
    Parse ``ACCOUNT[=AMOUNT][@CUR]``.

    Raises:
        ValueError: The amount is not a number
    """
    rest, sep, currency = text.rpartition("@")
    if not sep:
        rest, currency = text, default_currency
    account, sep, amount_text = rest.partition("=")

    amount = None
    if sep and amount_text.strip():
        try:
            amount = Decimal(amount_text.replace(",", "").strip())
        except InvalidOperation:
            raise ValueError(f"Invalid amount in '{text}'") from None
    return Posting(account_name=account.strip(), amount=amount, currency=currency.strip())


def _parse_entries(entries: list[str], default_currency: str) -> list[Posting] | None:
    try:
        return [parse_entry(e, default_currency) for e in entries]
    except ValueError as e:
        print(f"❌ {e}")
        return None


def ensure_profile(store: StateStore, config: Config) -> Profile:
    """Create or refresh the stored profile from the config."""
    wanted = config.to_profile()
    existing = store.get_profile_by_name(config.profile_name)
    if existing is None:
        return store.create_profile(
            name=wanted.name,
            url=wanted.url,
            auth_user=wanted.auth_user,
            auth_password=wanted.auth_password,
            api_version=wanted.api_version,
            permit_posting=wanted.permit_posting,
            default_commodity=wanted.default_commodity,
        )

    profile = config.to_profile(existing.id)
    if profile != existing:
        store.update_profile(profile)
    return profile


def _client_factory(config: Config):
    def factory(profile: Profile) -> HledgerClient:
        return HledgerClient.from_profile(
            profile,
            timeout=config.server.timeout,
            max_retries=config.server.max_retries,
        )

    return factory


def _format_amount(amount: Decimal | None, currency: str) -> str:
    if amount is None:
        return "-"
    return f"{amount:f} {currency}".strip()


def cmd_init_config(config_path: Path) -> int:
    """Write a default config file."""
    if config_path.exists():
        print(f"⚠️  {config_path} already exists, not overwriting")
        return 1
    create_default_config(config_path)
    print(f"✓ Wrote default config to {config_path}")
    return 0


def cmd_sync(config: Config) -> int:
    """Mirror the server into the local cache."""
    store = StateStore(config.state_db_path)
    profile = ensure_profile(store, config)

    print(f"🔄 Syncing '{profile.name}' from {profile.url}")

    orchestrator = SyncOrchestrator(
        store,
        client_factory=_client_factory(config),
        batch_size=config.sync.persist_batch_size,
        poll_interval=config.sync.cancel_poll_seconds,
    )
    result = None
    last_percent = -1
    try:
        for event in orchestrator.sync(profile):
            if isinstance(event, SyncResult):
                result = event
            elif isinstance(event, SyncRunning):
                if event.total > 0:
                    percent = min(100, event.current * 100 // event.total)
                    if percent // 10 != last_percent // 10:
                        print(f"  {event.message}: {percent}%")
                        last_percent = percent
            elif isinstance(event, SyncIndeterminate):
                print(f"  {event.message}...")
    except SyncException as e:
        print(f"❌ Sync failed ({e.kind.value}): {e.message}")
        if e.is_retryable:
            print("   This error is usually temporary; try again later.")
        return 1
    except KeyboardInterrupt:
        print("⚠️  Sync cancelled")
        return 1
    finally:
        orchestrator.close()

    print()
    print("📊 Sync Results")
    print("=" * 40)
    print(f"  Accounts:      {result.account_count}")
    print(f"  Transactions:  {result.transaction_count}")
    print(f"  Generation:    {result.generation}")
    print(f"  Source:        {'journal HTML' if result.used_html else 'JSON API'}")
    print(f"  Duration:      {result.duration_ms}ms")
    print()
    print("✓ Sync completed successfully")
    return 0


def cmd_status(config: Config) -> int:
    """Show cache status."""
    store = StateStore(config.state_db_path)
    profile = store.get_profile_by_name(config.profile_name)
    if profile is None:
        print(f"⚠️  Profile '{config.profile_name}' has never been synced")
        return 0

    stats = store.get_stats(profile.id)
    sync_info = store.get_sync_info(profile.id)

    print(f"\n📊 Cache Status: {profile.name} ({profile.url})")
    print("=" * 40)
    print(f"  API version:   {profile.api_version.value}")
    print(f"  Accounts:      {stats['accounts']}")
    print(f"  Transactions:  {stats['transactions']}")
    print(f"  Postings:      {stats['postings']}")
    print(f"  Generation:    {stats['generation']}")
    if sync_info is not None:
        print(f"  Last sync:     {sync_info.synced_at}")
        print(
            f"                 {sync_info.transaction_count} transactions, "
            f"{sync_info.account_count} accounts"
        )
    else:
        print("  Last sync:     never")
    print()

    return 0


def cmd_accounts(config: Config) -> int:
    """List cached accounts."""
    store = StateStore(config.state_db_path)
    profile = store.get_profile_by_name(config.profile_name)
    if profile is None:
        print(f"⚠️  Profile '{config.profile_name}' has never been synced")
        return 0

    for account in store.get_accounts(profile.id):
        indent = "  " * account.level
        leaf = account.name.rsplit(":", 1)[-1]
        balances = ", ".join(_format_amount(a.amount, a.currency) for a in account.amounts)
        print(f"{indent}{leaf:<{max(1, 40 - len(indent))}} {balances}")

    return 0


def cmd_import_templates(config: Config, path: Path) -> int:
    """Store templates from a YAML file."""
    try:
        templates = load_templates(path)
    except (OSError, TemplateFileError) as e:
        print(f"❌ Failed to read templates: {e}")
        return 1

    store = StateStore(config.state_db_path)
    stored = 0
    for template in templates:
        error = validate_pattern(template.pattern)
        if error:
            print(f"⚠️  Skipping '{template.name}': {error}")
            continue
        store.save_template(template)
        stored += 1

    print(f"✓ Stored {stored} of {len(templates)} templates")
    return 0


def cmd_match(config: Config, text: str) -> int:
    """Run stored templates against text."""
    store = StateStore(config.state_db_path)
    templates = store.get_templates()
    matcher = TemplateMatcher()

    matched = matcher.find_match(text, templates)
    if matched is None:
        print(f"⚠️  No template matched ({len(templates)} tried)")
        return 1

    extracted = matcher.extract_transaction(matched, config.server.default_commodity)
    hints = calculate_amount_hints(extracted.lines)

    print(f"\n✓ Matched template '{matched.template.name}'")
    print("=" * 40)
    print(f"  Date:         {extracted.date.isoformat() if extracted.date else '-'}")
    print(f"  Description:  {extracted.description or '-'}")
    if extracted.comment:
        print(f"  Comment:      {extracted.comment}")
    for line, hint in zip(extracted.lines, hints):
        if line.amount is None and hint is not None:
            amount = f"({hint} {line.currency})" if line.currency else f"({hint})"
        else:
            amount = _format_amount(line.amount, line.currency)
        print(f"    {line.account_name or '?':<40} {amount}")
    print()

    return 0


def cmd_balance(config: Config, entries: list[str]) -> int:
    """Solve the missing amount of a transaction."""
    postings = _parse_entries(entries, config.server.default_commodity or "")
    if postings is None:
        return 1

    result = calculate_balance(postings)
    for line in result.lines:
        print(f"  {line.account_name:<40} {_format_amount(line.amount, line.currency)}")

    if not result.is_balanced:
        currencies = ", ".join(c or "(none)" for c in result.unbalanced_currencies)
        print(f"❌ Cannot balance: {currencies}")
        return 1

    print("✓ Balanced")
    return 0


def cmd_add(
    config: Config,
    entries: list[str],
    description: str,
    comment: str | None,
    tx_date: date | None,
) -> int:
    """Send a transaction to the server and append it to the cache."""
    postings = _parse_entries(entries, config.server.default_commodity or "")
    if postings is None:
        return 1

    store = StateStore(config.state_db_path)
    profile = ensure_profile(store, config)

    result = calculate_balance(postings)
    transaction = Transaction(
        ledger_id=0,
        date=tx_date or date.today(),
        description=description,
        comment=comment,
        postings=result.lines,
    )

    sender = TransactionSender(client_factory=_client_factory(config))
    try:
        version = sender.send(profile, transaction)
    except SendError as e:
        print(f"❌ {e}")
        return 1
    except (ApiNotSupportedError, HledgerError) as e:
        print(f"❌ Server rejected the transaction: {e}")
        return 1

    stored = store.append_local_transaction(profile.id, transaction)
    print(f"✓ Added transaction {stored.ledger_id} (API {version.value})")
    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_cli()
    parsed = parser.parse_args(args)

    setup_logging(parsed.verbose)

    if not parsed.command:
        parser.print_help()
        return 1

    if parsed.command == "init-config":
        return cmd_init_config(parsed.config)

    # Load config
    try:
        config = load_config(parsed.config)
        errors = config.validate()
        if errors:
            raise ConfigValidationError("; ".join(errors))
    except Exception as e:
        print(f"❌ Failed to load config: {e}")
        return 1

    # Route to command
    if parsed.command == "sync":
        return cmd_sync(config)
    elif parsed.command == "status":
        return cmd_status(config)
    elif parsed.command == "accounts":
        return cmd_accounts(config)
    elif parsed.command == "import-templates":
        return cmd_import_templates(config, parsed.file)
    elif parsed.command == "match":
        return cmd_match(config, parsed.text)
    elif parsed.command == "balance":
        return cmd_balance(config, parsed.entries)
    elif parsed.command == "add":
        return cmd_add(config, parsed.entries, parsed.description, parsed.comment, parsed.date)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
