"""
Account Merge Tool

Merges a source forum account into a target account with support for:
- Dry-run mode reporting what would move
- Accounts named by id, slug or email
- Standalone karma recomputation
- JSON logging with one correlation ID per run
- Pushgateway metrics

Usage:
    merge-accounts merge --source alice-alt --target alice --dry-run
    merge-accounts merge --source 5c1a... --target 4f9e...
    merge-accounts karma --user alice
    merge-accounts lookup --user alice@example.com
"""

import argparse
import json
import logging
import sys
from typing import Dict, Any, List, Optional

from hvac.exceptions import VaultError

from account_merge.config import MergeConfig
from account_merge.errors import MergeError, ValidationError
from account_merge.monitoring.metrics import MergeMetrics
from account_merge.reconciliation.identities import find_identity
from account_merge.reconciliation.karma import KarmaAggregator
from account_merge.reconciliation.orchestrator import MergeOrchestrator, MergeResult, MergeState
from account_merge.store.base import DocumentStore
from account_merge.store.postgres import PostgresDocumentStore
from account_merge.utils.correlation import CorrelationContext
from account_merge.utils.logging import configure_logging
from account_merge.utils.vault_client import VaultClient

logger = logging.getLogger(__name__)


class MergeTool:
    """Command implementations behind the CLI."""

    def __init__(
        self,
        config: MergeConfig,
        store: Optional[DocumentStore] = None,
        metrics: Optional[MergeMetrics] = None
    ):
        """
        Initialize the tool.

        Args:
            config: Runtime configuration
            store: Document store to use instead of the configured PostgreSQL one
            metrics: Metrics sink (a fresh registry if not provided)
        """
        self.config = config
        self._store = store
        self.metrics = metrics or MergeMetrics()

    @property
    def store(self) -> DocumentStore:
        if self._store is None:
            self._store = self.open_store()
        return self._store

    def open_store(self) -> PostgresDocumentStore:
        """
        Build the PostgreSQL store from config, pulling credentials from Vault
        when a Vault path is configured.

        Raises:
            ValidationError: If no store is configured
        """
        credentials: Dict[str, Any] = {}

        if self.config.vault_path:
            vault = VaultClient(mount_point=self.config.vault_mount_point)
            status = vault.health_check()
            if not status:
                raise ValidationError(f"Vault is not usable: {status.error}")
            credentials = vault.get_store_credentials(self.config.vault_path)

        if not self.config.postgres_dsn and not credentials:
            raise ValidationError(
                "No document store configured: set MERGE_POSTGRES_DSN, --postgres-dsn or a Vault path"
            )

        return PostgresDocumentStore(
            dsn=self.config.postgres_dsn,
            schema=self.config.postgres_schema,
            **credentials
        )

    def close(self) -> None:
        if isinstance(self._store, PostgresDocumentStore):
            self._store.close()

    def merge(self, source_ref: str, target_ref: str, dry_run: bool) -> MergeResult:
        """
        Merge two accounts named by id, slug or email.

        Returns:
            MergeResult
        """
        source = find_identity(self.store, source_ref)
        target = find_identity(self.store, target_ref)

        with CorrelationContext():
            orchestrator = MergeOrchestrator(
                self.store,
                editable_fields=self.config.editable_fields,
                metrics=self.metrics
            )
            result = orchestrator.merge_accounts(source["_id"], target["_id"], dry_run)

        self.push_metrics()
        return result

    def karma(self, user_ref: str) -> Dict[str, Any]:
        """Recompute a user's karma without changing anything."""
        user = find_identity(self.store, user_ref)
        recomputed = KarmaAggregator(self.store).compute_reputation(user["_id"])
        return {
            "user_id": user["_id"],
            "slug": user.get("slug"),
            "stored_karma": user.get("karma"),
            "recomputed_karma": recomputed,
        }

    def lookup(self, user_ref: str) -> Dict[str, Any]:
        """Show the account a reference resolves to."""
        user = find_identity(self.store, user_ref)
        return {
            "user_id": user["_id"],
            "slug": user.get("slug"),
            "old_slugs": user.get("oldSlugs") or [],
            "email": user.get("email"),
            "karma": user.get("karma"),
            "deleted": bool(user.get("deleted")),
        }

    def push_metrics(self) -> None:
        if not self.config.pushgateway_url:
            return
        try:
            self.metrics.push(self.config.pushgateway_url)
        except Exception as e:
            # Metrics are best effort; the merge itself has already happened
            logger.warning(f"Metrics push failed: {e}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="merge-accounts",
        description="Merge forum accounts and recompute karma",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--postgres-dsn", help="PostgreSQL connection string")
    parser.add_argument("--schema", help="Schema holding the collection tables")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    merge_parser = subparsers.add_parser("merge", help="Merge a source account into a target account")
    merge_parser.add_argument("--source", required=True, help="Account to merge away (id, slug or email)")
    merge_parser.add_argument("--target", required=True, help="Surviving account (id, slug or email)")
    merge_parser.add_argument("--dry-run", action="store_true", help="Only report counts")

    karma_parser = subparsers.add_parser("karma", help="Recompute a user's karma")
    karma_parser.add_argument("--user", required=True, help="User id, slug or email")

    lookup_parser = subparsers.add_parser("lookup", help="Resolve a user reference")
    lookup_parser.add_argument("--user", required=True, help="User id, slug or email")

    return parser


def main(argv: Optional[List[str]] = None, store: Optional[DocumentStore] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        config = MergeConfig.load(args.config)
    except (OSError, MergeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.postgres_dsn:
        config.postgres_dsn = args.postgres_dsn
    if args.schema:
        config.postgres_schema = args.schema

    configure_logging(verbose=args.verbose, json_logging=config.json_logging)

    tool = MergeTool(config, store=store)

    try:
        if args.command == "merge":
            result = tool.merge(args.source, args.target, dry_run=args.dry_run)
            print(json.dumps(result.to_dict(), indent=2, default=str))
            return 0 if result.state == MergeState.COMPLETE else 1

        elif args.command == "karma":
            print(json.dumps(tool.karma(args.user), indent=2, default=str))

        elif args.command == "lookup":
            print(json.dumps(tool.lookup(args.user), indent=2, default=str))

        return 0

    except (MergeError, VaultError, ValueError) as e:
        logger.error(f"Error: {e}", exc_info=args.verbose)
        return 1

    finally:
        tool.close()


if __name__ == "__main__":
    sys.exit(main())
