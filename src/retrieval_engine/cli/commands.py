"""
CLI commands - admin entry points for the retrieval engine.

Each command follows a consistent pattern:
1. Parse arguments
2. Load environment
3. Build only the components it needs
4. Print results
5. Return exit code
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import tarfile
from datetime import datetime, timezone
from pathlib import Path

from dotenv import load_dotenv

from retrieval_engine.config import EngineConfig
from retrieval_engine.errors import ConfigurationError

DEFAULT_BACKUP_DIR = os.path.join("backups", "vector-store")
BACKUP_PREFIX = "vector-store-"
BACKUP_SUFFIX = ".tar.gz"


def _load_env() -> None:
    """Load environment variables from .env files and configure logging."""
    load_dotenv()
    load_dotenv(".env.local")
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _build_engine(config: EngineConfig):
    from retrieval_engine.engine import RetrievalEngine

    return RetrievalEngine.from_config(config)


def _print_config_error(error: ConfigurationError) -> None:
    print("Configuration error:")
    for issue in error.issues:
        print(f"  - {issue}")


def run_stats_cli() -> int:
    """Print store statistics as JSON."""
    from retrieval_engine.retrieval import FileVectorStore

    _load_env()

    parser = argparse.ArgumentParser(description="Show vector store statistics")
    parser.parse_args()

    config = EngineConfig.from_env()
    store = FileVectorStore(config.storage_dir, dimension=config.embedding_dim)
    print(json.dumps(store.get_stats(), indent=2))
    return 0


def run_query_cli() -> int:
    """Run retrieve_relevant for one namespace and print the documents."""
    _load_env()

    parser = argparse.ArgumentParser(description="Query a business namespace")
    parser.add_argument("namespace", help="Business / namespace id")
    parser.add_argument("text", help="Query text")
    parser.add_argument("--limit", type=int, default=5, help="Maximum results")
    parser.add_argument("--context", action="store_true", help="Print the formatted chat context")
    args = parser.parse_args()

    try:
        engine = _build_engine(EngineConfig.from_env())
    except ConfigurationError as e:
        _print_config_error(e)
        return 1

    with engine:
        documents = engine.retrieve_relevant(args.namespace, args.text, limit=args.limit)
        if args.context:
            print(engine.format_context(documents))
        else:
            print(json.dumps([doc.to_dict() for doc in documents], indent=2))
    return 0


def run_validate_cli() -> int:
    """Check credentials, storage, embeddings and a test search."""
    from retrieval_engine.similarity import is_zero_vector

    _load_env()

    parser = argparse.ArgumentParser(description="Validate the vector store setup")
    parser.parse_args()

    config = EngineConfig.from_env()

    print("=" * 60)
    print("VECTOR STORE VALIDATION")
    print("=" * 60)

    key = config.openai_api_key
    has_key = bool(key) or config.use_mock_embeddings
    if key:
        print(f"  OPENAI_API_KEY: {key[:5]}...{key[-4:]}")
    elif config.use_mock_embeddings:
        print("  OPENAI_API_KEY: not set (mock embeddings)")
    else:
        print("  OPENAI_API_KEY: missing")

    storage_ok = config.storage_dir.is_dir()
    if storage_ok:
        files = [p for p in config.storage_dir.glob("*.json") if not p.name.startswith(".")]
        print(f"  Storage directory: {config.storage_dir} ({len(files)} namespace files)")
    else:
        print(f"  Storage directory: {config.storage_dir} does not exist")

    embeddings_ok = False
    search_ok = False
    try:
        engine = _build_engine(config)
    except ConfigurationError as e:
        _print_config_error(e)
        engine = None

    if engine is not None:
        embedding = engine.adapter.resolver.provider.try_embed("test embedding")
        embeddings_ok = embedding is not None and not is_zero_vector(embedding)
        if embeddings_ok:
            print(f"  Embeddings: {embedding.shape[0]} dimensions")

        with engine:
            namespaces = engine.get_store_stats()["perNamespace"]
            if namespaces and embeddings_ok:
                namespace_id = next(iter(namespaces))
                results = engine.retrieve_relevant(namespace_id, "business hours", limit=3)
                search_ok = bool(results)
                print(f"  Test search in {namespace_id}: {len(results)} results")
                if results:
                    print(f"    top: {results[0].type} (score {results[0].score:.3f})")

    checks = {
        "API key": has_key,
        "Storage directory": storage_ok,
        "Embeddings": embeddings_ok,
        "Vector search": search_ok,
    }
    print()
    for name, ok in checks.items():
        print(f"  [{'PASS' if ok else 'FAIL'}] {name}")

    if all(checks.values()):
        print("\n>>> VALIDATION: PASSED <<<")
        return 0
    print("\n>>> VALIDATION: FAILED <<<")
    return 1


def create_backup(source_dir: Path, backup_dir: Path, keep: int = 5) -> Path:
    """
    Write a tar.gz of `source_dir` into `backup_dir` and prune old archives.

    Only the newest `keep` archives are retained.
    """
    if not source_dir.is_dir():
        raise FileNotFoundError(f"Source directory {source_dir} does not exist")

    backup_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
    archive = backup_dir / f"{BACKUP_PREFIX}{timestamp}{BACKUP_SUFFIX}"

    with tarfile.open(archive, "w:gz") as tar:
        tar.add(source_dir, arcname=source_dir.name)

    backups = sorted(
        (p for p in backup_dir.iterdir() if p.name.startswith(BACKUP_PREFIX) and p.name.endswith(BACKUP_SUFFIX)),
        key=lambda p: p.name,
        reverse=True,
    )
    for old in backups[keep:]:
        old.unlink()
    return archive


def run_backup_cli() -> int:
    """Archive the storage directory, keeping the newest N backups."""
    _load_env()

    parser = argparse.ArgumentParser(description="Back up the vector store")
    parser.add_argument("--keep", type=int, default=5, help="Number of backups to keep")
    parser.add_argument("--dest", default=DEFAULT_BACKUP_DIR, help="Backup directory")
    args = parser.parse_args()

    config = EngineConfig.from_env()
    try:
        archive = create_backup(config.storage_dir, Path(args.dest), keep=args.keep)
    except (OSError, tarfile.TarError) as e:
        print(f"Backup failed: {e}")
        return 1

    size_mb = archive.stat().st_size / (1024 * 1024)
    print(f"Backup written to {archive} ({size_mb:.2f} MB)")
    return 0


def run_generate_offline_cli() -> int:
    """Fill embeddings for the most frequent query patterns."""
    _load_env()

    parser = argparse.ArgumentParser(description="Generate offline pattern embeddings")
    parser.add_argument("--limit", type=int, default=100, help="Number of popular patterns")
    args = parser.parse_args()

    try:
        engine = _build_engine(EngineConfig.from_env())
    except ConfigurationError as e:
        _print_config_error(e)
        return 1

    generated = engine.generate_offline_embeddings(limit=args.limit)
    print(f"Generated {generated} offline pattern embeddings")
    return 0


def main() -> int:
    """
    Main CLI entry point with subcommands.

    Usage:
        retrieval-engine stats
        retrieval-engine query <namespace> <text> [--limit N]
        retrieval-engine validate
        retrieval-engine backup [--keep 5]
        retrieval-engine generate-offline [--limit 100]
    """
    parser = argparse.ArgumentParser(
        description="Retrieval engine administration",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  stats             Namespace and vector counts
  query             Retrieve documents for a namespace
  validate          Check API key, storage, embeddings and search
  backup            Archive the storage directory
  generate-offline  Embed popular query patterns ahead of time

Examples:
  retrieval-engine query biz-123 "when are you open?"
  retrieval-engine backup --keep 10
        """,
    )

    parser.add_argument(
        "command",
        choices=["stats", "query", "validate", "backup", "generate-offline"],
        help="Command to run",
    )

    args, remaining = parser.parse_known_args()

    commands = {
        "stats": run_stats_cli,
        "query": run_query_cli,
        "validate": run_validate_cli,
        "backup": run_backup_cli,
        "generate-offline": run_generate_offline_cli,
    }

    # Re-inject remaining args for the subcommand
    sys.argv = [sys.argv[0]] + remaining

    try:
        return commands[args.command]()
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
