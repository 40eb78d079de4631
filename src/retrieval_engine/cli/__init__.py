"""
CLI module - command-line administration.

Provides entry points for:
- Inspecting store statistics and running queries
- Validating a deployment
- Backups and offline embedding generation
"""

from retrieval_engine.cli.commands import (
    main,
    run_stats_cli,
    run_query_cli,
    run_validate_cli,
    run_backup_cli,
    run_generate_offline_cli,
)

__all__ = [
    "main",
    "run_stats_cli",
    "run_query_cli",
    "run_validate_cli",
    "run_backup_cli",
    "run_generate_offline_cli",
]
