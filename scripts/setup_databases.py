#!/usr/bin/env python3
"""
Database setup script for the Japanese Real Estate harvester.

This script prepares the MongoDB database used by the harvester: it creates
the listings, details and crawl state collections together with the
secondary indexes used by the detail enrichment queries.

Features:
- Creates the harvest collections and their indexes
- Shows document counts and the crawl progress with --check
- Optionally saves connection settings to a local config file
- Safe to run multiple times (idempotent)

Usage:
    python setup_databases.py                # Setup
    python setup_databases.py --check        # Check database status only
    python setup_databases.py --reconfigure  # Prompt for connection details

Author: Leonardo Pacciani-Mori
License: MIT
"""

import sys
import os
from pathlib import Path

# Add parent directories to path for imports
_script_dir = Path(__file__).parent.resolve()
_project_root = _script_dir.parent
sys.path.insert(0, str(_project_root / "src"))

import argparse
import json
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.prompt import Prompt, Confirm


console = Console()


# =============================================================================
# CONFIGURATION FILE HANDLING
# =============================================================================

def get_config_path() -> Path:
    """Get the path to the configuration file."""
    config_dir = Path.home() / ".config" / "japanese-real-estate"
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir / "db_config.json"


def load_config() -> dict:
    """Load configuration from file."""
    config_path = get_config_path()
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def save_config(config: dict) -> None:
    """Save configuration to file."""
    config_path = get_config_path()
    with open(config_path, "w") as f:
        json.dump(config, f, indent=2)
    # Owner read/write only
    config_path.chmod(0o600)


def get_mongodb_config(force_prompt: bool = False) -> dict:
    """
    Get MongoDB configuration from the config file, or the settings defaults.

    Args:
        force_prompt: If True, prompt for new configuration

    Returns:
        dict with host, port, username, password, auth_source and
        database_name keys
    """
    from japanese_real_estate.config.settings import (
        MONGODB_HOST,
        MONGODB_PORT,
        MONGODB_USER,
        MONGODB_PASSWORD,
        MONGODB_AUTH_SOURCE,
        MONGODB_DATABASE_NAME,
    )

    config = load_config()
    mongo_config = config.get("mongodb", {})
    defaults = {
        "host": MONGODB_HOST,
        "port": MONGODB_PORT,
        "username": MONGODB_USER,
        "password": MONGODB_PASSWORD,
        "auth_source": MONGODB_AUTH_SOURCE,
        "database_name": MONGODB_DATABASE_NAME,
    }

    if not force_prompt:
        return {**defaults, **mongo_config}

    console.print("\n[bold cyan]MongoDB Configuration[/bold cyan]")
    console.print("Enter MongoDB connection details (press Enter for defaults):\n")

    mongo_config = {}
    mongo_config["host"] = Prompt.ask("  Host", default=defaults["host"])
    mongo_config["port"] = int(Prompt.ask("  Port", default=str(defaults["port"])))
    mongo_config["database_name"] = Prompt.ask(
        "  Database name",
        default=defaults["database_name"]
    )
    mongo_config["username"] = Prompt.ask(
        "  Username (leave blank for none)",
        default=defaults.get("username", "")
    )
    mongo_config["password"] = Prompt.ask(
        "  Password (leave blank for none)",
        default=defaults.get("password", ""),
        password=True,
    )
    mongo_config["auth_source"] = Prompt.ask(
        "  Auth source",
        default=defaults.get("auth_source", "admin"),
    )

    if Confirm.ask("\n  Save this configuration?", default=True):
        config["mongodb"] = mongo_config
        save_config(config)
        console.print("  [green]Configuration saved to ~/.config/japanese-real-estate/db_config.json[/green]")

    return mongo_config


def _connect(config: dict):
    from japanese_real_estate.core.connections import get_mongodb_client

    client = get_mongodb_client(
        config["host"],
        int(config["port"]),
        username=config.get("username") or None,
        password=config.get("password") or None,
        auth_source=config.get("auth_source") or None,
        timeout_ms=5000,
    )
    # Test connection
    client.admin.command("ping")
    return client


# =============================================================================
# MONGODB SETUP
# =============================================================================

def setup_mongodb(config: Optional[dict] = None) -> dict:
    """
    Create the harvest collections and their indexes.

    MongoDB creates collections automatically on first insert, but they are
    created explicitly here so that the indexes exist before the first run.

    Args:
        config: MongoDB configuration dict

    Returns:
        dict with setup results
    """
    from pymongo.errors import PyMongoError
    from japanese_real_estate.core.connections import ensure_indexes, get_harvest_collections

    if config is None:
        config = get_mongodb_config()

    try:
        client = _connect(config)
    except PyMongoError as e:
        return {"success": False, "error": f"Cannot connect to MongoDB: {e}"}

    try:
        collections = get_harvest_collections(client, config["database_name"])
        existing = set(client[config["database_name"]].list_collection_names())
        created = []
        for collection in collections:
            if collection.name not in existing:
                client[config["database_name"]].create_collection(collection.name)
                created.append(collection.name)
        ensure_indexes(collections)
    except PyMongoError as e:
        return {"success": False, "error": f"Error creating collections: {e}"}
    finally:
        client.close()

    return {
        "success": True,
        "database": config["database_name"],
        "collections": [collection.name for collection in collections],
        "created": created,
    }


def check_mongodb_status(config: Optional[dict] = None) -> dict:
    """Check MongoDB database status and crawl progress."""
    from pymongo.errors import PyMongoError
    from japanese_real_estate.core.connections import get_harvest_collections
    from japanese_real_estate.scraping.harvest import get_harvest_statistics

    if config is None:
        config = get_mongodb_config()

    try:
        client = _connect(config)
    except PyMongoError as e:
        return {"connected": False, "error": str(e)}

    try:
        collections = get_harvest_collections(client, config["database_name"])
        return {
            "connected": True,
            "host": f"{config['host']}:{config['port']}",
            "database": config["database_name"],
            "collections": {
                collection.name: collection.count_documents({})
                for collection in collections
            },
            "statistics": get_harvest_statistics(collections),
        }
    except PyMongoError as e:
        return {"connected": False, "error": str(e)}
    finally:
        client.close()


# =============================================================================
# CLI INTERFACE
# =============================================================================

def display_status(mongodb_status: dict) -> None:
    """Display database status in formatted tables."""
    mongo_table = Table(title="MongoDB Status")
    mongo_table.add_column("Database", style="cyan")
    mongo_table.add_column("Collection", style="green")
    mongo_table.add_column("Documents", justify="right")

    if mongodb_status.get("connected"):
        first = True
        for coll_name, count in mongodb_status.get("collections", {}).items():
            mongo_table.add_row(
                mongodb_status["database"] if first else "",
                coll_name,
                f"{count:,}"
            )
            first = False
    else:
        mongo_table.add_row(
            "[red]Not connected[/red]",
            mongodb_status.get("error", "Unknown error"),
            "-"
        )

    console.print(mongo_table)

    stats = mongodb_status.get("statistics")
    if not stats:
        return

    console.print()
    progress_table = Table(title="Harvest Progress")
    progress_table.add_column("Metric", style="cyan")
    progress_table.add_column("Value", justify="right")
    progress_table.add_row("Last completed page", str(stats["last_completed_page"]))
    progress_table.add_row("Listings processed", f"{stats['processed_listings']:,}")
    progress_table.add_row("Listings remaining", f"{stats['remaining_listings']:,}")
    progress_table.add_row("Listings with errors", f"{stats['failed_listings']:,}")
    progress_table.add_row("Details stored", f"{stats['details']:,}")
    console.print(progress_table)


def display_setup_results(results: dict) -> None:
    """Display setup results."""
    if not results.get("success"):
        console.print(f"[red]Error setting up MongoDB: {results.get('error')}[/red]")
        return

    console.print("[green]MongoDB setup complete![/green]")
    console.print(f"  Database: {results['database']}")
    console.print(f"  Collections: {', '.join(results['collections'])}")
    if results.get("created"):
        console.print(f"  [cyan]Created: {', '.join(results['created'])}[/cyan]")


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Set up the database for the Japanese Real Estate harvester"
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Check database status without making changes"
    )
    parser.add_argument(
        "--reconfigure",
        action="store_true",
        help="Reconfigure database connection details"
    )

    args = parser.parse_args()

    console.print(Panel.fit(
        "[bold]Japanese Real Estate Database Setup[/bold]",
        border_style="blue"
    ))

    if args.check:
        console.print("\n[bold]Checking database status...[/bold]\n")
        display_status(check_mongodb_status())
        return 0

    console.print("\n[bold]Setting up MongoDB...[/bold]")
    mongo_config = get_mongodb_config(force_prompt=args.reconfigure)
    results = setup_mongodb(mongo_config)
    display_setup_results(results)

    if not results.get("success"):
        return 1

    console.print("\n[bold green]Setup complete![/bold green]")
    console.print("Run with --check to verify database status.\n")

    return 0


if __name__ == "__main__":
    sys.exit(main())
