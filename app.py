#!/usr/bin/env python3
"""
Hackathon scoreboard server and admin commands.

Runs the JSON API and leaderboard page, seeds teams and evaluators from CSV,
and prints the current leaderboard.
"""

import argparse
import asyncio
import logging
import os
from pathlib import Path

from hackscore.config import HackathonConfig
from hackscore.scoreboard import HackathonSystem
from hackscore.seed import import_staff_evaluators, seed_demo, seed_teams


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Hackathon scoreboard server with JSON API and leaderboard page",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--db",
        default=os.getenv("DB_PATH", "hackathon.db"),
        help="SQLite database file path (env: DB_PATH)"
    )
    parser.add_argument(
        "--config",
        default=os.getenv("CONFIG_PATH", "hackathon_config.json"),
        help="Configuration file path (env: CONFIG_PATH)"
    )

    commands = parser.add_subparsers(dest="command")

    serve = commands.add_parser("serve", help="Run the API server (default)")
    serve.add_argument(
        "--host",
        default=os.getenv("HOST", "0.0.0.0"),
        help="Host to bind the server to (env: HOST)"
    )
    serve.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("PORT", "5000")),
        help="HTTP port (env: PORT)"
    )

    teams = commands.add_parser("seed-teams", help="Create teams from a registration CSV")
    teams.add_argument("csv_path", help="email,password,team,size,lead,m1..m5,domain")

    evaluators = commands.add_parser(
        "import-evaluators", help="Replace staff evaluators from a CSV"
    )
    evaluators.add_argument("csv_path", help="name,email,password,domain")

    commands.add_parser("seed-demo", help="Fill an empty database with demo data")
    commands.add_parser("leaderboard", help="Print the team leaderboard")

    return parser


async def main():
    """Main function with command line interface."""
    args = build_parser().parse_args()

    config_path = Path(args.config)
    if config_path.exists() and not config_path.is_file():
        print(f"Error: {args.config} exists but is not a file")
        return

    config = HackathonConfig(args.config)
    logging.basicConfig(
        level=config.get("server", "log_level"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    system = HackathonSystem(
        host=getattr(args, "host", "0.0.0.0"),
        port=getattr(args, "port", 5000),
        db_path=args.db,
        config=config,
    )
    await system.init_db()

    if args.command == "seed-teams":
        added, skipped = await seed_teams(system.db, args.csv_path)
        print(f"Seeding complete: {added} teams added, {skipped} skipped")
    elif args.command == "import-evaluators":
        created = await import_staff_evaluators(system.db, args.csv_path)
        print(f"Created {created} staff evaluators")
    elif args.command == "seed-demo":
        await seed_demo(system.db)
        print("Demo data created")
    elif args.command == "leaderboard":
        await system.print_full_scoreboard()
    else:
        await system.print_full_scoreboard()
        await system.run()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nServer interrupted")
