import asyncio
import os
from pathlib import Path

from rich.console import Console
from rich.prompt import Confirm

from slackwire import db
from slackwire.config import load_config

SQLITE_SCHEMA = "sqlite+aiosqlite:///"


async def create_all():
    console = Console()

    db_uri = load_config().database.uri
    if not db_uri:
        console.log("No database configured, installs are kept in memory")
        return

    if db_uri.startswith(SQLITE_SCHEMA):
        db_name = db_uri[len(SQLITE_SCHEMA) :]
        db_files = [Path(name) for name in (db_name, f"{db_name}-shm", f"{db_name}-wal")]
        existing = [file for file in db_files if file.exists()]

        if existing:
            if Confirm.ask(f"Do you want to delete existing {db_name} database files?"):
                for file in existing:
                    os.remove(file)
            else:
                console.log("Aborting")
                return

    engine = db.create_engine(db_uri)
    console.log("Dropping all tables")
    await db.drop_all(engine)

    console.log("Creating all tables")
    await db.create_all(engine)
    await engine.dispose()


asyncio.run(create_all())
