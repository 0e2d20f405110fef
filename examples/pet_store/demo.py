from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path

from populus import UniquenessError, configure_logging, initialize, load_config

from .schema import DEFINITIONS


async def run(config_path: Path | None, database: str) -> None:
    # 1) Configuration: optional TOML file, POPULUS_* env vars, then CLI flags
    config = load_config(
        config_path=config_path,
        overrides={"connections": {"default": {"adapter": "sqlite", "database": database}}},
    )
    configure_logging(level=config.log_level or "INFO")

    # 2) One-shot initialization returns the ontology handle
    ontology = await initialize(DEFINITIONS, config)
    users, pets = ontology["user"], ontology["pet"]

    try:
        # 3) Create an owner and a pet pointing at it
        neil = await users.create({"username": "neil", "email": "neil@example.com", "password": "moon"})
        await pets.create({"name": "Astro", "owner": neil.id})
        await pets.create({"name": "Tom", "species": "cat", "owner": neil})

        # 4) Uniqueness is enforced by the adapter
        try:
            await users.create({"username": "neil"})
        except UniquenessError as exc:
            print(f"rejected: {exc}")

        # 5) Populate the collection association with one batched query
        for user in await users.find().populate("pets", sort="name"):
            print(json.dumps(user.to_json(), default=str, indent=2))
    finally:
        await ontology.teardown()


def main() -> None:
    parser = argparse.ArgumentParser(description="populus pet store demo")
    parser.add_argument("--config", type=Path, default=None)
    parser.add_argument("--database", default=":memory:")
    args = parser.parse_args()
    asyncio.run(run(args.config, args.database))


if __name__ == "__main__":
    main()
