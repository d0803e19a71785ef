import argparse
import sys
from pathlib import Path
from typing import Optional, Sequence

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from hoctap.config import load_settings
from hoctap.database import Database, StorageError
from hoctap.repository import ConflictError, UserRepository


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a HocTap user")
    parser.add_argument("name", help="Display name for the user")
    parser.add_argument("email", help="Unique email address")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a YAML settings file (defaults to HOCTAP_CONFIG or config.yaml)",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    settings = load_settings(args.config)

    database = Database.from_settings(settings)
    try:
        database.initialize()
        repository = UserRepository(database)
        user = repository.create_user(args.name, args.email)
    except ConflictError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except (StorageError, ValueError) as exc:
        print(f"Failed to create user: {exc}", file=sys.stderr)
        return 2
    finally:
        database.shutdown()

    print(f"Created user #{user.id}: {user.name} <{user.email}>")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
