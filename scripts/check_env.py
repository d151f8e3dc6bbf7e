"""Pre-flight check for the Instagram feed service configuration.

The tool loads ``AppSettings`` from a ``.env`` file and reports problems
before the service starts failing at runtime:

1. Required Instagram app credentials are present and well formed.
2. The OAuth redirect URI that will be registered with Meta is printed, so it
   can be compared with the value configured in the developer console.
3. Optional integrations (Redis cache, dedicated token encryption secret) are
   reported as enabled or disabled.

It can also record and verify a checksum for the ``.env`` file so unexpected
edits are detected.

Example usages::

    python -m scripts.check_env check --env-file .env

    python -m scripts.check_env record --env-file /srv/site/.env \
        --hash-file /srv/site/.env.sha256

    python -m scripts.check_env verify --env-file /srv/site/.env \
        --hash-file /srv/site/.env.sha256
"""

from __future__ import annotations

import argparse
import hashlib
import sys
from pathlib import Path
from typing import Callable, List

from pydantic import ValidationError

from app.core.config import AppSettings, _load_env_file

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_CHECKSUM_ERROR = 3
EXIT_RUNTIME_ERROR = 5


def _compute_hash(env_file: Path) -> str:
    return hashlib.sha256(env_file.read_bytes()).hexdigest()


def _load_settings(env_file: Path) -> AppSettings:
    """Instantiate settings from the supplied env file."""
    _load_env_file(str(env_file))
    return AppSettings()  # type: ignore[call-arg]


def _describe(settings: AppSettings) -> List[str]:
    """Human-readable summary of the effective configuration, without secrets."""
    cache = settings.cache
    lines = [
        f"Environment:         {settings.environment}",
        f"Instagram app id:    {settings.instagram.app_id}",
        f"OAuth redirect URI:  {settings.instagram_redirect_uri}",
        f"Scopes:              {', '.join(settings.instagram.scope_list)}",
        f"Media per sync:      {settings.instagram.media_limit}",
        f"Store database:      {settings.store_db_path}",
    ]
    if cache.redis_url:
        lines.append(f"Redis cache:         enabled (ttl {cache.media_ttl_seconds}s)")
    else:
        lines.append("Redis cache:         disabled (REDIS_URL not set)")
    if not settings.security.token_encryption_secret:
        lines.append(
            "Token encryption:    WARNING falling back to INSTAGRAM_APP_SECRET; "
            "set TOKEN_ENCRYPTION_SECRET"
        )
    return lines


def _record_checksum(env_file: Path, hash_file: Path) -> int:
    checksum = _compute_hash(env_file)
    hash_file.write_text(f"{checksum}\n", encoding="utf-8")
    print(f"Recorded checksum to {hash_file} ({checksum})")
    return EXIT_OK


def _verify_checksum(env_file: Path, hash_file: Path) -> int:
    """Compare the current checksum to the recorded baseline."""
    if not hash_file.exists():
        print(
            f"Expected checksum file {hash_file} is missing. "
            "Re-run with the 'record' command to establish a baseline.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR

    expected = hash_file.read_text(encoding="utf-8").strip()
    actual = _compute_hash(env_file)
    if expected == actual:
        print("Environment checksum OK.")
        return EXIT_OK

    print(
        "Environment checksum mismatch!\n"
        f"  expected: {expected}\n"
        f"  actual:   {actual}\n"
        "Check the Instagram app secret and redirect URI before restarting.",
        file=sys.stderr,
    )
    return EXIT_CHECKSUM_ERROR


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate Instagram feed settings and detect .env drift."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_env_file(subparser: argparse.ArgumentParser) -> None:
        subparser.add_argument(
            "--env-file",
            default=".env",
            type=Path,
            help="Path to the environment file (default: .env in the repo root).",
        )

    for name, help_text, needs_hash in (
        ("record", "Validate settings and store the checksum baseline.", True),
        ("verify", "Validate settings and compare the checksum with the baseline.", True),
        ("check", "Validate settings and print the effective configuration.", False),
    ):
        subparser = subparsers.add_parser(name, help=help_text)
        add_env_file(subparser)
        if needs_hash:
            subparser.add_argument(
                "--hash-file",
                required=True,
                type=Path,
                help="Location of the checksum baseline.",
            )

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    env_file: Path = args.env_file

    if not env_file.exists():
        print(
            f"Environment file {env_file} does not exist. "
            "Ensure the path is correct or create it before running this tool.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR

    try:
        settings = _load_settings(env_file)
    except ValidationError as exc:
        print(
            "Settings validation failed. Missing or invalid values detected:\n"
            f"{exc.json(indent=2)}",
            file=sys.stderr,
        )
        return EXIT_VALIDATION_ERROR
    except Exception as exc:  # pylint: disable=broad-except
        print(f"Unexpected error during validation: {exc}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    command: str = args.command
    handlers: dict[str, Callable[[], int]] = {
        "record": lambda: _record_checksum(env_file, args.hash_file),
        "verify": lambda: _verify_checksum(env_file, args.hash_file),
        "check": lambda: EXIT_OK,
    }
    if command == "check":
        print("\n".join(_describe(settings)))
    return handlers[command]()


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
