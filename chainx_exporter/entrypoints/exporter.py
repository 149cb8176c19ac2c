"""State exporter entrypoint.

Exports historical ChainX state at one block height into a directory of JSON
artifacts. Rerunning the same command resumes from the artifacts on disk.
"""

import argparse
import asyncio
import os
import sys

import bittensor as bt
from dotenv import load_dotenv

from chainx_exporter.base.config import ExporterSettings, add_args, load_settings
from chainx_exporter.exporter.errors import ExporterError

COMMANDS = (
    "accounts",
    "vote-weight",
    "deposit-weight",
    "assets",
    "intentions",
    "session-index",
    "verify",
    "all",
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="ChainX state exporter")
    parser.add_argument("command", choices=COMMANDS, help="What to export.")
    bt.logging.add_args(parser)
    add_args(parser)
    return parser


def _configure_logging(args: argparse.Namespace) -> None:
    if getattr(args, "logging.trace", False):
        bt.logging.set_trace(True)
    elif getattr(args, "logging.debug", False):
        bt.logging.set_debug(True)
    else:
        bt.logging.set_info(True)


async def run(command: str, settings: ExporterSettings) -> None:
    from chainx_exporter.chain.rpc import LedgerRpcClient
    from chainx_exporter.exporter.pipeline import StateExporter
    from chainx_exporter.exporter.store.filesystem import FilesystemStore

    client = LedgerRpcClient(
        settings.rpc_url,
        timeout=settings.timeout,
        max_retries=settings.max_retries,
    )
    try:
        exporter = StateExporter.from_settings(client, FilesystemStore(settings.data_dir), settings)
        if command == "accounts":
            await exporter.export_accounts()
        elif command == "vote-weight":
            await exporter.export_vote_weight()
        elif command == "deposit-weight":
            await exporter.export_deposit_weight()
        elif command == "assets":
            await exporter.export_assets()
        elif command == "intentions":
            await exporter.export_intentions()
        elif command == "session-index":
            await exporter.export_session_index()
        elif command == "verify":
            await exporter.verify()
        else:
            await exporter.export_all()
    finally:
        await client.close()


def main(argv: list[str] | None = None) -> None:
    # Load .env if not in test mode
    if os.environ.get("CHAINX_EXPORTER_TEST_MODE") != "true":
        load_dotenv()

    args = build_parser().parse_args(argv)
    _configure_logging(args)

    try:
        settings = load_settings(args)
    except (OSError, ValueError) as e:
        bt.logging.error({"exporter": {"config_error": str(e)}})
        sys.exit(2)

    bt.logging.info({
        "exporter_config": {
            "command": args.command,
            "rpc_url": settings.rpc_url,
            "height": settings.height,
            "data_dir": settings.data_dir,
            "workers": settings.workers,
            "account_workers": settings.account_workers,
            "batch_size": settings.batch_size,
        }
    })

    try:
        asyncio.run(run(args.command, settings))
    except ExporterError as e:
        details = getattr(e, "details", None)
        bt.logging.error({"exporter": {
            "fatal": type(e).__name__,
            "error": str(e),
            "details": [str(d) for d in details[:20]] if details else [],
        }})
        sys.exit(1)
    except KeyboardInterrupt:
        bt.logging.info({"exporter": "keyboard_interrupt"})
        sys.exit(130)

    bt.logging.info({"exporter": {"command": args.command, "status": "done"}})


if __name__ == "__main__":
    main()
