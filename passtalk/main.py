"""PassTalk entry point: terminal chat and settings commands."""

from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import sys
from pathlib import Path

from passtalk.ai.client import AIProviderClient, ProviderError
from passtalk.chat.orchestrator import ConversationOrchestrator
from passtalk.config import settings
from passtalk.storage.preferences import PreferenceStore
from passtalk.storage.secrets import API_KEY_NAME, FileSecretStore, SecretStoreError
from passtalk.storage.store import SQLiteCredentialStore, StorageError
from passtalk.transfer.mappers import ImportFormatError
from passtalk.transfer.service import ExportFormat, ImportFormat, TransferService

logger = logging.getLogger(__name__)

EXIT_COMMANDS = {"exit", "quit", ":q"}


def _client() -> AIProviderClient:
    return AIProviderClient(FileSecretStore(settings.secrets_path), PreferenceStore.get())


async def _chat() -> int:
    orchestrator = ConversationOrchestrator(_client(), SQLiteCredentialStore.instance())
    for message in orchestrator.messages:
        print(f"PassTalk> {message.content}")

    while True:
        try:
            text = await asyncio.to_thread(input, "you> ")
        except EOFError:
            print()
            return 0
        if text.strip().lower() in EXIT_COMMANDS:
            return 0
        for reply in await orchestrator.send_message(text):
            print(f"PassTalk> {reply.content}")


async def _test_connection(endpoint: str | None, model: str | None) -> int:
    try:
        print(await _client().test_connection(endpoint=endpoint, model=model))
    except ProviderError as exc:
        print(exc.user_message, file=sys.stderr)
        return 1
    return 0


async def _import(path: Path, fmt: ImportFormat) -> int:
    report = await TransferService(SQLiteCredentialStore.instance()).import_entries(
        path.read_bytes(), fmt
    )
    print(f"导入 {report.imported} 条，跳过 {report.skipped} 条")
    return 0


async def _export(path: Path, fmt: ExportFormat) -> int:
    data = await TransferService(SQLiteCredentialStore.instance()).export_entries(fmt)
    path.write_bytes(data)
    print(f"已导出到 {path}")
    return 0


async def _clear() -> int:
    count = await SQLiteCredentialStore.instance().clear_all()
    print(f"数据已清空（{count} 条）")
    return 0


def _set_key() -> int:
    key = getpass.getpass("API Key: ").strip()
    if not key:
        print("API Key 不能为空", file=sys.stderr)
        return 1
    FileSecretStore(settings.secrets_path).set(API_KEY_NAME, key)
    print("API Key 已保存")
    return 0


def _configure(endpoint: str | None, model: str | None) -> int:
    prefs = PreferenceStore.get()
    prefs.save_provider(endpoint=endpoint, model=model)
    config = prefs.load_configuration()
    print(f"Endpoint: {config.endpoint}\nModel: {config.model}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="passtalk", description="Conversational password manager")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("chat", help="Chat to save and look up passwords (default)")
    sub.add_parser("set-key", help="Save the provider API key")

    configure = sub.add_parser("configure", help="Save provider endpoint and model")
    configure.add_argument("--endpoint")
    configure.add_argument("--model")

    test = sub.add_parser("test", help="Save provider settings and test the connection")
    test.add_argument("--endpoint")
    test.add_argument("--model")

    imp = sub.add_parser("import", help="Import entries from a file")
    imp.add_argument("path", type=Path)
    imp.add_argument("--format", choices=[f.value for f in ImportFormat], default="csv")

    exp = sub.add_parser("export", help="Export entries to a file")
    exp.add_argument("path", type=Path)
    exp.add_argument("--format", choices=[f.value for f in ExportFormat], default="csv")

    sub.add_parser("clear", help="Delete all stored entries")
    return parser


def run(argv: list[str] | None = None) -> int:
    """Dispatch a command line. Returns the process exit code."""
    args = build_parser().parse_args(argv)
    command = args.command or "chat"

    try:
        if command == "chat":
            return asyncio.run(_chat())
        if command == "set-key":
            return _set_key()
        if command == "configure":
            return _configure(args.endpoint, args.model)
        if command == "test":
            return asyncio.run(_test_connection(args.endpoint, args.model))
        if command == "import":
            return asyncio.run(_import(args.path, ImportFormat(args.format)))
        if command == "export":
            return asyncio.run(_export(args.path, ExportFormat(args.format)))
        return asyncio.run(_clear())
    except (StorageError, SecretStoreError, ImportFormatError, OSError) as exc:
        logger.error("%s failed: %s", command, exc)
        print(f"操作失败：{exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130
    except Exception as exc:
        logger.exception("%s failed unexpectedly", command)
        print(f"操作失败：{exc}", file=sys.stderr)
        return 1


def main() -> None:
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )
    sys.exit(run())


if __name__ == "__main__":
    main()
