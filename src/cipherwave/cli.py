"""Command line entry point.

Usage:
    cipherwave status
    cipherwave accounts
    cipherwave encrypt --chain 31337 --contract 0x... --user 0x... --value 64:42 --value 32:1700000000
    cipherwave submit 42 --rpc-url http://localhost:8545 [--direct]
    cipherwave messages --rpc-url http://localhost:8545 [--decrypt 3]

Environment variables are read through cipherwave.config.Settings
(LOCAL_RPC_URLS, RPC_URLS, CONTRACT_ADDRESSES, ENABLE_LOCAL_ACCOUNTS, ...).
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from cipherwave.chains import ChainBindings, get_chain_name, is_local_chain
from cipherwave.config import get_settings
from cipherwave.fhe.base import EncryptionError
from cipherwave.fhe.manager import EncryptionInstanceManager
from cipherwave.messages.service import MessageError, MessageService
from cipherwave.signing.base import SigningError
from cipherwave.signing.local import get_local_account_registry
from cipherwave.signing.resolver import SignerResolver
from cipherwave.wallet.base import WalletError
from cipherwave.wallet.session import SessionManager
from cipherwave.wallet.transports import JsonRpcWalletTransport

logger = logging.getLogger(__name__)


def _parse_value(text: str) -> tuple[int, int]:
    """Parse WIDTH:VALUE (e.g. 64:42)."""
    try:
        width, value = text.split(":", 1)
        return int(width), int(value, 0)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected WIDTH:VALUE, got {text!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cipherwave", description="Encrypted message client")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Show redacted configuration and local chain bindings")
    sub.add_parser("accounts", help="List local test accounts (when allowed)")

    encrypt = sub.add_parser("encrypt", help="Build an encrypted input and print handles")
    encrypt.add_argument("--chain", type=int, required=True, help="Chain ID")
    encrypt.add_argument("--contract", required=True, help="Target contract address")
    encrypt.add_argument("--user", required=True, help="Submitting account address")
    encrypt.add_argument(
        "--value",
        type=_parse_value,
        action="append",
        default=[],
        help="WIDTH:VALUE, repeatable (widths 8/16/32/64/128/256)",
    )

    for name, help_text in (("submit", "Submit a numeric message"), ("messages", "List your messages")):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("--rpc-url", default=None, help="Node endpoint acting as the wallet")
        cmd.add_argument("--account", default=None, help="Account to use (default: node's first account)")
        cmd.add_argument("--direct", action="store_true", help="Sign with the local test key when available")
        if name == "submit":
            cmd.add_argument("value", type=int, help="Message content (unsigned 64-bit)")
        else:
            cmd.add_argument("--decrypt", type=int, default=None, help="Message ID to decrypt")

    return parser


def cmd_status() -> int:
    settings = get_settings()
    bindings = ChainBindings.from_settings(settings)
    print(json.dumps(settings.get_safe_dict(), indent=2))
    for binding in bindings:
        kind = "local" if binding.is_local else "remote"
        print(f"{binding.chain_id} ({get_chain_name(binding.chain_id)}, {kind}): {binding.local_rpc_url}")
    return 0


def cmd_accounts() -> int:
    registry = get_local_account_registry()
    if registry is None:
        print("Local test accounts are disabled")
        return 1
    for address in registry.addresses():
        print(address)
    return 0


async def cmd_encrypt(args: argparse.Namespace) -> int:
    manager = EncryptionInstanceManager()
    manager.update(args.chain)
    try:
        await manager.wait_ready()
        builder = manager.create_encrypted_input(args.contract, args.user)
        for width, value in args.value:
            builder.add_value(width, value)
        result = await builder.finalize()
    except (EncryptionError, ValueError, TypeError) as e:
        print(f"Encryption failed: {e}", file=sys.stderr)
        return 1
    finally:
        manager.close()

    print(json.dumps({"handles": list(result.handles), "proof": result.proof}, indent=2))
    return 0


async def _open_session(rpc_url: Optional[str], account: Optional[str]) -> SessionManager:
    settings = get_settings()
    url = rpc_url or next(iter(settings.local_rpc_urls.values()), None)
    if url is None:
        raise WalletError("No RPC endpoint given and no local chain configured")

    transport = JsonRpcWalletTransport(
        url,
        accounts=[account] if account else None,
        timeout=settings.rpc_timeout,
    )
    manager = SessionManager(transport)
    session = await manager.connect()
    if not session.is_usable:
        raise WalletError(f"Could not connect to {url}: {session.last_error}")
    return manager


async def cmd_messages(args: argparse.Namespace) -> int:
    try:
        session_manager = await _open_session(args.rpc_url, args.account)
    except WalletError as e:
        print(str(e), file=sys.stderr)
        return 1

    resolver = SignerResolver(session_manager)
    engines = EncryptionInstanceManager()
    engines.attach(session_manager)
    service = MessageService(resolver, engines)
    chain_id = session_manager.session.chain_id

    try:
        if not is_local_chain(chain_id):
            await engines.wait_ready()

        if args.command == "submit":
            receipt = await service.submit_message(args.value, prefer_direct=args.direct)
            print(receipt.model_dump_json(indent=2))
        elif args.decrypt is not None:
            content = await service.decrypt_message(args.decrypt, prefer_direct=args.direct)
            print(content if content is not None else f"[Message #{args.decrypt} - content not cached]")
        else:
            for record in await service.load_messages():
                when = record.submitted_at.isoformat() if record.submitted_at else "pending"
                print(f"#{record.message_id} {record.sender} {when}")
    except (MessageError, SigningError, EncryptionError, WalletError) as e:
        print(f"{args.command} failed: {e}", file=sys.stderr)
        return 1
    finally:
        engines.close()
        resolver.close()
        session_manager.close()

    return 0


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.command == "status":
        return cmd_status()
    if args.command == "accounts":
        return cmd_accounts()
    if args.command == "encrypt":
        return asyncio.run(cmd_encrypt(args))
    return asyncio.run(cmd_messages(args))


if __name__ == "__main__":
    sys.exit(main())
