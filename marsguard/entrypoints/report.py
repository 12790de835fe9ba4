"""Submit one anonymous incident report to a MarsGuard registry.

The reporter secret is derived from the wallet hotkey; only the nullifier
leaves this process.
"""

import argparse
import asyncio
import os
import sys

import bittensor as bt
from dotenv import load_dotenv

from marsguard.attestation.models import Severity
from marsguard.attestation.registry import HTTPNullifierRegistry
from marsguard.attestation.retry import RetryPolicy
from marsguard.attestation.service import AttestationService, ReporterContext
from marsguard.errors import AlreadyReported, MalformedInput, NotAuthenticated, SubmissionFailed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="MarsGuard incident reporter")
    bt.Wallet.add_args(parser)
    bt.logging.add_args(parser)
    parser.add_argument("--registry.url", type=str, default="http://127.0.0.1:8300")
    parser.add_argument("--report.operator_id", type=str, required=True)
    parser.add_argument("--report.kind", type=str, required=True)
    parser.add_argument(
        "--report.severity",
        type=str,
        default=Severity.MEDIUM.value,
        help="low, medium, high or critical.",
    )
    parser.add_argument("--report.description", type=str, default="")
    parser.add_argument("--report.window", type=int, default=None)
    parser.add_argument("--retry.max_attempts", type=int, default=3)
    return parser


async def submit(args: argparse.Namespace, keypair) -> int:
    registry_url = os.environ.get("MARSGUARD_REGISTRY__URL", getattr(args, "registry.url"))
    registry = HTTPNullifierRegistry(registry_url)
    service = AttestationService(
        registry,
        retry_policy=RetryPolicy(max_attempts=getattr(args, "retry.max_attempts")),
    )
    try:
        receipt = await service.submit_report(
            ReporterContext.from_keypair(keypair),
            operator_id=getattr(args, "report.operator_id"),
            incident_kind=getattr(args, "report.kind"),
            severity=getattr(args, "report.severity"),
            description=getattr(args, "report.description"),
            window_timestamp=getattr(args, "report.window"),
        )
    except AlreadyReported as e:
        bt.logging.warning(str(e))
        return 2
    except (NotAuthenticated, SubmissionFailed, MalformedInput) as e:
        bt.logging.error(str(e))
        return 1
    finally:
        await registry.close()

    bt.logging.success({"report": {
        "receipt_id": receipt.receipt_id,
        "operator_id": receipt.operator_id,
        "impact_delta": receipt.impact_delta,
    }})
    return 0


def main() -> None:
    if os.environ.get("MARSGUARD_TEST_MODE") != "true":
        load_dotenv()

    args = build_parser().parse_args()
    wallet_name = os.environ.get("MARSGUARD_WALLET__NAME", getattr(args, "wallet.name", "default"))
    wallet_hotkey = os.environ.get("MARSGUARD_WALLET__HOTKEY", getattr(args, "wallet.hotkey", "default"))
    wallet = bt.Wallet(name=wallet_name, hotkey=wallet_hotkey)

    sys.exit(asyncio.run(submit(args, wallet.hotkey)))


if __name__ == "__main__":
    main()
