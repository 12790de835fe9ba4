"""HTTP endpoint serving the registry, score ledger, message board and risk view.

Runs as an async task in the service's event loop. Routes:
  GET  /healthz
  GET  /attestations                    - list (optional ?operator_id=)
  POST /attestations                    - accept an attestation (409 on duplicate)
  GET  /attestations/{nullifier}        - has_attested (?full=1 includes record)
  GET  /scores/{operator_id}            - ledger score + classification
  GET  /scores/{operator_id}/events     - ledger score events
  GET  /messages                        - all messages, insertion order
  POST /messages                        - append a ciphertext
  POST /messages/{index}/reveal         - single-shot reveal
  GET  /validators                      - scored telemetry view
  GET  /stats                           - network statistics
"""

from __future__ import annotations

from typing import Any

import bittensor as bt
from aiohttp import web
from pydantic import ValidationError

from marsguard.attestation.ledger import ScoreLedger
from marsguard.attestation.models import Attestation
from marsguard.attestation.registry.interface import NullifierRegistry
from marsguard.channel.board import MessageBoard
from marsguard.channel.channel import SecureChannel
from marsguard.errors import (
    AlreadyRevealed,
    DuplicateNullifier,
    InvalidIndex,
    MalformedInput,
    TransportFailure,
)
from marsguard.scoring.engine import classify, next_action, status_text
from marsguard.scoring.stats import compute_network_stats
from marsguard.scoring.telemetry import TelemetryFeed
from marsguard.shared.logging import log_event


def _short(value: str | None) -> str:
    """Truncate identifiers for log readability."""
    if not value:
        return "none"
    return value[:18]


class RegistryHTTPServer:
    """Lightweight async HTTP server."""

    def __init__(
        self,
        registry: NullifierRegistry,
        board: MessageBoard | None = None,
        channel: SecureChannel | None = None,
        feed: TelemetryFeed | None = None,
        host: str = "0.0.0.0",
        port: int = 8300,
    ):
        self.registry = registry
        self.ledger = ScoreLedger(registry)
        self.channel = channel
        self.board = board or (channel.board if channel else MessageBoard())
        self.feed = feed
        self.host = host
        self.port = port
        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None

    def _build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/healthz", self._handle_healthz)
        app.router.add_get("/attestations", self._handle_list_attestations)
        app.router.add_post("/attestations", self._handle_accept)
        app.router.add_get("/attestations/{nullifier}", self._handle_has_attested)
        app.router.add_get("/scores/{operator_id}", self._handle_score)
        app.router.add_get("/scores/{operator_id}/events", self._handle_events)
        app.router.add_get("/messages", self._handle_get_messages)
        app.router.add_post("/messages", self._handle_post_message)
        app.router.add_post("/messages/{index}/reveal", self._handle_reveal)
        app.router.add_get("/validators", self._handle_validators)
        app.router.add_get("/stats", self._handle_stats)
        return app

    async def start(self) -> None:
        """Start the HTTP server."""
        self._app = self._build_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        bt.logging.info({"registry_http": {"status": "started", "port": self.port}})

    async def stop(self) -> None:
        """Stop the HTTP server."""
        if self._runner:
            await self._runner.cleanup()
            bt.logging.info({"registry_http": "stopped"})

    # -- Health --

    async def _handle_healthz(self, request: web.Request) -> web.Response:
        return web.json_response({
            "ok": True,
            "messages": self.board.count(),
            "telemetry": self.feed is not None,
        })

    # -- Attestations --

    async def _handle_list_attestations(self, request: web.Request) -> web.Response:
        operator_id = request.query.get("operator_id") or None
        try:
            attestations = await self.registry.list_attestations(operator_id)
        except TransportFailure as e:
            return self._unavailable("attestations", e)
        return web.json_response({
            "attestations": [a.model_dump(mode="json") for a in attestations],
        })

    async def _handle_accept(self, request: web.Request) -> web.Response:
        try:
            body = await request.json()
            attestation = Attestation(**body)
        except (ValueError, TypeError, ValidationError):
            bt.logging.warning({"registry_request": {"endpoint": "attestations", "status": 400, "error": "invalid_body"}})
            return web.json_response({"error": "invalid_body"}, status=400)

        try:
            receipt = await self.registry.accept(attestation)
        except DuplicateNullifier:
            bt.logging.info({"registry_request": {"endpoint": "attestations", "status": 409, "nullifier": _short(attestation.nullifier)}})
            return web.json_response({"error": "duplicate_nullifier"}, status=409)
        except TransportFailure as e:
            return self._unavailable("attestations", e)

        bt.logging.info({"registry_request": {"endpoint": "attestations", "status": 201, "operator_id": attestation.operator_id}})
        log_event({"attestation_accepted": {
            "receipt_id": receipt.receipt_id,
            "operator_id": receipt.operator_id,
            "impact_delta": receipt.impact_delta,
        }})
        if self.feed is not None:
            self.feed.on_attestation(attestation)
        return web.json_response(receipt.model_dump(mode="json"), status=201)

    async def _handle_has_attested(self, request: web.Request) -> web.Response:
        nullifier = request.match_info["nullifier"]
        full = request.query.get("full", "").lower() in ("1", "true")
        try:
            if full:
                att = await self.registry.get_attestation(nullifier)
                data: dict[str, Any] = {"nullifier": nullifier, "attested": att is not None}
                if att is not None:
                    data["attestation"] = att.model_dump(mode="json")
                return web.json_response(data)
            attested = await self.registry.has_attested(nullifier)
        except TransportFailure as e:
            return self._unavailable("attestations/{nullifier}", e)
        return web.json_response({"nullifier": nullifier, "attested": attested})

    # -- Score ledger --

    async def _handle_score(self, request: web.Request) -> web.Response:
        operator_id = request.match_info["operator_id"]
        try:
            value = await self.ledger.get_score(operator_id)
        except TransportFailure as e:
            return self._unavailable("scores/{operator_id}", e)
        return web.json_response({
            "operator_id": operator_id,
            "score": value,
            "classification": classify(value).value,
        })

    async def _handle_events(self, request: web.Request) -> web.Response:
        operator_id = request.match_info["operator_id"]
        try:
            events = await self.ledger.get_events(operator_id)
        except TransportFailure as e:
            return self._unavailable("scores/{operator_id}/events", e)
        return web.json_response({
            "operator_id": operator_id,
            "events": [e.model_dump(mode="json") for e in events],
        })

    # -- Messages --

    async def _handle_get_messages(self, request: web.Request) -> web.Response:
        messages = await self.board.get_messages()
        return web.json_response({"messages": [m.model_dump(mode="json") for m in messages]})

    async def _handle_post_message(self, request: web.Request) -> web.Response:
        try:
            body = await request.json()
            sender_id = str(body["sender_id"])
            ciphertext = str(body["ciphertext"])
            signature = str(body["signature"])
        except (ValueError, TypeError, KeyError):
            return web.json_response({"error": "invalid_body"}, status=400)

        message = await self.board.post_message(sender_id, ciphertext, signature)
        bt.logging.info({"registry_request": {"endpoint": "messages", "status": 201, "index": message.index}})
        return web.json_response(message.model_dump(mode="json"), status=201)

    async def _handle_reveal(self, request: web.Request) -> web.Response:
        try:
            index = int(request.match_info["index"])
        except ValueError:
            return web.json_response({"error": "invalid_index"}, status=404)

        try:
            body = await request.json() if request.can_read_body else {}
        except ValueError:
            return web.json_response({"error": "invalid_body"}, status=400)
        plaintext = body.get("plaintext") if isinstance(body, dict) else None

        try:
            if self.channel is not None:
                message = await self.channel.reveal(index, plaintext)
            elif plaintext is None:
                return web.json_response({"error": "plaintext_required"}, status=400)
            else:
                message = await self.board.reveal_message(index, str(plaintext))
        except InvalidIndex:
            return web.json_response({"error": "invalid_index"}, status=404)
        except AlreadyRevealed:
            bt.logging.info({"registry_request": {"endpoint": "messages/{index}/reveal", "status": 409, "index": index}})
            return web.json_response({"error": "already_revealed"}, status=409)
        except MalformedInput as e:
            return web.json_response({"error": "malformed", "detail": str(e)}, status=422)

        return web.json_response(message.model_dump(mode="json"))

    # -- Risk view --

    async def _handle_validators(self, request: web.Request) -> web.Response:
        if self.feed is None:
            return web.json_response({"error": "telemetry_not_configured"}, status=503)

        snapshot = await self.feed.get()
        scores = self.feed.scores()
        rows = []
        for operator_id, telemetry in snapshot.items():
            risk = scores[operator_id]
            action = next_action(risk.value)
            rows.append({
                "operator_id": operator_id,
                "moniker": telemetry.moniker,
                "status": status_text(telemetry.status, telemetry.jailed),
                "score": risk.value,
                "classification": risk.classification.value,
                "color": risk.color,
                "action": action.model_dump(mode="json"),
            })
        rows.sort(key=lambda r: r["score"], reverse=True)
        return web.json_response({
            "validators": rows,
            "using_fallback": self.feed.using_fallback,
            "last_error": self.feed.last_error,
        })

    async def _handle_stats(self, request: web.Request) -> web.Response:
        telemetry = (await self.feed.get()).values() if self.feed else []
        try:
            total_reports = await self.ledger.total_reports()
        except TransportFailure as e:
            return self._unavailable("stats", e)
        stats = compute_network_stats(
            telemetry,
            total_reports=total_reports,
            messages=await self.board.get_messages(),
        )
        return web.json_response(stats.model_dump(mode="json"))

    # -- Helpers --

    @staticmethod
    def _unavailable(endpoint: str, error: Exception) -> web.Response:
        bt.logging.warning({"registry_request": {"endpoint": endpoint, "status": 503, "error": str(error)}})
        return web.json_response({"error": "registry_unavailable"}, status=503)


__all__ = ["RegistryHTTPServer"]
