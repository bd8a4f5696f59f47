"""Hosted row store client: PostgREST over httpx and Realtime over websockets."""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from contextlib import suppress
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional
from urllib.parse import urlencode

import httpx
import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..errors import RemoteStoreError
from .remote import ChangeCallback, Row

logger = logging.getLogger(__name__)

RECONNECT_INITIAL_DELAY = 1.0
RECONNECT_MAX_DELAY = 30.0
PHOENIX_TOPIC = "phoenix"

Connect = Callable[[str], Awaitable[Any]]


@dataclass(slots=True)
class RealtimeChannel:
    """One ``postgres_changes`` channel joined on the realtime socket."""

    table: str
    scope: Optional[str]
    topic: str
    callback: ChangeCallback
    joined: bool = False


def _realtime_url(base_url: str, api_key: str) -> str:
    if base_url.startswith("https://"):
        ws_base = "wss://" + base_url[len("https://") :]
    elif base_url.startswith("http://"):
        ws_base = "ws://" + base_url[len("http://") :]
    else:
        ws_base = base_url
    query = urlencode({"apikey": api_key, "vsn": "1.0.0"})
    return f"{ws_base}/realtime/v1/websocket?{query}"


def translate_change(data: Mapping[str, Any]) -> dict[str, Any]:
    """Map a realtime ``postgres_changes`` record to ``{eventType, new, old}``."""

    return {
        "eventType": str(data.get("type") or data.get("eventType") or "").lower(),
        "new": data.get("record") or data.get("new") or {},
        "old": data.get("old_record") or data.get("old") or {},
    }


def parse_content_range(value: Optional[str]) -> int:
    """Return the total from a ``Content-Range`` header such as ``0-9/42``."""

    if not value or "/" not in value:
        return 0
    total = value.rsplit("/", 1)[1]
    return int(total) if total.isdigit() else 0


class SupabaseStore:
    """:class:`RemoteStore` implementation for a Supabase project."""

    def __init__(
        self,
        url: str,
        anon_key: str,
        *,
        access_token: Optional[str] = None,
        timeout: float = 10.0,
        heartbeat_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        connect: Optional[Connect] = None,
    ) -> None:
        self._url = url.rstrip("/")
        self._anon_key = anon_key
        self._access_token = access_token
        self._timeout = timeout
        self._heartbeat_seconds = heartbeat_seconds
        self._transport = transport
        self._connect: Connect = connect or websockets.connect
        self._client: httpx.AsyncClient | None = None

        self._ws: Any = None
        self._socket_lock = asyncio.Lock()
        self._reader_task: asyncio.Task[None] | None = None
        self._heartbeat_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._channels: dict[str, RealtimeChannel] = {}
        self._replies: dict[str, asyncio.Future[dict[str, Any]]] = {}
        self._refs = itertools.count(1)
        self._closing = False

    # ------------------------------------------------------------------ REST

    @property
    def _headers(self) -> dict[str, str]:
        token = self._access_token or self._anon_key
        return {
            "apikey": self._anon_key,
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=f"{self._url}/rest/v1",
                headers=self._headers,
                timeout=httpx.Timeout(self._timeout, connect=10.0),
                transport=self._transport,
            )
        return self._client

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, Mapping):
            for key in ("message", "error_description", "error", "hint"):
                if body.get(key):
                    return str(body[key])
        return response.text or f"HTTP {response.status_code}"

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: Optional[Mapping[str, str]] = None,
        payload: Any = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> httpx.Response:
        try:
            response = await self._http().request(
                method,
                f"/{table}",
                params=params,
                json=payload,
                headers=headers,
            )
        except httpx.HTTPError as exc:
            raise RemoteStoreError(f"{method} {table} failed: {exc}") from exc

        if response.status_code >= 400:
            message = self._error_message(response)
            logger.debug(
                "%s %s returned %s: %s", method, table, response.status_code, message
            )
            raise RemoteStoreError(message, status_code=response.status_code)
        return response

    @staticmethod
    def _eq_filters(filters: Optional[Mapping[str, Any]]) -> dict[str, str]:
        return {key: f"eq.{value}" for key, value in (filters or {}).items()}

    @staticmethod
    def _rows(response: httpx.Response) -> list[Row]:
        try:
            body = response.json()
        except ValueError as exc:
            raise RemoteStoreError(f"Invalid JSON from store: {exc}") from exc
        if isinstance(body, dict):
            return [body]
        return list(body or [])

    async def select(
        self,
        table: str,
        *,
        filters: Optional[Mapping[str, Any]] = None,
        order: Optional[str] = None,
    ) -> list[Row]:
        params = {"select": "*", **self._eq_filters(filters)}
        if order:
            params["order"] = order
        response = await self._request("GET", table, params=params)
        return self._rows(response)

    async def insert(self, table: str, values: Mapping[str, Any]) -> Row:
        """Insert a row; rows carrying an ``id`` are upserted on that key.

        Replaying an insert whose response was lost then converges on the
        row already written instead of adding a second one.
        """
        params: Optional[dict[str, str]] = None
        prefer = "return=representation"
        if values.get("id"):
            params = {"on_conflict": "id"}
            prefer += ",resolution=merge-duplicates"
        response = await self._request(
            "POST",
            table,
            params=params,
            payload=dict(values),
            headers={"Prefer": prefer},
        )
        rows = self._rows(response)
        if not rows:
            raise RemoteStoreError(f"Insert into {table} returned no row")
        return rows[0]

    async def update(self, table: str, row_id: str, values: Mapping[str, Any]) -> Row:
        response = await self._request(
            "PATCH",
            table,
            params={"id": f"eq.{row_id}"},
            payload=dict(values),
            headers={"Prefer": "return=representation"},
        )
        rows = self._rows(response)
        if not rows:
            raise RemoteStoreError(f"No {table} row with id {row_id}", status_code=404)
        return rows[0]

    async def delete(self, table: str, row_id: str) -> None:
        await self._request("DELETE", table, params={"id": f"eq.{row_id}"})

    async def count(
        self, table: str, *, filters: Optional[Mapping[str, Any]] = None
    ) -> int:
        params = {"select": "id", **self._eq_filters(filters)}
        response = await self._request(
            "HEAD", table, params=params, headers={"Prefer": "count=exact"}
        )
        return parse_content_range(response.headers.get("content-range"))

    # -------------------------------------------------------------- realtime

    async def _ensure_socket(self) -> None:
        async with self._socket_lock:
            if self._ws is not None:
                return
            url = _realtime_url(self._url, self._anon_key)
            try:
                self._ws = await self._connect(url)
            except (OSError, WebSocketException) as exc:
                raise RemoteStoreError(f"Realtime connection failed: {exc}") from exc
            logger.info("Realtime socket connected")
            self._reader_task = asyncio.create_task(self._read_loop(self._ws))
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(self._ws))

    async def _send(
        self,
        topic: str,
        event: str,
        payload: Mapping[str, Any],
        *,
        ref: Optional[str] = None,
    ) -> str:
        ref = ref or str(next(self._refs))
        message = {"topic": topic, "event": event, "payload": dict(payload), "ref": ref}
        if self._ws is None:
            raise RemoteStoreError("Realtime socket is not connected")
        try:
            await self._ws.send(json.dumps(message))
        except (ConnectionClosed, OSError) as exc:
            raise RemoteStoreError(f"Realtime send failed: {exc}") from exc
        return ref

    def _join_payload(self, channel: RealtimeChannel) -> dict[str, Any]:
        change: dict[str, Any] = {"event": "*", "schema": "public", "table": channel.table}
        if channel.scope:
            change["filter"] = f"user_id=eq.{channel.scope}"
        payload: dict[str, Any] = {
            "config": {
                "broadcast": {"self": False},
                "presence": {"key": ""},
                "postgres_changes": [change],
            }
        }
        if self._access_token:
            payload["access_token"] = self._access_token
        return payload

    async def _join(self, channel: RealtimeChannel) -> None:
        ref = str(next(self._refs))
        reply: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._replies[ref] = reply
        try:
            await self._send(
                channel.topic, "phx_join", self._join_payload(channel), ref=ref
            )
            payload = await asyncio.wait_for(reply, timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise RemoteStoreError(f"Timed out joining {channel.topic}") from exc
        finally:
            self._replies.pop(ref, None)

        if payload.get("status") != "ok":
            response = payload.get("response") or {}
            reason = response.get("reason") if isinstance(response, Mapping) else None
            raise RemoteStoreError(f"Join {channel.topic} rejected: {reason or payload}")
        channel.joined = True
        logger.debug("Joined realtime channel %s", channel.topic)

    async def subscribe(
        self, table: str, scope: Optional[str], callback: ChangeCallback
    ) -> RealtimeChannel:
        topic = f"realtime:public:{table}:{scope or '*'}"
        channel = RealtimeChannel(table=table, scope=scope, topic=topic, callback=callback)
        await self._ensure_socket()
        self._channels[topic] = channel
        try:
            await self._join(channel)
        except BaseException:
            self._channels.pop(topic, None)
            raise
        return channel

    async def unsubscribe(self, registration: RealtimeChannel) -> None:
        channel = self._channels.pop(registration.topic, None)
        if channel is None:
            return
        if self._ws is not None and channel.joined:
            await self._send(channel.topic, "phx_leave", {})
        if not self._channels:
            await self._close_socket()

    def _dispatch(self, message: Mapping[str, Any]) -> None:
        event = message.get("event")
        payload = message.get("payload") or {}

        if event == "phx_reply":
            reply = self._replies.get(str(message.get("ref")))
            if reply is not None and not reply.done():
                reply.set_result(payload)
            return

        if event == "postgres_changes":
            channel = self._channels.get(str(message.get("topic")))
            if channel is None:
                return
            data = payload.get("data") if isinstance(payload, Mapping) else None
            if not isinstance(data, Mapping):
                logger.warning("Ignoring realtime change without data on %s", channel.topic)
                return
            channel.callback(translate_change(data))
            return

        if event in ("phx_error", "phx_close"):
            logger.warning("Realtime channel %s reported %s", message.get("topic"), event)

    async def _read_loop(self, ws: Any) -> None:
        try:
            async for raw in ws:
                try:
                    message = json.loads(raw)
                except (TypeError, ValueError):
                    logger.warning("Ignoring non-JSON realtime frame")
                    continue
                if isinstance(message, Mapping):
                    self._dispatch(message)
        except ConnectionClosed as exc:
            logger.warning("Realtime socket closed: %s", exc)
        finally:
            if self._ws is ws:
                self._ws = None
                for channel in self._channels.values():
                    channel.joined = False
                reconnecting = (
                    self._reconnect_task is not None and not self._reconnect_task.done()
                )
                if not self._closing and self._channels and not reconnecting:
                    self._reconnect_task = asyncio.create_task(self._reconnect())

    async def _heartbeat_loop(self, ws: Any) -> None:
        while self._ws is ws:
            await asyncio.sleep(self._heartbeat_seconds)
            try:
                await self._send(PHOENIX_TOPIC, "heartbeat", {})
            except RemoteStoreError as exc:
                logger.debug("Heartbeat failed: %s", exc)
                return

    async def _reconnect(self) -> None:
        delay = RECONNECT_INITIAL_DELAY
        while not self._closing and self._channels:
            await asyncio.sleep(delay)
            try:
                await self._ensure_socket()
                for channel in list(self._channels.values()):
                    await self._join(channel)
            except RemoteStoreError as exc:
                logger.warning("Realtime reconnect failed, retrying in %.0fs: %s", delay, exc)
                await self._close_socket()
                delay = min(delay * 2, RECONNECT_MAX_DELAY)
                continue
            logger.info("Realtime socket re-established (%d channels)", len(self._channels))
            return

    async def _close_socket(self) -> None:
        ws, self._ws = self._ws, None
        for task in (self._heartbeat_task, self._reader_task):
            if task is not None and task is not asyncio.current_task():
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task
        self._heartbeat_task = None
        self._reader_task = None
        if ws is not None:
            with suppress(ConnectionClosed, OSError):
                await ws.close()

    async def aclose(self) -> None:
        self._closing = True
        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._reconnect_task
            self._reconnect_task = None
        self._channels.clear()
        await self._close_socket()
        if self._client is not None:
            await self._client.aclose()
            self._client = None


__all__ = [
    "RealtimeChannel",
    "SupabaseStore",
    "parse_content_range",
    "translate_change",
]
