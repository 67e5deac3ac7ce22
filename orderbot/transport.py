# orderbot/transport.py
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import httpx

from .errors import TransportError
from .log import logger


@dataclass
class Media:
    data: bytes
    mimetype: str
    filename: str = "file"

    @classmethod
    def from_file(cls, path: str | Path, mimetype: str) -> "Media":
        p = Path(path)
        return cls(data=p.read_bytes(), mimetype=mimetype, filename=p.name)


@dataclass
class InboundMessage:
    sender: str
    body: str = ""
    has_media: bool = False
    media_id: Optional[str] = None
    media_mimetype: Optional[str] = None

    @property
    def has_image(self) -> bool:
        return self.has_media and (self.media_mimetype or "").startswith("image/")


Content = Union[str, Media]


class ChatTransport(ABC):
    @abstractmethod
    async def send_message(self, identity: str, content: Content, options: Optional[Dict[str, Any]] = None) -> None:
        """options: ``caption`` (media only), ``as_sticker``."""

    @abstractmethod
    async def download_media(self, message: InboundMessage) -> Optional[Media]: ...


# -------------------
# WhatsApp Cloud API
# -------------------
class WhatsAppCloudTransport(ChatTransport):
    def __init__(self, token: str, phone_number_id: str, graph_version: str = "v22.0", timeout: float = 15.0) -> None:
        self.token = token
        self.phone_number_id = phone_number_id
        self.graph_version = graph_version
        self.timeout = timeout

    def _url(self, path: str) -> str:
        return f"https://graph.facebook.com/{self.graph_version}/{path}"

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}

    async def _upload(self, client: httpx.AsyncClient, media: Media) -> str:
        r = await client.post(
            self._url(f"{self.phone_number_id}/media"),
            headers=self._headers(),
            data={"messaging_product": "whatsapp", "type": media.mimetype},
            files={"file": (media.filename, media.data, media.mimetype)},
        )
        r.raise_for_status()
        return r.json()["id"]

    async def send_message(self, identity: str, content: Content, options: Optional[Dict[str, Any]] = None) -> None:
        opts = options or {}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                if isinstance(content, Media):
                    media_id = await self._upload(client, content)
                    kind = "sticker" if opts.get("as_sticker") else "image"
                    body: Dict[str, Any] = {"id": media_id}
                    if kind == "image" and opts.get("caption"):
                        body["caption"] = opts["caption"]
                    data = {"messaging_product": "whatsapp", "to": identity, "type": kind, kind: body}
                else:
                    data = {"messaging_product": "whatsapp", "to": identity, "type": "text", "text": {"body": content}}

                r = await client.post(self._url(f"{self.phone_number_id}/messages"), headers=self._headers(), json=data)
                r.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("WhatsApp send to %s failed: %s", identity, e)
            raise TransportError(f"send to {identity} failed") from e

    async def download_media(self, message: InboundMessage) -> Optional[Media]:
        if not message.media_id:
            return None
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                meta = await client.get(self._url(message.media_id), headers=self._headers())
                meta.raise_for_status()
                info = meta.json()
                r = await client.get(info["url"], headers=self._headers())
                r.raise_for_status()
        except (httpx.HTTPError, KeyError) as e:
            logger.warning("Media download %s failed: %s", message.media_id, e)
            return None
        mimetype = info.get("mime_type") or message.media_mimetype or "application/octet-stream"
        return Media(data=r.content, mimetype=mimetype, filename=f"{message.media_id}")


def parse_webhook(payload: Dict[str, Any]) -> List[InboundMessage]:
    """Cloud API webhook body -> inbound messages (status callbacks are ignored)."""
    out: List[InboundMessage] = []
    for entry in payload.get("entry") or []:
        for change in entry.get("changes") or []:
            value = change.get("value") or {}
            for m in value.get("messages") or []:
                sender = str(m.get("from") or "").strip()
                if not sender:
                    continue
                mtype = m.get("type")
                if mtype == "text":
                    out.append(InboundMessage(sender=sender, body=str((m.get("text") or {}).get("body") or "")))
                elif mtype in {"image", "document", "sticker"}:
                    media = m.get(mtype) or {}
                    out.append(
                        InboundMessage(
                            sender=sender,
                            body=str(media.get("caption") or ""),
                            has_media=True,
                            media_id=media.get("id"),
                            media_mimetype=media.get("mime_type"),
                        )
                    )
                elif mtype == "interactive":
                    reply = (m.get("interactive") or {}).get("button_reply") or {}
                    out.append(InboundMessage(sender=sender, body=str(reply.get("id") or reply.get("title") or "")))
                else:
                    out.append(InboundMessage(sender=sender, body=""))
    return out
