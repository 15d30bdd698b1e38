"""Helpers shared by the tests: a local HTTP server standing for the remote sources
and builders for the documents it serves.
"""

from aiohttp.test_utils import TestServer
from aiohttp import web
import hashlib
import asyncio
import json

from cubiclauncher.standard import Watcher

from typing import Dict, List, Tuple, Optional, Any


def sha1(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()


class Reply:
    __slots__ = "body", "status", "headers", "stall", "drip"
    def __init__(self, body: bytes, status: int, headers: Optional[dict], stall: bool, drip: Optional[float]) -> None:
        self.body = body
        self.status = status
        self.headers = headers
        self.stall = stall
        self.drip = drip


class LocalServer:
    """A local server with scripted replies per path. Replies queued for a path are
    served in order, the last one is then repeated. Unknown paths give 404.
    """

    def __init__(self) -> None:
        self.replies: Dict[str, List[Reply]] = {}
        self.hits: Dict[str, int] = {}
        self.requests: List[Tuple[str, Dict[str, str]]] = []
        app = web.Application()
        app.router.add_route("GET", "/{tail:.*}", self._handle)
        self._server = TestServer(app)
        self.stalled: asyncio.Event
        self._release: asyncio.Event

    async def __aenter__(self) -> "LocalServer":
        self.stalled = asyncio.Event()
        self._release = asyncio.Event()
        await self._server.start_server()
        return self

    async def __aexit__(self, *exc_info) -> None:
        self._release.set()
        await self._server.close()

    def url(self, path: str) -> str:
        return str(self._server.make_url(path))

    def add(self, path: str, body: bytes = b"", *,
        status: int = 200,
        headers: Optional[dict] = None,
        stall: bool = False,
        drip: Optional[float] = None
    ) -> str:
        """Queue a reply for the path. A stalled reply sends half of its body and then
        waits for the server to close, a dripped reply sends its body byte per byte with
        the given delay between them.
        """
        self.replies.setdefault(path, []).append(Reply(body, status, headers, stall, drip))
        return self.url(path)

    def add_json(self, path: str, data: Any) -> str:
        return self.add(path, json.dumps(data).encode(), headers={"Content-Type": "application/json"})

    def redirect(self, path: str, location: str, status: int = 302) -> str:
        return self.add(path, status=status, headers={"Location": location})

    def hits_of(self, path: str) -> int:
        return self.hits.get(path, 0)

    async def _handle(self, request: web.Request) -> web.StreamResponse:

        path = request.path
        self.hits[path] = self.hits.get(path, 0) + 1
        self.requests.append((path, dict(request.headers)))

        replies = self.replies.get(path)
        if not replies:
            return web.Response(status=404)

        reply = replies.pop(0) if len(replies) > 1 else replies[0]

        if reply.stall:
            # Send the first half of the body and wait until the server is closed.
            res = web.StreamResponse(status=reply.status)
            res.content_length = len(reply.body)
            await res.prepare(request)
            await res.write(reply.body[:len(reply.body) // 2])
            self.stalled.set()
            await self._release.wait()
            return res

        if reply.drip is not None:
            res = web.StreamResponse(status=reply.status)
            res.content_length = len(reply.body)
            await res.prepare(request)
            for i in range(len(reply.body)):
                await asyncio.sleep(reply.drip)
                await res.write(reply.body[i:i + 1])
            await res.write_eof()
            return res

        return web.Response(status=reply.status, body=reply.body, headers=reply.headers)


class Recorder(Watcher):
    """Watcher keeping all events it's given.
    """

    def __init__(self) -> None:
        self.events: List[Any] = []

    def handle(self, event: Any) -> None:
        self.events.append(event)

    def of_type(self, event_type: type) -> list:
        return [event for event in self.events if type(event) is event_type]


def add_version(server: LocalServer, version_id: str, jar: bytes, **fields) -> dict:
    """Serve the Mojang's descriptor and client JAR of a version, the descriptor is
    returned with its URL. Extra fields are added to the descriptor.
    """

    doc = {
        "id": version_id,
        "type": "release",
        "mainClass": "net.minecraft.client.main.Main",
        "minecraftArguments": "--username ${auth_player_name} --version ${version_name}",
        "downloads": {
            "client": {
                "url": server.url(f"/{version_id}/client.jar"),
                "sha1": sha1(jar),
                "size": len(jar),
            }
        },
        "libraries": [],
    }
    doc.update(fields)

    server.add(f"/{version_id}/client.jar", jar)
    body = json.dumps(doc).encode()
    url = server.add(f"/{version_id}/{version_id}.json", body)
    return {"id": version_id, "type": "release", "url": url, "sha1": sha1(body)}


def add_manifest(server: LocalServer, versions: List[dict], latest: Optional[str] = None) -> str:
    return server.add_json("/manifest.json", {
        "latest": {"release": latest, "snapshot": latest} if latest is not None else {},
        "versions": versions,
    })
