"""Development server for Quire.

Serves the built site with live reload for local writing:
- Injects a reload script into HTML responses.
- Rejects directory listings and missing paths with a 404 (serving 404.html when present).
- Watches the input directory and config file and triggers rebuilds plus client reloads.
- Reloads clients without rebuilding when watched output files change, such as
  CSS or JavaScript produced by external tooling into the output directory.

Key classes:
- DevServer: Main class for running the development server.
- _ReloadHandler: HTTP request handler that injects reload script and enforces 404s.
- _SiteEventHandler: Forwards file system events to DevServer.classify_change.
"""

from __future__ import annotations

import asyncio
import functools
import json
import os
import shutil
import threading
import time
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import websockets
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .build import CONFIG_FILENAME, BuildError, build_site, kept_output_globs, load_config
from .utils import matches_any

IGNORE = "ignore"
RELOAD = "reload"
REBUILD = "rebuild"


class _ReloadHandler(SimpleHTTPRequestHandler):
    """HTTP request handler that injects live reload script into HTML pages.

    Attributes:
        reload_script: JavaScript code for WebSocket connection to trigger reloads.
    """

    reload_script_template = """
    <script>
    (() => {{
      const ws = new WebSocket('ws://' + location.hostname + ':{ws_port}');
      ws.onmessage = (event) => {{
        const data = JSON.parse(event.data || '{{}}');
        if (data.type === 'reload') location.reload();
      }};
    }})();
    </script>
    """
    reload_script = reload_script_template.format(ws_port=8081)

    def end_headers(self):
        self.send_header("Cache-Control", "no-cache, no-store, must-revalidate")
        super().end_headers()

    def list_directory(self, path):  # pragma: no cover - exercised via send_head
        # Never expose directory listings; treat as missing content.
        return self._serve_404()

    def _inject(self, content: str) -> str:
        if "</body>" in content:
            return content.replace("</body>", f"{self.reload_script}</body>")
        return content + self.reload_script

    def _send_html(self, status: int, content: str) -> None:
        encoded = self._inject(content).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(encoded)))
        self.end_headers()
        self.wfile.write(encoded)

    def _serve_404(self):
        """Serve 404.html (when present) with injected reload script and a 404 status."""
        error_page = Path(self.directory) / "404.html"
        if error_page.exists():
            self._send_html(404, error_page.read_text(encoding="utf-8"))
            return None
        self.send_error(404, "File not found")
        return None

    def send_head(self):
        path_obj = Path(self.translate_path(self.path))
        if path_obj.is_dir():
            index_path = path_obj / "index.html"
            if not index_path.exists():
                return self._serve_404()
            path_obj = index_path
        elif not path_obj.exists():
            return self._serve_404()

        if path_obj.suffix == ".html":
            self._send_html(200, path_obj.read_text(encoding="utf-8"))
            return None
        return super().send_head()


class DevServer:
    """Development server with live reload functionality.

    Attributes:
        project_root: Root directory of the project.
        config: Site configuration.
        input_dir: Directory holding the site sources.
        output_dir: Directory where built site is served.
        http_port: Port for HTTP server.
        ws_port: Port for WebSocket connections.
        watch_globs: Output-relative globs that trigger a reload without a rebuild.
        kept_globs: Output-relative globs carried over from the old output on rebuild.
    """

    def __init__(
        self, project_root: Path, http_port: int | None = None, ws_port: int | None = None
    ):
        """Initialize the development server.

        Args:
            project_root: Root directory of the project.
            http_port: Optional override for HTTP port.
            ws_port: Optional override for the websocket port. Defaults to
                the HTTP port plus one.
        """
        self.project_root = project_root
        self.config = load_config(project_root)
        self.input_dir = project_root / self.config["input_dir"]
        self.output_dir = project_root / self.config["output_dir"]
        self.staging_dir = self.output_dir.with_name(self.output_dir.name + ".staging")
        self.retired_dir = self.output_dir.with_name(self.output_dir.name + ".old")
        self.http_port, self.ws_port = self._resolve_ports(http_port, ws_port)
        self.watch_globs = list(self.config.get("watch") or [])
        self.kept_globs = kept_output_globs(project_root, self.config)
        self.reload_script = _ReloadHandler.reload_script_template.format(ws_port=self.ws_port)
        # Pages link to the local server, never to the configured root_url.
        self.root_url = f"http://localhost:{self.http_port}"
        self._observer: Observer | None = None
        self._handler: _SiteEventHandler | None = None
        self._output_watch = None
        self._clients: set = set()
        self._loop = asyncio.new_event_loop()
        self._rebuilding = False
        self._last_rebuild_at = 0.0
        self._last_signature: tuple | None = None
        self._debounce_seconds = 0.05
        self._post_build_delay = 0.05

    def _resolve_ports(self, http_port: int | None, ws_port: int | None) -> tuple[int, int]:
        http = int(http_port or self.config.get("port", 8080))
        if ws_port is not None:
            return http, int(ws_port)
        if http_port is None and "ws_port" in self.config:
            return http, int(self.config["ws_port"])
        return http, http + 1

    def start(self, include_drafts: bool = False) -> None:  # pragma: no cover - integration path
        self.build_into_staging(include_drafts)
        self._last_signature = self.source_signature()
        threading.Thread(target=self._serve_http, daemon=True).start()
        threading.Thread(target=self._serve_ws, daemon=True).start()
        self._observer = self.watch(include_drafts)
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            self.stop()

    def stop(self) -> None:
        if self._observer:
            self._observer.stop()
            self._observer.join()
        self._loop.call_soon_threadsafe(self._loop.stop)

    def _serve_http(self) -> None:  # pragma: no cover - integration path
        handler_cls = type(
            "_PortReloadHandler", (_ReloadHandler,), {"reload_script": self.reload_script}
        )
        handler = functools.partial(handler_cls, directory=str(self.output_dir))
        httpd = ThreadingHTTPServer(("", self.http_port), handler)
        print(f"Serving {self.output_dir} at {self.root_url}")
        httpd.serve_forever()

    def _serve_ws(self) -> None:
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_until_complete(self._run_ws_server())
        except OSError as exc:
            print(f"WebSocket server failed to start (port {self.ws_port}): {exc}")

    async def _run_ws_server(self) -> None:  # pragma: no cover - integration path
        async with websockets.serve(self._register_client, "0.0.0.0", self.ws_port):
            await asyncio.Future()

    async def _register_client(self, websocket) -> None:
        self._clients.add(websocket)
        try:
            await websocket.wait_closed()
        finally:
            self._clients.discard(websocket)

    def notify_reload(self) -> None:
        """Ask every connected browser to reload, from any thread."""
        message = json.dumps({"type": "reload"})
        asyncio.run_coroutine_threadsafe(self._send_to_clients(message), self._loop)

    async def _send_to_clients(self, message: str) -> None:
        disconnected = set()
        for client in list(self._clients):
            try:
                await client.send(message)
            except Exception:
                disconnected.add(client)
        self._clients -= disconnected

    def watch(self, include_drafts: bool) -> Observer:
        """Start a watchdog observer over the sources, the output and quire.yaml.

        The output directory is only watched when there are watch globs.
        """
        self._handler = handler = _SiteEventHandler(self, include_drafts)
        self._observer = observer = Observer()
        if self.input_dir.exists():
            observer.schedule(handler, str(self.input_dir), recursive=True)
        self._watch_output()
        observer.schedule(handler, str(self.project_root), recursive=False)
        observer.start()
        return observer

    def _watch_output(self) -> None:
        """(Re)attach the output watch; the swap replaces the watched directory."""
        if self._observer is None or self._handler is None:
            return
        if self._output_watch is not None:
            self._observer.unschedule(self._output_watch)
            self._output_watch = None
        if self.watch_globs and self.output_dir.exists():
            self._output_watch = self._observer.schedule(
                self._handler, str(self.output_dir), recursive=True
            )

    def classify_change(self, path: Path) -> str:
        """Decide what a changed file means for the running server.

        Returns:
            RELOAD for output files matching a watch glob, IGNORE for other
            output, staging and node_modules files, REBUILD for anything else.
        """
        if "node_modules" in path.parts:
            return IGNORE
        if path.is_relative_to(self.staging_dir) or path.is_relative_to(self.retired_dir):
            return IGNORE
        if path.is_relative_to(self.output_dir):
            rel = path.relative_to(self.output_dir).as_posix()
            if self._rebuilding or not self.is_watched_output(rel):
                return IGNORE
            return RELOAD
        return REBUILD

    def is_watched_output(self, rel_path: str) -> bool:
        """Return True if an output-relative path matches a watch glob."""
        return matches_any(rel_path, self.watch_globs)

    def rebuild(self, include_drafts: bool) -> None:
        """Rebuild into staging and reload browsers if the sources changed.

        Calls during a rebuild, within the debounce window, or with an
        unchanged source signature do nothing. A failed build is reported and
        leaves the served site and the last signature as they were, so the
        next save retries.
        """
        if self._rebuilding or time.time() - self._last_rebuild_at < self._debounce_seconds:
            return
        signature = self.source_signature()
        if signature is not None and signature == self._last_signature:
            return
        self._rebuilding = True
        try:
            print("Change detected; rebuilding...")
            try:
                self.build_into_staging(include_drafts)
            except BuildError as exc:
                self._report_failure(exc)
                return
            self._last_signature = signature
            if self._post_build_delay:
                time.sleep(self._post_build_delay)
            self.notify_reload()
        finally:
            self._rebuilding = False
            self._last_rebuild_at = time.time()

    def _report_failure(self, exc: BuildError) -> None:
        from .cli import report_build_error

        report_build_error(exc, self.project_root)

    def build_into_staging(self, include_drafts: bool) -> None:
        """Build into the staging directory, then swap it in as the output.

        Files matching ``kept_globs`` are copied over from the old output
        first. The old output is renamed aside before the staging directory
        takes its name, so the served directory is only missing between two
        renames.
        """
        for stale in (self.staging_dir, self.retired_dir):
            if stale.exists():
                shutil.rmtree(stale)
        self.staging_dir.mkdir(parents=True)
        build_site(
            self.project_root,
            include_drafts=include_drafts,
            root_url=self.root_url,
            clean_output=True,
            output_dir_override=self.staging_dir,
        )
        self._carry_over_kept()
        if self.output_dir.exists():
            os.replace(self.output_dir, self.retired_dir)
        os.replace(self.staging_dir, self.output_dir)
        self._watch_output()
        if self.retired_dir.exists():
            shutil.rmtree(self.retired_dir)

    def _carry_over_kept(self) -> None:
        """Copy kept files the build did not produce from the output into staging."""
        if not self.kept_globs or not self.output_dir.is_dir():
            return
        for path in sorted(self.output_dir.rglob("*")):
            if not path.is_file():
                continue
            rel = path.relative_to(self.output_dir).as_posix()
            target = self.staging_dir / rel
            if target.exists() or not matches_any(rel, self.kept_globs):
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(path, target)

    def source_signature(self) -> tuple | None:
        """Return (path, mtime, size) for every source file and quire.yaml."""
        candidates: list[Path] = []
        if self.input_dir.is_dir():
            candidates.extend(sorted(self.input_dir.rglob("*")))
        config_path = self.project_root / CONFIG_FILENAME
        if config_path.is_file():
            candidates.append(config_path)

        entries = []
        for path in candidates:
            try:
                if path.is_dir():
                    continue
                stat = path.stat()
            except OSError:
                continue
            rel = path.relative_to(self.project_root).as_posix()
            entries.append((rel, stat.st_mtime_ns, stat.st_size))
        return tuple(entries) or None


class _SiteEventHandler(FileSystemEventHandler):
    def __init__(self, server: DevServer, include_drafts: bool):
        super().__init__()
        self.server = server
        self.include_drafts = include_drafts

    def on_any_event(self, event):
        if event.is_directory:
            return
        action = self.server.classify_change(Path(event.src_path))
        if action == RELOAD:
            self.server.notify_reload()
        elif action == REBUILD:
            self.server.rebuild(self.include_drafts)
