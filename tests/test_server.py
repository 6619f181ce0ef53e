import asyncio
import io
from pathlib import Path

from quire.server import (
    IGNORE,
    REBUILD,
    RELOAD,
    DevServer,
    _ReloadHandler,
    _SiteEventHandler,
)


class DummyEvent:
    def __init__(self, path, is_directory=False):
        self.src_path = str(path)
        self.is_directory = is_directory


def make_handler(directory: Path, path: str) -> _ReloadHandler:
    handler = _ReloadHandler.__new__(_ReloadHandler)
    handler.path = path
    handler.directory = str(directory)
    handler.command = "GET"
    handler.request_version = "HTTP/1.1"
    handler.server_version = ""
    handler.sys_version = ""
    handler._headers_buffer = []
    handler.headers = {}
    handler.rfile = io.BytesIO(b"")
    handler.wfile = io.BytesIO()
    handler.codes = []
    handler.send_response = lambda code, message=None: handler.codes.append(code)
    handler.send_header = lambda *args, **kwargs: None
    handler.end_headers = lambda: None
    handler.send_error = lambda code, message=None: handler.codes.append(("error", code))
    return handler


def test_server_reads_config(tmp_path):
    (tmp_path / "quire.yaml").write_text(
        "input_dir: content\noutput_dir: public\nport: 9000\nwatch: ['styles/**']\n",
        encoding="utf-8",
    )
    server = DevServer(tmp_path)
    assert server.input_dir == tmp_path / "content"
    assert server.output_dir == tmp_path / "public"
    assert server.staging_dir == tmp_path / "public.staging"
    assert server.http_port == 9000
    assert server.ws_port == 9001
    assert server.watch_globs == ["styles/**"]
    assert server.root_url == "http://localhost:9000"


def test_dev_server_ports(tmp_path):
    server = DevServer(tmp_path, http_port=5055)
    assert (server.http_port, server.ws_port) == (5055, 5056)

    explicit = DevServer(tmp_path, http_port=5055, ws_port=6000)
    assert explicit.ws_port == 6000
    assert ":6000" in explicit.reload_script

    (tmp_path / "quire.yaml").write_text("port: 7000\nws_port: 7100\n", encoding="utf-8")
    assert DevServer(tmp_path).ws_port == 7100
    # an explicit HTTP port moves the websocket port along with it
    assert DevServer(tmp_path, http_port=5000).ws_port == 5001


def test_is_watched_output(tmp_path):
    server = DevServer(tmp_path)
    assert server.watch_globs == ["css/**", "javascript/**"]
    assert server.is_watched_output("css/main.css")
    assert server.is_watched_output("javascript/app/index.js")
    assert not server.is_watched_output("posts/index.html")


def test_classify_change(tmp_path):
    server = DevServer(tmp_path)
    out = server.output_dir
    assert server.classify_change(out / "css" / "main.css") == RELOAD
    assert server.classify_change(out / "posts" / "index.html") == IGNORE
    assert server.classify_change(server.staging_dir / "css" / "main.css") == IGNORE
    assert server.classify_change(tmp_path / "node_modules" / "pkg.js") == IGNORE
    assert server.classify_change(tmp_path / "src" / "index.md") == REBUILD
    assert server.classify_change(tmp_path / "quire.yaml") == REBUILD

    server._rebuilding = True
    assert server.classify_change(out / "css" / "main.css") == IGNORE


def test_event_handler_dispatches(tmp_path):
    server = DevServer(tmp_path)
    calls = []
    server.rebuild = lambda include_drafts: calls.append(("rebuild", include_drafts))
    server.notify_reload = lambda: calls.append("reload")
    handler = _SiteEventHandler(server, include_drafts=True)

    handler.on_any_event(DummyEvent(server.output_dir / "posts" / "index.html"))
    handler.on_any_event(DummyEvent(tmp_path / "src", is_directory=True))
    assert calls == []

    handler.on_any_event(DummyEvent(server.output_dir / "css" / "main.css"))
    handler.on_any_event(DummyEvent(tmp_path / "src" / "index.md"))
    assert calls == ["reload", ("rebuild", True)]


def test_rebuild_swaps_staging_and_reloads(monkeypatch, tmp_path):
    server = DevServer(tmp_path)
    server._post_build_delay = 0.01
    server.source_signature = lambda: ("sig",)
    calls = []
    slept = []

    def fake_build(root, include_drafts=False, root_url=None, clean_output=True, output_dir_override=None):
        calls.append((include_drafts, root_url, clean_output, output_dir_override))
        (output_dir_override / "index.html").write_text("new", encoding="utf-8")

    monkeypatch.setattr("quire.server.build_site", fake_build)
    monkeypatch.setattr("quire.server.time.sleep", lambda secs: slept.append(secs))
    server.notify_reload = lambda: calls.append("reload")

    server.output_dir.mkdir()
    (server.output_dir / "stale.html").write_text("old", encoding="utf-8")
    server.staging_dir.mkdir()
    (server.staging_dir / "leftover.html").write_text("old", encoding="utf-8")
    server.rebuild(include_drafts=True)

    assert calls == [
        (True, f"http://localhost:{server.http_port}", True, server.staging_dir),
        "reload",
    ]
    assert slept == [0.01]
    assert sorted(p.name for p in server.output_dir.iterdir()) == ["index.html"]
    assert not server.staging_dir.exists()


def test_rebuild_guard(tmp_path):
    server = DevServer(tmp_path)
    calls = []
    server.build_into_staging = lambda include_drafts: calls.append("built")
    server.notify_reload = lambda: calls.append("reloaded")
    server._post_build_delay = 0
    server._debounce_seconds = 0.0

    sigs = [("a",), ("a",), ("b",)]
    server.source_signature = lambda: sigs.pop(0) if sigs else ("b",)

    server.rebuild(include_drafts=False)
    server._rebuilding = True
    server.rebuild(include_drafts=False)  # already rebuilding
    server._rebuilding = False
    server.rebuild(include_drafts=False)  # unchanged signature
    server.rebuild(include_drafts=False)
    assert calls == ["built", "reloaded", "built", "reloaded"]


def test_source_signature(tmp_path):
    server = DevServer(tmp_path)
    assert server.source_signature() is None

    (tmp_path / "src" / "nested").mkdir(parents=True)
    (tmp_path / "src" / "index.md").write_text("hi", encoding="utf-8")
    (tmp_path / "quire.yaml").write_text("port: 8080\n", encoding="utf-8")
    (tmp_path / "src" / "dangling.md").symlink_to(tmp_path / "nope.md")
    (tmp_path / "elsewhere.txt").write_text("x", encoding="utf-8")

    names = [entry[0] for entry in server.source_signature()]
    assert names == ["src/index.md", "quire.yaml"]


def test_watch_schedules_paths(monkeypatch, tmp_path):
    (tmp_path / "src").mkdir()
    (tmp_path / "_site").mkdir()
    server = DevServer(tmp_path)
    scheduled = []

    class DummyObserver:
        def schedule(self, handler, path, recursive):
            scheduled.append((path, recursive))

        def start(self):
            scheduled.append(("started", True))

    monkeypatch.setattr("quire.server.Observer", DummyObserver)
    assert isinstance(server.watch(include_drafts=False), DummyObserver)
    assert scheduled == [
        (str(tmp_path / "src"), True),
        (str(tmp_path / "_site"), True),
        (str(tmp_path), False),
        ("started", True),
    ]


def test_watch_skips_output_without_globs(monkeypatch, tmp_path):
    (tmp_path / "_site").mkdir()
    (tmp_path / "quire.yaml").write_text("watch: []\n", encoding="utf-8")
    server = DevServer(tmp_path)
    scheduled = []

    class DummyObserver:
        def schedule(self, handler, path, recursive):
            scheduled.append(path)

        def start(self):
            pass

    monkeypatch.setattr("quire.server.Observer", DummyObserver)
    server.watch(include_drafts=False)
    assert scheduled == [str(tmp_path)]


def test_send_to_clients_drops_disconnected(tmp_path):
    server = DevServer(tmp_path)

    class GoodWS:
        def __init__(self):
            self.messages = []

        async def send(self, msg):
            self.messages.append(msg)

    class BadWS:
        async def send(self, msg):
            raise RuntimeError("fail")

    good, bad = GoodWS(), BadWS()
    server._clients = {good, bad}
    asyncio.run(server._send_to_clients("hello"))
    assert good.messages == ["hello"]
    assert server._clients == {good}


def test_notify_reload_schedules_message(monkeypatch, tmp_path):
    server = DevServer(tmp_path)
    sent = []

    class RecordingWS:
        async def send(self, msg):
            sent.append(msg)

    def fake_runner(coro, loop):
        assert loop is server._loop
        new_loop = asyncio.new_event_loop()
        try:
            return new_loop.run_until_complete(coro)
        finally:
            new_loop.close()

    server._clients = {RecordingWS()}
    monkeypatch.setattr("quire.server.asyncio.run_coroutine_threadsafe", fake_runner)
    server.notify_reload()
    assert sent == ['{"type": "reload"}']


def test_stop_and_client_registration(tmp_path):
    server = DevServer(tmp_path)
    server.stop()

    class DummyObserver:
        def __init__(self):
            self.calls = []

        def stop(self):
            self.calls.append("stop")

        def join(self):
            self.calls.append("join")

    server._observer = DummyObserver()
    server.stop()
    assert server._observer.calls == ["stop", "join"]

    class DummyWS:
        def __init__(self):
            self.closed = False

        async def wait_closed(self):
            self.closed = True

    ws = DummyWS()
    asyncio.run(server._register_client(ws))
    assert ws.closed
    assert ws not in server._clients


def test_ws_start_failure(monkeypatch, tmp_path, capsys):
    server = DevServer(tmp_path, http_port=5055, ws_port=5057)

    async def fake_run():
        raise OSError("bind error")

    monkeypatch.setattr(server, "_run_ws_server", fake_run)
    server._loop = asyncio.new_event_loop()
    server._serve_ws()
    assert "failed to start (port 5057)" in capsys.readouterr().out



def test_send_head_injects_script(tmp_path):
    (tmp_path / "index.html").write_text("<html><body>Hello</body></html>", encoding="utf-8")
    handler = make_handler(tmp_path, "/index.html")
    assert _ReloadHandler.send_head(handler) is None
    body = handler.wfile.getvalue().decode()
    assert handler.codes == [200]
    assert body.index("WebSocket") < body.index("</body>")


def test_send_head_without_body_tag_appends_script(tmp_path):
    (tmp_path / "plain.html").write_text("<html>No body</html>", encoding="utf-8")
    handler = make_handler(tmp_path, "/plain.html")
    _ReloadHandler.send_head(handler)
    assert handler.wfile.getvalue().decode().startswith("<html>No body</html>")
    assert b"reload" in handler.wfile.getvalue()


def test_send_head_serves_directory_index(tmp_path):
    (tmp_path / "posts").mkdir()
    (tmp_path / "posts" / "index.html").write_text("<body>index</body>", encoding="utf-8")
    handler = make_handler(tmp_path, "/posts/")
    assert _ReloadHandler.send_head(handler) is None
    assert handler.codes == [200]
    assert b"index" in handler.wfile.getvalue()


def test_send_head_falls_back_for_assets(tmp_path):
    (tmp_path / "style.css").write_text("body{}", encoding="utf-8")
    handler = make_handler(tmp_path, "/style.css")
    result = _ReloadHandler.send_head(handler)
    assert result is not None
    assert result.read() == b"body{}"
    result.close()


def test_missing_paths_and_bare_directories_404(tmp_path):
    (tmp_path / "posts").mkdir()
    (tmp_path / "posts" / "note.txt").write_text("hi", encoding="utf-8")
    for path in ("/missing.html", "/posts/"):
        handler = make_handler(tmp_path, path)
        assert _ReloadHandler.send_head(handler) is None
        assert handler.codes == [("error", 404)]


def test_serve_404_uses_custom_page(tmp_path):
    (tmp_path / "404.html").write_text("<html><body>oops</body></html>", encoding="utf-8")
    handler = make_handler(tmp_path, "/missing")
    assert _ReloadHandler._serve_404(handler) is None
    assert handler.codes == [404]
    body = handler.wfile.getvalue().decode()
    assert "oops" in body
    assert "reload" in body


def make_project(root: Path) -> Path:
    (root / "src").mkdir()
    (root / "src" / "index.html").write_text("<p>ok</p>", encoding="utf-8")
    (root / "src" / "a.md").write_text("# A", encoding="utf-8")
    return root


def test_build_into_staging_keeps_tool_output(tmp_path):
    server = DevServer(make_project(tmp_path))
    server.build_into_staging(include_drafts=False)
    css = server.output_dir / "css" / "site.css"
    css.parent.mkdir()
    css.write_text("body{}", encoding="utf-8")
    optimized = server.output_dir / "images" / "p.jpg"
    optimized.parent.mkdir()
    optimized.write_bytes(b"jpg")
    (server.output_dir / "stray.html").write_text("x", encoding="utf-8")
    assert server.classify_change(css) == RELOAD

    (tmp_path / "src" / "a.md").write_text("# A again", encoding="utf-8")
    server.build_into_staging(include_drafts=False)
    assert css.read_text(encoding="utf-8") == "body{}"
    assert optimized.read_bytes() == b"jpg"
    assert not (server.output_dir / "stray.html").exists()
    assert "A again" in (server.output_dir / "a" / "index.html").read_text(encoding="utf-8")
    assert not server.staging_dir.exists()
    assert not server.retired_dir.exists()
    assert server.classify_change(server.retired_dir / "css" / "site.css") == IGNORE


def test_output_watch_follows_swapped_directory(monkeypatch, tmp_path):
    server = DevServer(make_project(tmp_path))
    server.build_into_staging(include_drafts=False)
    calls = []

    class DummyObserver:
        def schedule(self, handler, path, recursive):
            calls.append(("schedule", path))
            return path

        def unschedule(self, watch):
            calls.append(("unschedule", watch))

        def start(self):
            pass

    monkeypatch.setattr("quire.server.Observer", DummyObserver)
    server.watch(include_drafts=False)
    calls.clear()
    server.build_into_staging(include_drafts=False)
    output = str(server.output_dir)
    assert calls == [("unschedule", output), ("schedule", output)]


def test_rebuild_reports_build_errors_and_retries(tmp_path, capsys):
    server = DevServer(make_project(tmp_path))
    server._debounce_seconds = 0.0
    server._post_build_delay = 0
    reloads = []
    server.notify_reload = lambda: reloads.append(True)
    server.build_into_staging(include_drafts=False)
    server._last_signature = server.source_signature()
    handler = _SiteEventHandler(server, include_drafts=False)

    page = tmp_path / "src" / "index.html"
    page.write_text("{% if %}", encoding="utf-8")
    last_good = server._last_signature
    handler.on_any_event(DummyEvent(page))

    err = capsys.readouterr().err
    assert "Build failed:" in err
    assert "src/index.html" in err
    assert reloads == []
    assert server._last_signature == last_good
    assert not server._rebuilding
    assert "ok" in (server.output_dir / "index.html").read_text(encoding="utf-8")

    page.write_text("<p>fixed</p>", encoding="utf-8")
    handler.on_any_event(DummyEvent(page))
    assert reloads == [True]
    assert "fixed" in (server.output_dir / "index.html").read_text(encoding="utf-8")


def test_send_to_clients_tolerates_registration_during_send(tmp_path):
    server = DevServer(tmp_path)
    received = []

    class JoiningWS:
        async def send(self, msg):
            received.append(msg)
            server._clients.add(object())

    server._clients = {JoiningWS(), JoiningWS()}
    asyncio.run(server._send_to_clients("reload"))
    assert received == ["reload", "reload"]
    assert len(server._clients) == 4
