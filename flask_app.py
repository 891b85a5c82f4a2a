import socket
import logging
import datetime
from functools import wraps
from typing import Optional, Sequence

import bcrypt
import requests
from zeroconf import ServiceInfo, Zeroconf
from flask import (
    Flask,
    Response,
    current_app,
    jsonify,
    render_template_string,
    request,
    session,
)

from config import JukeboxConfig
from network import get_local_ip, resolve_caller_address, resolve_host_address
from queue_controller import AuthorityError, QueueController, ValidationError
from utils import DEFAULT_TITLE_STRATEGIES, TitleStrategy, build_queue_item

logger = logging.getLogger(__name__)

LIBRARY_TIMEOUT_SECONDS = 10
# lets <audio> seek through the proxy
RELAYED_LIBRARY_HEADERS = ("Content-Length", "Content-Range", "Accept-Ranges")
SESSION_LIFETIME = datetime.timedelta(hours=24)

BASE_STYLE = """
    body { font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif; max-width: 900px; margin: 2rem auto; padding: 0 1rem; background: #f4f4f9; color: #333; }
    .container { background: white; padding: 2rem; border-radius: 12px; box-shadow: 0 4px 6px rgba(0,0,0,0.1); }
    h1 { margin-top: 0; color: #2c3e50; text-align: center; }
    h2 { border-bottom: 2px solid #eee; padding-bottom: 0.5rem; color: #444; }
    .form-group { margin-bottom: 1rem; }
    input[type="text"], input[type="password"] { width: 100%; padding: 12px; border: 2px solid #ddd; border-radius: 8px; box-sizing: border-box; font-size: 1rem; margin-top: 5px; }
    button { background: #3498db; color: white; border: none; padding: 10px 14px; border-radius: 8px; cursor: pointer; font-weight: bold; }
    button.wide { width: 100%; font-size: 1.1rem; margin-top: 10px; }
    button.danger { background: #e74c3c; }
    table { width: 100%; border-collapse: collapse; margin-top: 1rem; }
    th, td { text-align: left; padding: 10px; border-bottom: 1px solid #eee; }
    .empty-msg { text-align: center; color: #888; padding: 1.5rem; font-style: italic; }
    .now-playing { font-size: 1.2em; color: #27ae60; margin: 1rem 0; }
    .badge { padding: 2px 6px; border-radius: 4px; font-size: 0.8em; color: white; }
    .badge-yt { background: #e74c3c; } .badge-jf { background: #8e44ad; }
    .nav-link { display: block; text-align: center; margin-bottom: 1rem; color: #3498db; }
    .notification { position: fixed; top: 20px; right: 20px; background: #4CAF50; color: white; padding: 15px; border-radius: 5px; opacity: 0; transition: opacity 0.5s; }
    .notification.show { opacity: 1; }
    .notification.error { background: #f44336; }
    .hidden { display: none; }
"""

SHARED_SCRIPT = """
    function showNotification(message, isError = false) {
        const n = document.getElementById('notification');
        n.textContent = message;
        n.className = 'notification show' + (isError ? ' error' : '');
        setTimeout(() => n.classList.remove('show'), 3000);
    }

    function escapeHtml(text) {
        const div = document.createElement('div');
        div.textContent = text == null ? '' : text;
        return div.innerHTML;
    }

    function badge(item) {
        return item.kind === 'library-track'
            ? '<span class="badge badge-jf">LIB</span>'
            : '<span class="badge badge-yt">YT</span>';
    }

    function describe(item) {
        let text = badge(item) + ' <strong>' + escapeHtml(item.title) + '</strong>';
        if (item.artist) text += ' - ' + escapeHtml(item.artist);
        return text;
    }

    async function ensureLoggedIn() {
        const res = await fetch('/api/auth-status');
        const data = await res.json();
        const loginBox = document.getElementById('login-section');
        if (data.requireLogin && !data.authenticated) {
            loginBox.classList.remove('hidden');
            return false;
        }
        loginBox.classList.add('hidden');
        return true;
    }

    async function login(event) {
        event.preventDefault();
        const res = await fetch('/api/login', {
            method: 'POST',
            headers: { 'Content-Type': 'application/json' },
            body: JSON.stringify({
                username: document.getElementById('login-username').value,
                password: document.getElementById('login-password').value,
            }),
        });
        const data = await res.json();
        if (data.success) {
            window.location.reload();
        } else {
            showNotification(data.message, true);
        }
    }
"""

LOGIN_FORM = """
        <div id="login-section" class="hidden">
            <h2>Login</h2>
            <form onsubmit="login(event)">
                <div class="form-group"><input type="text" id="login-username" placeholder="Username"></div>
                <div class="form-group"><input type="password" id="login-password" placeholder="Password"></div>
                <button type="submit" class="wide">Login</button>
            </form>
        </div>
"""

INDEX_TEMPLATE = """
<!doctype html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>LAN Jukebox</title>
    <style>{{ style|safe }}</style>
</head>
<body>
    <div class="container">
        <a href="/player" id="player-link" class="nav-link hidden">Open Host Player</a>
        <h1>LAN Jukebox</h1>
        {{ login_form|safe }}
        <div id="main-section">
            <form id="add-url-form">
                <div class="form-group">
                    <label for="username">Your Name:</label>
                    <input type="text" id="username" placeholder="Enter your name">
                </div>
                <div class="form-group">
                    <label for="url">YouTube URL:</label>
                    <input type="text" id="url" placeholder="Paste YouTube URL here..." required>
                </div>
                <button type="submit" class="wide">Add to Queue</button>
            </form>
            <div class="now-playing">Now Playing: <span id="current-song">Nothing yet</span></div>
            <h2>Current Queue</h2>
            <div id="current-queue-section"><div class="empty-msg">The queue is currently empty.</div></div>
        </div>
    </div>
    <div id="notification" class="notification"></div>

    <script>
    {{ script|safe }}

    async function refreshQueueDisplay() {
        try {
            const res = await fetch('/api/queue');
            if (res.status === 401) { ensureLoggedIn(); return; }
            const data = await res.json();
            document.getElementById('current-song').innerHTML =
                data.currentlyPlaying ? describe(data.currentlyPlaying) : 'Nothing yet';
            const section = document.getElementById('current-queue-section');
            if (!data.queue.length) {
                section.innerHTML = '<div class="empty-msg">The queue is currently empty.</div>';
                return;
            }
            let rows = '';
            data.queue.forEach((item, idx) => {
                rows += '<tr><td>' + (idx + 1) + '</td><td>' + describe(item) + '</td><td>'
                    + escapeHtml(item.username || item.requestedBy) + '</td></tr>';
            });
            section.innerHTML = '<table><thead><tr><th>#</th><th>Title</th><th>Added by</th></tr></thead><tbody>'
                + rows + '</tbody></table>';
        } catch (error) {
            console.error('Error refreshing queue display:', error);
        }
    }

    document.getElementById('add-url-form').addEventListener('submit', async (event) => {
        event.preventDefault();
        const urlInput = document.getElementById('url');
        const res = await fetch('/api/add', {
            method: 'POST',
            headers: { 'Content-Type': 'application/json' },
            body: JSON.stringify({
                videoUrl: urlInput.value,
                username: document.getElementById('username').value,
            }),
        });
        const data = await res.json();
        if (res.status === 201) {
            urlInput.value = '';
            showNotification(data.message);
            refreshQueueDisplay();
        } else {
            showNotification(data.message, true);
        }
    });

    document.addEventListener('DOMContentLoaded', async () => {
        if (!(await ensureLoggedIn())) {
            document.getElementById('main-section').classList.add('hidden');
            return;
        }
        const status = await (await fetch('/api/status')).json();
        if (status.isHost) document.getElementById('player-link').classList.remove('hidden');
        refreshQueueDisplay();
        setInterval(refreshQueueDisplay, 3000);
    });
    </script>
</body>
</html>
"""

PLAYER_TEMPLATE = """
<!doctype html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>LAN Jukebox Player</title>
    <style>{{ style|safe }}
        #library-player img { max-width: 400px; border-radius: 8px; }
    </style>
</head>
<body>
    <div class="container">
        <a href="/" class="nav-link">Back to Queue</a>
        <h1>Player</h1>
        {{ login_form|safe }}
        <div id="role-msg" class="empty-msg"></div>
        <div id="youtube-player"></div>
        <div id="library-player" class="hidden">
            <img id="library-cover" alt="Cover">
            <div id="library-title"></div>
            <audio id="library-audio" controls autoplay></audio>
        </div>
        <div class="now-playing">Now Playing: <span id="current-song">Nothing yet</span></div>
        <button id="next-btn" class="wide hidden">Play Next</button>
        <button id="library-btn" class="wide hidden">Add Random Library Tracks</button>
        <h2>Up Next</h2>
        <div id="current-queue-section"></div>
    </div>
    <div id="notification" class="notification"></div>

    <script src="https://www.youtube.com/iframe_api"></script>
    <script>
    {{ script|safe }}

    const LIBRARY_USER_ID = {{ library_user_id|tojson }};
    let youtubePlayer = null;
    let hostMode = false;
    let loadedKey = null;

    function itemKey(item) {
        return item ? [item.kind, item.externalId, item.requestedBy, item.addedAt].join('|') : null;
    }

    function onYouTubeIframeAPIReady() {
        youtubePlayer = new YT.Player('youtube-player', {
            width: '100%',
            height: '450',
            events: {
                onStateChange: (event) => {
                    if (hostMode && event.data === YT.PlayerState.ENDED) playNext();
                },
            },
        });
    }

    function playItem(item) {
        loadedKey = itemKey(item);
        const libraryBox = document.getElementById('library-player');
        const audio = document.getElementById('library-audio');
        audio.pause();
        if (youtubePlayer && youtubePlayer.stopVideo) youtubePlayer.stopVideo();
        if (!item) {
            libraryBox.classList.add('hidden');
            return;
        }
        if (item.kind === 'library-track') {
            libraryBox.classList.remove('hidden');
            document.getElementById('library-cover').src =
                '/api/library/Items/' + encodeURIComponent(item.coverReference) + '/Images/Primary?maxHeight=400&maxWidth=400&quality=90';
            document.getElementById('library-title').innerHTML = describe(item);
            audio.src = '/api/library/Audio/' + encodeURIComponent(item.externalId) + '/stream?static=true';
            audio.play();
        } else {
            libraryBox.classList.add('hidden');
            if (youtubePlayer && youtubePlayer.loadVideoById) youtubePlayer.loadVideoById(item.externalId);
        }
    }

    async function playNext() {
        const res = await fetch('/api/next', { method: 'POST' });
        const data = await res.json();
        if (res.status !== 200) {
            showNotification(data.message, true);
            return;
        }
        playItem(data.nextVideo);
        if (!data.nextVideo) showNotification('Queue is empty.');
        refreshQueueDisplay();
    }

    async function deleteItem(index) {
        const res = await fetch('/api/delete', {
            method: 'POST',
            headers: { 'Content-Type': 'application/json' },
            body: JSON.stringify({ index: index }),
        });
        const data = await res.json();
        showNotification(data.message, !data.success);
        refreshQueueDisplay();
    }

    async function refreshQueueDisplay() {
        const res = await fetch('/api/queue');
        if (res.status !== 200) return;
        const data = await res.json();
        // the host console can advance too; follow whatever is now playing
        if (hostMode && itemKey(data.currentlyPlaying) !== loadedKey) playItem(data.currentlyPlaying);
        document.getElementById('current-song').innerHTML =
            data.currentlyPlaying ? describe(data.currentlyPlaying) : 'Nothing yet';
        const section = document.getElementById('current-queue-section');
        if (!data.queue.length) {
            section.innerHTML = '<div class="empty-msg">The queue is currently empty.</div>';
            return;
        }
        let rows = '';
        data.queue.forEach((item, idx) => {
            const action = hostMode && idx > 0
                ? '<button class="danger" onclick="deleteItem(' + idx + ')">Remove</button>' : '';
            rows += '<tr><td>' + (idx + 1) + '</td><td>' + describe(item) + '</td><td>' + action + '</td></tr>';
        });
        section.innerHTML = '<table><tbody>' + rows + '</tbody></table>';
    }

    async function addLibraryTracks() {
        const res = await fetch('/api/library/Users/' + encodeURIComponent(LIBRARY_USER_ID)
            + '/Items?Recursive=true&IncludeItemTypes=Audio&SortBy=Random&Limit=10');
        if (!res.ok) {
            showNotification('Could not reach the media library.', true);
            return;
        }
        const data = await res.json();
        let added = 0;
        for (const track of data.Items || []) {
            const addRes = await fetch('/api/add', {
                method: 'POST',
                headers: { 'Content-Type': 'application/json' },
                body: JSON.stringify({
                    kind: 'library-track',
                    externalId: track.Id,
                    title: track.Name,
                    artist: track.AlbumArtist,
                    coverReference: track.Id,
                    username: 'Library',
                }),
            });
            if (addRes.status === 201) added++;
        }
        showNotification('Added ' + added + ' library tracks.');
        refreshQueueDisplay();
    }

    document.getElementById('next-btn').addEventListener('click', playNext);
    document.getElementById('library-btn').addEventListener('click', addLibraryTracks);

    document.addEventListener('DOMContentLoaded', async () => {
        if (!(await ensureLoggedIn())) return;
        const status = await (await fetch('/api/status')).json();
        hostMode = status.isHost;
        if (hostMode) {
            document.getElementById('next-btn').classList.remove('hidden');
            if (LIBRARY_USER_ID) document.getElementById('library-btn').classList.remove('hidden');
        } else {
            document.getElementById('role-msg').textContent =
                'Guest view (' + status.yourIp + '): playback is controlled by the host.';
        }
        refreshQueueDisplay();
        setInterval(refreshQueueDisplay, 2000);
    });
    </script>
</body>
</html>
"""


def caller_address() -> str:
    return resolve_caller_address(
        request.remote_addr,
        request.headers,
        trust_proxy=current_app.config["TRUST_PROXY"],
    )


def require_auth(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        if current_app.config["REQUIRE_LOGIN"] and not session.get("authenticated"):
            return jsonify({"message": "Authentication required"}), 401
        return view(*args, **kwargs)

    return wrapper


def request_data() -> dict:
    if request.is_json:
        data = request.get_json(silent=True)
        return data if isinstance(data, dict) else {}
    return request.form.to_dict()


def _coerce_index(raw):
    if isinstance(raw, str):
        try:
            return int(raw.strip())
        except ValueError:
            return raw
    return raw


def create_app(
    config: JukeboxConfig,
    controller: Optional[QueueController] = None,
    title_strategies: Sequence[TitleStrategy] = DEFAULT_TITLE_STRATEGIES,
) -> Flask:
    """Build the web app around a controller (a fresh one if not given)."""
    if controller is None:
        controller = QueueController(resolve_host_address(config.host_ip))

    flask_app = Flask(__name__)
    flask_app.secret_key = config.secret_key()
    flask_app.config.update(
        TRUST_PROXY=config.trust_proxy,
        REQUIRE_LOGIN=config.require_login,
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SECURE=config.trust_proxy,
        PERMANENT_SESSION_LIFETIME=SESSION_LIFETIME,
    )
    flask_app.extensions["queue_controller"] = controller

    if config.trust_proxy:
        logger.warning("Trust proxy enabled - suitable for reverse proxy setups")
    else:
        logger.info("Trust proxy disabled - suitable for direct LAN usage")
    if config.require_login:
        logger.info("Login authentication enabled")
    else:
        logger.info("Login authentication disabled (open access)")

    @flask_app.errorhandler(ValidationError)
    def handle_validation_error(error):
        return jsonify({"success": False, "message": str(error), "reason": error.reason}), 400

    @flask_app.errorhandler(AuthorityError)
    def handle_authority_error(error):
        return jsonify({"success": False, "message": str(error)}), 403

    @flask_app.route("/")
    def index():
        return render_template_string(
            INDEX_TEMPLATE, style=BASE_STYLE, script=SHARED_SCRIPT, login_form=LOGIN_FORM
        )

    @flask_app.route("/player")
    def player():
        return render_template_string(
            PLAYER_TEMPLATE,
            style=BASE_STYLE,
            script=SHARED_SCRIPT,
            login_form=LOGIN_FORM,
            library_user_id=config.library_user_id if config.library_url else None,
        )

    @flask_app.route("/api/login", methods=["POST"])
    def login():
        if not config.require_login:
            return jsonify({"success": False, "message": "Login is not enabled"}), 400

        data = request_data()
        username = data.get("username")
        password = data.get("password")
        if not isinstance(username, str) or not isinstance(password, str):
            username = password = None
        if not username or not password:
            return jsonify({"success": False, "message": "Username and password required"}), 400

        if username != config.username or not _password_matches(password, config.password_hash):
            logger.info(f"Failed login attempt from {caller_address()}")
            return jsonify({"success": False, "message": "Invalid credentials"}), 401

        session.clear()
        session.permanent = True
        session["authenticated"] = True
        session["username"] = username
        logger.info(f"User logged in: {username}")
        return jsonify({"success": True, "message": "Login successful"})

    @flask_app.route("/api/logout", methods=["POST"])
    def logout():
        if not session.get("authenticated"):
            session.clear()
            return jsonify({"success": True, "message": "Already logged out"})
        username = session.get("username", "unknown")
        session.clear()
        logger.info(f"User logged out: {username}")
        return jsonify({"success": True, "message": "Logged out successfully"})

    @flask_app.route("/api/auth-status")
    def auth_status():
        return jsonify(
            {
                "requireLogin": config.require_login,
                "authenticated": session.get("authenticated") is True,
            }
        )

    @flask_app.route("/api/status")
    @require_auth
    def status():
        caller = caller_address()
        return jsonify({"isHost": controller.is_host(caller), "yourIp": caller})

    @flask_app.route("/api/add", methods=["POST"])
    @require_auth
    def add():
        item, verified = build_queue_item(
            request_data(),
            requested_by=caller_address(),
            timeout=config.enrichment_timeout,
            strategies=title_strategies,
        )
        stored = controller.enqueue(item)
        message = (
            "Video added successfully"
            if verified
            else "Video added (warning: could not verify if embedding is allowed)"
        )
        return jsonify({"success": True, "message": message, "video": stored.to_dict()}), 201

    @flask_app.route("/api/next", methods=["POST"])
    @require_auth
    def next_video():
        item = controller.advance(caller_address())
        return jsonify({"nextVideo": item.to_dict() if item else None})

    @flask_app.route("/api/delete", methods=["POST"])
    @require_auth
    def delete():
        index = _coerce_index(request_data().get("index"))
        controller.delete(index, caller_address())
        return jsonify({"success": True, "message": "Video removed"})

    @flask_app.route("/api/queue")
    @require_auth
    def queue_state():
        return jsonify(controller.snapshot().to_dict())

    @flask_app.route("/api/library/<path:subpath>")
    @require_auth
    def library_proxy(subpath):
        if not config.library_url:
            return jsonify({"success": False, "message": "No media library configured"}), 404

        headers = {}
        if config.library_token:
            headers["X-MediaBrowser-Token"] = config.library_token
        if "Range" in request.headers:
            headers["Range"] = request.headers["Range"]
        try:
            upstream = requests.get(
                f"{config.library_url}/{subpath}",
                params=list(request.args.items(multi=True)),
                headers=headers,
                timeout=LIBRARY_TIMEOUT_SECONDS,
                stream=True,
            )
        except requests.exceptions.RequestException as e:
            logger.warning(f"Media library request failed for {subpath}: {e}")
            return jsonify({"success": False, "message": "Media library unreachable"}), 502

        def generate():
            try:
                for chunk in upstream.iter_content(chunk_size=8192):
                    yield chunk
            finally:
                upstream.close()

        response = Response(
            generate(),
            status=upstream.status_code,
            content_type=upstream.headers.get("Content-Type", "application/octet-stream"),
        )
        for name in RELAYED_LIBRARY_HEADERS:
            if name in upstream.headers:
                response.headers[name] = upstream.headers[name]
        return response

    return flask_app


def _password_matches(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError as e:
        # bad hash in config, or a password bcrypt refuses (over 72 bytes)
        logger.warning(f"Password check failed: {e}")
        return False


def run_flask(flask_app: Flask, config: JukeboxConfig):
    zeroconf = None
    info = None
    try:
        if config.advertise:
            ip_address = get_local_ip()
            info = ServiceInfo(
                "_http._tcp.local.",
                "LAN Jukebox._http._tcp.local.",
                addresses=[socket.inet_aton(ip_address)],
                port=config.port,
                properties={"path": "/"},
                server="jukebox.local.",
            )
            zeroconf = Zeroconf()
            zeroconf.register_service(info)
            logger.info(
                f"mDNS service registered: http://jukebox.local:{config.port} "
                f"(or http://{ip_address}:{config.port})"
            )

        flask_app.run(host="0.0.0.0", port=config.port, debug=False, use_reloader=False)
    finally:
        if zeroconf:
            logger.info("Unregistering mDNS service...")
            zeroconf.unregister_service(info)
            zeroconf.close()
