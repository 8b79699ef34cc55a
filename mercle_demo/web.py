"""Flask presentation layer for the demo.

The page plays the role of the browser app: it owns every screen, maps the
user's buttons onto the sequencer's commands and serves the files that make
the demo installable (web manifest, service worker, icon).
"""
from __future__ import annotations

import json
import logging
import secrets
import textwrap
from typing import Any, Dict, List
from urllib import parse as urlparse

from flask import Flask, Response, jsonify, redirect, render_template_string, request, session, url_for

from .config import DemoConfig
from .sequencer import ExchangeSequencer, Transport
from .session_store import SESSION_ID_KEY, ServerSessionStore

logger = logging.getLogger(__name__)

APP_NAME = "Mercle Face ID Demo"
THEME_COLOR = "#6c5ce7"
WELL_KNOWN_PROFILE_FIELDS = ("sub", "verified", "email", "name")

PAGE_HTML = textwrap.dedent(
    """
    <!doctype html>
    <html lang="en">
    <head>
      <meta charset="utf-8" />
      <meta name="viewport" content="width=device-width, initial-scale=1" />
      <meta name="theme-color" content="{{ theme_color }}" />
      <title>{{ app_name }}</title>
      <link rel="manifest" href="{{ url_for('manifest') }}" />
      <link rel="icon" href="{{ url_for('icon') }}" type="image/svg+xml" />
      <link rel="apple-touch-icon" href="{{ url_for('icon') }}" />
      <style>
        body { font-family: system-ui, sans-serif; margin: 0; padding: 1.5rem; background: #f4f3fb; color: #222; }
        main { max-width: 32rem; margin: 0 auto; }
        .card { background: white; border-radius: 12px; padding: 1.5rem; box-shadow: 0 1px 4px rgba(0,0,0,0.1); }
        button { padding: 0.6rem 1.2rem; border-radius: 6px; border: none; background: {{ theme_color }}; color: white; cursor: pointer; font-size: 1rem; }
        button.secondary { background: #ddd; color: #222; }
        .hidden { display: none; }
        .user-info-item { display: flex; justify-content: space-between; padding: 0.4rem 0; border-bottom: 1px solid #eee; gap: 1rem; }
        .user-info-label { color: #666; }
        .user-info-value { font-family: monospace; word-break: break-all; text-align: right; }
        .verified-badge { color: #1a7f37; font-weight: bold; }
        .steps { font-size: 0.85rem; color: #666; padding-left: 1.2rem; }
        pre { background: #1e1e1e; color: #f5f5f5; padding: 0.5rem; border-radius: 4px; overflow-x: auto; white-space: pre-wrap; }
      </style>
    </head>
    <body>
      <main>
        <h1>{{ app_name }}</h1>
        {% if page.screen == "welcome" %}
        <section id="welcomeScreen" class="card screen active">
          <p>Verify your identity with Mercle Face ID. You will be redirected to Mercle and sent back here once you are done.</p>
          <form method="post" action="{{ url_for('verify') }}">
            <button id="verifyBtn" type="submit">Verify with Mercle</button>
          </form>
        </section>
        {% elif page.screen == "success" %}
        <section id="successScreen" class="card screen active">
          <h2>Verification complete</h2>
          <div id="userInfo">
            {% for field in page.fields %}
            <div class="user-info-item">
              <span class="user-info-label">{{ field.label }}</span>
              <span class="user-info-value">{% if field.badge %}<span class="verified-badge">&#10003; Verified</span>{% else %}{{ field.value }}{% endif %}</span>
            </div>
            {% endfor %}
          </div>
          {% if page.progress %}
          <ol class="steps">{% for step in page.progress %}<li>{{ step }}</li>{% endfor %}</ol>
          {% endif %}
          <form method="post" action="{{ url_for('logout') }}">
            <button id="logoutBtn" class="secondary" type="submit">Log out</button>
          </form>
        </section>
        {% else %}
        <section id="errorScreen" class="card screen active">
          <h2 id="errorText">{{ page.error_message }}</h2>
          {% if page.error_details %}<pre id="errorDetails">{{ page.error_details }}</pre>{% endif %}
          {% if page.progress %}
          <ol class="steps">{% for step in page.progress %}<li>{{ step }}</li>{% endfor %}</ol>
          {% endif %}
          <form method="post" action="{{ url_for('retry') }}">
            <button id="retryBtn" type="submit">Try again</button>
          </form>
        </section>
        {% endif %}
        <p><button id="installBtn" class="secondary hidden" type="button">Install app</button></p>
      </main>
      <script>
        {% if page.location %}
        window.history.replaceState({}, document.title, {{ page.location | tojson }});
        {% endif %}
        let deferredPrompt = null;
        const installBtn = document.getElementById('installBtn');
        window.addEventListener('beforeinstallprompt', (e) => {
          e.preventDefault();
          deferredPrompt = e;
          installBtn.classList.remove('hidden');
        });
        installBtn.addEventListener('click', async () => {
          if (!deferredPrompt) return;
          deferredPrompt.prompt();
          const { outcome } = await deferredPrompt.userChoice;
          console.log('Install prompt outcome:', outcome);
          deferredPrompt = null;
          installBtn.classList.add('hidden');
        });
        window.addEventListener('appinstalled', () => {
          installBtn.classList.add('hidden');
        });
        if ('serviceWorker' in navigator) {
          window.addEventListener('load', () => {
            navigator.serviceWorker.register({{ url_for('service_worker') | tojson }})
              .catch((err) => console.log('ServiceWorker registration failed:', err));
          });
        }
      </script>
    </body>
    </html>
    """
).strip()

SERVICE_WORKER_JS = textwrap.dedent(
    """
    const CACHE_NAME = 'mercle-demo-v1';
    const STATIC_ASSETS = ['manifest.webmanifest', 'icon.svg'];

    self.addEventListener('install', (event) => {
      event.waitUntil(caches.open(CACHE_NAME).then((cache) => cache.addAll(STATIC_ASSETS)));
      self.skipWaiting();
    });

    self.addEventListener('activate', (event) => {
      event.waitUntil(
        caches.keys().then((keys) =>
          Promise.all(keys.filter((key) => key !== CACHE_NAME).map((key) => caches.delete(key)))
        )
      );
      self.clients.claim();
    });

    // Pages and OAuth callbacks always go to the network; only static assets are cached.
    self.addEventListener('fetch', (event) => {
      if (event.request.method !== 'GET' || event.request.mode === 'navigate') {
        return;
      }
      event.respondWith(
        caches.match(event.request).then((cached) => cached || fetch(event.request))
      );
    });
    """
).strip()

ICON_SVG = textwrap.dedent(
    """
    <svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 512 512">
      <rect width="512" height="512" rx="96" fill="#6c5ce7"/>
      <circle cx="256" cy="220" r="96" fill="none" stroke="white" stroke-width="32"/>
      <path d="M128 420c24-64 72-96 128-96s104 32 128 96" fill="none" stroke="white" stroke-width="32" stroke-linecap="round"/>
    </svg>
    """
).strip()


def _humanize(key: str) -> str:
    return key[:1].upper() + key[1:].replace("_", " ")


def profile_fields(user: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Flatten a profile into display rows.

    ``sub``, ``verified``, ``email`` and ``name`` always come first; every
    other claim follows in the provider's order, nested values JSON-encoded.
    """
    verified = bool(user.get("verified"))
    fields: List[Dict[str, Any]] = [
        {"label": "User ID", "value": user.get("sub") or "N/A", "badge": False},
        {"label": "Status", "value": "Verified" if verified else "Not Verified", "badge": verified},
        {"label": "Email", "value": user.get("email") or "Not provided", "badge": False},
        {"label": "Name", "value": user.get("name") or "Not provided", "badge": False},
    ]
    for key, value in user.items():
        if key in WELL_KNOWN_PROFILE_FIELDS:
            continue
        if isinstance(value, (dict, list)):
            value = json.dumps(value)
        fields.append({"label": _humanize(key), "value": value, "badge": False})
    return fields


def format_details(details: Any) -> str | None:
    if details is None or details == "":
        return None
    if isinstance(details, (dict, list)):
        return json.dumps(details, indent=2)
    return str(details)


class PageState:
    """Presenter that records what one request should render."""

    def __init__(self) -> None:
        self.screen = "welcome"
        self.redirect_to: str | None = None
        self.location: str | None = None
        self.progress: List[str] = []
        self.fields: List[Dict[str, Any]] = []
        self.error_message: str | None = None
        self.error_details: str | None = None

    def navigate(self, url: str) -> None:
        self.redirect_to = url

    def replace_location(self, path: str) -> None:
        self.location = path

    def set_loading_text(self, text: str) -> None:
        self.progress.append(text)

    def show_welcome(self) -> None:
        self.screen = "welcome"

    def show_error(self, message: str, details: Any = None) -> None:
        self.screen = "error"
        self.error_message = message
        self.error_details = format_details(details)

    def show_success(self, profile: Dict[str, Any], tokens: Dict[str, Any]) -> None:
        self.screen = "success"
        self.fields = profile_fields(profile)


def create_app(
    config: DemoConfig,
    transport: Transport | None = None,
    debug_console: bool = False,
) -> Flask:
    app = Flask(__name__)
    if config.session_secret:
        app.secret_key = config.session_secret
    else:
        app.secret_key = secrets.token_hex(32)
        logger.info("No session_secret configured; sessions will not survive a restart.")
    app.config.update(SESSION_COOKIE_SAMESITE="Lax", SESSION_COOKIE_HTTPONLY=True)
    if config.client_secret:
        logger.warning(
            "The client secret is sent to the token endpoint from this demo client. "
            "Do not reuse this pattern in production; redeem codes from a backend you control."
        )

    callback_path = urlparse.urlparse(config.redirect_uri).path or "/"

    sessions = ServerSessionStore()
    app.extensions["mercle_sessions"] = sessions

    def _session_values() -> Dict[str, Any]:
        session_id = session.get(SESSION_ID_KEY)
        if not session_id:
            session_id = sessions.new_id()
            session[SESSION_ID_KEY] = session_id
        return sessions.bucket(session_id)

    def _sequencer(page: PageState) -> ExchangeSequencer:
        return ExchangeSequencer(config, _session_values(), page, transport=transport)

    def _render(page: PageState) -> str:
        return render_template_string(PAGE_HTML, page=page, app_name=APP_NAME, theme_color=THEME_COLOR)

    def index() -> Any:
        page = PageState()
        if not _sequencer(page).handle_callback(request.args):
            page.show_welcome()
        return _render(page)

    app.add_url_rule("/", "index", index, methods=["GET"])
    if callback_path != "/":
        app.add_url_rule(callback_path, "callback", index, methods=["GET"])

    @app.post("/verify")
    def verify() -> Any:
        page = PageState()
        try:
            _sequencer(page).begin_verification()
        except RuntimeError as exc:
            logger.error("Cannot start verification: %s", exc)
            page.show_error("Configuration Error", str(exc))
            return _render(page), 500
        return redirect(page.redirect_to or url_for("index"))

    @app.post("/retry")
    def retry() -> Any:
        _sequencer(PageState()).retry()
        return redirect(url_for("index"))

    @app.post("/logout")
    def logout() -> Any:
        page = PageState()
        _sequencer(page).logout()
        return redirect(page.location or url_for("index"))

    @app.get("/manifest.webmanifest")
    def manifest() -> Any:
        payload = {
            "name": APP_NAME,
            "short_name": "Mercle Demo",
            "start_url": url_for("index"),
            "scope": "/",
            "display": "standalone",
            "background_color": "#f4f3fb",
            "theme_color": THEME_COLOR,
            "icons": [
                {"src": url_for("icon"), "sizes": "any", "type": "image/svg+xml", "purpose": "any maskable"}
            ],
        }
        response = jsonify(payload)
        response.mimetype = "application/manifest+json"
        return response

    @app.get("/sw.js")
    def service_worker() -> Any:
        return Response(SERVICE_WORKER_JS, mimetype="application/javascript", headers={"Service-Worker-Allowed": "/"})

    @app.get("/icon.svg")
    def icon() -> Any:
        return Response(ICON_SVG, mimetype="image/svg+xml")

    if debug_console:
        logger.warning("Debug console enabled at /debug. Development use only: it exposes stored tokens.")

        @app.get("/debug")
        def debug() -> Any:
            sequencer = _sequencer(PageState())
            return jsonify(
                {
                    "warning": "Development-only debug console. Never enable it on a shared deployment.",
                    "config": config.redacted(),
                    "tokens": sequencer.stored_tokens(),
                    "state_pending": sequencer.state_guard.pending(),
                }
            )

        @app.post("/debug/clear")
        def debug_clear() -> Any:
            session_id = session.pop(SESSION_ID_KEY, None)
            if session_id:
                sessions.discard(session_id)
            return redirect(url_for("index"))

    return app
