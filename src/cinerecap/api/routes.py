# ruff: noqa: E501

from __future__ import annotations

import html
import logging
from uuid import uuid4

from fastapi import APIRouter, HTTPException, Request, Response
from fastapi.responses import HTMLResponse, JSONResponse

from cinerecap.api.session import SESSION_COOKIE
from cinerecap.core.authz import (
    DeviceNotAuthorized,
    InvalidCredentials,
    User,
    login,
    logout,
    restore_session,
)
from cinerecap.core.fingerprint import compute_fingerprint, fill_from_headers
from cinerecap.core.recap import generate_movie_recap
from cinerecap.core.schemas import (
    TONES,
    DeviceResponse,
    DeviceSignals,
    LoginRequest,
    RecapRequest,
    RecapStateResponse,
    UserOut,
)
from cinerecap.core.view import InvalidTransition, RecapStatus, RecapView, finish_recap

logger = logging.getLogger(__name__)

router = APIRouter()


def _device_id(request: Request, signals: DeviceSignals) -> str:
    return compute_fingerprint(fill_from_headers(signals, request.headers))


def _set_session_cookie(response: Response, key: str) -> None:
    response.set_cookie(SESSION_COOKIE, key, httponly=True, samesite="lax")


def _user_out(user: User) -> UserOut:
    return UserOut(username=user.username, device_id=user.device_id)


def _require_session(request: Request) -> tuple[str, User]:
    key = request.cookies.get(SESSION_COOKIE)
    user = request.app.state.session_store.load(key) if key else None
    if key is None or user is None:
        raise HTTPException(status_code=401, detail="Login required")
    return key, user


def _view_state(view: RecapView) -> RecapStateResponse:
    return RecapStateResponse(
        status=view.status.value,
        error=view.error,
        movie=view.movie,
        recap=view.recap,
    )


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/api/device", response_model=DeviceResponse)
def device(signals: DeviceSignals, request: Request) -> DeviceResponse:
    return DeviceResponse(device_id=_device_id(request, signals))


@router.post("/api/session", response_model=UserOut)
def session(signals: DeviceSignals, request: Request) -> UserOut:
    store = request.app.state.session_store
    key = request.cookies.get(SESSION_COOKIE)

    user = restore_session(store, key, _device_id(request, signals))
    if user is None:
        if key:
            request.app.state.views.discard(key)
        raise HTTPException(status_code=401, detail="Login required")
    return _user_out(user)


@router.post("/api/login", response_model=UserOut)
def login_route(req: LoginRequest, request: Request, response: Response):
    device_id = _device_id(request, req.device)
    key = request.cookies.get(SESSION_COOKIE) or uuid4().hex

    try:
        user = login(
            request.app.state.authorized_users,
            req.username,
            req.password,
            device_id,
            store=request.app.state.session_store,
            session_key=key,
        )
    except InvalidCredentials as e:
        raise HTTPException(status_code=401, detail=str(e)) from e
    except DeviceNotAuthorized as e:
        return JSONResponse(
            status_code=403,
            content={"detail": str(e), "deviceId": e.device_id},
        )

    _set_session_cookie(response, key)
    return _user_out(user)


@router.post("/api/logout")
def logout_route(request: Request, response: Response) -> dict[str, str]:
    key = request.cookies.get(SESSION_COOKIE)
    logout(request.app.state.session_store, key)
    if key:
        request.app.state.views.discard(key)
    response.delete_cookie(SESSION_COOKIE)
    return {"status": "ok"}


@router.get("/api/recap", response_model=RecapStateResponse)
def recap_state(request: Request) -> RecapStateResponse:
    key, _user = _require_session(request)
    return _view_state(request.app.state.views.get(key))


@router.post("/api/recap", response_model=RecapStateResponse)
def create_recap(req: RecapRequest, request: Request):
    key, user = _require_session(request)
    settings = request.app.state.settings

    try:
        view = request.app.state.views.submit(key, req.movie)
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e)) from e

    logger.info("User %r requested a recap of %r", user.username, req.movie.title)
    finish_recap(view, lambda movie: generate_movie_recap(movie, settings=settings))

    state = _view_state(view)
    if view.status is RecapStatus.ERROR:
        return JSONResponse(status_code=502, content=state.model_dump(mode="json", by_alias=True))
    return state


@router.post("/api/recap/reset", response_model=RecapStateResponse)
def reset_recap(request: Request) -> RecapStateResponse:
    key, _user = _require_session(request)
    view = request.app.state.views.get(key)
    try:
        view.reset()
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return _view_state(view)


_INDEX_HTML = """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1" />
  <title>CineRecap AI</title>
  <style>
    :root {
      --bg: #0b1120;
      --panel: #111a2e;
      --ink: #e2e8f0;
      --muted: #64748b;
      --line: #1e293b;
      --accent: #f59e0b;
      --danger: #f87171;
    }
    body { margin: 0; font-family: ui-sans-serif, system-ui, sans-serif; color: var(--ink); background: var(--bg); }
    main { max-width: 64rem; margin: 0 auto; padding: 1.2rem; }
    .hidden { display: none !important; }
    .card { background: var(--panel); border: 1px solid var(--line); border-radius: 1rem; padding: 1.2rem; }
    .login { max-width: 26rem; margin: 3rem auto; }
    .grid { display: grid; grid-template-columns: minmax(16rem, 5fr) minmax(18rem, 7fr); gap: 1rem; }
    label { display: block; font-size: .75rem; text-transform: uppercase; letter-spacing: .05em; color: var(--muted); margin: .7rem 0 .25rem 0; }
    input, select, textarea { width: 100%; box-sizing: border-box; background: #0f172a; color: var(--ink); border: 1px solid var(--line); border-radius: .6rem; padding: .6rem .7rem; }
    button { margin-top: .9rem; background: var(--accent); color: #0b1120; border: 0; border-radius: .6rem; padding: .7rem 1rem; font-weight: 700; cursor: pointer; }
    button:disabled { opacity: .5; cursor: default; }
    button.link { background: none; color: var(--accent); padding: 0; text-decoration: underline; }
    .error { color: var(--danger); font-size: .85rem; margin-top: .6rem; }
    .muted { color: var(--muted); }
    .tagline { font-style: italic; font-size: 1.3rem; border-left: 4px solid var(--accent); padding-left: 1rem; }
    .summary { white-space: pre-wrap; line-height: 1.6; }
    code { color: var(--accent); font-weight: 700; }
    nav { display: flex; justify-content: space-between; align-items: center; margin-bottom: 1rem; }
  </style>
</head>
<body>
  <main>
    <section id="login_panel" class="card login hidden">
      <h1 style="margin-top:0">CineRecap AI</h1>
      <div class="muted">Secure Movie Analysis Studio</div>
      <form id="login_form">
        <label for="username">Username</label>
        <input id="username" type="text" required />
        <label for="password">Password</label>
        <input id="password" type="password" required />
        <div id="auth_error" class="error hidden">
          <span id="auth_error_text"></span>
          <button type="button" class="link" id="copy_id">Click here to Copy ID</button>
        </div>
        <button type="submit">Verify Identity</button>
      </form>
      <div style="margin-top:1.2rem" class="muted">Device Hardware Token: <code id="device_id"></code></div>
    </section>

    <section id="app_panel" class="hidden">
      <nav>
        <strong>CineRecap AI</strong>
        <span><span id="who" class="muted"></span> <button type="button" class="link" id="logout">Sign Out</button></span>
      </nav>
      <div class="grid">
        <form id="recap_form" class="card">
          <h2 style="margin-top:0">Input Details</h2>
          <label for="title">Movie Title</label>
          <input id="title" type="text" required placeholder="e.g. Inception" />
          <label for="genre">Genre</label>
          <input id="genre" type="text" />
          <label for="director">Director</label>
          <input id="director" type="text" />
          <label for="plot">Key Plot Points</label>
          <textarea id="plot" rows="4" placeholder="Plot points, twists, or key scenes..."></textarea>
          <label for="tone">Tone</label>
          <select id="tone">{{TONE_OPTIONS}}</select>
          <label for="length">Recap Length</label>
          <select id="length">
            <option value="short">short</option>
            <option value="medium" selected>medium</option>
            <option value="detailed">detailed</option>
          </select>
          <label><input id="spoilers" type="checkbox" style="width:auto" /> Spoilers</label>
          <button id="submit" type="submit">Create Recap</button>
        </form>

        <section id="result" class="card"></section>
      </div>
    </section>
  </main>

  <script>
    const $ = (id) => document.getElementById(id);
    let deviceId = '';

    function deviceSignals() {
      const nav = window.navigator;
      const scr = window.screen;
      return {
        userAgent: nav.userAgent,
        platform: nav.platform,
        hardwareConcurrency: nav.hardwareConcurrency || null,
        screenWidth: scr.width,
        screenHeight: scr.height,
        availWidth: scr.availWidth,
        availHeight: scr.availHeight,
        timezoneOffset: new Date().getTimezoneOffset(),
      };
    }

    async function postJSON(url, body) {
      const resp = await fetch(url, {
        method: 'POST',
        headers: {'Content-Type': 'application/json'},
        body: JSON.stringify(body || {}),
      });
      let data = null;
      try { data = await resp.json(); } catch (e) { data = null; }
      return {ok: resp.ok, status: resp.status, data};
    }

    async function loadState() {
      const resp = await fetch('/api/recap');
      if (resp.ok) renderState(await resp.json()); else renderState({status: 'IDLE'});
    }

    function esc(text) {
      const el = document.createElement('div');
      el.textContent = text == null ? '' : String(text);
      return el.innerHTML;
    }

    function showLogin() {
      $('app_panel').classList.add('hidden');
      $('login_panel').classList.remove('hidden');
    }

    function showApp(user) {
      $('login_panel').classList.add('hidden');
      $('app_panel').classList.remove('hidden');
      $('who').textContent = user.username;
      loadState();
    }

    function renderState(state) {
      const box = $('result');
      $('submit').disabled = state.status === 'GENERATING';
      $('submit').textContent = state.status === 'GENERATING' ? 'Generating Professional Recap...' : 'Create Recap';
      $('recap_form').classList.toggle('hidden', state.status === 'COMPLETED');

      if (state.status === 'IDLE') {
        box.innerHTML = `<p class="muted">No active recap.<br/>Secure ID: <code>${esc(deviceId)}</code></p>`;
      } else if (state.status === 'GENERATING') {
        box.innerHTML = '<h3>Analyzing the Story</h3><p class="muted">The AI is crafting a high-quality summary...</p>';
      } else if (state.status === 'ERROR') {
        box.innerHTML = `<p class="error">${esc(state.error || 'Failed to generate recap.')}</p><p class="muted">Adjust the details and submit again to retry.</p>
          <button type="button" id="reset">Clear Error</button>
        `;
        bindReset();
      } else if (state.status === 'COMPLETED' && state.recap) {
        const r = state.recap;
        box.innerHTML = `
          <h1>${esc(state.movie ? state.movie.title : '')}</h1>
          <p class="tagline">"${esc(r.tagline)}"</p>
          <div class="summary">${esc(r.summary)}</div>
          <h4>Character Spotlight</h4><p>${esc(r.characterAnalysis)}</p>
          <h4>Key Takeaways</h4><ul>${r.keyTakeaways.map((t) => `<li>${esc(t)}</li>`).join('')}</ul>
          <h4>Critical Verdict</h4><p><em>${esc(r.verdict)}</em></p>
          <button type="button" id="reset">Finish Session &amp; Start New</button>
        `;
        bindReset();
      }
    }

    function bindReset() {
      $('reset').addEventListener('click', async () => {
        const res = await postJSON('/api/recap/reset');
        if (res.ok) renderState(res.data); else loadState();
      });
    }

    $('login_form').addEventListener('submit', async (ev) => {
      ev.preventDefault();
      $('auth_error').classList.add('hidden');
      const res = await postJSON('/api/login', {
        username: $('username').value,
        password: $('password').value,
        device: deviceSignals(),
      });
      if (res.ok) {
        showApp(res.data);
        return;
      }
      $('auth_error_text').textContent = (res.data && res.data.detail) || 'Login failed.';
      $('copy_id').classList.toggle('hidden', res.status !== 403);
      $('auth_error').classList.remove('hidden');
    });

    $('copy_id').addEventListener('click', async () => {
      await navigator.clipboard.writeText(deviceId);
      alert('ID copied! Send it to an administrator to register this device.');
    });

    $('logout').addEventListener('click', async () => {
      await postJSON('/api/logout');
      $('password').value = '';
      showLogin();
    });

    $('recap_form').addEventListener('submit', async (ev) => {
      ev.preventDefault();
      if (!$('title').value.trim()) return;
      renderState({status: 'GENERATING'});
      const res = await postJSON('/api/recap', {
        movie: {
          title: $('title').value,
          genre: $('genre').value,
          director: $('director').value,
          keyPlotPoints: $('plot').value,
          tone: $('tone').value,
          includeSpoilers: $('spoilers').checked,
          length: $('length').value,
        },
      });
      if (res.status === 409) {
        // The server already holds a view for this session; show it instead.
        loadState();
      } else if (res.data && res.data.status) {
        renderState(res.data);
      } else {
        renderState({status: 'ERROR', error: (res.data && res.data.detail) || null});
      }
    });

    (async () => {
      const signals = deviceSignals();
      const dev = await postJSON('/api/device', signals);
      deviceId = dev.ok ? dev.data.deviceId : '';
      $('device_id').textContent = deviceId;

      const res = await postJSON('/api/session', signals);
      if (res.ok) showApp(res.data); else showLogin();
    })();
  </script>
</body>
</html>
"""


@router.get("/", response_class=HTMLResponse)
def index() -> HTMLResponse:
    tone_options = "".join(
        f'<option value="{html.escape(t)}">{html.escape(t)}</option>' for t in TONES
    )
    return HTMLResponse(_INDEX_HTML.replace("{{TONE_OPTIONS}}", tone_options))
