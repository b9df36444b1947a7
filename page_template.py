"""Servo panel web UI HTML template (spring toggles + button pad + live status)."""

__all__ = ["HTML_PAGE"]

HTML_PAGE = """
<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>Servo Controller</title>
  <meta name="description" content="Servo Controller: ESP32 servo switch panel">
  <meta name="viewport" content="width=device-width, initial-scale=1, viewport-fit=cover">
  <script src="https://cdn.socket.io/4.7.2/socket.io.min.js"></script>

  <style>
    :root {
      --gap: 14px;
      --radius: 12px;
      --border: #d0d7de;
      --fg: #1f2328;
      --muted: #57606a;
      --track-w: 96px;
      --track-h: 40px;
      --knob: 32px;
    }

    * { box-sizing: border-box; }
    body { margin: 0; font-family: system-ui,-apple-system,Segoe UI,Roboto,sans-serif; color: var(--fg); background: #fafbfc; }
    .wrap { display: grid; gap: var(--gap); padding: var(--gap); max-width: 1200px; margin: 0 auto; }
    .muted { color: var(--muted); }

    .display { font-family: ui-monospace,monospace; text-align: center; padding: 16px; border: 1px solid var(--border); border-radius: var(--radius); background: #fff; }

    .tiles { display: grid; grid-template-columns: repeat(auto-fill, minmax(200px, 1fr)); gap: var(--gap); }
    .tile { display: grid; gap: 8px; justify-items: center; padding: 12px; border: 1px solid var(--border); border-radius: var(--radius); background: #fff; }
    .tile h3 { margin: 0; font-size: 16px; }

    .toggle { display: flex; align-items: center; gap: 8px; font-size: 11px; font-weight: 600; }
    .track { position: relative; width: var(--track-w); height: var(--track-h); border-radius: 999px; border: 1px solid var(--border); background: #f3f4f6; cursor: pointer; user-select: none; touch-action: none; }
    .knob { position: absolute; top: 50%; width: var(--knob); height: var(--knob); border-radius: 50%; background: #1f2937; transform: translateY(-50%); transition: left 0.2s, right 0.2s; pointer-events: none; }
    .knob[data-pos="center"] { left: calc(50% - var(--knob) / 2); }
    .knob[data-pos="left"]   { left: 4px; }
    .knob[data-pos="right"]  { left: calc(100% - var(--knob) - 4px); }
    .knob.dragging { transform: translateY(-50%) scale(1.1); }

    .pad { display: flex; flex-wrap: wrap; gap: 8px; }
    .pbtn { min-width: 64px; height: 44px; border-radius: 10px; border: 1px solid var(--border); background: #fff; font-size: 16px; cursor: pointer; }
    .pbtn.active { background: #1f2937; color: #fff; }
  </style>
</head>
<body>
  <div class="wrap">
    <header>
      <h1>Servo Controller</h1>
      <div class="muted">Drag or click a toggle: left = OFF, right = ON</div>
    </header>

    <div id="msg" class="display" aria-live="polite">{{msg}}</div>

    <section id="tiles" class="tiles"></section>

    <section class="tile">
      <h3>Button pad</h3>
      <div id="pad" class="pad"></div>
    </section>

    <footer class="muted">Connected to: {{esp}}</footer>
  </div>

  <script id="switch-data" type="application/json">{{switches_json}}</script>
  <script id="button-data" type="application/json">{{buttons_json}}</script>

  <script>
  const socket = io();
  const tiles = document.getElementById('tiles');
  const pad = document.getElementById('pad');
  const msgEl = document.getElementById('msg');

  function geometry(track) {
    const r = track.getBoundingClientRect();
    return { left: r.left, width: r.width };
  }

  function buildTile(sw) {
    const tile = document.createElement('div');
    tile.className = 'tile';
    tile.innerHTML =
      '<h3>Switch ' + sw + '</h3>' +
      '<div class="muted">Status: <span id="status-' + sw + '">idle</span></div>' +
      '<div class="toggle"><span>OFF</span>' +
      '<div class="track" id="track-' + sw + '" role="button" aria-label="Toggle servo ' + sw + '">' +
      '<div class="knob" id="knob-' + sw + '" data-pos="center"></div></div>' +
      '<span>ON</span></div>';
    tiles.appendChild(tile);

    const track = tile.querySelector('.track');
    const send = (type, e) => {
      const g = geometry(track);
      socket.emit('pointer', { switch: sw, type: type, x: e ? e.clientX : null, left: g.left, width: g.width });
    };
    track.addEventListener('mousedown', (e) => { e.preventDefault(); send('down', e); });
    track.addEventListener('mousemove', (e) => { if (e.buttons & 1) send('move', e); });
    track.addEventListener('mouseup', (e) => send('up', e));
    track.addEventListener('mouseleave', (e) => send('leave', e));
    track.addEventListener('click', (e) => {
      const g = geometry(track);
      socket.emit('toggle_click', { switch: sw, x: e.clientX, left: g.left, width: g.width });
    });
  }

  function buildPad(names) {
    names.forEach((name) => {
      const b = document.createElement('button');
      b.type = 'button';
      b.className = 'pbtn';
      b.id = 'btn-' + name;
      b.textContent = name;
      b.addEventListener('click', () => socket.emit('button', { name: name }));
      pad.appendChild(b);
    });
  }

  function setStatus(sw, status) {
    const el = document.getElementById('status-' + sw);
    if (el) el.textContent = (status && status !== 'unknown') ? status : 'idle';
  }

  function setKnob(sw, pos, dragging) {
    const k = document.getElementById('knob-' + sw);
    if (!k) return;
    k.dataset.pos = pos;
    k.classList.toggle('dragging', !!dragging);
  }

  socket.on('snapshot', (data) => {
    if ('msg' in data) msgEl.textContent = data.msg;
    Object.entries(data.switches || {}).forEach(([sw, s]) => { setStatus(sw, s.status); setKnob(sw, s.position, false); });
    Object.entries(data.buttons || {}).forEach(([name, on]) => {
      const b = document.getElementById('btn-' + name);
      if (b) b.classList.toggle('active', !!on);
    });
  });

  socket.on('switch', (data) => {
    if ('msg' in data) msgEl.textContent = data.msg;
    if (data.event === 'position') setKnob(data.switch, data.position, data.dragging);
    if ('status' in data && 'switch' in data) setStatus(data.switch, data.status);
    if (data.event === 'button' && 'active' in data) {
      const b = document.getElementById('btn-' + data.button);
      if (b) b.classList.toggle('active', !!data.active);
    }
  });

  document.addEventListener('DOMContentLoaded', () => {
    JSON.parse(document.getElementById('switch-data').textContent || '[]').forEach(buildTile);
    buildPad(JSON.parse(document.getElementById('button-data').textContent || '[]'));
  });
  </script>
</body>
</html>
"""
