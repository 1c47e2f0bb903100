"""
Preview page served to the browser.

The page is the render surface: it shows the rendered document, reports
block visibility over ``/ws/render`` and applies reveal and
update-content messages. Sync decisions stay on the server; the page
only holds back its reports while a scroll it started is settling, and
re-reads the live position of every visible block on each report.
"""

from __future__ import annotations

import html
import json
from typing import Any

from ..config import SyncConfig
from ..core.model import RenderedDocument

_CLIENT_SCRIPT = """\
<script data-livesync>
(function() {
  var cfg = JSON.parse(document.getElementById('livesync-config').textContent);
  var content = document.getElementById('livesync-content');
  var generation = cfg.generation;
  var observer = null;
  var visible = new Map();
  var settling = false, settleTimer = null, reportTimer = null;
  var qs = '?path=' + encodeURIComponent(cfg.path)
    + (cfg.token ? '&token=' + encodeURIComponent(cfg.token) : '');
  var proto = location.protocol === 'https:' ? 'wss://' : 'ws://';
  var ws = new WebSocket(proto + location.host + '/ws/render' + qs);

  function send(msg) {
    if (ws.readyState === 1) ws.send(JSON.stringify(msg));
  }

  // quiet until the scroll we started has stopped for settleMs
  function settle() {
    settling = true;
    clearTimeout(settleTimer);
    settleTimer = setTimeout(function() { settling = false; }, cfg.settleMs);
  }

  // live rects of every visible block, plus blocks that just left
  function report(left) {
    if (settling) return;
    var entries = left.slice();
    visible.forEach(function(ratio, el) {
      entries.push({
        blockId: el.id,
        intersectionRatio: ratio,
        boundingTop: el.getBoundingClientRect().top
      });
    });
    if (!entries.length) return;
    send({
      type: 'visibility',
      generation: generation,
      viewportHeight: window.innerHeight,
      entries: entries
    });
  }

  function bind() {
    if (observer) observer.disconnect();
    visible.clear();
    observer = new IntersectionObserver(function(changes) {
      var left = [];
      changes.forEach(function(e) {
        if (e.isIntersecting) {
          visible.set(e.target, e.intersectionRatio);
        } else {
          visible.delete(e.target);
          left.push({blockId: e.target.id, intersectionRatio: 0,
                     boundingTop: e.boundingClientRect.top});
        }
      });
      report(left);
    }, {threshold: [0, 0.1, 0.5, 1.0]});
    content.querySelectorAll('[data-source-line]').forEach(function(el) {
      if (el.id) observer.observe(el);
    });
  }

  window.addEventListener('scroll', function() {
    if (settling) { settle(); return; }
    if (reportTimer) return;
    reportTimer = setTimeout(function() {
      reportTimer = null;
      report([]);
    }, cfg.reportMs);
  }, {passive: true});

  function closestByLine(line) {
    var best = null, bestLine = -1;
    content.querySelectorAll('[data-source-line]').forEach(function(el) {
      var l = parseInt(el.getAttribute('data-source-line'), 10);
      if (l <= line && l > bestLine) { best = el; bestLine = l; }
    });
    return best;
  }

  function reveal(msg) {
    if (msg.generation !== generation) return;
    var el = msg.blockId ? document.getElementById(msg.blockId) : null;
    if (!el) el = closestByLine(msg.line);
    if (!el) return;
    settle();
    el.scrollIntoView({behavior: 'auto', block: 'start'});
  }

  ws.onmessage = function(ev) {
    var msg = JSON.parse(ev.data);
    if (msg.type === 'update-content') {
      content.innerHTML = msg.html;
      generation = msg.generation;
      bind();
    } else if (msg.type === 'reveal') {
      reveal(msg);
    }
  };
  ws.onclose = function() {
    setTimeout(function() { location.reload(); }, 2000);
  };

  document.addEventListener('click', function(e) {
    var a = e.target.closest ? e.target.closest('a[href^="#"]') : null;
    if (!a) return;
    var id = decodeURIComponent(a.getAttribute('href').slice(1));
    if (document.getElementById(id)) {
      settle();
      send({type: 'user-reveal', blockId: id, generation: generation});
    }
  });

  bind();
})();
</script>
"""

_PAGE = """\
<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>{title}</title>
<style>
  body {{ max-width: 52rem; margin: 0 auto; padding: 2rem 1.5rem 60vh;
         font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif;
         line-height: 1.6; }}
  [data-source-line] {{ scroll-margin-top: 12vh; }}
  pre {{ overflow-x: auto; padding: 0.75rem; background: #f5f5f5; }}
  table {{ border-collapse: collapse; }}
  td, th {{ border: 1px solid #ddd; padding: 0.25rem 0.5rem; }}
</style>
</head>
<body>
<main id="livesync-content">
{content}
</main>
<script type="application/json" id="livesync-config">{config}</script>
{script}</body>
</html>
"""


def _script_json(data: dict[str, Any]) -> str:
    # keep "</script>" inside string values from closing the tag
    return json.dumps(data).replace("</", "<\\/")


def page_title(document: RenderedDocument, fallback: str) -> str:
    title = document.meta.get("title")
    if isinstance(title, str) and title.strip():
        return title.strip()
    for block in document.blocks:
        if block.heading_text:
            return block.heading_text
    return fallback


def render_page(
    document: RenderedDocument,
    path: str,
    token: str | None = None,
    sync: SyncConfig | None = None,
) -> str:
    """
    Full preview page for ``document`` with the render-surface client.

    ``sync`` supplies the settle delay the page waits out after its own
    reveals and the interval between scroll reports.
    """
    sync = sync or SyncConfig()
    config = {
        "path": path,
        "token": token,
        "generation": document.generation,
        "settleMs": sync.settle_ms,
        "reportMs": sync.min_sync_interval_ms,
    }
    return _PAGE.format(
        title=html.escape(page_title(document, path.rsplit("/", 1)[-1])),
        content=document.html,
        config=_script_json(config),
        script=_CLIENT_SCRIPT,
    )
