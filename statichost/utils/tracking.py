"""Browser tracking script served to hosted sites and the snippet that embeds it."""

from statichost.core.config import get_settings

SCRIPT_PATH = "/api/analytics/script.js"

# Reads data-site-id from its own <script> tag and reports to /api/analytics/hit/<id>
# on the origin it was loaded from.
TRACKING_SCRIPT = """(function () {
  'use strict';

  var script = document.currentScript;
  if (!script) return;
  var siteId = script.getAttribute('data-site-id');
  if (!siteId || !/^[0-9]+$/.test(siteId)) return;
  if (navigator.doNotTrack === '1' || window.doNotTrack === '1') return;

  var endpoint = new URL(script.src).origin + '/api/analytics/hit/' + siteId;
  var SESSION_KEY = 'statichost_session';
  var SESSION_TIMEOUT = 30 * 60 * 1000;

  function touchSession() {
    var now = Date.now();
    var started = false;
    var last = null;
    try {
      last = JSON.parse(sessionStorage.getItem(SESSION_KEY));
    } catch (e) {
      last = null;
    }
    if (!last || now - last.lastActivity > SESSION_TIMEOUT) {
      last = { startedAt: now };
      started = true;
    }
    last.lastActivity = now;
    try {
      sessionStorage.setItem(SESSION_KEY, JSON.stringify(last));
    } catch (e) {
      // storage disabled
    }
    return started;
  }

  function loadTime() {
    var timing = window.performance && performance.timing;
    if (!timing || !timing.loadEventEnd) return undefined;
    return timing.loadEventEnd - timing.navigationStart;
  }

  function send(payload) {
    payload.url = window.location.href;
    payload.path = window.location.pathname + window.location.search;
    payload.referrer = document.referrer || undefined;
    payload.screen_resolution = screen.width + 'x' + screen.height;
    payload.language = navigator.language;
    var body = JSON.stringify(payload);

    if (navigator.sendBeacon && navigator.sendBeacon(endpoint, new Blob([body], { type: 'text/plain' }))) {
      return;
    }
    if (window.fetch) {
      fetch(endpoint, { method: 'POST', body: body, keepalive: true, mode: 'cors' }).catch(function () {});
      return;
    }
    var img = new Image(1, 1);
    img.src = endpoint + '?path=' + encodeURIComponent(payload.path) + '&event_type=' + payload.event_type;
  }

  function trackPageview() {
    send({ event_type: 'pageview', session_start: touchSession(), load_time: loadTime() });
  }

  function trackEvent(name) {
    if (!name) return;
    touchSession();
    send({ event_type: 'event', event_name: String(name) });
  }

  window.StaticHostAnalytics = { trackPageview: trackPageview, trackEvent: trackEvent, version: '1.0.0' };

  if (document.readyState === 'complete') {
    trackPageview();
  } else {
    window.addEventListener('load', trackPageview);
  }
})();
"""


def embed_snippet(site_id: int) -> str:
    """The <script> tag a site owner pastes into their pages to enable analytics."""
    base_url = get_settings().APP_URL.rstrip("/")
    return f'<script src="{base_url}{SCRIPT_PATH}" data-site-id="{site_id}" defer></script>'
