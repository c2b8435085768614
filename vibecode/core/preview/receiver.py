"""Visual-editor receiver script injected into previewed HTML.

The preview is embedded cross-origin, so the editor cannot reach into the
iframe's document directly.  The receiver listens for
``{type: "INJECT_SCRIPT", script}`` messages and evaluates the script in the
page's global scope.
"""

from __future__ import annotations

RECEIVER_MARKER = 'id="visual-editor-receiver"'

RECEIVER_SNIPPET = """<script id="visual-editor-receiver">
  window.addEventListener('message', function (event) {
    var data = event.data;
    if (data && data.type === 'INJECT_SCRIPT' && typeof data.script === 'string' && data.script) {
      try {
        new Function(data.script)();
      } catch (e) {
        console.error('[visual-editor] injected script failed:', e);
      }
    }
  });
</script>
"""


def has_receiver(html: str) -> bool:
    return RECEIVER_MARKER in html


def inject_receiver_script(html: str) -> str:
    """Insert the receiver before ``</head>``, else before ``</body>``, else at the end.

    Idempotent: a document that already carries the marker is returned as is.
    """
    if has_receiver(html):
        return html
    lower = html.lower()
    for closing_tag in ("</head>", "</body>"):
        idx = lower.rfind(closing_tag)
        if idx >= 0:
            return html[:idx] + RECEIVER_SNIPPET + html[idx:]
    return html + RECEIVER_SNIPPET
