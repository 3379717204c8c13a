"""The Darcula stylesheet and the marker that tags patched bundles."""

from __future__ import annotations

PATCH_MARKER = "/*codex-darcula-patch*/"

DARCULA_RULES = """
:root,
html,
body,
#root {
  color-scheme: dark !important;
  background: #2b2b2b !important;
  color: #a9b7c6 !important;
}

* {
  border-color: #4e5254 !important;
}

main,
section,
article,
aside,
header,
footer,
nav,
div[data-panel],
[data-theme="dark"] {
  background-color: #2b2b2b !important;
  color: #a9b7c6 !important;
}

aside,
nav,
[data-sidebar],
[role="complementary"] {
  background-color: #3c3f41 !important;
}

button,
input,
textarea,
select,
[role="button"] {
  background-color: #3c3f41 !important;
  color: #a9b7c6 !important;
  border-color: #5c6164 !important;
}

button:hover,
[role="button"]:hover {
  background-color: #4b5052 !important;
}

a {
  color: #589df6 !important;
}

a:hover {
  color: #73b1ff !important;
}

pre,
code {
  background-color: #313335 !important;
  color: #a9b7c6 !important;
}

::selection {
  background: #214283 !important;
  color: #dfe6ee !important;
}

::-webkit-scrollbar-thumb {
  background: #5c6164 !important;
  border-radius: 8px !important;
}

::-webkit-scrollbar-track {
  background: #2b2b2b !important;
}
"""


def marked_css(rules: str) -> str:
    """Prefix *rules* with :data:`PATCH_MARKER` unless already present."""
    if rules.startswith(PATCH_MARKER):
        return rules
    if not rules.startswith("\n"):
        rules = "\n" + rules
    return PATCH_MARKER + rules


def strip_marker(css: str) -> str:
    """Return *css* without a leading :data:`PATCH_MARKER`."""
    if css.startswith(PATCH_MARKER):
        return css[len(PATCH_MARKER) :]
    return css


DARCULA_CSS = marked_css(DARCULA_RULES)
