"""
Preview HTML document.

The document only bootstraps UI5 and the preview runtime; all rendering
happens client side from the inlined payload.
"""

import html
import json
from typing import Any

from src.domain.preview import PreviewPayload

_INLINE_SCRIPT_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def serialize_for_inline_script(payload: Any) -> str:
    """JSON that cannot terminate or break out of an inline ``<script>``."""
    serialized = json.dumps(payload, ensure_ascii=False)
    return "".join(_INLINE_SCRIPT_ESCAPES.get(char, char) for char in serialized)


def build_preview_html(
    preview_id: str,
    preview: PreviewPayload,
    ui5_bootstrap_url: str,
    runtime_script_url: str,
) -> str:
    """
    Render the preview page.

    Args:
        preview_id: Preview identifier echoed to the runtime and parent frame
        preview: Resolved preview payload
        ui5_bootstrap_url: UI5 core bootstrap script
        runtime_script_url: Preview runtime script exposing ``FioriPreviewRuntime``

    Returns:
        Complete HTML document
    """
    payload = serialize_for_inline_script(
        {
            "previewId": preview_id,
            "name": preview.name,
            "viewXml": preview.view_xml,
            "controller": preview.controller.to_dict(),
            "modelData": preview.model_data,
        }
    )
    title = html.escape(preview.name, quote=True)
    bootstrap_src = html.escape(ui5_bootstrap_url, quote=True)
    runtime_src = html.escape(runtime_script_url, quote=True)

    return f"""<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="UTF-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1.0" />
    <title>{title}</title>
    <script
      id="sap-ui-bootstrap"
      src="{bootstrap_src}"
      data-sap-ui-libs="sap.m,sap.ui.comp"
      data-sap-ui-theme="sap_horizon"
      data-sap-ui-async="false"
      data-sap-ui-compatVersion="edge">
    </script>
    <script src="{runtime_src}"></script>
    <style>
      html, body, #content {{
        margin: 0;
        width: 100%;
        height: 100%;
        overflow: hidden;
        font-family: "72", Arial, sans-serif;
        background: #fff;
      }}
    </style>
  </head>
  <body>
    <div id="content"></div>
    <script>
      const previewPayload = {payload};

      function notifyPreviewRuntimeMissing(preview) {{
        if (!window.parent) {{
          return;
        }}
        window.parent.postMessage(
          {{
            channel: "fiori-preview",
            previewId: preview.previewId,
            status: "error",
            error: "UI5 preview runtime script not loaded"
          }},
          "*"
        );
      }}

      if (
        window.FioriPreviewRuntime &&
        typeof window.FioriPreviewRuntime.start === "function"
      ) {{
        window.FioriPreviewRuntime.start(previewPayload);
      }} else {{
        notifyPreviewRuntimeMissing(previewPayload);
      }}
    </script>
  </body>
</html>"""
