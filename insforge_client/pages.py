"""
HTML pages. Every dynamic value goes through html.escape; the access token is only ever shown as a prefix.
"""
import html
from typing import Any

from insforge_client.log_utils import token_prefix

_STYLE = """
  <style>
    body { font-family: system-ui, sans-serif; background: #0a0a0a; color: #e5e5e5; margin: 0; }
    .container { max-width: 900px; margin: 0 auto; padding: 40px 24px; }
    .header { text-align: center; margin-bottom: 40px; }
    .btn { display: inline-block; padding: 12px 24px; background: #22c55e; color: #000; border: none;
           border-radius: 8px; font-weight: 600; text-decoration: none; cursor: pointer; }
    .btn-secondary { background: #262626; color: #e5e5e5; border: 1px solid #404040; }
    .card, .org-card { background: #171717; border: 1px solid #262626; border-radius: 12px; padding: 20px; margin-bottom: 16px; }
    .project-card { background: #0a0a0a; border: 1px solid #262626; border-radius: 8px; padding: 12px; margin-top: 8px; }
    dt { color: #737373; }
    dd { margin: 0 0 8px 0; font-family: monospace; }
    .token-box, code { font-family: monospace; color: #a3a3a3; }
    .no-data { color: #525252; text-align: center; }
  </style>"""

# Popup opener listens for this localStorage key (storage events fire in other same-origin windows)
POPUP_COMPLETE_KEY = "oauth_complete"


def _e(value: Any, default: str = "") -> str:
    if value is None or value == "":
        return html.escape(default)
    return html.escape(str(value))


def _page(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{_e(title)}</title>{_STYLE}
</head>
<body>
  <div class="container">
{body}
  </div>
</body>
</html>"""


def _project_html(project: dict[str, Any]) -> str:
    key = project.get("access_api_key")
    key_row = f"<dt>API Key</dt><dd>{_e(key)}</dd>" if key else ""
    api_url = ""
    if project.get("appkey") and project.get("region"):
        api_url = f"<dt>API URL</dt><dd>https://{_e(project['appkey'])}.{_e(project['region'])}.insforge.app</dd>"
    return f"""        <div class="project-card">
          <strong>{_e(project.get("name"), "Unnamed")}</strong> <span>{_e(project.get("status"), "active")}</span>
          <dl>{api_url}<dt>Region</dt><dd>{_e(project.get("region"), "N/A")}</dd>{key_row}</dl>
        </div>"""


def _organization_html(org: dict[str, Any]) -> str:
    projects = org.get("projects") or []
    if projects:
        projects_html = f"<h5>Projects ({len(projects)})</h5>\n" + "\n".join(_project_html(p) for p in projects)
    else:
        projects_html = '<p class="no-data">No projects in this organization</p>'
    return f"""      <div class="org-card">
        <h4>{_e(org.get("name"), "Unnamed")} <small>{_e(org.get("type"), "organization")}</small></h4>
        <p>{_e(org.get("description"), "No description")}</p>
        {projects_html}
      </div>"""


def home_page(user: dict[str, Any] | None, access_token: str | None, organizations: list[dict[str, Any]]) -> str:
    header = """    <div class="header">
      <h1>InsForge OAuth Demo</h1>
      <p>Third-party application using InsForge OAuth 2.0</p>
    </div>"""
    if access_token:
        user = user or {}
        if organizations:
            orgs_html = "\n".join(_organization_html(o) for o in organizations)
        else:
            orgs_html = '<p class="no-data">No organizations found</p>'
        body = f"""{header}
    <div class="card">
      <h3>Authenticated User</h3>
      <a href="/auth/logout" class="btn btn-secondary">Sign Out</a>
      <dl>
        <dt>User ID</dt><dd>{_e(user.get("id"), "N/A")}</dd>
        <dt>Email</dt><dd>{_e(user.get("email"), "N/A")}</dd>
      </dl>
    </div>
    <h2>Organizations ({len(organizations)})</h2>
{orgs_html}
    <h2>Access Token</h2>
    <div class="token-box">{_e(token_prefix(access_token))}</div>"""
        return _page("InsForge OAuth Example", body)

    body = f"""{header}
    <div class="card" style="text-align: center;">
      <p>Connect your InsForge account to access your organizations and projects</p>
      <button onclick="openOAuthPopup()" class="btn">Popup Mode</button>
      <a href="/auth/login" class="btn btn-secondary">Redirect Mode</a>
    </div>
    <script>
      function openOAuthPopup() {{
        const width = 500, height = 700;
        const left = window.screenX + (window.outerWidth - width) / 2;
        const top = window.screenY + (window.outerHeight - height) / 2;
        window.open('/auth/login-popup', 'insforge-oauth',
          `width=${{width}},height=${{height}},left=${{left}},top=${{top}},popup=1`);
        function handleStorage(event) {{
          if (event.key === '{POPUP_COMPLETE_KEY}') {{
            localStorage.removeItem('{POPUP_COMPLETE_KEY}');
            window.removeEventListener('storage', handleStorage);
            window.location.reload();
          }}
        }}
        window.addEventListener('storage', handleStorage);
      }}
    </script>"""
    return _page("InsForge OAuth Example", body)


def error_page(message: str) -> str:
    body = f"""    <h1>Authorization Failed</h1>
    <p>{_e(message)}</p>
    <p><a href="/">Go back</a></p>"""
    return _page("Authorization Failed", body)


def popup_complete_page() -> str:
    """Tell the opener we're done, then close; browsers may refuse, so offer a manual close after 2s."""
    body = f"""    <h2>Authorization successful!</h2>
    <p>This window will close automatically...</p>
    <script>
      localStorage.setItem('{POPUP_COMPLETE_KEY}', Date.now().toString());
      function closePopup() {{
        try {{ window.close(); }} catch (e) {{ console.log('Could not close window:', e); }}
      }}
      setTimeout(closePopup, 300);
      setTimeout(function () {{
        if (!window.closed) {{
          document.body.innerHTML = '<h2>Authorization successful!</h2>' +
            '<p>You can close this tab and return to the app.</p>' +
            '<button onclick="window.close()">Close this tab</button>';
        }}
      }}, 2000);
    </script>"""
    return _page("Authorization Complete", body)
