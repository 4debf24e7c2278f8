"""HTML pages served by the setup server."""

from __future__ import annotations

import html

_STYLE = """
    <style>
        body {
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            display: flex;
            justify-content: center;
            align-items: center;
            min-height: 100vh;
            margin: 0;
            background-color: #f8fafc;
        }
        .container {
            padding: 2rem;
            background: white;
            border-radius: 12px;
            box-shadow: 0 4px 6px rgba(0, 0, 0, 0.1);
            width: 100%;
            max-width: 420px;
        }
        h1 { color: #1e293b; margin: 0 0 1rem; }
        p { color: #64748b; }
        label { display: block; margin: 1rem 0 0.25rem; color: #334155; font-weight: 600; }
        input, select {
            width: 100%;
            box-sizing: border-box;
            padding: 0.6rem;
            border: 1px solid #cbd5e1;
            border-radius: 6px;
            font-size: 1rem;
        }
        .hint { font-size: 0.85rem; margin: 0.25rem 0 0; }
        .actions { display: flex; gap: 0.5rem; margin-top: 1.5rem; }
        button {
            flex: 1;
            padding: 0.7rem;
            border: none;
            border-radius: 6px;
            font-size: 1rem;
            cursor: pointer;
        }
        button.primary { background: #2563eb; color: white; }
        button.secondary { background: #e2e8f0; color: #1e293b; }
        button:disabled { opacity: 0.6; cursor: default; }
        .status { margin-top: 1rem; min-height: 1.25rem; }
        .status.error { color: #dc2626; }
        .status.ok { color: #16a34a; }
        .install { font-family: monospace; font-size: 1.1rem; color: #1e293b; }
        .region {
            margin-left: 0.5rem;
            padding: 0.1rem 0.4rem;
            border-radius: 4px;
            background: #e2e8f0;
            font-size: 0.85rem;
        }
    </style>"""


def render_setup_page(csrf_token: str) -> str:
    """Credential entry form. The CSRF token is echoed on every POST."""
    token = html.escape(csrf_token, quote=True)
    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>Deputy CLI Setup</title>{_STYLE}
</head>
<body>
    <div class="container">
        <h1>Deputy CLI</h1>
        <p>Connect the CLI to your Deputy install. Your token is stored in the system keychain.</p>
        <form id="setup-form" autocomplete="off">
            <label for="install">Install name</label>
            <input id="install" name="install" placeholder="mycompany" maxlength="64" required>
            <p class="hint">The first part of your Deputy URL: <em>mycompany</em>.au.deputy.com</p>

            <label for="geo">Region</label>
            <select id="geo" name="geo">
                <option value="au">Australia (au)</option>
                <option value="uk">United Kingdom (uk)</option>
                <option value="na">North America (na)</option>
            </select>

            <label for="token">Permanent API token</label>
            <input id="token" name="token" type="password" maxlength="512" required>

            <div class="actions">
                <button type="button" class="secondary" id="test-btn">Test</button>
                <button type="submit" class="primary" id="save-btn">Save</button>
            </div>
            <div class="status" id="status"></div>
        </form>
    </div>
    <script>
        const csrfToken = '{token}';
        const form = document.getElementById('setup-form');
        const statusEl = document.getElementById('status');
        const buttons = [document.getElementById('test-btn'), document.getElementById('save-btn')];

        function payload() {{
            return JSON.stringify({{
                install: document.getElementById('install').value.trim(),
                geo: document.getElementById('geo').value,
                token: document.getElementById('token').value.trim(),
            }});
        }}

        function showStatus(message, ok) {{
            statusEl.textContent = message;
            statusEl.className = 'status ' + (ok ? 'ok' : 'error');
        }}

        async function post(path) {{
            buttons.forEach(b => b.disabled = true);
            try {{
                const response = await fetch(path, {{
                    method: 'POST',
                    headers: {{ 'Content-Type': 'application/json', 'X-CSRF-Token': csrfToken }},
                    body: payload(),
                }});
                const data = await response.json().catch(() => ({{ success: false, error: 'Request failed' }}));
                return data;
            }} catch (err) {{
                return {{ success: false, error: 'Could not reach the CLI. Is it still running?' }};
            }} finally {{
                buttons.forEach(b => b.disabled = false);
            }}
        }}

        document.getElementById('test-btn').addEventListener('click', async () => {{
            showStatus('Testing connection...', true);
            const data = await post('/validate');
            showStatus(data.success ? (data.message || 'Connection successful!') : data.error, data.success);
        }});

        form.addEventListener('submit', async (event) => {{
            event.preventDefault();
            showStatus('Saving...', true);
            const data = await post('/submit');
            if (data.success) {{
                window.location.href = '/success';
            }} else {{
                showStatus(data.error, false);
            }}
        }});
    </script>
</body>
</html>"""


def render_success_page(install: str, geo: str, csrf_token: str) -> str:
    """Confirmation page; on load it tells the CLI the flow is complete."""
    token = html.escape(csrf_token, quote=True)
    details = ""
    if install:
        region = f'<span class="region">{html.escape(geo)}</span>' if geo else ""
        details = f'<p><span class="install">{html.escape(install)}</span>{region}</p>'
    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>Deputy CLI Setup</title>{_STYLE}
</head>
<body>
    <div class="container">
        <h1>You're connected</h1>
        {details}
        <p>Credentials saved. You can close this window and return to your terminal.</p>
    </div>
    <script>fetch('/complete', {{ method: 'POST', headers: {{ 'X-CSRF-Token': '{token}' }} }}).catch(() => {{}});</script>
</body>
</html>"""
