"""Text renderers for files written to the remote host.

Pure functions only: nginx server blocks, the certbot renewal hook, the
code-server ``config.yaml`` and the welcome page.  Inputs must already have
passed the shell token allow-list.
"""

from __future__ import annotations

import re

ACME_WEBROOT = "/usr/share/nginx/html"
ACME_CHALLENGE_DIR = f"{ACME_WEBROOT}/.well-known/acme-challenge"
CODE_SERVER_BIND = "127.0.0.1:8080"

_TLS_SETTINGS = """\
    ssl_protocols TLSv1.2 TLSv1.3;
    ssl_ciphers ECDHE-RSA-AES128-GCM-SHA256:ECDHE-RSA-AES256-GCM-SHA384:ECDHE-RSA-AES128-SHA256:ECDHE-RSA-AES256-SHA384;
    ssl_prefer_server_ciphers off;"""

_GZIP = """\
    gzip on;
    gzip_vary on;
    gzip_min_length 1024;
    gzip_proxied any;
    gzip_comp_level 6;
    gzip_types
        text/plain
        text/css
        text/xml
        text/javascript
        application/javascript
        application/xml+rss
        application/json;"""

_SECURITY_HEADERS = """\
    add_header X-Frame-Options "SAMEORIGIN" always;
    add_header X-XSS-Protection "1; mode=block" always;
    add_header X-Content-Type-Options "nosniff" always;
    add_header Referrer-Policy "no-referrer-when-downgrade" always;
    add_header Content-Security-Policy "default-src 'self' http: https: data: blob: 'unsafe-inline'" always;"""

_ACME_LOCATION = f"""\
    location /.well-known/acme-challenge/ {{
        alias {ACME_CHALLENGE_DIR}/;
        try_files $uri =404;
    }}"""


def _indent(block: str, spaces: int) -> str:
    pad = " " * spaces
    return "\n".join(pad + line if line else line for line in block.splitlines())


def certificate_paths(domain: str) -> tuple[str, str]:
    live = f"/etc/letsencrypt/live/{domain}"
    return f"{live}/fullchain.pem", f"{live}/privkey.pem"


def _tls_lines(domain: str) -> str:
    fullchain, privkey = certificate_paths(domain)
    return (
        f"    ssl_certificate {fullchain};\n"
        f"    ssl_certificate_key {privkey};\n\n"
        f"{_TLS_SETTINGS}"
    )


# ── static site ───────────────────────────────────────────────────────────

def static_site_config(domain: str, webroot: str, *, tls: bool) -> str:
    """Server blocks for a static site; HTTPS-only content when *tls*."""
    if tls:
        http_body = (
            "    location / {\n"
            "        return 301 https://$server_name$request_uri;\n"
            "    }"
        )
    else:
        http_body = (
            f"{_GZIP}\n\n{_SECURITY_HEADERS}\n\n"
            "    location / {\n"
            "        try_files $uri $uri/ =404;\n"
            "    }"
        )
    config = (
        f"# Static website configuration for {domain}\n"
        "server {\n"
        "    listen 80;\n"
        f"    server_name {domain};\n\n"
        f"    root {webroot};\n"
        "    index index.html index.htm;\n\n"
        f"{http_body}\n\n"
        f"{_ACME_LOCATION}\n"
        "}\n"
    )
    if tls:
        config += (
            "\nserver {\n"
            "    listen 443 ssl http2;\n"
            f"    server_name {domain};\n\n"
            f"    root {webroot};\n"
            "    index index.html index.htm;\n\n"
            f"{_tls_lines(domain)}\n\n"
            f"{_GZIP}\n\n{_SECURITY_HEADERS}\n\n"
            "    location / {\n"
            "        try_files $uri $uri/ =404;\n"
            "    }\n\n"
            f"{_ACME_LOCATION}\n"
            "}\n"
        )
    return config


# ── code-server ───────────────────────────────────────────────────────────

def proxy_location(path: str) -> str:
    """Reverse-proxy location for code-server mounted at *path*."""
    return (
        f"    location {path}/ {{\n"
        f"        proxy_pass  http://{CODE_SERVER_BIND}/;\n"
        "        proxy_http_version 1.1;\n"
        "        proxy_set_header Upgrade $http_upgrade;\n"
        "        proxy_set_header Connection upgrade;\n"
        "        proxy_set_header Host $host;\n"
        "        proxy_set_header X-Real-IP $remote_addr;\n"
        "        proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;\n"
        "        proxy_set_header X-Forwarded-Proto $http_x_forwarded_proto;\n"
        '        add_header Strict-Transport-Security "max-age=15552000; includeSubDomains" always;\n'
        "    }"
    )


def has_proxy_location(config_text: str, path: str) -> bool:
    return f"location {path}/ {{" in config_text


def code_server_site_config(domain: str, path: str, webroot: str) -> str:
    """New site: HTTP redirect plus TLS server with proxy and static webroot."""
    return (
        f"# VS Code Web configuration for {domain}\n"
        "server {\n"
        "    listen 80;\n"
        f"    server_name {domain};\n\n"
        "    return 301 https://$server_name$request_uri;\n"
        "}\n\n"
        "server {\n"
        "    listen 443 ssl http2;\n"
        f"    server_name {domain};\n\n"
        f"{_tls_lines(domain)}\n\n"
        f"{proxy_location(path)}\n\n"
        "    location / {\n"
        f"        root {webroot};\n"
        "        index index.html index.htm;\n"
        "        try_files $uri $uri/ =404;\n\n"
        f"{_indent(_SECURITY_HEADERS, 4)}\n"
        "    }\n"
        "}\n"
    )


_SERVER_OPEN = re.compile(r"server\s*\{")


def _server_blocks(config_text: str) -> list[tuple[int, int]]:
    """(start, end) offsets of top-level ``server { ... }`` blocks."""
    blocks: list[tuple[int, int]] = []
    pos = 0
    while True:
        match = _SERVER_OPEN.search(config_text, pos)
        if match is None:
            return blocks
        depth = 0
        for idx in range(match.end() - 1, len(config_text)):
            char = config_text[idx]
            if char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    blocks.append((match.start(), idx))
                    pos = idx + 1
                    break
        else:
            return blocks


def insert_proxy_location(config_text: str, path: str) -> str:
    """Add the code-server location to the existing HTTPS server block.

    Raises ``ValueError`` when no server block listens on 443.
    """
    if has_proxy_location(config_text, path):
        return config_text
    for start, end in _server_blocks(config_text):
        if re.search(r"listen\s+443", config_text[start:end]):
            head = config_text[:end].rstrip()
            return f"{head}\n\n{proxy_location(path)}\n{config_text[end:]}"
    raise ValueError("no HTTPS server block (listen 443) in existing configuration")


def code_server_yaml(hashed_password: str) -> str:
    return (
        f"bind-addr: {CODE_SERVER_BIND}\n"
        "auth: password\n"
        f"hashed-password: {hashed_password}\n"
        "cert: false\n"
    )


# ── certbot ───────────────────────────────────────────────────────────────

RENEWAL_HOOK = """\
#!/bin/bash
# Let's Encrypt certificate renewal hook: reload nginx to pick up new certificates
echo "$(date): SSL certificate renewed, reloading nginx..." >> /var/log/letsencrypt-renewal.log
systemctl reload nginx
echo "$(date): Nginx reloaded successfully" >> /var/log/letsencrypt-renewal.log
exit 0
"""


# ── welcome page ──────────────────────────────────────────────────────────

def welcome_page(domain: str, editor_path: str) -> str:
    return f"""\
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{domain}</title>
    <style>
        body {{ font-family: Arial, sans-serif; text-align: center; padding: 50px; margin: 0; }}
        .links a {{ padding: 10px 20px; border: 2px solid; border-radius: 5px; margin: 0 10px; }}
    </style>
</head>
<body>
    <h1>Welcome to {domain}</h1>
    <p>Your Debian development stack is ready.</p>
    <div class="links">
        <a href="{editor_path}/">VS Code Web</a>
    </div>
</body>
</html>
"""


def heredoc(path: str, content: str, *, marker: str = "PROVISIONER_EOF") -> str:
    """``cat > path`` with a quoted here-document, so nothing is expanded."""
    if marker in content:
        raise ValueError("here-document marker occurs in content")
    body = content if content.endswith("\n") else content + "\n"
    return f"cat > {path} << '{marker}'\n{body}{marker}"
