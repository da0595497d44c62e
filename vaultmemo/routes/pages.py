# HTML pages and the Service Worker script.
# The real templates are maintained with the frontend; these are placeholders.

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse, Response

from vaultmemo.deps import RequestContext, get_context, get_services
from vaultmemo.services.container import Services

router = APIRouter(tags=["pages"])

TITLES = {
    "vault": "密码与密钥管理器",
    "memo": "备忘录",
}

SERVICE_WORKER_SCRIPT = """
const CACHE_NAME = 'vaultmemo-v1';

self.addEventListener('install', (event) => {
    event.waitUntil(caches.open(CACHE_NAME).then((cache) => cache.addAll(['/'])));
});

self.addEventListener('fetch', (event) => {
    event.respondWith(
        caches.match(event.request).then((response) => response || fetch(event.request))
    );
});

self.addEventListener('activate', (event) => {
    event.waitUntil(
        caches.keys().then((names) => Promise.all(
            names.filter((name) => name !== CACHE_NAME).map((name) => caches.delete(name))
        ))
    );
});
"""


def _page(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html lang="zh">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
</head>
<body data-page="{body}">
    <div id="app"></div>
    <script>
        if ('serviceWorker' in navigator) {{
            navigator.serviceWorker.register('/sw.js');
        }}
    </script>
</body>
</html>
"""


@router.get("/", response_class=HTMLResponse)
def index(ctx: RequestContext = Depends(get_context), services: Services = Depends(get_services)):
    page = "main" if ctx.session else "login"
    return HTMLResponse(
        content=_page(TITLES[services.kind], page),
        headers={"Cache-Control": "no-store"},
    )


@router.get("/sw.js")
def service_worker():
    return Response(
        content=SERVICE_WORKER_SCRIPT,
        media_type="application/javascript",
        headers={"Service-Worker-Allowed": "/"},
    )
