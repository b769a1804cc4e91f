"""
Default route table.

Each handler receives the request Exchange and writes its response through
it. Patterns are full-matched against the path (prefix removed) in table
order, so more specific patterns must come first.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List

from .core.exceptions import ParamError
from .core.exchange import Exchange
from .models import Route

MAX_DELAY_SECONDS = 10.0
MAX_REDIRECTS = 20


async def _request_info(ex: Exchange, with_body: bool = False) -> Dict[str, Any]:
    info: Dict[str, Any] = {
        "args": _multi_dict(ex.request.query_params.multi_items()),
        "headers": ex.exposable_headers_map(),
        "origin": ex.find_incoming_ip_address(),
        "url": ex.full_url(),
    }
    if with_body:
        form = await ex.form()
        info["method"] = ex.request.method
        info["data"] = await ex.body_string()
        info["form"] = _multi_dict(form.multi_items())
    return info


def _multi_dict(items) -> Dict[str, Any]:
    grouped: Dict[str, List[str]] = {}
    for key, value in items:
        grouped.setdefault(key, []).append(value)
    return {key: values if len(values) > 1 else values[0] for key, values in grouped.items()}


async def handle_health(ex: Exchange):
    ex.write_json({"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()})


async def handle_get(ex: Exchange):
    if ex.request.method not in ("GET", "HEAD"):
        ex.respond_with_status(405)
        return
    ex.write_json(await _request_info(ex))


async def handle_post(ex: Exchange):
    if ex.request.method != "POST":
        ex.respond_with_status(405)
        return
    ex.write_json(await _request_info(ex, with_body=True))


async def handle_anything(ex: Exchange):
    ex.write_json(await _request_info(ex, with_body=True))


def handle_headers(ex: Exchange):
    ex.write_json({"headers": ex.exposable_headers_map()})


def handle_ip(ex: Exchange):
    ex.write_json({"origin": ex.find_incoming_ip_address()})


def handle_status(ex: Exchange):
    code = int(ex.field("code"))
    if not 200 <= code <= 599:
        ex.respond_error(400, "invalid_status", f"status code {code} is out of range")
        return
    ex.respond_with_status(code)


def handle_redirect_to(ex: Exchange):
    try:
        target = ex.query_param_single("url")
    except ParamError as exc:
        ex.respond_bad_request("%s", exc)
        return
    ex.redirect(target)


def handle_redirect(ex: Exchange):
    remaining = int(ex.field("count"))
    if remaining > MAX_REDIRECTS:
        ex.respond_bad_request("No more than %d redirects are allowed.", MAX_REDIRECTS)
    elif remaining <= 1:
        ex.redirect("/get")
    else:
        ex.redirect(f"/redirect/{remaining - 1}")


async def handle_delay(ex: Exchange):
    seconds = min(float(ex.field("seconds")), MAX_DELAY_SECONDS)
    await asyncio.sleep(seconds)
    info = await _request_info(ex)
    info["delay"] = seconds
    ex.write_json(info)


def get_routes() -> List[Route]:
    return [
        Route.compile(r"/health", handle_health),
        Route.compile(r"/get", handle_get),
        Route.compile(r"/post", handle_post),
        Route.compile(r"/anything(?P<rest>/.*)?", handle_anything),
        Route.compile(r"/headers", handle_headers),
        Route.compile(r"/ip", handle_ip),
        Route.compile(r"/status/(?P<code>\d{1,3})", handle_status),
        Route.compile(r"/redirect-to", handle_redirect_to),
        Route.compile(r"/redirect/(?P<count>\d+)", handle_redirect),
        Route.compile(r"/delay/(?P<seconds>\d+(?:\.\d+)?)", handle_delay),
    ]
