#!/usr/bin/env python3
#
# wgrest/api/response.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Common API response helpers."""

from __future__ import annotations

from typing import Any, Sequence
from urllib.parse import parse_qsl, urlencode

from fastapi import Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..errors import WgRestError

__all__ = [
	"ok_response",
	"error_response",
	"list_response",
	"build_link_header",
	"text_response",
]


def ok_response(
	*,
	message: str | None = None,
	data: Any = None,
	**extra: Any,
) -> dict[str, Any]:
	"""Build a normalized success response for action endpoints."""
	payload: dict[str, Any] = {"status": "ok"}
	if message is not None:
		payload["message"] = message
	if data is not None:
		payload["data"] = data
	if extra:
		payload.update(extra)
	return payload


def error_response(exc: WgRestError) -> JSONResponse:
	"""Render a typed error as ``{"code", "message", "detail"}``."""
	return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def build_link_header(path: str, query: str, page: int, per_page: int, total: int) -> str | None:
	"""GitHub-style pagination ``Link`` header.

	``page``/``per_page`` are rewritten, other query parameters are kept.
	``prev`` is omitted on the first page, ``next`` on the last; nothing is
	returned when there are no items.
	"""
	if total <= 0:
		return None

	total_pages = (total + per_page - 1) // per_page
	params = [(k, v) for k, v in parse_qsl(query, keep_blank_values=True) if k not in ("page", "per_page")]

	def _link(target: int, rel: str) -> str:
		qs = urlencode([*params, ("page", str(target)), ("per_page", str(per_page))])
		return f'<{path}?{qs}>; rel="{rel}"'

	links = [_link(0, "first"), _link(total_pages - 1, "last")]
	if page > 0:
		links.append(_link(page - 1, "prev"))
	if page < total_pages - 1:
		links.append(_link(page + 1, "next"))
	return ", ".join(links)


def list_response(
	request: Request,
	items: Sequence[BaseModel],
	*,
	page: int,
	per_page: int,
	total: int,
) -> JSONResponse:
	"""JSON list body with ``X-Total-Count`` and ``Link`` headers."""
	response = JSONResponse(content=jsonable_encoder(list(items)))
	response.headers["X-Total-Count"] = str(total)
	link = build_link_header(request.url.path, request.url.query, page, per_page, total)
	if link:
		response.headers["Link"] = link
	return response


def text_response(body: str, filename: str) -> Response:
	"""Plain text download (client config files)."""
	return Response(
		content=body,
		media_type="text/plain; charset=utf-8",
		headers={"Content-Disposition": f'attachment; filename="{filename}"'},
	)
