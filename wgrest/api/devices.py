#!/usr/bin/env python3
#
# wgrest/api/devices.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""WireGuard device endpoints (list/get/create/update/delete/up/down)."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request

from ..models import Device, DeviceCreateOrUpdate
from ..services.devices import DeviceService
from ..services.listing import DEFAULT_PER_PAGE, normalize_page
from ..utils.deps import get_device_service
from .response import list_response, ok_response

_log = logging.getLogger(__name__)

router = APIRouter(tags=["devices"])

__all__ = ["router"]


@router.get("/devices/")
async def list_devices(
	request: Request,
	page: int = Query(0),
	per_page: int = Query(DEFAULT_PER_PAGE),
	service: DeviceService = Depends(get_device_service),
):
	"""List running and config-only devices."""
	page, per_page = normalize_page(page, per_page)
	devices, total = await service.list(page, per_page)
	return list_response(request, devices, page=page, per_page=per_page, total=total)


@router.post("/devices/", response_model=Device, status_code=201)
async def create_device(
	payload: DeviceCreateOrUpdate,
	service: DeviceService = Depends(get_device_service),
):
	"""Create a device and write its config file."""
	return await service.create(payload)


@router.get("/devices/{name}/", response_model=Device)
async def get_device(
	name: str,
	service: DeviceService = Depends(get_device_service),
):
	return await service.get(name)


@router.patch("/devices/{name}/", response_model=Device)
async def update_device(
	name: str,
	payload: DeviceCreateOrUpdate,
	service: DeviceService = Depends(get_device_service),
):
	"""Update a device. Only fields present in the body are changed."""
	return await service.update(name, payload)


@router.delete("/devices/{name}/", response_model=Device)
async def delete_device(
	name: str,
	service: DeviceService = Depends(get_device_service),
):
	return await service.delete(name)


@router.post("/devices/{name}/up/")
async def device_up(
	name: str,
	service: DeviceService = Depends(get_device_service),
):
	"""Bring a device up with wg-quick."""
	device = await service.up(name)
	_log.info("INTERFACE_UP name=%s", name)
	if device is None:
		return ok_response(message=f"Interface {name} is up")
	return device


@router.post("/devices/{name}/down/")
async def device_down(
	name: str,
	service: DeviceService = Depends(get_device_service),
):
	"""Bring a device down with wg-quick."""
	device = await service.down(name)
	_log.info("INTERFACE_DOWN name=%s", name)
	if device is None:
		return ok_response(message=f"Interface {name} is down")
	return device
