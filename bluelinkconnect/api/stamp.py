#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Provider of the rotating "Stamp" header value.

The stamps are published as a community maintained manifest. The manifest
is downloaded once into a cache directory and the entry matching the
current time is selected on every read.
"""

from __future__ import annotations
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlparse
import asyncio
import json
import logging
import os

import aiohttp
from aiohttp import ClientSession, ClientTimeout

from bluelinkconnect.const import (
    STAMP_URL,
    STAMP_FALLBACK_URL,
    STAMP_URL_ENV,
    STAMP_CACHE_DIR,
    STAMP_TIMEOUT,
)
from bluelinkconnect.exceptions import BlueLinkException, BlueLinkRequestException
from bluelinkconnect.helpers.extract import is_number, is_primitive, parse_timestamp

_LOGGER = logging.getLogger(__name__)


class StampProvider:
    """Downloads, caches and selects stamps."""

    def __init__(
        self: StampProvider,
        http_session: ClientSession,
        stamp_url: Optional[str] = None,
        cache_dir: Optional[str] = None,
    ) -> None:
        """
        Init stamp provider

        Arguments:
            http_session: aiohttp session used for the download
            stamp_url: Optional. Manifest URL, defaults to $BLUELINK_STAMP_URL or the public manifest
            cache_dir: Optional. Directory of the cached manifest
        """
        self._session = http_session
        self.stamp_url = stamp_url or os.environ.get(STAMP_URL_ENV, STAMP_URL)
        self.cache_dir = cache_dir or STAMP_CACHE_DIR
        self.cache_file = os.path.join(self.cache_dir, os.path.basename(urlparse(self.stamp_url).path))
        # Only the public manifest has a known mirror
        self.fallback_url = STAMP_FALLBACK_URL if self.stamp_url == STAMP_URL else None
        self._lock = asyncio.Lock()

    async def get_stamp(self: StampProvider) -> str:
        """Return current stamp, downloading the manifest on a cache miss."""
        async with self._lock:
            os.makedirs(self.cache_dir, exist_ok=True)
            if not os.path.exists(self.cache_file):
                _LOGGER.debug(f'Stamp cache miss at {self.cache_file}, downloading from {self.stamp_url}')
                await self._download_stamp()
            return self._read_stamp()

    async def refresh_stamp(self: StampProvider) -> str:
        """Delete the cached manifest and download it again."""
        async with self._lock:
            os.makedirs(self.cache_dir, exist_ok=True)
            self._remove_cache()
            _LOGGER.info(f'Refreshing cached stamp at {self.cache_file} from {self.stamp_url}')
            await self._download_stamp()
            return self._read_stamp()

    def _remove_cache(self: StampProvider) -> None:
        try:
            os.remove(self.cache_file)
        except FileNotFoundError:
            pass

    def _read_stamp(self: StampProvider) -> str:
        with open(self.cache_file, 'r', encoding='utf-8') as fd_stamp:
            content = fd_stamp.read().strip()
        stamp = parse_stamp(content)
        _LOGGER.debug(f'Loaded stamp with length {len(stamp)} from {self.cache_file}')
        return stamp

    async def _download_stamp(self: StampProvider) -> None:
        try:
            await self._download(self.stamp_url)
        except BlueLinkRequestException as primary:
            _LOGGER.warning(f'Primary stamp download from {self.stamp_url} failed: {primary}')
            if self.fallback_url is None:
                raise
            _LOGGER.info(f'Trying fallback stamp download from {self.fallback_url}')
            self._remove_cache()
            try:
                await self._download(self.fallback_url)
            except BlueLinkRequestException as fallback:
                _LOGGER.warning(f'Fallback stamp download from {self.fallback_url} failed: {fallback}')
                raise fallback from primary
            _LOGGER.info(f'Fallback stamp download from {self.fallback_url} succeeded')

    async def _download(self: StampProvider, url: str) -> None:
        try:
            async with self._session.get(
                url,
                timeout=ClientTimeout(total=STAMP_TIMEOUT.seconds),
                raise_for_status=False,
            ) as response:
                body = await response.text()
                if response.status >= 400:
                    raise BlueLinkRequestException(f'Failed to download stamp: {response.status}', response.status)
        except (aiohttp.ClientError, asyncio.TimeoutError) as error:
            raise BlueLinkRequestException(f'Failed to download stamp: {error}') from error
        with open(self.cache_file, 'w', encoding='utf-8') as fd_stamp:
            fd_stamp.write(body)


def parse_stamp(content: str) -> str:
    """
    Select the stamp from manifest content.

    Supported shapes, in order:
        {"stamps": [...], "generated": ISO-8601, "frequency": ms}
        ["stamp", ...]
        "stamp"
        stamp (raw text)
    """
    if not content:
        raise BlueLinkException('Stamp file is empty')
    try:
        parsed = json.loads(content)
    except ValueError:
        _LOGGER.debug('Stamp file is not JSON, using raw content')
        return _strip_quotes(content)

    if isinstance(parsed, dict):
        return _parse_manifest(parsed)
    if isinstance(parsed, list):
        if not parsed:
            raise BlueLinkException('Stamp JSON array is empty')
        first = parsed[0]
        if not is_primitive(first):
            raise BlueLinkException('Stamp JSON value is not a primitive')
        return str(first).strip()
    if isinstance(parsed, str):
        return parsed.strip()
    return _strip_quotes(content)


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value[1:-1].strip()
    return value


def _parse_manifest(manifest: dict) -> str:
    stamps = manifest.get('stamps')
    if not isinstance(stamps, list) or not stamps:
        raise BlueLinkException('Stamp JSON object does not contain stamps')

    index = 0
    generated = manifest.get('generated')
    frequency = manifest.get('frequency')
    if isinstance(generated, str) and is_number(frequency) and frequency > 0:
        generated_at = parse_timestamp(generated)
        if generated_at is None:
            _LOGGER.debug(f'Failed to interpret stamp generation time {generated}')
        else:
            elapsed = (datetime.now(timezone.utc) - generated_at).total_seconds() * 1000
            position = int(max(elapsed, 0) // frequency)
            index = min(position, len(stamps) - 1)

    selected = stamps[index]
    if not isinstance(selected, str):
        raise BlueLinkException('Stamp JSON object entry is not a string')
    return selected.strip()
