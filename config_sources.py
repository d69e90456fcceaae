"""Where configuration documents come from: files, HTTP, or memory."""

from __future__ import annotations

import copy
import json
import logging
from typing import Any, Dict, Protocol

import anyio
import httpx

from config_errors import DocumentLoadError


logger = logging.getLogger("tross.config")


class DocumentSource(Protocol):
    async def load(self) -> Dict[str, Any]: ...

    def describe(self) -> str: ...


def _require_object(document: Any, source: str) -> Dict[str, Any]:
    if not isinstance(document, dict):
        raise DocumentLoadError("config document must be a JSON object", source=source)
    return document


class FileDocumentSource:
    def __init__(self, path: Any) -> None:
        self.path = anyio.Path(path)

    def describe(self) -> str:
        return f"file:{self.path}"

    async def load(self) -> Dict[str, Any]:
        try:
            text = await self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise DocumentLoadError(f"cannot read config document: {exc}", source=self.describe()) from exc
        logger.debug("config_read source=%s bytes=%s", self.describe(), len(text))
        try:
            document = json.loads(text)
        except json.JSONDecodeError as exc:
            raise DocumentLoadError(f"config document is not valid JSON: {exc}", source=self.describe()) from exc
        return _require_object(document, self.describe())


class HttpDocumentSource:
    """Fetches a config document published behind a URL (for example a CDN)."""

    def __init__(self, client: httpx.AsyncClient, url: str) -> None:
        self.client = client
        self.url = url

    def describe(self) -> str:
        return f"http:{self.url}"

    async def load(self) -> Dict[str, Any]:
        try:
            response = await self.client.get(self.url)
            response.raise_for_status()
            document = response.json()
        except httpx.HTTPError as exc:
            raise DocumentLoadError(f"cannot fetch config document: {exc}", source=self.describe()) from exc
        except ValueError as exc:
            raise DocumentLoadError(f"config document is not valid JSON: {exc}", source=self.describe()) from exc
        return _require_object(document, self.describe())


class StaticDocumentSource:
    def __init__(self, document: Any, name: str = "memory") -> None:
        self._document = document
        self.name = name

    def describe(self) -> str:
        return f"static:{self.name}"

    async def load(self) -> Dict[str, Any]:
        return _require_object(copy.deepcopy(self._document), self.describe())

