from __future__ import annotations

import os
import shutil
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

import httpx

from signproof.core.config import settings
from signproof.core.errors import TransportError
from signproof.core.logging_setup import logger
from signproof.schemas.contract import ContractRead
from signproof.schemas.evidence import EvidencePackage, ValidationMode, ValidationResult

SIGNATURES_PREFIX = "/contracts/signatures"


class ApiClient:
    """Cliente HTTP base para os endpoints de contratos e evidências."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout_seconds: float | None = None,
        access_token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = (base_url or settings.resolved_api_base_url()).rstrip("/")
        if not self._base_url:
            raise TransportError("API base URL is not configured.")
        self._timeout = timeout_seconds or settings.request_timeout_seconds
        self._access_token = access_token if access_token is not None else settings.access_token
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            headers=self._headers(),
            transport=self._transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        async with self._client() as client:
            try:
                response = await client.request(method, path, json=json, params=params)
            except httpx.TimeoutException as exc:
                raise TransportError(f"Request to {path} timed out", details={"path": path}) from exc
            except httpx.RequestError as exc:
                raise TransportError(f"Failed to reach {path}: {exc}", details={"path": path}) from exc
        self._raise_for_status(response, path)
        return response

    @staticmethod
    def _raise_for_status(response: httpx.Response, path: str) -> None:
        if response.status_code < 400:
            return
        try:
            payload = response.json()
        except ValueError:
            payload = {"detail": response.text}
        if not isinstance(payload, dict):
            payload = {"detail": payload}
        message = str(payload.get("message") or payload.get("detail") or response.reason_phrase)
        raise TransportError(message, details=payload, status_code=response.status_code)

    async def _request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._request(method, path, **kwargs)
        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(f"Invalid JSON returned by {path}") from exc


class ContractClient(ApiClient):
    async def get_contract(self, contract_id: str) -> ContractRead:
        data = await self._request_json("GET", f"/contracts/{contract_id}")
        return ContractRead.model_validate(data)


class EvidenceClient(ApiClient):
    async def fetch_by_signature(self, signature_id: str) -> EvidencePackage:
        data = await self._request_json("GET", f"{SIGNATURES_PREFIX}/evidence/signature/{signature_id}")
        return EvidencePackage.model_validate(data)

    async def validate(
        self,
        package_id: str,
        mode: ValidationMode = ValidationMode.AS_SIGNED,
    ) -> ValidationResult:
        data = await self._request_json(
            "GET",
            f"{SIGNATURES_PREFIX}/evidence/{package_id}/validate",
            params={"mode": mode.value},
        )
        return ValidationResult.model_validate(data)

    @asynccontextmanager
    async def export_archive(self, package_id: str) -> AsyncIterator[Path]:
        """
        Baixa o arquivo de evidências para um temporário e o remove ao sair,
        em qualquer caminho de saída (sucesso, erro ou cancelamento).
        """
        response = await self._request("GET", f"{SIGNATURES_PREFIX}/evidence/{package_id}/export")
        fd, raw_path = tempfile.mkstemp(prefix=f"evidence-{package_id}-", suffix=".zip")
        path = Path(raw_path)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(response.content)
            yield path
        finally:
            path.unlink(missing_ok=True)
            logger.debug("Temporary export %s released", path)

    async def download_archive(self, package_id: str, destination: str | Path) -> Path:
        target = Path(destination)
        async with self.export_archive(package_id) as archive:
            shutil.copyfile(archive, target)
        return target
