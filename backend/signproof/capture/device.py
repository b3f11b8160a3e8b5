from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Protocol

import httpx

from signproof.core.config import settings
from signproof.core.logging_setup import logger

UNAVAILABLE = "unavailable"
AVAILABLE = "available"
UNKNOWN = "unknown"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DeviceContext:
    user_agent: str = UNKNOWN
    platform: str | None = None
    language: str | None = None
    screen_resolution: str | None = None
    color_depth: int | None = None
    timezone: str | None = None
    cookies_enabled: bool | None = None
    online: bool | None = None
    hardware_concurrency: int | None = None
    status: str = AVAILABLE

    @classmethod
    def unavailable(cls) -> "DeviceContext":
        return cls(status=UNAVAILABLE)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "DeviceContext":
        width, height = data.get("screen_width"), data.get("screen_height")
        resolution = data.get("screen_resolution")
        if not resolution and width and height:
            resolution = f"{width}x{height}"
        return cls(
            user_agent=str(data.get("user_agent") or UNKNOWN),
            platform=data.get("platform"),
            language=data.get("language"),
            screen_resolution=resolution,
            color_depth=data.get("color_depth"),
            timezone=data.get("timezone"),
            cookies_enabled=data.get("cookies_enabled"),
            online=data.get("online"),
            hardware_concurrency=data.get("hardware_concurrency"),
        )

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Geolocation:
    status: str = UNAVAILABLE
    latitude: float | None = None
    longitude: float | None = None
    accuracy: float | None = None
    reason: str | None = None

    @classmethod
    def unavailable(cls, reason: str) -> "Geolocation":
        return cls(status=UNAVAILABLE, reason=reason)

    @property
    def is_available(self) -> bool:
        return self.status == AVAILABLE

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class DeviceSnapshot:
    """Contexto do cliente congelado no momento do envio."""

    device: DeviceContext = field(default_factory=DeviceContext.unavailable)
    geolocation: Geolocation = field(default_factory=lambda: Geolocation.unavailable("not_requested"))
    ip_address: str = UNKNOWN
    collected_at: Optional[datetime] = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "device": self.device.as_dict(),
            "geolocation": self.geolocation.as_dict(),
            "ip_address": self.ip_address,
            "collected_at": self.collected_at.isoformat() if self.collected_at else None,
        }


class DeviceProbe(Protocol):
    """Fonte dos dados do navegador/host (navigator, screen, Intl)."""

    def describe(self) -> Mapping[str, Any]:
        ...


class GeolocationProvider(Protocol):
    async def current_position(self, *, high_accuracy: bool, max_age_seconds: float) -> Geolocation:
        ...


class StaticDeviceProbe:
    def __init__(self, data: Mapping[str, Any]) -> None:
        self._data = dict(data)

    def describe(self) -> Mapping[str, Any]:
        return self._data


class IpAddressResolver:
    """Descobre o IP público do cliente. Qualquer falha resulta em "unknown"."""

    def __init__(
        self,
        url: str | None = None,
        *,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url if url is not None else settings.ip_lookup_url
        self._timeout = timeout_seconds or settings.ip_lookup_timeout_seconds
        self._transport = transport

    async def resolve(self) -> str:
        if not self._url:
            return UNKNOWN
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(self._url)
                response.raise_for_status()
                return str(response.json().get("ip") or UNKNOWN)
        except (httpx.HTTPError, ValueError, AttributeError) as exc:
            logger.info("IP lookup unavailable: %s", exc)
            return UNKNOWN


class DeviceContextCollector:
    """
    Coleta oportunista do contexto do cliente (dispositivo, geolocalização, IP).

    A coleta roda em paralelo com a etapa de identificação; o resultado é
    congelado no envio (a última escrita vence). Nenhuma falha aqui bloqueia
    ou interrompe o fluxo: tudo degrada para "unavailable"/"unknown".
    """

    def __init__(
        self,
        probe: DeviceProbe | None = None,
        *,
        geolocation: GeolocationProvider | None = None,
        ip_resolver: IpAddressResolver | None = None,
        timeout_seconds: float | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._probe = probe
        self._geolocation = geolocation
        self._ip_resolver = ip_resolver
        self._timeout = timeout_seconds if timeout_seconds is not None else settings.geolocation_timeout_seconds
        self._clock = clock
        self._device: DeviceContext | None = None
        self._location: Geolocation = Geolocation.unavailable("not_requested")
        self._ip_address: str = UNKNOWN
        self._tasks: set[asyncio.Task] = set()

    # ===============================================================
    # Coleta
    # ===============================================================
    def collect_device(self) -> DeviceContext:
        if self._probe is None:
            self._device = DeviceContext.unavailable()
            return self._device
        try:
            self._device = DeviceContext.from_mapping(self._probe.describe())
        except Exception as exc:  # probe do host é código de terceiros
            logger.warning("Device context unavailable: %s", exc)
            self._device = DeviceContext.unavailable()
        return self._device

    async def locate(self) -> Geolocation:
        if self._geolocation is None:
            self._location = Geolocation.unavailable("unsupported")
            return self._location
        try:
            position = await asyncio.wait_for(
                self._geolocation.current_position(
                    high_accuracy=True,
                    max_age_seconds=settings.geolocation_max_age_seconds,
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.info("Geolocation timed out after %.1fs", self._timeout)
            position = Geolocation.unavailable("timeout")
        except Exception as exc:  # permissão negada, hardware ausente etc.
            logger.info("Geolocation access denied or failed: %s", exc)
            position = Geolocation.unavailable("denied")
        self._location = position
        return position

    async def resolve_ip(self) -> str:
        if self._ip_resolver is not None:
            self._ip_address = await self._ip_resolver.resolve()
        return self._ip_address

    # ===============================================================
    # Ciclo de vida
    # ===============================================================
    def start(self) -> None:
        """Dispara a coleta em segundo plano. Requer um event loop em execução."""
        self.cancel()
        self.collect_device()
        self._location = Geolocation.unavailable("pending")
        for coro in (self.locate(), self.resolve_ip()):
            task = asyncio.get_running_loop().create_task(coro)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    def cancel(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    async def snapshot(self, wait_seconds: float | None = None) -> DeviceSnapshot:
        pending = [task for task in self._tasks if not task.done()]
        if pending and wait_seconds:
            await asyncio.wait(pending, timeout=wait_seconds)
        location = self._location
        if location.status != AVAILABLE and location.reason == "pending":
            location = Geolocation.unavailable("timeout")
        return DeviceSnapshot(
            device=self._device or self.collect_device(),
            geolocation=location,
            ip_address=self._ip_address,
            collected_at=self._clock(),
        )
