"""Hook the carousel script into the host web client at startup."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterator
from xml.etree import ElementTree

import httpx

from ..config import Settings
from ..models import RegistrationRequest
from ..utils import insert_before_last_body, normalize_base_path, script_tag, strip_script_tags

logger = logging.getLogger(__name__)

READY_PROBE_PATHS: tuple[str, ...] = ("/System/Info/Public", "/")
REGISTER_PATH = "/FileTransformation/RegisterTransformation"
TRANSFORM_PATH = "/editorschoice/transform"
RETRYABLE_STATUSES: frozenset[int] = frozenset({404, 503})


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Attempt budget with capped exponential backoff."""

    attempts: int
    initial_delay: float
    max_delay: float
    factor: float = 2.0

    def delays(self) -> Iterator[float]:
        delay = self.initial_delay
        while True:
            yield delay
            delay = min(delay * self.factor, self.max_delay)


PROBE_WARMUP_SECONDS = 0.8
PROBE_POLICY = RetryPolicy(attempts=10, initial_delay=0.5, max_delay=3.0)
REGISTRATION_POLICY = RetryPolicy(attempts=8, initial_delay=1.0, max_delay=15.0)


class RegistrationOutcome(str, Enum):
    REGISTERED = "registered"
    REJECTED = "rejected"
    EXHAUSTED = "exhausted"
    NOT_READY = "not_ready"
    CANCELLED = "cancelled"


def _read_network_value(path: Path, element: str) -> str | None:
    root = ElementTree.parse(path).getroot()
    node = root.find(element)
    if node is None or node.text is None:
        return None
    return node.text.strip() or None


def resolve_base_path(settings: Settings) -> str:
    """Return the reverse-proxy base path configured on the host, or ``""``."""

    path = settings.network_config_path
    if path is None:
        return ""
    try:
        base_url = _read_network_value(path, "BaseUrl")
    except (OSError, ElementTree.ParseError) as exc:
        logger.error("EditorsChoice: unable to read BaseUrl from %s; using '/': %s", path, exc)
        return ""
    return normalize_base_path(base_url)


def resolve_http_port(settings: Settings) -> int:
    """Return the host's bound HTTP port, preferring its network config."""

    path = settings.network_config_path
    if path is None:
        return settings.host_http_port
    try:
        raw_port = _read_network_value(path, "InternalHttpPort")
        if raw_port is not None:
            return int(raw_port)
    except (OSError, ElementTree.ParseError, ValueError) as exc:
        logger.warning("EditorsChoice: unable to read InternalHttpPort from %s: %s", path, exc)
    return settings.host_http_port


class StartupCoordinator:
    """Make the client load the carousel script without a restart race.

    Either edits the client's ``index.html`` directly or, when file
    transformations are enabled, registers a rewrite callback with the host
    from a background task. Nothing here is allowed to fail host startup.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        *,
        probe_policy: RetryPolicy = PROBE_POLICY,
        registration_policy: RetryPolicy = REGISTRATION_POLICY,
        warmup_seconds: float = PROBE_WARMUP_SECONDS,
    ) -> None:
        self._settings = settings
        self._client = http_client
        self._probe_policy = probe_policy
        self._registration_policy = registration_policy
        self._warmup_seconds = warmup_seconds
        self._stop = asyncio.Event()
        self._task: asyncio.Task[RegistrationOutcome] | None = None
        self.base_path = ""

    @property
    def task(self) -> asyncio.Task[RegistrationOutcome] | None:
        return self._task

    async def start(self) -> None:
        """Resolve the base path and run the configured integration."""

        logger.info("EditorsChoice startup. Registering client integration.")
        self.base_path = resolve_base_path(self._settings)
        if self.base_path:
            logger.info("EditorsChoice base path = %s", self.base_path)

        if self._settings.do_script_inject:
            self.inject_script_tag()
        elif self._settings.file_transformation:
            self._task = asyncio.create_task(self.register_transformation(self._stop))
        else:
            logger.info("EditorsChoice: no client integration enabled")

    async def stop(self) -> None:
        """Stop the registration task, aborting any request in flight."""

        self._stop.set()
        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    def inject_script_tag(self) -> bool:
        """Write the script tag into the client's ``index.html``.

        Returns ``True`` when the file was rewritten.
        """

        web_path = self._settings.web_path
        if web_path is None:
            logger.info("EditorsChoice: no web path configured; skipping script injection")
            return False

        index_file = Path(web_path) / "index.html"
        element = script_tag(self.base_path, "injection")
        try:
            contents = index_file.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("EditorsChoice: cannot read %s: %s", index_file, exc)
            return False

        if element in contents:
            logger.info("EditorsChoice: client script already injected in %s", index_file)
            return False

        logger.info("EditorsChoice: injecting client script into %s", index_file)
        updated = insert_before_last_body(strip_script_tags(contents), element)
        if updated is None:
            logger.warning("EditorsChoice: could not find </body> in %s", index_file)
            return False

        try:
            index_file.write_text(updated, encoding="utf-8")
        except OSError as exc:
            logger.error("EditorsChoice: error writing %s: %s", index_file, exc)
            return False
        logger.info("EditorsChoice: script injected into %s", index_file)
        return True

    def target_base_url(self) -> httpx.URL:
        """Loopback on the host port unless a public URL is configured."""

        if self._settings.public_url is not None:
            return httpx.URL(str(self._settings.public_url).rstrip("/"))
        return httpx.URL(f"http://127.0.0.1:{resolve_http_port(self._settings)}")

    async def register_transformation(
        self, stop: asyncio.Event | None = None
    ) -> RegistrationOutcome:
        """Register the ``index.html`` transformation once the host answers."""

        stop = stop or self._stop
        try:
            base_url = self.target_base_url()
            ready = await self.wait_until_ready(base_url, stop)
            if stop.is_set():
                return RegistrationOutcome.CANCELLED
            if not ready:
                logger.error("EditorsChoice: server never became ready; aborting registration.")
                return RegistrationOutcome.NOT_READY
            return await self._register(base_url, stop)
        except Exception:  # pragma: no cover - background safety net
            logger.exception("EditorsChoice: unexpected error registering transformation.")
            return RegistrationOutcome.EXHAUSTED

    async def wait_until_ready(self, base_url: httpx.URL, stop: asyncio.Event) -> bool:
        """Return ``True`` once any probe endpoint answers below 500."""

        if not await self._pause(self._warmup_seconds, stop):
            return False

        probes = [base_url.join(f"{self.base_path}{path}") for path in READY_PROBE_PATHS]
        policy = self._probe_policy
        delays = policy.delays()
        for round_number in range(1, policy.attempts + 1):
            if stop.is_set():
                return False
            for probe in probes:
                try:
                    response = await self._client.get(probe)
                except httpx.HTTPError:
                    continue
                if response.status_code < 500:
                    logger.info(
                        "EditorsChoice: server ready (probe %s, status %s)",
                        probe,
                        response.status_code,
                    )
                    return True
            if round_number < policy.attempts and not await self._pause(next(delays), stop):
                return False
        return False

    async def _register(self, base_url: httpx.URL, stop: asyncio.Event) -> RegistrationOutcome:
        request = RegistrationRequest(
            transformation_endpoint=f"{self.base_path}{TRANSFORM_PATH}"
        )
        url = base_url.join(f"{self.base_path}{REGISTER_PATH}")
        payload = request.to_payload()
        policy = self._registration_policy
        delays = policy.delays()

        for attempt in range(1, policy.attempts + 1):
            if stop.is_set():
                return RegistrationOutcome.CANCELLED
            delay = next(delays)
            try:
                response = await self._client.post(url, json=payload)
            except httpx.HTTPError as exc:
                logger.info(
                    "EditorsChoice: error on attempt %s (%s); retrying in %.1fs",
                    attempt,
                    exc.__class__.__name__,
                    delay,
                )
            else:
                logger.info("EditorsChoice: POST %s -> %s", url, response.status_code)
                if response.is_success:
                    logger.info("EditorsChoice: transformation registered (attempt %s)", attempt)
                    return RegistrationOutcome.REGISTERED
                if response.status_code not in RETRYABLE_STATUSES:
                    logger.warning(
                        "EditorsChoice: registration failed with %s; aborting.",
                        response.status_code,
                    )
                    return RegistrationOutcome.REJECTED
                logger.info(
                    "EditorsChoice: endpoint not ready (%s) attempt %s; retrying in %.1fs",
                    response.status_code,
                    attempt,
                    delay,
                )
            if attempt < policy.attempts and not await self._pause(delay, stop):
                return RegistrationOutcome.CANCELLED

        logger.error("EditorsChoice: could not register transformation after retries.")
        return RegistrationOutcome.EXHAUSTED

    @staticmethod
    async def _pause(delay: float, stop: asyncio.Event) -> bool:
        """Sleep for ``delay`` seconds; ``False`` if ``stop`` fires first."""

        if stop.is_set():
            return False
        try:
            await asyncio.wait_for(stop.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return True
        return False
