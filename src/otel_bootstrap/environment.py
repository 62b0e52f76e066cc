"""Platform environment discovery.

Resolves the Google Cloud project id once per process so that log records
can reference traces as ``projects/<id>/traces/<trace-id>``. When the process
is not running on Google Cloud, or the metadata server cannot be reached,
a fixed fallback identifier is used instead.
"""

import os
import threading
from typing import Protocol

import httpx
import structlog

from otel_bootstrap.config import get_settings
from otel_bootstrap.constants import (
    DEFAULT_METADATA_TIMEOUT,
    METADATA_FLAVOR,
    METADATA_FLAVOR_HEADER,
    METADATA_HOST_ENV,
    METADATA_IP,
    NON_GCP_PROJECT_ID,
    PROJECT_ID_PATH,
)


logger = structlog.get_logger()


class MetadataSource(Protocol):
    """Anything able to report a platform project identifier."""

    def on_gce(self) -> bool:
        """Return True when running inside the platform."""
        ...

    def project_id(self) -> str:
        """Return the project identifier, raising on failure."""
        ...


class GCEMetadataClient:
    """Minimal client for the Compute Engine metadata server.

    Only the two queries needed here are implemented. Retries are left to
    the caller; every request is bounded by ``timeout``.
    """

    def __init__(
        self,
        host: str | None = None,
        timeout: float = DEFAULT_METADATA_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            host: Metadata host, defaults to ``GCE_METADATA_HOST`` or the
                link-local metadata address
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.host = host or os.environ.get(METADATA_HOST_ENV) or METADATA_IP
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=f"http://{self.host}",
            headers={METADATA_FLAVOR_HEADER: METADATA_FLAVOR},
            timeout=self.timeout,
            transport=self._transport,
        )

    def on_gce(self) -> bool:
        """Check whether the metadata server is reachable.

        Returns:
            True if ``GCE_METADATA_HOST`` is set or the server answers with
            the expected ``Metadata-Flavor`` header
        """
        if os.environ.get(METADATA_HOST_ENV):
            return True

        try:
            with self._client() as client:
                response = client.get("/")
        except httpx.HTTPError:
            return False

        return response.headers.get(METADATA_FLAVOR_HEADER) == METADATA_FLAVOR

    def project_id(self) -> str:
        """Fetch the project id.

        Returns:
            The project id

        Raises:
            httpx.HTTPError: If the request fails
            ValueError: If the server returns an empty project id
        """
        with self._client() as client:
            response = client.get(PROJECT_ID_PATH)
            response.raise_for_status()

        project_id = response.text.strip()
        if not project_id:
            raise ValueError("metadata server returned an empty project id")
        return project_id


class ProjectIdResolver:
    """Resolve the project id at most once and cache the result.

    Resolution is best-effort: failures are logged and replaced by
    ``NON_GCP_PROJECT_ID``, never raised.
    """

    def __init__(self, source: MetadataSource | None = None) -> None:
        self._source = source
        self._lock = threading.Lock()
        self._project_id: str | None = None

    @property
    def source(self) -> MetadataSource:
        if self._source is None:
            self._source = GCEMetadataClient(timeout=get_settings().metadata_timeout)
        return self._source

    def resolve(self) -> str:
        """Return the cached project id, querying the source on first use."""
        with self._lock:
            if self._project_id is None:
                self._project_id = self._query()
            return self._project_id

    def reset(self) -> None:
        """Forget the cached value so the next resolve() queries again."""
        with self._lock:
            self._project_id = None

    def _query(self) -> str:
        try:
            if not self.source.on_gce():
                logger.debug("project_id_fallback", reason="not_on_gce")
                return NON_GCP_PROJECT_ID
            project_id = self.source.project_id()
        except Exception as exc:
            logger.debug("project_id_fallback", reason="query_failed", error=str(exc))
            return NON_GCP_PROJECT_ID

        logger.debug("project_id_resolved", project_id=project_id)
        return project_id


class ResolverHolder:
    """Holder for the process-wide resolver.

    Uses a class attribute to manage module-level state without
    global statements.
    """

    resolver: ProjectIdResolver = ProjectIdResolver()


def get_project_id() -> str:
    """Get the project id of the running process (cached after first call)."""
    return ResolverHolder.resolver.resolve()


def set_metadata_source(source: MetadataSource | None) -> None:
    """Replace the process-wide resolver with one backed by ``source``.

    Discards any cached value.
    """
    ResolverHolder.resolver = ProjectIdResolver(source)


def reset_project_id() -> None:
    """Clear the cached project id of the process-wide resolver."""
    ResolverHolder.resolver.reset()
