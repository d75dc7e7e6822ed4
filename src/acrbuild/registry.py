"""
Registry control-plane clients.

This module defines the abstract interface used by the build pipeline and
the log orchestrator to talk to a container registry, and its
implementation for the Azure Container Registry "runs" REST API.
"""

from __future__ import annotations

import abc
import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import httpx

from .errors import RegistryError

logger = logging.getLogger(__name__)

ARM_BASE_URL = "https://management.azure.com"
API_VERSION = "2019-06-01-preview"
DEFAULT_TIMEOUT = 60.0

ACCESS_TOKEN_ENV_VAR = "AZURE_ACCESS_TOKEN"


@dataclass
class BuildRequest:
    """Parameters of a Docker build scheduled on the registry."""

    image_names: List[str]
    source_location: str
    dockerfile: str = "Dockerfile"
    platform: str = "linux/amd64"
    build_args: Dict[str, str] = field(default_factory=dict)
    push: bool = True
    no_cache: bool = False
    timeout: int = 3600

    def to_payload(self) -> Dict[str, Any]:
        """Render the ``DockerBuildRequest`` body of a ``scheduleRun`` call."""
        os_name, _, architecture = self.platform.partition("/")
        return {
            "type": "DockerBuildRequest",
            "imageNames": list(self.image_names),
            "isPushEnabled": self.push,
            "noCache": self.no_cache,
            "dockerFilePath": self.dockerfile,
            "sourceLocation": self.source_location,
            "timeout": self.timeout,
            "platform": {
                "os": (os_name or "linux").capitalize(),
                "architecture": architecture or "amd64",
            },
            "arguments": [
                {"name": name, "value": str(value), "isSecret": False}
                for name, value in self.build_args.items()
            ],
        }


class RegistryClient(abc.ABC):
    """
    Abstract base class for registry control-plane clients.

    Only the calls needed to run a build from a CI job are part of the
    interface: upload the build context, start a build, locate its log,
    query its status, and cancel it.
    """

    @abc.abstractmethod
    def upload_source(
        self,
        resource_group: str,
        registry_name: str,
        archive_path: Union[str, "os.PathLike[str]"],
    ) -> str:
        """
        Upload a packaged build context.

        Returns:
            str: The source location to pass in a :class:`BuildRequest`.

        Raises:
            RegistryError: If the upload fails.
        """
        pass

    @abc.abstractmethod
    def start_build(
        self, resource_group: str, registry_name: str, request: BuildRequest
    ) -> str:
        """
        Schedule a build.

        Returns:
            str: The build (run) identifier.

        Raises:
            RegistryError: If the registry rejects the request.
        """
        pass

    @abc.abstractmethod
    def get_log_location(
        self, resource_group: str, registry_name: str, build_id: str
    ) -> str:
        """
        Get the URL of the append blob holding the build log.

        Raises:
            RegistryError: If the link cannot be obtained.
        """
        pass

    @abc.abstractmethod
    def get_build_status(
        self, resource_group: str, registry_name: str, build_id: str
    ) -> str:
        """Return the registry's status string for a build (e.g. ``Running``)."""
        pass

    @abc.abstractmethod
    def cancel_build(
        self, resource_group: str, registry_name: str, build_id: str
    ) -> None:
        """
        Cancel a build and wait for the registry to accept the request.

        Raises:
            RegistryError: If the cancel request fails.
        """
        pass

    def cancel_build_async(
        self, resource_group: str, registry_name: str, build_id: str
    ) -> threading.Thread:
        """Cancel a build on a background thread without waiting for it.

        Failures are logged and otherwise ignored.
        """

        def _cancel() -> None:
            try:
                self.cancel_build(resource_group, registry_name, build_id)
                logger.info("Cancel requested for build %s", build_id)
            except Exception as exc:
                logger.warning("Failed to cancel build %s: %s", build_id, exc)

        thread = threading.Thread(
            target=_cancel, name=f"cancel-build-{build_id}", daemon=True
        )
        thread.start()
        return thread


class AzureContainerRegistry(RegistryClient):
    """Azure Container Registry client built on the ARM REST API.

    Args:
        subscription_id: Azure subscription that owns the registry.
        token: ARM bearer token. Defaults to ``$AZURE_ACCESS_TOKEN``.
        base_url: ARM endpoint (override for sovereign clouds or tests).
        client: Optional preconfigured ``httpx.Client``.
    """

    def __init__(
        self,
        subscription_id: str,
        token: Optional[str] = None,
        *,
        base_url: str = ARM_BASE_URL,
        client: Optional[httpx.Client] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        token = token or os.getenv(ACCESS_TOKEN_ENV_VAR)
        if not token:
            raise RegistryError(
                "No access token available for the registry.\n\n"
                "To fix:\n"
                "  1. Set access_token in your Buildfile, or\n"
                f"  2. Export {ACCESS_TOKEN_ENV_VAR}, e.g.:\n"
                f"     export {ACCESS_TOKEN_ENV_VAR}=$(az account get-access-token "
                "--query accessToken -o tsv)"
            )
        self.subscription_id = subscription_id
        self.base_url = base_url.rstrip("/")
        self._token = token
        self._owns_client = client is None
        self._client = client if client is not None else httpx.Client(timeout=timeout)

    def __enter__(self) -> "AzureContainerRegistry":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def upload_source(
        self,
        resource_group: str,
        registry_name: str,
        archive_path: Union[str, "os.PathLike[str]"],
    ) -> str:
        data = self._post(
            resource_group,
            registry_name,
            "listBuildSourceUploadUrl",
            action="get source upload URL",
        )
        upload_url = data.get("uploadUrl")
        relative_path = data.get("relativePath")
        if not upload_url or not relative_path:
            raise RegistryError(
                "Registry returned an incomplete source upload location.",
                body=str(data),
            )

        path = Path(archive_path)
        logger.debug("Uploading %s (%d bytes)", path, path.stat().st_size)
        try:
            with path.open("rb") as handle:
                response = self._client.put(
                    upload_url,
                    content=handle,
                    headers={
                        "x-ms-blob-type": "BlockBlob",
                        "Content-Length": str(path.stat().st_size),
                    },
                )
        except httpx.HTTPError as exc:
            raise RegistryError(f"Failed to upload build source: {exc}") from exc
        self._check(response, "upload build source")
        logger.info("Uploaded build source to %s", relative_path)
        return relative_path

    def start_build(
        self, resource_group: str, registry_name: str, request: BuildRequest
    ) -> str:
        data = self._post(
            resource_group,
            registry_name,
            "scheduleRun",
            json=request.to_payload(),
            action="schedule build",
        )
        properties = data.get("properties") or {}
        build_id = properties.get("runId") or data.get("name")
        if not build_id:
            raise RegistryError("Registry did not return a build id.", body=str(data))
        logger.info("Scheduled build %s on %s", build_id, registry_name)
        return str(build_id)

    def get_log_location(
        self, resource_group: str, registry_name: str, build_id: str
    ) -> str:
        data = self._post(
            resource_group,
            registry_name,
            f"runs/{build_id}/listLogSasUrl",
            action="get build log link",
        )
        link = data.get("logLink")
        if not link:
            raise RegistryError(
                f"Registry returned no log link for build {build_id}.", body=str(data)
            )
        return link

    def get_build_status(
        self, resource_group: str, registry_name: str, build_id: str
    ) -> str:
        url = self._url(resource_group, registry_name, f"runs/{build_id}")
        response = self._send("GET", url, action="get build status")
        properties = self._json(response).get("properties") or {}
        return str(properties.get("status", "Unknown"))

    def cancel_build(
        self, resource_group: str, registry_name: str, build_id: str
    ) -> None:
        self._post(
            resource_group,
            registry_name,
            f"runs/{build_id}/cancel",
            action="cancel build",
        )

    def _url(self, resource_group: str, registry_name: str, suffix: str) -> str:
        return (
            f"{self.base_url}/subscriptions/{self.subscription_id}"
            f"/resourceGroups/{resource_group}"
            f"/providers/Microsoft.ContainerRegistry/registries/{registry_name}"
            f"/{suffix}"
        )

    def _post(
        self,
        resource_group: str,
        registry_name: str,
        suffix: str,
        *,
        action: str,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        url = self._url(resource_group, registry_name, suffix)
        response = self._send("POST", url, action=action, json=json)
        return self._json(response)

    def _send(
        self,
        method: str,
        url: str,
        *,
        action: str,
        json: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        logger.debug("%s %s", method, url)
        try:
            response = self._client.request(
                method,
                url,
                params={"api-version": API_VERSION},
                headers={"Authorization": f"Bearer {self._token}"},
                json=json,
            )
        except httpx.HTTPError as exc:
            raise RegistryError(f"Failed to {action}: {exc}") from exc
        self._check(response, action)
        return response

    @staticmethod
    def _check(response: httpx.Response, action: str) -> None:
        if response.is_success:
            return
        raise RegistryError(
            f"Failed to {action}.",
            status_code=response.status_code,
            body=response.text[:500],
        )

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as exc:
            raise RegistryError(
                "Registry returned a malformed response.", body=response.text[:500]
            ) from exc
        return data if isinstance(data, dict) else {}
