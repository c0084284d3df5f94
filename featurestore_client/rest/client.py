"""
Feature store REST client.

Every remote operation lives here together with its path, the status code
it requires and the typed error raised for any other status.
"""
import json
from typing import Any, Dict, List, Optional, Tuple, Type

import structlog

from ..config import GATEWAY_CONFIG
from ..errors import (
    CreationError,
    DeletionError,
    DisableOnlineError,
    EnableOnlineError,
    FeaturestoreError,
    FeaturestoreNotFoundError,
    MetadataAttachError,
    StorageConnectorNotFoundError,
    UpdateError,
)
from ..models import FeaturestoreEntry, FeaturestoreMetadata, StorageConnectorDescriptor
from . import paths
from .gateway import GatewayResponse, RemoteGateway

logger = structlog.get_logger()

# Query flags understood by the feature group update endpoint
UPDATE_STATS = "updateStats"
UPDATE_SETTINGS = "updateSettings"
UPDATE_JOB = "updateJob"
ENABLE_ONLINE = "enableOnline"
DISABLE_ONLINE = "disableOnline"

# DTO field carrying the backend entity type
ENTITY_TYPE_FIELD = "type"


def parse_error_body(response: GatewayResponse) -> Tuple[Optional[int], Optional[str], Optional[str]]:
    """
    Parse a structured error body `{errorCode, errorMsg, userMsg}`.

    Returns:
        Tuple `(error_code, error_msg, user_msg)`; all None when the body is
        empty or not a JSON object.
    """
    try:
        body = response.json()
    except (ValueError, UnicodeDecodeError):
        return None, None, None
    if not isinstance(body, dict):
        return None, None, None
    error_code = body.get("errorCode")
    if error_code is not None:
        try:
            error_code = int(error_code)
        except (TypeError, ValueError):
            pass
    return error_code, body.get("errorMsg"), body.get("userMsg")


def check_status(
    response: GatewayResponse,
    expected: Tuple[int, ...],
    error_cls: Type[FeaturestoreError],
    message: str,
    structured: bool = True,
) -> GatewayResponse:
    """
    Translate an unexpected status into `error_cls`.

    Args:
        response: Gateway response.
        expected: Accepted status codes.
        error_cls: Error raised for any other status.
        message: Leading message of the raised error.
        structured: Whether the endpoint returns structured error bodies.

    Returns:
        The response when its status is accepted.
    """
    if response.status_code in expected:
        return response

    if structured:
        error_code, error_msg, user_msg = parse_error_body(response)
    else:
        error_code, error_msg, user_msg = None, None, None

    if error_code is not None or error_msg or user_msg:
        detail = f"{message}, error code: {error_code} error message: {error_msg}, user message: {user_msg}"
    else:
        detail = f"{message}, response code: {response.status_code}"

    logger.error(
        "remote_call_rejected",
        error_kind=error_cls.kind.value,
        status=response.status_code,
        error_code=error_code,
        error_msg=error_msg,
        user_msg=user_msg,
    )
    raise error_cls(
        detail,
        status_code=response.status_code,
        error_code=error_code,
        error_msg=error_msg,
        user_msg=user_msg,
    )


def _with_type(dto: Dict[str, Any], dto_type: Optional[str]) -> Dict[str, Any]:
    body = dict(dto)
    if dto_type:
        body[ENTITY_TYPE_FIELD] = dto_type
    return body


class FeaturestoreRestClient:
    """
    Typed wrapper over the feature store REST API.

    Args:
        gateway: Remote gateway performing the calls.
        project_id: Project the feature stores belong to.
    """

    def __init__(self, gateway: RemoteGateway, project_id: Optional[int] = None):
        self.gateway = gateway
        self.project_id = project_id if project_id is not None else GATEWAY_CONFIG["project_id"]

    # ==================== Feature stores ====================

    def get_featurestores(self) -> List[FeaturestoreEntry]:
        """List the feature stores of the project."""
        logger.debug("getting_featurestores", project_id=self.project_id)
        response = self.gateway.call(paths.featurestores(self.project_id), "GET")
        check_status(
            response, (200,), FeaturestoreNotFoundError,
            "Could not fetch featurestores for the current project",
        )
        return [FeaturestoreEntry.from_dict(fs) for fs in response.json() or []]

    def get_featurestore_metadata(
        self,
        featurestore: FeaturestoreEntry,
        featurestores: Tuple[FeaturestoreEntry, ...] = (),
    ) -> FeaturestoreMetadata:
        """Fetch the topology and settings of one feature store."""
        logger.debug("getting_featurestore_metadata", featurestore=featurestore.name)
        response = self.gateway.call(
            paths.featurestore_metadata(self.project_id, featurestore.id), "GET"
        )
        check_status(
            response, (200,), FeaturestoreNotFoundError,
            f"Could not fetch metadata for featurestore: {featurestore.name}",
        )
        return FeaturestoreMetadata.from_json(response.json() or {}, featurestore, tuple(featurestores))

    def get_online_storage_connector(self, featurestore_id: int) -> StorageConnectorDescriptor:
        """Fetch the JDBC connector of the online feature store."""
        response = self.gateway.call(paths.online_storage_connector(self.project_id, featurestore_id), "GET")
        check_status(
            response, (200,), StorageConnectorNotFoundError,
            f"Could not get JDBC connector for online featurestore: {featurestore_id}",
        )
        return StorageConnectorDescriptor.from_dict(response.json())

    # ==================== Feature groups ====================

    def create_featuregroup(
        self, featurestore_id: int, dto: Dict[str, Any], dto_type: str
    ) -> Dict[str, Any]:
        """
        Create a feature group.

        Returns:
            The created feature group DTO as returned by the backend.
        """
        logger.debug("creating_featuregroup", name=dto.get("name"), featurestore_id=featurestore_id)
        response = self.gateway.call(
            paths.featuregroups(self.project_id, featurestore_id), "POST", _with_type(dto, dto_type)
        )
        check_status(response, (201,), CreationError, f"Could not create featuregroup: {dto.get('name')}")
        return response.json() or {}

    def sync_hive_table(
        self, featurestore_id: int, dto: Dict[str, Any], dto_type: str
    ) -> Dict[str, Any]:
        """Register an already materialized table as a feature group."""
        logger.debug("syncing_featuregroup_table", name=dto.get("name"), featurestore_id=featurestore_id)
        response = self.gateway.call(
            paths.featuregroups_sync(self.project_id, featurestore_id), "POST", _with_type(dto, dto_type)
        )
        check_status(response, (201,), CreationError, f"Could not create featuregroup: {dto.get('name')}")
        return response.json() or {}

    def update_featuregroup_stats(
        self, featurestore_id: int, featuregroup_id: int, dto: Dict[str, Any], dto_type: str
    ) -> None:
        """Push recomputed statistics and settings of a feature group."""
        query = {
            UPDATE_STATS: True,
            UPDATE_SETTINGS: True,
            UPDATE_JOB: bool(dto.get("jobs")),
        }
        response = self.gateway.call(
            paths.featuregroup(self.project_id, featurestore_id, featuregroup_id),
            "PUT", _with_type(dto, dto_type), query,
        )
        check_status(
            response, (200,), UpdateError,
            f"Could not update statistics and the settings for featuregroup: {dto.get('name')}",
        )

    def enable_featuregroup_online(
        self, featurestore_id: int, featuregroup_id: int, dto: Dict[str, Any], dto_type: str
    ) -> None:
        query = {
            ENABLE_ONLINE: True,
            DISABLE_ONLINE: False,
            UPDATE_STATS: False,
            UPDATE_JOB: bool(dto.get("jobs")),
        }
        response = self.gateway.call(
            paths.featuregroup(self.project_id, featurestore_id, featuregroup_id),
            "PUT", _with_type(dto, dto_type), query,
        )
        check_status(
            response, (200,), EnableOnlineError,
            f"Could not enable online feature serving for featuregroup: {dto.get('name')}",
        )

    def disable_featuregroup_online(
        self, featurestore_id: int, featuregroup_id: int, dto: Dict[str, Any], dto_type: str
    ) -> None:
        query = {
            DISABLE_ONLINE: True,
            ENABLE_ONLINE: False,
            UPDATE_STATS: False,
            UPDATE_JOB: bool(dto.get("jobs")),
        }
        response = self.gateway.call(
            paths.featuregroup(self.project_id, featurestore_id, featuregroup_id),
            "PUT", _with_type(dto, dto_type), query,
        )
        check_status(
            response, (200,), DisableOnlineError,
            f"Could not disable online feature serving for featuregroup: {dto.get('name')}",
        )

    def delete_featuregroup_contents(self, featurestore_id: int, featuregroup_id: int, name: str) -> None:
        """Clear the rows of a feature group; the group itself stays registered."""
        response = self.gateway.call(
            paths.featuregroup_clear(self.project_id, featurestore_id, featuregroup_id), "POST"
        )
        check_status(
            response, (200,), DeletionError,
            f"Could not clear the contents of featuregroup: {name}",
        )

    # ==================== Extended metadata ====================

    def add_xattr(self, featurestore_id: int, featuregroup_id: int, key: str, value: str) -> None:
        response = self.gateway.call(
            paths.featuregroup_xattrs(self.project_id, featurestore_id, featuregroup_id, key),
            "PUT", {key: value},
        )
        check_status(
            response, (200, 201), MetadataAttachError,
            f"Error while attaching metadata to featuregroup {featuregroup_id}", structured=False,
        )

    def get_xattrs(
        self, featurestore_id: int, featuregroup_id: int, key: Optional[str] = None
    ) -> Dict[str, str]:
        response = self.gateway.call(
            paths.featuregroup_xattrs(self.project_id, featurestore_id, featuregroup_id, key), "GET"
        )
        check_status(
            response, (202,), MetadataAttachError,
            f"Error while getting metadata for featuregroup {featuregroup_id}", structured=False,
        )
        try:
            items = (response.json() or {}).get("items") or []
        except json.JSONDecodeError as e:
            raise MetadataAttachError(
                f"Malformed metadata body for featuregroup {featuregroup_id}: {e}",
                status_code=response.status_code,
            ) from e
        return {item["name"]: item["value"] for item in items}

    def remove_xattr(self, featurestore_id: int, featuregroup_id: int, key: str) -> None:
        response = self.gateway.call(
            paths.featuregroup_xattrs(self.project_id, featurestore_id, featuregroup_id, key), "DELETE"
        )
        check_status(
            response, (204,), MetadataAttachError,
            f"Error while removing metadata from featuregroup {featuregroup_id}", structured=False,
        )

    # ==================== Training datasets ====================

    def create_training_dataset(
        self, featurestore_id: int, dto: Dict[str, Any], dto_type: str
    ) -> Dict[str, Any]:
        logger.debug("creating_training_dataset", name=dto.get("name"), featurestore_id=featurestore_id)
        response = self.gateway.call(
            paths.training_datasets(self.project_id, featurestore_id), "POST", _with_type(dto, dto_type)
        )
        check_status(
            response, (201,), CreationError, f"Could not create trainingDataset: {dto.get('name')}"
        )
        return response.json() or {}

    def update_training_dataset_stats(
        self, featurestore_id: int, training_dataset_id: int, dto: Dict[str, Any], dto_type: str
    ) -> None:
        query = {UPDATE_STATS: True, UPDATE_JOB: bool(dto.get("jobs"))}
        response = self.gateway.call(
            paths.training_dataset(self.project_id, featurestore_id, training_dataset_id),
            "PUT", _with_type(dto, dto_type), query,
        )
        check_status(
            response, (200,), UpdateError,
            f"Could not update statistics for trainingDataset: {dto.get('name')}",
        )
