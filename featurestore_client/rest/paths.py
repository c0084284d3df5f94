"""
REST path templates of the feature store API (project scoped).
"""
from typing import Optional
from urllib.parse import quote

FEATURESTORES = "/project/{project_id}/featurestores"
FEATURESTORE_METADATA = FEATURESTORES + "/{featurestore_id}/metadata"
FEATUREGROUPS = FEATURESTORES + "/{featurestore_id}/featuregroups"
FEATUREGROUP = FEATUREGROUPS + "/{featuregroup_id}"
FEATUREGROUP_CLEAR = FEATUREGROUP + "/clear"
FEATUREGROUPS_SYNC = FEATUREGROUPS + "/sync"
FEATUREGROUP_XATTRS = FEATUREGROUP + "/xattrs"
TRAINING_DATASETS = FEATURESTORES + "/{featurestore_id}/trainingdatasets"
TRAINING_DATASET = TRAINING_DATASETS + "/{training_dataset_id}"
ONLINE_STORAGE_CONNECTOR = FEATURESTORES + "/{featurestore_id}/storageconnectors/online"


def featurestores(project_id: int) -> str:
    return FEATURESTORES.format(project_id=project_id)


def featurestore_metadata(project_id: int, featurestore_id: int) -> str:
    return FEATURESTORE_METADATA.format(project_id=project_id, featurestore_id=featurestore_id)


def featuregroups(project_id: int, featurestore_id: int) -> str:
    return FEATUREGROUPS.format(project_id=project_id, featurestore_id=featurestore_id)


def featuregroup(project_id: int, featurestore_id: int, featuregroup_id: int) -> str:
    return FEATUREGROUP.format(
        project_id=project_id, featurestore_id=featurestore_id, featuregroup_id=featuregroup_id
    )


def featuregroup_clear(project_id: int, featurestore_id: int, featuregroup_id: int) -> str:
    return FEATUREGROUP_CLEAR.format(
        project_id=project_id, featurestore_id=featurestore_id, featuregroup_id=featuregroup_id
    )


def featuregroups_sync(project_id: int, featurestore_id: int) -> str:
    return FEATUREGROUPS_SYNC.format(project_id=project_id, featurestore_id=featurestore_id)


def featuregroup_xattrs(
    project_id: int, featurestore_id: int, featuregroup_id: int, name: Optional[str] = None
) -> str:
    path = FEATUREGROUP_XATTRS.format(
        project_id=project_id, featurestore_id=featurestore_id, featuregroup_id=featuregroup_id
    )
    return f"{path}/{quote(name, safe='')}" if name is not None else path


def training_datasets(project_id: int, featurestore_id: int) -> str:
    return TRAINING_DATASETS.format(project_id=project_id, featurestore_id=featurestore_id)


def training_dataset(project_id: int, featurestore_id: int, training_dataset_id: int) -> str:
    return TRAINING_DATASET.format(
        project_id=project_id, featurestore_id=featurestore_id, training_dataset_id=training_dataset_id
    )


def online_storage_connector(project_id: int, featurestore_id: int) -> str:
    return ONLINE_STORAGE_CONNECTOR.format(project_id=project_id, featurestore_id=featurestore_id)
