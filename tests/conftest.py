"""
Configuração dos testes pytest
"""
import sys
import json
import re
from pathlib import Path
from urllib.parse import unquote

# Adicionar diretório raiz ao path
ROOT_DIR = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT_DIR))

import pytest
import pandas as pd
import numpy as np

from featurestore_client.rest.gateway import GatewayResponse, RemoteGateway
from featurestore_client.rest.client import FeaturestoreRestClient

PROJECT_ID = 1
FEATURESTORE_ID = 67
FEATURESTORE_NAME = "demo_featurestore"

_BASE = rf"^/project/{PROJECT_ID}/featurestores"


def response(status_code, body=None):
    """Monta uma resposta do gateway a partir de um corpo JSON."""
    raw = b"" if body is None else json.dumps(body).encode("utf-8")
    return GatewayResponse(status_code=status_code, body=raw)


class FakeGateway(RemoteGateway):
    """
    Gateway em memória que emula o backend do feature store.

    Registra cada chamada em `calls` e permite forçar respostas com `fail_on`.
    """

    def __init__(self, online_enabled=True, connectors=None):
        self.calls = []
        self.overrides = []
        self.featurestores = [{
            "featurestoreId": FEATURESTORE_ID,
            "featurestoreName": FEATURESTORE_NAME,
            "projectId": PROJECT_ID,
            "onlineEnabled": online_enabled,
        }]
        self.featuregroups = []
        self.training_datasets = []
        self.xattrs = {}
        self.storage_connectors = connectors if connectors is not None else [
            {"id": 5, "name": "mysql_conn", "storageConnectorType": "JDBC", "connectionString": "jdbc:mysql://db"},
            {"id": 6, "name": "s3_bucket", "storageConnectorType": "S3", "bucket": "features"},
        ]
        self.settings = {
            "cachedFeaturegroupDtoType": "cachedFeaturegroupDTO",
            "onDemandFeaturegroupDtoType": "onDemandFeaturegroupDTO",
            "trainingDatasetDtoType": "hopsfsTrainingDatasetDTO",
            "onlineFeaturestoreEnabled": online_enabled,
        }
        self._next_id = 100

    def fail_on(self, method, pattern, status_code, body=None):
        """Força a resposta de chamadas cujo path casa com `pattern`."""
        self.overrides.append((method, re.compile(pattern), response(status_code, body)))

    def calls_to(self, method, pattern=""):
        regex = re.compile(pattern)
        return [c for c in self.calls if c["method"] == method and regex.search(c["path"])]

    def add_featuregroup(self, name, version=1, **extra):
        self._next_id += 1
        fg = {
            "id": self._next_id,
            "name": name,
            "version": version,
            "featurestoreId": FEATURESTORE_ID,
            "featurestoreName": FEATURESTORE_NAME,
            "type": "cachedFeaturegroupDTO",
            "features": [
                {"name": "id", "type": "BIGINT", "primary": True, "partition": False},
                {"name": "value", "type": "DOUBLE", "primary": False, "partition": False},
            ],
            "onlineEnabled": False,
        }
        fg.update(extra)
        self.featuregroups.append(fg)
        return fg

    def add_training_dataset(self, name, version=1):
        self._next_id += 1
        td = {"id": self._next_id, "name": name, "version": version, "featurestoreId": FEATURESTORE_ID}
        self.training_datasets.append(td)
        return td

    def call(self, path, method, json_body=None, query_params=None):
        self.calls.append({"path": path, "method": method, "body": json_body, "query": query_params})
        for override_method, pattern, forced in self.overrides:
            if override_method == method and pattern.search(path):
                return forced
        return self._route(path, method, json_body, query_params or {})

    def _find(self, items, item_id):
        return next((item for item in items if item["id"] == item_id), None)

    def _route(self, path, method, body, query):
        fs = rf"{_BASE}/{FEATURESTORE_ID}"

        if method == "GET" and re.match(rf"{_BASE}$", path):
            return response(200, self.featurestores)
        if method == "GET" and re.match(rf"{fs}/metadata$", path):
            return response(200, {
                "featuregroups": self.featuregroups,
                "trainingDatasets": self.training_datasets,
                "storageConnectors": self.storage_connectors,
                "settings": self.settings,
            })
        if method == "GET" and re.match(rf"{fs}/storageconnectors/online$", path):
            return response(200, {"id": 9, "name": "demo_onlinefeaturestore", "storageConnectorType": "JDBC"})

        if method == "POST" and re.match(rf"{fs}/featuregroups(/sync)?$", path):
            self._next_id += 1
            created = dict(body, id=self._next_id, featurestoreId=FEATURESTORE_ID)
            self.featuregroups.append(created)
            return response(201, created)

        match = re.match(rf"{fs}/featuregroups/(\d+)(/.*)?$", path)
        if match:
            fg = self._find(self.featuregroups, int(match.group(1)))
            suffix = match.group(2) or ""
            if fg is None:
                return response(404, {"errorCode": 270009, "errorMsg": "Featuregroup not found", "userMsg": ""})
            if method == "PUT" and not suffix:
                if query.get("enableOnline"):
                    fg["onlineEnabled"] = True
                if query.get("disableOnline"):
                    fg["onlineEnabled"] = False
                fg.update({k: v for k, v in body.items() if k in ("description", "statisticColumns")})
                return response(200, fg)
            if method == "POST" and suffix == "/clear":
                return response(200)
            if suffix.startswith("/xattrs"):
                return self._xattrs(fg["id"], method, unquote(suffix[len("/xattrs/"):]) or None, body)

        if method == "POST" and re.match(rf"{fs}/trainingdatasets$", path):
            self._next_id += 1
            created = dict(body, id=self._next_id, featurestoreId=FEATURESTORE_ID)
            self.training_datasets.append(created)
            return response(201, created)
        if method == "PUT" and re.match(rf"{fs}/trainingdatasets/\d+$", path):
            return response(200, body)

        return response(404, {"errorCode": 270000, "errorMsg": f"No route for {method} {path}", "userMsg": ""})

    def _xattrs(self, fg_id, method, name, body):
        attrs = self.xattrs.setdefault(fg_id, {})
        if method == "PUT":
            created = name not in attrs
            attrs[name] = body[name]
            return response(201 if created else 200)
        if method == "GET":
            items = attrs if name is None else {k: v for k, v in attrs.items() if k == name}
            return response(202, {"items": [{"name": k, "value": v} for k, v in items.items()]})
        if method == "DELETE":
            if attrs.pop(name, None) is None:
                return response(404)
            return response(204)
        return response(405)


@pytest.fixture
def gateway():
    """Gateway falso com um feature store vazio."""
    return FakeGateway()


@pytest.fixture
def rest_client(gateway):
    return FeaturestoreRestClient(gateway, project_id=PROJECT_ID)


@pytest.fixture
def sales_df():
    """DataFrame de vendas usado nos testes de escrita."""
    return pd.DataFrame({
        "order_id": [1, 2, 3, 4, 5],
        "customer": ["ana", "bruno", "carla", "ana", "davi"],
        "amount": [10.5, 22.0, 7.25, 13.0, 40.0],
        "quantity": np.array([1, 2, 1, 3, 4], dtype="int64"),
    })


@pytest.fixture
def sample_data():
    """Fixture com dados de exemplo (20 registros) para estatísticas."""
    np.random.seed(42)
    n = 20
    return pd.DataFrame({
        "entity_id": np.arange(n),
        "score": np.random.uniform(4.0, 9.0, n).round(1),
        "age": np.random.randint(10, 15, n),
        "segment": np.random.choice(["a", "b", "c"], n),
    })
