"""
Testes para o orquestrador de escrita de feature groups.
"""
import sqlite3
from unittest.mock import Mock

import pandas as pd
import pytest

from featurestore_client.errors import ErrorKind, ValidationError
from featurestore_client.feature_store import hudi
from featurestore_client.feature_store.metadata_cache import MetadataCache
from featurestore_client.feature_store.offline_store import OfflineStore
from featurestore_client.feature_store.online_store import OnlineStore
from featurestore_client.feature_store.orchestrator import WriteOrchestrator
from featurestore_client.models import FeaturegroupRequestBuilder, TrainingDatasetRequest
from featurestore_client.monitoring.metrics import OrchestratorMetrics
from featurestore_client.rest.client import FeaturestoreRestClient

from conftest import FEATURESTORE_ID, FEATURESTORE_NAME as FS, PROJECT_ID, FakeGateway

ALL_STATES = ["validating", "dispatching", "creating", "physical_write", "post_processing"]


def build_orchestrator(gateway, tmp_path):
    rest_client = FeaturestoreRestClient(gateway, project_id=PROJECT_ID)
    return WriteOrchestrator(
        rest_client=rest_client,
        cache=MetadataCache(rest_client),
        offline_store=OfflineStore(tmp_path / "offline"),
        online_store=OnlineStore(tmp_path / "online" / "features.db"),
        training_dataset_store=OfflineStore(tmp_path / "training_datasets"),
        metrics=OrchestratorMetrics(),
    )


@pytest.fixture
def orchestrator(gateway, tmp_path):
    return build_orchestrator(gateway, tmp_path)


def sales_request(df, **fields):
    builder = FeaturegroupRequestBuilder("sales", featurestore=FS).version(1).dataframe(df).primary_key(["order_id"])
    for key, value in fields.items():
        getattr(builder, key)(value)
    return builder.build()


class TestCachedWrite:
    def test_end_to_end_offline_only(self, orchestrator, gateway, sales_df):
        """Grupo 'sales' v1 só offline: um POST, uma escrita offline, nada online."""
        outcome = orchestrator.write(sales_request(sales_df))

        assert outcome.succeeded, outcome.error
        assert outcome.featurestore_id == FEATURESTORE_ID
        assert outcome.completed_states == ALL_STATES
        assert len(gateway.calls_to("POST", r"/featuregroups$")) == 1
        assert len(orchestrator.offline_store.read(FS, "sales_1")) == 5
        assert orchestrator.online_store.list_tables() == []

        entry = orchestrator.cache.find_featuregroup(FS, "sales", 1)
        assert entry.id == outcome.featuregroup_id
        assert entry.primary_key == ["order_id"]

    def test_create_body(self, orchestrator, gateway, sales_df):
        orchestrator.write(sales_request(sales_df, description="daily sales", jobs=["ingest_sales"]))

        body = gateway.calls_to("POST", r"/featuregroups$")[0]["body"]
        assert body["type"] == "cachedFeaturegroupDTO"
        assert body["featurestoreName"] == FS
        assert body["description"] == "daily sales"
        assert body["jobs"] == [{"jobName": "ingest_sales"}]
        assert body["onlineEnabled"] is False
        assert body["hudiEnabled"] is False
        assert [f["name"] for f in body["features"]] == ["order_id", "customer", "amount", "quantity"]
        assert [f["primary"] for f in body["features"]] == [True, False, False, False]

    def test_statistics_pushed_after_create(self, orchestrator, gateway, sales_df):
        orchestrator.write(sales_request(sales_df, stat_columns=["amount"]))

        methods = [(c["method"], c["path"].rsplit("/", 1)[-1]) for c in gateway.calls if c["method"] != "GET"]
        assert methods[0] == ("POST", "featuregroups")
        assert methods[1][0] == "PUT"
        update = gateway.calls_to("PUT")[0]
        assert update["query"]["updateStats"] is True
        assert [s["featureName"] for s in update["body"]["descriptiveStatistics"]] == ["amount"]

    def test_statistics_disabled(self, orchestrator, gateway, sales_df):
        outcome = orchestrator.write(sales_request(sales_df, compute_stats=False))

        assert outcome.succeeded
        assert gateway.calls_to("PUT") == []

    def test_online_write(self, orchestrator, gateway, sales_df):
        outcome = orchestrator.write(sales_request(sales_df, online=True))

        assert outcome.succeeded
        assert gateway.calls_to("POST", r"/featuregroups$")[0]["body"]["onlineEnabled"] is True
        assert orchestrator.online_store.get_feature_vector(FS, "sales_1", 3)["customer"] == "carla"

    def test_online_only(self, orchestrator, sales_df):
        outcome = orchestrator.write(sales_request(sales_df, online=True, offline=False))

        assert outcome.succeeded
        assert not orchestrator.offline_store.exists(FS, "sales_1")
        assert orchestrator.online_store.table_exists(FS, "sales_1")

    def test_append_mode(self, orchestrator, gateway, sales_df):
        orchestrator.offline_store.write(sales_df, FS, "sales_1")
        outcome = orchestrator.write(sales_request(sales_df, mode="append"))

        assert outcome.succeeded
        assert len(orchestrator.offline_store.read(FS, "sales_1")) == 10

    def test_metrics_recorded(self, orchestrator, sales_df):
        orchestrator.write(sales_request(sales_df))
        orchestrator.write(sales_request(sales_df, primary_key=["missing"]))

        assert orchestrator.metrics.get_metrics()["operations"] == {
            "create_featuregroup:success": 1,
            "create_featuregroup:failure": 1,
        }


class TestWriteFailures:
    def test_validation_happens_before_any_call(self, orchestrator, gateway, sales_df):
        outcome = orchestrator.write(sales_request(sales_df, primary_key=["missing"]))

        assert not outcome.succeeded
        assert outcome.kind == ErrorKind.VALIDATION
        assert outcome.failed_state == "validating"
        assert gateway.calls == []

    def test_unsupported_mode_fails_before_create(self, orchestrator, gateway, sales_df):
        """Modo inválido é rejeitado antes de registrar o feature group."""
        outcome = orchestrator.write(sales_request(sales_df, mode="upsert"))

        assert outcome.kind == ErrorKind.VALIDATION
        assert outcome.failed_state == "validating"
        assert gateway.calls_to("POST") == []
        assert gateway.featuregroups == []

    def test_unwrap_raises(self, orchestrator, sales_df):
        outcome = orchestrator.write(sales_request(pd.DataFrame()))
        with pytest.raises(ValidationError):
            outcome.unwrap()

    def test_creation_rejected(self, orchestrator, gateway, sales_df):
        gateway.fail_on("POST", r"/featuregroups$", 400, {"errorCode": 120, "errorMsg": "dup", "userMsg": "exists"})

        outcome = orchestrator.write(sales_request(sales_df))

        assert outcome.kind == ErrorKind.CREATION
        assert outcome.failed_state == "creating"
        assert outcome.error.error_code == 120
        assert outcome.featuregroup_id is None
        assert not orchestrator.offline_store.exists(FS, "sales_1")

    def test_online_not_enabled_for_store(self, tmp_path, sales_df):
        gateway = FakeGateway(online_enabled=False)
        orchestrator = build_orchestrator(gateway, tmp_path)

        outcome = orchestrator.write(sales_request(sales_df, online=True))

        assert outcome.kind == ErrorKind.VALIDATION
        assert outcome.failed_state == "dispatching"
        assert gateway.calls_to("POST") == []

    def test_partial_failure_keeps_ids(self, orchestrator, gateway, sales_df):
        """Falha online após o create: sem rollback, IDs preservados."""
        orchestrator.online_store.write = Mock(side_effect=sqlite3.OperationalError("disk I/O error"))

        outcome = orchestrator.write(sales_request(sales_df, online=True))

        assert not outcome.succeeded
        assert outcome.kind == ErrorKind.PHYSICAL_WRITE
        assert outcome.failed_state == "physical_write"
        assert outcome.error.target == "online"
        assert outcome.featuregroup_id is not None
        assert outcome.completed_states == ["validating", "dispatching", "creating"]
        # Offline rows were written before the online failure
        assert orchestrator.offline_store.exists(FS, "sales_1")
        assert gateway.calls_to("DELETE") == []
        assert not orchestrator.cache.is_cached(FS)
        assert orchestrator.cache.find_featuregroup(FS, "sales", 1).id == outcome.featuregroup_id

    def test_statistics_update_rejected(self, orchestrator, gateway, sales_df):
        gateway.fail_on("PUT", r"/featuregroups/\d+$", 500)

        outcome = orchestrator.write(sales_request(sales_df))

        assert outcome.kind == ErrorKind.UPDATE
        assert outcome.failed_state == "post_processing"
        assert not orchestrator.cache.is_cached(FS)


class TestOnDemandWrite:
    def _request(self, connector):
        return (
            FeaturegroupRequestBuilder("orders_view", featurestore=FS)
            .on_demand("SELECT * FROM orders", connector)
            .build()
        )

    def test_non_jdbc_connector_rejected_without_calls(self, orchestrator, gateway):
        orchestrator.cache.get(FS)
        gateway.calls.clear()

        outcome = orchestrator.write(self._request("s3_bucket"))

        assert outcome.kind == ErrorKind.VALIDATION
        assert "JDBC" in str(outcome.error)
        assert gateway.calls == []

    def test_unknown_connector(self, orchestrator):
        outcome = orchestrator.write(self._request("missing"))
        assert outcome.kind == ErrorKind.NOT_FOUND

    def test_missing_query(self, orchestrator, gateway):
        request = FeaturegroupRequestBuilder("orders_view", featurestore=FS).on_demand("", "mysql_conn").build()
        outcome = orchestrator.write(request)

        assert outcome.kind == ErrorKind.VALIDATION
        assert gateway.calls == []

    def test_jdbc_connector(self, orchestrator, gateway):
        outcome = orchestrator.write(self._request("mysql_conn"))

        assert outcome.succeeded, outcome.error
        assert "physical_write" not in outcome.completed_states
        body = gateway.calls_to("POST", r"/featuregroups$")[0]["body"]
        assert body["type"] == "onDemandFeaturegroupDTO"
        assert body["jdbcConnectorId"] == 5
        assert body["query"] == "SELECT * FROM orders"
        assert gateway.calls_to("PUT") == []
        assert orchestrator.offline_store.list_tables() == []


class TestIncrementalWrite:
    def test_incremental_write(self, orchestrator, gateway, sales_df):
        request = (
            FeaturegroupRequestBuilder("sales", featurestore=FS)
            .dataframe(sales_df)
            .primary_key(["order_id"])
            .incremental({hudi.PRECOMBINE_FIELD: "quantity"}, operation="upsert")
            .build()
        )

        outcome = orchestrator.write(request)

        assert outcome.succeeded, outcome.error
        assert outcome.completed_states == ALL_STATES
        assert gateway.calls_to("POST", r"/featuregroups$")[0]["body"]["hudiEnabled"] is True
        info = orchestrator.offline_store.get_table_info(FS, "sales_1")
        assert info["record_key"] == ["order_id"]
        assert info["commits"][-1]["operation"] == "upsert"

    def test_unknown_operation(self, orchestrator, gateway, sales_df):
        request = (
            FeaturegroupRequestBuilder("sales", featurestore=FS)
            .dataframe(sales_df)
            .incremental(operation="merge")
            .build()
        )
        outcome = orchestrator.write(request)

        assert outcome.kind == ErrorKind.VALIDATION
        assert gateway.calls == []

    def test_record_key_override_must_be_a_column(self, orchestrator, gateway, sales_df):
        request = (
            FeaturegroupRequestBuilder("sales", featurestore=FS)
            .dataframe(sales_df)
            .incremental({hudi.RECORD_KEY: "missing"}, operation="upsert")
            .build()
        )
        outcome = orchestrator.write(request)

        assert outcome.kind == ErrorKind.VALIDATION
        assert outcome.failed_state == "dispatching"
        assert gateway.calls_to("POST") == []

    def test_operation_override_must_be_known(self, orchestrator, gateway, sales_df):
        """Operação sobrescrita inválida não reescreve a tabela existente."""
        orchestrator.offline_store.write(sales_df, FS, "sales_1")
        request = (
            FeaturegroupRequestBuilder("sales", featurestore=FS)
            .dataframe(sales_df.head(1))
            .incremental({hudi.OPERATION: "delete"}, operation="upsert")
            .build()
        )
        outcome = orchestrator.write(request)

        assert outcome.kind == ErrorKind.VALIDATION
        assert gateway.calls_to("POST") == []
        assert len(orchestrator.offline_store.read(FS, "sales_1")) == len(sales_df)


class TestOnlineServing:
    def test_enable_creates_table_from_offline_rows(self, orchestrator, gateway):
        fg = gateway.add_featuregroup("clicks")
        orchestrator.offline_store.write(pd.DataFrame({"id": [1, 2], "value": [0.5, 0.7]}), FS, "clicks_1")

        outcome = orchestrator.enable_online(FS, "clicks", 1)

        assert outcome.succeeded, outcome.error
        assert outcome.featuregroup_id == fg["id"]
        assert gateway.calls_to("PUT")[0]["query"]["enableOnline"] is True
        assert orchestrator.online_store.get_table_info(FS, "clicks_1")["num_rows"] == 2
        assert orchestrator.cache.find_featuregroup(FS, "clicks", 1).online_enabled is True

    def test_enable_without_offline_rows(self, orchestrator, gateway):
        gateway.add_featuregroup("clicks")

        outcome = orchestrator.enable_online(FS, "clicks", 1)

        assert outcome.succeeded
        assert orchestrator.online_store.get_table_info(FS, "clicks_1")["num_rows"] == 0

    def test_disable_drops_table(self, orchestrator, gateway):
        gateway.add_featuregroup("clicks")
        orchestrator.enable_online(FS, "clicks", 1)

        outcome = orchestrator.disable_online(FS, "clicks", 1)

        assert outcome.succeeded
        assert not orchestrator.online_store.table_exists(FS, "clicks_1")
        assert orchestrator.cache.find_featuregroup(FS, "clicks", 1).online_enabled is False

    def test_enable_unknown_featuregroup(self, orchestrator, gateway):
        outcome = orchestrator.enable_online(FS, "missing", 1)

        assert outcome.kind == ErrorKind.NOT_FOUND
        assert outcome.failed_state == "validating"
        assert gateway.calls_to("PUT") == []

    def test_enable_rejected(self, orchestrator, gateway):
        gateway.add_featuregroup("clicks")
        gateway.fail_on("PUT", r"/featuregroups/\d+$", 400, {"errorCode": 1, "errorMsg": "no", "userMsg": ""})

        outcome = orchestrator.enable_online(FS, "clicks", 1)

        assert outcome.kind == ErrorKind.ENABLE_ONLINE
        assert not orchestrator.online_store.table_exists(FS, "clicks_1")

    def test_enable_on_disabled_store(self, tmp_path):
        gateway = FakeGateway(online_enabled=False)
        gateway.add_featuregroup("clicks")
        orchestrator = build_orchestrator(gateway, tmp_path)

        assert orchestrator.enable_online(FS, "clicks", 1).kind == ErrorKind.VALIDATION


class TestExistingFeaturegroups:
    def test_delete_contents(self, orchestrator, gateway, sales_df):
        orchestrator.write(sales_request(sales_df, online=True)).unwrap()

        outcome = orchestrator.delete_contents(FS, "sales", 1)

        assert outcome.succeeded
        assert outcome.data["cleared"] == {"offline": True, "online": True}
        assert len(gateway.calls_to("POST", r"/clear$")) == 1
        assert orchestrator.offline_store.read(FS, "sales_1").empty
        assert orchestrator.online_store.get_table_info(FS, "sales_1")["num_rows"] == 0

    def test_delete_contents_online_failure_is_tagged(self, orchestrator, sales_df):
        orchestrator.write(sales_request(sales_df, online=True)).unwrap()
        orchestrator.online_store.clear = Mock(side_effect=sqlite3.OperationalError("database is locked"))

        outcome = orchestrator.delete_contents(FS, "sales", 1)

        assert outcome.kind == ErrorKind.PHYSICAL_WRITE
        assert outcome.failed_state == "physical_write"
        assert outcome.error.target == "online"

    def test_delete_contents_unknown(self, orchestrator):
        assert orchestrator.delete_contents(FS, "missing", 1).kind == ErrorKind.NOT_FOUND

    def test_sync_table(self, orchestrator, gateway, sales_df):
        orchestrator.offline_store.write(sales_df, FS, "legacy_1")

        outcome = orchestrator.sync_table(FS, "legacy", 1, description="imported")

        assert outcome.succeeded, outcome.error
        body = gateway.calls_to("POST", r"/featuregroups/sync$")[0]["body"]
        assert body["description"] == "imported"
        assert body["features"][0] == {
            "name": "order_id", "type": "BIGINT", "description": "-", "primary": True, "partition": False,
        }
        assert orchestrator.cache.find_featuregroup(FS, "legacy", 1).id == outcome.featuregroup_id

    def test_sync_missing_table(self, orchestrator, gateway):
        outcome = orchestrator.sync_table(FS, "legacy", 1)

        assert outcome.kind == ErrorKind.VALIDATION
        assert gateway.calls == []

    def test_update_statistics(self, orchestrator, gateway, sales_df):
        orchestrator.write(sales_request(sales_df, compute_stats=False)).unwrap()

        outcome = orchestrator.update_statistics(FS, "sales", 1, ["amount", "quantity"])

        assert outcome.succeeded
        body = gateway.calls_to("PUT")[0]["body"]
        assert [s["featureName"] for s in body["descriptiveStatistics"]] == ["amount", "quantity"]
        assert body["statisticColumns"] == ["amount", "quantity"]


class TestExtendedMetadata:
    def test_add_get_remove(self, orchestrator, gateway):
        gateway.add_featuregroup("clicks")

        assert orchestrator.add_metadata(FS, "clicks", 1, "owner", "growth").succeeded
        assert orchestrator.add_metadata(FS, "clicks", 1, "tier", "silver").succeeded
        assert orchestrator.get_metadata(FS, "clicks", 1) == {"owner": "growth", "tier": "silver"}
        assert orchestrator.get_metadata(FS, "clicks", 1, "tier") == {"tier": "silver"}

        assert orchestrator.remove_metadata(FS, "clicks", 1, "owner").succeeded
        assert orchestrator.get_metadata(FS, "clicks", 1) == {"tier": "silver"}

    def test_remove_missing_key(self, orchestrator, gateway):
        gateway.add_featuregroup("clicks")
        outcome = orchestrator.remove_metadata(FS, "clicks", 1, "nope")

        assert outcome.kind == ErrorKind.METADATA_ATTACH
        assert outcome.failed_state == "updating"

    def test_empty_key(self, orchestrator, gateway):
        gateway.add_featuregroup("clicks")
        assert orchestrator.add_metadata(FS, "clicks", 1, "", "x").kind == ErrorKind.VALIDATION


class TestTrainingDatasets:
    def test_create_training_dataset(self, orchestrator, gateway, sample_data):
        request = TrainingDatasetRequest(featurestore=FS, name="churn_train", dataframe=sample_data, version=2)

        outcome = orchestrator.create_training_dataset(request)

        assert outcome.succeeded, outcome.error
        body = gateway.calls_to("POST", r"/trainingdatasets$")[0]["body"]
        assert body["type"] == "hopsfsTrainingDatasetDTO"
        assert body["dataFormat"] == "parquet"
        update = gateway.calls_to("PUT", rf"/trainingdatasets/{outcome.training_dataset_id}$")
        assert len(update) == 1
        assert len(update[0]["body"]["descriptiveStatistics"]) == len(sample_data.columns)

        df = orchestrator.read_training_dataset(FS, "churn_train", 2)
        assert len(df) == len(sample_data)

    def test_training_dataset_rejected(self, orchestrator, gateway, sample_data):
        gateway.fail_on("POST", r"/trainingdatasets$", 409, {"errorCode": 270017, "errorMsg": "exists", "userMsg": ""})
        request = TrainingDatasetRequest(featurestore=FS, name="churn_train", dataframe=sample_data)

        outcome = orchestrator.create_training_dataset(request)

        assert outcome.kind == ErrorKind.CREATION
        assert orchestrator.training_dataset_store.list_tables() == []
