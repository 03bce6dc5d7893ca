from starwin.schema_sql import POSTGRES_SCHEMA_SQL, SchemaStatus, provision_schema


def _tables(store):
    rows = store.fetch_many("SELECT name FROM sqlite_master WHERE type IN ('table', 'trigger') ORDER BY name")
    return {r["name"] for r in rows}


def test_provisioning_is_idempotent(store):
    assert provision_schema(store) == SchemaStatus(True, "sqlite")
    assert provision_schema(store).ready
    assert {"clients", "orders", "measurement_tasks", "update_order_timestamp"} <= _tables(store)


def test_provisioning_failure_is_reported_not_raised(caplog):
    class BrokenStore:
        backend_name = "postgres"

        def execute_script(self, script):
            raise RuntimeError("connection reset")

    status = provision_schema(BrokenStore())
    assert status == SchemaStatus(False, "postgres", "connection reset")
    assert "Error inicializando la base de datos" in caplog.text


def test_postgres_trigger_is_recreated_each_start():
    assert "DROP TRIGGER IF EXISTS update_order_timestamp ON orders;" in POSTGRES_SCHEMA_SQL
    assert "BEFORE UPDATE ON orders" in POSTGRES_SCHEMA_SQL
