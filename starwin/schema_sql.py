import logging
from typing import NamedTuple, Optional

logger = logging.getLogger(__name__)

SQLITE_SCHEMA_SQL = '''
CREATE TABLE IF NOT EXISTS clients (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    address TEXT,
    email TEXT,
    phone TEXT,
    "createdAt" DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS orders (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    client_id INTEGER NOT NULL,
    is_active BOOLEAN DEFAULT true,
    description TEXT,
    agreed_price REAL DEFAULT 0 CHECK (agreed_price IS NULL OR agreed_price >= 0),
    paid_price REAL DEFAULT 0 CHECK (paid_price IS NULL OR paid_price >= 0),
    cost_price REAL DEFAULT 0 CHECK (cost_price IS NULL OR cost_price >= 0),
    status TEXT DEFAULT 'Pending',
    due_datetime DATETIME,
    last_admin_responder TEXT,
    "createdAt" DATETIME DEFAULT CURRENT_TIMESTAMP,
    "updatedAt" DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (client_id) REFERENCES clients(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS measurement_tasks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    client_id INTEGER NOT NULL,
    description TEXT,
    address TEXT,
    task_datetime DATETIME NOT NULL,
    is_completed BOOLEAN DEFAULT false,
    "createdAt" DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (client_id) REFERENCES clients(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_orders_client ON orders(client_id);
CREATE INDEX IF NOT EXISTS idx_tasks_client ON measurement_tasks(client_id);

-- AFTER trigger: the nested UPDATE does not re-fire it (recursive_triggers is off)
CREATE TRIGGER IF NOT EXISTS update_order_timestamp
AFTER UPDATE ON orders
FOR EACH ROW
BEGIN
  UPDATE orders SET "updatedAt" = CURRENT_TIMESTAMP WHERE id = OLD.id;
END;
'''

POSTGRES_SCHEMA_SQL = '''
CREATE TABLE IF NOT EXISTS clients (
    id SERIAL PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    address TEXT,
    email TEXT,
    phone TEXT,
    "createdAt" TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS orders (
    id SERIAL PRIMARY KEY,
    client_id INTEGER NOT NULL REFERENCES clients(id) ON DELETE CASCADE,
    is_active BOOLEAN DEFAULT true,
    description TEXT,
    agreed_price REAL DEFAULT 0 CHECK (agreed_price IS NULL OR agreed_price >= 0),
    paid_price REAL DEFAULT 0 CHECK (paid_price IS NULL OR paid_price >= 0),
    cost_price REAL DEFAULT 0 CHECK (cost_price IS NULL OR cost_price >= 0),
    status TEXT DEFAULT 'Pending',
    due_datetime TIMESTAMPTZ,
    last_admin_responder TEXT,
    "createdAt" TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
    "updatedAt" TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS measurement_tasks (
    id SERIAL PRIMARY KEY,
    client_id INTEGER NOT NULL REFERENCES clients(id) ON DELETE CASCADE,
    description TEXT,
    address TEXT,
    task_datetime TIMESTAMPTZ NOT NULL,
    is_completed BOOLEAN DEFAULT false,
    "createdAt" TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_orders_client ON orders(client_id);
CREATE INDEX IF NOT EXISTS idx_tasks_client ON measurement_tasks(client_id);

CREATE OR REPLACE FUNCTION update_updated_at_column()
RETURNS TRIGGER AS $$
BEGIN
   NEW."updatedAt" = now();
   RETURN NEW;
END;
$$ language 'plpgsql';

DROP TRIGGER IF EXISTS update_order_timestamp ON orders;
CREATE TRIGGER update_order_timestamp
BEFORE UPDATE ON orders
FOR EACH ROW
EXECUTE PROCEDURE update_updated_at_column();
'''

SCHEMAS = {
    "sqlite": SQLITE_SCHEMA_SQL,
    "postgres": POSTGRES_SCHEMA_SQL,
}


class SchemaStatus(NamedTuple):
    ready: bool
    backend: Optional[str]
    error: Optional[str] = None


def provision_schema(store) -> SchemaStatus:
    """Create tables and the updatedAt trigger if they are missing.

    Safe to run on every start. A failure is logged and reported in the
    returned status instead of being raised, so the service can still boot.
    """
    backend = store.backend_name
    try:
        store.execute_script(SCHEMAS[backend])
    except Exception as exc:
        logger.exception("Error inicializando la base de datos (%s)", backend)
        return SchemaStatus(False, backend, str(exc))
    logger.info("Base de datos lista y tablas aseguradas (%s)", backend)
    return SchemaStatus(True, backend)
