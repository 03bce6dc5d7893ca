import logging
from typing import Any, Dict, Optional

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse

from .auth import check_password
from .config import Settings
from .dashboard import build_dashboard
from .db import StoreAdapter, open_backend
from .errors import AuthMismatchError, StoreConnectivityError, StoreNotReadyError, classify_store_error
from .schema_sql import SchemaStatus, provision_schema
from .utils import (
    normalize_client_payload,
    normalize_measurement_payload,
    normalize_order_payload,
    to_bool,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

ORDER_WITH_CLIENT_SQL = """
    SELECT o.*, c.name AS "clientName"
    FROM orders o
    JOIN clients c ON o.client_id = c.id
    WHERE o.id = %s
"""

TASK_WITH_CLIENT_SQL = """
    SELECT m.*, c.name AS "clientName"
    FROM measurement_tasks m
    JOIN clients c ON m.client_id = c.id
    WHERE m.id = %s
"""


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, (level or "INFO").upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def get_store(request: Request) -> StoreAdapter:
    store = request.app.state.store
    if store is None:
        raise StoreNotReadyError("La base de datos no está inicializada")
    return store


def _fail(exc: Exception, message: str, status_code: int = 500) -> JSONResponse:
    logger.exception("%s [%s]", message, classify_store_error(exc).__name__)
    return JSONResponse(status_code=status_code, content={"error": message})


def _not_found(message: str) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": message})


# ---------------------- Auth & health ----------------------


@router.post("/login")
def login(payload: Dict[str, Any], request: Request):
    password = payload.get("password")
    try:
        check_password("" if password is None else str(password), request.app.state.settings.admin_password)
    except AuthMismatchError as e:
        return JSONResponse(status_code=401, content={"success": False, "message": str(e)})
    return {"success": True}


@router.get("/health")
def health(request: Request):
    status: SchemaStatus = request.app.state.schema_status
    if status.ready:
        return {"ready": True, "backend": status.backend}
    return JSONResponse(
        status_code=503,
        content={"ready": False, "backend": status.backend, "error": status.error},
    )


# ---------------------- Dashboard ----------------------


@router.get("/dashboard-summary")
def dashboard_summary(store: StoreAdapter = Depends(get_store)):
    try:
        return build_dashboard(store)
    except Exception as e:
        return _fail(e, "Error al obtener resumen del dashboard")


# ---------------------- Clients ----------------------


@router.get("/clients")
def list_clients(store: StoreAdapter = Depends(get_store)):
    try:
        return store.fetch_many("SELECT * FROM clients ORDER BY name ASC")
    except Exception as e:
        return _fail(e, "Error al obtener clientes")


@router.post("/clients", status_code=201)
def create_client(payload: Dict[str, Any], store: StoreAdapter = Depends(get_store)):
    data = normalize_client_payload(payload)
    try:
        res = store.execute(
            "INSERT INTO clients (name, address, email, phone) VALUES (%s, %s, %s, %s) RETURNING id",
            (data["name"], data["address"], data["email"], data["phone"]),
        )
        row = store.fetch_one("SELECT * FROM clients WHERE id = %s", (res.inserted_id,))
    except Exception as e:
        return _fail(e, "Error al crear cliente")
    return {**row, "orders": [], "measurement_tasks": []}


@router.put("/clients/{client_id}")
def update_client(client_id: int, payload: Dict[str, Any], store: StoreAdapter = Depends(get_store)):
    data = normalize_client_payload(payload)
    try:
        store.execute(
            "UPDATE clients SET name=%s, address=%s, email=%s, phone=%s WHERE id=%s",
            (data["name"], data["address"], data["email"], data["phone"], client_id),
        )
        row = store.fetch_one("SELECT * FROM clients WHERE id = %s", (client_id,))
    except Exception as e:
        return _fail(e, "Error al actualizar cliente")
    if row is None:
        return _not_found("Cliente no encontrado")
    return row


@router.delete("/clients/{client_id}", status_code=204)
def delete_client(client_id: int, store: StoreAdapter = Depends(get_store)):
    # orders and measurement tasks go with it (ON DELETE CASCADE)
    try:
        store.execute("DELETE FROM clients WHERE id = %s", (client_id,))
    except Exception as e:
        return _fail(e, "Error al eliminar cliente")
    return Response(status_code=204)


# ---------------------- Orders ----------------------


@router.get("/orders")
def list_orders(store: StoreAdapter = Depends(get_store)):
    try:
        return store.fetch_many(
            """
            SELECT o.*, c.name AS "clientName", c.phone AS "clientPhone"
            FROM orders o
            JOIN clients c ON o.client_id = c.id
            ORDER BY o."createdAt" DESC, o.id DESC
            """
        )
    except Exception as e:
        return _fail(e, "Error al obtener todos los pedidos")


@router.post("/orders", status_code=201)
def create_order(payload: Dict[str, Any], store: StoreAdapter = Depends(get_store)):
    d = normalize_order_payload(payload)
    try:
        res = store.execute(
            """
            INSERT INTO orders (client_id, description, agreed_price, paid_price, cost_price,
                                status, due_datetime, last_admin_responder, is_active)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s) RETURNING id
            """,
            (d["client_id"], d["description"], d["agreed_price"], d["paid_price"], d["cost_price"],
             d["status"], d["due_datetime"], d["last_admin_responder"], d["is_active"]),
        )
        return store.fetch_one(ORDER_WITH_CLIENT_SQL, (res.inserted_id,))
    except Exception as e:
        return _fail(e, "Error al crear pedido")


@router.put("/orders/{order_id}")
def update_order(order_id: int, payload: Dict[str, Any], store: StoreAdapter = Depends(get_store)):
    d = normalize_order_payload(payload)
    # updatedAt is refreshed by the update_order_timestamp trigger
    try:
        store.execute(
            """
            UPDATE orders SET description=%s, agreed_price=%s, paid_price=%s, cost_price=%s,
                              status=%s, due_datetime=%s, last_admin_responder=%s, is_active=%s
            WHERE id=%s
            """,
            (d["description"], d["agreed_price"], d["paid_price"], d["cost_price"], d["status"],
             d["due_datetime"], d["last_admin_responder"], d["is_active"], order_id),
        )
        row = store.fetch_one(ORDER_WITH_CLIENT_SQL, (order_id,))
    except Exception as e:
        return _fail(e, "Error al actualizar pedido")
    if row is None:
        return _not_found("Pedido no encontrado")
    return row


@router.delete("/orders/{order_id}", status_code=204)
def delete_order(order_id: int, store: StoreAdapter = Depends(get_store)):
    try:
        store.execute("DELETE FROM orders WHERE id = %s", (order_id,))
    except Exception as e:
        return _fail(e, "Error al eliminar pedido")
    return Response(status_code=204)


# ---------------------- Measurement tasks ----------------------


@router.get("/measurements")
def list_measurements(store: StoreAdapter = Depends(get_store)):
    try:
        return store.fetch_many(
            """
            SELECT m.*, c.name AS "clientName"
            FROM measurement_tasks m
            JOIN clients c ON m.client_id = c.id
            ORDER BY m.task_datetime ASC
            """
        )
    except Exception as e:
        return _fail(e, "Error al obtener tareas")


@router.post("/measurements", status_code=201)
def create_measurement(payload: Dict[str, Any], store: StoreAdapter = Depends(get_store)):
    d = normalize_measurement_payload(payload)
    try:
        res = store.execute(
            "INSERT INTO measurement_tasks (client_id, description, address, task_datetime) "
            "VALUES (%s, %s, %s, %s) RETURNING id",
            (d["client_id"], d["description"], d["address"], d["task_datetime"]),
        )
        return store.fetch_one(TASK_WITH_CLIENT_SQL, (res.inserted_id,))
    except Exception as e:
        return _fail(e, "Error al crear tarea")


@router.put("/measurements/{task_id}")
def update_measurement(task_id: int, payload: Dict[str, Any], store: StoreAdapter = Depends(get_store)):
    if "is_completed" not in payload:
        return {"success": True}
    is_completed = bool(to_bool(payload["is_completed"]))
    try:
        store.execute("UPDATE measurement_tasks SET is_completed = %s WHERE id = %s", (is_completed, task_id))
    except Exception as e:
        return _fail(e, "Error al actualizar tarea")
    return {"success": True}


@router.delete("/measurements/{task_id}", status_code=204)
def delete_measurement(task_id: int, store: StoreAdapter = Depends(get_store)):
    try:
        store.execute("DELETE FROM measurement_tasks WHERE id = %s", (task_id,))
    except Exception as e:
        return _fail(e, "Error al eliminar tarea")
    return Response(status_code=204)


# ---------------------- App factory ----------------------


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)
    app = FastAPI(title="Starwin PRO")
    app.state.settings = settings
    app.state.store = None
    app.state.schema_status = SchemaStatus(False, None, "Base de datos no inicializada")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.allow_origins),
        allow_credentials=settings.allow_credentials,
        allow_methods=list(settings.allow_methods),
        allow_headers=list(settings.allow_headers),
    )

    @app.on_event("startup")
    def startup():
        try:
            store = open_backend(settings)
        except StoreConnectivityError as exc:
            # keep serving; /api/health reports the failure
            logger.exception("No se pudo conectar a la base de datos")
            backend = "postgres" if settings.uses_postgres else "sqlite"
            app.state.schema_status = SchemaStatus(False, backend, str(exc))
            return
        app.state.store = store
        app.state.schema_status = provision_schema(store)

    @app.on_event("shutdown")
    def shutdown():
        if app.state.store is not None:
            app.state.store.close()
            app.state.store = None

    @app.exception_handler(StoreNotReadyError)
    async def store_not_ready(request: Request, exc: StoreNotReadyError):
        logger.error("%s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"error": str(exc)})

    app.include_router(router)

    # front-end: registered last so /api routes win
    if settings.static_dir.is_dir():
        static_root = settings.static_dir.resolve()

        @app.get("/{full_path:path}", include_in_schema=False)
        def frontend(full_path: str):
            if full_path == "api" or full_path.startswith("api/"):
                return _not_found("Ruta no encontrada")
            asset = (static_root / full_path).resolve()
            if full_path and asset.is_file() and static_root in asset.parents:
                return FileResponse(asset)
            # client-side routes reload into the single page app
            return FileResponse(static_root / "index.html")

    return app


app = create_app()


if __name__ == "__main__":
    _settings = app.state.settings
    uvicorn.run(app, host=_settings.host, port=_settings.port)
