"""
Punto de entrada principal de la aplicacion FastAPI.

Aqui se:
1. Crea la instancia de la aplicacion FastAPI (create_app).
2. Arma el contexto compartido al arrancar (ajustes, limites, disco).
3. Registra las rutas (upload, files) y el health check.
4. Define run(), el comando que arranca el servidor con uvicorn.

Arquitectura de la aplicacion:
------------------------------
    main.py (punto de entrada)
        |
        +-- routes/         (reciben HTTP requests)
        |    +-- upload.py  POST /upload
        |    +-- files.py   GET  /files/{ruta}
        |
        +-- services/       (logica de negocio)
        |    +-- admission.py   metodo / IP / lista blanca / limite
        |    +-- storage.py     escritura y lectura en disco
        |
        +-- models/schemas.py   (forma de las respuestas JSON)
        +-- config.py           (entorno + settings.json)
        +-- context.py          (estado compartido del proceso)
        +-- limiter.py          (token bucket por IP)
        +-- logging_config.py   (logs/log.log)

Orden de arranque (run):
    log -> settings.json -> contexto -> escuchar en el puerto 4545
Si falla el log o los ajustes, el proceso termina sin abrir el puerto.
"""

import logging
import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import SettingsError, settings
from app.context import AppContext, build_context
from app.logging_config import Error, Info, log_event, setup_logger
from app.models.schemas import HealthResponse
from app.routes.files import router as files_router
from app.routes.upload import error_response, router as upload_router

logger = logging.getLogger("filedrop.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Si el contexto ya viene armado (run() o tests) no se toca. Si no,
    # es `uvicorn app.main:app`: aqui se abre el log igual que en run().
    if getattr(app.state, "context", None) is None:
        setup_logger(settings.LOG_DIR, settings.LOG_FILE)
        app.state.context = build_context()
    log_event(Info(f"serving files from {app.state.context.storage.root}"), logger)
    yield


async def method_not_allowed_handler(request: Request, exc: StarletteHTTPException):
    # Metodos fuera de UPLOAD_METHODS (TRACE, extensiones...) tambien
    # responden con el formato {"error": ...} del endpoint de subida.
    if exc.status_code == 405 and request.url.path == settings.UPLOAD_PATH:
        log_event(Error("method not allowed"), logger)
        return error_response("method not allowed", 405)
    return await http_exception_handler(request, exc)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    log_event(Error(exc), logger)
    return JSONResponse({"error": "internal server error"}, status_code=500)


def create_app(context: AppContext | None = None) -> FastAPI:
    """
    Crea la aplicacion.

    Parametros:
        context (AppContext | None): Contexto ya construido. Si es None, se
            construye en el arranque a partir de la configuracion.
    """
    app = FastAPI(title="File Drop Server", lifespan=lifespan)
    app.state.context = context

    app.add_exception_handler(StarletteHTTPException, method_not_allowed_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        return {"status": "ok"}

    app.include_router(upload_router)
    app.include_router(files_router)
    return app


app = create_app()


def run() -> None:
    """Arranca el servidor. Cualquier error de arranque termina el proceso."""
    try:
        setup_logger(settings.LOG_DIR, settings.LOG_FILE)
    except OSError as exc:
        print(f"cannot open log file in {settings.LOG_DIR}: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    try:
        context = build_context()
    except (SettingsError, ValueError) as exc:
        log_event(Error(exc), logger)
        raise SystemExit(1) from exc

    log_event(Info(f"listening on {settings.HOST}:{settings.PORT}"), logger)
    uvicorn.run(create_app(context), host=settings.HOST, port=settings.PORT, log_config=None)


if __name__ == "__main__":
    run()
