"""
Modulo de ruta para subida de archivos (upload).

Define el endpoint POST /upload. El protocolo es deliberadamente simple y
lo usan clientes que ya existen, asi que no se cambia:

    POST /upload
    Dir: facturas/2024          <- subcarpeta destino (obligatorio)
    Filename: factura-17.pdf    <- nombre del archivo (obligatorio)

    <bytes crudos del archivo en el cuerpo, sin multipart>

Respuesta (siempre JSON):
    {"url": "http://host/files/facturas/2024/factura-17.pdf"}
    {"error": "address not allowed: 10.0.0.9"}

Flujo:
1. Admision (metodo, IP, lista blanca, X-Real-Ip, limite de tasa).
   Una peticion rechazada NUNCA llega a tocar el disco.
2. Validacion de headers Dir y Filename.
3. Lectura del cuerpo con tope de tamano (MAX_UPLOAD_SIZE).
4. Escritura en disco en un hilo aparte (no bloquea el event loop).

Todos los errores de la peticion se capturan aqui y se convierten en una
respuesta; ninguno tumba el servidor.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.requests import ClientDisconnect

from app.config import settings
from app.context import AppContext, get_context, get_peer
from app.logging_config import Error, Info, log_event
from app.models.schemas import ErrorResponse, UploadResponse
from app.services.admission import ADDRESS, METHOD, PEER, RATE, check_request
from app.services.storage import UploadError

logger = logging.getLogger("filedrop.upload")

router = APIRouter()

# Codigos HTTP usados solo si ERROR_STATUS_CODES esta activo.
ADMISSION_STATUS = {
    METHOD: 405,
    PEER: 400,
    ADDRESS: 403,
    RATE: 429,
}

# El endpoint acepta cualquier metodo para que el rechazo de metodo tenga
# el mismo formato JSON que el resto de errores.
UPLOAD_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def error_response(message: str, status_code: int) -> JSONResponse:
    code = status_code if settings.ERROR_STATUS_CODES else 200
    return JSONResponse(ErrorResponse(error=message).model_dump(), status_code=code)


async def read_body(request: Request, limit: int) -> bytes:
    """
    Lee el cuerpo por partes y corta en cuanto supera `limit` bytes, sin
    esperar a tener el archivo entero en memoria.
    """
    body = bytearray()
    try:
        async for chunk in request.stream():
            body.extend(chunk)
            if len(body) > limit:
                raise UploadError(f"upload exceeds {limit} bytes limit", status_code=413)
    except ClientDisconnect as exc:
        raise UploadError("client disconnected before the upload finished") from exc
    return bytes(body)


@router.api_route(
    settings.UPLOAD_PATH,
    methods=UPLOAD_METHODS,
    response_model=UploadResponse,
    responses={200: {"model": UploadResponse}, 403: {"model": ErrorResponse}},
)
async def upload_file(
    request: Request,
    context: AppContext = Depends(get_context),
    peer=Depends(get_peer),
):
    """
    Guarda el cuerpo de la peticion en <dir>/<Dir>/<Filename>.

    Retorna:
        UploadResponse con la URL publica, o JSONResponse con {"error": ...}.
    """
    result = check_request(
        request.method,
        peer,
        request.headers,
        context.upload_settings,
        context.registry,
    )
    if not result.allowed:
        log_event(Error(result.reason), logger)
        return error_response(result.reason, ADMISSION_STATUS[result.kind])

    directory = request.headers.get("Dir")
    filename = request.headers.get("Filename")

    try:
        if not directory:
            raise UploadError("expected directory header")
        if not filename:
            raise UploadError("expected filename header")

        data = await read_body(request, settings.MAX_UPLOAD_SIZE)
        url = await run_in_threadpool(context.storage.save, directory, filename, data)
    except UploadError as exc:
        log_event(Error(exc), logger)
        return error_response(exc.message, exc.status_code)
    except OSError as exc:
        # Fallo de disco (permisos, espacio...). No es culpa del cliente,
        # pero se le informa igual.
        log_event(Error(exc), logger)
        return error_response(str(exc), 500)

    log_event(Info(f"stored {len(data)} bytes from {result.identity}: {url}"), logger)
    return UploadResponse(url=url)
