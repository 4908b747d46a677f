"""
Modulo de ruta para descarga de archivos guardados.

Define GET /files/{ruta}, que sirve cualquier archivo bajo la carpeta base
de settings.json. Es el camino de vuelta de la URL que devuelve POST /upload:

    POST /upload (Dir: docs, Filename: a.txt)  -> {"url": ".../files/docs/a.txt"}
    GET  /files/docs/a.txt                      -> bytes del archivo

Este endpoint NO pasa por la admision (lista blanca, limite de tasa):
lectura publica, escritura controlada. Cualquiera que conozca la URL puede
descargar el archivo; no guardes aqui nada que no pueda ser publico.

FileResponse (Starlette) se encarga del streaming, del Content-Type segun la
extension y de los headers de cache (ETag, Last-Modified).
"""

from urllib.parse import unquote

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import FileResponse

from app.config import settings
from app.context import AppContext, get_context

router = APIRouter()


def requested_path(request: Request, fallback: str) -> str:
    """
    Ruta relativa pedida, decodificada UNA sola vez a partir de raw_path.

    Los nombres en disco pueden contener "%" (ej: "a%20b.txt"), asi que
    decodificar dos veces apuntaria a otro archivo. Algunos clientes de
    prueba entregan `path` ya decodificado dos veces; raw_path no.
    """
    raw = request.scope.get("raw_path")
    if not raw:
        return fallback
    path = raw.decode("latin-1").split("?", 1)[0]
    prefix = settings.FILES_PREFIX + "/"
    if not path.startswith(prefix):
        return fallback
    return unquote(path[len(prefix):])


@router.get(settings.FILES_PREFIX + "/{file_path:path}")
async def get_file(request: Request, file_path: str, context: AppContext = Depends(get_context)):
    """
    Parametros:
        file_path (str): Ruta relativa a la carpeta base. Solo se usa si el
            servidor no entrega raw_path (ver requested_path).

    Raises:
        HTTPException(404): Si no existe, es una carpeta o sale de la
            carpeta base.
    """
    path = context.storage.resolve(requested_path(request, file_path))
    if path is None:
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(path)
