"""
Modulo de esquemas (schemas) de datos de la API.

Define la forma exacta de las respuestas JSON. Los clientes existentes
esperan exactamente estas claves:

    exito:  {"url": "http://host/files/docs/a.txt"}
    error:  {"error": "address not allowed: 10.0.0.9"}

Por compatibilidad, los errores logicos se responden con HTTP 200 y la
clave "error" (ver Settings.ERROR_STATUS_CODES para usar codigos 4xx/5xx).
"""

from pydantic import BaseModel


class UploadResponse(BaseModel):
    """
    Respuesta de POST /upload cuando el archivo se guardo.

    Atributos:
        url (str): URL publica del archivo: <url de settings>/<Dir>/<Filename>.
    """
    url: str


class ErrorResponse(BaseModel):
    """
    Respuesta uniforme de error de POST /upload.

    Atributos:
        error (str): Motivo legible. Ejemplos:
            "method not allowed"
            "rate limit exceeded for address: 127.0.0.1"
            "expected directory header"
    """
    error: str


class HealthResponse(BaseModel):
    status: str
