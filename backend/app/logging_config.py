"""
Configuracion de logging del servidor.

El proceso escribe en <instalacion>/logs/log.log (modo append) y tambien en
stdout. Cada linea lleva una etiqueta en minusculas, la fecha y el archivo y
linea que origino el mensaje:

    2024-05-01 10:00:00,123 [error] upload.py:97 rate limit exceeded for address: 10.0.0.7

En vez de pasar "cualquier cosa" al logger y decidir el nivel segun su tipo,
solo existen dos tipos de entrada: Info(mensaje) y Error(excepcion). Ambas
pasan por la misma funcion log_event().
"""

import logging
import sys
from dataclasses import dataclass
from pathlib import Path

LOGGER_NAME = "filedrop"

FILE_FORMAT = "%(asctime)s %(tag)s %(filename)s:%(lineno)d %(message)s"
CONSOLE_FORMAT = "%(asctime)s %(tag)s %(message)s"


class TaggedFormatter(logging.Formatter):
    """Agrega el atributo `tag` ("[info]", "[error]"...) a cada registro."""

    def format(self, record: logging.LogRecord) -> str:
        record.tag = f"[{record.levelname.lower()}]"
        return super().format(record)


@dataclass(frozen=True)
class Info:
    message: str


@dataclass(frozen=True)
class Error:
    error: BaseException | str

    @property
    def message(self) -> str:
        return str(self.error)


def setup_logger(log_dir: Path, filename: str = "log.log") -> logging.Logger:
    """
    Configura el logger `filedrop` con un archivo en modo append y la consola.

    Si se llama mas de una vez (tests, recargas) reemplaza los handlers
    anteriores en vez de duplicarlos.

    Raises:
        OSError: Si no se puede crear la carpeta o abrir el archivo de log.
            El llamador lo trata como error fatal de arranque.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    file_handler = logging.FileHandler(log_dir / filename, mode="a", encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(TaggedFormatter(FILE_FORMAT))

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(TaggedFormatter(CONSOLE_FORMAT))

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    return logger


def log_event(entry: Info | Error, logger: logging.Logger | None = None) -> None:
    """Escribe una entrada Info o Error en el logger indicado (o en `filedrop`)."""
    logger = logger or logging.getLogger(LOGGER_NAME)
    # stacklevel=2: el archivo:linea del log es el del llamador, no este.
    if isinstance(entry, Error):
        logger.error(entry.message, stacklevel=2)
    else:
        logger.info(entry.message, stacklevel=2)
