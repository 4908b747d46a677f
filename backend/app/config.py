"""
Modulo de configuracion centralizada de la aplicacion.

Aqui viven DOS tipos de configuracion distintos:

1. **Configuracion de ejecucion (`Settings`):** constantes del proceso que
   se leen de variables de entorno (os.getenv). Puerto, carpeta de logs,
   limite de tasa, tamano maximo de subida... Cambian entre entornos
   (desarrollo, produccion) sin tocar el codigo.

2. **Documento de ajustes (`UploadSettings`):** el archivo settings.json que
   el operador edita a mano. Contiene la carpeta base donde se guardan los
   archivos, la lista de IPs permitidas y la URL publica:

       { "dir": "/srv/files", "ip": ["10.0.0.5"], "url": "https://host/files" }

   Se carga UNA sola vez al arrancar. Si no existe, se crea con valores por
   defecto para que el operador tenga una plantilla que editar.

Por que el documento es inmutable?
----------------------------------
Todas las peticiones concurrentes leen estos ajustes. Si nadie puede
modificarlos despues del arranque, no hace falta ningun lock para leerlos:
un modelo Pydantic con frozen=True garantiza que cualquier intento de
asignacion lance un error.
"""

import ipaddress
import json
import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

# Carpeta que contiene el paquete `app` (backend/). Es la "carpeta de
# instalacion": ahi van settings.json y logs/ si no se indica otra cosa.
BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(key: str, default: bool = False) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Settings:
    """
    Configuracion del proceso, leida de variables de entorno.

    Igual que en el resto del proyecto, la instancia `settings` se crea una
    vez al importar el modulo y todos los archivos comparten la misma.
    """

    # ---------- Archivos del proceso ----------

    # Documento JSON con dir / ip / url. Ver UploadSettings.
    SETTINGS_FILE: Path = Path(os.getenv("FILEDROP_SETTINGS_FILE", str(BASE_DIR / "settings.json")))

    # Carpeta de logs. El archivo se abre en modo append: nunca se trunca.
    LOG_DIR: Path = Path(os.getenv("FILEDROP_LOG_DIR", str(BASE_DIR / "logs")))
    LOG_FILE: str = "log.log"

    # ---------- Servidor HTTP ----------

    HOST: str = os.getenv("FILEDROP_HOST", "0.0.0.0")
    PORT: int = int(os.getenv("FILEDROP_PORT", "4545"))

    # Rutas publicas. Una sola forma canonica:
    #   POST /upload            -> sube un archivo (con control de acceso)
    #   GET  /files/<ruta...>   -> descarga un archivo (sin control de acceso)
    UPLOAD_PATH: str = "/upload"
    FILES_PREFIX: str = "/files"

    # Header que pone el reverse proxy (nginx: proxy_set_header X-Real-IP).
    REAL_IP_HEADER: str = "X-Real-Ip"

    # ---------- Limite de tasa por IP ----------

    # Formato de la libreria `limits` ("20/second", "600/minute"...).
    # 20/second con rafaga 1 = como maximo una peticion cada 50 ms por IP.
    RATE_LIMIT: str = os.getenv("FILEDROP_RATE_LIMIT", "20/second")
    RATE_BURST: int = int(os.getenv("FILEDROP_RATE_BURST", "1"))

    # ---------- Limites de subida ----------

    MAX_UPLOAD_SIZE: int = int(os.getenv("FILEDROP_MAX_UPLOAD_SIZE", str(50 * 1024 * 1024)))  # 50 MB

    # Por compatibilidad, los errores logicos responden HTTP 200 con
    # {"error": "..."} en el cuerpo. Con esta opcion activa se usan codigos
    # 4xx/5xx reales (403, 405, 429, 400, 413, 500).
    ERROR_STATUS_CODES: bool = _env_bool("FILEDROP_ERROR_STATUS_CODES")


settings = Settings()


# ---------- Documento de ajustes (settings.json) ----------

DEFAULT_STORAGE_DIR = str(BASE_DIR / "files")
DEFAULT_BASE_URL = "http://127.0.0.1:4545/files"


def _canonical_address(address: str) -> str:
    try:
        return str(ipaddress.ip_address(address))
    except ValueError:
        return address


class SettingsError(Exception):
    """El documento de ajustes no se pudo leer, crear o validar."""


class UploadSettings(BaseModel):
    """
    Ajustes persistidos en settings.json.

    Los nombres cortos del JSON ("dir", "ip", "url") se mantienen como alias
    para no romper los archivos que ya existen en produccion.

    Atributos:
        directory (str): Carpeta base donde se guardan y sirven los archivos.
        allowlist (list[str]): IPs que pueden subir archivos. Lista vacia
            significa "todas permitidas" (decision explicita).
        base_url (str): URL publica desde la que se sirven los archivos.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    directory: str = Field(default=DEFAULT_STORAGE_DIR, alias="dir")
    allowlist: tuple[str, ...] = Field(default=(), alias="ip")
    base_url: str = Field(default=DEFAULT_BASE_URL, alias="url")

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("allowlist", mode="before")
    @classmethod
    def strip_addresses(cls, value):
        # Las IPs se guardan en forma canonica ("0:0::1" -> "::1") para que
        # coincidan con la identidad resuelta del cliente.
        if isinstance(value, (list, tuple)):
            return tuple(_canonical_address(str(item).strip()) for item in value)
        return value

    @property
    def allowed_addresses(self) -> frozenset[str]:
        return frozenset(self.allowlist)

    def to_document(self) -> dict:
        """Representacion JSON con los nombres cortos del archivo."""
        return {"dir": self.directory, "ip": list(self.allowlist), "url": self.base_url}


def load_settings(path: Path) -> UploadSettings:
    """
    Carga settings.json, o lo crea con valores por defecto si no existe.

    Parametros:
        path (Path): Ruta del documento de ajustes.

    Retorna:
        UploadSettings: Ajustes validados e inmutables.

    Raises:
        SettingsError: Si el archivo no se puede leer/escribir o su contenido
            no es JSON valido con la estructura esperada. Es un error fatal
            de arranque: el proceso no debe empezar a servir sin ajustes.
    """
    path = Path(path)

    if not path.is_file():
        defaults = UploadSettings()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(defaults.to_document(), indent=2), encoding="utf-8")
        except OSError as exc:
            raise SettingsError(f"cannot create settings file {path}: {exc}") from exc
        return defaults

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SettingsError(f"cannot read settings file {path}: {exc}") from exc

    try:
        return UploadSettings.model_validate_json(raw)
    except ValidationError as exc:
        raise SettingsError(f"invalid settings file {path}: {exc}") from exc
