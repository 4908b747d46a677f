"""
Servicio de almacenamiento local de archivos.

Todo acceso al disco pasa por aqui: guardar una subida y resolver la ruta
de un archivo para servirlo. Ningun otro modulo construye rutas a mano.

Estructura en disco:

    <dir de settings.json>/<Dir header>/<Filename header escapado>

Seguridad: path traversal
-------------------------
Los nombres llegan en headers HTTP, asi que el cliente controla su valor.
Un header "Filename: ../../etc/passwd" no debe escribir fuera de la carpeta
base. Por eso:

- El nombre de archivo se escapa con urllib.parse.quote(safe=""): "/" y "\\"
  pasan a ser "%2F" y "%5C", el nombre queda como UN solo componente.
  Los nombres "", "." y ".." se rechazan.
- El directorio puede tener subcarpetas ("2024/facturas"), pero cada
  segmento se valida: nada vacio, nada de "." ni "..".
- Como ultima barrera, la ruta final resuelta debe quedar dentro de la
  carpeta base.

Dos subidas simultaneas a la misma ruta compiten en el sistema de archivos:
gana la ultima escritura.
"""

import re
from pathlib import Path
from urllib.parse import quote

from app.config import UploadSettings

# Separadores aceptados en el header Dir ("a/b" o "a\b").
_SEPARATORS = re.compile(r"[\\/]")


class UploadError(Exception):
    """
    Error esperado de una subida (header faltante, nombre invalido, E/S...).

    Atributos:
        message (str): Texto que se devuelve al cliente.
        status_code (int): Codigo HTTP a usar si ERROR_STATUS_CODES esta activo.
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def split_directory(directory: str) -> list[str]:
    """Valida el header Dir y lo separa en segmentos seguros."""
    segments = _SEPARATORS.split(directory.strip())
    if not segments or any(part in ("", ".", "..") for part in segments):
        raise UploadError(f"invalid directory: {directory}")
    return segments


def escape_filename(filename: str) -> str:
    """Escapa el nombre para usarlo como un unico componente de ruta."""
    escaped = quote(filename.strip(), safe="")
    if escaped in ("", ".", ".."):
        raise UploadError(f"invalid filename: {filename}")
    return escaped


class LocalStorage:
    """
    Almacenamiento en una carpeta local.

    Atributos:
        root (Path): Carpeta base (absoluta).
        base_url (str): URL publica equivalente a `root`, sin "/" final.
    """

    def __init__(self, root: Path | str, base_url: str):
        self.root = Path(root).resolve()
        self.base_url = base_url.rstrip("/")

    @classmethod
    def from_settings(cls, upload_settings: UploadSettings) -> "LocalStorage":
        return cls(upload_settings.directory, upload_settings.base_url)

    def _inside_root(self, path: Path) -> bool:
        return path == self.root or self.root in path.parents

    def save(self, directory: str, filename: str, data: bytes) -> str:
        """
        Escribe `data` en <root>/<directory>/<filename escapado>.

        Crea la carpeta (y sus padres) si no existe.

        Retorna:
            str: URL publica del archivo guardado.

        Raises:
            UploadError: Si el directorio o el nombre no son validos.
            OSError: Si falla la creacion de carpetas o la escritura. El
                llamador lo registra en el log y responde con el error.
        """
        segments = split_directory(directory)
        stored_name = escape_filename(filename)

        target_dir = self.root.joinpath(*segments)
        target = (target_dir / stored_name).resolve()
        if not self._inside_root(target.parent):
            raise UploadError(f"invalid directory: {directory}")

        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

        return self.url_for(segments, stored_name)

    def url_for(self, segments: list[str], stored_name: str) -> str:
        # Se vuelve a codificar cada segmento: el servidor decodifica la URL,
        # asi "a%20b.txt" en disco se pide como "a%2520b.txt".
        path = "/".join(quote(part, safe="") for part in [*segments, stored_name])
        return f"{self.base_url}/{path}"

    def resolve(self, relative_path: str) -> Path | None:
        """
        Ruta en disco de un archivo ya guardado, o None si no existe o si la
        ruta sale de la carpeta base.
        """
        try:
            candidate = (self.root / relative_path.lstrip("/\\")).resolve()
            if not self._inside_root(candidate) or not candidate.is_file():
                return None
        except (OSError, ValueError):
            # ValueError: byte nulo en la ruta ("a%00b.txt").
            return None
        return candidate
