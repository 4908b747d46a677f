"""
Contexto de la aplicacion: el estado compartido que vive lo mismo que el
proceso (ajustes, baldes de limite de tasa, almacenamiento).

Se construye una vez al arrancar y se guarda en app.state.context. Las rutas
lo obtienen con la dependencia get_context(); no hay variables globales
mutables escondidas en los modulos.
"""

from dataclasses import dataclass

from fastapi import Request

from app.config import Settings, UploadSettings, load_settings, settings
from app.limiter import LimiterRegistry
from app.services.storage import LocalStorage


@dataclass
class AppContext:
    upload_settings: UploadSettings
    registry: LimiterRegistry
    storage: LocalStorage


def build_context(
    upload_settings: UploadSettings | None = None,
    registry: LimiterRegistry | None = None,
    runtime: Settings = settings,
) -> AppContext:
    """
    Arma el contexto. Lo que no se pase se crea a partir de la configuracion:
    los ajustes se leen de SETTINGS_FILE y el registro usa RATE_LIMIT/RATE_BURST.

    Raises:
        SettingsError: Si settings.json no se puede cargar.
    """
    if upload_settings is None:
        upload_settings = load_settings(runtime.SETTINGS_FILE)
    if registry is None:
        registry = LimiterRegistry.from_rate_string(runtime.RATE_LIMIT, burst=runtime.RATE_BURST)
    return AppContext(
        upload_settings=upload_settings,
        registry=registry,
        storage=LocalStorage.from_settings(upload_settings),
    )


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def get_peer(request: Request):
    """Direccion remota (host, port) que entrega el servidor ASGI, o None."""
    return request.client
