"""
Servicio de admision de peticiones de subida.

Antes de que una subida llegue a tocar el disco, la peticion pasa por una
serie de controles en orden. El primero que falla corta la cadena:

    1. Metodo HTTP        -> solo POST
    2. Identidad          -> IP del cliente (sin puerto)
    3. Lista blanca       -> la IP debe estar en settings.json ("ip")
    4. Header del proxy   -> X-Real-Ip reemplaza la identidad y se
                             vuelve a comprobar la lista blanca
    5. Limite de tasa     -> una ficha del balde de esa IP

Ningun rechazo lanza excepciones: el resultado siempre es un
AdmissionResult, igual que ValidationResult en el validador de archivos.
Tampoco hay E/S: solo se leen strings de la peticion y estado en memoria,
asi que es seguro llamarlo desde muchas peticiones concurrentes.

Sobre X-Real-Ip
---------------
Se confia en el header siempre que sea una IP sintacticamente valida. Eso
modela el despliegue detras de nginx. Si el servidor es alcanzable sin pasar
por el proxy, el proxy (o el firewall) debe eliminar ese header: un cliente
podria enviarlo para hacerse pasar por otra IP.
"""

import ipaddress
from dataclasses import dataclass
from typing import Mapping

from app.config import UploadSettings, settings
from app.limiter import LimiterRegistry

ALLOWED_METHOD = "POST"

# Tipos de rechazo. Sirven para elegir el codigo HTTP cuando
# ERROR_STATUS_CODES esta activo.
METHOD = "method"
PEER = "peer"
ADDRESS = "address"
RATE = "rate"


@dataclass
class AdmissionResult:
    """
    Resultado de la admision.

    Atributos:
        allowed (bool): True si la peticion puede continuar.
        reason (str): Motivo legible del rechazo ("" si allowed).
        kind (str | None): METHOD, PEER, ADDRESS o RATE; None si allowed.
        identity (str): Identidad final resuelta (puede estar vacia si el
            rechazo ocurrio antes de resolverla).
    """

    allowed: bool
    reason: str = ""
    kind: str | None = None
    identity: str = ""

    @classmethod
    def admit(cls, identity: str) -> "AdmissionResult":
        return cls(allowed=True, identity=identity)

    @classmethod
    def reject(cls, kind: str, reason: str, identity: str = "") -> "AdmissionResult":
        return cls(allowed=False, reason=reason, kind=kind, identity=identity)


def normalize_address(host: str) -> str:
    """Forma canonica de una IP literal ("::0001" -> "::1"); otros hosts sin cambios."""
    try:
        return str(ipaddress.ip_address(host))
    except ValueError:
        return host


def split_host_port(address: str) -> str:
    """
    Extrae el host de "host:port" o "[host]:port".

    Raises:
        ValueError: Con un mensaje legible si la direccion no tiene ese formato.
    """
    if address.startswith("["):
        end = address.find("]")
        if end < 0:
            raise ValueError(f"missing ']' in address: {address}")
        host, rest = address[1:end], address[end + 1:]
        if not rest.startswith(":"):
            raise ValueError(f"missing port in address: {address}")
        return host
    host, sep, port = address.rpartition(":")
    if not sep:
        raise ValueError(f"missing port in address: {address}")
    if ":" in host:
        raise ValueError(f"too many colons in address: {address}")
    return host


def resolve_identity(peer) -> str:
    """
    Obtiene la identidad (host sin puerto) del par remoto.

    Parametros:
        peer: La direccion del cliente tal como la entrega el servidor ASGI
            (tupla/Address (host, port)), o un string "host:port".

    Raises:
        ValueError: Si no hay direccion o no se puede interpretar.
    """
    if peer is None:
        raise ValueError("missing remote address")
    if isinstance(peer, str):
        host = split_host_port(peer)
    else:
        try:
            host = peer[0]
        except (TypeError, IndexError):
            raise ValueError(f"invalid remote address: {peer!r}") from None
    if not host:
        raise ValueError("missing remote address")
    return normalize_address(str(host))


def is_allowed(identity: str, upload_settings: UploadSettings) -> bool:
    # Lista vacia = todas las IPs permitidas.
    allowed = upload_settings.allowed_addresses
    return not allowed or identity in allowed


def real_ip_from_headers(headers: Mapping[str, str], header_name: str | None = None) -> str | None:
    """IP del header del proxy si existe y es valida; None en otro caso."""
    value = headers.get(header_name or settings.REAL_IP_HEADER)
    if not value:
        return None
    try:
        return str(ipaddress.ip_address(value.strip()))
    except ValueError:
        return None


def check_request(
    method: str,
    peer,
    headers: Mapping[str, str],
    upload_settings: UploadSettings,
    registry: LimiterRegistry,
) -> AdmissionResult:
    """
    Ejecuta la cadena de admision completa.

    Parametros:
        method (str): Metodo HTTP de la peticion.
        peer: Direccion remota (ver resolve_identity).
        headers (Mapping[str, str]): Headers de la peticion. Con los Headers
            de Starlette la busqueda no distingue mayusculas.
        upload_settings (UploadSettings): Ajustes con la lista blanca.
        registry (LimiterRegistry): Baldes de fichas por IP.

    Retorna:
        AdmissionResult: admitido, o rechazado con el motivo.
    """
    if method.upper() != ALLOWED_METHOD:
        return AdmissionResult.reject(METHOD, "method not allowed")

    try:
        identity = resolve_identity(peer)
    except ValueError as exc:
        return AdmissionResult.reject(PEER, str(exc))

    if not is_allowed(identity, upload_settings):
        return AdmissionResult.reject(ADDRESS, f"address not allowed: {identity}", identity)

    real_ip = real_ip_from_headers(headers)
    if real_ip is not None:
        identity = real_ip
        if not is_allowed(identity, upload_settings):
            return AdmissionResult.reject(ADDRESS, f"address not allowed: {identity}", identity)

    if not registry.allow(identity):
        return AdmissionResult.reject(RATE, f"rate limit exceeded for address: {identity}", identity)

    return AdmissionResult.admit(identity)
