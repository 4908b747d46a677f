"""
Modulo de limitacion de tasa de peticiones (Rate Limiting) por IP.

Cada cliente (identificado por su IP) tiene su propio "token bucket":

    - El balde tiene capacidad `burst` fichas y empieza lleno.
    - Se rellena de forma continua a `rate` fichas por segundo.
    - Cada peticion consume una ficha. Sin fichas -> peticion rechazada.

No hay ningun hilo de fondo rellenando baldes: el relleno se calcula al
momento de consultar, a partir del tiempo transcurrido desde la ultima
consulta (relleno "perezoso").

Con los valores por defecto (20/second, rafaga 1) cada IP puede hacer como
maximo una peticion cada 50 ms, sin margen para rafagas.

Concurrencia
------------
- El registro (dict IP -> balde) tiene UN lock que solo protege la operacion
  "buscar o crear". Asi dos peticiones simultaneas de una IP nueva nunca
  crean dos baldes distintos.
- Cada balde tiene su propio lock para consumir fichas. Una vez obtenido el
  balde, no hace falta el lock del registro.

Limitacion conocida: los baldes nunca se eliminan. Un servidor expuesto a
muchas IPs distintas acumula memoria sin limite (en produccion conviene una
politica LRU/TTL).
"""

import threading
import time
from typing import Callable

# `limits` es la libreria de limites de tasa sobre la que esta construido
# SlowAPI. Usamos su parser para aceptar la misma notacion ("20/second",
# "100/minute", "5 per 10 seconds"...).
from limits import parse

Clock = Callable[[], float]


class TokenBucket:
    """
    Balde de fichas con relleno continuo.

    Atributos:
        rate (float): Fichas anadidas por segundo.
        burst (int): Capacidad maxima del balde.
    """

    def __init__(self, rate: float, burst: int, clock: Clock = time.monotonic):
        if rate <= 0:
            raise ValueError("rate must be positive")
        if burst < 1:
            raise ValueError("burst must be at least 1")
        self.rate = float(rate)
        self.burst = burst
        self._clock = clock
        self._tokens = float(burst)
        self._last = clock()
        self._lock = threading.Lock()

    def try_acquire(self) -> bool:
        """Intenta consumir una ficha. Retorna True si habia disponible."""
        with self._lock:
            now = self._clock()
            elapsed = max(0.0, now - self._last)
            self._last = now
            self._tokens = min(float(self.burst), self._tokens + elapsed * self.rate)
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return True
            return False

    @property
    def tokens(self) -> float:
        """Fichas disponibles en la ultima consulta (sin rellenar)."""
        with self._lock:
            return self._tokens


class LimiterRegistry:
    """Registro perezoso de un TokenBucket por identidad (IP)."""

    def __init__(self, rate: float, burst: int = 1, clock: Clock = time.monotonic):
        if rate <= 0:
            raise ValueError("rate must be positive")
        if burst < 1:
            raise ValueError("burst must be at least 1")
        self.rate = float(rate)
        self.burst = burst
        self._clock = clock
        self._buckets: dict[str, TokenBucket] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_rate_string(cls, rate_limit: str, burst: int = 1, clock: Clock = time.monotonic) -> "LimiterRegistry":
        """
        Crea un registro a partir de un limite en notacion de `limits`.

        Ejemplo: "20/second" -> 20 fichas/s; "600/minute" -> 10 fichas/s.
        """
        item = parse(rate_limit)
        return cls(item.amount / item.get_expiry(), burst=burst, clock=clock)

    def get_or_create(self, identity: str) -> TokenBucket:
        with self._lock:
            bucket = self._buckets.get(identity)
            if bucket is None:
                bucket = TokenBucket(self.rate, self.burst, clock=self._clock)
                self._buckets[identity] = bucket
            return bucket

    def allow(self, identity: str) -> bool:
        return self.get_or_create(identity).try_acquire()

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)
