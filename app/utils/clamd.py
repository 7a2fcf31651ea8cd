"""
Client clamd (protocole INSTREAM).

Une connexion par fichier :
    b"INSTREAM\\n"
    {longueur sur 4 octets big-endian}{octets du chunk}   (répété)
    {0x00000000}                                        (fin du flux)
puis lecture du verdict texte jusqu'à la fermeture par le démon.

Le fichier est lu par morceaux de 64 Ko : jamais entièrement en mémoire.
Le timeout est un délai d'inactivité, appliqué à chaque opération socket
(connexion, envoi d'un chunk, lecture du verdict), pas à la durée totale du scan.
"""

import logging
import re
import socket
import struct
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Union

from app.core.errors import ScanIOError, ScanUnavailable

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
END_OF_STREAM = struct.pack(">I", 0)

_FOUND_RE = re.compile(r"\bFOUND\b", re.IGNORECASE)
_OK_RE = re.compile(r"\bOK\b", re.IGNORECASE)


class ScanState(str, Enum):
    CONNECTING = "connecting"
    STREAMING = "streaming"
    AWAITING_VERDICT = "awaiting-verdict"


class ScanVerdict(str, Enum):
    CLEAN = "clean"
    INFECTED = "infected"
    UNKNOWN = "unknown"


def parse_verdict(response: str) -> ScanVerdict:
    """
    Réponses typiques : "stream: OK" ou "stream: Eicar-Test-Signature FOUND".
    Tout le reste (ERROR, réponse vide, tronquée...) => UNKNOWN, jamais CLEAN.
    """
    if _FOUND_RE.search(response):
        return ScanVerdict.INFECTED
    if _OK_RE.search(response):
        return ScanVerdict.CLEAN
    return ScanVerdict.UNKNOWN


class ClamdScanner:
    def __init__(
        self,
        host: str,
        port: int,
        *,
        timeout: float = 60.0,
        log_responses: bool = False,
    ):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.log_responses = log_responses

    def scan(self, path: Union[str, Path]) -> bool:
        """True si le fichier est sain, False s'il est infecté."""
        try:
            fh = open(path, "rb")
        except OSError as e:
            raise ScanIOError(f"Cannot read file for scanning: {e}") from e

        with fh:
            response = self._instream(fh)

        if self.log_responses:
            logger.info("[clamd] host=%s port=%s file=%s resp=%r", self.host, self.port, path, response)

        verdict = parse_verdict(response)
        if verdict is ScanVerdict.INFECTED:
            logger.warning("[clamd] infected file=%s resp=%r", path, response)
            return False
        if verdict is ScanVerdict.CLEAN:
            return True
        raise ScanUnavailable(f"Unexpected clamd response: {response!r}")

    # ---------- machine à états ----------

    def _instream(self, fh: BinaryIO) -> str:
        state = ScanState.CONNECTING
        try:
            sock = socket.create_connection((self.host, self.port), timeout=self.timeout)
        except OSError as e:
            raise ScanUnavailable(f"Cannot reach clamd at {self.host}:{self.port}: {e}") from e

        with sock:
            # même budget d'inactivité pour chaque envoi / lecture
            sock.settimeout(self.timeout)
            try:
                state = ScanState.STREAMING
                sock.sendall(b"INSTREAM\n")
                for chunk in _read_chunks(fh):
                    sock.sendall(struct.pack(">I", len(chunk)) + chunk)
                sock.sendall(END_OF_STREAM)

                state = ScanState.AWAITING_VERDICT
                return _read_until_closed(sock)
            except socket.timeout as e:
                raise ScanUnavailable(
                    f"Clamd idle for more than {self.timeout:g}s while {state.value}"
                ) from e
            except OSError as e:
                raise ScanUnavailable(f"Clamd connection failed while {state.value}: {e}") from e


def _read_chunks(fh: BinaryIO):
    while True:
        try:
            chunk = fh.read(CHUNK_SIZE)
        except OSError as e:
            raise ScanIOError(f"Read error while scanning: {e}") from e
        if not chunk:
            return
        yield chunk


def _read_until_closed(sock: socket.socket) -> str:
    parts = []
    while True:
        data = sock.recv(4096)
        if not data:
            break
        parts.append(data)
    return b"".join(parts).decode("utf-8", errors="replace").strip("\x00 \r\n")
