import logging
import sys
from functools import lru_cache
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Literal

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Directorio de logs (<repo>/logs/)
_LOG_DIR = Path(__file__).parent.parent.parent / "logs"

FLOW_SYMBOLS = {
    "start": "╔",
    "node": "║",
    "arrow": "→",
    "end": "╚",
    "route": "◆",
}


def _configure_root_logger(level: LogLevel) -> None:
    """Configura el logger raíz con handlers de consola y archivo."""
    root = logging.getLogger()
    if root.handlers:
        return

    # Silenciar loggers ruidosos de terceros
    noisy_loggers = [
        "watchfiles",
        "watchfiles.main",
        "httpx",
        "httpcore",
        "httpcore.http11",
        "httpcore.connection",
        "hpack",
        "urllib3",
        "huggingface_hub",
        "groq._base_client",
        "openai._base_client",
    ]
    for logger_name in noisy_loggers:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    formatter = logging.Formatter(_LOG_FORMAT, _DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    # Rotación diaria, 7 días
    try:
        _LOG_DIR.mkdir(exist_ok=True)
        file_handler = TimedRotatingFileHandler(
            _LOG_DIR / "assessment_validator.log",
            when="midnight",
            interval=1,
            backupCount=7,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
    except OSError:
        # Sin permisos de escritura: solo consola
        pass

    root.setLevel(level)


@lru_cache(maxsize=128)
def get_logger(name: str) -> logging.Logger:
    """
    Retorna un logger configurado para el módulo especificado.

    Uso:
        from assessment_validator.core.logging import get_logger
        logger = get_logger(__name__)
        logger.info("Mensaje")
    """
    from assessment_validator.core.config import settings

    _configure_root_logger(settings.log_level)
    return logging.getLogger(name)


class PipelineLogger:
    """Logger especializado para trazabilidad de jobs de validación."""

    def __init__(self, component: str):
        self._logger = get_logger(f"pipeline.{component}")
        self.component = component

    def job_start(self, job_id: str, total: int, provider: str, strategy: str) -> None:
        self._logger.info("=" * 70)
        self._logger.info(f"{FLOW_SYMBOLS['start']}══ VALIDATION JOB START ════════════════════════════════════════════")
        self._logger.info(f"{FLOW_SYMBOLS['node']} Job: {job_id} | Requirements: {total}")
        self._logger.info(f"{FLOW_SYMBOLS['node']} Provider: {provider} | Strategy: {strategy}")
        self._logger.info(f"{FLOW_SYMBOLS['node']} Flow: resolve_prompt → gather_context → generate → persist")
        self._logger.info("=" * 70)

    def job_end(self, job_id: str, status: str, succeeded: int, failed: int, pending: int) -> None:
        self._logger.info("=" * 70)
        self._logger.info(f"{FLOW_SYMBOLS['end']}══ VALIDATION JOB {status.upper()} ═══════════════════════════════════════")
        self._logger.info(f"   {FLOW_SYMBOLS['route']} Job: {job_id}")
        self._logger.info(f"   {FLOW_SYMBOLS['route']} Succeeded: {succeeded} | Failed: {failed} | Pending: {pending}")
        self._logger.info("=" * 70)

    def transition(self, job_id: str, current: str, target: str) -> None:
        self._logger.info(f"{FLOW_SYMBOLS['route']} JOB {job_id}: {current} {FLOW_SYMBOLS['arrow']} {target}")

    def node_enter(self, node: str, requirement_id: str | None = None) -> None:
        self._logger.debug(f"{FLOW_SYMBOLS['node']} [{node.upper()}] {FLOW_SYMBOLS['arrow']} Entering | Req: {requirement_id or 'N/A'}")

    def node_exit(self, node: str, result: str | None = None) -> None:
        self._logger.debug(f"{FLOW_SYMBOLS['node']} [{node.upper()}] {FLOW_SYMBOLS['arrow']} Exiting | {result or 'OK'}")

    def routing_decision(self, from_node: str, to_node: str, reason: str) -> None:
        self._logger.debug(f"{FLOW_SYMBOLS['route']} ROUTING: {from_node} → {to_node} | Reason: {reason}")

    def requirement_done(self, requirement_id: str, outcome: str, attempts: int) -> None:
        self._logger.info(f"{FLOW_SYMBOLS['node']} Requirement {requirement_id}: {outcome} (attempts: {attempts})")

    def warning(self, node: str, message: str) -> None:
        self._logger.warning(f"{FLOW_SYMBOLS['node']} [{node.upper()}] {message}")

    def error(self, node: str, error: Exception) -> None:
        self._logger.error(f"{FLOW_SYMBOLS['node']} [{node.upper()}] ERROR: {type(error).__name__}: {error}", exc_info=True)

    def debug(self, node: str, message: str) -> None:
        self._logger.debug(f"{FLOW_SYMBOLS['node']} [{node}] {message}")
