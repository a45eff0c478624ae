"""
Script para probar el camino de serving a mano.

Ejecuta una búsqueda híbrida y muestra los resultados rankeados en JSON.

Uso:
    python -m nido.scripts.run_search --query "luminoso cerca del subte"
    python -m nido.scripts.run_search --query "tranquilo" --preferences prefs.json
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

import structlog

from nido.config import get_settings
from nido.models import SearchQuery, UserPreferences
from nido.search import build_default_service

# Configurar logging
settings = get_settings()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(message)s",
    stream=sys.stderr,
    force=True,
)

structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Búsqueda híbrida de departamentos")
    parser.add_argument("--query", "-q", default=None, help="Texto libre de búsqueda")
    parser.add_argument(
        "--preferences",
        "-p",
        type=Path,
        default=None,
        help="Archivo JSON con UserPreferences",
    )
    parser.add_argument("--limit", "-n", type=int, default=10, help="Cantidad de resultados")
    return parser.parse_args()


def load_preferences(path: Path | None) -> UserPreferences:
    if path is None:
        return UserPreferences()
    return UserPreferences.model_validate_json(path.read_text(encoding="utf-8"))


async def run_search(query: SearchQuery) -> dict:
    """Ejecuta la búsqueda y la serializa."""
    service = build_default_service(settings)
    response = await service.search(query)

    return {
        "weights_version": response.weights_version,
        "degraded": response.degraded,
        "failed_channels": response.failed_channels,
        "results": [
            result.model_dump(mode="json", include={"listing_id", "score", "reasons", "reason_codes", "components"})
            for result in response.results
        ],
    }


def main():
    """Entry point del script."""
    args = parse_args()

    try:
        query = SearchQuery(
            text=args.query,
            preferences=load_preferences(args.preferences),
            limit=args.limit,
        )
        output = asyncio.run(run_search(query))

        print(json.dumps(output, ensure_ascii=False, indent=2))
        sys.exit(0)

    except KeyboardInterrupt:
        logger.info("Búsqueda interrumpida por usuario")
        sys.exit(130)
    except Exception as e:
        logger.error("Error fatal en búsqueda", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
