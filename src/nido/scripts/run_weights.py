"""
Script para recalcular los pesos del bandit.

Lee la ventana de feedback, recalcula los pesos de los componentes y
publica un snapshot nuevo para el serving.

Uso:
    python -m nido.scripts.run_weights
    python -m nido.scripts.run_weights --lookback-days 14 --dry-run
"""

import argparse
import logging
import sys

import structlog

from nido.config import get_settings
from nido.database import FeedbackRepository, WeightSnapshotRepository, get_supabase_client
from nido.learning import WeightRecomputeJob, WeightSnapshotStore

# Configurar logging
settings = get_settings()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(message)s",
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
    parser = argparse.ArgumentParser(description="Recalcula los pesos del ranking")
    parser.add_argument(
        "--lookback-days",
        type=int,
        default=None,
        help=f"Días de feedback a considerar (default: {settings.learner_lookback_days})",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Calcula los pesos sin publicarlos",
    )
    return parser.parse_args()


def run_weights(lookback_days: int | None, dry_run: bool) -> dict:
    """Ejecuta un ciclo de recálculo."""
    client = get_supabase_client()
    job = WeightRecomputeJob(
        feedback_repository=FeedbackRepository(client),
        store=WeightSnapshotStore(WeightSnapshotRepository(client)),
        settings=settings,
    )
    return job.run(lookback_days=lookback_days, dry_run=dry_run)


def main():
    """Entry point del script."""
    args = parse_args()
    logger.info("Iniciando recálculo de pesos...", dry_run=args.dry_run)

    try:
        stats = run_weights(args.lookback_days, args.dry_run)

        logger.info(
            "Recálculo completado",
            processed=stats["processed"],
            skipped=stats["skipped"],
            published=stats["published"],
            version=stats["version"],
        )

        for component, weight in stats["weights"].items():
            print(f"  {component:<15} {weight:.4f}")

        sys.exit(0)

    except KeyboardInterrupt:
        logger.info("Recálculo interrumpido por usuario")
        sys.exit(130)
    except Exception as e:
        logger.error("Error fatal en recálculo de pesos", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
