import logging

from .api.server import create_app
from .config import load_config
from .core.scheduler import ScanScheduler
from .service import ScanService

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def build_app(config_path=None):
    """Load config, wire service + scheduler and return (app, config)."""
    config = load_config(config_path)
    setup_logging(config.log_level)

    service = ScanService.from_config(config)
    scheduler = ScanScheduler(
        service.trigger_scan,
        config.schedule.triggers,
        tz=config.schedule.tz,
        tz_label=config.schedule.timezone_label,
        run_days=config.schedule.run_days,
    )
    return create_app(service, scheduler), config


if __name__ == "__main__":
    import uvicorn

    app, config = build_app()
    uvicorn.run(app, host=config.host, port=config.port)
